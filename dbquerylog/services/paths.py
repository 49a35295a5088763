from __future__ import annotations

"""
路径生成器（services.paths）
- default → 固定目录段（默认 db-query-logger），相对于存储盘根目录
"""

from typing import Protocol

from dbquerylog.core.config.querylog import DEFAULT_PATH_SEGMENT


class PathGenerator(Protocol):
    def path(self) -> str: ...


class DefaultPathGenerator:
    def __init__(self, segment: str = DEFAULT_PATH_SEGMENT) -> None:
        self.segment = segment.strip("/") or DEFAULT_PATH_SEGMENT

    def path(self) -> str:
        return self.segment
