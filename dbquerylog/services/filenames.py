from __future__ import annotations

"""
文件名生成器（services.filenames）
- date      → YYYY-MM-DD（同一天的查询写入同一文件）
- datetime  → YYYY-MM-DD HH:MM:SS
- timestamp → Unix 秒（整数字符串）
- uuid      → 随机 UUID4（每条记录一个文件）

说明：时间类生成器依赖可注入的时钟，同一秒内多次调用结果一致；文件名冲突是预期行为。
"""

import uuid
from typing import Protocol

from dbquerylog.core.time_utils import Clock, make_clock


class FileNameGenerator(Protocol):
    def filename(self) -> str: ...


class _ClockedGenerator:
    def __init__(self, clock: Clock | None = None) -> None:
        self.clock = clock or make_clock()


class DateFileNameGenerator(_ClockedGenerator):
    def filename(self) -> str:
        return self.clock().strftime("%Y-%m-%d")


class DatetimeFileNameGenerator(_ClockedGenerator):
    def filename(self) -> str:
        return self.clock().strftime("%Y-%m-%d %H:%M:%S")


class TimestampFileNameGenerator(_ClockedGenerator):
    def filename(self) -> str:
        return str(int(self.clock().timestamp()))


class UuidFileNameGenerator:
    def filename(self) -> str:
        return str(uuid.uuid4())
