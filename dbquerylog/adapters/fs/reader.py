from __future__ import annotations

"""
查询日志读取适配器（adapters.fs.reader）：只读浏览已写入的查询日志
- list_log_files：列出存储盘目录下的 .log/.json 文件（含大小与修改时间）
- read_log_entries：读取单个文件的条目；.log 按行，.json 按数组元素

注意：
- 只读；不修改、不修复任何文件（损坏的 JSON 抛 CorruptLogFileError）
- 统一 UTF-8 读取
"""

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List

from dbquerylog.adapters.fs.storage import LocalDisk
from dbquerylog.core.exceptions import CorruptLogFileError, StorageError
from dbquerylog.core.time_utils import UTC

LOG_FILE_FORMATS = {".log": "log", ".json": "json"}


@dataclass(frozen=True)
class LogFileInfo:
    path: str
    format: str
    size_bytes: int
    modified_at: datetime


def file_format(relative: str) -> str | None:
    for suffix, fmt in LOG_FILE_FORMATS.items():
        if relative.endswith(suffix):
            return fmt
    return None


def list_log_files(disk: LocalDisk, directory: str) -> List[LogFileInfo]:
    """列出目录下的查询日志文件（按名称排序）；备份文件 *.corrupt-* 不计入。"""
    result: List[LogFileInfo] = []
    for rel in disk.files(directory):
        fmt = file_format(rel)
        if fmt is None:
            continue
        try:
            stat = disk.path(rel).stat()
        except OSError as e:
            raise StorageError(
                f"读取文件信息失败: {rel}", context={"disk": disk.name, "path": rel}, cause=e
            ) from e
        result.append(
            LogFileInfo(
                path=rel,
                format=fmt,
                size_bytes=stat.st_size,
                modified_at=datetime.fromtimestamp(stat.st_mtime, UTC),
            )
        )
    return result


def read_log_entries(disk: LocalDisk, relative: str) -> List[Any]:
    """读取查询日志条目。
    - .log：每个非空行一条（字符串）
    - .json：顶层数组的每个元素一条
    - 文件不存在抛 StorageError；JSON 无法解析抛 CorruptLogFileError
    """
    fmt = file_format(relative)
    if fmt is None:
        raise StorageError(
            f"不支持的查询日志文件类型: {relative}",
            context={"disk": disk.name, "path": relative},
        )
    if not disk.exists(relative):
        raise StorageError(
            f"查询日志文件不存在: {relative}", context={"disk": disk.name, "path": relative}
        )
    raw = disk.get(relative)
    if fmt == "log":
        return [line for line in raw.splitlines() if line.strip()]
    if not raw.strip():
        return []
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise CorruptLogFileError(
            f"JSON 查询日志无法解析: {relative}",
            context={"disk": disk.name, "path": relative, "error": str(e)},
            cause=e,
        ) from e
    if not isinstance(data, list):
        raise CorruptLogFileError(
            f"JSON 查询日志顶层不是数组: {relative}",
            context={"disk": disk.name, "path": relative},
        )
    return data
