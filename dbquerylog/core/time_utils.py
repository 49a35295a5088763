from __future__ import annotations

"""
时间工具（dbquerylog.core.time_utils）
- make_clock：按配置时区生成"当前时间"函数，供文件名生成器与记录时间戳共用
- format_datetime：统一的 :datetime: 占位符格式
"""

from datetime import datetime, timezone
from typing import Callable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

UTC = timezone.utc

Clock = Callable[[], datetime]

DEFAULT_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def resolve_timezone(name: str | None):
    """解析时区名；空值或 UTC 返回 timezone.utc，未知时区抛出 ZoneInfoNotFoundError。"""
    if not name or name.upper() == "UTC":
        return UTC
    return ZoneInfo(name)


def make_clock(tz_name: str | None = None) -> Clock:
    """返回一个无参时钟函数：每次调用给出配置时区下的当前时间（带 tzinfo）。"""
    tz = resolve_timezone(tz_name)

    def _now() -> datetime:
        return datetime.now(tz)

    return _now


def is_known_timezone(name: str | None) -> bool:
    try:
        resolve_timezone(name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def format_datetime(dt: datetime, fmt: str = DEFAULT_DATETIME_FORMAT) -> str:
    return dt.strftime(fmt)
