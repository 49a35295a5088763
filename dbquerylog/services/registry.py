from __future__ import annotations

"""
组件注册表（services.registry）：配置键 → 工厂
- FILE_NAME_GENERATORS / PATH_GENERATORS / MESSAGE_FORMATTERS / DRIVERS
- register_*：扩展点，新增实现只需注册一个键
- build_driver_factory(settings)：启动时一次性解析全部配置（未知键/非法 schema/未知 disk 立即失败），
  返回无参工厂，每次调用产出一个新的、尚未 configure 的驱动
"""

import logging
from typing import Any, Callable, Dict, Type

from dbquerylog.adapters.fs.storage import DiskManager
from dbquerylog.core.config.loader import Settings
from dbquerylog.core.exceptions import ConfigurationError
from dbquerylog.core.time_utils import Clock, is_known_timezone, make_clock
from dbquerylog.services.drivers import JsonFileDriver, LogFileDriver, QueryLogDriver
from dbquerylog.services.filenames import (
    DateFileNameGenerator,
    DatetimeFileNameGenerator,
    FileNameGenerator,
    TimestampFileNameGenerator,
    UuidFileNameGenerator,
)
from dbquerylog.services.formatters import (
    JsonMessageFormatter,
    LogMessageFormatter,
    MessageFormatter,
)
from dbquerylog.services.paths import DefaultPathGenerator, PathGenerator
from dbquerylog.utils.logging_ext import EVENT_DRIVER_RESOLVED

logger = logging.getLogger(__name__)

DriverFactory = Callable[[], QueryLogDriver]

# 工厂签名：
# - 文件名生成器：(clock) -> FileNameGenerator
# - 路径生成器：(driver_options) -> PathGenerator
# - 格式化器：(driver_options) -> MessageFormatter
FILE_NAME_GENERATORS: Dict[str, Callable[[Clock], FileNameGenerator]] = {
    "date": DateFileNameGenerator,
    "datetime": DatetimeFileNameGenerator,
    "timestamp": TimestampFileNameGenerator,
    "uuid": lambda clock: UuidFileNameGenerator(),
}

PATH_GENERATORS: Dict[str, Callable[[Any], PathGenerator]] = {
    "default": lambda options: DefaultPathGenerator(options.path_segment),
}

MESSAGE_FORMATTERS: Dict[str, Callable[[Any], MessageFormatter]] = {
    "log": lambda options: LogMessageFormatter(getattr(options, "template", None)),
    "json": lambda options: JsonMessageFormatter(getattr(options, "schema", None)),
}

DRIVERS: Dict[str, Type[QueryLogDriver]] = {
    "log_file": LogFileDriver,
    "json_file": JsonFileDriver,
}


def register_file_name_generator(key: str, factory: Callable[[Clock], FileNameGenerator]) -> None:
    FILE_NAME_GENERATORS[key] = factory


def register_path_generator(key: str, factory: Callable[[Any], PathGenerator]) -> None:
    PATH_GENERATORS[key] = factory


def register_message_formatter(key: str, factory: Callable[[Any], MessageFormatter]) -> None:
    MESSAGE_FORMATTERS[key] = factory


def register_driver(key: str, driver_cls: Type[QueryLogDriver]) -> None:
    DRIVERS[key] = driver_cls


def _lookup(table: Dict[str, Any], key: str, kind: str) -> Any:
    try:
        return table[key]
    except KeyError:
        raise ConfigurationError(
            f"未知{kind}: {key}", context={"kind": kind, "key": key, "known": sorted(table)}
        ) from None


def driver_options(settings: Settings) -> Any:
    """当前驱动对应的配置段（drivers.<driver>）"""
    opts = getattr(settings.querylog.drivers, settings.querylog.driver, None)
    if opts is None:
        raise ConfigurationError(
            f"缺少驱动配置段: drivers.{settings.querylog.driver}",
            context={"driver": settings.querylog.driver},
        )
    return opts


def build_driver_factory(
    settings: Settings,
    *,
    storage: DiskManager | None = None,
    clock: Clock | None = None,
) -> DriverFactory:
    """
    解析驱动及其组件并返回驱动工厂。

    参数：
        settings: 应用配置（只读，显式传入驱动）
        storage: 存储盘管理器（测试可注入；默认按 settings.querylog.disks 构建）
        clock: 时钟（测试可注入固定时钟；默认按 settings.querylog.timezone）

    返回：
        DriverFactory: 每次调用返回一个新的驱动实例
    """
    ql = settings.querylog
    driver_cls = _lookup(DRIVERS, ql.driver, "驱动")
    options = driver_options(settings)

    if clock is None:
        if not is_known_timezone(ql.timezone):
            raise ConfigurationError(f"未知时区: {ql.timezone}", context={"timezone": ql.timezone})
        clock = make_clock(ql.timezone)

    file_name_factory = _lookup(FILE_NAME_GENERATORS, options.file_name, "文件名生成器")
    path_factory = _lookup(PATH_GENERATORS, options.path, "路径生成器")
    formatter_factory = _lookup(MESSAGE_FORMATTERS, options.message_formatter, "消息格式化器")

    # 以下构造会校验模板/schema，失败即抛 ConfigurationError
    file_name_generator = file_name_factory(clock)
    path_generator = path_factory(options)
    message_formatter = formatter_factory(options)
    if not isinstance(message_formatter.format(), driver_cls.template_type):
        raise ConfigurationError(
            f"消息格式化器 {options.message_formatter} 与驱动 {ql.driver} 不匹配",
            context={"driver": ql.driver, "message_formatter": options.message_formatter},
        )

    disks = storage or DiskManager(ql.disks, ql.default_disk)
    disk = disks.disk(options.disk)

    logger.info(
        f"查询日志驱动已解析: {ql.driver} → {disk.name}:{path_generator.path()}",
        extra={
            "event": EVENT_DRIVER_RESOLVED,
            "extra": {
                "driver": ql.driver,
                "file_name": options.file_name,
                "path": options.path,
                "message_formatter": options.message_formatter,
                "disk": disk.name,
                "enabled": ql.enabled,
            },
        },
    )

    def factory() -> QueryLogDriver:
        return driver_cls(
            ql,
            file_name_generator,
            path_generator,
            message_formatter,
            disk,
            clock=clock,
        )

    return factory
