"""
日志配置模块（dbquerylog.core.config.logging）

本模块描述应用自身的运行日志（不是查询日志）：
- 日志级别与格式
- 落盘目录与轮转
- 格式化参数
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class LoggingRotation:
    """
    日志轮转配置

    属性：
        max_bytes: 单个日志文件最大大小（字节）
        backup_count: 保留的备份文件数量
    """

    max_bytes: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 5


@dataclass(frozen=True)
class LoggingFormatting:
    """
    日志格式化配置

    属性：
        timestamp_format: 时间戳格式字符串（为空则使用 ISO8601）
        max_message_length: 单条日志消息最大长度（0 表示不截断）
        field_order: JSON 日志字段输出顺序
    """

    timestamp_format: str | None = None
    max_message_length: int = 8192
    field_order: tuple[str, ...] = ("timestamp", "level", "logger", "event", "message")


@dataclass(frozen=True)
class LoggingSettings:
    """
    运行日志完整配置

    属性：
        level: 日志级别
        format: 日志格式 ("json" | "text")
        console: 是否输出到控制台
        file_enabled: 是否落盘到 dir/app.{ndjson|log}
        dir: 落盘目录
        rotation: 轮转配置
        formatting: 格式化配置
    """

    level: str = "INFO"
    format: str = "json"  # json|text
    console: bool = True
    file_enabled: bool = False
    dir: str = "logs"
    rotation: LoggingRotation = LoggingRotation()
    formatting: LoggingFormatting = LoggingFormatting()
