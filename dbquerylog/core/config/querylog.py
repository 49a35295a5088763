"""
查询日志配置模块（dbquerylog.core.config.querylog）

本模块包含查询日志管道相关的配置类定义，包括：
- 全局开关与驱动选择
- 存储盘（disk）定义
- 异步队列配置
- 各驱动（log_file/json_file）的文件名、路径、格式化器与落盘策略
"""

from dataclasses import dataclass, field
from typing import Any, Dict

DEFAULT_PATH_SEGMENT = "db-query-logger"


@dataclass(frozen=True)
class QueueSettings:
    """
    异步队列配置

    属性：
        mode: 调度模式 ("thread" | "sync")，sync 仅用于 CLI 与测试
        max_workers: 线程池工作线程数
        thread_name_prefix: 工作线程名前缀
    """

    mode: str = "thread"
    max_workers: int = 1
    thread_name_prefix: str = "querylog"


@dataclass(frozen=True)
class LogFileDriverSettings:
    """
    文本日志驱动配置

    属性：
        file_name: 文件名生成器 ("date" | "datetime" | "timestamp" | "uuid")
        path: 路径生成器 ("default")
        path_segment: default 路径生成器返回的目录名
        message_formatter: 消息格式化器 ("log")
        template: 自定义文本模板（为空则使用格式化器默认模板）
        use_app_logs: True 时交给应用日志（logger=dbquerylog.queries），不直接写文件
        disk: 存储盘名（为空则使用 default_disk）
    """

    file_name: str = "date"
    path: str = "default"
    path_segment: str = DEFAULT_PATH_SEGMENT
    message_formatter: str = "log"
    template: str | None = None
    use_app_logs: bool = False
    disk: str | None = None


@dataclass(frozen=True)
class JsonFileDriverSettings:
    """
    JSON 日志驱动配置

    属性：
        file_name/path/path_segment/message_formatter/disk: 同文本驱动
        schema: 自定义 JSON schema（嵌套映射，叶子必须是 :name: 占位符）
        on_corrupt: 已有文件无法解析时的策略 ("backup" | "discard" | "fail")
        indent: JSON 缩进空格数
        lock: 是否对同一文件的读改写加进程内锁
    """

    file_name: str = "date"
    path: str = "default"
    path_segment: str = DEFAULT_PATH_SEGMENT
    message_formatter: str = "json"
    schema: Dict[str, Any] | None = None
    disk: str | None = None
    on_corrupt: str = "backup"
    indent: int = 4
    lock: bool = True


@dataclass(frozen=True)
class DriversSettings:
    log_file: LogFileDriverSettings = LogFileDriverSettings()
    json_file: JsonFileDriverSettings = JsonFileDriverSettings()


@dataclass(frozen=True)
class QueryLogSettings:
    """
    查询日志完整配置

    属性：
        enabled: 总开关；False 时驱动 persist 不做任何 I/O
        driver: 当前驱动 ("log_file" | "json_file")
        timezone: :datetime: 与时间类文件名所用时区
        datetime_format: :datetime: 占位符格式
        default_disk: 默认存储盘名
        disks: 存储盘名 → 根目录
        queue: 异步队列配置
        drivers: 各驱动配置
    """

    enabled: bool = True
    driver: str = "log_file"
    timezone: str = "UTC"
    datetime_format: str = "%Y-%m-%d %H:%M:%S"
    default_disk: str = "local"
    disks: Dict[str, str] = field(default_factory=lambda: {"local": "storage/app"})
    queue: QueueSettings = QueueSettings()
    drivers: DriversSettings = DriversSettings()
