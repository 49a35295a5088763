"""
数据库配置模块（dbquerylog.core.config.database）

本模块包含被监听的数据库连接配置：
- 连接参数与连接名（写入查询日志的 connection 字段）
- 超时配置
- 重试策略配置
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class DbTimeoutSettings:
    """
    数据库超时配置

    属性：
        connect_timeout_ms: 连接超时时间（毫秒）
        statement_timeout_ms: 语句执行超时时间（毫秒，0 表示不设置）
    """

    connect_timeout_ms: int = 5000
    statement_timeout_ms: int = 0


@dataclass(frozen=True)
class DbRetrySettings:
    """
    数据库重试策略配置（仅针对连接建立）

    属性：
        max_retries: 最大尝试次数
        retry_delay_ms: 重试延迟时间（毫秒）
        backoff_multiplier: 退避倍数
    """

    max_retries: int = 3
    retry_delay_ms: int = 1000
    backoff_multiplier: float = 2.0


@dataclass(frozen=True)
class DbSettings:
    """
    数据库配置设置

    DSN 优先级：dsn > host/name/user 组合。

    属性：
        connection_name: 连接名（写入查询日志）
        host: 数据库主机地址
        name: 数据库名称
        user: 连接用户名
        dsn: 完整 DSN（可选）
        timeouts: 超时配置
        retry: 重试策略配置
    """

    connection_name: str = "default"
    host: str = "localhost"
    name: str = "postgres"
    user: str = "postgres"
    dsn: str | None = None
    timeouts: DbTimeoutSettings = DbTimeoutSettings()
    retry: DbRetrySettings = DbRetrySettings()
