"""
配置加载模块（dbquerylog.core.config.loader）

本模块负责应用程序的配置管理，提供统一的配置加载和验证机制。

核心功能：
- Settings：应用全局配置（querylog/logging/db/web），不可变，启动时构建一次后显式传递
- load_settings：按目录优先级与 YAML 合并规则加载配置
- load_settings_with_sources：提供配置来源追踪的加载函数
- 配置验证：启动阶段发现错误即抛出 ConfigurationError

配置优先级：
1. 环境变量（仅白名单：QUERYLOG_ENABLED / QUERYLOG_DRIVER）> YAML 文件 > 默认值
2. 其余字段仅允许来自 YAML

配置文件结构：
- configs/querylog.yaml：查询日志开关、驱动、存储盘、队列
- configs/logging.yaml：应用运行日志格式、级别和落盘
- configs/database.yaml：被监听的数据库连接
- configs/web.yaml：只读查看 API

使用示例：
    from pathlib import Path
    from dbquerylog.core.config.loader import load_settings

    settings = load_settings(Path("configs"))
    print(settings.querylog.driver)
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml  # type: ignore[import-untyped]
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from dbquerylog.core.exceptions import ConfigurationError

from .database import DbRetrySettings, DbSettings, DbTimeoutSettings
from .logging import LoggingFormatting, LoggingRotation, LoggingSettings
from .querylog import (
    DEFAULT_PATH_SEGMENT,
    DriversSettings,
    JsonFileDriverSettings,
    LogFileDriverSettings,
    QueryLogSettings,
    QueueSettings,
)
from .validation import ConfigValidator, log_validation_result
from .web import WebApiSettings, WebServerSettings, WebSettings

# 模块日志记录器
logger = logging.getLogger(__name__)

CONFIG_FILES = ("querylog", "logging", "database", "web")


class QueryLogEnv(BaseSettings):
    """白名单环境变量覆盖（QUERYLOG_ENABLED / QUERYLOG_DRIVER）"""

    model_config = SettingsConfigDict(
        env_prefix="QUERYLOG_", env_file=".env", extra="ignore"
    )

    enabled: Optional[bool] = None
    driver: Optional[str] = None


@dataclass(frozen=True)
class Settings:
    """
    应用程序主配置类

    所有配置对象都是 frozen dataclass，确保配置的不可变性；
    由入口（CLI/API）构建一次后显式传入驱动与监听器，运行期不再读取全局配置。

    配置组织结构：
    - querylog: 查询日志管道配置
    - logging: 应用运行日志配置
    - db: 被监听的数据库连接配置
    - web: 只读查看 API 配置
    """

    querylog: QueryLogSettings = QueryLogSettings()
    logging: LoggingSettings = LoggingSettings()
    db: DbSettings = DbSettings()
    web: WebSettings = WebSettings()


def _first_existing_dir(config_dir: Path) -> Path:
    """返回第一个存在的配置目录（优先级：传入 → ./configs → ./config）。"""
    for d in [config_dir, Path("configs"), Path("config")]:
        if d.exists() and d.is_dir():
            return d
    return config_dir


def _load_yaml_files(cdir: Path) -> Dict[str, Dict[str, Any]]:
    data: Dict[str, Dict[str, Any]] = {}
    for config_name in CONFIG_FILES:
        config_path = cdir / f"{config_name}.yaml"
        if not config_path.exists():
            logger.debug(f"配置文件不存在，使用默认配置: {config_path}")
            data[config_name] = {}
            continue
        try:
            with config_path.open("r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"配置文件解析失败: {config_path}",
                context={"path": str(config_path)},
                cause=e,
            ) from e
        if not isinstance(loaded, dict):
            raise ConfigurationError(
                f"配置文件顶层必须是映射: {config_path}",
                context={"path": str(config_path)},
            )
        data[config_name] = loaded
    return data


def _load_env() -> QueryLogEnv:
    try:
        return QueryLogEnv()
    except PydanticValidationError as e:
        raise ConfigurationError(
            "环境变量 QUERYLOG_* 取值非法", context={"errors": e.errors()}, cause=e
        ) from e


def load_settings(config_dir: Path) -> Settings:
    """
    加载配置。

    - 目录优先级：传入 config_dir → ./configs → ./config
    - 支持文件：querylog.yaml、logging.yaml、database.yaml、web.yaml
    - 验证失败抛出 ConfigurationError（启动即失败，而非首次写日志时失败）

    参数：
        config_dir: 配置文件目录路径

    返回：
        Settings: 完整的应用配置对象
    """
    cdir = _first_existing_dir(config_dir)
    data = _load_yaml_files(cdir)
    env = _load_env()

    querylog_cfg = dict(data.get("querylog", {}))
    if env.enabled is not None:
        querylog_cfg["enabled"] = env.enabled
    if env.driver is not None:
        querylog_cfg["driver"] = env.driver
    data["querylog"] = querylog_cfg

    validation_result = ConfigValidator.validate_complete_config(data)
    log_validation_result(validation_result, logger)
    if not validation_result.is_valid:
        raise ConfigurationError(
            f"配置验证失败: {len(validation_result.errors)} 个错误",
            context={
                "errors": [
                    {"field": e.field, "message": e.message}
                    for e in validation_result.errors
                ]
            },
        )

    settings = Settings(
        querylog=_build_querylog_settings(querylog_cfg),
        logging=_build_logging_settings(data.get("logging", {})),
        db=_build_database_settings(data.get("database", {})),
        web=_build_web_settings(data.get("web", {})),
    )

    logger.info(
        f"配置加载完成，驱动: {settings.querylog.driver}, "
        f"启用: {settings.querylog.enabled}, 队列: {settings.querylog.queue.mode}",
        extra={"event": "config.loaded", "extra": {"config_dir": str(cdir)}},
    )
    return settings


def load_settings_with_sources(config_dir: Path) -> Tuple[Settings, Dict[str, Any]]:
    """
    加载配置并返回配置来源信息（ENV | YAML | DEFAULT）。

    参数：
        config_dir: 配置文件目录路径

    返回：
        Tuple[Settings, Dict]: 配置对象和来源信息
    """
    settings = load_settings(config_dir)
    sources = _build_config_sources(config_dir)
    return settings, sources


# ================================
# 配置构建辅助函数
# ================================


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _build_querylog_settings(cfg: Dict[str, Any]) -> QueryLogSettings:
    """构建查询日志配置"""
    queue_cfg = cfg.get("queue", {}) or {}
    drivers_cfg = cfg.get("drivers", {}) or {}
    log_cfg = drivers_cfg.get("log_file", {}) or {}
    json_cfg = drivers_cfg.get("json_file", {}) or {}
    disks = cfg.get("disks") or {"local": "storage/app"}

    return QueryLogSettings(
        enabled=_as_bool(cfg.get("enabled"), True),
        driver=str(cfg.get("driver", "log_file")),
        timezone=str(cfg.get("timezone", "UTC")),
        datetime_format=str(cfg.get("datetime_format", "%Y-%m-%d %H:%M:%S")),
        default_disk=str(cfg.get("default_disk", "local")),
        disks={str(k): str(v) for k, v in disks.items()},
        queue=QueueSettings(
            mode=str(queue_cfg.get("mode", "thread")),
            max_workers=int(queue_cfg.get("max_workers", 1)),
            thread_name_prefix=str(queue_cfg.get("thread_name_prefix", "querylog")),
        ),
        drivers=DriversSettings(
            log_file=LogFileDriverSettings(
                file_name=str(log_cfg.get("file_name", "date")),
                path=str(log_cfg.get("path", "default")),
                path_segment=str(log_cfg.get("path_segment", DEFAULT_PATH_SEGMENT)),
                message_formatter=str(log_cfg.get("message_formatter", "log")),
                template=log_cfg.get("template"),
                use_app_logs=_as_bool(log_cfg.get("use_app_logs"), False),
                disk=log_cfg.get("disk"),
            ),
            json_file=JsonFileDriverSettings(
                file_name=str(json_cfg.get("file_name", "date")),
                path=str(json_cfg.get("path", "default")),
                path_segment=str(json_cfg.get("path_segment", DEFAULT_PATH_SEGMENT)),
                message_formatter=str(json_cfg.get("message_formatter", "json")),
                schema=json_cfg.get("schema"),
                disk=json_cfg.get("disk"),
                on_corrupt=str(json_cfg.get("on_corrupt", "backup")),
                indent=int(json_cfg.get("indent", 4)),
                lock=_as_bool(json_cfg.get("lock"), True),
            ),
        ),
    )


def _build_logging_settings(cfg: Dict[str, Any]) -> LoggingSettings:
    """构建运行日志配置（仅从 YAML 加载）"""
    rotation_cfg = cfg.get("rotation", {}) or {}
    formatting_cfg = cfg.get("formatting", {}) or {}
    defaults = LoggingFormatting()

    return LoggingSettings(
        level=str(cfg.get("level", "INFO")).upper(),
        format=str(cfg.get("format", "json")).lower(),
        console=_as_bool(cfg.get("console"), True),
        file_enabled=_as_bool(cfg.get("file_enabled"), False),
        dir=str(cfg.get("dir", "logs")),
        rotation=LoggingRotation(
            max_bytes=int(rotation_cfg.get("max_bytes", 10 * 1024 * 1024)),
            backup_count=int(rotation_cfg.get("backup_count", 5)),
        ),
        formatting=LoggingFormatting(
            timestamp_format=formatting_cfg.get("timestamp_format"),
            max_message_length=int(formatting_cfg.get("max_message_length", 8192)),
            field_order=tuple(formatting_cfg.get("field_order", defaults.field_order)),
        ),
    )


def _build_database_settings(cfg: Dict[str, Any]) -> DbSettings:
    """构建数据库配置（仅从 YAML 加载）"""
    timeouts_cfg = cfg.get("timeouts", {}) or {}
    retry_cfg = cfg.get("retry", {}) or {}

    return DbSettings(
        connection_name=str(cfg.get("connection_name", "default")),
        host=str(cfg.get("host", "localhost")),
        name=str(cfg.get("dbname", "postgres")),
        user=str(cfg.get("user", "postgres")),
        dsn=cfg.get("dsn"),
        timeouts=DbTimeoutSettings(
            connect_timeout_ms=int(timeouts_cfg.get("connect_timeout_ms", 5000)),
            statement_timeout_ms=int(timeouts_cfg.get("statement_timeout_ms", 0)),
        ),
        retry=DbRetrySettings(
            max_retries=int(retry_cfg.get("max_retries", 3)),
            retry_delay_ms=int(retry_cfg.get("retry_delay_ms", 1000)),
            backoff_multiplier=float(retry_cfg.get("backoff_multiplier", 2.0)),
        ),
    )


def _build_web_settings(cfg: Dict[str, Any]) -> WebSettings:
    """构建 Web 服务配置"""
    server_cfg = cfg.get("server", {}) or {}
    api_cfg = cfg.get("api", {}) or {}

    return WebSettings(
        server=WebServerSettings(
            host=str(server_cfg.get("host", "127.0.0.1")),
            port=int(server_cfg.get("port", 8000)),
            reload=_as_bool(server_cfg.get("reload"), False),
        ),
        api=WebApiSettings(
            title=str(api_cfg.get("title", "DB Query Logger API")),
            description=str(api_cfg.get("description", "数据库查询日志只读查看 API")),
            version=str(api_cfg.get("version", "0.1.0")),
            docs_url=str(api_cfg.get("docs_url", "/docs")),
            max_entries=int(api_cfg.get("max_entries", 1000)),
        ),
    )


def _build_config_sources(config_dir: Path) -> Dict[str, Any]:
    """构建配置来源信息"""
    cdir = _first_existing_dir(config_dir)
    yaml_data = _load_yaml_files(cdir)

    def _get_yaml_field_source(section: str, field_path: str) -> str:
        """检查YAML中的字段是否存在"""
        current: Any = yaml_data.get(section, {})
        for key in field_path.split("."):
            if not isinstance(current, dict) or key not in current:
                return "DEFAULT"
            current = current[key]
        return "YAML"

    def _get_env_source(env_key: str, section: str, field_path: str) -> str:
        if os.getenv(env_key) is not None:
            return "ENV"
        return _get_yaml_field_source(section, field_path)

    return {
        "querylog": {
            "enabled": _get_env_source("QUERYLOG_ENABLED", "querylog", "enabled"),
            "driver": _get_env_source("QUERYLOG_DRIVER", "querylog", "driver"),
            "timezone": _get_yaml_field_source("querylog", "timezone"),
            "default_disk": _get_yaml_field_source("querylog", "default_disk"),
            "disks": _get_yaml_field_source("querylog", "disks"),
            "queue.mode": _get_yaml_field_source("querylog", "queue.mode"),
            "drivers.log_file.file_name": _get_yaml_field_source(
                "querylog", "drivers.log_file.file_name"
            ),
            "drivers.log_file.use_app_logs": _get_yaml_field_source(
                "querylog", "drivers.log_file.use_app_logs"
            ),
            "drivers.json_file.file_name": _get_yaml_field_source(
                "querylog", "drivers.json_file.file_name"
            ),
            "drivers.json_file.schema": _get_yaml_field_source(
                "querylog", "drivers.json_file.schema"
            ),
            "drivers.json_file.on_corrupt": _get_yaml_field_source(
                "querylog", "drivers.json_file.on_corrupt"
            ),
        },
        "logging": {
            "level": _get_yaml_field_source("logging", "level"),
            "format": _get_yaml_field_source("logging", "format"),
            "file_enabled": _get_yaml_field_source("logging", "file_enabled"),
        },
        "database": {
            "connection_name": _get_yaml_field_source("database", "connection_name"),
            "host": _get_yaml_field_source("database", "host"),
            "dsn": _get_yaml_field_source("database", "dsn"),
        },
        "web": {
            "server.port": _get_yaml_field_source("web", "server.port"),
        },
    }
