"""
配置验证模块（dbquerylog.core.config.validation）

本模块对 YAML 原始配置做字段验证，确保启动阶段即可发现配置错误（fail fast）。

核心功能：
- 配置字段类型验证
- 配置值范围与枚举验证
- 存储盘引用关系验证

说明：文件名/路径生成器与格式化器的键名由注册表在解析阶段校验
（见 dbquerylog.services.registry），这里只校验配置本身的结构。
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List

logger = logging.getLogger(__name__)

DRIVER_KEYS = ("log_file", "json_file")
QUEUE_MODES = ("thread", "sync")
ON_CORRUPT_POLICIES = ("backup", "discard", "fail")
LOG_FORMATS = ("json", "text")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class ValidationError:
    """
    配置验证错误

    属性：
        field: 错误字段路径
        value: 错误值
        message: 错误消息
        severity: 错误严重程度 ("error" | "warning")
    """

    field: str
    value: Any
    message: str
    severity: str = "error"


@dataclass
class ValidationResult:
    is_valid: bool
    errors: List[ValidationError]
    warnings: List[ValidationError]

    def add_error(self, field: str, value: Any, message: str) -> None:
        """添加错误"""
        self.errors.append(ValidationError(field, value, message, "error"))
        self.is_valid = False

    def add_warning(self, field: str, value: Any, message: str) -> None:
        """添加警告"""
        self.warnings.append(ValidationError(field, value, message, "warning"))

    def merge(self, other: "ValidationResult") -> None:
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        if not other.is_valid:
            self.is_valid = False

    def has_issues(self) -> bool:
        """是否存在问题（错误或警告）"""
        return len(self.errors) > 0 or len(self.warnings) > 0


def _is_bool_like(value: Any) -> bool:
    return isinstance(value, bool) or (
        isinstance(value, str)
        and value.strip().lower() in ("1", "0", "true", "false", "yes", "no", "on", "off")
    )


class ConfigValidator:
    """
    配置验证器

    提供各配置文件的验证方法。
    """

    @staticmethod
    def validate_querylog_config(cfg: Dict[str, Any]) -> ValidationResult:
        """
        验证查询日志配置（querylog.yaml）

        参数：
            cfg: querylog.yaml 解析后的字典

        返回：
            ValidationResult: 验证结果
        """
        result = ValidationResult(True, [], [])

        if "enabled" in cfg and not _is_bool_like(cfg["enabled"]):
            result.add_error("querylog.enabled", cfg["enabled"], "enabled 必须是布尔值")

        driver = cfg.get("driver", "log_file")
        if driver not in DRIVER_KEYS:
            result.add_error(
                "querylog.driver", driver, f"未知驱动，可选值: {', '.join(DRIVER_KEYS)}"
            )

        disks = cfg.get("disks", {"local": "storage/app"})
        if not isinstance(disks, dict) or not disks:
            result.add_error("querylog.disks", disks, "disks 必须是非空映射（名称 → 根目录）")
            disks = {}
        else:
            for name, root in disks.items():
                if not isinstance(root, str) or not root.strip():
                    result.add_error(
                        f"querylog.disks.{name}", root, "存储盘根目录必须是非空字符串"
                    )

        default_disk = cfg.get("default_disk", "local")
        if disks and default_disk not in disks:
            result.add_error(
                "querylog.default_disk", default_disk, "default_disk 未在 disks 中定义"
            )

        queue = cfg.get("queue", {}) or {}
        if not isinstance(queue, dict):
            result.add_error("querylog.queue", queue, "queue 必须是映射")
        else:
            mode = queue.get("mode", "thread")
            if mode not in QUEUE_MODES:
                result.add_error(
                    "querylog.queue.mode", mode, f"可选值: {', '.join(QUEUE_MODES)}"
                )
            workers = queue.get("max_workers", 1)
            if not isinstance(workers, int) or isinstance(workers, bool) or workers < 1:
                result.add_error(
                    "querylog.queue.max_workers", workers, "max_workers 必须是正整数"
                )

        drivers = cfg.get("drivers", {}) or {}
        if not isinstance(drivers, dict):
            result.add_error("querylog.drivers", drivers, "drivers 必须是映射")
            return result

        for key, section in drivers.items():
            if key not in DRIVER_KEYS:
                result.add_warning(
                    f"querylog.drivers.{key}", key, "未知驱动配置段，将被忽略"
                )
                continue
            if not isinstance(section, dict):
                result.add_error(f"querylog.drivers.{key}", section, "驱动配置必须是映射")
                continue
            disk = section.get("disk")
            if disk is not None and disks and disk not in disks:
                result.add_error(
                    f"querylog.drivers.{key}.disk", disk, "disk 未在 disks 中定义"
                )
            for name in ("file_name", "path", "message_formatter", "path_segment"):
                if name in section and not isinstance(section[name], str):
                    result.add_error(
                        f"querylog.drivers.{key}.{name}", section[name], "必须是字符串"
                    )

        log_file = drivers.get("log_file", {}) or {}
        if isinstance(log_file, dict):
            template = log_file.get("template")
            if template is not None and not isinstance(template, str):
                result.add_error(
                    "querylog.drivers.log_file.template", template, "template 必须是字符串"
                )

        json_file = drivers.get("json_file", {}) or {}
        if isinstance(json_file, dict):
            policy = json_file.get("on_corrupt", "backup")
            if policy not in ON_CORRUPT_POLICIES:
                result.add_error(
                    "querylog.drivers.json_file.on_corrupt",
                    policy,
                    f"可选值: {', '.join(ON_CORRUPT_POLICIES)}",
                )
            elif policy == "discard":
                result.add_warning(
                    "querylog.drivers.json_file.on_corrupt",
                    policy,
                    "discard 会静默丢弃无法解析的历史日志，仅建议用于兼容场景",
                )
            indent = json_file.get("indent", 4)
            if not isinstance(indent, int) or isinstance(indent, bool) or indent < 0:
                result.add_error(
                    "querylog.drivers.json_file.indent", indent, "indent 必须是非负整数"
                )
            schema = json_file.get("schema")
            if schema is not None and not isinstance(schema, dict):
                result.add_error(
                    "querylog.drivers.json_file.schema", schema, "schema 必须是映射"
                )

        return result

    @staticmethod
    def validate_logging_config(cfg: Dict[str, Any]) -> ValidationResult:
        """验证运行日志配置（logging.yaml）"""
        result = ValidationResult(True, [], [])

        level = str(cfg.get("level", "INFO")).upper()
        if level not in LOG_LEVELS:
            result.add_error("logging.level", level, f"可选值: {', '.join(LOG_LEVELS)}")

        fmt = str(cfg.get("format", "json")).lower()
        if fmt not in LOG_FORMATS:
            result.add_error("logging.format", fmt, f"可选值: {', '.join(LOG_FORMATS)}")

        rotation = cfg.get("rotation", {}) or {}
        if isinstance(rotation, dict):
            max_bytes = rotation.get("max_bytes", 1)
            if not isinstance(max_bytes, int) or max_bytes <= 0:
                result.add_error(
                    "logging.rotation.max_bytes", max_bytes, "max_bytes 必须是正整数"
                )
        return result

    @staticmethod
    def validate_web_config(cfg: Dict[str, Any]) -> ValidationResult:
        """验证 Web 服务配置（web.yaml）"""
        result = ValidationResult(True, [], [])
        server = cfg.get("server", {}) or {}
        port = server.get("port", 8000)
        if not isinstance(port, int) or not (1 <= port <= 65535):
            result.add_error("web.server.port", port, "端口必须是 1~65535 之间的整数")
        return result

    @staticmethod
    def validate_complete_config(data: Dict[str, Dict[str, Any]]) -> ValidationResult:
        """验证完整配置（按文件分段）"""
        result = ValidationResult(True, [], [])
        result.merge(ConfigValidator.validate_querylog_config(data.get("querylog", {})))
        result.merge(ConfigValidator.validate_logging_config(data.get("logging", {})))
        result.merge(ConfigValidator.validate_web_config(data.get("web", {})))
        return result


def log_validation_result(result: ValidationResult, log: logging.Logger) -> None:
    """把验证结果逐条写入日志。"""
    for err in result.errors:
        log.error(
            f"配置错误 {err.field}: {err.message}",
            extra={
                "event": "config.validation.error",
                "extra": {"field": err.field, "value": repr(err.value)},
            },
        )
    for warn in result.warnings:
        log.warning(
            f"配置警告 {warn.field}: {warn.message}",
            extra={
                "event": "config.validation.warning",
                "extra": {"field": warn.field, "value": repr(warn.value)},
            },
        )
