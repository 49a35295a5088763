from __future__ import annotations

"""
日志适配器（adapters.logging）：应用运行日志的结构化输出
- JsonFormatter/TextFormatter：控制输出格式（默认 JSON）
- init_logging(settings)：初始化全局日志，控制台 + 可选的轮转文件
- setup_structlog()：HTTP 层使用的 structlog 配置（落到标准库 logging）

设计要点：
- 事件命名遵循 querylog.* 前缀（见 dbquerylog.utils.logging_ext）
- 查询日志本身由驱动写入存储盘；这里只管应用自身的运行日志
- use_app_logs=true 时，查询日志行会作为 dbquerylog.queries 的 DEBUG 记录进入这里
"""


import json
import logging
import logging.handlers
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Dict

import structlog

from dbquerylog.core.config.loader import Settings


def _iso_now() -> str:
    return datetime.now(UTC).isoformat(timespec="seconds").replace("+00:00", "Z")


class JsonFormatter(logging.Formatter):
    """JSON 格式化器：用于落盘与控制台回显。
    - 支持自定义时间戳格式与消息最大长度（截断）
    - 字段顺序按 field_order（仅对常见字段尝试排序）
    """

    def __init__(
        self,
        timestamp_format: str | None = None,
        max_message_length: int | None = None,
        field_order: tuple[str, ...] | None = None,
    ) -> None:
        super().__init__()
        self.ts_fmt = timestamp_format
        self.max_len = max(0, int((max_message_length or 0)))
        self.field_order = tuple(field_order or ())

    def _now_str(self) -> str:
        if self.ts_fmt:
            try:
                return datetime.now(UTC).strftime(self.ts_fmt)
            except ValueError:
                pass
        return _iso_now()

    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage()
        if self.max_len and isinstance(msg, str) and len(msg) > self.max_len:
            msg = msg[: self.max_len] + "…"
        payload: Dict[str, Any] = {
            "timestamp": self._now_str(),
            "level": record.levelname,
            "logger": record.name,
            "event": getattr(record, "event", None),
            "message": msg,
        }
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            payload.update(extra)
        if getattr(record, "exc_info", None):
            payload["exc_info"] = self.formatException(record.exc_info)
        if self.field_order:
            ordered: Dict[str, Any] = {}
            for k in self.field_order:
                if k in payload:
                    ordered[k] = payload[k]
            for k, v in payload.items():
                if k not in ordered:
                    ordered[k] = v
            payload = ordered
        return json.dumps(
            payload, ensure_ascii=False, separators=(",", ":"), default=str
        )


class TextFormatter(logging.Formatter):
    def __init__(
        self, timestamp_format: str | None = None, max_message_length: int | None = None
    ) -> None:
        super().__init__()
        self.ts_fmt = timestamp_format
        self.max_len = max(0, int((max_message_length or 0)))

    def format(self, record: logging.LogRecord) -> str:
        ts = _iso_now()
        if self.ts_fmt:
            try:
                ts = datetime.now(UTC).strftime(self.ts_fmt)
            except ValueError:
                pass
        parts = [record.levelname, f"ts={ts}", f"logger={record.name}"]
        event = getattr(record, "event", None)
        if event:
            parts.append(f"event={event}")
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            for k in ("driver", "disk", "path", "connection", "elapsed_ms", "error"):
                if k in extra and extra[k] is not None:
                    parts.append(f"{k}={extra[k]}")
        msg = record.getMessage()
        if self.max_len and isinstance(msg, str) and len(msg) > self.max_len:
            msg = msg[: self.max_len] + "…"
        if msg:
            parts.append(f"msg={msg}")
        return " ".join(parts)


def _make_formatter(settings: Settings, fmt: str) -> logging.Formatter:
    fmt_cfg = settings.logging.formatting
    if fmt == "json":
        return JsonFormatter(
            fmt_cfg.timestamp_format, fmt_cfg.max_message_length, fmt_cfg.field_order
        )
    return TextFormatter(fmt_cfg.timestamp_format, fmt_cfg.max_message_length)


def init_logging(
    settings: Settings,
    *,
    override_format: str | None = None,
    override_level: str | None = None,
    log_dir: Path | None = None,
) -> None:
    """初始化应用运行日志。
    - 控制台：settings.logging.console 为真时输出到 stderr
    - 文件：settings.logging.file_enabled 或显式传入 log_dir 时写 {dir}/app.{ndjson|log}，按大小轮转
    - 重复调用会替换 root 上已有 handler，避免重复输出
    """
    fmt = (override_format or settings.logging.format or "json").lower()
    level_name = (override_level or settings.logging.level or "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    # 清理旧 handler，避免重复添加
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()

    formatter = _make_formatter(settings, fmt)

    if settings.logging.console:
        console = logging.StreamHandler()
        console.setLevel(level)
        console.setFormatter(formatter)
        root.addHandler(console)

    if settings.logging.file_enabled or log_dir is not None:
        target_dir = log_dir or Path(settings.logging.dir)
        target_dir.mkdir(parents=True, exist_ok=True)
        ext = "ndjson" if fmt == "json" else "log"
        rot = settings.logging.rotation
        file_handler = logging.handlers.RotatingFileHandler(
            target_dir / f"app.{ext}",
            maxBytes=int(rot.max_bytes),
            backupCount=int(rot.backup_count),
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        file_handler.setLevel(level)
        root.addHandler(file_handler)


def setup_structlog() -> None:
    """设置 HTTP 层的结构化日志（structlog → 标准库 logging）"""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
