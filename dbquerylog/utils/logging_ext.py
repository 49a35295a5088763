"""
结构化日志扩展：事件名常量 + 事件日志器
- querylog.query.captured：监听器捕获到一次 SQL 执行
- querylog.record.written / skipped：驱动落盘成功 / 因开关关闭跳过
- querylog.json.corrupt：已有 JSON 日志无法解析
- querylog.task.failed / dispatch.rejected：异步任务失败 / 提交被拒绝

说明：业务模块统一通过 logger.xxx(msg, extra={"event": ..., "extra": {...}}) 输出，
JsonFormatter 会把 extra 字段平铺进 JSON 行。
"""

from __future__ import annotations

import logging
import sys
from typing import Any, Optional

# 事件名常量（集中管理，避免魔法字符串散落各处）
EVENT_QUERY_CAPTURED = "querylog.query.captured"
EVENT_RECORD_WRITTEN = "querylog.record.written"
EVENT_RECORD_SKIPPED = "querylog.record.skipped"
EVENT_JSON_CORRUPT = "querylog.json.corrupt"
EVENT_TASK_FAILED = "querylog.task.failed"
EVENT_DISPATCH_REJECTED = "querylog.dispatch.rejected"
EVENT_LISTENER_ERROR = "querylog.listener.error"
EVENT_DRIVER_RESOLVED = "querylog.driver.resolved"


class EventLogger:
    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger("dbquerylog")

    def debug(self, event: str, **fields: Any) -> None:
        self.logger.debug(event, extra={"event": event, "extra": fields})

    def info(self, event: str, **fields: Any) -> None:
        self.logger.info(event, extra={"event": event, "extra": fields})

    def warning(self, event: str, **fields: Any) -> None:
        self.logger.warning(event, extra={"event": event, "extra": fields})

    def error(self, event: str, **fields: Any) -> None:
        self.logger.error(event, extra={"event": event, "extra": fields})


def setup_basic_json_logging(level: int = logging.INFO) -> None:
    """最小 JSON 控制台日志（CLI 未初始化完整日志时使用）。"""
    from dbquerylog.adapters.logging.init import JsonFormatter

    root = logging.getLogger()
    root.setLevel(level)
    # 不要覆盖已有 handlers（兼容 pytest caplog）
    for h in root.handlers:
        if isinstance(h, logging.StreamHandler) and isinstance(
            getattr(h, "formatter", None), JsonFormatter
        ):
            return
    handler = logging.StreamHandler(stream=sys.stderr)
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)
