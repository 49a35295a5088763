from __future__ import annotations

"""
查询监听器（services.listener）：把每次 SQL 执行事件转换为一次异步落盘任务
1) 由驱动工厂创建新驱动
2) 立即 configure（复制 bindings，事件时间在此刻确定）
3) 把 driver.persist 交给调度器

监听器不向宿主抛出任何异常：configure 失败记录日志后丢弃该事件。
"""

import logging
from typing import Any, Mapping, Sequence

from dbquerylog.core.config.loader import Settings
from dbquerylog.services.dispatch import Dispatcher, build_dispatcher
from dbquerylog.services.registry import DriverFactory, build_driver_factory
from dbquerylog.utils.logging_ext import EVENT_LISTENER_ERROR, EVENT_QUERY_CAPTURED

logger = logging.getLogger(__name__)


class QueryListener:
    def __init__(self, driver_factory: DriverFactory, dispatcher: Dispatcher) -> None:
        self.driver_factory = driver_factory
        self.dispatcher = dispatcher

    @classmethod
    def from_settings(cls, settings: Settings, **factory_kwargs: Any) -> "QueryListener":
        """按配置构建驱动工厂与调度器；配置错误在此处抛出 ConfigurationError。"""
        return cls(build_driver_factory(settings, **factory_kwargs), build_dispatcher(settings))

    def handle(
        self,
        sql: str,
        bindings: Sequence[Any] | Mapping[str, Any] | None,
        elapsed_ms: float,
        connection_name: str,
    ) -> None:
        try:
            driver = self.driver_factory()
            driver.configure(sql, bindings, elapsed_ms, connection_name)
        except Exception as e:
            logger.error(
                f"查询事件处理失败，已丢弃: {e}",
                extra={
                    "event": EVENT_LISTENER_ERROR,
                    "extra": {"connection": connection_name, "error": str(e)},
                },
                exc_info=True,
            )
            return
        logger.debug(
            "捕获查询事件",
            extra={
                "event": EVENT_QUERY_CAPTURED,
                "extra": {"connection": connection_name, "elapsed_ms": elapsed_ms},
            },
        )
        self.dispatcher.submit(driver.persist)

    __call__ = handle

    def shutdown(self, wait: bool = True) -> None:
        self.dispatcher.shutdown(wait=wait)
