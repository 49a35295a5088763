from __future__ import annotations

"""
异步调度（services.dispatch）：把 driver.persist 从查询执行路径上移走
- ThreadPoolDispatcher：基于 ThreadPoolExecutor 的 fire-and-forget 调度
- SyncDispatcher：当前线程内执行（CLI/测试）
- build_dispatcher(settings)：按 queue.mode 选择

约定：submit 永不向调用方抛异常；任务失败与提交被拒绝都只记录日志。
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Protocol

from dbquerylog.core.config.loader import Settings
from dbquerylog.core.exceptions import BaseAppException, ConfigurationError
from dbquerylog.utils.logging_ext import EVENT_DISPATCH_REJECTED, EVENT_TASK_FAILED

logger = logging.getLogger(__name__)

Task = Callable[[], object]


class Dispatcher(Protocol):
    def submit(self, task: Task) -> None: ...

    def shutdown(self, wait: bool = True) -> None: ...


def _task_name(task: Task) -> str:
    return getattr(task, "__qualname__", None) or repr(task)


def _log_task_failure(task: Task, exc: BaseException) -> None:
    fields = {"task": _task_name(task), "error_type": type(exc).__name__, "error": str(exc)}
    if isinstance(exc, BaseAppException):
        fields["error_code"] = exc.error_code
        fields["context"] = exc.context
    logger.error(
        f"查询日志任务失败: {exc}",
        extra={"event": EVENT_TASK_FAILED, "extra": fields},
        exc_info=(type(exc), exc, exc.__traceback__),
    )


class SyncDispatcher:
    """同步调度：任务在 submit 内执行完毕，失败同样只记录日志。"""

    def submit(self, task: Task) -> None:
        try:
            task()
        except Exception as e:
            _log_task_failure(task, e)

    def shutdown(self, wait: bool = True) -> None:
        return None


class ThreadPoolDispatcher:
    def __init__(self, max_workers: int = 1, thread_name_prefix: str = "querylog") -> None:
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, int(max_workers)), thread_name_prefix=thread_name_prefix
        )

    def submit(self, task: Task) -> None:
        try:
            future = self._executor.submit(task)
        except RuntimeError as e:
            # 已 shutdown 的执行器拒绝新任务
            logger.warning(
                f"调度器已关闭，丢弃查询日志任务: {_task_name(task)}",
                extra={
                    "event": EVENT_DISPATCH_REJECTED,
                    "extra": {"task": _task_name(task), "error": str(e)},
                },
            )
            return

        def _done(f: Future) -> None:
            if f.cancelled():
                return
            exc = f.exception()
            if exc is not None:
                _log_task_failure(task, exc)

        future.add_done_callback(_done)

    def shutdown(self, wait: bool = True) -> None:
        """等待已提交任务完成（wait=True）后关闭执行器；重复调用无副作用。"""
        self._executor.shutdown(wait=wait)


def build_dispatcher(settings: Settings) -> Dispatcher:
    queue = settings.querylog.queue
    if queue.mode == "sync":
        return SyncDispatcher()
    if queue.mode == "thread":
        return ThreadPoolDispatcher(queue.max_workers, queue.thread_name_prefix)
    raise ConfigurationError(f"未知队列模式: {queue.mode}", context={"mode": queue.mode})
