"""
统一异常定义和错误处理机制（dbquerylog.core.exceptions）

本模块定义了项目中使用的标准异常类型和错误处理装饰器，确保：
- 异常信息结构化和标准化
- 错误处理逻辑统一化
- 日志记录的一致性

使用方式：
1. 业务异常继承对应的基础异常类
2. 使用 @error_handler 装饰器包装关键函数（如 driver.persist）
3. 在边界层（CLI/API/调度器）进行统一异常捕获和处理
"""

from __future__ import annotations

import logging
import time
from functools import wraps
from typing import Any, Callable, Dict, Optional, TypeVar

# 类型变量定义
F = TypeVar("F", bound=Callable[..., Any])

logger = logging.getLogger(__name__)


class BaseAppException(Exception):
    """
    应用程序基础异常类

    所有业务异常都应该继承此类，提供：
    - 结构化的错误信息
    - 错误代码支持
    - 上下文信息记录
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.context = context or {}
        self.cause = cause
        self.timestamp = time.time()

    def to_dict(self) -> Dict[str, Any]:
        """将异常信息转换为字典格式，便于日志记录和API返回"""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp,
            "cause": str(self.cause) if self.cause else None,
        }


class ConfigurationError(BaseAppException):
    """配置相关错误（未知驱动/生成器/格式化器、非法 schema、未知 disk 等）"""
    pass


class StorageError(BaseAppException):
    """存储读写错误（权限不足、磁盘已满、路径非法）"""
    pass


class CorruptLogFileError(StorageError):
    """已存在的 JSON 日志文件无法解析为数组"""
    pass


class DriverStateError(BaseAppException):
    """驱动调用顺序错误：configure 必须且只能在 persist 之前调用一次"""
    pass


class DatabaseError(BaseAppException):
    """数据库操作错误"""
    pass


class DatabaseConnectionError(DatabaseError):
    """数据库连接错误"""
    pass


def error_handler(
    logger_name: Optional[str] = None,
    log_level: int = logging.ERROR,
    reraise: bool = True,
    context_fields: Optional[list[str]] = None,
) -> Callable[[F], F]:
    """
    统一错误处理装饰器

    功能：
    - 自动记录异常信息到日志
    - 提供结构化的上下文信息
    - 未预期异常包装为 BaseAppException 后重新抛出

    参数：
        logger_name: 自定义日志记录器名称，默认使用被装饰函数的模块名
        log_level: 日志级别，默认为 ERROR
        reraise: 是否重新抛出异常，默认为 True
        context_fields: 从函数参数中提取的上下文字段列表

    使用示例：
        @error_handler(context_fields=["settings"])
        def build_driver_factory(settings: Settings) -> DriverFactory:
            ...
    """

    def decorator(func: F) -> F:
        func_logger = logging.getLogger(logger_name or func.__module__)

        @wraps(func)
        def wrapper(*args, **kwargs):
            # 构建上下文信息
            context: Dict[str, Any] = {
                "function": func.__name__,
                "module": func.__module__,
            }

            # 提取指定的上下文字段
            if context_fields:
                import inspect

                sig = inspect.signature(func)
                bound_args = sig.bind_partial(*args, **kwargs)
                bound_args.apply_defaults()

                for field in context_fields:
                    if field in bound_args.arguments:
                        context[field] = bound_args.arguments[field]

            try:
                return func(*args, **kwargs)
            except BaseAppException as e:
                # 应用程序异常，已经结构化，直接记录
                context.update(e.context)
                func_logger.log(
                    log_level,
                    f"应用异常: {e.message}",
                    extra={"event": "app.error", "extra": {**context, **e.to_dict()}},
                    exc_info=log_level >= logging.ERROR,
                )
                if reraise:
                    raise
            except Exception as e:
                # 未预期的异常，包装为应用异常
                func_logger.log(
                    log_level,
                    f"未预期异常: {str(e)}",
                    extra={
                        "event": "app.unexpected_error",
                        "extra": {
                            **context,
                            "error_type": type(e).__name__,
                            "error_message": str(e),
                        },
                    },
                    exc_info=True,
                )
                if reraise:
                    raise BaseAppException(
                        f"函数 {func.__name__} 执行失败: {str(e)}",
                        error_code="UNEXPECTED_ERROR",
                        context=context,
                        cause=e,
                    ) from e

        return wrapper  # type: ignore

    return decorator
