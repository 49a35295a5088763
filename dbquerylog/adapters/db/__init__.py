"""
数据库适配器模块初始化（dbquerylog.adapters.db）

使用方式：
    from dbquerylog.adapters.db import connect
    from dbquerylog.services.listener import QueryListener

    listener = QueryListener.from_settings(settings)
    with connect(settings, listener) as conn:
        conn.execute("SELECT 1")   # 执行成功后异步写入查询日志
"""

from __future__ import annotations

from dbquerylog.adapters.db.cursor import (
    QueryLoggingCursor,
    install_query_listener,
    make_cursor_factory,
)
from dbquerylog.adapters.db.gateway import connect, make_dsn

__all__ = [
    "QueryLoggingCursor",
    "install_query_listener",
    "make_cursor_factory",
    "connect",
    "make_dsn",
]
