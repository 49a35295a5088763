from __future__ import annotations

"""
psycopg 游标钩子（adapters.db.cursor）：在 execute 成功后通知查询监听器
- QueryLoggingCursor：psycopg.Cursor 子类，计时 execute 并回调 listener(sql, params, elapsed_ms, connection_name)
- make_cursor_factory(listener, connection_name)：生成绑定了监听器与连接名的游标类
- install_query_listener(conn, listener, connection_name)：设置连接的 cursor_factory

注意：
- 仅在执行成功后通知；执行失败的异常原样抛给宿主
- sql.Composable 通过 as_string(连接) 渲染；bytes 按 UTF-8 解码
- executemany 不做记录
"""

import logging
import time
from typing import Any, Callable, ClassVar, Optional

import psycopg
from psycopg import sql as pg_sql

logger = logging.getLogger(__name__)

QueryCallback = Callable[[str, Any, float, str], None]


class QueryLoggingCursor(psycopg.Cursor):
    listener: ClassVar[Optional[QueryCallback]] = None
    connection_name: ClassVar[str] = "default"

    def _query_text(self, query: Any) -> str:
        if isinstance(query, pg_sql.Composable):
            return query.as_string(self.connection)
        if isinstance(query, (bytes, bytearray, memoryview)):
            return bytes(query).decode("utf-8", errors="replace")
        return str(query)

    def execute(self, query, params=None, **kwargs):
        started = time.perf_counter()
        result = super().execute(query, params, **kwargs)
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 3)
        listener = type(self).listener
        if listener is not None:
            listener(self._query_text(query), params, elapsed_ms, type(self).connection_name)
        return result


def make_cursor_factory(listener: QueryCallback, connection_name: str) -> type[QueryLoggingCursor]:
    return type(
        "QueryLoggingCursor",
        (QueryLoggingCursor,),
        {"listener": staticmethod(listener), "connection_name": connection_name},
    )


def install_query_listener(
    conn: psycopg.Connection, listener: QueryCallback, connection_name: str = "default"
) -> psycopg.Connection:
    """为连接安装查询监听；之后 conn.cursor()/conn.execute() 都会被记录。"""
    conn.cursor_factory = make_cursor_factory(listener, connection_name)
    logger.debug(
        f"已安装查询监听: {connection_name}",
        extra={"event": "db.listener.installed", "extra": {"connection": connection_name}},
    )
    return conn
