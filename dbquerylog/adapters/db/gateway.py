from __future__ import annotations

"""
数据库网关（adapters.db.gateway）：建立被监听的 psycopg 连接
- make_dsn：dsn 优先，否则拼接 host/name/user
- connect(settings, listener)：仅对"建立连接"按退避重试，设置语句超时后安装查询监听

注意：语句超时在安装监听之前设置，SET 语句本身不会进入查询日志。
"""

import logging
import time as _time
from typing import Optional

import psycopg

from dbquerylog.adapters.db.cursor import QueryCallback, install_query_listener
from dbquerylog.core.config.loader import Settings
from dbquerylog.core.exceptions import DatabaseConnectionError

logger = logging.getLogger(__name__)


def make_dsn(settings: Settings) -> str:
    """根据配置生成 DSN，例如 "host=localhost dbname=postgres user=postgres"。"""
    db = settings.db
    if db.dsn:
        return db.dsn
    return f"host={db.host} dbname={db.name} user={db.user}"


def _set_statement_timeout(conn: psycopg.Connection, timeout_ms: int) -> None:
    if timeout_ms <= 0:
        return
    try:
        with conn.cursor() as cur:
            # SET 不支持参数化
            cur.execute(f"SET statement_timeout TO '{int(timeout_ms)}ms'")
    except (psycopg.DatabaseError, psycopg.InterfaceError) as e:
        logger.warning(
            "设置语句超时失败，使用默认超时设置",
            extra={
                "event": "db.statement_timeout.set_failed",
                "extra": {"timeout_ms": timeout_ms, "error": str(e)},
            },
        )
        conn.rollback()


def connect(settings: Settings, listener: Optional[QueryCallback] = None) -> psycopg.Connection:
    """
    建立数据库连接并安装查询监听。

    - 连接超时：settings.db.timeouts.connect_timeout_ms
    - 重试：settings.db.retry（max_retries/retry_delay_ms/backoff_multiplier）
    - 全部失败抛出 DatabaseConnectionError
    """
    dsn = make_dsn(settings)
    attempts = max(1, int(settings.db.retry.max_retries))
    delay = max(0.0, float(settings.db.retry.retry_delay_ms) / 1000.0)
    backoff = max(1.0, float(settings.db.retry.backoff_multiplier))

    conn: psycopg.Connection | None = None
    for i in range(attempts):
        try:
            conn = psycopg.connect(
                dsn,
                connect_timeout=max(
                    0, int(settings.db.timeouts.connect_timeout_ms) // 1000
                ),
            )
            break
        except psycopg.Error as e:
            if i < attempts - 1:
                logger.warning(
                    f"数据库连接失败，{delay:.1f}s 后重试 ({i + 1}/{attempts})",
                    extra={
                        "event": "db.connect.retry",
                        "extra": {"attempt": i + 1, "error": str(e)},
                    },
                )
                _time.sleep(delay)
                delay *= backoff
            else:
                raise DatabaseConnectionError(
                    f"无法建立数据库连接: {e}",
                    context={"dsn_preview": dsn[:50] + "...", "attempts": attempts},
                    cause=e,
                ) from e

    assert conn is not None
    _set_statement_timeout(conn, int(settings.db.timeouts.statement_timeout_ms))
    if listener is not None:
        install_query_listener(conn, listener, settings.db.connection_name)
    return conn
