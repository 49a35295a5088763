from __future__ import annotations

"""
核心类型定义（dbquerylog.core.types）
- QueryRecord：一次 SQL 执行事件的瞬时记录（由驱动消费一次，不落库，仅落盘其渲染结果）
- PLACEHOLDERS：模板/JSON schema 中可识别的占位符名称集合

注意：
- rendered_sql 在构造时由 sql_template + bindings 确定性计算，之后不再变化
- 变更字段需同步更新格式化器默认模板与 JSON schema
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Mapping, Sequence

from dbquerylog.core.bindings import substitute_bindings
from dbquerylog.core.time_utils import DEFAULT_DATETIME_FORMAT, UTC, format_datetime

# 占位符名称（固定枚举），模板中写作 :name:
PLACEHOLDERS: tuple[str, ...] = (
    "datetime",
    "query",
    "bindings",
    "time",
    "connection",
    "sql",
)


def placeholder_token(name: str) -> str:
    return f":{name}:"


def placeholder_name(token: Any) -> str | None:
    """':sql:' → 'sql'；非合法占位符返回 None。"""
    if (
        isinstance(token, str)
        and len(token) > 2
        and token.startswith(":")
        and token.endswith(":")
        and token[1:-1] in PLACEHOLDERS
    ):
        return token[1:-1]
    return None


@dataclass(frozen=True)
class QueryRecord:
    sql_template: str
    bindings: list[Any] | dict[str, Any]
    elapsed_ms: float
    connection_name: str
    executed_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    datetime_format: str = DEFAULT_DATETIME_FORMAT
    rendered_sql: str = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "rendered_sql", substitute_bindings(self.sql_template, self.bindings)
        )

    @classmethod
    def capture(
        cls,
        sql_template: str,
        bindings: Sequence[Any] | Mapping[str, Any] | None,
        elapsed_ms: float,
        connection_name: str,
        **kwargs: Any,
    ) -> "QueryRecord":
        """复制调用方传入的参数，避免调用方后续修改影响已捕获的记录。"""
        if isinstance(bindings, Mapping):
            copied: list[Any] | dict[str, Any] = dict(bindings)
        else:
            copied = list(bindings or [])
        return cls(
            sql_template=str(sql_template),
            bindings=copied,
            elapsed_ms=float(elapsed_ms),
            connection_name=str(connection_name),
            **kwargs,
        )

    @property
    def datetime_text(self) -> str:
        return format_datetime(self.executed_at, self.datetime_format)

    def fields(self) -> Dict[str, Any]:
        """JSON 渲染用的原始字段值（bindings 保持列表/字典）。"""
        return {
            "datetime": self.datetime_text,
            "query": self.sql_template,
            "bindings": self.bindings,
            "time": self.elapsed_ms,
            "connection": self.connection_name,
            "sql": self.rendered_sql,
        }

    def placeholders(self) -> Dict[str, str]:
        """文本渲染用的占位符 → 字符串映射（bindings 编码为 JSON 数组字符串）。"""
        values = self.fields()
        return {
            placeholder_token("datetime"): values["datetime"],
            placeholder_token("query"): values["query"],
            placeholder_token("bindings"): json.dumps(
                self.bindings, ensure_ascii=False, default=str
            ),
            placeholder_token("time"): str(self.elapsed_ms),
            placeholder_token("connection"): values["connection"],
            placeholder_token("sql"): values["sql"],
        }
