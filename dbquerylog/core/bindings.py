from __future__ import annotations

"""
绑定参数回填（dbquerylog.core.bindings）
- substitute_bindings：把绑定参数按占位符顺序回填进 SQL 文本，仅用于日志展示
- quote_value：单个参数值的 SQL 字面量表示

支持的占位符（每条语句只按一种风格解析）：
- psycopg 风格：%s / %b / %t 位置参数，%(name)s / %(name)b / %(name)t 命名参数
  （绑定参数需为 Mapping），%% 还原为字面量 %；此时 ? 是普通字符（如 jsonb 的 ? 运算符）
- qmark 风格：? 位置参数，?? 视为转义的字面量 ?；SQL 中没有 psycopg 占位符时使用

注意：
- 单引号字符串字面量中的占位符保持原样
- 绑定参数不足时保留剩余占位符，不抛错（展示用途，不用于执行）
"""

import re
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Mapping, Sequence

_LITERAL = r"'(?:[^']|'')*'"  # 单引号字面量（'' 为转义）

_PYFORMAT_TOKEN_RE = re.compile(
    _LITERAL + r"|%%" r"|%\((?P<name>[A-Za-z_][A-Za-z0-9_]*)\)[sbt]" r"|%[sbt]"
)
_QMARK_TOKEN_RE = re.compile(_LITERAL + r"|\?\?" r"|\?")
_PYFORMAT_RE = re.compile(r"(?<!%)%(?:[sbt]|\([A-Za-z_][A-Za-z0-9_]*\)[sbt])")


def _quote_text(text: str) -> str:
    return "'" + text.replace("'", "''") + "'"


def quote_value(value: Any) -> str:
    """把单个绑定值转换为可读的 SQL 字面量。
    - None → null；bool → true/false（需先于 int 判断）
    - 数值（int/float/Decimal）原样输出
    - bytes → '\\x<hex>'（PostgreSQL bytea 十六进制写法）
    - 日期时间 → 带引号的 ISO 文本（日期与时间之间用空格）
    - 其他类型 → str() 后加单引号，内部单引号加倍转义
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "'\\x" + bytes(value).hex() + "'"
    if isinstance(value, datetime):
        return _quote_text(value.isoformat(sep=" "))
    if isinstance(value, (date, time)):
        return _quote_text(value.isoformat())
    return _quote_text(str(value))


def substitute_bindings(
    sql: str, bindings: Sequence[Any] | Mapping[str, Any] | None
) -> str:
    """回填绑定参数，返回展示用 SQL。

    - sql: 原始 SQL（含占位符）
    - bindings: 位置参数序列，或命名参数映射（用于 %(name)s）
    - 返回值：占位符被 quote_value 结果替换后的 SQL
    """
    if isinstance(bindings, Mapping):
        positional: list[Any] = []
        named: Mapping[str, Any] = bindings
    else:
        positional = list(bindings or [])
        named = {}

    pyformat = bool(_PYFORMAT_RE.search(sql))
    index = 0

    def _replace(m: re.Match[str]) -> str:
        nonlocal index
        token = m.group(0)
        if token.startswith("'"):
            return token
        if token == "%%":
            return "%"
        if token == "??":
            return "?"
        name = m.groupdict().get("name")
        if name is not None:
            return quote_value(named[name]) if name in named else token
        # 位置占位符：?，或 %s / %b / %t
        if index < len(positional):
            value = positional[index]
            index += 1
            return quote_value(value)
        return token

    token_re = _PYFORMAT_TOKEN_RE if pyformat else _QMARK_TOKEN_RE
    return token_re.sub(_replace, sql)
