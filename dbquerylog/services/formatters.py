from __future__ import annotations

"""
消息格式化器（services.formatters）
- log  → 单行文本模板，占位符写作 :name:
- json → 嵌套映射 schema，叶子值为 :name: 占位符；可重命名、重排、省略、嵌套字段

可识别的占位符：datetime / query / bindings / time / connection / sql
"""

import copy
from typing import Any, Mapping, Protocol

from dbquerylog.core.exceptions import ConfigurationError
from dbquerylog.core.types import PLACEHOLDERS, placeholder_name, placeholder_token

DEFAULT_LOG_TEMPLATE = (
    "[:datetime:] - [query = :query:] - [bindings = :bindings:] - "
    "[time = :time: ms] - [connection = :connection:] - [sql = :sql:]"
)

DEFAULT_JSON_SCHEMA: dict[str, Any] = {
    name: placeholder_token(name) for name in PLACEHOLDERS
}


class MessageFormatter(Protocol):
    def format(self) -> str | Mapping[str, Any]: ...


def validate_schema(schema: Any, _path: str = "schema") -> None:
    """校验 JSON schema：必须是映射，叶子必须是可识别的占位符字符串。"""
    if not isinstance(schema, Mapping) or not schema:
        raise ConfigurationError(
            f"{_path} 必须是非空映射", context={"path": _path, "value": repr(schema)}
        )
    for key, value in schema.items():
        child = f"{_path}.{key}"
        if isinstance(value, Mapping):
            validate_schema(value, child)
        elif placeholder_name(value) is None:
            raise ConfigurationError(
                f"{child} 的值必须是占位符之一: "
                + ", ".join(placeholder_token(p) for p in PLACEHOLDERS),
                context={"path": child, "value": repr(value)},
            )


class LogMessageFormatter:
    def __init__(self, template: str | None = None) -> None:
        if template is not None and not isinstance(template, str):
            raise ConfigurationError("文本模板必须是字符串", context={"template": repr(template)})
        self.template = template or DEFAULT_LOG_TEMPLATE

    def format(self) -> str:
        return self.template


class JsonMessageFormatter:
    def __init__(self, schema: Mapping[str, Any] | None = None) -> None:
        if schema is not None:
            validate_schema(schema)
        self.schema = copy.deepcopy(dict(schema)) if schema else dict(DEFAULT_JSON_SCHEMA)

    def format(self) -> dict[str, Any]:
        # 返回副本，调用方修改不影响后续渲染
        return copy.deepcopy(self.schema)
