from __future__ import annotations

"""
查询日志驱动（services.drivers）：渲染 QueryRecord 并写入存储盘
- QueryLogDriver：抽象基类，configure → persist 两步调用；persist 只检查 enabled 一个开关
- LogFileDriver：文本行，追加到 {path}/{filename}.log，或交给应用日志（use_app_logs）
- JsonFileDriver：JSON 数组，读改写 {path}/{filename}.json

注意：
- 每个事件使用一个新的驱动实例（见 registry.build_driver_factory），实例不跨事件复用
- 目标路径每条记录重新计算，不做缓存
- JSON 读改写对同一文件加进程内分段锁（不同文件可能共用一把锁）；多进程写同一文件仍可能丢更新（已知限制）
- 无法解析的已有 JSON 文件按 on_corrupt 策略处理：backup（默认）/ discard / fail
"""


import abc
import json
import logging
import re
import threading
from contextlib import nullcontext
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, List, Mapping, Sequence

from dbquerylog.adapters.fs.storage import LocalDisk
from dbquerylog.core.config.querylog import QueryLogSettings
from dbquerylog.core.exceptions import (
    ConfigurationError,
    CorruptLogFileError,
    DriverStateError,
    error_handler,
)
from dbquerylog.core.time_utils import Clock, make_clock
from dbquerylog.core.types import PLACEHOLDERS, QueryRecord, placeholder_name
from dbquerylog.services.filenames import FileNameGenerator
from dbquerylog.services.formatters import MessageFormatter
from dbquerylog.services.paths import PathGenerator
from dbquerylog.utils.logging_ext import (
    EVENT_JSON_CORRUPT,
    EVENT_RECORD_SKIPPED,
    EVENT_RECORD_WRITTEN,
)

logger = logging.getLogger(__name__)

# use_app_logs=true 时查询日志行写入该 logger（DEBUG 级别）
queries_logger = logging.getLogger("dbquerylog.queries")

_PLACEHOLDER_RE = re.compile(":(" + "|".join(PLACEHOLDERS) + "):")

# JsonFileDriver 读改写使用的分段锁数量
LOCK_STRIPES = 64


@dataclass(frozen=True)
class LogDestination:
    """一条记录的落盘位置：存储盘 + 目录 + 文件名（含扩展名）"""

    disk: str
    directory: str
    filename: str

    @property
    def relative_path(self) -> str:
        return f"{self.directory}/{self.filename}" if self.directory else self.filename


class QueryLogDriver(abc.ABC):
    """驱动抽象基类"""

    extension: ClassVar[str] = "log"
    # 格式化器 format() 应返回的类型（解析阶段校验）
    template_type: ClassVar[type] = str

    def __init__(
        self,
        settings: QueryLogSettings,
        file_name_generator: FileNameGenerator,
        path_generator: PathGenerator,
        message_formatter: MessageFormatter,
        disk: LocalDisk,
        *,
        clock: Clock | None = None,
    ) -> None:
        self.settings = settings
        self.file_name_generator = file_name_generator
        self.path_generator = path_generator
        self.message_formatter = message_formatter
        self.disk = disk
        self.clock = clock or make_clock(settings.timezone)
        self._record: QueryRecord | None = None

    @property
    def record(self) -> QueryRecord:
        if self._record is None:
            raise DriverStateError("驱动尚未 configure", context={"driver": self.name})
        return self._record

    @property
    def name(self) -> str:
        return type(self).__name__

    def configure(
        self,
        query_template: str,
        bindings: Sequence[Any] | Mapping[str, Any] | None,
        elapsed_ms: float,
        connection_name: str,
    ) -> QueryRecord:
        """填充本次记录（立即计算 rendered_sql）；每个驱动实例只能调用一次。"""
        if self._record is not None:
            raise DriverStateError("configure 只能调用一次", context={"driver": self.name})
        self._record = QueryRecord.capture(
            query_template,
            bindings,
            elapsed_ms,
            connection_name,
            executed_at=self.clock(),
            datetime_format=self.settings.datetime_format,
        )
        return self._record

    def can_log(self) -> bool:
        return bool(self.settings.enabled)

    # 失败由调度器统一记录（querylog.task.failed），这里只留 DEBUG 级别的上下文
    @error_handler(log_level=logging.DEBUG)
    def persist(self) -> None:
        """检查 enabled 开关后写入；关闭时不做任何 I/O，正常返回。"""
        record = self.record
        if not self.can_log():
            logger.debug(
                "查询日志已关闭，跳过写入",
                extra={"event": EVENT_RECORD_SKIPPED, "extra": {"driver": self.name}},
            )
            return
        self.write(record)

    def destination(self) -> LogDestination:
        """每次调用重新计算目标位置（文件名/目录可能随时间变化）。"""
        return LogDestination(
            disk=self.disk.name,
            directory=self.path_generator.path().strip("/"),
            filename=f"{self.file_name_generator.filename()}.{self.extension}",
        )

    @abc.abstractmethod
    def render(self, record: QueryRecord) -> Any:
        """把记录渲染为待写入内容（文本行或 JSON 对象）"""

    @abc.abstractmethod
    def write(self, record: QueryRecord) -> None:
        """执行具体写入"""

    def _log_written(self, dest: LogDestination | None, record: QueryRecord) -> None:
        logger.debug(
            "查询日志已写入",
            extra={
                "event": EVENT_RECORD_WRITTEN,
                "extra": {
                    "driver": self.name,
                    "disk": dest.disk if dest else None,
                    "path": dest.relative_path if dest else None,
                    "connection": record.connection_name,
                    "elapsed_ms": record.elapsed_ms,
                },
            },
        )


class LogFileDriver(QueryLogDriver):
    extension = "log"

    @property
    def use_app_logs(self) -> bool:
        return self.settings.drivers.log_file.use_app_logs

    def render(self, record: QueryRecord) -> str:
        template = self.message_formatter.format()
        if not isinstance(template, str):
            raise ConfigurationError(
                "文本驱动需要字符串模板", context={"formatter": type(self.message_formatter).__name__}
            )
        values = record.placeholders()
        # 单次替换，已替换内容不再参与匹配
        return _PLACEHOLDER_RE.sub(lambda m: values[m.group(0)], template)

    def write(self, record: QueryRecord) -> None:
        line = self.render(record)
        if self.use_app_logs:
            queries_logger.debug(line)
            self._log_written(None, record)
            return
        dest = self.destination()
        self.disk.append(dest.relative_path, line + "\n")
        self._log_written(dest, record)


def compile_schema(schema: Mapping[str, Any], values: Mapping[str, Any]) -> Dict[str, Any]:
    """递归编译 schema：子映射保留键名继续展开，叶子占位符替换为记录字段值。"""
    compiled: Dict[str, Any] = {}
    for key, value in schema.items():
        if isinstance(value, Mapping):
            compiled[key] = compile_schema(value, values)
            continue
        name = placeholder_name(value)
        if name is None:
            raise ConfigurationError(
                f"schema 叶子不是可识别的占位符: {key}",
                context={"key": key, "value": repr(value)},
            )
        compiled[key] = values[name]
    return compiled


class JsonFileDriver(QueryLogDriver):
    extension = "json"
    template_type = Mapping

    # 固定数量的分段锁：同一路径总落在同一把锁上，锁的数量不随文件数增长
    _locks: ClassVar[tuple[threading.Lock, ...]] = tuple(
        threading.Lock() for _ in range(LOCK_STRIPES)
    )

    @classmethod
    def _lock_for(cls, key: str) -> threading.Lock:
        return cls._locks[hash(key) % len(cls._locks)]

    @property
    def options(self):
        return self.settings.drivers.json_file

    def render(self, record: QueryRecord) -> Dict[str, Any]:
        schema = self.message_formatter.format()
        if not isinstance(schema, Mapping):
            raise ConfigurationError(
                "JSON 驱动需要映射类型的 schema",
                context={"formatter": type(self.message_formatter).__name__},
            )
        return compile_schema(schema, record.fields())

    def write(self, record: QueryRecord) -> None:
        entry = self.render(record)
        dest = self.destination()
        rel = dest.relative_path
        guard = (
            self._lock_for(str(self.disk.path(rel))) if self.options.lock else nullcontext()
        )
        with guard:
            entries = self._load_entries(rel)
            entries.append(entry)
            self.disk.put(
                rel,
                json.dumps(
                    entries, indent=self.options.indent, ensure_ascii=False, default=str
                ),
            )
        self._log_written(dest, record)

    def _load_entries(self, rel: str) -> List[Any]:
        if not self.disk.exists(rel):
            return []
        raw = self.disk.get(rel)
        if not raw.strip():
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            return self._handle_corrupt(rel, str(e))
        if not isinstance(data, list):
            return self._handle_corrupt(rel, f"顶层类型为 {type(data).__name__}，期望数组")
        return data

    def _handle_corrupt(self, rel: str, reason: str) -> List[Any]:
        policy = self.options.on_corrupt
        logger.warning(
            f"JSON 查询日志无法解析，按 {policy} 策略处理: {rel}",
            extra={
                "event": EVENT_JSON_CORRUPT,
                "extra": {
                    "disk": self.disk.name,
                    "path": rel,
                    "policy": policy,
                    "error": reason,
                },
            },
        )
        if policy == "fail":
            raise CorruptLogFileError(
                f"JSON 查询日志无法解析: {rel}",
                context={"disk": self.disk.name, "path": rel, "error": reason},
            )
        if policy == "backup":
            self.disk.move(rel, self._backup_name(rel))
        # discard：保持原有兼容行为，直接以新数组覆盖
        return []

    def _backup_name(self, rel: str) -> str:
        stamp = int(self.clock().timestamp())
        candidate = f"{rel}.corrupt-{stamp}"
        n = 1
        while self.disk.exists(candidate):
            candidate = f"{rel}.corrupt-{stamp}-{n}"
            n += 1
        return candidate
