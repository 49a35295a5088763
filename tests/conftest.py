from __future__ import annotations

import dataclasses
from datetime import datetime
from pathlib import Path
from typing import Any, List, Tuple

import pytest

from dbquerylog.adapters.fs.storage import DiskManager, LocalDisk
from dbquerylog.core.config.loader import Settings
from dbquerylog.core.config.querylog import (
    DriversSettings,
    JsonFileDriverSettings,
    LogFileDriverSettings,
    QueryLogSettings,
    QueueSettings,
)
from dbquerylog.core.time_utils import UTC

ROOT = Path(__file__).resolve().parents[1]
REPO_CONFIGS = ROOT / "configs"

FIXED_NOW = datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC)


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path: Path, monkeypatch):
    # 白名单环境变量与 .env 不应影响测试
    monkeypatch.delenv("QUERYLOG_ENABLED", raising=False)
    monkeypatch.delenv("QUERYLOG_DRIVER", raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


class RecordingDisk(LocalDisk):
    """真实读写 + 记录每次存储操作，便于断言 I/O 次数与顺序"""

    def __init__(self, name: str, root: str | Path) -> None:
        super().__init__(name, root)
        self.calls: List[Tuple[str, Any]] = []

    def exists(self, relative: str) -> bool:
        self.calls.append(("exists", relative))
        return super().exists(relative)

    def get(self, relative: str) -> str:
        self.calls.append(("get", relative))
        return super().get(relative)

    def put(self, relative: str, content: str) -> None:
        self.calls.append(("put", relative))
        super().put(relative, content)

    def append(self, relative: str, content: str) -> None:
        self.calls.append(("append", relative))
        super().append(relative, content)

    def move(self, relative: str, new_relative: str) -> None:
        self.calls.append(("move", (relative, new_relative)))
        super().move(relative, new_relative)

    def path(self, relative: str) -> Path:
        self.calls.append(("path", relative))
        return super().path(relative)


class RecordingDiskManager(DiskManager):
    def __init__(self, root: Path) -> None:
        super().__init__({"local": str(root)}, "local")
        self._disks = {"local": RecordingDisk("local", root)}


@pytest.fixture
def disk_root(tmp_path: Path) -> Path:
    root = tmp_path / "disk"
    root.mkdir()
    return root


@pytest.fixture
def recording_storage(disk_root: Path) -> RecordingDiskManager:
    return RecordingDiskManager(disk_root)


def make_settings(
    disk_root: Path,
    *,
    log_file: dict | None = None,
    json_file: dict | None = None,
    **querylog: Any,
) -> Settings:
    """构建测试用 Settings；disks.local 指向 disk_root，队列默认同步。"""
    base = QueryLogSettings(
        disks={"local": str(disk_root)},
        queue=QueueSettings(mode="sync"),
        drivers=DriversSettings(
            log_file=LogFileDriverSettings(**(log_file or {})),
            json_file=JsonFileDriverSettings(**(json_file or {})),
        ),
    )
    return Settings(querylog=dataclasses.replace(base, **querylog))


@pytest.fixture
def settings_factory(disk_root: Path):
    def _factory(**kwargs: Any) -> Settings:
        return make_settings(disk_root, **kwargs)

    return _factory
