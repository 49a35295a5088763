from __future__ import annotations

"""
文件系统存储适配器（adapters.fs.storage）：按存储盘（disk）组织的相对路径读写
- LocalDisk：以根目录为边界的 exists/get/put/append/move/files 操作
- DiskManager：按配置中的 disks 名称获取 LocalDisk，未知名称抛 ConfigurationError

注意：
- 所有路径均相对于存储盘根目录；绝对路径或越出根目录的路径直接拒绝
- put 先写临时文件再 os.replace，避免写到一半的文件被读取
- 统一 UTF-8 读写；OSError 统一包装为 StorageError 并保留 cause
"""


import logging
import os
import tempfile
from pathlib import Path, PurePosixPath
from typing import Dict, Iterator, Mapping

from dbquerylog.core.exceptions import ConfigurationError, StorageError

logger = logging.getLogger(__name__)


class LocalDisk:
    """本地目录存储盘"""

    def __init__(self, name: str, root: str | Path) -> None:
        self.name = name
        self.root = Path(root).resolve()

    def __repr__(self) -> str:
        return f"LocalDisk(name={self.name!r}, root={str(self.root)!r})"

    def path(self, relative: str) -> Path:
        """把相对路径解析为根目录下的绝对路径；越界则抛 StorageError。"""
        rel = PurePosixPath(str(relative).replace("\\", "/"))
        if rel.is_absolute() or not str(relative).strip():
            raise StorageError(
                f"存储路径必须是相对路径: {relative!r}",
                context={"disk": self.name, "path": str(relative)},
            )
        full = (self.root / Path(*rel.parts)).resolve()
        if full != self.root and self.root not in full.parents:
            raise StorageError(
                f"存储路径越出根目录: {relative!r}",
                context={"disk": self.name, "path": str(relative)},
            )
        return full

    def _wrap(self, op: str, relative: str, e: OSError) -> StorageError:
        return StorageError(
            f"存储操作失败 {op} {relative}: {e}",
            context={"disk": self.name, "path": str(relative), "op": op},
            cause=e,
        )

    def exists(self, relative: str) -> bool:
        return self.path(relative).is_file()

    def get(self, relative: str) -> str:
        try:
            return self.path(relative).read_text(encoding="utf-8")
        except OSError as e:
            raise self._wrap("get", relative, e) from e

    def put(self, relative: str, content: str) -> None:
        target = self.path(relative)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=str(target.parent), prefix=f".{target.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                    f.write(content)
                os.replace(tmp_name, target)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise self._wrap("put", relative, e) from e

    def append(self, relative: str, content: str) -> None:
        target = self.path(relative)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with target.open("a", encoding="utf-8", newline="") as f:
                f.write(content)
        except OSError as e:
            raise self._wrap("append", relative, e) from e

    def move(self, relative: str, new_relative: str) -> None:
        source = self.path(relative)
        target = self.path(new_relative)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            os.replace(source, target)
        except OSError as e:
            raise self._wrap("move", relative, e) from e

    def files(self, directory: str = ".") -> Iterator[str]:
        """列出目录下（不递归）的文件相对路径，按名称排序；目录不存在时为空。"""
        base = self.root if directory in ("", ".") else self.path(directory)
        if not base.is_dir():
            return iter(())
        return iter(
            sorted(
                p.relative_to(self.root).as_posix()
                for p in base.iterdir()
                if p.is_file() and not p.name.startswith(".")
            )
        )


class DiskManager:
    """存储盘管理：disks 配置（名称 → 根目录）到 LocalDisk 的映射"""

    def __init__(self, disks: Mapping[str, str], default: str) -> None:
        if default not in disks:
            raise ConfigurationError(
                f"默认存储盘未定义: {default}",
                context={"default_disk": default, "disks": sorted(disks)},
            )
        self.default = default
        self._disks: Dict[str, LocalDisk] = {
            name: LocalDisk(name, root) for name, root in disks.items()
        }

    def disk(self, name: str | None = None) -> LocalDisk:
        key = name or self.default
        try:
            return self._disks[key]
        except KeyError:
            raise ConfigurationError(
                f"未知存储盘: {key}",
                context={"disk": key, "disks": sorted(self._disks)},
            ) from None

    def names(self) -> list[str]:
        return sorted(self._disks)
