from __future__ import annotations

import json

import pytest

from dbquerylog.adapters.fs.reader import list_log_files, read_log_entries
from dbquerylog.adapters.fs.storage import DiskManager, LocalDisk
from dbquerylog.core.exceptions import ConfigurationError, CorruptLogFileError, StorageError


def test_put_get_append_move(tmp_path):
    disk = LocalDisk("local", tmp_path)
    disk.put("a/b/file.json", "[]")
    assert disk.exists("a/b/file.json")
    assert disk.get("a/b/file.json") == "[]"

    disk.append("a/log.log", "one\n")
    disk.append("a/log.log", "two\n")
    assert (tmp_path / "a" / "log.log").read_text(encoding="utf-8") == "one\ntwo\n"

    disk.move("a/b/file.json", "a/b/file.json.bak")
    assert not disk.exists("a/b/file.json")
    assert disk.exists("a/b/file.json.bak")


def test_put_overwrites_without_leaving_temp_files(tmp_path):
    disk = LocalDisk("local", tmp_path)
    disk.put("x.json", "1")
    disk.put("x.json", "2")
    assert disk.get("x.json") == "2"
    assert [p.name for p in tmp_path.iterdir()] == ["x.json"]


@pytest.mark.parametrize("bad", ["/etc/passwd", "../outside.log", "a/../../x", ""])
def test_path_refuses_escape(tmp_path, bad):
    disk = LocalDisk("local", tmp_path / "root")
    with pytest.raises(StorageError):
        disk.path(bad)


def test_get_missing_file_wraps_oserror(tmp_path):
    disk = LocalDisk("local", tmp_path)
    with pytest.raises(StorageError) as excinfo:
        disk.get("missing.log")
    assert isinstance(excinfo.value.__cause__, OSError)


def test_files_lists_sorted_and_skips_hidden(tmp_path):
    disk = LocalDisk("local", tmp_path)
    disk.put("q/2024-01-02.log", "")
    disk.put("q/2024-01-01.log", "")
    disk.put("q/.hidden", "")
    assert list(disk.files("q")) == ["q/2024-01-01.log", "q/2024-01-02.log"]
    assert list(disk.files("nope")) == []


def test_disk_manager(tmp_path):
    manager = DiskManager({"local": str(tmp_path), "audit": str(tmp_path / "audit")}, "local")
    assert manager.disk().name == "local"
    assert manager.disk("audit").root == (tmp_path / "audit").resolve()
    assert manager.names() == ["audit", "local"]
    with pytest.raises(ConfigurationError):
        manager.disk("s3")
    with pytest.raises(ConfigurationError):
        DiskManager({"local": str(tmp_path)}, "missing")


def test_reader_lists_only_log_files(tmp_path):
    disk = LocalDisk("local", tmp_path)
    disk.put("q/2024-01-01.log", "a\n")
    disk.put("q/2024-01-01.json", "[]")
    disk.put("q/2024-01-01.json.corrupt-1700000000", "{")
    infos = list_log_files(disk, "q")
    assert [(i.path, i.format) for i in infos] == [
        ("q/2024-01-01.json", "json"),
        ("q/2024-01-01.log", "log"),
    ]
    assert infos[1].size_bytes == 2


def test_reader_entries(tmp_path):
    disk = LocalDisk("local", tmp_path)
    disk.put("q/a.log", "line 1\n\nline 2\n")
    disk.put("q/a.json", json.dumps([{"sql": "select 1"}, {"sql": "select 2"}]))
    assert read_log_entries(disk, "q/a.log") == ["line 1", "line 2"]
    assert read_log_entries(disk, "q/a.json")[1] == {"sql": "select 2"}


def test_reader_errors(tmp_path):
    disk = LocalDisk("local", tmp_path)
    disk.put("q/bad.json", "{oops")
    with pytest.raises(CorruptLogFileError):
        read_log_entries(disk, "q/bad.json")
    with pytest.raises(StorageError):
        read_log_entries(disk, "q/missing.log")
    with pytest.raises(StorageError):
        read_log_entries(disk, "q/bad.txt")
