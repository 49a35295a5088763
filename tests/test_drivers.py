from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor

import pytest

from dbquerylog.core.exceptions import CorruptLogFileError, DriverStateError, StorageError
from dbquerylog.services.drivers import LOCK_STRIPES, JsonFileDriver, LogFileDriver
from dbquerylog.services.registry import build_driver_factory

SQL = "select * from users where id = ?"


def _driver(settings, storage, clock):
    return build_driver_factory(settings, storage=storage, clock=clock)()


def test_text_driver_writes_raw_and_substituted_sql(
    settings_factory, recording_storage, fixed_clock, disk_root
):
    settings = settings_factory(
        log_file={"template": "[:datetime:] - [query = :query:] - [sql = :sql:]"}
    )
    driver = _driver(settings, recording_storage, fixed_clock)
    assert isinstance(driver, LogFileDriver)
    driver.configure(SQL, [1], 0.5, "default")
    driver.persist()

    content = (disk_root / "db-query-logger" / "2024-01-02.log").read_text(encoding="utf-8")
    assert content == (
        "[2024-01-02 03:04:05] - [query = select * from users where id = ?] - "
        "[sql = select * from users where id = 1]\n"
    )


def test_text_driver_default_template_appends(
    settings_factory, recording_storage, fixed_clock, disk_root
):
    factory = build_driver_factory(
        settings_factory(), storage=recording_storage, clock=fixed_clock
    )
    for i in (1, 2):
        driver = factory()
        driver.configure(SQL, [i], 1.25, "main")
        driver.persist()

    lines = (disk_root / "db-query-logger" / "2024-01-02.log").read_text(
        encoding="utf-8"
    ).splitlines()
    assert len(lines) == 2
    assert lines[0] == (
        "[2024-01-02 03:04:05] - [query = select * from users where id = ?] - "
        "[bindings = [1]] - [time = 1.25 ms] - [connection = main] - "
        "[sql = select * from users where id = 1]"
    )
    assert lines[1].endswith("[sql = select * from users where id = 2]")


def test_text_driver_replacement_is_single_pass(
    settings_factory, recording_storage, fixed_clock, disk_root
):
    settings = settings_factory(log_file={"template": ":sql: | :time:"})
    driver = _driver(settings, recording_storage, fixed_clock)
    driver.configure("select ':time:' as t", [], 2.0, "default")
    driver.persist()
    content = (disk_root / "db-query-logger" / "2024-01-02.log").read_text(encoding="utf-8")
    assert content == "select ':time:' as t | 2.0\n"


def test_text_driver_use_app_logs(
    settings_factory, recording_storage, fixed_clock, disk_root, caplog
):
    caplog.set_level(logging.DEBUG, logger="dbquerylog.queries")
    settings = settings_factory(log_file={"use_app_logs": True, "template": ":sql:"})
    driver = _driver(settings, recording_storage, fixed_clock)
    driver.configure(SQL, [9], 1.0, "default")
    driver.persist()

    records = [r for r in caplog.records if r.name == "dbquerylog.queries"]
    assert [r.getMessage() for r in records] == ["select * from users where id = 9"]
    assert records[0].levelno == logging.DEBUG
    assert not (disk_root / "db-query-logger").exists()


def test_json_driver_two_calls_produce_two_element_array(
    settings_factory, recording_storage, fixed_clock, disk_root
):
    settings = settings_factory(driver="json_file")
    factory = build_driver_factory(settings, storage=recording_storage, clock=fixed_clock)
    for i in (1, 2):
        driver = factory()
        assert isinstance(driver, JsonFileDriver)
        driver.configure(SQL, [i], 0.75, "default")
        driver.persist()

    raw = (disk_root / "db-query-logger" / "2024-01-02.json").read_text(encoding="utf-8")
    data = json.loads(raw)
    assert isinstance(data, list) and len(data) == 2
    for entry in data:
        assert list(entry) == ["datetime", "query", "bindings", "time", "connection", "sql"]
    assert data[0] == {
        "datetime": "2024-01-02 03:04:05",
        "query": SQL,
        "bindings": [1],
        "time": 0.75,
        "connection": "default",
        "sql": "select * from users where id = 1",
    }
    assert data[1]["sql"] == "select * from users where id = 2"
    # 默认缩进 4
    assert '\n    {' in raw


def test_json_driver_custom_nested_schema(
    settings_factory, recording_storage, fixed_clock, disk_root
):
    schema = {"when": ":datetime:", "db": {"statement": ":sql:", "ms": ":time:"}}
    settings = settings_factory(driver="json_file", json_file={"schema": schema})
    driver = _driver(settings, recording_storage, fixed_clock)
    driver.configure("select %(name)s", {"name": "日志"}, 3.0, "default")
    driver.persist()

    raw = (disk_root / "db-query-logger" / "2024-01-02.json").read_text(encoding="utf-8")
    assert "日志" in raw
    assert json.loads(raw) == [
        {
            "when": "2024-01-02 03:04:05",
            "db": {"statement": "select '日志'", "ms": 3.0},
        }
    ]


def _corrupt(disk_root, text="{not json"):
    target = disk_root / "db-query-logger" / "2024-01-02.json"
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(text, encoding="utf-8")
    return target


def test_json_driver_discard_policy_keeps_only_newest_record(
    settings_factory, recording_storage, fixed_clock, disk_root, caplog
):
    # 兼容行为：无法解析的旧内容被丢弃，只留下最新一条
    target = _corrupt(disk_root)
    settings = settings_factory(driver="json_file", json_file={"on_corrupt": "discard"})
    driver = _driver(settings, recording_storage, fixed_clock)
    driver.configure(SQL, [1], 1.0, "default")
    with caplog.at_level(logging.WARNING):
        driver.persist()

    data = json.loads(target.read_text(encoding="utf-8"))
    assert len(data) == 1 and data[0]["sql"] == "select * from users where id = 1"
    assert any(getattr(r, "event", None) == "querylog.json.corrupt" for r in caplog.records)
    assert [p.name for p in target.parent.iterdir()] == ["2024-01-02.json"]


def test_json_driver_backup_policy_preserves_corrupt_file(
    settings_factory, recording_storage, fixed_clock, disk_root
):
    target = _corrupt(disk_root)
    settings = settings_factory(driver="json_file")
    driver = _driver(settings, recording_storage, fixed_clock)
    driver.configure(SQL, [1], 1.0, "default")
    driver.persist()

    stamp = int(fixed_clock().timestamp())
    backup = target.parent / f"2024-01-02.json.corrupt-{stamp}"
    assert backup.read_text(encoding="utf-8") == "{not json"
    assert len(json.loads(target.read_text(encoding="utf-8"))) == 1


def test_json_driver_non_array_content_is_corrupt(
    settings_factory, recording_storage, fixed_clock, disk_root
):
    target = _corrupt(disk_root, '{"a": 1}')
    settings = settings_factory(driver="json_file", json_file={"on_corrupt": "fail"})
    driver = _driver(settings, recording_storage, fixed_clock)
    driver.configure(SQL, [1], 1.0, "default")
    with pytest.raises(CorruptLogFileError):
        driver.persist()
    assert target.read_text(encoding="utf-8") == '{"a": 1}'


def test_json_driver_empty_file_starts_fresh(
    settings_factory, recording_storage, fixed_clock, disk_root
):
    target = _corrupt(disk_root, "")
    settings = settings_factory(driver="json_file", json_file={"on_corrupt": "fail"})
    driver = _driver(settings, recording_storage, fixed_clock)
    driver.configure(SQL, [1], 1.0, "default")
    driver.persist()
    assert len(json.loads(target.read_text(encoding="utf-8"))) == 1


def test_json_driver_lock_serialises_concurrent_writers(
    settings_factory, recording_storage, fixed_clock, disk_root
):
    settings = settings_factory(driver="json_file")
    factory = build_driver_factory(settings, storage=recording_storage, clock=fixed_clock)

    def _write(i: int) -> None:
        driver = factory()
        driver.configure(SQL, [i], 1.0, "default")
        driver.persist()

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(_write, range(40)))

    data = json.loads(
        (disk_root / "db-query-logger" / "2024-01-02.json").read_text(encoding="utf-8")
    )
    assert sorted(e["bindings"][0] for e in data) == list(range(40))


@pytest.mark.parametrize("driver_key", ["log_file", "json_file"])
def test_disabled_persist_performs_no_io(
    settings_factory, recording_storage, fixed_clock, driver_key
):
    settings = settings_factory(driver=driver_key, enabled=False)
    driver = _driver(settings, recording_storage, fixed_clock)
    driver.configure(SQL, [1], 1.0, "default")
    disk = recording_storage.disk()
    disk.calls.clear()

    driver.persist()

    assert disk.calls == []


def test_persist_before_configure_raises(settings_factory, recording_storage, fixed_clock):
    driver = _driver(settings_factory(), recording_storage, fixed_clock)
    with pytest.raises(DriverStateError):
        driver.persist()


def test_configure_twice_raises(settings_factory, recording_storage, fixed_clock):
    driver = _driver(settings_factory(), recording_storage, fixed_clock)
    driver.configure(SQL, [1], 1.0, "default")
    with pytest.raises(DriverStateError):
        driver.configure(SQL, [2], 1.0, "default")


def test_configure_copies_bindings(settings_factory, recording_storage, fixed_clock):
    driver = _driver(settings_factory(), recording_storage, fixed_clock)
    bindings = [1]
    record = driver.configure(SQL, bindings, 1.0, "default")
    bindings.append(2)
    assert record.bindings == [1]
    assert record.rendered_sql == "select * from users where id = 1"


def test_storage_failure_surfaces_as_storage_error(
    settings_factory, recording_storage, fixed_clock, disk_root
):
    # 目录位置被同名文件占用，无法创建父目录
    (disk_root / "db-query-logger").write_text("x", encoding="utf-8")
    driver = _driver(settings_factory(), recording_storage, fixed_clock)
    driver.configure(SQL, [1], 1.0, "default")
    with pytest.raises(StorageError) as excinfo:
        driver.persist()
    assert isinstance(excinfo.value.__cause__, OSError)


def test_json_driver_lock_pool_stays_bounded_with_uuid_files(
    settings_factory, recording_storage, fixed_clock, disk_root
):
    settings = settings_factory(driver="json_file", json_file={"file_name": "uuid"})
    factory = build_driver_factory(settings, storage=recording_storage, clock=fixed_clock)
    for i in range(LOCK_STRIPES + 20):
        driver = factory()
        driver.configure(SQL, [i], 1.0, "default")
        driver.persist()

    assert len(list((disk_root / "db-query-logger").glob("*.json"))) == LOCK_STRIPES + 20
    assert len(JsonFileDriver._locks) == LOCK_STRIPES
    # 同一路径总是取到同一把锁
    assert JsonFileDriver._lock_for("a.json") is JsonFileDriver._lock_for("a.json")
