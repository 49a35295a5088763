import pytest

from dbquerylog.core.exceptions import ConfigurationError
from dbquerylog.services import registry
from dbquerylog.services.drivers import LogFileDriver
from dbquerylog.services.registry import build_driver_factory


@pytest.mark.parametrize(
    "overrides",
    [
        {"driver": "syslog"},
        {"log_file": {"file_name": "weekly"}},
        {"log_file": {"path": "nested"}},
        {"log_file": {"message_formatter": "xml"}},
        {"log_file": {"disk": "s3"}},
        {"driver": "json_file", "json_file": {"schema": {"sql": ":nope:"}}},
        {"timezone": "Mars/Olympus"},
        {"driver": "json_file", "json_file": {"message_formatter": "log"}},
    ],
)
def test_misconfiguration_fails_at_resolution(settings_factory, overrides):
    with pytest.raises(ConfigurationError):
        build_driver_factory(settings_factory(**overrides))


def test_factory_returns_fresh_driver_per_call(settings_factory, fixed_clock):
    factory = build_driver_factory(settings_factory(), clock=fixed_clock)
    first, second = factory(), factory()
    assert isinstance(first, LogFileDriver)
    assert first is not second
    # 驱动共享解析好的组件
    assert first.file_name_generator is second.file_name_generator


def test_destination_uses_configured_segment_and_file_name(settings_factory, fixed_clock):
    settings = settings_factory(log_file={"path_segment": "sql-audit", "file_name": "timestamp"})
    dest = build_driver_factory(settings, clock=fixed_clock)().destination()
    assert dest.disk == "local"
    assert dest.directory == "sql-audit"
    assert dest.filename == f"{int(fixed_clock().timestamp())}.log"
    assert dest.relative_path == f"sql-audit/{dest.filename}"


def test_register_file_name_generator(settings_factory, fixed_clock, monkeypatch):
    monkeypatch.setitem(registry.FILE_NAME_GENERATORS, "fixed", lambda clock: _Fixed())
    settings = settings_factory(log_file={"file_name": "fixed"})
    dest = build_driver_factory(settings, clock=fixed_clock)().destination()
    assert dest.filename == "queries.log"


class _Fixed:
    def filename(self) -> str:
        return "queries"
