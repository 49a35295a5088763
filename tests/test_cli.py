from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

from dbquerylog import __version__
from dbquerylog.cli.main import app

runner = CliRunner()


def _config_dir(tmp_path: Path, driver: str = "log_file", extra: str = "") -> Path:
    cdir = tmp_path / "cfg"
    cdir.mkdir(exist_ok=True)
    (cdir / "querylog.yaml").write_text(
        f"""
driver: {driver}
disks:
  local: {(tmp_path / 'disk').as_posix()}
queue:
  mode: sync
{extra}
""".lstrip(),
        encoding="utf-8",
    )
    return cdir


def test_version():
    r = runner.invoke(app, ["version"])
    assert r.exit_code == 0
    assert f"dbquerylog {__version__}" in r.output


def test_check_config_ok(tmp_path):
    r = runner.invoke(app, ["check-config", "--config-dir", str(_config_dir(tmp_path)), "--sources"])
    assert r.exit_code == 0, r.output
    assert "driver: log_file" in r.output
    assert "db-query-logger" in r.output
    assert '"driver": "YAML"' in r.output
    assert "config ok" in r.output


def test_check_config_reports_errors(tmp_path):
    cdir = _config_dir(tmp_path, driver="syslog")
    r = runner.invoke(app, ["check-config", "--config-dir", str(cdir)])
    assert r.exit_code == 1
    assert "ConfigurationError" in r.output


def test_log_files_show_roundtrip(tmp_path):
    cdir = str(_config_dir(tmp_path))
    r = runner.invoke(
        app,
        ["log", "select * from users where id = ?", "-b", "1", "--time", "1.5", "--config-dir", cdir],
    )
    assert r.exit_code == 0, r.output
    assert "sql: select * from users where id = 1" in r.output

    r = runner.invoke(app, ["files", "--config-dir", cdir])
    assert r.exit_code == 0, r.output
    first = r.output.strip().splitlines()[-1]
    path, fmt = first.split("\t")[:2]
    assert path.startswith("db-query-logger/") and fmt == "log"

    r = runner.invoke(app, ["show", path.rsplit("/", 1)[-1], "--config-dir", cdir])
    assert r.exit_code == 0, r.output
    assert "[sql = select * from users where id = 1]" in r.output
    assert "[time = 1.5 ms]" in r.output


def test_log_json_driver_and_show(tmp_path):
    cdir = str(_config_dir(tmp_path, driver="json_file"))
    r = runner.invoke(
        app, ["log", "select %s, %s", "-b", "2", "-b", "abc", "--config-dir", cdir]
    )
    assert r.exit_code == 0, r.output
    assert "sql: select 2, 'abc'" in r.output

    files = list((tmp_path / "disk" / "db-query-logger").glob("*.json"))
    assert len(files) == 1
    data = json.loads(files[0].read_text(encoding="utf-8"))
    assert data[0]["bindings"] == [2, "abc"]

    r = runner.invoke(app, ["show", files[0].name, "--config-dir", cdir])
    assert r.exit_code == 0, r.output
    assert "\"sql\": \"select 2, 'abc'\"" in r.output


def test_log_when_disabled_writes_nothing(tmp_path, monkeypatch):
    monkeypatch.setenv("QUERYLOG_ENABLED", "false")
    cdir = str(_config_dir(tmp_path))
    r = runner.invoke(app, ["log", "select 1", "--config-dir", cdir])
    assert r.exit_code == 0, r.output
    assert "nothing written" in r.output
    assert not (tmp_path / "disk").exists()


def test_show_missing_file(tmp_path):
    cdir = str(_config_dir(tmp_path))
    r = runner.invoke(app, ["show", "nope.log", "--config-dir", cdir])
    assert r.exit_code == 1
    assert "StorageError" in r.output
