from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional

import typer

from dbquerylog import __version__
from dbquerylog.adapters.fs.reader import list_log_files, read_log_entries
from dbquerylog.core.config.loader import Settings, load_settings, load_settings_with_sources
from dbquerylog.core.exceptions import BaseAppException
from dbquerylog.services.drivers import QueryLogDriver
from dbquerylog.services.registry import build_driver_factory

# 全局可选参数
config_dir_option = typer.Option(
    Path("configs"), "--config-dir", help="配置目录（回退顺序：传入 → ./configs → ./config）"
)
log_format_option = typer.Option(
    None, help="启用运行日志并覆盖格式：json|text（默认不初始化运行日志）", show_default=False
)
log_level_option = typer.Option(
    None, help="启用运行日志并覆盖级别：DEBUG|INFO|WARNING|ERROR|CRITICAL", show_default=False
)

app = typer.Typer(
    help="数据库查询日志：check-config / log / files / show / serve"
)


def _fail(e: BaseAppException) -> None:
    typer.echo(f"[ERROR] {e.error_code}: {e.message}", err=True)
    for key, value in e.context.items():
        typer.echo(f"  {key}: {value}", err=True)
    raise typer.Exit(code=1)


def _prepare(config_dir: Path, log_format: str | None, log_level: str | None) -> Settings:
    """加载配置；仅在显式传入日志参数时初始化运行日志。"""
    try:
        settings = load_settings(config_dir)
    except BaseAppException as e:
        _fail(e)
    if log_format or log_level:
        from dbquerylog.adapters.logging.init import init_logging

        init_logging(settings, override_format=log_format, override_level=log_level)
    return settings


def _resolve_driver(settings: Settings) -> QueryLogDriver:
    try:
        return build_driver_factory(settings)()
    except BaseAppException as e:
        _fail(e)


def _parse_binding(raw: str):
    """绑定参数按 JSON 解析（数字/true/null/字符串），解析失败按原始字符串处理。"""
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


@app.command()
def version() -> None:
    """打印版本/存活检查。
    示例：python -m dbquerylog.cli.main version
    """
    typer.echo(f"dbquerylog {__version__}")


@app.command(
    name="check-config",
    help="加载并解析全部配置，打印生效的驱动与落盘位置；配置错误时退出码为 1。示例：python -m dbquerylog.cli.main check-config --config-dir configs",
)
def cmd_check_config(
    config_dir: Path = config_dir_option,
    show_sources: bool = typer.Option(False, "--sources", help="同时打印配置来源（ENV|YAML|DEFAULT）"),
) -> None:
    try:
        settings, sources = load_settings_with_sources(config_dir)
    except BaseAppException as e:
        _fail(e)
    driver = _resolve_driver(settings)
    dest = driver.destination()
    ql = settings.querylog
    typer.echo(f"enabled: {ql.enabled}")
    typer.echo(f"driver: {ql.driver}")
    typer.echo(f"queue: {ql.queue.mode}")
    typer.echo(f"timezone: {ql.timezone}")
    if ql.driver == "log_file" and ql.drivers.log_file.use_app_logs:
        typer.echo("destination: app logs (logger=dbquerylog.queries, level=DEBUG)")
    else:
        typer.echo(f"destination: {dest.disk}:{driver.disk.path(dest.relative_path)}")
    if show_sources:
        typer.echo(json.dumps(sources, ensure_ascii=False, indent=2))
    typer.echo("config ok")


@app.command(
    name="log",
    help="把一条查询同步推过完整管道（驱动解析 → configure → persist）。示例：python -m dbquerylog.cli.main log \"select * from users where id = ?\" -b 1 --time 1.5",
)
def cmd_log(
    sql: str = typer.Argument(..., help="SQL 模板（支持 ? / %s / %(name)s 占位符）"),
    binding: List[str] = typer.Option([], "--binding", "-b", help="位置绑定参数，可重复；按 JSON 解析"),
    elapsed_ms: float = typer.Option(0.0, "--time", help="执行耗时（毫秒）"),
    connection: Optional[str] = typer.Option(None, help="连接名（默认 database.yaml 的 connection_name）"),
    config_dir: Path = config_dir_option,
    log_format: str | None = log_format_option,
    log_level: str | None = log_level_option,
) -> None:
    settings = _prepare(config_dir, log_format, log_level)
    driver = _resolve_driver(settings)
    record = driver.configure(
        sql,
        [_parse_binding(b) for b in binding],
        elapsed_ms,
        connection or settings.db.connection_name,
    )
    try:
        driver.persist()
    except BaseAppException as e:
        _fail(e)
    if not settings.querylog.enabled:
        typer.echo("querylog disabled: nothing written")
        return
    typer.echo(f"sql: {record.rendered_sql}")
    if not (settings.querylog.driver == "log_file" and settings.querylog.drivers.log_file.use_app_logs):
        dest = driver.destination()
        typer.echo(f"written to: {dest.disk}:{dest.directory}")


@app.command(
    name="files",
    help="列出当前驱动目录下的查询日志文件。示例：python -m dbquerylog.cli.main files",
)
def cmd_files(config_dir: Path = config_dir_option) -> None:
    settings = _prepare(config_dir, None, None)
    driver = _resolve_driver(settings)
    dest = driver.destination()
    try:
        infos = list_log_files(driver.disk, dest.directory)
    except BaseAppException as e:
        _fail(e)
    if not infos:
        typer.echo(f"no log files in {dest.disk}:{dest.directory}")
        return
    for info in infos:
        typer.echo(
            f"{info.path}\t{info.format}\t{info.size_bytes}\t{info.modified_at.isoformat()}"
        )


@app.command(
    name="show",
    help="打印单个查询日志文件的条目。示例：python -m dbquerylog.cli.main show 2024-01-01.log --limit 20",
)
def cmd_show(
    file: str = typer.Argument(..., help="日志文件名（位于查询日志目录下）"),
    limit: int = typer.Option(50, min=1, help="最多打印条数（从末尾计）"),
    config_dir: Path = config_dir_option,
) -> None:
    settings = _prepare(config_dir, None, None)
    driver = _resolve_driver(settings)
    directory = driver.destination().directory
    relative = f"{directory}/{file}" if directory else file
    try:
        entries = read_log_entries(driver.disk, relative)
    except BaseAppException as e:
        _fail(e)
    for entry in entries[-limit:]:
        if isinstance(entry, str):
            typer.echo(entry)
        else:
            typer.echo(json.dumps(entry, ensure_ascii=False, default=str))


@app.command(
    name="serve",
    help="启动只读查询日志 API（uvicorn，地址来自 web.yaml）。示例：python -m dbquerylog.cli.main serve",
)
def cmd_serve(config_dir: Path = config_dir_option) -> None:
    settings = _prepare(config_dir, None, None)
    import uvicorn

    server = settings.web.server
    typer.echo(f"服务地址: http://{server.host}:{server.port}")
    typer.echo(f"API文档: http://{server.host}:{server.port}{settings.web.api.docs_url}")
    uvicorn.run("dbquerylog.main:app", host=server.host, port=server.port, reload=server.reload)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
