"""
FastAPI 主应用程序

本模块定义了只读查询日志 API 的入口，包括：
- 应用初始化（配置加载、查询日志目录解析）
- 查询监听器与调度器的生命周期管理
- API 路由注册

使用方式：
    uvicorn dbquerylog.main:app --host {web.server.host} --port {web.server.port}

嵌入宿主应用：
    app.state.listener 是按当前配置构建的 QueryListener，本应用自身不执行 SQL。
    与 API 同进程的宿主代码用它挂接数据库连接，随应用关闭一起 shutdown：

        from dbquerylog.adapters.db import connect
        conn = connect(settings, request.app.state.listener)
"""

import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import structlog
from fastapi import FastAPI, Request

from dbquerylog import __version__
from dbquerylog.adapters.fs.storage import DiskManager
from dbquerylog.adapters.logging.init import init_logging, setup_structlog
from dbquerylog.api.middleware import APILoggingMiddleware
from dbquerylog.api.v1.router import api_v1_router
from dbquerylog.core.config.loader import Settings, load_settings
from dbquerylog.services.listener import QueryListener
from dbquerylog.services.registry import build_driver_factory


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    应用生命周期管理

    启动时构建查询监听器（挂到 app.state.listener，供同进程的数据库连接使用），
    关闭时等待已提交的落盘任务完成。
    """
    logger = structlog.get_logger("dbquerylog.startup")
    settings: Settings = app.state.settings

    listener = QueryListener.from_settings(settings, storage=app.state.storage)
    app.state.listener = listener
    logger.info(
        "应用初始化完成",
        driver=settings.querylog.driver,
        enabled=settings.querylog.enabled,
        queue=settings.querylog.queue.mode,
        host=settings.web.server.host,
        port=settings.web.server.port,
    )

    yield  # 应用运行期间

    logger.info("开始应用清理")
    listener.shutdown(wait=True)
    logger.info("应用清理完成")


def create_app(
    settings: Optional[Settings] = None, *, storage: Optional[DiskManager] = None
) -> FastAPI:
    """创建应用；配置错误（未知驱动、未知 disk 等）在此处抛出 ConfigurationError。"""
    settings = settings or load_settings(Path("configs"))
    storage = storage or DiskManager(settings.querylog.disks, settings.querylog.default_disk)
    setup_structlog()

    # 解析一次驱动，得到当前查询日志所在的存储盘与目录
    destination = build_driver_factory(settings, storage=storage)().destination()

    app = FastAPI(
        title=settings.web.api.title,
        description=settings.web.api.description,
        version=settings.web.api.version,
        docs_url=settings.web.api.docs_url,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.storage = storage
    app.state.log_disk = storage.disk(destination.disk)
    app.state.log_directory = destination.directory
    app.state.started_at = time.time()

    app.add_middleware(APILoggingMiddleware)

    @app.get("/health")
    def health(request: Request):
        """健康检查接口：返回服务状态与查询日志配置摘要"""
        ql = request.app.state.settings.querylog
        return {
            "status": "ok",
            "version": __version__,
            "timestamp": time.time(),
            "uptime": time.time() - request.app.state.started_at,
            "querylog": {
                "enabled": ql.enabled,
                "driver": ql.driver,
                "disk": request.app.state.log_disk.name,
                "directory": request.app.state.log_directory,
            },
        }

    app.include_router(api_v1_router, prefix="/api/v1")
    return app


def _build_default_app() -> FastAPI:
    settings = load_settings(Path("configs"))
    init_logging(settings)
    return create_app(settings)


app = _build_default_app()
