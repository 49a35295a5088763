"""
查询日志查看 API 端点（dbquerylog.api.v1.endpoints.query_logs）

提供只读的查询日志浏览：
- 列出当前驱动目录下的日志文件
- 分页读取单个文件的条目
"""

from datetime import datetime
from typing import Any, List, Optional

import structlog
from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel

from dbquerylog.adapters.fs.reader import file_format, list_log_files, read_log_entries
from dbquerylog.core.exceptions import CorruptLogFileError, StorageError

router = APIRouter()

# 获取结构化日志器
logger = structlog.get_logger("api.query_logs")


class QueryLogFile(BaseModel):
    """查询日志文件模型"""

    name: str
    path: str
    format: str
    size_bytes: int
    modified_at: datetime


class QueryLogFilesResponse(BaseModel):
    disk: str
    directory: str
    files: List[QueryLogFile]
    total_count: int


class QueryLogEntry(BaseModel):
    """查询日志条目：index 为文件内序号；.log 为文本行，.json 为对象"""

    index: int
    content: Any


class QueryLogEntriesResponse(BaseModel):
    file: str
    format: str
    entries: List[QueryLogEntry]
    total_count: int
    has_more: bool


def _location(request: Request):
    state = request.app.state
    return state.log_disk, state.log_directory


@router.get("/files", response_model=QueryLogFilesResponse)
async def list_files(request: Request) -> QueryLogFilesResponse:
    """列出查询日志文件（按名称排序）"""
    disk, directory = _location(request)
    try:
        infos = list_log_files(disk, directory)
    except StorageError as e:
        logger.error("查询日志文件列表读取失败", error=e.message, **e.context)
        raise HTTPException(status_code=500, detail=e.message) from e

    files = [
        QueryLogFile(
            name=info.path.rsplit("/", 1)[-1],
            path=info.path,
            format=info.format,
            size_bytes=info.size_bytes,
            modified_at=info.modified_at,
        )
        for info in infos
    ]
    logger.info("查询日志文件列表", disk=disk.name, directory=directory, count=len(files))
    return QueryLogFilesResponse(
        disk=disk.name, directory=directory, files=files, total_count=len(files)
    )


@router.get("/entries", response_model=QueryLogEntriesResponse)
async def list_entries(
    request: Request,
    file: str = Query(..., description="日志文件名（位于查询日志目录下），如 2024-01-01.log"),
    limit: int = Query(100, ge=1, description="返回数量限制"),
    offset: int = Query(0, ge=0, description="偏移量"),
    reverse: bool = Query(False, description="是否倒序（最新在前）"),
) -> QueryLogEntriesResponse:
    """分页读取单个查询日志文件"""
    disk, directory = _location(request)
    if "/" in file or "\\" in file or file in ("", ".", ".."):
        raise HTTPException(status_code=400, detail=f"非法文件名: {file}")
    fmt: Optional[str] = file_format(file)
    if fmt is None:
        raise HTTPException(status_code=400, detail=f"不支持的文件类型: {file}")

    relative = f"{directory}/{file}" if directory else file
    if not disk.exists(relative):
        raise HTTPException(status_code=404, detail=f"日志文件不存在: {file}")

    try:
        entries = read_log_entries(disk, relative)
    except CorruptLogFileError as e:
        logger.warning("查询日志文件无法解析", file=file, error=e.message)
        raise HTTPException(status_code=422, detail=e.message) from e
    except StorageError as e:
        logger.error("查询日志文件读取失败", file=file, error=e.message)
        raise HTTPException(status_code=500, detail=e.message) from e

    limit = min(limit, request.app.state.settings.web.api.max_entries)
    indexed = list(enumerate(entries))
    if reverse:
        indexed.reverse()
    page = indexed[offset : offset + limit]

    logger.info(
        "查询日志条目读取",
        file=file,
        total=len(entries),
        offset=offset,
        limit=limit,
        returned=len(page),
    )
    return QueryLogEntriesResponse(
        file=file,
        format=fmt,
        entries=[QueryLogEntry(index=i, content=c) for i, c in page],
        total_count=len(entries),
        has_more=offset + len(page) < len(entries),
    )
