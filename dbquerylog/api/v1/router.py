from fastapi import APIRouter

from dbquerylog.api.v1.endpoints import query_logs

api_v1_router = APIRouter()

api_v1_router.include_router(query_logs.router, prefix="/query-logs", tags=["query-logs"])
