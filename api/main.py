from contextlib import asynccontextmanager
from typing import Any

from fastapi import APIRouter, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger

from api.schemas import ApiResponse, ConstraintRequest, QueryRequest
from canonical.models import QueryContext
from config.logging_config import setup_logging
from config.settings import get_settings
from orchestrator import get_router, solve_constraints


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    query_router = get_router()
    query_router.start()
    logger.info("API: 服务启动")
    yield
    await query_router.aclose()
    logger.info("API: 服务停止")


settings = get_settings()
app = FastAPI(title="OMS Query Router API", version=settings.app_version, lifespan=lifespan)
router = APIRouter(prefix="/api")


def _dump(model: Any) -> Any:
    return model.model_dump(mode="json", by_alias=True)


@app.exception_handler(RequestValidationError)
def validation_exception_handler(request: Request, exc: RequestValidationError):
    wrapped = ApiResponse(
        code=1001,
        message="Invalid request",
        success=False,
        data={"errors": [str(e.get("msg")) for e in exc.errors()]},
    )
    return JSONResponse(status_code=422, content=_dump(wrapped))


@app.exception_handler(Exception)
def general_exception_handler(request: Request, exc: Exception):
    logger.exception(f"API: 未处理异常 {request.method} {request.url.path}: {exc}")
    wrapped = ApiResponse(code=1002, message="Error", success=False, data={"errors": [str(exc)]})
    return JSONResponse(status_code=400, content=_dump(wrapped))


@router.post("/query", response_model=ApiResponse)
async def query_endpoint(req: QueryRequest) -> ApiResponse:
    context = QueryContext(prefer_fresh_data=req.prefer_fresh_data, include_analytics=req.include_analytics)
    result = await get_router().route_query(req.query, context)
    return ApiResponse(data=_dump(result))


@router.post("/constraints", response_model=ApiResponse)
def constraints_endpoint(req: ConstraintRequest) -> ApiResponse:
    result = solve_constraints(req.orders, req.constraints, req.target_value, req.aggregation)
    return ApiResponse(
        code=0 if result.success else 1002,
        message="OK" if result.success else "Error",
        success=result.success,
        data=_dump(result),
    )


@router.get("/router/stats", response_model=ApiResponse)
def stats_endpoint() -> ApiResponse:
    query_router = get_router()
    return ApiResponse(
        data={
            "performance": query_router.get_performance_stats(),
            "cache": query_router.get_cache_stats(),
        }
    )


@router.get("/router/history", response_model=ApiResponse)
def history_endpoint(limit: int = Query(default=10, ge=1, le=100)) -> ApiResponse:
    return ApiResponse(data={"history": get_router().get_query_history(limit)})


@router.delete("/router/cache", response_model=ApiResponse)
def clear_cache_endpoint() -> ApiResponse:
    get_router().clear_cache()
    return ApiResponse(message="Cache cleared")


@router.get("/health", response_model=ApiResponse)
async def health_endpoint() -> ApiResponse:
    state = await get_router().get_system_state()
    return ApiResponse(data=_dump(state))


app.include_router(router)
