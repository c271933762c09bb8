"""全局错误处理中间件。"""
from __future__ import annotations
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from instance_registry.common.exceptions import RegistryError, StoreUnavailableError
import structlog

logger = structlog.get_logger()


def _error_response(exc: RegistryError) -> JSONResponse:
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(RegistryError)
    async def handle_registry_error(request: Request, exc: RegistryError):
        logger.warning("business_error",
                       code=exc.code, message=str(exc), status=exc.http_status)
        return _error_response(exc)

    @app.exception_handler(RedisConnectionError)
    @app.exception_handler(RedisTimeoutError)
    async def handle_store_error(request: Request, exc: Exception):
        logger.error("store_unavailable", path=request.url.path, error=str(exc))
        return _error_response(StoreUnavailableError("Store unavailable"))

    @app.exception_handler(Exception)
    async def handle_general_error(request: Request, exc: Exception):
        logger.exception("unhandled_error", path=request.url.path)
        return JSONResponse(
            status_code=500,
            content={"error_code": "INTERNAL_ERROR", "message": "Internal server error"},
        )
