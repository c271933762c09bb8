"""
Instance Registry 应用入口。

启动: uvicorn instance_registry.main:create_app --factory --port 3030
     或 instance-registry (读取 HTTP_HOST / HTTP_PORT)
需要: Redis (直连或 Sentinel)
"""
from __future__ import annotations
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.responses import JSONResponse

from instance_registry.common.dependencies import RedisClient, get_redis, get_registry
from instance_registry.settings import settings

logger = structlog.get_logger()


def _configure_logging() -> None:
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.app_env == "development":
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            {"DEBUG": 10, "INFO": 20, "WARNING": 30, "ERROR": 40}
            .get(settings.log_level.upper(), 20)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    from instance_registry.common.redis import close_redis, get_redis as connect_redis
    from instance_registry.registry.service import build_registry

    _configure_logging()
    log = structlog.get_logger()
    log.info("startup_begin", env=settings.app_env)

    redis = await connect_redis(settings)
    await redis.ping()
    log.info("redis_connected")

    if settings.empty_db:
        await redis.flushall()
        log.info("redis_flushed")

    registry = build_registry(
        redis,
        gc_interval=settings.gc_interval,
        instance_timeout=settings.instance_timeout,
        mutex_timeout=settings.mutex_timeout,
    )
    app.state.redis = redis
    app.state.registry = registry

    async def _get_redis():
        return redis

    async def _get_registry():
        return registry

    app.dependency_overrides[get_redis] = _get_redis
    app.dependency_overrides[get_registry] = _get_registry
    log.info("startup_complete",
             gc_interval=settings.gc_interval,
             instance_timeout=settings.instance_timeout,
             mutex_timeout=settings.mutex_timeout)

    yield

    log.info("shutdown_begin")
    await close_redis()
    log.info("shutdown_complete")


def create_app() -> FastAPI:
    _configure_logging()

    app = FastAPI(
        title=settings.app_title,
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.app_env == "development" else None,
    )

    from instance_registry.common.middleware import register_error_handlers
    register_error_handlers(app)

    @app.get("/api/v1/health")
    async def health(redis: RedisClient):
        try:
            await redis.ping()
        except Exception as e:
            logger.warning("health_check_failed", error=str(e))
            return JSONResponse(status_code=503,
                                content={"status": "degraded", "redis": "unreachable"})
        return {"status": "healthy", "redis": "ok"}

    from instance_registry.registry.router import router as registry_router
    app.include_router(registry_router, prefix="/api/v1")

    return app


def run() -> None:
    import uvicorn
    uvicorn.run(
        "instance_registry.main:create_app",
        factory=True,
        host=settings.http_host,
        port=settings.http_port,
    )
