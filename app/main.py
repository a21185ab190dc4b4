from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from sqlalchemy import text
from starlette.responses import Response
from starlette.middleware.base import BaseHTTPMiddleware
from app.api import auth, orders, payments, deliveries, documents
from app.core.config import settings
from app.core.exceptions import (
    OrderServiceError,
    OrderNotFound,
    DocumentNotReady,
    ExternalCollaboratorFailure,
)
from app.core.redis import init_redis, close_redis, redis_available
from app.core.metrics import request_count, request_duration, db_connected, redis_connected, get_metrics_text
from app.db.session import engine
import time
import logging

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        endpoint = request.url.path

        try:
            response = await call_next(request)
        except Exception:
            request_count.labels(method=request.method, endpoint=endpoint, status=500).inc()
            request_duration.labels(method=request.method, endpoint=endpoint).observe(time.time() - start_time)
            raise

        route = request.scope.get("route")
        if route is not None:
            endpoint = route.path
        request_count.labels(method=request.method, endpoint=endpoint, status=response.status_code).inc()
        request_duration.labels(method=request.method, endpoint=endpoint).observe(time.time() - start_time)
        return response


async def check_database() -> bool:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database check failed: {e}")
        return False


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting...")

    logger.info("Initializing Redis connection...")
    try:
        await init_redis()
        redis_connected.set(1)
        logger.info("Redis connected")
    except Exception as e:
        logger.error(f"Redis connection failed: {e}")
        redis_connected.set(0)

    if await check_database():
        db_connected.set(1)
        logger.info("Database connected")
    else:
        db_connected.set(0)

    yield

    logger.info("Application shutting down...")
    await close_redis()
    redis_connected.set(0)
    await engine.dispose()
    logger.info("Shutdown complete")


app = FastAPI(
    title=settings.API_TITLE,
    description=settings.API_DESCRIPTION,
    version=settings.API_VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
)

app.add_middleware(MetricsMiddleware)

app.include_router(auth.router)
app.include_router(orders.router)
app.include_router(payments.router)
app.include_router(deliveries.router)
app.include_router(documents.router)


def _status_for(exc: OrderServiceError) -> int:
    if isinstance(exc, OrderNotFound):
        return 404
    if isinstance(exc, DocumentNotReady):
        return 409
    if isinstance(exc, ExternalCollaboratorFailure):
        return 503
    return 400


@app.exception_handler(OrderServiceError)
async def order_service_error_handler(request: Request, exc: OrderServiceError):
    status_code = _status_for(exc)
    if status_code == 503:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error": type(exc).__name__},
    )


@app.get("/metrics", tags=["monitoring"])
async def metrics():
    return Response(
        content=get_metrics_text(),
        media_type="text/plain; version=0.0.4; charset=utf-8"
    )


@app.get("/health", tags=["monitoring"])
async def health_check():
    redis_healthy = redis_available()

    return {
        "status": "healthy",
        "service": settings.API_TITLE,
        "version": settings.API_VERSION,
        "dependencies": {
            "redis": "connected" if redis_healthy else "disconnected",
            "database": "connected" if await check_database() else "disconnected",
        }
    }


@app.get("/readiness", tags=["monitoring"])
async def readiness_check():
    if not redis_available():
        return JSONResponse(status_code=503, content={"ready": False, "reason": "Redis not available"})
    if not await check_database():
        return JSONResponse(status_code=503, content={"ready": False, "reason": "Database not available"})

    return {
        "ready": True,
        "service": settings.API_TITLE
    }


@app.get("/", tags=["root"])
async def root():
    return {
        "message": settings.API_TITLE,
        "version": settings.API_VERSION,
        "docs": "/docs",
        "health": "/health",
        "metrics": "/metrics"
    }
