"""
ASGI entry point: ``uvicorn qrtruck.main:app --port 8001``.

Customers scan a truck's QR code, pay online and collect their food with a
4-digit pickup code. Merchants manage menus and the live order queue; admins
see the whole platform. Router groups live in ``qrtruck.routes``.
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime

import redis
from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import literal, select
from sqlalchemy.ext.asyncio import AsyncSession

if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from qrtruck.core.config import get_settings, setup_logging
from qrtruck.database import engine, get_db, init_db
from qrtruck.routes import all_routers
from qrtruck.schemas import HealthResponse
from qrtruck.services.menu_parser import get_menu_parser
from qrtruck.services.payment import get_payment_service

settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        f"🚚 {settings.app_name} v{settings.app_version} "
        f"starting in {settings.env_mode.value} mode (debug={settings.debug})"
    )

    await init_db()
    logger.info(
        f"✅ Tables ready | payments: {get_payment_service().provider_name} "
        f"| menu parser: {get_menu_parser().provider_name}"
    )

    missing = settings.validate_production_config()
    if missing:
        logger.warning(f"⚠️ {settings.env_mode.value} run without: {', '.join(missing)}")

    yield

    await engine.dispose()
    logger.info("👋 Database connections closed")


app = FastAPI(
    title=settings.app_name,
    description=(
        "QR-code food truck ordering: menus, online payment with platform "
        "fees and Canadian sales tax, live order status and pickup codes."
    ),
    version=settings.app_version,
    lifespan=lifespan,
)

# Customer pages and the merchant dashboard are served from other origins.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

for router in all_routers:
    app.include_router(router)


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    return {
        "message": f"🚚 Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "trucks": "/api/trucks",
        "health": "/health",
    }


async def _database_status(db: AsyncSession) -> str:
    try:
        await db.execute(select(literal(1)))
    except Exception as e:
        logger.error(f"Health: database unreachable: {e}")
        return f"unhealthy: {e}"
    return "healthy"


def _redis_status() -> str:
    client = redis.Redis.from_url(settings.redis_url, socket_timeout=2)
    try:
        client.ping()
    except redis.RedisError as e:
        logger.error(f"Health: redis unreachable: {e}")
        return f"unhealthy: {e}"
    finally:
        client.close()
    return "healthy"


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(db: AsyncSession = Depends(get_db)) -> HealthResponse:
    """Probe the database, the Celery broker and the payment gateway."""
    checks = {
        "database": await _database_status(db),
        "redis": _redis_status(),
        "payment_service": "healthy" if await get_payment_service().health_check() else "unhealthy",
    }
    degraded = any(value != "healthy" for value in checks.values())

    return HealthResponse(
        status="degraded" if degraded else "operational",
        menu_parser=get_menu_parser().provider_name,
        timestamp=datetime.now(),
        **checks,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Bad input is reported as 400 across the API.
    logger.info(f"Rejected {request.method} {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=400,
        content=jsonable_encoder({
            "success": False,
            "error": "Validation Error",
            "detail": exc.errors(),
        }),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )
