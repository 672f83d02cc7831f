import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from delivery_backend.app.api import addresses, admin, public
from delivery_backend.app.api.deps import get_session, require_admin_token
from delivery_backend.app.core.limiter import limiter
from delivery_backend.app.core.logging import setup_logging, get_logger
from delivery_backend.app.core.metrics import PrometheusMiddleware, get_metrics_response
from delivery_backend.app.core.settings import get_settings
from delivery_backend.app.services.cache import CacheService

VERSION = "1.0.0"

# Load and validate settings
try:
    settings = get_settings()
except ValueError as e:
    print(f"Configuration error: {e}", file=sys.stderr)
    sys.exit(1)

setup_logging(
    log_level=settings.LOG_LEVEL,
    json_format=settings.is_production,
)

logger = get_logger(__name__)

logger.info(
    "Application configuration loaded",
    environment=settings.ENVIRONMENT,
    db_host=settings.DB_HOST,
    redis_host=settings.REDIS_HOST,
    delivery_timezone=settings.DELIVERY_TIMEZONE,
    allow_unrestricted_zones=settings.ALLOW_UNRESTRICTED_ZONES,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    - Shutdown: close Redis
    """
    logger.info("Application starting up", version=VERSION)
    yield
    logger.info("Application shutting down")
    await CacheService.close()


app = FastAPI(title="Delivery Zones Backend", version=VERSION, lifespan=lifespan)

# Shared limiter (routers use the same instance for @limiter.limit)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

ALLOWED_ORIGINS = settings.allowed_origins_list
if not ALLOWED_ORIGINS:
    if settings.is_production:
        logger.error("ALLOWED_ORIGINS must be set in production environment")
        raise ValueError("ALLOWED_ORIGINS environment variable is required in production")
    ALLOWED_ORIGINS = ["*"]
    logger.warning("CORS: Allowing all origins (development mode). Set ALLOWED_ORIGINS in production!")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Added after CORS so it sees the response first
app.add_middleware(PrometheusMiddleware)

app.include_router(public.router, prefix="/public", tags=["public"])
app.include_router(
    admin.router,
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(require_admin_token)],
)
app.include_router(
    addresses.router,
    prefix="/addresses",
    tags=["addresses"],
    dependencies=[Depends(require_admin_token)],
)


@app.get("/")
async def root():
    return {"status": "ok"}


@app.get("/health")
async def health_check(session: AsyncSession = Depends(get_session)):
    """
    Health check endpoint for monitoring and orchestration.
    Checks database and Redis connectivity.
    """
    health_status = {
        "status": "healthy",
        "version": VERSION,
        "checks": {
            "database": "ok",
            "redis": "ok",
        },
    }

    try:
        await session.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Database health check failed", error=str(e))
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = f"error: {str(e)}"

    try:
        redis = await CacheService.get_redis()
        await redis.ping()
    except Exception as e:
        logger.error("Redis health check failed", error=str(e))
        health_status["status"] = "unhealthy"
        health_status["checks"]["redis"] = f"error: {str(e)}"

    return health_status


@app.get("/metrics")
async def metrics_endpoint(openmetrics: bool = False):
    """Prometheus metrics (OpenMetrics format when `openmetrics` is true)."""
    return get_metrics_response(openmetrics=openmetrics)
