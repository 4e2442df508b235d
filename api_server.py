"""
FastAPI Server для Telegram Mini App
Запускает API endpoints для фронтенда
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from config.config import (
    CORS_ORIGINS,
    ENVIRONMENT,
    RATE_LIMIT_DEFAULT,
    RATE_LIMIT_ENABLED,
    SCHEDULER_ENABLED,
    WEBAPP_URL,
    is_development,
    validate_config,
)
from config.logging import setup_logging
from config.sentry import init_sentry
from src.api.router import router as api_router
from src.cache import build_cache
from src.core.exceptions import MonetizationError
from src.database.engine import check_connection, dispose_engine
from src.services.ledger_service import LedgerService
from src.services.subscription_service import SubscriptionService
from src.services.telegram_notifier import TelegramNotifier
from src.tasks.scheduler import MonetizationScheduler

# Setup logging at module level (must run before app creation)
# This ensures logging works when uvicorn imports the module
setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager для startup/shutdown events
    """
    # Startup
    logger.info(f"Starting FlirtMarket API Server ({ENVIRONMENT})...")

    # NOTE: Database tables managed by Alembic migrations
    # Run: alembic upgrade head

    init_sentry()

    # Один кэш на процесс, передаётся в сервисы через app.state
    app.state.cache = build_cache()
    app.state.notifier = TelegramNotifier.from_config()

    scheduler = None
    if SCHEDULER_ENABLED:
        scheduler = MonetizationScheduler(
            app.state.cache,
            SubscriptionService(LedgerService(app.state.cache), app.state.notifier),
        )
        scheduler.start()

    if not await check_connection():
        logger.error("Database is not reachable at startup")

    yield

    # Shutdown
    logger.info("Shutting down FlirtMarket API Server...")

    if scheduler:
        scheduler.stop()

    await app.state.notifier.close()
    await app.state.cache.clear()

    await dispose_engine()
    logger.info("Database connections closed")


# Rate limiter: по IP адресу, глобальный лимит на все endpoints
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[RATE_LIMIT_DEFAULT],
    storage_uri="memory://",
    enabled=RATE_LIMIT_ENABLED,
)

# Создаем FastAPI приложение
app = FastAPI(
    title="FlirtMarket API",
    description="Coin ledger and paid messaging API для Telegram Mini App",
    version="1.0.0",
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)


# SECURITY: Используем только точные домены, без wildcards
allowed_origins = list(CORS_ORIGINS)
if WEBAPP_URL and WEBAPP_URL not in allowed_origins:
    allowed_origins.append(WEBAPP_URL)

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    """
    Добавляет security headers ко всем ответам (API only, no HTML)
    """
    response = await call_next(request)

    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"

    if ENVIRONMENT == "production" and request.url.scheme == "https":
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

    return response


# Все API endpoints под префиксом /api
app.include_router(api_router, prefix="/api")


@app.get("/")
async def root():
    return {
        "service": "FlirtMarket API",
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs",
    }


@app.get("/health")
async def health():
    """
    Health check endpoint (database included)
    """
    database_ok = await check_connection()
    return JSONResponse(
        status_code=200 if database_ok else 503,
        content={"status": "healthy" if database_ok else "degraded", "database": database_ok},
    )


# Domain errors: InsufficientFunds, NotFound, AccessDenied...
@app.exception_handler(MonetizationError)
async def monetization_exception_handler(request: Request, exc: MonetizationError):
    logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """
    Handle HTTPException properly - return correct status code and detail
    """
    if exc.status_code >= 500:
        logger.error(f"HTTP {exc.status_code}: {exc.detail}")
    elif exc.status_code >= 400:
        logger.warning(f"HTTP {exc.status_code}: {exc.detail}")

    content = exc.detail if isinstance(exc.detail, dict) else {"detail": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Unexpected errors: full detail in logs, generic message to the client
    """
    logger.exception(f"Unhandled exception on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal server error",
            "detail": str(exc) if is_development() else "An error occurred",
        }
    )


if __name__ == "__main__":
    import uvicorn

    try:
        validate_config()
    except ValueError as e:
        logger.error(str(e))
        raise SystemExit(1)

    logger.info("Configuration validated successfully")

    # SECURITY: слушаем только localhost, доступ извне через nginx
    uvicorn.run(
        "api_server:app",
        host="127.0.0.1",
        port=8003,
        reload=is_development(),
        log_level="info",
    )
