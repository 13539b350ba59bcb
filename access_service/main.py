import time
import logging
import structlog
from fastapi import FastAPI, Request
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text

from .application.use_cases.register_user import ProvisionReviewer
from .infrastructure.db import engine, SessionLocal
from .infrastructure.models import Base
from .infrastructure.metrics import (
    metrics_endpoint,
    http_requests_total,
    http_request_duration_seconds
)
from .infrastructure.rate_limit import build_request_limiter, ip_limiter
from .infrastructure.repositories import UserRepository
from .infrastructure.security import PasswordHasher
from .interfaces.http.routers import admin_requests as admin_requests_router
from .interfaces.http.routers import admin_users as admin_users_router
from .interfaces.http.routers import auth as auth_router
from .interfaces.http.routers import users as users_router
from .config import settings

# Настройка структурированного логирования
log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.make_filtering_bound_logger(log_level),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

app = FastAPI(title="Faculty Access Service", version="0.1.0")
app.state.limiter = ip_limiter
app.state.request_limiter = build_request_limiter()
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Добавляем middleware для правильной кодировки и метрик
@app.middleware("http")
async def add_charset_header(request: Request, call_next):
    start_time = time.time()
    method = request.method
    path = request.url.path

    response = await call_next(request)

    if response.headers.get("content-type", "").startswith("application/json"):
        response.headers["content-type"] = "application/json; charset=utf-8"

    # Метрики
    duration = time.time() - start_time
    status_code = response.status_code
    http_requests_total.labels(method=method, endpoint=path, status=status_code).inc()
    http_request_duration_seconds.labels(method=method, endpoint=path).observe(duration)

    # Логирование
    logger.info(
        "http_request",
        method=method,
        path=path,
        status_code=status_code,
        duration_ms=round(duration * 1000, 2)
    )

    return response


@app.on_event("startup")
def on_startup():
    logger.info("Starting faculty access service", version="0.1.0")
    if not settings.SUPER_ADMIN_EMAIL:
        logger.warning("SUPER_ADMIN_EMAIL is not set, review operations are disabled")
    Base.metadata.create_all(bind=engine)

    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    logger.info("Database connection established")

    with SessionLocal() as db:
        reviewer = ProvisionReviewer(
            UserRepository(db), PasswordHasher(),
            settings.SUPER_ADMIN_EMAIL, settings.SUPER_ADMIN_PASSWORD,
        ).execute()
    if reviewer is not None:
        logger.info("Reviewer account ready", user_id=reviewer.id)


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/metrics")
def metrics():
    """Prometheus metrics endpoint"""
    return metrics_endpoint()


app.include_router(auth_router.router)
app.include_router(users_router.router)
app.include_router(admin_requests_router.router)
app.include_router(admin_users_router.router)
