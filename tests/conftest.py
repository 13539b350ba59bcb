import pytest
import os
import sys

CURRENT_DIR = os.path.dirname(__file__)
SERVICE_ROOT = os.path.dirname(CURRENT_DIR)
if SERVICE_ROOT not in sys.path:
    sys.path.insert(0, SERVICE_ROOT)

# До импорта приложения: тестовые настройки окружения
os.environ.setdefault("DATABASE_URL", "sqlite:///./test_access.db")
os.environ.setdefault("ADMIN_REQUEST_RATE_LIMIT_BACKEND", "memory")

from itertools import count
from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import access_service.infrastructure.db
import access_service.main
from access_service.application.dto import RegisterUserInput
from access_service.application.rate_limit import FixedWindowRateLimiter
from access_service.application.use_cases.register_user import ProvisionReviewer
from access_service.config import settings
from access_service.domain.entities import Role
from access_service.infrastructure.db import get_db
from access_service.infrastructure.models import Base
from access_service.infrastructure.rate_limit import ip_limiter
from access_service.infrastructure.repositories import UserRepository
from access_service.infrastructure.security import PasswordHasher

REVIEWER_EMAIL = "dean@campus.edu"
REVIEWER_PASSWORD = "reviewer-secret"

# Тестовая БД в памяти, одно соединение на все потоки TestClient
test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

access_service.infrastructure.db.engine = test_engine
access_service.infrastructure.db.SessionLocal = TestingSessionLocal
access_service.main.engine = test_engine
access_service.main.SessionLocal = TestingSessionLocal

from access_service.main import app


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def setup_test_environment(monkeypatch):
    """Настройка тестового окружения"""
    monkeypatch.setattr(settings, "SUPER_ADMIN_EMAIL", REVIEWER_EMAIL)
    # IP-лимиты slowapi в тестах не нужны
    monkeypatch.setattr(ip_limiter, "enabled", False)
    app.state.request_limiter = FixedWindowRateLimiter(limit=5, window_seconds=60)
    Base.metadata.drop_all(bind=test_engine)
    Base.metadata.create_all(bind=test_engine)
    yield
    Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def db_session():
    db = TestingSessionLocal()
    yield db
    db.close()


@pytest.fixture
def client():
    yield TestClient(app)


@pytest.fixture
def make_user(db_session):
    """Создаёт пользователя напрямую через репозиторий"""
    def _make(email, role=Role.STUDENT, name="Test User", institution=None, mobile=None):
        data = RegisterUserInput(email=email, password="unused", name=name,
                                 institution=institution, mobile=mobile)
        return UserRepository(db_session).create(data, "not-a-real-hash", role=role)
    return _make


@pytest.fixture
def clock():
    """Часы, сдвигающиеся на секунду при каждом вызове"""
    base = datetime(2026, 1, 1, tzinfo=timezone.utc)
    ticks = count()
    return lambda: base + timedelta(seconds=next(ticks))


@pytest.fixture
def login(client):
    """Регистрирует пользователя и возвращает заголовок с токеном"""
    def _login(email, password="password123", **profile):
        client.post("/api/auth/register", json={"email": email, "password": password, **profile})
        response = client.post("/api/auth/login", json={"email": email, "password": password})
        assert response.status_code == 200
        return {"Authorization": f"Bearer {response.json()['access_token']}"}
    return _login


@pytest.fixture
def reviewer_headers(client, db_session):
    """Учётка ревьюера заводится как при старте сервиса, не через регистрацию"""
    ProvisionReviewer(UserRepository(db_session), PasswordHasher(), REVIEWER_EMAIL, REVIEWER_PASSWORD).execute()
    response = client.post("/api/auth/login", json={"email": REVIEWER_EMAIL, "password": REVIEWER_PASSWORD})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['access_token']}"}
