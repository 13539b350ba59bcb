import redis
import structlog
from limits import RateLimitItemPerSecond, strategies
from limits.storage import Storage, storage_from_string
from slowapi import Limiter
from slowapi.util import get_remote_address

from ..application.rate_limit import FixedWindowRateLimiter, RateLimiter
from ..config import settings

logger = structlog.get_logger()


class SharedWindowRateLimiter(RateLimiter):
    """Фиксированное окно в общем хранилище limits, для нескольких инстансов сервиса.

    Инкремент и TTL ставятся одной операцией хранилища (Lua-скрипт в Redis),
    так что ключ без срока жизни не остаётся.
    """

    def __init__(self, storage: Storage, limit: int, window_seconds: int,
                 namespace: str = "admin-requests"):
        self.storage = storage
        self.limit = limit
        self.window_seconds = window_seconds
        self.namespace = namespace
        self.item = RateLimitItemPerSecond(limit, window_seconds)
        self.strategy = strategies.FixedWindowRateLimiter(storage)

    def check(self, key: str) -> bool:
        try:
            return self.strategy.hit(self.item, self.namespace, key)
        except redis.RedisError as e:
            # Redis недоступен: пропускаем запрос, но фиксируем в логах
            logger.warning("rate_limit.backend_unavailable", key=key, error=str(e))
            return True


def build_request_limiter() -> RateLimiter:
    backend = settings.ADMIN_REQUEST_RATE_LIMIT_BACKEND.lower()
    if backend == "redis":
        storage = storage_from_string(
            settings.REDIS_URL,
            socket_connect_timeout=5,
            socket_timeout=5,
        )
        return SharedWindowRateLimiter(
            storage,
            limit=settings.ADMIN_REQUEST_RATE_LIMIT,
            window_seconds=settings.ADMIN_REQUEST_RATE_WINDOW_SECONDS,
        )
    if backend == "memory":
        return FixedWindowRateLimiter(
            limit=settings.ADMIN_REQUEST_RATE_LIMIT,
            window_seconds=settings.ADMIN_REQUEST_RATE_WINDOW_SECONDS,
        )
    raise ValueError(f"Unknown rate limit backend: {settings.ADMIN_REQUEST_RATE_LIMIT_BACKEND}")


# IP-лимиты для register/login (slowapi)
ip_limiter = Limiter(key_func=get_remote_address, storage_uri=settings.RATE_LIMIT_STORAGE_URI)
