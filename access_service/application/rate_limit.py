import threading
import time
from dataclasses import dataclass
from typing import Callable


class RateLimiter:
    def check(self, key: str) -> bool: ...


@dataclass
class _Window:
    count: int
    reset_at: float


class FixedWindowRateLimiter(RateLimiter):
    """Счётчики в памяти процесса: годится только для одного инстанса.

    Окно открывается первым вызовом и живёт window_seconds; просроченные
    записи перезаписываются при следующем обращении к тому же ключу.
    """

    def __init__(self, limit: int = 5, window_seconds: float = 60,
                 clock: Callable[[], float] = time.monotonic):
        self.limit = limit
        self.window_seconds = window_seconds
        self.clock = clock
        self._windows: dict[str, _Window] = {}
        self._lock = threading.Lock()

    def check(self, key: str) -> bool:
        now = self.clock()
        with self._lock:
            window = self._windows.get(key)
            if window is None or now > window.reset_at:
                self._windows[key] = _Window(count=1, reset_at=now + self.window_seconds)
                return True
            if window.count >= self.limit:
                return False
            window.count += 1
            return True

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()
