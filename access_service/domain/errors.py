class AccessError(Exception):
    """Базовая ошибка сервиса; сообщение показывается пользователю как есть.

    event - имя события безопасности, если попытку нужно учесть отдельно.
    """

    def __init__(self, message: str, event: str | None = None):
        super().__init__(message)
        self.message = message
        self.event = event


class Unauthenticated(AccessError):
    pass


class Forbidden(AccessError):
    pass


class NotFound(AccessError):
    pass


class BadRequest(AccessError):
    pass


class Conflict(AccessError):
    pass


class TooManyRequests(AccessError):
    pass


class Internal(AccessError):
    pass
