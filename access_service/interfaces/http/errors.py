from fastapi import HTTPException, status

from ...domain import errors
from ...infrastructure.metrics import admin_request_rate_limited_total, security_events_total

STATUS_BY_ERROR = {
    errors.Unauthenticated: status.HTTP_401_UNAUTHORIZED,
    errors.Forbidden: status.HTTP_403_FORBIDDEN,
    errors.NotFound: status.HTTP_404_NOT_FOUND,
    errors.BadRequest: status.HTTP_400_BAD_REQUEST,
    errors.Conflict: status.HTTP_409_CONFLICT,
    errors.TooManyRequests: status.HTTP_429_TOO_MANY_REQUESTS,
    errors.Internal: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

def to_http(exc: errors.AccessError) -> HTTPException:
    if exc.event:
        security_events_total.labels(event=exc.event).inc()
    if isinstance(exc, errors.TooManyRequests):
        admin_request_rate_limited_total.inc()
    code = STATUS_BY_ERROR.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
    return HTTPException(status_code=code, detail=exc.message)
