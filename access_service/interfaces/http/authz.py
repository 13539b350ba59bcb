from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError
from sqlalchemy.orm import Session

from ...application.rate_limit import RateLimiter
from ...application.use_cases.admin_requests import AdminRequestWorkflow
from ...config import settings
from ...domain.entities import User
from ...domain.errors import AccessError, Unauthenticated
from ...infrastructure.db import get_db
from ...infrastructure.repositories import AdminRequestRepository, UserRepository
from ...infrastructure.security import decode_token
from .errors import to_http

bearer = HTTPBearer()

def get_subject(creds: HTTPAuthorizationCredentials = Depends(bearer)) -> str:
    try:
        return decode_token(creds.credentials)
    except JWTError:
        raise to_http(Unauthenticated("Invalid token", event="invalid_token"))

def get_current_user(email: str = Depends(get_subject), db: Session = Depends(get_db)) -> User:
    # роль всегда берём из БД: в токене она может быть устаревшей после revoke
    try:
        user = UserRepository(db).get_by_email(email)
        if user is None:
            raise Unauthenticated("User not found")
    except AccessError as e:
        raise to_http(e)
    return user

def get_request_limiter(request: Request) -> RateLimiter:
    return request.app.state.request_limiter

def get_workflow(
    db: Session = Depends(get_db),
    limiter: RateLimiter = Depends(get_request_limiter),
) -> AdminRequestWorkflow:
    return AdminRequestWorkflow(
        users=UserRepository(db),
        requests=AdminRequestRepository(db),
        reviewer_email=settings.SUPER_ADMIN_EMAIL,
        limiter=limiter,
        reason_max_length=settings.REASON_MAX_LENGTH,
    )
