from __future__ import annotations

import re
import uuid
from datetime import datetime, timezone
from typing import Callable

import structlog

from ...domain.entities import AdminRequest, RequestStatus, ReviewAction, Role, User
from ...domain.errors import BadRequest, Conflict, Forbidden, NotFound, TooManyRequests
from ..authority import is_super_admin, normalize_email
from ..dto import AccessStats
from ..rate_limit import RateLimiter
from .register_user import IUserRepository

logger = structlog.get_logger()

REASON_MAX_LENGTH = 500
NOT_SPECIFIED = "Not specified"
PENDING_EXISTS = "You already have a pending faculty access request"
ALREADY_REVIEWED = "Request has already been reviewed"

_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)


class IAdminRequestRepository:
    def get(self, request_id: str) -> AdminRequest | None: ...
    def find_pending_for_user(self, user_id: str) -> AdminRequest | None: ...
    def latest_for_user(self, user_id: str) -> AdminRequest | None: ...
    def list(self, status: RequestStatus | None = None) -> list[AdminRequest]: ...
    def add(self, request: AdminRequest) -> AdminRequest: ...
    def mark_reviewed(self, request_id: str, status: RequestStatus,
                      reviewed_by: str, reviewed_at: datetime) -> bool: ...
    def reject_approved_for_user(self, user_id: str, reviewed_by: str, reviewed_at: datetime) -> int: ...
    def count_by_status(self) -> dict[RequestStatus, int]: ...
    def commit(self) -> None: ...
    def rollback(self) -> None: ...


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def clean_reason(reason, max_length: int = REASON_MAX_LENGTH) -> str | None:
    if reason is None:
        return None
    text = str(reason)[:max_length].strip()
    return text or None


class AdminRequestWorkflow:
    """Заявки на доступ преподавателя и смена роли student <-> admin.

    Одобрять, отклонять и отзывать может только ревьюер из конфигурации
    (reviewer_email). Репозитории пользователей и заявок работают в одной
    сессии БД, поэтому commit() репозитория заявок фиксирует обе записи.
    """

    def __init__(self, users: IUserRepository, requests: IAdminRequestRepository,
                 reviewer_email: str | None, limiter: RateLimiter | None = None,
                 clock: Callable[[], datetime] = utcnow,
                 reason_max_length: int = REASON_MAX_LENGTH):
        self.users = users
        self.requests = requests
        self.reviewer_email = reviewer_email
        self.limiter = limiter
        self.clock = clock
        self.reason_max_length = reason_max_length

    def _require_reviewer(self, actor_email: str | None, operation: str) -> str:
        if not is_super_admin(actor_email, self.reviewer_email):
            logger.warning(
                "security.unauthorized_review_attempt",
                actor=actor_email,
                operation=operation,
            )
            raise Forbidden("Access denied. Super admin only.", event="unauthorized_review_attempt")
        return normalize_email(actor_email)

    def create(self, user_id: str, reason=None) -> AdminRequest:
        if self.limiter is not None and not self.limiter.check(user_id):
            raise TooManyRequests("Too many requests. Please try again later.")

        user = self.users.get_by_id(user_id)
        if user is None:
            raise NotFound("User not found")

        if self.requests.find_pending_for_user(user_id) is not None:
            raise Conflict(PENDING_EXISTS)

        request = AdminRequest(
            id=str(uuid.uuid4()),
            user_id=user.id,
            name=user.name,
            email=user.email,
            institution=user.institution or NOT_SPECIFIED,
            mobile=user.mobile or NOT_SPECIFIED,
            reason=clean_reason(reason, self.reason_max_length),
            status=RequestStatus.PENDING,
            created_at=self.clock(),
        )
        created = self.requests.add(request)
        logger.info("admin_request.created", request_id=created.id, user_id=user_id)
        return created

    def list(self, actor_email: str | None, status=None) -> list[AdminRequest]:
        self._require_reviewer(actor_email, "list")
        if status is not None and not isinstance(status, RequestStatus):
            try:
                status = RequestStatus(status)
            except ValueError:
                raise BadRequest(f"Invalid status: {status}")
        return self.requests.list(status)

    def get_own_status(self, user_id: str) -> AdminRequest | None:
        return self.requests.latest_for_user(user_id)

    def decide(self, request_id: str, action, reviewer_email: str | None) -> AdminRequest:
        reviewer = self._require_reviewer(reviewer_email, "decide")

        if not isinstance(request_id, str) or not _UUID_RE.match(request_id):
            raise BadRequest("Invalid request ID format")
        try:
            action = ReviewAction(action)
        except ValueError:
            raise BadRequest("Invalid action. Must be 'approve' or 'reject'")

        request = self.requests.get(request_id)
        if request is None:
            raise NotFound("Request not found")
        if not request.is_pending:
            raise Conflict(ALREADY_REVIEWED)

        new_status = RequestStatus.APPROVED if action is ReviewAction.APPROVE else RequestStatus.REJECTED
        now = self.clock()
        try:
            # условное обновление: второй ревью-вызов увидит 0 строк
            if not self.requests.mark_reviewed(request_id, new_status, reviewer, now):
                raise Conflict(ALREADY_REVIEWED)
            if action is ReviewAction.APPROVE:
                if not self.users.set_role(request.user_id, Role.ADMIN):
                    raise NotFound("User not found")
            self.requests.commit()
        except Exception:
            self.requests.rollback()
            raise

        logger.info(
            "admin_request.decided",
            request_id=request_id,
            action=action.value,
            reviewer=reviewer,
        )
        return self.requests.get(request_id)

    def revoke(self, user_email: str, reviewer_email: str | None) -> User:
        reviewer = self._require_reviewer(reviewer_email, "revoke")
        if is_super_admin(user_email, self.reviewer_email):
            raise Forbidden("Cannot revoke super admin access")

        user = self.users.get_by_email(normalize_email(user_email))
        if user is None:
            raise NotFound("User not found")

        now = self.clock()
        try:
            self.users.set_role(user.id, Role.STUDENT)
            flipped = self.requests.reject_approved_for_user(user.id, reviewer, now)
            self.requests.commit()
        except Exception:
            self.requests.rollback()
            raise

        logger.info("admin_access.revoked", user_id=user.id, reviewer=reviewer, requests_rejected=flipped)
        return self.users.get_by_id(user.id)

    def list_users(self, actor_email: str | None) -> list[User]:
        self._require_reviewer(actor_email, "list_users")
        return self.users.list_all()

    def stats(self, actor_email: str | None) -> AccessStats:
        self._require_reviewer(actor_email, "stats")
        by_role = self.users.count_by_role()
        by_status = self.requests.count_by_status()
        return AccessStats(
            users_by_role={role.value: by_role.get(role, 0) for role in Role},
            requests_by_status={status.value: by_status.get(status, 0) for status in RequestStatus},
        )
