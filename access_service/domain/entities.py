from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    STUDENT = "student"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ReviewAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


def can_manage_content(role: Role) -> bool:
    """Может ли роль редактировать расписание, заметки и т.п."""
    if role is Role.STUDENT:
        return False
    if role is Role.ADMIN or role is Role.SUPER_ADMIN:
        return True
    raise ValueError(f"Unknown role: {role!r}")


@dataclass(frozen=True)
class User:
    id: str | None
    email: str
    role: Role = Role.STUDENT
    name: str | None = None
    institution: str | None = None
    mobile: str | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class AdminRequest:
    id: str
    user_id: str
    name: str | None
    email: str
    institution: str
    mobile: str
    reason: str | None
    status: RequestStatus
    created_at: datetime
    reviewed_at: datetime | None = None
    reviewed_by: str | None = None

    @property
    def is_pending(self) -> bool:
        return self.status is RequestStatus.PENDING
