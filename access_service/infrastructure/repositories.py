from __future__ import annotations

import functools
from datetime import datetime

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .models import AdminRequestORM, UserORM
from ..application.dto import ProfileUpdate, RegisterUserInput
from ..application.use_cases.admin_requests import IAdminRequestRepository, PENDING_EXISTS
from ..application.use_cases.register_user import IUserRepository
from ..domain.entities import AdminRequest, RequestStatus, Role, User
from ..domain.errors import Conflict, Internal

def to_domain(u: UserORM) -> User:
    return User(
        id=u.id, email=u.email, role=u.role,
        name=u.name, institution=u.institution, mobile=u.mobile,
        created_at=u.created_at,
    )

def request_to_domain(r: AdminRequestORM) -> AdminRequest:
    return AdminRequest(
        id=r.id, user_id=r.user_id, name=r.name, email=r.email,
        institution=r.institution, mobile=r.mobile, reason=r.reason,
        status=r.status, created_at=r.created_at,
        reviewed_at=r.reviewed_at, reviewed_by=r.reviewed_by,
    )

def storage_errors(method):
    """Ошибки драйвера превращаются в Internal с откатом сессии."""
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise Internal(f"Storage error: {e.__class__.__name__}") from e
    return wrapper

class UserRepository(IUserRepository):
    def __init__(self, db: Session): self.db = db

    @storage_errors
    def get_by_id(self, user_id: str) -> User | None:
        row = self.db.get(UserORM, user_id)
        return to_domain(row) if row else None

    @storage_errors
    def get_by_email(self, email: str) -> User | None:
        row = self.db.query(UserORM).filter(func.lower(UserORM.email) == email.strip().lower()).first()
        return to_domain(row) if row else None

    @storage_errors
    def create(self, data: RegisterUserInput, password_hash: str, role: Role = Role.STUDENT) -> User:
        row = UserORM(
            email=data.email, password_hash=password_hash, role=role,
            name=data.name, institution=data.institution, mobile=data.mobile,
        )
        self.db.add(row); self.db.commit(); self.db.refresh(row)
        return to_domain(row)

    @storage_errors
    def set_role(self, user_id: str, role: Role) -> bool:
        # без commit: фиксирует вызывающий вместе со статусом заявки
        result = self.db.execute(update(UserORM).where(UserORM.id == user_id).values(role=role))
        return result.rowcount > 0

    @storage_errors
    def update_profile(self, user_id: str, data: ProfileUpdate) -> User | None:
        row = self.db.get(UserORM, user_id)
        if not row:
            return None
        if data.name is not None: row.name = data.name
        if data.institution is not None: row.institution = data.institution
        if data.mobile is not None: row.mobile = data.mobile
        self.db.commit(); self.db.refresh(row)
        return to_domain(row)

    @storage_errors
    def list_all(self) -> list[User]:
        rows = self.db.query(UserORM).order_by(UserORM.created_at.desc()).all()
        return [to_domain(row) for row in rows]

    @storage_errors
    def count_by_role(self) -> dict[Role, int]:
        rows = self.db.query(UserORM.role, func.count(UserORM.id)).group_by(UserORM.role).all()
        return {role: count for role, count in rows}

class AdminRequestRepository(IAdminRequestRepository):
    def __init__(self, db: Session): self.db = db

    @storage_errors
    def get(self, request_id: str) -> AdminRequest | None:
        row = self.db.get(AdminRequestORM, request_id, populate_existing=True)
        return request_to_domain(row) if row else None

    @storage_errors
    def find_pending_for_user(self, user_id: str) -> AdminRequest | None:
        row = (self.db.query(AdminRequestORM)
               .filter(AdminRequestORM.user_id == user_id, AdminRequestORM.status == RequestStatus.PENDING)
               .first())
        return request_to_domain(row) if row else None

    @storage_errors
    def latest_for_user(self, user_id: str) -> AdminRequest | None:
        row = (self.db.query(AdminRequestORM)
               .filter(AdminRequestORM.user_id == user_id)
               .order_by(AdminRequestORM.created_at.desc())
               .first())
        return request_to_domain(row) if row else None

    @storage_errors
    def list(self, status: RequestStatus | None = None) -> list[AdminRequest]:
        query = self.db.query(AdminRequestORM)
        if status is not None:
            query = query.filter(AdminRequestORM.status == status)
        rows = query.order_by(AdminRequestORM.created_at.desc()).all()
        return [request_to_domain(row) for row in rows]

    def add(self, request: AdminRequest) -> AdminRequest:
        row = AdminRequestORM(
            id=request.id, user_id=request.user_id, name=request.name, email=request.email,
            institution=request.institution, mobile=request.mobile, reason=request.reason,
            status=request.status, created_at=request.created_at,
        )
        try:
            self.db.add(row); self.db.commit(); self.db.refresh(row)
        except IntegrityError as e:
            # сработал частичный уникальный индекс по pending-заявкам
            self.db.rollback()
            raise Conflict(PENDING_EXISTS) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            raise Internal(f"Storage error: {e.__class__.__name__}") from e
        return request_to_domain(row)

    @storage_errors
    def mark_reviewed(self, request_id: str, status: RequestStatus,
                      reviewed_by: str, reviewed_at: datetime) -> bool:
        stmt = (update(AdminRequestORM)
                .where(AdminRequestORM.id == request_id, AdminRequestORM.status == RequestStatus.PENDING)
                .values(status=status, reviewed_by=reviewed_by, reviewed_at=reviewed_at))
        return self.db.execute(stmt).rowcount == 1

    @storage_errors
    def reject_approved_for_user(self, user_id: str, reviewed_by: str, reviewed_at: datetime) -> int:
        stmt = (update(AdminRequestORM)
                .where(AdminRequestORM.user_id == user_id, AdminRequestORM.status == RequestStatus.APPROVED)
                .values(status=RequestStatus.REJECTED, reviewed_by=reviewed_by, reviewed_at=reviewed_at))
        return self.db.execute(stmt).rowcount

    @storage_errors
    def count_by_status(self) -> dict[RequestStatus, int]:
        rows = (self.db.query(AdminRequestORM.status, func.count(AdminRequestORM.id))
                .group_by(AdminRequestORM.status).all())
        return {status: count for status, count in rows}

    @storage_errors
    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()
