from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy import func
from sqlalchemy.orm import Session

from ....infrastructure.db import get_db
from ....infrastructure.rate_limit import ip_limiter
from ....infrastructure.repositories import UserRepository
from ....infrastructure.security import PasswordHasher, create_access_token
from ....application.authority import is_super_admin
from ....application.dto import RegisterUserInput
from ....application.use_cases.register_user import RegisterUser
from ....domain.entities import User, can_manage_content
from ....domain.errors import AccessError
from ....interfaces.http.schemas import RegisterReq, LoginReq, MeResp, UserResp, TokenResp
from ....infrastructure.models import UserORM
from ....config import settings
from ..authz import get_current_user
from ..errors import to_http

router = APIRouter(prefix="/api/auth", tags=["auth"])

@router.get("/health")
def health():
    return {"status": "ok"}

@router.post("/register", response_model=UserResp, status_code=status.HTTP_201_CREATED)
@ip_limiter.limit(f"{settings.RATE_LIMIT_PER_MINUTE}/minute")
def register(
    request: Request,
    payload: RegisterReq,
    db: Session = Depends(get_db),
):
    uc = RegisterUser(repo=UserRepository(db), hasher=PasswordHasher(), reviewer_email=settings.SUPER_ADMIN_EMAIL)
    try:
        user = uc.execute(RegisterUserInput(**payload.model_dump()))
    except AccessError as e:
        raise to_http(e)
    return UserResp.model_validate(user)

@router.post("/login", response_model=TokenResp)
@ip_limiter.limit(f"{settings.LOGIN_RATE_LIMIT_PER_MINUTE}/minute")
def login(
    request: Request,
    payload: LoginReq,
    db: Session = Depends(get_db),
):
    # Более строгий лимит для логина (защита от брутфорса)
    email = payload.email.strip().lower()
    row = db.query(UserORM).filter(func.lower(UserORM.email) == email).first()
    if not row:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    valid, new_hash = PasswordHasher().verify_and_update(payload.password, row.password_hash)
    if not valid:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if new_hash:
        row.password_hash = new_hash
        db.commit()
    token = create_access_token(sub=row.email, role=row.role)
    return TokenResp(access_token=token)


@router.get("/me", response_model=MeResp)
def me(user: User = Depends(get_current_user)):
    return MeResp(
        id=user.id,
        email=user.email,
        role=user.role,
        name=user.name,
        institution=user.institution,
        mobile=user.mobile,
        is_super_admin=is_super_admin(user.email, settings.SUPER_ADMIN_EMAIL),
        can_manage_content=can_manage_content(user.role),
    )
