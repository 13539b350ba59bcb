from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ....application.dto import ProfileUpdate
from ....application.use_cases.register_user import UpdateProfile
from ....domain.entities import User
from ....domain.errors import AccessError
from ....infrastructure.db import get_db
from ....infrastructure.repositories import UserRepository
from ..authz import get_current_user
from ..errors import to_http
from ..schemas import ProfileUpdateReq, UserResp

router = APIRouter(prefix="/api/users", tags=["users"])

@router.put("/me", response_model=UserResp)
def update_me(payload: ProfileUpdateReq, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    # снимки в уже поданных заявках не меняются
    try:
        updated = UpdateProfile(UserRepository(db)).execute(user.id, ProfileUpdate(**payload.model_dump()))
    except AccessError as e:
        raise to_http(e)
    return UserResp.model_validate(updated)
