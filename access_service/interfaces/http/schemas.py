from datetime import datetime

from pydantic import BaseModel, EmailStr, Field

from ...domain.entities import RequestStatus, Role

class RegisterReq(BaseModel):
    email: EmailStr
    password: str
    name: str | None = Field(default=None, max_length=255)
    institution: str | None = Field(default=None, max_length=255)
    mobile: str | None = Field(default=None, max_length=32)

class LoginReq(BaseModel):
    email: EmailStr
    password: str

class ProfileUpdateReq(BaseModel):
    name: str | None = Field(default=None, max_length=255)
    institution: str | None = Field(default=None, max_length=255)
    mobile: str | None = Field(default=None, max_length=32)

class UserResp(BaseModel):
    id: str
    email: EmailStr
    role: Role
    name: str | None = None
    institution: str | None = None
    mobile: str | None = None
    class Config: from_attributes = True

class MeResp(UserResp):
    is_super_admin: bool = False
    can_manage_content: bool = False

class TokenResp(BaseModel):
    access_token: str
    token_type: str = "bearer"

class AdminRequestOut(BaseModel):
    id: str
    user_id: str
    name: str | None = None
    email: str
    institution: str
    mobile: str
    reason: str | None = None
    status: RequestStatus
    created_at: datetime
    reviewed_at: datetime | None = None
    reviewed_by: str | None = None
    class Config: from_attributes = True

class AdminRequestCreated(BaseModel):
    success: bool = True
    request: AdminRequestOut

class AdminRequestList(BaseModel):
    success: bool = True
    requests: list[AdminRequestOut]

class OwnStatusResp(BaseModel):
    success: bool = True
    has_request: bool
    request: AdminRequestOut | None = None

class DecisionResp(BaseModel):
    success: bool = True
    message: str
    request: AdminRequestOut | None = None

class RevokeReq(BaseModel):
    email: EmailStr

class RevokeResp(BaseModel):
    success: bool = True
    user: UserResp

class UserList(BaseModel):
    success: bool = True
    users: list[UserResp]

class StatsResp(BaseModel):
    success: bool = True
    users_by_role: dict[str, int]
    requests_by_status: dict[str, int]
