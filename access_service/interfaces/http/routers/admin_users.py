from fastapi import APIRouter, Depends

from ....application.use_cases.admin_requests import AdminRequestWorkflow
from ....domain.entities import User
from ....domain.errors import AccessError
from ....infrastructure.metrics import admin_request_transitions_total
from ..authz import get_current_user, get_workflow
from ..errors import to_http
from ..schemas import RevokeReq, RevokeResp, StatsResp, UserList, UserResp

router = APIRouter(prefix="/api/admin", tags=["admin"])

@router.get("/users", response_model=UserList)
def list_users(user: User = Depends(get_current_user), workflow: AdminRequestWorkflow = Depends(get_workflow)):
    try:
        rows = workflow.list_users(user.email)
    except AccessError as e:
        raise to_http(e)
    return UserList(users=[UserResp.model_validate(row) for row in rows])

@router.post("/users/revoke", response_model=RevokeResp)
def revoke_access(
    payload: RevokeReq,
    user: User = Depends(get_current_user),
    workflow: AdminRequestWorkflow = Depends(get_workflow),
):
    try:
        demoted = workflow.revoke(payload.email, user.email)
    except AccessError as e:
        raise to_http(e)
    admin_request_transitions_total.labels(action="revoke").inc()
    return RevokeResp(user=UserResp.model_validate(demoted))

@router.get("/stats", response_model=StatsResp)
def stats(user: User = Depends(get_current_user), workflow: AdminRequestWorkflow = Depends(get_workflow)):
    try:
        result = workflow.stats(user.email)
    except AccessError as e:
        raise to_http(e)
    return StatsResp(users_by_role=result.users_by_role, requests_by_status=result.requests_by_status)
