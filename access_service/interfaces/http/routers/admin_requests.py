from fastapi import APIRouter, Depends, Query, Request, status

from ....application.use_cases.admin_requests import AdminRequestWorkflow
from ....domain.entities import User
from ....domain.errors import AccessError
from ....infrastructure.metrics import admin_request_transitions_total
from ..authz import get_current_user, get_workflow
from ..errors import to_http
from ..schemas import (
    AdminRequestCreated, AdminRequestList, AdminRequestOut,
    DecisionResp, OwnStatusResp,
)

router = APIRouter(prefix="/api/admin-requests", tags=["admin-requests"])

async def _json_object(request: Request) -> dict:
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}

async def read_reason(request: Request):
    """Причина необязательна: битое или пустое тело - просто нет причины."""
    body = await _json_object(request)
    return body.get("reason") or None

async def read_action(request: Request):
    # битое тело = нет действия, workflow ответит 400 после проверки прав
    body = await _json_object(request)
    return body.get("action")

@router.post("", response_model=AdminRequestCreated, status_code=status.HTTP_201_CREATED)
def create_request(
    reason=Depends(read_reason),
    user: User = Depends(get_current_user),
    workflow: AdminRequestWorkflow = Depends(get_workflow),
):
    try:
        created = workflow.create(user.id, reason)
    except AccessError as e:
        raise to_http(e)
    return AdminRequestCreated(request=AdminRequestOut.model_validate(created))

@router.get("", response_model=AdminRequestList)
def list_requests(
    status_filter: str | None = Query(None, alias="status"),
    user: User = Depends(get_current_user),
    workflow: AdminRequestWorkflow = Depends(get_workflow),
):
    try:
        rows = workflow.list(user.email, status_filter or None)
    except AccessError as e:
        raise to_http(e)
    return AdminRequestList(requests=[AdminRequestOut.model_validate(row) for row in rows])

@router.get("/my-status", response_model=OwnStatusResp)
def my_status(
    user: User = Depends(get_current_user),
    workflow: AdminRequestWorkflow = Depends(get_workflow),
):
    try:
        row = workflow.get_own_status(user.id)
    except AccessError as e:
        raise to_http(e)
    if row is None:
        return OwnStatusResp(has_request=False, request=None)
    return OwnStatusResp(has_request=True, request=AdminRequestOut.model_validate(row))

@router.patch("/{request_id}", response_model=DecisionResp)
def decide_request(
    request_id: str,
    action=Depends(read_action),
    user: User = Depends(get_current_user),
    workflow: AdminRequestWorkflow = Depends(get_workflow),
):
    try:
        updated = workflow.decide(request_id, action, user.email)
    except AccessError as e:
        raise to_http(e)
    admin_request_transitions_total.labels(action=action).inc()
    past = "approved" if action == "approve" else "rejected"
    return DecisionResp(
        message=f"Request {past} successfully",
        request=AdminRequestOut.model_validate(updated) if updated else None,
    )
