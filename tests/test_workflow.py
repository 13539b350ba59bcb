import pytest
from unittest.mock import MagicMock

from sqlalchemy.exc import OperationalError

from access_service.application.dto import ProfileUpdate
from access_service.application.rate_limit import FixedWindowRateLimiter
from access_service.application.use_cases.admin_requests import (
    ALREADY_REVIEWED,
    PENDING_EXISTS,
    AdminRequestWorkflow,
    IAdminRequestRepository,
)
from access_service.domain.entities import AdminRequest, RequestStatus, Role
from access_service.domain.errors import BadRequest, Conflict, Forbidden, Internal, NotFound, TooManyRequests
from access_service.infrastructure.models import AdminRequestORM
from access_service.infrastructure.repositories import AdminRequestRepository, UserRepository

REVIEWER = "dean@campus.edu"


@pytest.fixture
def workflow(db_session, clock):
    return AdminRequestWorkflow(
        users=UserRepository(db_session),
        requests=AdminRequestRepository(db_session),
        reviewer_email=REVIEWER,
        clock=clock,
    )


def _count_requests(db_session):
    return db_session.query(AdminRequestORM).count()


def test_create_returns_pending_request(workflow, make_user):
    """Тест создания заявки пользователем без заявок"""
    user = make_user("alice@campus.edu", institution="MIT", mobile="+100")

    request = workflow.create(user.id, "I teach CS301")

    assert request.status is RequestStatus.PENDING
    assert request.user_id == user.id
    assert request.email == "alice@campus.edu"
    assert request.institution == "MIT"
    assert request.mobile == "+100"
    assert request.reason == "I teach CS301"
    assert request.reviewed_at is None
    assert request.reviewed_by is None


def test_create_defaults_missing_profile_fields(workflow, make_user):
    """Тест снимка профиля без учебного заведения и телефона"""
    user = make_user("bob@campus.edu")

    request = workflow.create(user.id)

    assert request.institution == "Not specified"
    assert request.mobile == "Not specified"
    assert request.reason is None


def test_create_truncates_and_trims_reason(workflow, make_user):
    """Тест обрезки причины до 500 символов"""
    user = make_user("carol@campus.edu")

    request = workflow.create(user.id, "  " + "x" * 600)

    assert request.reason == "x" * 498


def test_create_blank_reason_is_absent(workflow, make_user):
    user = make_user("dave@campus.edu")

    request = workflow.create(user.id, "    ")

    assert request.reason is None


def test_create_unknown_user(workflow):
    """Тест заявки от несуществующего пользователя"""
    with pytest.raises(NotFound):
        workflow.create("00000000-0000-0000-0000-000000000000")


def test_create_duplicate_pending_conflicts_without_insert(workflow, make_user, db_session):
    """Тест повторной заявки при наличии pending"""
    user = make_user("erin@campus.edu")
    workflow.create(user.id)

    with pytest.raises(Conflict) as exc:
        workflow.create(user.id)

    assert str(exc.value) == PENDING_EXISTS
    assert _count_requests(db_session) == 1


def test_snapshot_not_changed_by_profile_edit(workflow, make_user, db_session):
    """Тест: правка профиля не меняет поданную заявку"""
    user = make_user("frank@campus.edu", name="Frank", institution="Old U")
    request = workflow.create(user.id)

    UserRepository(db_session).update_profile(user.id, ProfileUpdate(name="Franklin", institution="New U"))

    stored = AdminRequestRepository(db_session).get(request.id)
    assert stored.name == "Frank"
    assert stored.institution == "Old U"


def test_approve_escalates_role(workflow, make_user, db_session):
    """Тест одобрения: статус approved и роль admin"""
    user = make_user("grace@campus.edu")
    request = workflow.create(user.id)

    updated = workflow.decide(request.id, "approve", "Dean@Campus.edu ")

    assert updated.status is RequestStatus.APPROVED
    assert updated.reviewed_by == REVIEWER
    assert updated.reviewed_at is not None
    assert UserRepository(db_session).get_by_id(user.id).role is Role.ADMIN


def test_reject_leaves_role(workflow, make_user, db_session):
    """Тест отклонения: роль не меняется"""
    user = make_user("heidi@campus.edu")
    request = workflow.create(user.id)

    updated = workflow.decide(request.id, "reject", REVIEWER)

    assert updated.status is RequestStatus.REJECTED
    assert updated.reviewed_by == REVIEWER
    assert updated.reviewed_at is not None
    assert UserRepository(db_session).get_by_id(user.id).role is Role.STUDENT


@pytest.mark.parametrize("first, second", [
    ("approve", "approve"),
    ("approve", "reject"),
    ("reject", "approve"),
    ("reject", "reject"),
])
def test_decided_requests_are_terminal(workflow, make_user, db_session, first, second):
    """Тест: повторное решение по заявке - Conflict без изменений"""
    user = make_user("ivan@campus.edu")
    request = workflow.create(user.id)
    decided = workflow.decide(request.id, first, REVIEWER)
    role_before = UserRepository(db_session).get_by_id(user.id).role

    with pytest.raises(Conflict) as exc:
        workflow.decide(request.id, second, REVIEWER)

    assert str(exc.value) == ALREADY_REVIEWED
    again = AdminRequestRepository(db_session).get(request.id)
    assert again.status is decided.status
    assert again.reviewed_at == decided.reviewed_at
    assert UserRepository(db_session).get_by_id(user.id).role is role_before


def test_decide_by_non_reviewer_forbidden(workflow, make_user, db_session):
    user = make_user("judy@campus.edu")
    request = workflow.create(user.id)

    with pytest.raises(Forbidden) as exc:
        workflow.decide(request.id, "approve", "judy@campus.edu")

    assert exc.value.event == "unauthorized_review_attempt"
    assert AdminRequestRepository(db_session).get(request.id).status is RequestStatus.PENDING


def test_decide_malformed_id_before_lookup():
    """Тест: невалидный id отсекается до обращения к хранилищу"""
    requests = MagicMock(spec=IAdminRequestRepository)
    wf = AdminRequestWorkflow(users=MagicMock(), requests=requests, reviewer_email=REVIEWER)

    with pytest.raises(BadRequest):
        wf.decide("not-a-uuid", "approve", REVIEWER)

    requests.get.assert_not_called()


def test_decide_invalid_action(workflow, make_user):
    user = make_user("kim@campus.edu")
    request = workflow.create(user.id)

    with pytest.raises(BadRequest):
        workflow.decide(request.id, "promote", REVIEWER)
    with pytest.raises(BadRequest):
        workflow.decide(request.id, None, REVIEWER)


def test_decide_missing_request(workflow):
    with pytest.raises(NotFound):
        workflow.decide("123e4567-e89b-12d3-a456-426614174000", "approve", REVIEWER)


def test_decide_loses_race_on_conditional_update(make_user, db_session, clock):
    """Тест: если статус сменился между чтением и записью - Conflict"""
    user = make_user("leo@campus.edu")
    real = AdminRequestRepository(db_session)
    wf = AdminRequestWorkflow(UserRepository(db_session), real, REVIEWER, clock=clock)
    request = wf.create(user.id)

    stale = MagicMock(wraps=real)
    stale.get.return_value = request
    stale.mark_reviewed.return_value = False
    racing = AdminRequestWorkflow(UserRepository(db_session), stale, REVIEWER, clock=clock)

    with pytest.raises(Conflict):
        racing.decide(request.id, "approve", REVIEWER)

    stale.rollback.assert_called_once()
    assert UserRepository(db_session).get_by_id(user.id).role is Role.STUDENT


def test_mark_reviewed_is_conditional(make_user, db_session, clock):
    user = make_user("mia@campus.edu")
    repo = AdminRequestRepository(db_session)
    wf = AdminRequestWorkflow(UserRepository(db_session), repo, REVIEWER, clock=clock)
    request = wf.create(user.id)

    assert repo.mark_reviewed(request.id, RequestStatus.APPROVED, REVIEWER, clock()) is True
    assert repo.mark_reviewed(request.id, RequestStatus.REJECTED, REVIEWER, clock()) is False
    repo.commit()
    assert repo.get(request.id).status is RequestStatus.APPROVED


def test_pending_unique_index_backstop(make_user, db_session, clock):
    """Тест: уникальный индекс ловит вторую pending-заявку мимо проверки"""
    user = make_user("nina@campus.edu")
    repo = AdminRequestRepository(db_session)

    def pending(request_id):
        return AdminRequest(
            id=request_id, user_id=user.id, name="Nina", email=user.email,
            institution="Not specified", mobile="Not specified", reason=None,
            status=RequestStatus.PENDING, created_at=clock(),
        )

    repo.add(pending("11111111-1111-1111-1111-111111111111"))
    with pytest.raises(Conflict):
        repo.add(pending("22222222-2222-2222-2222-222222222222"))
    assert _count_requests(db_session) == 1


def test_new_request_allowed_after_rejection(workflow, make_user):
    user = make_user("oscar@campus.edu")
    first = workflow.create(user.id)
    workflow.decide(first.id, "reject", REVIEWER)

    second = workflow.create(user.id)

    assert second.id != first.id
    assert second.status is RequestStatus.PENDING


def test_list_requires_reviewer(workflow):
    with pytest.raises(Forbidden):
        workflow.list("someone@campus.edu")


def test_list_newest_first_with_filter(workflow, make_user):
    """Тест списка заявок: сначала новые, фильтр по статусу"""
    a = make_user("pat@campus.edu")
    b = make_user("quinn@campus.edu")
    first = workflow.create(a.id)
    second = workflow.create(b.id)
    workflow.decide(first.id, "approve", REVIEWER)

    assert [r.id for r in workflow.list(REVIEWER)] == [second.id, first.id]
    assert [r.id for r in workflow.list(REVIEWER, "pending")] == [second.id]
    assert [r.id for r in workflow.list(REVIEWER, RequestStatus.APPROVED)] == [first.id]
    with pytest.raises(BadRequest):
        workflow.list(REVIEWER, "archived")


def test_get_own_status(workflow, make_user):
    """Тест статуса собственной заявки"""
    user = make_user("rita@campus.edu")
    assert workflow.get_own_status(user.id) is None

    first = workflow.create(user.id)
    workflow.decide(first.id, "reject", REVIEWER)
    second = workflow.create(user.id)

    assert workflow.get_own_status(user.id).id == second.id


def test_get_own_status_storage_error_is_not_none():
    """Тест: ошибка хранилища не маскируется под отсутствие заявки"""
    db = MagicMock()
    db.query.side_effect = OperationalError("SELECT", {}, Exception("db down"))
    wf = AdminRequestWorkflow(users=MagicMock(), requests=AdminRequestRepository(db), reviewer_email=REVIEWER)

    with pytest.raises(Internal):
        wf.get_own_status("some-user")
    db.rollback.assert_called_once()


def test_revoke_super_admin_forbidden(workflow, make_user):
    """Тест: ревьюера нельзя понизить"""
    make_user(REVIEWER, role=Role.SUPER_ADMIN)

    with pytest.raises(Forbidden):
        workflow.revoke("DEAN@campus.edu", REVIEWER)
    with pytest.raises(Forbidden):
        workflow.revoke(REVIEWER, "someone@campus.edu")


def test_revoke_demotes_and_rejects_approved(workflow, make_user, db_session):
    """Тест отзыва прав: роль student и approved -> rejected"""
    user = make_user("sam@campus.edu")
    request = workflow.create(user.id, "labs")
    workflow.decide(request.id, "approve", REVIEWER)

    demoted = workflow.revoke("Sam@Campus.edu", REVIEWER)

    assert demoted.role is Role.STUDENT
    stored = AdminRequestRepository(db_session).get(request.id)
    assert stored.status is RequestStatus.REJECTED
    assert stored.reviewed_by == REVIEWER


def test_revoke_requires_reviewer(workflow, make_user, db_session):
    user = make_user("tina@campus.edu", role=Role.ADMIN)

    with pytest.raises(Forbidden):
        workflow.revoke(user.email, "tina@campus.edu")
    assert UserRepository(db_session).get_by_id(user.id).role is Role.ADMIN


def test_revoke_unknown_user(workflow):
    with pytest.raises(NotFound):
        workflow.revoke("ghost@campus.edu", REVIEWER)


def test_unconfigured_reviewer_fails_closed(db_session, make_user, clock):
    """Тест: без настроенного ревьюера никто не может ревьюить"""
    wf = AdminRequestWorkflow(UserRepository(db_session), AdminRequestRepository(db_session), None, clock=clock)
    user = make_user("uma@campus.edu")
    request = wf.create(user.id)

    for actor in (REVIEWER, "", None):
        with pytest.raises(Forbidden):
            wf.decide(request.id, "approve", actor)
        with pytest.raises(Forbidden):
            wf.list(actor)


def test_rate_limit_sixth_call(make_user, db_session, clock):
    """Тест: шестой вызов create за минуту - TooManyRequests"""
    now = [0.0]
    limiter = FixedWindowRateLimiter(limit=5, window_seconds=60, clock=lambda: now[0])
    wf = AdminRequestWorkflow(UserRepository(db_session), AdminRequestRepository(db_session),
                              REVIEWER, limiter=limiter, clock=clock)
    user = make_user("vera@campus.edu")

    first = wf.create(user.id)
    for _ in range(4):
        with pytest.raises(Conflict):
            wf.create(user.id)
    with pytest.raises(TooManyRequests):
        wf.create(user.id)

    # после окна и без pending-заявки - снова можно
    wf.decide(first.id, "reject", REVIEWER)
    now[0] = 61.0
    assert wf.create(user.id).status is RequestStatus.PENDING


def test_rate_limit_checked_before_user_lookup():
    limiter = MagicMock()
    limiter.check.return_value = False
    users = MagicMock()
    wf = AdminRequestWorkflow(users=users, requests=MagicMock(), reviewer_email=REVIEWER, limiter=limiter)

    with pytest.raises(TooManyRequests):
        wf.create("user-1")

    limiter.check.assert_called_once_with("user-1")
    users.get_by_id.assert_not_called()


def test_stats(workflow, make_user):
    make_user(REVIEWER, role=Role.SUPER_ADMIN)
    a = make_user("wes@campus.edu")
    make_user("xena@campus.edu")
    workflow.decide(workflow.create(a.id).id, "approve", REVIEWER)

    stats = workflow.stats(REVIEWER)

    assert stats.users_by_role == {"student": 1, "admin": 1, "super_admin": 1}
    assert stats.requests_by_status == {"pending": 0, "approved": 1, "rejected": 0}
