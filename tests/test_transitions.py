"""Tests for request status transitions and the conditional resolution update."""

from pathlib import Path
import sys
import threading
from datetime import UTC, datetime

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from approval_workflow_api import config  # noqa: E402
from approval_workflow_api.db import Base, get_engine, get_session_factory  # noqa: E402
from approval_workflow_api.errors import AlreadyProcessedError, InvalidIdError  # noqa: E402
from approval_workflow_api.lifecycle import create_request, resolve_request  # noqa: E402
from approval_workflow_api.lifecycle.state import (  # noqa: E402
    DEFAULT_REJECTION_REASON,
    Decision,
    ensure_transition_allowed,
    is_terminal,
    parse_request_id,
    rejection_reason_for,
    same_user,
)
from approval_workflow_api.lifecycle.storage import apply_resolution, save_request, upsert_user  # noqa: E402
from approval_workflow_api.models import Category, Request, RequestStatus, Role, User  # noqa: E402
from approval_workflow_api.security import Caller  # noqa: E402


@pytest.fixture(autouse=True)
def setup_database(monkeypatch, tmp_path):
    db_path = tmp_path / "transitions.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_path}")
    monkeypatch.setenv("IDENTITY_SIGNING_SECRET", "secret")
    config.get_settings.cache_clear()
    get_engine.cache_clear()
    get_session_factory.cache_clear()

    engine = get_engine()
    Base.metadata.create_all(engine)

    yield

    Base.metadata.drop_all(engine)
    config.get_settings.cache_clear()
    get_engine.cache_clear()
    get_session_factory.cache_clear()


@pytest.fixture
def session(setup_database):
    factory = get_session_factory()
    with factory() as session:
        yield session


@pytest.fixture
def persisted_request(session):
    upsert_user(session, Caller(id="U1", role=Role.CREATOR))
    upsert_user(session, Caller(id="U2", role=Role.APPROVER))
    request = save_request(
        session,
        title="Laptop",
        description="Replacement laptop",
        category=Category.PURCHASE,
        creator_id="U1",
    )
    session.commit()
    return request


def test_pending_is_the_only_non_terminal_status():
    assert not is_terminal(RequestStatus.PENDING)
    assert is_terminal(RequestStatus.APPROVED)
    assert is_terminal(RequestStatus.REJECTED)


@pytest.mark.parametrize("current", [RequestStatus.APPROVED, RequestStatus.REJECTED])
@pytest.mark.parametrize("target", [RequestStatus.APPROVED, RequestStatus.REJECTED, RequestStatus.PENDING])
def test_terminal_statuses_reject_every_transition(current, target):
    with pytest.raises(AlreadyProcessedError) as err:
        ensure_transition_allowed(current, target)

    assert err.value.current_status == current.value
    assert current.value.lower() in err.value.message


def test_decision_targets_and_rejection_reason():
    assert Decision.APPROVE.target_status is RequestStatus.APPROVED
    assert Decision.REJECT.target_status is RequestStatus.REJECTED
    assert rejection_reason_for(Decision.APPROVE, "ignored") is None
    assert rejection_reason_for(Decision.REJECT, None) == DEFAULT_REJECTION_REASON
    assert rejection_reason_for(Decision.REJECT, "Over budget") == "Over budget"


def test_parse_request_id_canonicalises_uuid():
    raw = "8F14E45F-CEEA-467A-9575-6E2C6C8E8F3A"

    assert parse_request_id(f" {raw} ") == raw.lower()


@pytest.mark.parametrize("raw", ["", None, "not-an-id", "12345", "507f1f77bcf86cd799439011"])
def test_parse_request_id_rejects_malformed_values(raw):
    with pytest.raises(InvalidIdError):
        parse_request_id(raw)


def test_same_user_compares_string_forms():
    assert same_user(42, "42")
    assert same_user(" U1", "U1")
    assert not same_user("U1", "U2")
    assert not same_user(None, "U1")


def test_new_request_starts_pending_with_empty_resolution(persisted_request):
    assert persisted_request.status is RequestStatus.PENDING
    assert persisted_request.approved_by_id is None
    assert persisted_request.approval_date is None
    assert persisted_request.rejection_reason is None
    assert persisted_request.created_at == persisted_request.updated_at


def test_apply_resolution_sets_resolution_fields(session, persisted_request):
    resolved_at = datetime(2026, 1, 5, 9, 30, tzinfo=UTC)

    updated = apply_resolution(
        session,
        persisted_request,
        new_status=RequestStatus.REJECTED,
        resolver_id="U2",
        rejection_reason="Over budget",
        resolved_at=resolved_at,
    )
    session.commit()

    assert updated.status is RequestStatus.REJECTED
    assert updated.approved_by_id == "U2"
    assert updated.rejection_reason == "Over budget"
    assert updated.approval_date.replace(tzinfo=UTC) == resolved_at


def test_second_resolution_is_refused(session, persisted_request):
    apply_resolution(
        session,
        persisted_request,
        new_status=RequestStatus.APPROVED,
        resolver_id="U2",
        rejection_reason=None,
    )
    session.commit()

    with pytest.raises(AlreadyProcessedError) as err:
        apply_resolution(
            session,
            persisted_request,
            new_status=RequestStatus.REJECTED,
            resolver_id="U2",
            rejection_reason="late",
        )

    assert err.value.current_status == "APPROVED"


def test_concurrent_resolution_has_a_single_winner(setup_database):
    factory = get_session_factory()
    with factory() as session1:
        upsert_user(session1, Caller(id="U1", role=Role.CREATOR))
        upsert_user(session1, Caller(id="U3", role=Role.APPROVER))
        upsert_user(session1, Caller(id="U4", role=Role.APPROVER))
        req = save_request(
            session1,
            title="Budget",
            description="Q3 budget",
            category=Category.BUDGET,
            creator_id="U1",
        )
        session1.commit()

        with factory() as session2:
            same_req_session2 = session2.get(Request, req.id)
            assert same_req_session2.status is RequestStatus.PENDING

            apply_resolution(
                session1,
                req,
                new_status=RequestStatus.APPROVED,
                resolver_id="U3",
                rejection_reason=None,
            )
            session1.commit()

            with pytest.raises(AlreadyProcessedError) as err:
                apply_resolution(
                    session2,
                    same_req_session2,
                    new_status=RequestStatus.REJECTED,
                    resolver_id="U4",
                    rejection_reason="No",
                )
            session2.rollback()

    assert err.value.current_status == "APPROVED"
    with factory() as session3:
        stored = session3.get(Request, req.id)
        assert stored.status is RequestStatus.APPROVED
        assert stored.approved_by_id == "U3"
        assert stored.rejection_reason is None


def test_upsert_user_refreshes_role_and_keeps_known_details(session):
    upsert_user(session, Caller(id="U7", role=Role.CREATOR, name="Alice", email="alice@example.com"))
    session.commit()

    user = upsert_user(session, Caller(id="U7", role=Role.APPROVER))
    session.commit()

    assert user.role is Role.APPROVER
    assert user.name == "Alice"
    assert user.email == "alice@example.com"


def _run_concurrently(*calls):
    """Run *calls* on separate threads released together; return results or exceptions."""

    barrier = threading.Barrier(len(calls))
    outcomes = [None] * len(calls)

    def runner(index, call):
        barrier.wait()
        try:
            outcomes[index] = call()
        except Exception as exc:  # collected for assertions
            outcomes[index] = exc

    threads = [threading.Thread(target=runner, args=(index, call)) for index, call in enumerate(calls)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)
    return outcomes


def test_upsert_user_is_a_single_statement_for_a_new_id(session):
    first = upsert_user(session, Caller(id="U8", role=Role.CREATOR, name="Zed"))
    second = upsert_user(session, Caller(id="U8", role=Role.CREATOR))
    session.commit()

    assert first is second
    assert session.query(User).filter_by(id="U8").count() == 1
    assert second.name == "Zed"


def test_concurrent_first_calls_by_one_identity_both_succeed(setup_database):
    zed = Caller(id="zed", role=Role.CREATOR)
    payload = {"title": "Leave", "description": "PTO", "category": "Leave"}

    outcomes = _run_concurrently(
        lambda: create_request(zed, payload),
        lambda: create_request(zed, payload),
    )

    assert all(not isinstance(outcome, Exception) for outcome in outcomes), outcomes
    assert {outcome.creator.id for outcome in outcomes} == {"zed"}
    with get_session_factory()() as session:
        assert session.query(User).filter_by(id="zed").count() == 1
        assert session.query(Request).filter_by(creator_id="zed").count() == 2


def test_concurrent_approvals_by_a_first_time_approver_have_one_winner(setup_database):
    created = create_request(
        Caller(id="yara", role=Role.CREATOR),
        {"title": "Desk", "description": "Standing desk", "category": "Purchase"},
    )
    erin = Caller(id="erin", role=Role.APPROVER)

    outcomes = _run_concurrently(
        lambda: resolve_request(erin, created.id, Decision.APPROVE),
        lambda: resolve_request(erin, created.id, Decision.APPROVE),
    )

    winners = [outcome for outcome in outcomes if not isinstance(outcome, Exception)]
    losers = [outcome for outcome in outcomes if isinstance(outcome, Exception)]
    assert len(winners) == 1
    assert winners[0].status is RequestStatus.APPROVED
    assert len(losers) == 1
    assert isinstance(losers[0], AlreadyProcessedError)
