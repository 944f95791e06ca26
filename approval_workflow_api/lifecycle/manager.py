"""Request lifecycle operations.

Every mutation of a request goes through this module. Role checks happen in
the access layer before these functions are called; the self-resolution
guard lives in :func:`resolve_request` and runs for every decision.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Mapping

import structlog

from approval_workflow_api.db import session_scope
from approval_workflow_api.errors import AlreadyProcessedError, ForbiddenError, NotFoundError
from approval_workflow_api.models import RequestStatus
from approval_workflow_api.security import Caller

from .schemas import parse_request_create
from .state import (
    Decision,
    ensure_transition_allowed,
    parse_request_id,
    rejection_reason_for,
    same_user,
    self_resolution_message,
)
from .storage import apply_resolution, get_request, query_requests, save_request, upsert_user
from .views import RequestView, build_request_view, build_request_views


def create_request(
    caller: Caller,
    payload: Mapping[str, Any] | None,
    *,
    created_at: datetime | None = None,
) -> RequestView:
    """Validate *payload* and persist a new PENDING request owned by *caller*."""

    data = parse_request_create(payload)
    with session_scope() as session:
        upsert_user(session, caller)
        request = save_request(
            session,
            title=data.title,
            description=data.description,
            category=data.category,
            creator_id=caller.id,
            created_at=created_at,
        )
        view = build_request_view(request)

    structlog.get_logger().info(
        "request_created",
        request_id=view.id,
        user_id=caller.id,
        category=view.category.value,
    )
    return view


def list_own_requests(caller: Caller) -> List[RequestView]:
    with session_scope() as session:
        return build_request_views(query_requests(session, creator_id=caller.id))


def list_pending_requests() -> List[RequestView]:
    with session_scope() as session:
        return build_request_views(query_requests(session, status=RequestStatus.PENDING))


def list_all_requests() -> List[RequestView]:
    with session_scope() as session:
        return build_request_views(query_requests(session))


def get_request_by_id(caller: Caller, request_id: str | None) -> RequestView:
    """Return a single request; any authenticated role may read it."""

    canonical_id = parse_request_id(request_id)
    with session_scope() as session:
        request = get_request(session, canonical_id)
        if request is None:
            raise NotFoundError()
        return build_request_view(request)


def resolve_request(
    caller: Caller,
    request_id: str | None,
    decision: Decision,
    reason: str | None = None,
    *,
    resolved_at: datetime | None = None,
) -> RequestView:
    """Move a PENDING request to APPROVED or REJECTED on behalf of *caller*.

    Guards run strictly before the write: malformed id, missing request,
    non-PENDING status, then the self-resolution check. The write itself is a
    conditional update, so a concurrent resolver that wins in between still
    surfaces as an already-processed failure.
    """

    canonical_id = parse_request_id(request_id)
    log = structlog.get_logger().bind(
        request_id=canonical_id,
        user_id=caller.id,
        decision=decision.value,
    )

    with session_scope() as session:
        request = get_request(session, canonical_id)
        if request is None:
            log.info("request_missing")
            raise NotFoundError()

        try:
            ensure_transition_allowed(request.status, decision.target_status)

            if same_user(request.creator_id, caller.id):
                log.warning("self_resolution_blocked")
                raise ForbiddenError(self_resolution_message(decision))

            upsert_user(session, caller)
            apply_resolution(
                session,
                request,
                new_status=decision.target_status,
                resolver_id=caller.id,
                rejection_reason=rejection_reason_for(decision, reason),
                resolved_at=resolved_at,
            )
        except AlreadyProcessedError as exc:
            log.info("request_already_processed", status=exc.current_status)
            raise
        view = build_request_view(request)

    log.info("request_resolved", status=view.status.value)
    return view


def approve_request(caller: Caller, request_id: str | None) -> RequestView:
    return resolve_request(caller, request_id, Decision.APPROVE)


def reject_request(caller: Caller, request_id: str | None, reason: str | None = None) -> RequestView:
    return resolve_request(caller, request_id, Decision.REJECT, reason)
