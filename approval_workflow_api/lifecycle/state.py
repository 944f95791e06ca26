"""Request status state machine."""

from __future__ import annotations

import enum
from uuid import UUID

from approval_workflow_api.errors import AlreadyProcessedError, InvalidIdError
from approval_workflow_api.models import RequestStatus

DEFAULT_REJECTION_REASON = "No reason provided"


class Decision(str, enum.Enum):
    APPROVE = "APPROVE"
    REJECT = "REJECT"

    @property
    def target_status(self) -> RequestStatus:
        return RequestStatus.APPROVED if self is Decision.APPROVE else RequestStatus.REJECTED

    @property
    def verb(self) -> str:
        return "approve" if self is Decision.APPROVE else "reject"


_ALLOWED_TRANSITIONS = {
    RequestStatus.PENDING: {RequestStatus.APPROVED, RequestStatus.REJECTED},
    RequestStatus.APPROVED: set(),
    RequestStatus.REJECTED: set(),
}


def is_terminal(status: RequestStatus) -> bool:
    return not _ALLOWED_TRANSITIONS.get(status)


def ensure_transition_allowed(current: RequestStatus, target: RequestStatus) -> None:
    """Raise :class:`AlreadyProcessedError` unless *current* may move to *target*."""

    if target not in _ALLOWED_TRANSITIONS.get(current, set()):
        raise AlreadyProcessedError(current.value)


def parse_request_id(raw: str | None) -> str:
    """Return the canonical form of a request id or raise :class:`InvalidIdError`."""

    candidate = (raw or "").strip()
    try:
        return str(UUID(candidate))
    except ValueError as exc:
        raise InvalidIdError() from exc


def same_user(left: object, right: object) -> bool:
    """Compare user ids in string form so mixed id types never slip past."""

    if left is None or right is None:
        return False
    return str(left).strip() == str(right).strip()


def self_resolution_message(decision: Decision) -> str:
    if decision is Decision.APPROVE:
        return "You cannot approve your own request. Self-approval is not allowed."
    return "You cannot reject your own request. Self-rejection is not allowed."


def rejection_reason_for(decision: Decision, reason: str | None) -> str | None:
    if decision is not Decision.REJECT:
        return None
    return reason or DEFAULT_REJECTION_REASON
