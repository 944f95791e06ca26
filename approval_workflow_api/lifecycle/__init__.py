"""Request lifecycle: validation, state machine, storage and presentation."""

from .manager import (
    approve_request,
    create_request,
    get_request_by_id,
    list_all_requests,
    list_own_requests,
    list_pending_requests,
    reject_request,
    resolve_request,
)
from .schemas import RequestCreate, parse_rejection_reason, parse_request_create
from .state import DEFAULT_REJECTION_REASON, Decision, parse_request_id
from .views import RequestView, UserSummary

__all__ = [
    "DEFAULT_REJECTION_REASON",
    "Decision",
    "RequestCreate",
    "RequestView",
    "UserSummary",
    "approve_request",
    "create_request",
    "get_request_by_id",
    "list_all_requests",
    "list_own_requests",
    "list_pending_requests",
    "parse_rejection_reason",
    "parse_request_create",
    "parse_request_id",
    "reject_request",
    "resolve_request",
]
