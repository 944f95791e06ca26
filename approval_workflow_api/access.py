"""Role-based capability checks for lifecycle operations."""

from __future__ import annotations

import enum
from typing import Mapping

from approval_workflow_api.errors import ForbiddenError
from approval_workflow_api.models import Role
from approval_workflow_api.security import Caller


class Operation(str, enum.Enum):
    CREATE_REQUEST = "create_request"
    LIST_OWN = "list_own"
    LIST_PENDING = "list_pending"
    LIST_ALL = "list_all"
    GET_REQUEST = "get_request"
    RESOLVE = "resolve"


PERMISSIONS: Mapping[Operation, frozenset[Role]] = {
    Operation.CREATE_REQUEST: frozenset({Role.CREATOR}),
    Operation.LIST_OWN: frozenset({Role.CREATOR}),
    Operation.LIST_PENDING: frozenset({Role.APPROVER}),
    Operation.LIST_ALL: frozenset({Role.APPROVER}),
    Operation.GET_REQUEST: frozenset(Role),
    Operation.RESOLVE: frozenset({Role.APPROVER}),
}


def is_permitted(role: Role, operation: Operation) -> bool:
    """Return True when *role* holds the capability for *operation*."""

    return role in PERMISSIONS.get(operation, frozenset())


def require_permission(caller: Caller, operation: Operation) -> None:
    if not is_permitted(caller.role, operation):
        raise ForbiddenError(f"User role {caller.role.value} is not authorized to access this route")
