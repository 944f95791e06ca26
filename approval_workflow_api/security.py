"""Verification of identity assertions forwarded by the auth gateway."""

from __future__ import annotations

import hmac
import time
from dataclasses import dataclass
from hashlib import sha256
from typing import Mapping

from approval_workflow_api.errors import AuthenticationError
from approval_workflow_api.models import USER_ID_MAX_LENGTH, Role

USER_ID_HEADER = "X-User-Id"
USER_ROLE_HEADER = "X-User-Role"
USER_NAME_HEADER = "X-User-Name"
USER_EMAIL_HEADER = "X-User-Email"
IDENTITY_SIGNATURE_HEADER = "X-Identity-Signature"
IDENTITY_TIMESTAMP_HEADER = "X-Identity-Timestamp"
VERSION = "v0"
DEFAULT_TOLERANCE = 60 * 5  # five minutes


@dataclass(frozen=True)
class Caller:
    """Verified identity of the user behind an API call."""

    id: str
    role: Role
    name: str | None = None
    email: str | None = None


def compute_signature(signing_secret: str, timestamp: str, user_id: str, role: str) -> str:
    """Return the signature the gateway attaches to an identity assertion."""

    basestring = f"{VERSION}:{timestamp}:{user_id}:{role}".encode("utf-8")
    secret = signing_secret.encode("utf-8")
    digest = hmac.new(secret, basestring, sha256).hexdigest()
    return f"{VERSION}={digest}"


def is_valid_identity(
    *,
    signing_secret: str,
    timestamp: str,
    user_id: str,
    role: str,
    signature: str,
    tolerance: int = DEFAULT_TOLERANCE,
) -> bool:
    """Validate the assertion signature and timestamp to guard against replay attacks."""

    if not timestamp or not signature or not user_id or not role:
        return False

    try:
        asserted_ts = int(timestamp)
    except (TypeError, ValueError):
        return False

    current_ts = int(time.time())
    if abs(current_ts - asserted_ts) > tolerance:
        return False

    expected = compute_signature(signing_secret, timestamp, user_id, role)
    return hmac.compare_digest(expected, signature)


def _optional_header(headers: Mapping[str, str], name: str) -> str | None:
    value = (headers.get(name) or "").strip()
    return value or None


def resolve_caller(
    headers: Mapping[str, str],
    *,
    signing_secret: str,
    tolerance: int = DEFAULT_TOLERANCE,
) -> Caller:
    """Return the verified caller for *headers* or raise :class:`AuthenticationError`."""

    user_id = (headers.get(USER_ID_HEADER) or "").strip()
    raw_role = (headers.get(USER_ROLE_HEADER) or "").strip()

    if not is_valid_identity(
        signing_secret=signing_secret,
        timestamp=headers.get(IDENTITY_TIMESTAMP_HEADER, ""),
        user_id=user_id,
        role=raw_role,
        signature=headers.get(IDENTITY_SIGNATURE_HEADER, ""),
        tolerance=tolerance,
    ):
        raise AuthenticationError()

    try:
        role = Role(raw_role.upper())
    except ValueError as exc:
        raise AuthenticationError(f"Unknown role '{raw_role}'") from exc

    if len(user_id) > USER_ID_MAX_LENGTH:
        raise AuthenticationError(f"User id must be at most {USER_ID_MAX_LENGTH} characters")

    return Caller(
        id=user_id,
        role=role,
        name=_optional_header(headers, USER_NAME_HEADER),
        email=_optional_header(headers, USER_EMAIL_HEADER),
    )
