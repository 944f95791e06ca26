"""Parsing and validation of request payloads."""

from __future__ import annotations

from typing import Any, Mapping

from pydantic import BaseModel, field_validator
from pydantic import ValidationError as PydanticValidationError

from approval_workflow_api.errors import ValidationError
from approval_workflow_api.models import Category

_REQUIRED_FIELDS = ("title", "description", "category")


class RequestCreate(BaseModel):
    """Validated body of a request submission."""

    title: str
    description: str
    category: Category

    @field_validator("title", "description")
    @classmethod
    def strip_text(cls, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("must not be blank")
        return trimmed


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def parse_request_create(payload: Mapping[str, Any] | None) -> RequestCreate:
    """Validate a submission, raising the API's :class:`ValidationError`."""

    payload = payload or {}
    if any(_is_blank(payload.get(name)) for name in _REQUIRED_FIELDS):
        raise ValidationError()

    try:
        return RequestCreate.model_validate({name: payload.get(name) for name in _REQUIRED_FIELDS})
    except PydanticValidationError as exc:
        fields = {str(error["loc"][0]) for error in exc.errors() if error["loc"]}
        if "category" in fields:
            allowed = ", ".join(category.value for category in Category)
            raise ValidationError(f"Invalid category. Must be one of: {allowed}") from exc
        raise ValidationError() from exc


def parse_rejection_reason(payload: Mapping[str, Any] | None) -> str | None:
    """Return the optional rejection reason; blank reasons count as omitted."""

    reason = (payload or {}).get("reason")
    if reason is None:
        return None
    if not isinstance(reason, str):
        raise ValidationError("Rejection reason must be a string")
    return reason.strip() or None
