"""Presentation models for requests returned by the API."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Dict, Iterable, List

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from approval_workflow_api.models import Category, Request, RequestStatus, Role


def _normalise_dt(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class UserSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str | None = None
    email: str | None = None
    role: Role


class RequestView(BaseModel):
    """A request with creator and approver details attached."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str
    title: str
    description: str
    category: Category
    status: RequestStatus
    creator: UserSummary
    approved_by: UserSummary | None = Field(None, serialization_alias="approvedBy")
    approval_date: datetime | None = Field(None, serialization_alias="approvalDate")
    rejection_reason: str | None = Field(None, serialization_alias="rejectionReason")
    created_at: datetime = Field(..., serialization_alias="createdAt")
    updated_at: datetime = Field(..., serialization_alias="updatedAt")

    @field_validator("approval_date", "created_at", "updated_at")
    @classmethod
    def ensure_utc(cls, value: datetime | None) -> datetime | None:
        # SQLite hands back naive datetimes; everything is stored as UTC.
        return _normalise_dt(value)

    @field_serializer("approval_date", "created_at", "updated_at")
    def serialise_dt(self, value: datetime | None) -> str | None:
        return value.isoformat() if value is not None else None

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def build_request_view(request: Request) -> RequestView:
    return RequestView.model_validate(request)


def build_request_views(requests: Iterable[Request]) -> List[RequestView]:
    return [build_request_view(request) for request in requests]
