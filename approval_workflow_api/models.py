"""SQLAlchemy models for users and approval requests."""

from __future__ import annotations

import enum
from datetime import UTC, datetime
from typing import List
from uuid import uuid4

from sqlalchemy import DateTime, Enum, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from approval_workflow_api.db import Base


class Role(str, enum.Enum):
    CREATOR = "CREATOR"
    APPROVER = "APPROVER"


class Category(str, enum.Enum):
    LEAVE = "Leave"
    PURCHASE = "Purchase"
    BUDGET = "Budget"
    OTHER = "Other"


class RequestStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


def _enum_column(enum_cls: type[enum.Enum], length: int) -> Enum:
    """Store enum values (not member names) as plain strings."""

    return Enum(
        enum_cls,
        native_enum=False,
        length=length,
        validate_strings=True,
        values_callable=lambda members: [member.value for member in members],
    )


USER_ID_MAX_LENGTH = 64


def _utcnow() -> datetime:
    return datetime.now(UTC)


class User(Base):
    """A user known to the identity provider, referenced by requests."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(USER_ID_MAX_LENGTH), primary_key=True)
    name: Mapped[str | None] = mapped_column(Text, nullable=True)
    email: Mapped[str | None] = mapped_column(Text, nullable=True)
    role: Mapped[Role] = mapped_column(_enum_column(Role, 16), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    requests: Mapped[List["Request"]] = relationship(
        "Request",
        back_populates="creator",
        foreign_keys="Request.creator_id",
    )


class Request(Base):
    """Represents an approval request and its resolution."""

    __tablename__ = "requests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[Category] = mapped_column(_enum_column(Category, 16), nullable=False)
    creator_id: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    status: Mapped[RequestStatus] = mapped_column(
        _enum_column(RequestStatus, 16), nullable=False, default=RequestStatus.PENDING, index=True
    )
    approved_by_id: Mapped[str | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    approval_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    creator: Mapped[User] = relationship("User", foreign_keys=[creator_id], back_populates="requests")
    approved_by: Mapped[User | None] = relationship("User", foreign_keys=[approved_by_id])
