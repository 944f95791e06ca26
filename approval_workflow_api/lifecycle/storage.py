"""Persistence helpers for users and approval requests."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import List

from sqlalchemy import Select, func, select, update
from sqlalchemy.dialects.mysql import insert as mysql_insert
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from approval_workflow_api.errors import AlreadyProcessedError, NotFoundError
from approval_workflow_api.models import Category, Request, RequestStatus, User
from approval_workflow_api.security import Caller


_ON_CONFLICT_INSERTS = {
    "sqlite": sqlite_insert,
    "postgresql": postgresql_insert,
}


def _upsert_with_savepoint(session: Session, caller: Caller) -> User:
    """Portable upsert for backends without an ON CONFLICT clause."""

    user = session.get(User, caller.id)
    if user is None:
        try:
            with session.begin_nested():
                session.add(User(id=caller.id, role=caller.role, name=caller.name, email=caller.email))
            return session.get(User, caller.id)
        except IntegrityError:
            # another caller inserted the same id first
            user = session.get(User, caller.id, populate_existing=True)
    user.role = caller.role
    if caller.name is not None:
        user.name = caller.name
    if caller.email is not None:
        user.email = caller.email
    session.flush()
    return user


def upsert_user(session: Session, caller: Caller) -> User:
    """Insert the caller's user row or refresh its role and supplied details.

    On SQLite, PostgreSQL and MySQL this is one INSERT .. ON CONFLICT (or
    ON DUPLICATE KEY) statement, so two first calls by the same identity both
    succeed instead of racing on the primary key. Other backends retry the
    insert inside a savepoint.
    """

    users = User.__table__
    values = {
        "id": caller.id,
        "role": caller.role,
        "name": caller.name,
        "email": caller.email,
        "created_at": datetime.now(UTC),
    }
    dialect = session.get_bind().dialect.name

    if dialect in _ON_CONFLICT_INSERTS:
        stmt = _ON_CONFLICT_INSERTS[dialect](users).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[users.c.id],
            set_={
                "role": stmt.excluded.role,
                "name": func.coalesce(stmt.excluded.name, users.c.name),
                "email": func.coalesce(stmt.excluded.email, users.c.email),
            },
        )
    elif dialect in ("mysql", "mariadb"):
        stmt = mysql_insert(users).values(**values)
        stmt = stmt.on_duplicate_key_update(
            role=stmt.inserted.role,
            name=func.coalesce(stmt.inserted.name, users.c.name),
            email=func.coalesce(stmt.inserted.email, users.c.email),
        )
    else:
        return _upsert_with_savepoint(session, caller)

    session.execute(stmt)
    return session.get(User, caller.id, populate_existing=True)


def _with_people(statement: Select) -> Select:
    return statement.options(selectinload(Request.creator), selectinload(Request.approved_by))


def save_request(
    session: Session,
    *,
    title: str,
    description: str,
    category: Category,
    creator_id: str,
    created_at: datetime | None = None,
) -> Request:
    """Persist a new PENDING request and return it with its creator loaded."""

    now = created_at or datetime.now(UTC)
    request = Request(
        title=title,
        description=description,
        category=category,
        creator_id=creator_id,
        status=RequestStatus.PENDING,
        approved_by_id=None,
        approval_date=None,
        rejection_reason=None,
        created_at=now,
        updated_at=now,
    )
    session.add(request)
    session.flush()
    session.refresh(request)
    return request


def get_request(session: Session, request_id: str) -> Request | None:
    statement = _with_people(select(Request).where(Request.id == request_id))
    return session.scalars(statement).one_or_none()


def query_requests(
    session: Session,
    *,
    creator_id: str | None = None,
    status: RequestStatus | None = None,
) -> List[Request]:
    """Return requests matching the optional filters, newest first."""

    statement = select(Request)
    if creator_id is not None:
        statement = statement.where(Request.creator_id == creator_id)
    if status is not None:
        statement = statement.where(Request.status == status)
    statement = _with_people(statement).order_by(Request.created_at.desc())
    return list(session.scalars(statement).all())


def apply_resolution(
    session: Session,
    request: Request,
    *,
    new_status: RequestStatus,
    resolver_id: str,
    rejection_reason: str | None,
    resolved_at: datetime | None = None,
) -> Request:
    """Resolve *request* with a single conditional update.

    The row only changes while its stored status is still PENDING, so of two
    concurrent resolvers exactly one succeeds and the other observes
    :class:`AlreadyProcessedError`.
    """

    resolved_time = resolved_at or datetime.now(UTC)
    stmt = (
        update(Request)
        .where(Request.id == request.id, Request.status == RequestStatus.PENDING)
        .values(
            status=new_status,
            approved_by_id=resolver_id,
            approval_date=resolved_time,
            rejection_reason=rejection_reason,
            updated_at=datetime.now(UTC),
        )
        .execution_options(synchronize_session=False)
    )
    result = session.execute(stmt)
    if result.rowcount != 1:
        current = session.execute(
            select(Request.status).where(Request.id == request.id)
        ).scalar_one_or_none()
        if current is None:
            raise NotFoundError()
        raise AlreadyProcessedError(current.value)

    session.refresh(request)
    return request
