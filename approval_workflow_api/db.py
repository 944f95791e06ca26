"""Database engine and session utilities."""

from __future__ import annotations

from contextlib import contextmanager
from functools import lru_cache
from typing import Generator

import structlog
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from approval_workflow_api.config import get_settings
from approval_workflow_api.errors import StoreError

Base = declarative_base()


@lru_cache()
def get_engine() -> Engine:
    """Create or return a cached SQLAlchemy engine."""

    settings = get_settings()
    url = make_url(settings.database_url)
    if url.get_backend_name() == "sqlite":
        # sqlite3 waits this long on a locked database before failing
        return create_engine(
            url,
            future=True,
            echo=False,
            connect_args={"timeout": settings.store_timeout_seconds},
        )
    return create_engine(
        url,
        future=True,
        echo=False,
        pool_pre_ping=True,
        pool_timeout=settings.store_timeout_seconds,
    )


@lru_cache()
def get_session_factory() -> sessionmaker[Session]:
    """Return a cached session factory bound to the engine."""

    return sessionmaker(
        bind=get_engine(),
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Provide a transactional scope for DB operations.

    Driver and ORM failures surface as :class:`StoreError`; the original
    exception is logged and chained but never shown to API callers.
    """

    session = get_session_factory()()
    try:
        yield session
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        structlog.get_logger().error("store_failure", error=str(exc), exc_info=True)
        raise StoreError() from exc
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
