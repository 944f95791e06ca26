"""Approval workflow API package initialisation."""

from .config import AppSettings, get_settings  # noqa: F401
from .db import Base, get_engine, get_session_factory, session_scope  # noqa: F401
from .logging_config import configure_logging  # noqa: F401
from .models import Category, Request, RequestStatus, Role, User  # noqa: F401

__all__ = [
    "AppSettings",
    "get_settings",
    "Base",
    "get_engine",
    "get_session_factory",
    "session_scope",
    "Category",
    "Request",
    "RequestStatus",
    "Role",
    "User",
    "configure_logging",
]
