"""Utility script to reset the local database schema.

Usage:
    python scripts/reset_local_db.py

Environment:
    Ensure DATABASE_URL and IDENTITY_SIGNING_SECRET are available in the
    current shell before running this script.
"""

from __future__ import annotations

import approval_workflow_api.models  # noqa: F401  (registers tables on Base)
from approval_workflow_api.db import Base, get_engine


def reset_database() -> None:
    engine = get_engine()
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    print("Local database reset.")


if __name__ == "__main__":
    reset_database()
