# ridepay/api/dependencies/database.py
"""
Session dependency for route handlers.

Tests override this provider with a session bound to an in-memory engine.
"""

from typing import Generator

from sqlalchemy.orm import Session

from ...database import get_db as _session_scope


def get_db() -> Generator[Session, None, None]:
    yield from _session_scope()
