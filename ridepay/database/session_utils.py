"""
Session helpers used by the repositories' locking primitives.
"""

from __future__ import annotations

from sqlalchemy.exc import UnboundExecutionError
from sqlalchemy.orm import Session

# SQLite serializes writers at the file level and ignores FOR UPDATE.
_NO_ROW_LOCKS = frozenset({"sqlite"})


def get_dialect_name(session: Session, default: str = "sqlite") -> str:
    """Dialect of the session's bind, or ``default`` for an unbound session."""
    try:
        bind = session.get_bind()
    except UnboundExecutionError:
        return default
    return getattr(getattr(bind, "dialect", None), "name", None) or default


def supports_row_locks(session: Session) -> bool:
    """True when ``SELECT ... FOR UPDATE`` takes a real row lock on this bind."""
    return get_dialect_name(session) not in _NO_ROW_LOCKS
