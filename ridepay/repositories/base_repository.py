# ridepay/repositories/base_repository.py
"""
Shared data access for bookings, payments, payouts and refunds.

Repositories never commit. Services own the transaction boundary and
call ``flush`` when they need generated values before committing.
Database errors surface as RepositoryException so services can tell
storage failures apart from domain rule violations.
"""

import logging
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Query, Session

from ..core.exceptions import RepositoryException
from ..database.session_utils import supports_row_locks

T = TypeVar("T")

logger = logging.getLogger(__name__)


class BaseRepository(Generic[T]):
    """Lookups, inserts and row locks for one ULID-keyed model."""

    def __init__(self, db: Session, model: Type[T]):
        self.db = db
        self.model = model
        self.logger = logging.getLogger(f"{__name__}.{model.__name__}")

    def _fail(self, action: str, exc: SQLAlchemyError) -> RepositoryException:
        name = self.model.__name__
        self.logger.error("Could not %s %s: %s", action, name, exc)
        return RepositoryException(f"Failed to {action} {name}: {exc}")

    def _locked(self, query: Query) -> Query:
        """Add FOR UPDATE where the backend honours it."""
        if supports_row_locks(self.db):
            return query.with_for_update()
        return query

    def get_by_id(self, id: str, load_relationships: bool = True) -> Optional[T]:
        try:
            query = self.db.query(self.model).filter(self.model.id == id)
            if load_relationships:
                query = self._apply_eager_loading(query)
            return query.first()
        except SQLAlchemyError as exc:
            raise self._fail("load", exc) from exc

    def get_for_update(self, id: str) -> Optional[T]:
        """Load the row and hold its lock until the caller's transaction ends."""
        try:
            return self._locked(self.db.query(self.model).filter(self.model.id == id)).first()
        except SQLAlchemyError as exc:
            raise self._fail("lock", exc) from exc

    def create(self, **fields: Any) -> T:
        """
        Add and flush a new row.

        A unique-key clash rolls the session back so the caller can re-read
        the winning row (idempotency keys, one payout per booking).
        """
        entity = self.model(**fields)
        try:
            self.db.add(entity)
            self.db.flush()
        except IntegrityError as exc:
            self.db.rollback()
            self.logger.warning("Duplicate %s rejected: %s", self.model.__name__, exc.orig)
            raise RepositoryException(f"Integrity constraint violated: {exc.orig}") from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise self._fail("create", exc) from exc
        return entity

    def flush(self) -> None:
        self.db.flush()

    def refresh(self, instance: T) -> None:
        self.db.refresh(instance)

    def merge_metadata(self, entity: Any, **updates: Any) -> Dict[str, Any]:
        """Assign a merged copy of the JSON metadata so SQLAlchemy sees the change."""
        merged = {**(getattr(entity, "metadata_", None) or {}), **updates}
        entity.metadata_ = merged
        return merged

    def find_by(self, **criteria: Any) -> List[T]:
        return self._execute_query(self.db.query(self.model).filter_by(**criteria))

    def find_one_by(self, **criteria: Any) -> Optional[T]:
        try:
            return self.db.query(self.model).filter_by(**criteria).first()
        except SQLAlchemyError as exc:
            raise self._fail("find", exc) from exc

    def _apply_eager_loading(self, query: Query) -> Query:
        return query

    def _execute_query(self, query: Query) -> List[T]:
        try:
            return query.all()
        except SQLAlchemyError as exc:
            raise self._fail("query", exc) from exc
