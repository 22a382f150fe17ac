"""Category store collaborator: lookup and creation of the caller's categories."""

import uuid
from abc import ABC, abstractmethod

from fastapi.concurrency import run_in_threadpool
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from expense_classifier.core.db import Category
from expense_classifier.core.errors import CategoryStoreError
from expense_classifier.core.models import CategoryRef
from expense_classifier.core.utils import casefold_key, get_logger, utcnow_iso

logger = get_logger("expense-classifier.store")


class CategoryStore(ABC):
    """Interface of the store the reconciliation engine creates categories in."""

    @abstractmethod
    async def list_active(self) -> list[CategoryRef]:
        """Return the active categories visible to the caller."""

    @abstractmethod
    async def find_by_names(self, names: list[str]) -> list[CategoryRef]:
        """Return the visible active categories whose name matches any of ``names``."""

    @abstractmethod
    async def create_many(self, names: list[str]) -> list[CategoryRef]:
        """Create one active category per name in a single operation."""


class SqlCategoryStore(CategoryStore):
    """SQLAlchemy-backed category store scoped to one user."""

    def __init__(self, session_factory: sessionmaker, user_id: str | None = None) -> None:
        """Initialize the store with a session factory and the caller's user id."""
        self.session_factory = session_factory
        self.user_id = user_id

    async def list_active(self) -> list[CategoryRef]:
        """Return active system categories plus the caller's own, ordered by name."""
        return await run_in_threadpool(self._list_active)

    async def find_by_names(self, names: list[str]) -> list[CategoryRef]:
        """Case-insensitive lookup among the active categories visible to the caller."""
        if not names:
            return []
        return await run_in_threadpool(self._find_by_names, names)

    async def create_many(self, names: list[str]) -> list[CategoryRef]:
        """Insert all names in one transaction; nothing is kept if any insert fails."""
        if not names:
            return []
        return await run_in_threadpool(self._create_many, names)

    def _visible(self) -> object:
        owner = Category.user_id.is_(None)
        if self.user_id is not None:
            owner = or_(owner, Category.user_id == self.user_id)
        return owner

    def _active_rows(self, session: Session) -> list[Category]:
        return session.query(Category).filter(self._visible(), Category.is_active.is_(True)).order_by(Category.name).all()

    def _list_active(self) -> list[CategoryRef]:
        session: Session = self.session_factory()
        try:
            return [CategoryRef(id=row.id, name=row.name) for row in self._active_rows(session)]
        except SQLAlchemyError as exc:
            msg = f"Failed to list categories: {exc}"
            raise CategoryStoreError(msg) from exc
        finally:
            session.close()

    def _find_by_names(self, names: list[str]) -> list[CategoryRef]:
        # SQL lower() folds ASCII only on SQLite, so names are matched here
        session: Session = self.session_factory()
        try:
            wanted = {casefold_key(name) for name in names}
            rows = [row for row in self._active_rows(session) if casefold_key(row.name) in wanted]
            # the caller's own category wins over a shared one with the same name
            rows.sort(key=lambda row: row.user_id is None)
            return [CategoryRef(id=row.id, name=row.name) for row in rows]
        except SQLAlchemyError as exc:
            msg = f"Failed to look up categories: {exc}"
            raise CategoryStoreError(msg) from exc
        finally:
            session.close()

    def _create_many(self, names: list[str]) -> list[CategoryRef]:
        session: Session = self.session_factory()
        try:
            rows = [
                Category(id=str(uuid.uuid4()), name=name, user_id=self.user_id, is_active=True, created_at=utcnow_iso())
                for name in names
            ]
            session.add_all(rows)
            session.commit()
            created = [CategoryRef(id=row.id, name=row.name) for row in rows]
        except SQLAlchemyError as exc:
            session.rollback()
            msg = f"Failed to create categories {names}: {exc}"
            raise CategoryStoreError(msg) from exc
        finally:
            session.close()
        logger.info(f"Created {len(created)} categories for user {self.user_id}: {[c.name for c in created]}")
        return created
