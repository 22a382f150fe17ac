"""DB models and session helpers for the expense classifier."""

import uuid
from functools import lru_cache

from sqlalchemy import Boolean, Column, String, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from expense_classifier.core.utils import utcnow_iso

Base = declarative_base()


class Category(Base):
    """An expense category; rows without an owner are shared system categories."""

    __tablename__ = "categories"
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False, index=True)
    user_id = Column(String, nullable=True, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(String, nullable=False, default=utcnow_iso)


@lru_cache
def get_engine() -> Engine:
    """Create a SQLAlchemy engine using the configured database URL."""
    from expense_classifier.core.settings import get_settings

    url = get_settings().database_url
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url)


@lru_cache
def get_session_factory() -> sessionmaker:
    """Return the process-wide session factory bound to the configured engine."""
    return sessionmaker(autocommit=False, autoflush=False, bind=get_engine())


def init_db(engine: Engine | None = None) -> None:
    """Create the categories table if it does not exist."""
    Base.metadata.create_all(engine or get_engine())
