"""
Database engine and session management.

The engine is created at module import from DATABASE_URL and reused across
warm Lambda invocations. Tests rebind it with configure_engine().
"""

import logging
import os
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base

logger = logging.getLogger(__name__)

DATABASE_URL = os.environ.get('DATABASE_URL', 'sqlite:///rfp_procurement.db')

engine: Optional[Engine] = None
SessionLocal = sessionmaker(expire_on_commit=False)


def _build_engine(url: str) -> Engine:
    if url.startswith('sqlite') and (url.endswith(':memory:') or url == 'sqlite://'):
        # One shared connection, otherwise every session sees an empty database
        return create_engine(
            url,
            connect_args={'check_same_thread': False},
            poolclass=StaticPool,
        )
    if url.startswith('sqlite'):
        return create_engine(url, connect_args={'check_same_thread': False})
    return create_engine(url, pool_pre_ping=True)


def configure_engine(url: str) -> Engine:
    """
    Create the engine for the given URL and bind the session factory to it.

    Args:
        url: SQLAlchemy database URL

    Returns:
        Engine: The new engine
    """
    global engine
    if engine is not None:
        engine.dispose()
    engine = _build_engine(url)
    SessionLocal.configure(bind=engine)
    logger.info(f"Database engine configured: {engine.url.render_as_string(hide_password=True)}")
    return engine


def init_db() -> None:
    """Create all tables that do not exist yet."""
    if engine is None:
        configure_engine(DATABASE_URL)
    Base.metadata.create_all(engine)


def drop_db() -> None:
    if engine is not None:
        Base.metadata.drop_all(engine)


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    Provide a transactional scope around a series of operations.

    Commits on success, rolls back and re-raises on error.
    """
    if engine is None:
        configure_engine(DATABASE_URL)
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
