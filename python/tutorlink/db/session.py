"""Sessions and the transaction helper.

Route handlers get one session per request from get_db(). Services wrap
every multi-step write in transaction(db) so a ticket response and its
last_response_at bump, or a room and its creator's participant row, land
together or not at all.
"""

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from tutorlink.db.engine import get_engine

_session_factory: sessionmaker[Session] | None = None


def create_session_factory(engine: Engine | None = None) -> sessionmaker[Session]:
    # expire_on_commit=False: services build response models after committing
    return sessionmaker(
        bind=engine if engine is not None else get_engine(),
        autoflush=False,
        expire_on_commit=False,
    )


def get_session_factory() -> sessionmaker[Session]:
    global _session_factory
    if _session_factory is None:
        _session_factory = create_session_factory()
    return _session_factory


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency yielding a request-scoped session."""
    with get_session_factory()() as db:
        yield db


@contextmanager
def transaction(db: Session) -> Generator[None, None, None]:
    """Commit when the block exits cleanly; roll back and re-raise otherwise.

    A failed commit (constraint violation at flush time) is rolled back too.
    """
    try:
        yield
        db.commit()
    except Exception:
        db.rollback()
        raise
