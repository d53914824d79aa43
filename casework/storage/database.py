"""Engine and session handling for the casework database."""

import os
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from sqlalchemy import Engine, create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

DEFAULT_DATABASE_URL = "sqlite:///./casework.db"

Base = declarative_base()

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def _engine_options(database_url: str) -> Dict[str, Any]:
    if not database_url.startswith("sqlite"):
        return {"pool_pre_ping": True}
    options: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
    # An in-memory database lives only as long as its connection, so every session shares one
    if ":memory:" in database_url or database_url.rstrip("/") == "sqlite:":
        options["poolclass"] = StaticPool
    return options


def get_database_engine(database_url: Optional[str] = None, echo: bool = False) -> Engine:
    """Return the process-wide engine, creating it on first use.

    Without an explicit URL the engine is bound to ``CASEWORK_DATABASE_URL``
    or the local ``casework.db`` file.
    """
    global _engine
    if _engine is None:
        url = database_url or os.getenv("CASEWORK_DATABASE_URL", DEFAULT_DATABASE_URL)
        _engine = create_engine(url, echo=echo, **_engine_options(url))
    return _engine


def configure_database(database_url: str, echo: bool = False) -> Engine:
    """Replace the global engine with one bound to ``database_url``."""
    reset_database_engine()
    return get_database_engine(database_url, echo=echo)


def reset_database_engine():
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


def get_session_factory() -> sessionmaker:
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(bind=get_database_engine(), autoflush=False, expire_on_commit=False)
    return _session_factory


@contextmanager
def session_scope(db_session: Optional[Session] = None) -> Iterator[Session]:
    """Yield ``db_session`` if given, otherwise a fresh session closed on exit.

    The session is rolled back when a database error escapes the block.
    """
    db = db_session if db_session is not None else get_session_factory()()
    try:
        yield db
    except SQLAlchemyError:
        db.rollback()
        raise
    finally:
        if db_session is None:
            db.close()


def database_is_reachable() -> bool:
    """Run a trivial query against the engine; used by the health endpoint."""
    try:
        with get_database_engine().connect() as connection:
            connection.execute(text("SELECT 1"))
    except SQLAlchemyError:
        return False
    return True


def create_tables():
    Base.metadata.create_all(bind=get_database_engine())


def drop_tables():
    Base.metadata.drop_all(bind=get_database_engine())
