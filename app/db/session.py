# app/db/session.py
import functools
from typing import Any, Callable, Dict, TypeVar

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import settings

F = TypeVar("F", bound=Callable[..., Any])


def engine_kwargs(db_uri: str) -> Dict[str, Any]:
    if db_uri.startswith("sqlite"):
        # sqlite: one file / memory db shared across threads of the app server
        return {"connect_args": {"check_same_thread": False}, "future": True}
    return {
        "pool_pre_ping": True,
        "pool_recycle": 280,
        "pool_size": 10,
        "max_overflow": 20,
        "future": True,
    }


def make_engine(db_uri: str) -> Engine:
    return create_engine(db_uri, **engine_kwargs(db_uri))


def make_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=bind,
        future=True,
    )


def rollback_on_error(fn: F) -> F:
    """
    Service write paths take the session as first argument. If they raise,
    the session is rolled back: unsaved rows are dropped and row locks are
    released before the caller sees the error.
    """

    @functools.wraps(fn)
    def wrapper(db: Session, *args: Any, **kwargs: Any) -> Any:
        try:
            return fn(db, *args, **kwargs)
        except Exception:
            db.rollback()
            raise

    return wrapper  # type: ignore[return-value]


engine: Engine = make_engine(settings.SQLALCHEMY_DATABASE_URI)

SessionLocal = make_session_factory(engine)
