import os
import contextlib
from typing import Callable, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from database.models import Base

DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///metadata_audit.db")


def build_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine; in-memory SQLite shares one connection across threads."""
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=echo, **kwargs)
    return create_engine(url, echo=echo, pool_pre_ping=True)


def build_session_factory(url: str, echo: bool = False, create_tables: bool = True) -> sessionmaker:
    engine = build_engine(url, echo)
    if create_tables:
        init_db(engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind: Engine) -> None:
    Base.metadata.create_all(bind=bind)


engine = build_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextlib.contextmanager
def db_session_scope(session_factory: Optional[Callable[[], Session]] = None):
    """Provide a transactional scope around a series of operations."""
    session = (session_factory or SessionLocal)()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
