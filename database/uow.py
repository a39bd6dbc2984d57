import contextlib
import logging
from typing import Callable, Optional

from sqlalchemy.orm import Session

from database.database import SessionLocal
from database.repositories import OverrideRepository, SnapshotRepository

logger = logging.getLogger(__name__)


@contextlib.contextmanager
def ruleset_uow(session_factory: Optional[Callable[[], Session]] = None):
    """Per-unit-of-work transaction scope.

    Yields an OverrideRepository bound to a fresh Session. Commits on success,
    rolls back on exception, always closes.

    Usage:
        with ruleset_uow(factory) as repo:
            row = repo.get_override(override_id)
            # perform operations...
        # commit happens automatically on successful exit
    """
    session = (session_factory or SessionLocal)()
    try:
        yield OverrideRepository(session)
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@contextlib.contextmanager
def snapshot_uow(session_factory: Optional[Callable[[], Session]] = None):
    """Same scope as ruleset_uow, yielding a SnapshotRepository."""
    session = (session_factory or SessionLocal)()
    try:
        yield SnapshotRepository(session)
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
