"""Transaction boundary shared by rate, billing and staffing units."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from worktime.core.exceptions import PersistenceError
from worktime.repositories.engine_repository import EngineRepository


@contextmanager
def unit_of_work(db: Session, repo: EngineRepository, kind: str, entity_id: UUID) -> Iterator[None]:
    """Lock, run and commit one unit; anything that escapes rolls it back whole."""

    try:
        repo.acquire_scope_lock(kind, entity_id)
        yield
        db.commit()
    except PersistenceError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError(f"{kind} unit {entity_id}", str(exc)) from exc
    except Exception:
        db.rollback()
        raise
