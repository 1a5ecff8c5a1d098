"""Time entry endpoints; every write is priced in the same transaction."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from worktime.api.dependencies import get_engine_policy
from worktime.api.errors import engine_http_exception, not_found
from worktime.core.exceptions import EngineError
from worktime.db.dependencies import get_db_session
from worktime.models.entities import TimeEntry
from worktime.services.maintenance import RecomputeOrchestrator
from worktime.services.policy import EnginePolicy

router = APIRouter(prefix="/time-entries", tags=["time-entries"])


class TimeEntryCreatePayload(BaseModel):
    employee_id: UUID
    project_id: UUID | None = None
    task_id: UUID | None = None
    start_time: datetime
    end_time: datetime | None = None
    description: str | None = Field(default=None, max_length=2000)


class TimeEntryUpdatePayload(BaseModel):
    start_time: datetime | None = None
    end_time: datetime | None = None
    description: str | None = Field(default=None, max_length=2000)
    is_active: bool | None = None


def serialize_time_entry(entry: TimeEntry) -> dict[str, object]:
    return {
        "id": str(entry.id),
        "employee_id": str(entry.employee_id),
        "project_id": str(entry.project_id) if entry.project_id else None,
        "task_id": str(entry.task_id) if entry.task_id else None,
        "start_time": entry.start_time.isoformat(),
        "end_time": entry.end_time.isoformat() if entry.end_time else None,
        "duration_minutes": entry.duration_minutes,
        "cost": str(entry.cost),
        "description": entry.description,
        "is_active": entry.is_active,
    }


def _price_and_commit(db: Session, orchestrator: RecomputeOrchestrator, entry: TimeEntry) -> None:
    try:
        orchestrator.on_time_entry_saved(entry)
        db.commit()
    except EngineError as exc:
        db.rollback()
        raise engine_http_exception(exc) from exc
    db.refresh(entry)


@router.post("", status_code=status.HTTP_201_CREATED)
def create_time_entry(
    payload: TimeEntryCreatePayload,
    policy: EnginePolicy = Depends(get_engine_policy),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    orchestrator = RecomputeOrchestrator(db, policy)
    repo = orchestrator.repo
    if repo.read_employee(payload.employee_id) is None:
        raise not_found("Employee")

    project_id = payload.project_id
    if payload.task_id is not None:
        task = repo.get_task(payload.task_id)
        if task is None:
            raise not_found("Task")
        if project_id is not None and project_id != task.project_id:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="task_id does not belong to project_id.",
            )
        project_id = task.project_id
    elif project_id is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Either project_id or task_id is required.",
        )
    elif repo.get_project(project_id) is None:
        raise not_found("Project")

    try:
        entry = repo.add_time_entry(
            TimeEntry(
                employee_id=payload.employee_id,
                project_id=project_id,
                task_id=payload.task_id,
                start_time=payload.start_time,
                end_time=payload.end_time,
                description=payload.description or "",
            )
        )
    except EngineError as exc:
        db.rollback()
        raise engine_http_exception(exc) from exc
    _price_and_commit(db, orchestrator, entry)
    return serialize_time_entry(entry)


@router.patch("/{time_entry_id}")
def update_time_entry(
    time_entry_id: UUID,
    payload: TimeEntryUpdatePayload,
    policy: EnginePolicy = Depends(get_engine_policy),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    orchestrator = RecomputeOrchestrator(db, policy)
    entry = orchestrator.repo.get_time_entry(time_entry_id)
    if entry is None:
        raise not_found("Time entry")

    changes = payload.model_dump(exclude_unset=True)
    for field_name, value in changes.items():
        if field_name == "start_time" and value is None:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="start_time cannot be cleared.",
            )
        if field_name == "description" and value is None:
            value = ""
        setattr(entry, field_name, value)
    entry.updated_at = datetime.utcnow()
    _price_and_commit(db, orchestrator, entry)
    return serialize_time_entry(entry)
