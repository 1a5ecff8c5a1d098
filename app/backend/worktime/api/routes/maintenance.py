"""Maintenance pass trigger."""

from __future__ import annotations

from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from worktime.api.dependencies import get_engine_policy
from worktime.api.errors import not_found
from worktime.db.dependencies import get_db_session
from worktime.repositories.engine_repository import EngineRepository
from worktime.services.maintenance import MaintenanceScope, RecomputeOrchestrator
from worktime.services.policy import EnginePolicy

router = APIRouter(prefix="/maintenance", tags=["maintenance"])


class MaintenancePassPayload(BaseModel):
    scope: Literal["full", "employee", "project"] = "full"
    target_id: UUID | None = None


@router.post("/passes")
def run_maintenance_pass(
    payload: MaintenancePassPayload,
    policy: EnginePolicy = Depends(get_engine_policy),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    try:
        scope = MaintenanceScope(kind=payload.scope, target_id=payload.target_id)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc

    repo = EngineRepository(db)
    if scope.kind == "employee" and repo.read_employee(scope.target_id) is None:
        raise not_found("Employee")
    if scope.kind == "project" and repo.get_project(scope.target_id) is None:
        raise not_found("Project")

    result = RecomputeOrchestrator(db, policy).run_maintenance_pass(scope)
    return result.as_dict()
