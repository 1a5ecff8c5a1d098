"""Team membership and task assignment endpoints."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from worktime.api.dependencies import get_engine_policy
from worktime.api.errors import engine_http_exception, not_found
from worktime.core.exceptions import EngineError
from worktime.db.dependencies import get_db_session
from worktime.models.entities import TeamRole
from worktime.services.maintenance import MaintenancePassResult, RecomputeOrchestrator, project_violations
from worktime.services.policy import EnginePolicy

router = APIRouter(tags=["staffing"])


class TeamMemberCreatePayload(BaseModel):
    employee_id: UUID
    role: TeamRole = TeamRole.MEMBER


class TaskAssignmentCreatePayload(BaseModel):
    employee_id: UUID


def _staffing_summary(result: MaintenancePassResult) -> dict[str, object]:
    return {
        "violations": [violation.as_dict() for violation in result.violations],
        "applied": [change.as_dict() for change in result.applied],
        "unresolved": [{"violation": item.violation.as_dict(), "reason": item.reason} for item in result.unresolved],
    }


@router.post("/projects/{project_id}/team-members", status_code=status.HTTP_201_CREATED)
def add_team_member(
    project_id: UUID,
    payload: TeamMemberCreatePayload,
    policy: EnginePolicy = Depends(get_engine_policy),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    orchestrator = RecomputeOrchestrator(db, policy)
    repo = orchestrator.repo
    if repo.get_project(project_id) is None:
        raise not_found("Project")
    if repo.read_employee(payload.employee_id) is None:
        raise not_found("Employee")
    if repo.get_team_membership(project_id, payload.employee_id) is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Employee is already on the project team.",
        )

    try:
        membership = repo.write_team_membership(project_id, payload.employee_id, payload.role)
        db.commit()
    except EngineError as exc:
        db.rollback()
        raise engine_http_exception(exc) from exc

    staffing = orchestrator.on_staffing_changed(project_id)
    return {
        "membership": {
            "id": str(membership.id),
            "project_id": str(membership.project_id),
            "employee_id": str(membership.employee_id),
            "role": membership.role.value,
        },
        "staffing": _staffing_summary(staffing),
    }


@router.post("/tasks/{task_id}/assignments", status_code=status.HTTP_201_CREATED)
def add_task_assignment(
    task_id: UUID,
    payload: TaskAssignmentCreatePayload,
    policy: EnginePolicy = Depends(get_engine_policy),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    orchestrator = RecomputeOrchestrator(db, policy)
    repo = orchestrator.repo
    task = repo.get_task(task_id)
    if task is None:
        raise not_found("Task")
    if repo.read_employee(payload.employee_id) is None:
        raise not_found("Employee")
    if repo.get_team_membership(task.project_id, payload.employee_id) is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Employee must be on the project team before taking a task.",
        )
    if repo.get_task_assignment(task_id, payload.employee_id) is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Employee is already assigned to the task.",
        )

    project_id = task.project_id
    try:
        assignment = repo.write_task_assignment(task_id, payload.employee_id)
        db.commit()
    except EngineError as exc:
        db.rollback()
        raise engine_http_exception(exc) from exc

    staffing = orchestrator.on_staffing_changed(project_id)
    return {
        "assignment": {
            "id": str(assignment.id),
            "task_id": str(assignment.task_id),
            "employee_id": str(assignment.employee_id),
        },
        "staffing": _staffing_summary(staffing),
    }


@router.get("/projects/{project_id}/staffing/violations")
def list_project_violations(
    project_id: UUID,
    policy: EnginePolicy = Depends(get_engine_policy),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    violations = project_violations(db, policy, project_id)
    if violations is None:
        raise not_found("Project")
    return {"items": [violation.as_dict() for violation in violations]}
