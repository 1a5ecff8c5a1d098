"""Employee salary endpoints."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from worktime.api.dependencies import get_engine_policy
from worktime.api.errors import engine_http_exception, not_found
from worktime.core.exceptions import EngineError
from worktime.db.dependencies import get_db_session
from worktime.models.entities import Employee
from worktime.repositories.engine_repository import EngineRepository
from worktime.services.maintenance import RecomputeOrchestrator
from worktime.services.policy import EnginePolicy

router = APIRouter(prefix="/employees", tags=["employees"])


class SalaryUpdatePayload(BaseModel):
    # Kept as a string so unknown types reach the engine's own validation.
    salary_type: str
    salary_amount: Decimal


def serialize_employee(employee: Employee) -> dict[str, object]:
    return {
        "id": str(employee.id),
        "employee_code": employee.employee_code,
        "name": employee.display_name,
        "department": employee.department,
        "salary_type": employee.salary_type.value,
        "salary_amount": str(employee.salary_amount),
        "hourly_rate": str(employee.hourly_rate),
        "is_active": employee.is_active,
    }


@router.get("/{employee_id}")
def get_employee(employee_id: UUID, db: Session = Depends(get_db_session)) -> dict[str, object]:
    employee = EngineRepository(db).read_employee(employee_id)
    if employee is None:
        raise not_found("Employee")
    return serialize_employee(employee)


@router.put("/{employee_id}/salary")
def update_employee_salary(
    employee_id: UUID,
    payload: SalaryUpdatePayload,
    policy: EnginePolicy = Depends(get_engine_policy),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    orchestrator = RecomputeOrchestrator(db, policy)
    employee = orchestrator.repo.read_employee(employee_id)
    if employee is None:
        raise not_found("Employee")

    try:
        rate_change, cost_changes = orchestrator.on_salary_changed(
            employee,
            salary_type=payload.salary_type,
            salary_amount=payload.salary_amount,
        )
        db.commit()
    except EngineError as exc:
        db.rollback()
        raise engine_http_exception(exc) from exc

    db.refresh(employee)
    return {
        "employee": serialize_employee(employee),
        "previous_rate": str(rate_change.previous_rate),
        "costs_updated": len(cost_changes),
    }
