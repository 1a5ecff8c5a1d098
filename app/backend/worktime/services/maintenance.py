"""Maintenance passes and request-time hooks that keep derived values consistent."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Literal
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from worktime.core.exceptions import (
    EngineValidationError,
    PersistenceError,
    UnresolvedViolationError,
)
from worktime.models.entities import Employee, SalaryType, TimeEntry
from worktime.repositories.engine_repository import EngineRepository, TimeEntryFilter
from worktime.services.billing import BillingCalculator, CostChange, SkippedRow
from worktime.services.policy import EnginePolicy
from worktime.services.rate_derivation import RateChange, RateDerivationService
from worktime.services.staffing_allocator import (
    AppliedChange,
    StaffingAllocator,
    is_enforced,
)
from worktime.services.staffing_checker import (
    Violation,
    find_violations,
    load_staffing_dataset,
)
from worktime.services.unit_of_work import unit_of_work

logger = logging.getLogger(__name__)

ScopeKind = Literal["full", "employee", "project"]


@dataclass(frozen=True, slots=True)
class MaintenanceScope:
    kind: ScopeKind
    target_id: UUID | None = None

    @classmethod
    def full(cls) -> MaintenanceScope:
        return cls(kind="full")

    @classmethod
    def employee(cls, employee_id: UUID) -> MaintenanceScope:
        return cls(kind="employee", target_id=employee_id)

    @classmethod
    def project(cls, project_id: UUID) -> MaintenanceScope:
        return cls(kind="project", target_id=project_id)

    def __post_init__(self) -> None:
        if self.kind not in ("full", "employee", "project"):
            raise ValueError(f"Unknown maintenance scope {self.kind!r}")
        if self.kind != "full" and self.target_id is None:
            raise ValueError(f"Scope {self.kind!r} requires a target id")

    def label(self) -> str:
        return self.kind if self.target_id is None else f"{self.kind}:{self.target_id}"


@dataclass(slots=True)
class FailedUnit:
    unit: str
    code: str
    reason: str


@dataclass(slots=True)
class MaintenancePassResult:
    scope: MaintenanceScope
    rates_updated: list[RateChange] = field(default_factory=list)
    costs_updated: list[CostChange] = field(default_factory=list)
    skipped: list[SkippedRow] = field(default_factory=list)
    violations: list[Violation] = field(default_factory=list)
    applied: list[AppliedChange] = field(default_factory=list)
    unresolved: list[UnresolvedViolationError] = field(default_factory=list)
    failed_units: list[FailedUnit] = field(default_factory=list)

    @property
    def writes(self) -> int:
        return len(self.rates_updated) + len(self.costs_updated) + len(self.applied)

    @property
    def succeeded(self) -> bool:
        return not self.unresolved and not self.failed_units

    @property
    def exit_code(self) -> int:
        return 0 if self.succeeded else 1

    def as_dict(self) -> dict[str, object]:
        return {
            "scope": self.scope.label(),
            "succeeded": self.succeeded,
            "writes": self.writes,
            "rates_updated": [
                {
                    "employee_id": str(change.employee_id),
                    "previous_rate": str(change.previous_rate),
                    "new_rate": str(change.new_rate),
                }
                for change in self.rates_updated
            ],
            "costs_updated": [
                {
                    "time_entry_id": str(change.time_entry_id),
                    "previous_cost": str(change.previous_cost),
                    "new_cost": str(change.new_cost),
                    "previous_duration": change.previous_duration,
                    "new_duration": change.new_duration,
                }
                for change in self.costs_updated
            ],
            "skipped": [
                {"entity": row.entity, "entity_id": str(row.entity_id), "code": row.code, "reason": row.reason}
                for row in self.skipped
            ],
            "violations": [violation.as_dict() for violation in self.violations],
            "applied": [change.as_dict() for change in self.applied],
            "unresolved": [
                {"violation": item.violation.as_dict(), "reason": item.reason} for item in self.unresolved
            ],
            "failed_units": [
                {"unit": unit.unit, "code": unit.code, "reason": unit.reason} for unit in self.failed_units
            ],
        }


def _violation_key(violation: Violation) -> tuple:
    return (violation.kind, violation.project_id, violation.employee_id, violation.task_id, violation.source)


class RecomputeOrchestrator:
    """Runs rate derivation, cost recompute and staffing repair in order.

    A pass first settles staffing (check, optional repair, re-check) one
    project per transaction, then walks employees one per transaction: the
    rate is refreshed from the salary fields and every stale entry is
    re-priced at the resulting rate. Units are processed in creation order,
    so a pass over an unchanged dataset produces the same result every time.
    """

    def __init__(self, db: Session, policy: EnginePolicy) -> None:
        self.db = db
        self.policy = policy
        self.repo = EngineRepository(db)
        self.rates = RateDerivationService(self.repo, policy)
        self.billing = BillingCalculator(self.repo, policy)
        self.allocator = StaffingAllocator(db, self.repo, policy)

    # ---------- Scope resolution ----------
    def _staffing_scope(self, scope: MaintenanceScope) -> tuple[set[UUID] | None, set[UUID] | None]:
        """Return (project ids, workload employee ids) the staffing check covers.

        An enforced workload target joins employees to projects anywhere in
        the dataset; with it on, every scope settles staffing dataset-wide.
        """

        if scope.kind == "full" or self.policy.enforce_employee_workload:
            return None, None
        if scope.kind == "project":
            return {scope.target_id}, set()
        return self.repo.list_project_ids_for_employee(scope.target_id), {scope.target_id}

    def _pricing_scope(self, scope: MaintenanceScope) -> tuple[set[UUID] | None, set[UUID] | None]:
        """Return (employee ids, entry project ids); read after staffing so new members are included."""

        if scope.kind == "project":
            return self.repo.list_employee_ids_for_project(scope.target_id), {scope.target_id}
        if scope.kind == "employee":
            return {scope.target_id}, None
        return None, None

    def _record_failure(self, result: MaintenancePassResult, unit: str, exc: Exception) -> None:
        self.db.rollback()
        code = exc.code if isinstance(exc, PersistenceError) else PersistenceError.code
        logger.error("maintenance_unit_failed", extra={"scope": unit, "code": code, "reason": str(exc)})
        result.failed_units.append(FailedUnit(unit=unit, code=code, reason=str(exc)))

    # ---------- Staffing ----------
    def _settle_staffing(
        self,
        result: MaintenancePassResult,
        project_ids: set[UUID] | None,
        workload_ids: set[UUID] | None,
    ) -> None:
        dataset = load_staffing_dataset(self.repo, project_ids)
        violations = find_violations(
            dataset,
            policy=self.policy,
            project_ids=project_ids,
            workload_employee_ids=workload_ids,
        )

        leftovers: list[UnresolvedViolationError] = []
        if violations and self.policy.auto_repair:
            outcome = self.allocator.repair(violations, dataset=dataset)
            result.applied.extend(outcome.applied)
            leftovers = outcome.unresolved
            if outcome.applied:
                dataset = load_staffing_dataset(self.repo, project_ids)
                violations = find_violations(
                    dataset,
                    policy=self.policy,
                    project_ids=project_ids,
                    workload_employee_ids=workload_ids,
                )
        elif violations:
            leftovers = [
                UnresolvedViolationError(violation, "automatic repair disabled")
                for violation in violations
                if is_enforced(violation, self.policy)
            ]

        result.violations.extend(violations)
        reported = {_violation_key(item.violation) for item in leftovers}
        result.unresolved.extend(leftovers)
        for violation in violations:
            if is_enforced(violation, self.policy) and _violation_key(violation) not in reported:
                result.unresolved.append(UnresolvedViolationError(violation, "still present after repair"))

    # ---------- Rates and costs ----------
    def _settle_employee(
        self,
        result: MaintenancePassResult,
        employee: Employee,
        entry_project_ids: set[UUID] | None,
    ) -> None:
        entry_filter = TimeEntryFilter(employee_ids={employee.id}, project_ids=entry_project_ids)
        try:
            with unit_of_work(self.db, self.repo, "employee", employee.id):
                try:
                    rate_change = self.rates.refresh_employee_rate(employee)
                except EngineValidationError as exc:
                    # Without a valid rate nothing of this employee can be priced.
                    logger.warning(
                        "employee_skipped",
                        extra={"employee_id": employee.id, "code": exc.code, "reason": str(exc)},
                    )
                    result.skipped.append(
                        SkippedRow(entity="employee", entity_id=employee.id, code=exc.code, reason=str(exc))
                    )
                    return
                costs = self.billing.recompute_costs(entry_filter)
        except PersistenceError as exc:
            logger.error(
                "employee_unit_rolled_back",
                extra={"employee_id": employee.id, "code": exc.code, "reason": str(exc)},
            )
            result.failed_units.append(FailedUnit(unit=f"employee:{employee.id}", code=exc.code, reason=str(exc)))
            return

        if rate_change is not None:
            result.rates_updated.append(rate_change)
        result.costs_updated.extend(costs.updated)
        result.skipped.extend(costs.skipped)

    def run_maintenance_pass(self, scope: MaintenanceScope) -> MaintenancePassResult:
        """Run one pass over ``scope`` and report everything it did and left."""

        result = MaintenancePassResult(scope=scope)
        logger.info("maintenance_pass_started", extra={"scope": scope.label()})

        try:
            project_ids, workload_ids = self._staffing_scope(scope)
            self._settle_staffing(result, project_ids, workload_ids)
        except (PersistenceError, SQLAlchemyError) as exc:
            self._record_failure(result, f"staffing:{scope.label()}", exc)

        try:
            employee_ids, entry_project_ids = self._pricing_scope(scope)
            employees = self.repo.list_employees(employee_ids)
        except (PersistenceError, SQLAlchemyError) as exc:
            self._record_failure(result, f"employees:{scope.label()}", exc)
            employees = []

        for employee in employees:
            self._settle_employee(result, employee, entry_project_ids)

        log = logger.info if result.succeeded else logger.warning
        log(
            "maintenance_pass_finished",
            extra={
                "scope": scope.label(),
                "rates_updated": len(result.rates_updated),
                "costs_updated": len(result.costs_updated),
                "applied": len(result.applied),
                "skipped": len(result.skipped),
                "unresolved": len(result.unresolved),
                "failed_units": len(result.failed_units),
            },
        )
        return result

    # ---------- Request-time hooks ----------
    def on_salary_changed(
        self,
        employee: Employee,
        *,
        salary_type: SalaryType | str,
        salary_amount: Decimal | int | float | str,
    ) -> tuple[RateChange, list[CostChange]]:
        """Derive the new rate and re-price the employee's entries.

        Runs inside the caller's transaction; invalid input raises before any
        write so the request can reject it whole.
        """

        rate_change = self.rates.apply_salary_change(employee, salary_type=salary_type, salary_amount=salary_amount)
        costs = self.billing.recompute_costs(TimeEntryFilter(employee_ids={employee.id}))
        return rate_change, costs.updated

    def on_time_entry_saved(self, entry: TimeEntry) -> CostChange | None:
        """Price a created or edited entry inside the caller's transaction."""

        employee = self.repo.read_employee(entry.employee_id)
        if employee is None:
            raise PersistenceError("on_time_entry_saved", f"employee {entry.employee_id} not found")
        if not entry.is_active:
            return None
        return self.billing.price_time_entry(entry, employee.hourly_rate)

    def on_staffing_changed(self, project_id: UUID) -> MaintenancePassResult:
        """Check one project after a membership or assignment write, repairing if configured.

        The caller must have committed its own write first; repairs run in
        their own project unit. With the workload target enforced the whole
        dataset is checked instead.
        """

        scope = MaintenanceScope.project(project_id)
        result = MaintenancePassResult(scope=scope)
        self._settle_staffing(result, *self._staffing_scope(scope))
        if result.unresolved:
            logger.warning(
                "staffing_unresolved",
                extra={"project_id": project_id, "unresolved": len(result.unresolved)},
            )
        return result


def project_violations(db: Session, policy: EnginePolicy, project_id: UUID) -> list[Violation] | None:
    """Read-only staffing check for one project; ``None`` if it does not exist."""

    repo = EngineRepository(db)
    dataset = load_staffing_dataset(repo, {project_id})
    if dataset.project(project_id) is None:
        return None
    return find_violations(dataset, policy=policy, project_ids={project_id}, workload_employee_ids=set())
