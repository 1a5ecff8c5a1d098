"""Policy constants passed explicitly into every engine service."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from worktime.core.config import Settings
from worktime.models.entities import AssignmentRepairPolicy, ProjectStatus


@dataclass(frozen=True, slots=True)
class EnginePolicy:
    working_days_per_month: int = 24
    hours_per_day: int = 8
    rate_rounding_unit: Decimal = Decimal("10")
    min_billable_minutes: int = 30
    min_team_size: int = 2
    max_team_size: int = 3
    min_projects_per_employee: int = 3
    staffing_exempt_statuses: frozenset[ProjectStatus] = field(
        default_factory=lambda: frozenset({ProjectStatus.TODO, ProjectStatus.CANCELLED})
    )
    assignment_repair_policy: AssignmentRepairPolicy | None = None
    auto_repair: bool = True
    enforce_employee_workload: bool = False
    allocation_seed: int = 0

    @property
    def standard_monthly_hours(self) -> int:
        return self.working_days_per_month * self.hours_per_day

    def requires_staffing(self, status: ProjectStatus) -> bool:
        return status not in self.staffing_exempt_statuses

    @classmethod
    def from_settings(cls, settings: Settings) -> EnginePolicy:
        return cls(
            working_days_per_month=settings.working_days_per_month,
            hours_per_day=settings.hours_per_day,
            rate_rounding_unit=Decimal(settings.rate_rounding_unit),
            min_billable_minutes=settings.min_billable_minutes,
            min_team_size=settings.min_team_size,
            max_team_size=settings.max_team_size,
            min_projects_per_employee=settings.min_projects_per_employee,
            staffing_exempt_statuses=frozenset(settings.staffing_exempt_statuses),
            assignment_repair_policy=settings.assignment_repair_policy,
            auto_repair=settings.staffing_auto_repair,
            enforce_employee_workload=settings.enforce_employee_workload,
            allocation_seed=settings.allocation_seed,
        )
