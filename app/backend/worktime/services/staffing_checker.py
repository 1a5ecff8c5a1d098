"""Read-only validation of project staffing and task-assignment rules."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from uuid import UUID

from worktime.models.entities import ProjectStatus
from worktime.repositories.engine_repository import EngineRepository
from worktime.services.policy import EnginePolicy


class ViolationKind(str, Enum):
    ILLEGAL_ASSIGNMENT = "illegal_assignment"
    UNDERSTAFFED_PROJECT = "understaffed_project"
    OVERSTAFFED_PROJECT = "overstaffed_project"
    UNDERUTILIZED_EMPLOYEE = "underutilized_employee"


class AssignmentSource(str, Enum):
    TASK_ASSIGNMENT = "task_assignment"
    LEGACY_ASSIGNEE = "legacy_assignee"


# Soft kinds are targets: reported, never counted as unresolved.
HARD_KINDS = frozenset({ViolationKind.ILLEGAL_ASSIGNMENT, ViolationKind.UNDERSTAFFED_PROJECT})


@dataclass(frozen=True, slots=True)
class Violation:
    kind: ViolationKind
    project_id: UUID | None
    employee_id: UUID | None = None
    task_id: UUID | None = None
    source: AssignmentSource | None = None
    shortfall: int = 0

    @property
    def hard(self) -> bool:
        return self.kind in HARD_KINDS

    def describe(self) -> str:
        if self.kind is ViolationKind.ILLEGAL_ASSIGNMENT:
            return (
                f"employee {self.employee_id} is assigned to task {self.task_id} "
                f"({self.source.value}) but is not on the team of project {self.project_id}"
            )
        if self.kind is ViolationKind.UNDERSTAFFED_PROJECT:
            return f"project {self.project_id} needs {self.shortfall} more staffed employee(s)"
        if self.kind is ViolationKind.OVERSTAFFED_PROJECT:
            return f"project {self.project_id} is {self.shortfall} employee(s) above the team size target"
        return f"employee {self.employee_id} is staffed on {self.shortfall} project(s) fewer than the target"

    def as_dict(self) -> dict[str, object]:
        return {
            "kind": self.kind.value,
            "hard": self.hard,
            "project_id": str(self.project_id) if self.project_id is not None else None,
            "employee_id": str(self.employee_id) if self.employee_id is not None else None,
            "task_id": str(self.task_id) if self.task_id is not None else None,
            "source": self.source.value if self.source is not None else None,
            "shortfall": self.shortfall,
            "detail": self.describe(),
        }


@dataclass(frozen=True, slots=True)
class EmployeeRef:
    id: UUID
    is_active: bool = True


@dataclass(frozen=True, slots=True)
class ProjectRef:
    id: UUID
    status: ProjectStatus


@dataclass(frozen=True, slots=True)
class TaskRef:
    id: UUID
    project_id: UUID
    assigned_to: UUID | None = None
    assignees: tuple[UUID, ...] = ()


@dataclass(frozen=True)
class StaffingDataset:
    """Snapshot the checker and allocator work on.

    ``employees`` and ``projects`` hold every row in stable creation order;
    ``tasks`` may be limited to the projects being checked.
    """

    employees: tuple[EmployeeRef, ...]
    projects: tuple[ProjectRef, ...]
    teams: Mapping[UUID, frozenset[UUID]] = field(default_factory=dict)
    tasks: tuple[TaskRef, ...] = ()

    def team_of(self, project_id: UUID) -> frozenset[UUID]:
        return self.teams.get(project_id, frozenset())

    @property
    def active_employee_ids(self) -> frozenset[UUID]:
        return frozenset(employee.id for employee in self.employees if employee.is_active)

    def project(self, project_id: UUID) -> ProjectRef | None:
        for project in self.projects:
            if project.id == project_id:
                return project
        return None

    def project_ordinal(self, project_id: UUID) -> int:
        for index, project in enumerate(self.projects):
            if project.id == project_id:
                return index
        raise KeyError(project_id)

    def staffed_count(self, project_id: UUID) -> int:
        return len(self.team_of(project_id) & self.active_employee_ids)


def load_staffing_dataset(repo: EngineRepository, project_ids: Iterable[UUID] | None = None) -> StaffingDataset:
    scoped = set(project_ids) if project_ids is not None else None

    teams: dict[UUID, set[UUID]] = {}
    for membership in repo.list_team_memberships():
        teams.setdefault(membership.project_id, set()).add(membership.employee_id)

    assignees: dict[UUID, list[UUID]] = {}
    for assignment in repo.read_task_assignments(scoped):
        assignees.setdefault(assignment.task_id, []).append(assignment.employee_id)

    return StaffingDataset(
        employees=tuple(EmployeeRef(id=row.id, is_active=row.is_active) for row in repo.list_employees()),
        projects=tuple(ProjectRef(id=row.id, status=row.status) for row in repo.list_projects()),
        teams={project_id: frozenset(members) for project_id, members in teams.items()},
        tasks=tuple(
            TaskRef(
                id=task.id,
                project_id=task.project_id,
                assigned_to=task.assigned_to,
                assignees=tuple(assignees.get(task.id, ())),
            )
            for task in repo.list_tasks(scoped)
        ),
    )


def _assignment_violations(dataset: StaffingDataset, project: ProjectRef) -> list[Violation]:
    team = dataset.team_of(project.id)
    violations: list[Violation] = []
    for task in dataset.tasks:
        if task.project_id != project.id:
            continue
        for employee_id in task.assignees:
            if employee_id not in team:
                violations.append(
                    Violation(
                        kind=ViolationKind.ILLEGAL_ASSIGNMENT,
                        project_id=project.id,
                        employee_id=employee_id,
                        task_id=task.id,
                        source=AssignmentSource.TASK_ASSIGNMENT,
                    )
                )
        if task.assigned_to is not None and task.assigned_to not in team:
            violations.append(
                Violation(
                    kind=ViolationKind.ILLEGAL_ASSIGNMENT,
                    project_id=project.id,
                    employee_id=task.assigned_to,
                    task_id=task.id,
                    source=AssignmentSource.LEGACY_ASSIGNEE,
                )
            )
    return violations


def _team_size_violations(dataset: StaffingDataset, project: ProjectRef, policy: EnginePolicy) -> list[Violation]:
    if not policy.requires_staffing(project.status):
        return []
    staffed = dataset.staffed_count(project.id)
    if staffed < policy.min_team_size:
        return [
            Violation(
                kind=ViolationKind.UNDERSTAFFED_PROJECT,
                project_id=project.id,
                shortfall=policy.min_team_size - staffed,
            )
        ]
    if staffed > policy.max_team_size:
        return [
            Violation(
                kind=ViolationKind.OVERSTAFFED_PROJECT,
                project_id=project.id,
                shortfall=staffed - policy.max_team_size,
            )
        ]
    return []


def _workload_violations(
    dataset: StaffingDataset,
    policy: EnginePolicy,
    employee_ids: frozenset[UUID] | None,
) -> list[Violation]:
    if policy.min_projects_per_employee <= 0:
        return []
    staffed_projects = {project.id for project in dataset.projects if policy.requires_staffing(project.status)}
    counts: dict[UUID, int] = {}
    for project_id, members in dataset.teams.items():
        if project_id not in staffed_projects:
            continue
        for employee_id in members:
            counts[employee_id] = counts.get(employee_id, 0) + 1

    violations: list[Violation] = []
    for employee in dataset.employees:
        if not employee.is_active:
            continue
        if employee_ids is not None and employee.id not in employee_ids:
            continue
        count = counts.get(employee.id, 0)
        if count < policy.min_projects_per_employee:
            violations.append(
                Violation(
                    kind=ViolationKind.UNDERUTILIZED_EMPLOYEE,
                    project_id=None,
                    employee_id=employee.id,
                    shortfall=policy.min_projects_per_employee - count,
                )
            )
    return violations


def find_violations(
    dataset: StaffingDataset,
    *,
    policy: EnginePolicy,
    project_ids: Iterable[UUID] | None = None,
    workload_employee_ids: Iterable[UUID] | None = None,
) -> list[Violation]:
    """List every staffing violation in scope, in deterministic order.

    ``project_ids=None`` checks every project. ``workload_employee_ids=None``
    evaluates the per-employee project target for every active employee; an
    empty collection skips it.
    """

    scoped = frozenset(project_ids) if project_ids is not None else None
    workload_scope = frozenset(workload_employee_ids) if workload_employee_ids is not None else None

    violations: list[Violation] = []
    for project in dataset.projects:
        if scoped is not None and project.id not in scoped:
            continue
        violations.extend(_assignment_violations(dataset, project))
        violations.extend(_team_size_violations(dataset, project, policy))
    violations.extend(_workload_violations(dataset, policy, workload_scope))
    return violations
