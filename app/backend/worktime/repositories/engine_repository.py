"""Repository helpers for the billing and staffing engine."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import and_, delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from worktime.core.exceptions import PersistenceError, ScopeLockedError
from worktime.models.entities import (
    Employee,
    Project,
    SalaryType,
    Task,
    TaskAssignment,
    TeamMembership,
    TeamRole,
    TimeEntry,
)


@dataclass(slots=True)
class TimeEntryFilter:
    employee_ids: set[UUID] | None = None
    project_ids: set[UUID] | None = None
    started_from: datetime | None = None
    started_to: datetime | None = None
    # Restricts the sweep to entries below the billing floor.
    under_minutes: int | None = None


_LOCK_NAMESPACES = {"employee": 1, "project": 2}


def _lock_key(kind: str, entity_id: UUID) -> int:
    # Top byte carries the unit kind so employee and project locks never collide.
    return (_LOCK_NAMESPACES[kind] << 56) | int.from_bytes(entity_id.bytes[:7], "big")


class EngineRepository:
    """Persistence operations consumed by the rate, billing and staffing services.

    Every database error is re-raised as ``PersistenceError`` naming the
    operation, so callers roll back one unit instead of crashing the pass.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def _flush(self, operation: str) -> None:
        try:
            self.db.flush()
        except SQLAlchemyError as exc:
            raise PersistenceError(operation, str(exc)) from exc

    def _scalar(self, operation: str, statement):
        try:
            return self.db.scalar(statement)
        except SQLAlchemyError as exc:
            raise PersistenceError(operation, str(exc)) from exc

    def _scalars(self, operation: str, statement) -> list:
        try:
            return list(self.db.scalars(statement).all())
        except SQLAlchemyError as exc:
            raise PersistenceError(operation, str(exc)) from exc

    def _rows(self, operation: str, statement) -> list:
        try:
            return list(self.db.execute(statement).all())
        except SQLAlchemyError as exc:
            raise PersistenceError(operation, str(exc)) from exc

    # ---------- Locking ----------
    def acquire_scope_lock(self, kind: str, entity_id: UUID) -> None:
        """Take a transaction-scoped advisory lock for one unit of work.

        Only PostgreSQL offers advisory locks; other dialects run under the
        single-writer assumption.
        """

        if self.db.get_bind().dialect.name != "postgresql":
            return
        statement = select(func.pg_try_advisory_xact_lock(_lock_key(kind, entity_id)))
        if not self._scalar("acquire_scope_lock", statement):
            raise ScopeLockedError(f"{kind}:{entity_id}")

    # ---------- Employees ----------
    def read_employee(self, employee_id: UUID) -> Employee | None:
        return self._scalar("read_employee", select(Employee).where(Employee.id == employee_id))

    def list_employees(self, employee_ids: set[UUID] | None = None, *, active_only: bool = False) -> list[Employee]:
        conditions = []
        if employee_ids is not None:
            conditions.append(Employee.id.in_(employee_ids))
        if active_only:
            conditions.append(Employee.is_active.is_(True))
        return self._scalars(
            "list_employees",
            select(Employee).where(*conditions).order_by(Employee.created_at.asc(), Employee.id.asc()),
        )

    def write_employee_salary(self, employee: Employee, *, salary_type: SalaryType, salary_amount: Decimal) -> None:
        employee.salary_type = salary_type
        employee.salary_amount = salary_amount
        employee.updated_at = datetime.utcnow()
        self._flush("write_employee_salary")

    def write_employee_rate(self, employee: Employee, rate: Decimal) -> None:
        employee.hourly_rate = rate
        employee.updated_at = datetime.utcnow()
        self._flush("write_employee_rate")

    def list_employee_ids_for_project(self, project_id: UUID) -> set[UUID]:
        """Team members plus anyone who logged time against the project."""

        team_ids = self._scalars(
            "list_employee_ids_for_project",
            select(TeamMembership.employee_id).where(TeamMembership.project_id == project_id),
        )
        entry_ids = self._scalars(
            "list_employee_ids_for_project",
            select(TimeEntry.employee_id)
            .outerjoin(Task, Task.id == TimeEntry.task_id)
            .where(func.coalesce(TimeEntry.project_id, Task.project_id) == project_id),
        )
        return set(team_ids) | set(entry_ids)

    # ---------- Projects and teams ----------
    def get_project(self, project_id: UUID) -> Project | None:
        return self._scalar("get_project", select(Project).where(Project.id == project_id))

    def list_projects(self, project_ids: set[UUID] | None = None) -> list[Project]:
        statement = select(Project)
        if project_ids is not None:
            statement = statement.where(Project.id.in_(project_ids))
        return self._scalars("list_projects", statement.order_by(Project.created_at.asc(), Project.id.asc()))

    def list_team_memberships(self) -> list[TeamMembership]:
        return self._scalars(
            "list_team_memberships",
            select(TeamMembership).order_by(
                TeamMembership.project_id.asc(),
                TeamMembership.added_at.asc(),
                TeamMembership.id.asc(),
            ),
        )

    def get_team_membership(self, project_id: UUID, employee_id: UUID) -> TeamMembership | None:
        return self._scalar(
            "get_team_membership",
            select(TeamMembership).where(
                and_(
                    TeamMembership.project_id == project_id,
                    TeamMembership.employee_id == employee_id,
                )
            ),
        )

    def write_team_membership(
        self,
        project_id: UUID,
        employee_id: UUID,
        role: TeamRole = TeamRole.MEMBER,
    ) -> TeamMembership:
        membership = TeamMembership(project_id=project_id, employee_id=employee_id, role=role)
        self.db.add(membership)
        self._flush("write_team_membership")
        return membership

    def list_project_ids_for_employee(self, employee_id: UUID) -> set[UUID]:
        """Projects the employee is staffed on or holds a task in."""

        team_ids = self._scalars(
            "list_project_ids_for_employee",
            select(TeamMembership.project_id).where(TeamMembership.employee_id == employee_id),
        )
        assigned_ids = self._scalars(
            "list_project_ids_for_employee",
            select(Task.project_id)
            .join(TaskAssignment, TaskAssignment.task_id == Task.id)
            .where(TaskAssignment.employee_id == employee_id),
        )
        legacy_ids = self._scalars(
            "list_project_ids_for_employee",
            select(Task.project_id).where(Task.assigned_to == employee_id),
        )
        return set(team_ids) | set(assigned_ids) | set(legacy_ids)

    # ---------- Tasks and assignments ----------
    def get_task(self, task_id: UUID) -> Task | None:
        return self._scalar("get_task", select(Task).where(Task.id == task_id))

    def list_tasks(self, project_ids: set[UUID] | None = None) -> list[Task]:
        statement = select(Task)
        if project_ids is not None:
            statement = statement.where(Task.project_id.in_(project_ids))
        return self._scalars("list_tasks", statement.order_by(Task.created_at.asc(), Task.id.asc()))

    def read_task_assignments(self, project_ids: set[UUID] | None = None) -> list[TaskAssignment]:
        statement = select(TaskAssignment).join(Task, Task.id == TaskAssignment.task_id)
        if project_ids is not None:
            statement = statement.where(Task.project_id.in_(project_ids))
        return self._scalars(
            "read_task_assignments",
            statement.order_by(
                TaskAssignment.task_id.asc(),
                TaskAssignment.assigned_at.asc(),
                TaskAssignment.employee_id.asc(),
            ),
        )

    def get_task_assignment(self, task_id: UUID, employee_id: UUID) -> TaskAssignment | None:
        return self._scalar(
            "get_task_assignment",
            select(TaskAssignment).where(
                and_(
                    TaskAssignment.task_id == task_id,
                    TaskAssignment.employee_id == employee_id,
                )
            ),
        )

    def write_task_assignment(self, task_id: UUID, employee_id: UUID) -> TaskAssignment:
        assignment = TaskAssignment(task_id=task_id, employee_id=employee_id)
        self.db.add(assignment)
        self._flush("write_task_assignment")
        return assignment

    def delete_task_assignment(self, task_id: UUID, employee_id: UUID) -> None:
        try:
            self.db.execute(
                delete(TaskAssignment).where(
                    and_(
                        TaskAssignment.task_id == task_id,
                        TaskAssignment.employee_id == employee_id,
                    )
                )
            )
        except SQLAlchemyError as exc:
            raise PersistenceError("delete_task_assignment", str(exc)) from exc

    def write_legacy_assignee(self, task_id: UUID, employee_id: UUID | None) -> None:
        task = self.get_task(task_id)
        if task is None:
            raise PersistenceError("write_legacy_assignee", f"task {task_id} not found")
        task.assigned_to = employee_id
        task.updated_at = datetime.utcnow()
        self._flush("write_legacy_assignee")

    # ---------- Time entries ----------
    def get_time_entry(self, time_entry_id: UUID) -> TimeEntry | None:
        return self._scalar("get_time_entry", select(TimeEntry).where(TimeEntry.id == time_entry_id))

    def add_time_entry(self, entry: TimeEntry) -> TimeEntry:
        self.db.add(entry)
        self._flush("add_time_entry")
        return entry

    def _time_entry_conditions(self, entry_filter: TimeEntryFilter) -> list:
        conditions = [TimeEntry.is_active.is_(True)]
        if entry_filter.employee_ids is not None:
            conditions.append(TimeEntry.employee_id.in_(entry_filter.employee_ids))
        if entry_filter.project_ids is not None:
            conditions.append(func.coalesce(TimeEntry.project_id, Task.project_id).in_(entry_filter.project_ids))
        if entry_filter.started_from is not None:
            conditions.append(TimeEntry.start_time >= entry_filter.started_from)
        if entry_filter.started_to is not None:
            conditions.append(TimeEntry.start_time <= entry_filter.started_to)
        if entry_filter.under_minutes is not None:
            conditions.append(TimeEntry.duration_minutes < entry_filter.under_minutes)
        return conditions

    def read_time_entries_needing_recompute(self, entry_filter: TimeEntryFilter) -> list[TimeEntry]:
        """Active, finished entries in the filter, in stable creation order.

        Whether a row's stored cost disagrees with its rate is decided by the
        billing calculator; only rows that differ get written.
        """

        conditions = self._time_entry_conditions(entry_filter)
        conditions.append(TimeEntry.end_time.is_not(None))
        return self._scalars(
            "read_time_entries_needing_recompute",
            select(TimeEntry)
            .outerjoin(Task, Task.id == TimeEntry.task_id)
            .where(and_(*conditions))
            .order_by(TimeEntry.created_at.asc(), TimeEntry.id.asc()),
        )

    def write_time_entry_cost(self, entry: TimeEntry, cost: Decimal, *, duration_minutes: int | None = None) -> None:
        if duration_minutes is not None:
            entry.duration_minutes = duration_minutes
        entry.cost = cost
        entry.updated_at = datetime.utcnow()
        self._flush("write_time_entry_cost")

    # ---------- Reporting aggregates ----------
    def aggregate_time_entry_totals(self, entry_filter: TimeEntryFilter) -> tuple[int, Decimal, int]:
        (row,) = self._rows(
            "aggregate_time_entry_totals",
            select(
                func.coalesce(func.sum(TimeEntry.duration_minutes), 0),
                func.coalesce(func.sum(TimeEntry.cost), 0),
                func.count(TimeEntry.id),
            )
            .outerjoin(Task, Task.id == TimeEntry.task_id)
            .where(and_(*self._time_entry_conditions(entry_filter))),
        )
        return int(row[0]), Decimal(str(row[1])), int(row[2])

    def top_employees_by_minutes(
        self, entry_filter: TimeEntryFilter, *, limit: int
    ) -> list[tuple[Employee, int, Decimal]]:
        minutes = func.sum(TimeEntry.duration_minutes)
        rows = self._rows(
            "top_employees_by_minutes",
            select(Employee, minutes, func.sum(TimeEntry.cost))
            .join(TimeEntry, TimeEntry.employee_id == Employee.id)
            .outerjoin(Task, Task.id == TimeEntry.task_id)
            .where(and_(*self._time_entry_conditions(entry_filter)))
            .group_by(Employee.id)
            .order_by(minutes.desc(), Employee.id.asc())
            .limit(limit),
        )
        return [(employee, int(total), Decimal(str(cost))) for employee, total, cost in rows]

    def top_projects_by_minutes(
        self, entry_filter: TimeEntryFilter, *, limit: int
    ) -> list[tuple[Project, int, Decimal]]:
        minutes = func.sum(TimeEntry.duration_minutes)
        effective_project_id = func.coalesce(TimeEntry.project_id, Task.project_id)
        rows = self._rows(
            "top_projects_by_minutes",
            select(Project, minutes, func.sum(TimeEntry.cost))
            .select_from(TimeEntry)
            .outerjoin(Task, Task.id == TimeEntry.task_id)
            .join(Project, Project.id == effective_project_id)
            .where(and_(*self._time_entry_conditions(entry_filter)))
            .group_by(Project.id)
            .order_by(minutes.desc(), Project.id.asc())
            .limit(limit),
        )
        return [(project, int(total), Decimal(str(cost))) for project, total, cost in rows]
