"""Additive repair of staffing violations.

Repairs only ever add team memberships. The one row that may be removed is
an illegal task assignment itself, and only under the reassign policy. Each
project is repaired in its own transaction, so a project is either fully
repaired or left exactly as it was.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from uuid import UUID

from sqlalchemy.orm import Session

from worktime.core.exceptions import PersistenceError, UnresolvedViolationError
from worktime.models.entities import AssignmentRepairPolicy, TeamRole
from worktime.repositories.engine_repository import EngineRepository
from worktime.services.policy import EnginePolicy
from worktime.services.staffing_checker import (
    AssignmentSource,
    StaffingDataset,
    Violation,
    ViolationKind,
    load_staffing_dataset,
)
from worktime.services.unit_of_work import unit_of_work

logger = logging.getLogger(__name__)


class ChangeKind(str, Enum):
    ADD_TEAM_MEMBER = "add_team_member"
    ADD_TASK_ASSIGNMENT = "add_task_assignment"
    REMOVE_TASK_ASSIGNMENT = "remove_task_assignment"
    SET_LEGACY_ASSIGNEE = "set_legacy_assignee"


@dataclass(frozen=True, slots=True)
class AppliedChange:
    kind: ChangeKind
    project_id: UUID
    employee_id: UUID
    reason: ViolationKind
    task_id: UUID | None = None
    previous_employee_id: UUID | None = None

    def as_dict(self) -> dict[str, object]:
        return {
            "kind": self.kind.value,
            "project_id": str(self.project_id),
            "employee_id": str(self.employee_id),
            "reason": self.reason.value,
            "task_id": str(self.task_id) if self.task_id is not None else None,
            "previous_employee_id": (
                str(self.previous_employee_id) if self.previous_employee_id is not None else None
            ),
        }


@dataclass(slots=True)
class RepairOutcome:
    applied: list[AppliedChange] = field(default_factory=list)
    unresolved: list[UnresolvedViolationError] = field(default_factory=list)


def is_enforced(violation: Violation, policy: EnginePolicy) -> bool:
    """Whether the allocator must act on ``violation`` under ``policy``."""

    if violation.hard:
        return True
    return violation.kind is ViolationKind.UNDERUTILIZED_EMPLOYEE and policy.enforce_employee_workload


def rotation_start(project_ordinal: int, pool_size: int, *, seed: int, stride: int) -> int:
    """Cursor position for a project in the round-robin over the pool.

    The cursor is a pure function of the project's stable ordinal, so a full
    pass and a project-by-project pass pick the same employees.
    """

    if pool_size == 0:
        return 0
    return (seed + project_ordinal * max(stride, 1)) % pool_size


def pick_from_rotation(pool: Sequence[UUID], start: int, *, exclude: set[UUID], count: int) -> list[UUID]:
    picked: list[UUID] = []
    if count <= 0:
        return picked
    for step in range(len(pool)):
        candidate = pool[(start + step) % len(pool)]
        if candidate in exclude or candidate in picked:
            continue
        picked.append(candidate)
        if len(picked) == count:
            break
    return picked


@dataclass(slots=True)
class _ProjectPlan:
    changes: list[AppliedChange] = field(default_factory=list)
    unresolved: list[UnresolvedViolationError] = field(default_factory=list)


def _plan_team_top_up(
    violation: Violation,
    *,
    team: set[UUID],
    pool: Sequence[UUID],
    start: int,
    policy: EnginePolicy,
    plan: _ProjectPlan,
) -> None:
    active = set(pool)
    needed = policy.min_team_size - len(team & active)
    if needed <= 0:
        return
    picked = pick_from_rotation(pool, start, exclude=team, count=needed)
    for employee_id in picked:
        team.add(employee_id)
        plan.changes.append(
            AppliedChange(
                kind=ChangeKind.ADD_TEAM_MEMBER,
                project_id=violation.project_id,
                employee_id=employee_id,
                reason=violation.kind,
            )
        )
    if len(picked) < needed:
        plan.unresolved.append(
            UnresolvedViolationError(
                violation,
                f"employee pool exhausted: added {len(picked)} of {needed} required member(s)",
            )
        )


def _plan_assignment_fix(
    violation: Violation,
    *,
    team: set[UUID],
    task_assignees: dict[UUID, list[UUID]],
    legacy_assignees: dict[UUID, UUID | None],
    pool: Sequence[UUID],
    start: int,
    repair_policy: AssignmentRepairPolicy | None,
    plan: _ProjectPlan,
) -> None:
    employee_id = violation.employee_id
    task_id = violation.task_id
    if employee_id in team:
        return
    if repair_policy is None:
        plan.unresolved.append(UnresolvedViolationError(violation, "no assignment repair policy configured"))
        return

    if repair_policy is AssignmentRepairPolicy.EXPAND_TEAM:
        team.add(employee_id)
        plan.changes.append(
            AppliedChange(
                kind=ChangeKind.ADD_TEAM_MEMBER,
                project_id=violation.project_id,
                employee_id=employee_id,
                reason=violation.kind,
                task_id=task_id,
            )
        )
        return

    current = task_assignees.setdefault(task_id, [])
    legal_current = [member for member in current if member in team]
    rotation = pick_from_rotation(pool, start, exclude=set(pool) - team, count=len(pool))
    candidates = legal_current + [member for member in rotation if member not in legal_current]
    if not candidates:
        plan.unresolved.append(
            UnresolvedViolationError(violation, "project team has no active member to take over the task")
        )
        return
    replacement = candidates[0]

    if violation.source is AssignmentSource.LEGACY_ASSIGNEE:
        legacy_assignees[task_id] = replacement
        plan.changes.append(
            AppliedChange(
                kind=ChangeKind.SET_LEGACY_ASSIGNEE,
                project_id=violation.project_id,
                employee_id=replacement,
                reason=violation.kind,
                task_id=task_id,
                previous_employee_id=employee_id,
            )
        )
        return

    current.remove(employee_id)
    plan.changes.append(
        AppliedChange(
            kind=ChangeKind.REMOVE_TASK_ASSIGNMENT,
            project_id=violation.project_id,
            employee_id=employee_id,
            reason=violation.kind,
            task_id=task_id,
        )
    )
    if replacement not in current:
        current.append(replacement)
        plan.changes.append(
            AppliedChange(
                kind=ChangeKind.ADD_TASK_ASSIGNMENT,
                project_id=violation.project_id,
                employee_id=replacement,
                reason=violation.kind,
                task_id=task_id,
                previous_employee_id=employee_id,
            )
        )


def plan_project_repairs(
    project_id: UUID,
    violations: Sequence[Violation],
    *,
    dataset: StaffingDataset,
    team: set[UUID],
    pool: Sequence[UUID],
    seed: int,
    policy: EnginePolicy,
) -> tuple[list[AppliedChange], list[UnresolvedViolationError]]:
    """Work out the changes that clear ``violations`` for one project.

    ``team`` is updated in place to the team the plan produces. Under the
    expand policy legality is fixed first, since each added assignee also
    counts toward the team size; under the reassign policy the team is topped
    up first so there is someone to hand the task to.
    """

    plan = _ProjectPlan()
    start = rotation_start(dataset.project_ordinal(project_id), len(pool), seed=seed, stride=policy.min_team_size)
    task_assignees = {task.id: list(task.assignees) for task in dataset.tasks if task.project_id == project_id}
    legacy_assignees = {task.id: task.assigned_to for task in dataset.tasks if task.project_id == project_id}

    illegal = [v for v in violations if v.kind is ViolationKind.ILLEGAL_ASSIGNMENT]
    understaffed = [v for v in violations if v.kind is ViolationKind.UNDERSTAFFED_PROJECT]

    def fix_assignments() -> None:
        for violation in illegal:
            _plan_assignment_fix(
                violation,
                team=team,
                task_assignees=task_assignees,
                legacy_assignees=legacy_assignees,
                pool=pool,
                start=start,
                repair_policy=policy.assignment_repair_policy,
                plan=plan,
            )

    def top_up() -> None:
        for violation in understaffed:
            _plan_team_top_up(violation, team=team, pool=pool, start=start, policy=policy, plan=plan)

    if policy.assignment_repair_policy is AssignmentRepairPolicy.EXPAND_TEAM:
        fix_assignments()
        top_up()
    else:
        top_up()
        fix_assignments()
    return plan.changes, plan.unresolved


def plan_workload_top_up(
    violation: Violation,
    *,
    dataset: StaffingDataset,
    teams: dict[UUID, set[UUID]],
    policy: EnginePolicy,
) -> tuple[list[AppliedChange], UnresolvedViolationError | None]:
    """Join an under-used employee to the least staffed projects with room."""

    employee_id = violation.employee_id
    active = dataset.active_employee_ids
    open_projects = [
        project
        for project in dataset.projects
        if policy.requires_staffing(project.status)
        and employee_id not in teams.get(project.id, set())
        and len(teams.get(project.id, set()) & active) < policy.max_team_size
    ]
    current = sum(
        1
        for project in dataset.projects
        if policy.requires_staffing(project.status) and employee_id in teams.get(project.id, set())
    )
    needed = policy.min_projects_per_employee - current
    if needed <= 0:
        return [], None

    ordered = sorted(
        enumerate(open_projects),
        key=lambda item: (len(teams.get(item[1].id, set()) & active), item[0]),
    )
    changes = [
        AppliedChange(
            kind=ChangeKind.ADD_TEAM_MEMBER,
            project_id=project.id,
            employee_id=employee_id,
            reason=violation.kind,
        )
        for _, project in ordered[:needed]
    ]
    if len(changes) < needed:
        return changes, UnresolvedViolationError(
            violation,
            f"only {len(changes)} of {needed} project(s) have room below the team size target",
        )
    return changes, None


class StaffingAllocator:
    """Applies repair plans through the repository, one project per transaction."""

    def __init__(self, db: Session, repo: EngineRepository, policy: EnginePolicy) -> None:
        self.db = db
        self.repo = repo
        self.policy = policy

    def _apply(self, change: AppliedChange) -> None:
        if change.kind is ChangeKind.ADD_TEAM_MEMBER:
            if self.repo.get_team_membership(change.project_id, change.employee_id) is None:
                self.repo.write_team_membership(change.project_id, change.employee_id, TeamRole.MEMBER)
        elif change.kind is ChangeKind.ADD_TASK_ASSIGNMENT:
            if self.repo.get_task_assignment(change.task_id, change.employee_id) is None:
                self.repo.write_task_assignment(change.task_id, change.employee_id)
        elif change.kind is ChangeKind.REMOVE_TASK_ASSIGNMENT:
            self.repo.delete_task_assignment(change.task_id, change.employee_id)
        elif change.kind is ChangeKind.SET_LEGACY_ASSIGNEE:
            self.repo.write_legacy_assignee(change.task_id, change.employee_id)

    def _commit_project(
        self,
        project_id: UUID,
        changes: list[AppliedChange],
        violations: Sequence[Violation],
        outcome: RepairOutcome,
    ) -> bool:
        if not changes:
            return True
        try:
            with unit_of_work(self.db, self.repo, "project", project_id):
                for change in changes:
                    self._apply(change)
        except PersistenceError as exc:
            logger.error(
                "staffing_repair_rolled_back",
                extra={"project_id": project_id, "code": exc.code, "reason": str(exc)},
            )
            outcome.unresolved.extend(
                UnresolvedViolationError(violation, f"repair rolled back: {exc}") for violation in violations
            )
            return False
        outcome.applied.extend(changes)
        logger.info("staffing_repaired", extra={"project_id": project_id, "applied": len(changes)})
        return True

    def repair(
        self,
        violations: Sequence[Violation],
        employee_pool: Sequence[UUID] | None = None,
        deterministic_seed: int | None = None,
        *,
        dataset: StaffingDataset | None = None,
    ) -> RepairOutcome:
        """Repair enforced violations; return applied changes and leftovers.

        ``employee_pool`` defaults to every active employee in creation order
        and ``deterministic_seed`` to the policy's allocation seed.
        """

        outcome = RepairOutcome()
        enforced = [violation for violation in violations if is_enforced(violation, self.policy)]
        if not enforced:
            return outcome

        if dataset is None:
            project_ids = {v.project_id for v in enforced if v.project_id is not None}
            dataset = load_staffing_dataset(self.repo, project_ids)
        pool = list(employee_pool) if employee_pool is not None else [
            employee.id for employee in dataset.employees if employee.is_active
        ]
        seed = deterministic_seed if deterministic_seed is not None else self.policy.allocation_seed
        teams = {project_id: set(members) for project_id, members in dataset.teams.items()}

        by_project: dict[UUID, list[Violation]] = {}
        for violation in enforced:
            if violation.project_id is not None:
                by_project.setdefault(violation.project_id, []).append(violation)

        for project in dataset.projects:
            project_violations = by_project.get(project.id)
            if not project_violations:
                continue
            working = set(teams.get(project.id, set()))
            changes, unresolved = plan_project_repairs(
                project.id,
                project_violations,
                dataset=dataset,
                team=working,
                pool=pool,
                seed=seed,
                policy=self.policy,
            )
            outcome.unresolved.extend(unresolved)
            if self._commit_project(project.id, changes, project_violations, outcome):
                teams[project.id] = working

        for violation in enforced:
            if violation.kind is not ViolationKind.UNDERUTILIZED_EMPLOYEE:
                continue
            changes, leftover = plan_workload_top_up(violation, dataset=dataset, teams=teams, policy=self.policy)
            for change in changes:
                if self._commit_project(change.project_id, [change], [violation], outcome):
                    teams.setdefault(change.project_id, set()).add(change.employee_id)
            if leftover is not None:
                outcome.unresolved.append(leftover)
        return outcome
