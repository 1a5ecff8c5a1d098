from __future__ import annotations

import uuid

from sqlalchemy.orm import Session

from worktime.models.entities import ProjectStatus
from worktime.repositories.engine_repository import EngineRepository
from worktime.services.policy import EnginePolicy
from worktime.services.staffing_checker import (
    AssignmentSource,
    EmployeeRef,
    ProjectRef,
    StaffingDataset,
    TaskRef,
    ViolationKind,
    find_violations,
    load_staffing_dataset,
)

POLICY = EnginePolicy()


def _ids(count: int) -> list[uuid.UUID]:
    return [uuid.UUID(int=index + 1) for index in range(count)]


def _kinds(violations) -> list[ViolationKind]:
    return [violation.kind for violation in violations]


def test_assignment_outside_team_is_illegal() -> None:
    a, b, c = _ids(3)
    project_id, task_id = uuid.uuid4(), uuid.uuid4()
    dataset = StaffingDataset(
        employees=(EmployeeRef(a), EmployeeRef(b), EmployeeRef(c)),
        projects=(ProjectRef(project_id, ProjectStatus.ACTIVE),),
        teams={project_id: frozenset({a, b})},
        tasks=(TaskRef(task_id, project_id, assigned_to=c, assignees=(a, c)),),
    )

    violations = find_violations(dataset, policy=POLICY, workload_employee_ids=set())

    assert [(v.kind, v.employee_id, v.source) for v in violations] == [
        (ViolationKind.ILLEGAL_ASSIGNMENT, c, AssignmentSource.TASK_ASSIGNMENT),
        (ViolationKind.ILLEGAL_ASSIGNMENT, c, AssignmentSource.LEGACY_ASSIGNEE),
    ]
    assert all(violation.hard for violation in violations)


def test_understaffed_only_once_out_of_todo() -> None:
    a, b = _ids(2)
    todo, active, cancelled = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
    dataset = StaffingDataset(
        employees=(EmployeeRef(a), EmployeeRef(b)),
        projects=(
            ProjectRef(todo, ProjectStatus.TODO),
            ProjectRef(active, ProjectStatus.ACTIVE),
            ProjectRef(cancelled, ProjectStatus.CANCELLED),
        ),
        teams={active: frozenset({a})},
    )

    violations = find_violations(dataset, policy=POLICY, workload_employee_ids=set())

    assert len(violations) == 1
    assert violations[0].kind is ViolationKind.UNDERSTAFFED_PROJECT
    assert violations[0].project_id == active
    assert violations[0].shortfall == 1


def test_inactive_members_do_not_count_toward_team_size() -> None:
    a, b = _ids(2)
    project_id = uuid.uuid4()
    dataset = StaffingDataset(
        employees=(EmployeeRef(a), EmployeeRef(b, is_active=False)),
        projects=(ProjectRef(project_id, ProjectStatus.PENDING),),
        teams={project_id: frozenset({a, b})},
    )

    violations = find_violations(dataset, policy=POLICY, workload_employee_ids=set())

    assert _kinds(violations) == [ViolationKind.UNDERSTAFFED_PROJECT]


def test_overstaffed_project_is_a_soft_notice() -> None:
    members = _ids(4)
    project_id = uuid.uuid4()
    dataset = StaffingDataset(
        employees=tuple(EmployeeRef(member) for member in members),
        projects=(ProjectRef(project_id, ProjectStatus.ACTIVE),),
        teams={project_id: frozenset(members)},
    )

    violations = find_violations(dataset, policy=POLICY, workload_employee_ids=set())

    assert _kinds(violations) == [ViolationKind.OVERSTAFFED_PROJECT]
    assert violations[0].shortfall == 1
    assert not violations[0].hard


def test_workload_target_counts_staffed_projects() -> None:
    a, b = _ids(2)
    p1, p2, p3 = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
    dataset = StaffingDataset(
        employees=(EmployeeRef(a), EmployeeRef(b)),
        projects=(
            ProjectRef(p1, ProjectStatus.ACTIVE),
            ProjectRef(p2, ProjectStatus.ACTIVE),
            ProjectRef(p3, ProjectStatus.TODO),
        ),
        teams={p1: frozenset({a, b}), p2: frozenset({a, b}), p3: frozenset({a})},
    )

    violations = find_violations(dataset, policy=POLICY)

    assert [(v.kind, v.employee_id, v.shortfall) for v in violations] == [
        (ViolationKind.UNDERUTILIZED_EMPLOYEE, a, 1),
        (ViolationKind.UNDERUTILIZED_EMPLOYEE, b, 1),
    ]
    assert not any(violation.hard for violation in violations)
    assert find_violations(dataset, policy=POLICY, workload_employee_ids={b})[0].employee_id == b
    assert find_violations(dataset, policy=POLICY, workload_employee_ids=set()) == []


def test_project_scope_limits_the_check() -> None:
    a = _ids(1)[0]
    p1, p2 = uuid.uuid4(), uuid.uuid4()
    dataset = StaffingDataset(
        employees=(EmployeeRef(a),),
        projects=(ProjectRef(p1, ProjectStatus.ACTIVE), ProjectRef(p2, ProjectStatus.ACTIVE)),
    )

    violations = find_violations(dataset, policy=POLICY, project_ids={p2}, workload_employee_ids=set())

    assert [violation.project_id for violation in violations] == [p2]


def test_checker_reads_the_database_without_writing(db_session: Session, factory) -> None:
    lead = factory.employee()
    outsider = factory.employee()
    project = factory.project()
    factory.member(project, lead)
    task = factory.task(project, assigned_to=outsider)
    factory.assign(task, lead)

    dataset = load_staffing_dataset(EngineRepository(db_session))
    violations = find_violations(dataset, policy=POLICY, workload_employee_ids=set())

    assert _kinds(violations) == [ViolationKind.ILLEGAL_ASSIGNMENT, ViolationKind.UNDERSTAFFED_PROJECT]
    assert violations[0].source is AssignmentSource.LEGACY_ASSIGNEE
    assert not db_session.new and not db_session.dirty
    assert "not on the team" in violations[0].describe()
