from __future__ import annotations

import uuid

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from conftest import RowFactory
from worktime.core.exceptions import PersistenceError
from worktime.repositories.engine_repository import EngineRepository, TimeEntryFilter


def _lost_connection(*args, **kwargs):
    raise OperationalError("SELECT", {}, Exception("server closed the connection"))


def test_read_errors_surface_as_persistence_errors(db_session: Session, monkeypatch) -> None:
    repo = EngineRepository(db_session)
    monkeypatch.setattr(db_session, "scalars", _lost_connection)
    monkeypatch.setattr(db_session, "scalar", _lost_connection)

    with pytest.raises(PersistenceError) as listing:
        repo.list_team_memberships()
    with pytest.raises(PersistenceError) as lookup:
        repo.get_project(uuid.uuid4())

    assert listing.value.operation == "list_team_memberships"
    assert listing.value.code == "PERSISTENCE_ERROR"
    assert lookup.value.operation == "get_project"


def test_report_aggregate_errors_surface_as_persistence_errors(db_session: Session, monkeypatch) -> None:
    repo = EngineRepository(db_session)
    monkeypatch.setattr(db_session, "execute", _lost_connection)

    with pytest.raises(PersistenceError) as exc_info:
        repo.aggregate_time_entry_totals(TimeEntryFilter())

    assert exc_info.value.operation == "aggregate_time_entry_totals"


def test_reads_are_ordered_by_creation(db_session: Session, factory: RowFactory) -> None:
    first, second = factory.employee(), factory.employee()
    project = factory.project()
    factory.member(project, second)
    factory.time_entry(first, project=project)

    repo = EngineRepository(db_session)

    assert [employee.id for employee in repo.list_employees()] == [first.id, second.id]
    assert repo.list_employee_ids_for_project(project.id) == {first.id, second.id}
    assert repo.list_project_ids_for_employee(second.id) == {project.id}
