from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Generator
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from worktime.api.dependencies import get_engine_policy
from worktime.db.base import Base
from worktime.db.dependencies import get_db_session
from worktime.main import create_app
from worktime.models.entities import (
    Employee,
    Project,
    ProjectStatus,
    SalaryType,
    Task,
    TaskAssignment,
    TeamMembership,
    TeamRole,
    TimeEntry,
)
from worktime.services.billing import compute_cost
from worktime.services.policy import EnginePolicy
from worktime.services.rate_derivation import derive_hourly_rate

TEST_TABLES = [
    Employee.__table__,
    Project.__table__,
    TeamMembership.__table__,
    Task.__table__,
    TaskAssignment.__table__,
    TimeEntry.__table__,
]

BASE_TIME = datetime(2026, 1, 5, 8, 0, 0)


def build_session_factory() -> sessionmaker[Session]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine, tables=TEST_TABLES)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


class RowFactory:
    """Creates committed rows with strictly increasing creation times."""

    def __init__(self, db: Session):
        self.db = db
        self._tick = 0

    def _next_time(self) -> datetime:
        self._tick += 1
        return BASE_TIME + timedelta(seconds=self._tick)

    def _save(self, row):
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return row

    def employee(
        self,
        *,
        salary_amount: Decimal | str = Decimal("150000"),
        salary_type: SalaryType = SalaryType.MONTHLY,
        hourly_rate: Decimal | str | None = None,
        is_active: bool = True,
        id: uuid.UUID | None = None,
    ) -> Employee:
        now = self._next_time()
        if hourly_rate is None:
            hourly_rate = derive_hourly_rate(salary_amount, salary_type)
        return self._save(
            Employee(
                id=id or uuid.uuid4(),
                employee_code=f"EMP-{self._tick:04d}",
                first_name="Employee",
                last_name=f"No{self._tick}",
                email=f"employee{self._tick}@test.local",
                department="Delivery",
                salary_type=salary_type,
                salary_amount=Decimal(str(salary_amount)),
                hourly_rate=Decimal(str(hourly_rate)),
                is_active=is_active,
                created_at=now,
                updated_at=now,
            )
        )

    def project(
        self,
        *,
        status: ProjectStatus = ProjectStatus.ACTIVE,
        name: str | None = None,
        id: uuid.UUID | None = None,
    ) -> Project:
        now = self._next_time()
        return self._save(
            Project(
                id=id or uuid.uuid4(),
                name=name or f"Project {self._tick}",
                status=status,
                created_at=now,
                updated_at=now,
            )
        )

    def member(self, project: Project, employee: Employee, role: TeamRole = TeamRole.MEMBER) -> TeamMembership:
        return self._save(
            TeamMembership(project_id=project.id, employee_id=employee.id, role=role, added_at=self._next_time())
        )

    def task(
        self,
        project: Project,
        *,
        assigned_to: Employee | None = None,
        id: uuid.UUID | None = None,
    ) -> Task:
        now = self._next_time()
        return self._save(
            Task(
                id=id or uuid.uuid4(),
                project_id=project.id,
                title=f"Task {self._tick}",
                assigned_to=assigned_to.id if assigned_to is not None else None,
                created_at=now,
                updated_at=now,
            )
        )

    def assign(self, task: Task, employee: Employee) -> TaskAssignment:
        return self._save(TaskAssignment(task_id=task.id, employee_id=employee.id, assigned_at=self._next_time()))

    def time_entry(
        self,
        employee: Employee,
        *,
        project: Project | None = None,
        task: Task | None = None,
        minutes: int = 60,
        start_time: datetime | None = None,
        end_time: datetime | None = None,
        running: bool = False,
        duration_minutes: int | None = None,
        cost: Decimal | str | None = None,
        is_active: bool = True,
        id: uuid.UUID | None = None,
    ) -> TimeEntry:
        now = self._next_time()
        start_time = start_time or BASE_TIME + timedelta(days=1, hours=self._tick)
        if end_time is None and not running:
            end_time = start_time + timedelta(minutes=minutes)
        if duration_minutes is None:
            duration_minutes = 0 if running else minutes
        if cost is None:
            cost = Decimal("0.00") if running else compute_cost(duration_minutes, employee.hourly_rate)
        return self._save(
            TimeEntry(
                id=id or uuid.uuid4(),
                employee_id=employee.id,
                project_id=project.id if project is not None else None,
                task_id=task.id if task is not None else None,
                start_time=start_time,
                end_time=end_time,
                duration_minutes=duration_minutes,
                cost=Decimal(str(cost)),
                description="",
                is_active=is_active,
                created_at=now,
                updated_at=now,
            )
        )


@pytest.fixture(autouse=True)
def restore_root_logging() -> Generator[None, None, None]:
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


@pytest.fixture()
def session_factory() -> Callable[[], Session]:
    return build_session_factory()


@pytest.fixture()
def db_session(session_factory: Callable[[], Session]) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def factory(db_session: Session) -> RowFactory:
    return RowFactory(db_session)


@pytest.fixture()
def policy() -> EnginePolicy:
    return EnginePolicy()


@pytest.fixture()
def client(db_session: Session, policy: EnginePolicy) -> Generator[TestClient, None, None]:
    app = create_app()

    def override_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db_session] = override_db
    app.dependency_overrides[get_engine_policy] = lambda: policy
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
