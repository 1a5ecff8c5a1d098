from __future__ import annotations

import csv
import io
import uuid
from datetime import datetime, timedelta
from decimal import Decimal

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from conftest import RowFactory
from worktime.models.entities import ProjectStatus
from worktime.services.billing import compute_cost


def test_salary_update_derives_rate_and_reprices_entries(client: TestClient, factory: RowFactory) -> None:
    employee = factory.employee(salary_amount="96000")
    project = factory.project()
    factory.time_entry(employee, project=project, minutes=16)

    response = client.put(
        f"/api/v1/employees/{employee.id}/salary",
        json={"salary_type": "monthly", "salary_amount": "150000"},
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["employee"]["hourly_rate"] == "790.00"
    assert payload["previous_rate"] == "500.00"
    assert payload["costs_updated"] == 1


def test_fractional_hourly_salary_keeps_costs_consistent(
    client: TestClient, db_session: Session, factory: RowFactory
) -> None:
    employee = factory.employee(salary_amount="96000")
    project = factory.project(status=ProjectStatus.TODO)
    entry = factory.time_entry(employee, project=project, minutes=30)

    response = client.put(
        f"/api/v1/employees/{employee.id}/salary",
        json={"salary_type": "hourly", "salary_amount": "12.345"},
    )

    assert response.status_code == 200
    assert response.json()["employee"]["hourly_rate"] == "12.35"
    db_session.refresh(entry)
    assert entry.cost == compute_cost(30, Decimal("12.35")) == Decimal("6.18")

    follow_up = client.post("/api/v1/maintenance/passes", json={"scope": "full"})
    assert follow_up.json()["writes"] == 0


def test_salary_update_rejects_invalid_input(client: TestClient, factory: RowFactory) -> None:
    employee = factory.employee(salary_amount="96000")

    negative = client.put(
        f"/api/v1/employees/{employee.id}/salary",
        json={"salary_type": "monthly", "salary_amount": "-1"},
    )
    weekly = client.put(
        f"/api/v1/employees/{employee.id}/salary",
        json={"salary_type": "weekly", "salary_amount": "1000"},
    )
    missing = client.put(
        f"/api/v1/employees/{uuid.uuid4()}/salary",
        json={"salary_type": "monthly", "salary_amount": "1000"},
    )

    assert negative.status_code == 422
    assert negative.json()["detail"]["code"] == "INVALID_SALARY"
    assert weekly.status_code == 422
    assert weekly.json()["detail"]["code"] == "UNSUPPORTED_SALARY_TYPE"
    assert missing.status_code == 404
    assert client.get(f"/api/v1/employees/{employee.id}").json()["hourly_rate"] == "500.00"


def test_time_entry_is_priced_on_create_and_update(client: TestClient, factory: RowFactory) -> None:
    employee = factory.employee()
    project = factory.project()
    start = datetime(2026, 4, 1, 9, 0, 0)

    created = client.post(
        "/api/v1/time-entries",
        json={
            "employee_id": str(employee.id),
            "project_id": str(project.id),
            "start_time": start.isoformat(),
            "end_time": (start + timedelta(minutes=16)).isoformat(),
            "description": "stand-up",
        },
    )

    assert created.status_code == 201
    assert created.json()["duration_minutes"] == 16
    assert created.json()["cost"] == "395.00"

    updated = client.patch(
        f"/api/v1/time-entries/{created.json()['id']}",
        json={"end_time": (start + timedelta(minutes=90)).isoformat()},
    )

    assert updated.status_code == 200
    assert updated.json()["duration_minutes"] == 90
    assert updated.json()["cost"] == "1185.00"


def test_running_timer_is_not_priced_until_stopped(client: TestClient, factory: RowFactory) -> None:
    employee = factory.employee()
    project = factory.project()
    task = factory.task(project)
    start = datetime(2026, 4, 1, 9, 0, 0)

    created = client.post(
        "/api/v1/time-entries",
        json={"employee_id": str(employee.id), "task_id": str(task.id), "start_time": start.isoformat()},
    )

    assert created.status_code == 201
    assert created.json()["project_id"] == str(project.id)
    assert created.json()["cost"] == "0.00"

    stopped = client.patch(
        f"/api/v1/time-entries/{created.json()['id']}",
        json={"end_time": (start + timedelta(minutes=45)).isoformat()},
    )

    assert stopped.json()["cost"] == "592.50"


def test_time_entry_validation_errors(client: TestClient, factory: RowFactory) -> None:
    employee = factory.employee()
    project = factory.project()
    unpriced = factory.employee(salary_amount="0", hourly_rate="0")
    start = datetime(2026, 4, 1, 9, 0, 0)

    backwards = client.post(
        "/api/v1/time-entries",
        json={
            "employee_id": str(employee.id),
            "project_id": str(project.id),
            "start_time": start.isoformat(),
            "end_time": (start - timedelta(minutes=5)).isoformat(),
        },
    )
    no_target = client.post(
        "/api/v1/time-entries",
        json={"employee_id": str(employee.id), "start_time": start.isoformat()},
    )
    no_rate = client.post(
        "/api/v1/time-entries",
        json={
            "employee_id": str(unpriced.id),
            "project_id": str(project.id),
            "start_time": start.isoformat(),
            "end_time": (start + timedelta(minutes=5)).isoformat(),
        },
    )

    assert backwards.status_code == 422
    assert backwards.json()["detail"]["code"] == "INVALID_DURATION"
    assert no_target.status_code == 422
    assert no_rate.status_code == 422
    assert no_rate.json()["detail"]["code"] == "MISSING_RATE"


def test_cost_summary_and_exports(client: TestClient, factory: RowFactory) -> None:
    alice = factory.employee()
    bob = factory.employee(salary_amount="96000")
    website = factory.project(name="Website")
    mobile = factory.project(name="Mobile")
    factory.time_entry(alice, project=website, minutes=16)
    factory.time_entry(alice, project=mobile, minutes=120)
    factory.time_entry(bob, project=website, minutes=60)

    summary = client.get("/api/v1/reports/cost-summary")

    assert summary.status_code == 200
    body = summary.json()
    assert body["totals"] == {
        "total_minutes": 196,
        "total_hours": "3.27",
        "total_cost": "2475.00",
        "entry_count": 3,
    }
    assert [item["employee_id"] for item in body["top_employees"]] == [str(alice.id), str(bob.id)]
    assert [item["name"] for item in body["top_projects"]] == ["Mobile", "Website"]

    filtered = client.get("/api/v1/reports/cost-summary", params={"project_id": str(website.id)})
    assert filtered.json()["totals"]["entry_count"] == 2

    exported = client.get("/api/v1/exports/cost-summary", params={"format": "csv"})
    assert exported.status_code == 200
    assert exported.headers["content-type"].startswith("text/csv")
    rows = list(csv.DictReader(io.StringIO(exported.text)))
    assert rows[0]["section"] == "totals"
    assert rows[0]["total_cost"] == "2475.00"
    assert [row["section"] for row in rows[1:]] == ["employee", "employee", "project", "project"]

    workbook = client.get("/api/v1/exports/cost-summary", params={"format": "xlsx"})
    assert workbook.status_code == 200
    assert workbook.content[:2] == b"PK"

    rejected = client.get("/api/v1/exports/cost-summary", params={"format": "pdf"})
    assert rejected.status_code == 422
