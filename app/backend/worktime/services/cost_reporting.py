"""Cost summary over priced time entries, with CSV and XLSX export."""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from io import BytesIO
from uuid import UUID

from fastapi import HTTPException, status
from openpyxl import Workbook
from sqlalchemy.orm import Session

from worktime.repositories.engine_repository import EngineRepository, TimeEntryFilter

Q2 = Decimal("0.01")
MINUTES_PER_HOUR = Decimal("60")
EXPORT_COLUMNS = ["section", "id", "name", "total_minutes", "total_hours", "total_cost", "entry_count"]


@dataclass(slots=True)
class ExportFilePayload:
    media_type: str
    filename: str
    content: bytes


def _hours(minutes: int) -> Decimal:
    return (Decimal(minutes) / MINUTES_PER_HOUR).quantize(Q2)


def build_filter(
    *,
    started_from: datetime | None = None,
    started_to: datetime | None = None,
    project_ids: list[UUID] | None = None,
    employee_ids: list[UUID] | None = None,
) -> TimeEntryFilter:
    return TimeEntryFilter(
        employee_ids=set(employee_ids) if employee_ids else None,
        project_ids=set(project_ids) if project_ids else None,
        started_from=started_from,
        started_to=started_to,
    )


class CostReportingService:
    def __init__(self, db: Session):
        self.db = db
        self.repo = EngineRepository(db)

    def cost_summary(self, entry_filter: TimeEntryFilter, *, top_n: int = 5) -> dict[str, object]:
        """Totals plus the employees and projects with the most logged minutes."""

        minutes, cost, count = self.repo.aggregate_time_entry_totals(entry_filter)
        top_employees = self.repo.top_employees_by_minutes(entry_filter, limit=top_n)
        top_projects = self.repo.top_projects_by_minutes(entry_filter, limit=top_n)
        return {
            "totals": {
                "total_minutes": minutes,
                "total_hours": str(_hours(minutes)),
                "total_cost": str(cost.quantize(Q2)),
                "entry_count": count,
            },
            "top_employees": [
                {
                    "employee_id": str(employee.id),
                    "name": employee.display_name,
                    "department": employee.department,
                    "total_minutes": total,
                    "total_hours": str(_hours(total)),
                    "total_cost": str(total_cost.quantize(Q2)),
                }
                for employee, total, total_cost in top_employees
            ],
            "top_projects": [
                {
                    "project_id": str(project.id),
                    "name": project.name,
                    "status": project.status.value,
                    "total_minutes": total,
                    "total_hours": str(_hours(total)),
                    "total_cost": str(total_cost.quantize(Q2)),
                }
                for project, total, total_cost in top_projects
            ],
        }

    def _flatten_summary(self, summary: dict[str, object]) -> list[dict[str, object]]:
        totals = summary["totals"]
        rows: list[dict[str, object]] = [
            {
                "section": "totals",
                "id": "",
                "name": "all entries",
                "total_minutes": totals["total_minutes"],
                "total_hours": totals["total_hours"],
                "total_cost": totals["total_cost"],
                "entry_count": totals["entry_count"],
            }
        ]
        for item in summary["top_employees"]:
            rows.append(
                {
                    "section": "employee",
                    "id": item["employee_id"],
                    "name": item["name"],
                    "total_minutes": item["total_minutes"],
                    "total_hours": item["total_hours"],
                    "total_cost": item["total_cost"],
                    "entry_count": "",
                }
            )
        for item in summary["top_projects"]:
            rows.append(
                {
                    "section": "project",
                    "id": item["project_id"],
                    "name": item["name"],
                    "total_minutes": item["total_minutes"],
                    "total_hours": item["total_hours"],
                    "total_cost": item["total_cost"],
                    "entry_count": "",
                }
            )
        return rows

    def export_cost_summary(self, entry_filter: TimeEntryFilter, *, format_name: str) -> ExportFilePayload:
        normalized_format = format_name.strip().lower()
        if normalized_format not in {"csv", "xlsx"}:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="format must be one of: csv, xlsx.",
            )

        rows = self._flatten_summary(self.cost_summary(entry_filter))
        base_filename = "cost-summary"

        if normalized_format == "csv":
            sio = io.StringIO()
            writer = csv.DictWriter(sio, fieldnames=EXPORT_COLUMNS)
            writer.writeheader()
            writer.writerows(rows)
            return ExportFilePayload(
                media_type="text/csv; charset=utf-8",
                filename=f"{base_filename}.csv",
                content=sio.getvalue().encode("utf-8"),
            )

        workbook = Workbook()
        sheet = workbook.active
        sheet.title = "cost-summary"
        sheet.append(EXPORT_COLUMNS)
        for row in rows:
            sheet.append([row.get(column, "") for column in EXPORT_COLUMNS])

        output = BytesIO()
        workbook.save(output)
        return ExportFilePayload(
            media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            filename=f"{base_filename}.xlsx",
            content=output.getvalue(),
        )
