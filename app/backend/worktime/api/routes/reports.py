"""Cost summary report and its file export."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from worktime.db.dependencies import get_db_session
from worktime.services.cost_reporting import CostReportingService, build_filter

router = APIRouter(tags=["reports"])


def _service(db: Session) -> CostReportingService:
    return CostReportingService(db)


@router.get("/reports/cost-summary")
def report_cost_summary(
    started_from: datetime | None = None,
    started_to: datetime | None = None,
    project_id: list[UUID] | None = Query(default=None),
    employee_id: list[UUID] | None = Query(default=None),
    top: int = Query(default=5, ge=1, le=50),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    entry_filter = build_filter(
        started_from=started_from,
        started_to=started_to,
        project_ids=project_id,
        employee_ids=employee_id,
    )
    return _service(db).cost_summary(entry_filter, top_n=top)


@router.get("/exports/cost-summary")
def export_cost_summary(
    format: str = Query(default="xlsx"),
    started_from: datetime | None = None,
    started_to: datetime | None = None,
    project_id: list[UUID] | None = Query(default=None),
    employee_id: list[UUID] | None = Query(default=None),
    db: Session = Depends(get_db_session),
) -> Response:
    entry_filter = build_filter(
        started_from=started_from,
        started_to=started_to,
        project_ids=project_id,
        employee_ids=employee_id,
    )
    exported = _service(db).export_cost_summary(entry_filter, format_name=format)
    return Response(
        content=exported.content,
        media_type=exported.media_type,
        headers={"Content-Disposition": f'attachment; filename="{exported.filename}"'},
    )
