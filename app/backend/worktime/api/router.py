"""Top-level API router."""

from fastapi import APIRouter

from worktime.api.routes.employees import router as employees_router
from worktime.api.routes.health import router as health_router
from worktime.api.routes.maintenance import router as maintenance_router
from worktime.api.routes.reports import router as reports_router
from worktime.api.routes.staffing import router as staffing_router
from worktime.api.routes.time_entries import router as time_entries_router

api_router = APIRouter()
api_router.include_router(health_router, tags=["health"])
api_router.include_router(employees_router)
api_router.include_router(time_entries_router)
api_router.include_router(staffing_router)
api_router.include_router(maintenance_router)
api_router.include_router(reports_router)
