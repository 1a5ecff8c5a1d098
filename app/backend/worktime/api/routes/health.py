"""Health check endpoints."""

import logging

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from worktime.db.dependencies import get_db_session

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
def health(response: Response, db: Session = Depends(get_db_session)) -> dict[str, str]:
    """Liveness plus a round trip to the database; 503 while it is unreachable."""

    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.warning("database_unreachable", extra={"reason": str(exc)})
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "degraded", "database": "unreachable"}
    return {"status": "ok", "database": "ok"}
