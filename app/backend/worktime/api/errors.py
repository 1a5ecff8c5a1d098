"""Translation of engine errors into HTTP responses."""

from fastapi import HTTPException, status

from worktime.core.exceptions import EngineError, EngineValidationError, PersistenceError


def engine_http_exception(exc: EngineError) -> HTTPException:
    if isinstance(exc, EngineValidationError):
        status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif isinstance(exc, PersistenceError):
        status_code = status.HTTP_409_CONFLICT
    else:
        status_code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=status_code, detail={"code": exc.code, "message": str(exc)})


def not_found(entity: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{entity} not found.")
