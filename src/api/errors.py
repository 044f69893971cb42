"""Maps domain errors onto HTTP responses for the routers."""
from __future__ import annotations

from fastapi import HTTPException

from src.core.errors import MissingRelationshipError, QueryExecutionError, ValidationError
from src.core.logging import get_logger

logger = get_logger(__name__)


def to_http_error(exc: Exception, action: str) -> HTTPException:
    """422 for bad configuration, 400 for engine errors, 500 otherwise."""
    if isinstance(exc, (ValidationError, MissingRelationshipError)):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, QueryExecutionError):
        return HTTPException(status_code=400, detail={"message": exc.message, "sql": exc.sql})
    logger.exception("%s failed", action)
    return HTTPException(status_code=500, detail=str(exc))
