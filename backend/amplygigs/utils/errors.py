from typing import Dict, Optional
from fastapi import HTTPException, status
import logging

from ..services.exceptions import DomainError

logger = logging.getLogger(__name__)


def error_response(
    message: str,
    field_errors: Optional[Dict[str, str]] = None,
    code: int = status.HTTP_422_UNPROCESSABLE_ENTITY,
) -> HTTPException:
    """Return an HTTPException with a consistent structure and log details."""
    logger.error("%s %s", message, field_errors or {})
    detail = {"message": message, "field_errors": field_errors or {}}
    return HTTPException(status_code=code, detail=detail)


def domain_error_response(exc: Exception) -> HTTPException:
    """Translate a service-layer exception into the matching HTTP error."""
    if isinstance(exc, DomainError):
        logger.info("%s: %s", type(exc).__name__, exc.message)
        return HTTPException(status_code=exc.status_code, detail=exc.message)
    if isinstance(exc, PermissionError):
        logger.info("Forbidden: %s", exc)
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc) or "Forbidden")
    if isinstance(exc, LookupError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc) or "Not found")
    if isinstance(exc, ValueError):
        return error_response(str(exc), {}, status.HTTP_422_UNPROCESSABLE_ENTITY)
    raise exc
