"""FastAPI dependencies shared by the player and report routes."""

from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import APIKeyHeader

from app.errors import ReputationValidationError
from app.services.identity_resolver import IdentityResolver
from app.services.identity_source import HttpIdentitySource
from app.services.report_service import ReportService

logger = logging.getLogger(__name__)

# Set by the authenticating gateway in front of this service
CALLER_ID_HEADER = APIKeyHeader(name="X-Caller-Id", auto_error=False)


@lru_cache(maxsize=1)
def get_identity_resolver() -> IdentityResolver:
    """Process-wide resolver backed by the HTTP identity source."""
    return IdentityResolver(HttpIdentitySource())


def get_report_service(
    resolver: IdentityResolver = Depends(get_identity_resolver),
) -> ReportService:
    return ReportService(resolver=resolver)


async def require_caller_id(
    request: Request,
    caller_id: str | None = Depends(CALLER_ID_HEADER),
) -> str:
    """Return the authenticated caller id for write endpoints.

    Raises:
        HTTPException: 401 if the header is missing or blank.
    """
    if not caller_id or not caller_id.strip():
        logger.warning(f"Missing caller id on {request.method} {request.url.path}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing caller id",
        )
    return caller_id.strip()


def validation_http_error(exc: ReputationValidationError) -> HTTPException:
    """Translate a rejected input into a 422 with the offending field."""
    return HTTPException(
        status_code=422,
        detail={"message": str(exc), "field": exc.field, "error_code": exc.error_code},
    )
