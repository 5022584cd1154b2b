"""Page/page-size handling shared by list endpoints."""

from typing import Optional

from app.config import settings
from app.errors import ReputationValidationError


def resolve_pagination(page: int, page_size: Optional[int]) -> tuple[int, int]:
    """Validate paging input and return (limit, offset).

    page_size falls back to the configured default and is capped at the
    configured maximum rather than rejected.
    """
    if page < 1:
        raise ReputationValidationError(
            "page must be >= 1", field="page", error_code="invalid_page"
        )
    size = settings.default_page_size if page_size is None else page_size
    if size < 1:
        raise ReputationValidationError(
            "page_size must be >= 1", field="page_size", error_code="invalid_page_size"
        )
    size = min(size, settings.max_page_size)
    return size, (page - 1) * size
