"""
Shared error types for the reputation services.
"""


class ReputationValidationError(ValueError):
    """Input rejected before any write happened."""

    def __init__(
        self,
        message: str,
        field: str = "unknown",
        error_code: str = "invalid",
    ):
        super().__init__(message)
        self.field = field
        self.error_code = error_code


class IdentitySourceError(RuntimeError):
    """The external identity source failed or answered with garbage."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
