"""
Shared error types for core services.
"""


class ValidationIssue(ValueError):
    def __init__(
        self,
        message: str,
        field: str = "unknown",
        error_type: str = "invalid",
        error_code: str | None = None,
        data: dict | None = None,
    ):
        super().__init__(message)
        self.field = field
        self.error_type = error_type
        self.error_code = error_code
        self.data = data


class BackendError(RuntimeError):
    """Raised when a durable store operation fails."""


class RecordNotFound(BackendError):
    """Raised when a durable delete matched no record."""


class BackendUnavailable(BackendError):
    """Raised when the durable store cannot be reached at connect time."""


class AuthFailure(BackendUnavailable):
    """Raised when the durable store rejects a credential."""


class InvalidSession(LookupError):
    """Raised for an unknown or closed session identifier."""

    def __init__(self, session_id: str | None, message: str = "Invalid or missing session ID"):
        super().__init__(message)
        self.session_id = session_id


class RenderingFailure(RuntimeError):
    """Raised when a note image cannot be produced."""
