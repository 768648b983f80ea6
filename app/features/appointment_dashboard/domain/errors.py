"""
Error taxonomy for the appointment dashboard pipeline.

Every error carries ``recoverable`` so the retry policy and the API layer can
decide what to do without inspecting concrete types.
"""


class DashboardError(Exception):
    """Base exception for dashboard pipeline operations."""

    kind = "dashboard_error"

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        recoverable: bool = False,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.recoverable = recoverable
        self.status_code = status_code

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "message": self.message,
            "operation": self.operation,
            "recoverable": self.recoverable,
            "status_code": self.status_code,
        }


class ConfigurationError(DashboardError):
    """Unrecognized role, malformed identity, or invalid service configuration."""

    kind = "configuration_error"

    def __init__(self, message: str, operation: str | None = None):
        super().__init__(message, operation=operation, recoverable=False, status_code=500)


class ValidationError(DashboardError):
    """Malformed filter request or record payload with no safe default."""

    kind = "validation_error"

    def __init__(self, message: str, operation: str | None = None):
        super().__init__(message, operation=operation, recoverable=False, status_code=422)


class TransientFetchError(DashboardError):
    """Network, timeout or server-side failure from the record source."""

    kind = "transient_fetch_error"

    def __init__(self, message: str, operation: str | None = None, status_code: int | None = None):
        super().__init__(message, operation=operation, recoverable=True, status_code=status_code)


class AuthorizationError(DashboardError):
    """Identity or permission rejected. Never retried."""

    kind = "authorization_error"

    def __init__(self, message: str, operation: str | None = None, status_code: int = 403):
        super().__init__(message, operation=operation, recoverable=False, status_code=status_code)
