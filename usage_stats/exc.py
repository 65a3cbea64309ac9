from typing import Any


class BaseAppError(Exception):
    """Base exception for application-specific errors"""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class ReportError(BaseAppError):
    """Raised when a report could not be produced by the event store"""

    def __init__(
        self,
        report: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.report = report
        super().__init__(
            message=f"Failed to get {report}",
            error_code="REPORT_FAILED",
            details=details or {},
        )

    @property
    def public_message(self) -> str:
        """Message that is safe to hand back to the caller"""
        return self.message


class AuthenticationError(Exception):
    """Base class for authentication errors"""

    pass


class MissingTokenError(AuthenticationError):
    """Raised when no bearer token was presented"""

    pass


class InvalidTokenError(AuthenticationError):
    """Raised when the bearer token does not match the configured one"""

    pass
