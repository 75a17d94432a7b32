"""
Exception hierarchy for the dfdb client.

The transport returns outcomes rather than raising; these exceptions are
raised by configuration checks and by the API client built on top of it.
"""

from typing import Any


class DfdbError(Exception):
    """
    Base exception for all dfdb client errors.

    Attributes:
        message: Human-readable error message
        status: HTTP status code (if applicable)
        code: Error code for programmatic handling
        details: Additional error details
    """

    def __init__(
        self,
        message: str,
        status: int | None = None,
        code: str | None = None,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code
        self.details = details

    def __str__(self) -> str:
        parts = [self.message]
        if self.status is not None:
            parts.append(f"(status={self.status})")
        if self.code is not None:
            parts.append(f"[{self.code}]")
        return " ".join(parts)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"status={self.status!r}, "
            f"code={self.code!r})"
        )


class ConfigurationError(DfdbError, ValueError):
    """
    Exception raised when connection settings are missing or invalid.

    Raised synchronously at construction time, never from a request.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message, code="INVALID_CONFIG")


class RequestError(DfdbError):
    """
    Exception raised by the API client when a request ends in failure.

    Attributes:
        outcome: The ``Failure`` returned by the transport
        operation: Name of the operation that failed
    """

    def __init__(
        self,
        message: str,
        outcome: Any,
        operation: str | None = None,
    ) -> None:
        status = getattr(outcome, "status", None)
        super().__init__(
            message,
            status=status or None,
            code="NETWORK_ERROR" if status == 0 else "HTTP_ERROR",
            details=getattr(outcome, "body", None),
        )
        self.outcome = outcome
        self.operation = operation


def error_from_outcome(operation: str, outcome: Any) -> RequestError:
    """
    Create a RequestError from a failed request outcome.

    Args:
        operation: Human-readable operation name (e.g. "Transaction")
        outcome: The Failure returned by the transport

    Returns:
        A RequestError wrapping the outcome
    """
    return RequestError(
        f"{operation} failed: {outcome.error}",
        outcome,
        operation=operation,
    )
