"""
Core types for the dfdb client.

This module defines the connection configuration, request outcomes and the
messages delivered over a delta stream.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal

from dfdb_client._errors import ConfigurationError

# Type for headers - can be static strings or callables
HeadersLike = dict[str, str | Callable[[], str]]

# Delta stream lifecycle
StreamState = Literal["connecting", "connected", "failed", "closed"]


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass(frozen=True, slots=True)
class Connection:
    """
    Immutable connection settings shared by the transport and delta streams.

    Attributes:
        base_url: Base URL of the server (e.g. "http://localhost:8080")
        timeout: Per-request timeout in seconds
        max_retries: Retries allowed after the first attempt
        backoff_base: Delay unit in seconds for exponential backoff
        headers: Extra HTTP headers (static strings or callables)
    """

    base_url: str
    timeout: float = 30.0
    max_retries: int = 3
    backoff_base: float = 1.0
    headers: HeadersLike | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if not self.base_url or not isinstance(self.base_url, str):
            raise ConfigurationError("base_url is required")
        if not _is_number(self.timeout) or self.timeout <= 0:
            raise ConfigurationError(f"timeout must be positive, got {self.timeout!r}")
        if (
            not isinstance(self.max_retries, int)
            or isinstance(self.max_retries, bool)
            or self.max_retries < 0
        ):
            raise ConfigurationError(
                f"max_retries must be >= 0, got {self.max_retries!r}"
            )
        if not _is_number(self.backoff_base) or self.backoff_base < 0:
            raise ConfigurationError(
                f"backoff_base must be >= 0, got {self.backoff_base!r}"
            )
        # Frozen dataclass: bypass __setattr__ to normalize the URL
        object.__setattr__(self, "base_url", self.base_url.rstrip("/"))


@dataclass(frozen=True, slots=True)
class RequestSpec:
    """
    A single logical request handed to the transport.

    The body is encoded once and re-sent unchanged on every retry, so the
    request must be safe to submit more than once.
    """

    method: str
    url: str
    body: Any = None
    timeout: float = 30.0
    max_retries: int = 3


@dataclass(frozen=True, slots=True)
class Success:
    """
    A request that completed with a status below 400.

    Attributes:
        status: HTTP status code
        body: Decoded response body (None for an empty body)
    """

    status: int
    body: Any = None

    @property
    def ok(self) -> Literal[True]:
        return True


@dataclass(frozen=True, slots=True)
class Failure:
    """
    A request that failed after all permitted attempts.

    Attributes:
        status: HTTP status code, or 0 if no response was received
        body: Decoded response body, raw text, or None
        error: Transport error message or "HTTP <status>"
    """

    status: int
    body: Any
    error: str

    @property
    def ok(self) -> Literal[False]:
        return False


RequestOutcome = Success | Failure


@dataclass(frozen=True, slots=True)
class DeltaMessage:
    """
    Incremental change to one subscription's materialized view.

    Rows are mappings from result variable name (e.g. "?name") to value;
    attribute order within a row carries no meaning.
    """

    subscription_id: str
    additions: list[dict[str, Any]]
    retractions: list[dict[str, Any]]
    timestamp: Any = None


@dataclass(frozen=True, slots=True)
class AckMessage:
    """Server confirmation of a subscribe or unsubscribe control frame."""

    action: str
    subscription_ids: frozenset[str]


@dataclass(frozen=True, slots=True)
class ErrorMessage:
    """A control-plane or connection error reported to ``on_error``."""

    message: str
    code: str | None = None


DeltaCallback = Callable[[DeltaMessage], Any]
AckCallback = Callable[[AckMessage], Any]
ErrorCallback = Callable[[ErrorMessage], Any]
CloseCallback = Callable[[int], Any]


# Protocol constants
JSON_CONTENT_TYPE = "application/json"
STREAM_PATH = "/api/subscriptions/stream"

# Reserved callback slots, sharing the namespace of subscription ids
ON_ERROR_SLOT = "on-error"
ON_ACK_SLOT = "on-ack"
RESERVED_SLOTS = frozenset({ON_ERROR_SLOT, ON_ACK_SLOT})

# Error codes reported through on_error
TIMEOUT_CODE = "TIMEOUT"
CONNECTION_FAILED_CODE = "CONNECTION_FAILED"
CONNECTION_ERROR_CODE = "CONNECTION_ERROR"
PARSE_ERROR_CODE = "PARSE_ERROR"

# Close code used when the socket went away without a close frame
ABNORMAL_CLOSE_CODE = 1006
