"""
dfdb Python Client

A Python client library for the dfdb remote API.

This package provides a retrying request/response transport (sync and async)
and a WebSocket delta stream that multiplexes subscription deltas.

Example usage:
    >>> from dfdb_client import DfdbClient
    >>>
    >>> with DfdbClient("http://localhost:8080") as db:
    ...     sub = db.create_subscription(
    ...         "names", "[:find ?name :where [?e :user/name ?name]]"
    ...     )
    ...     stream = db.stream()
    ...     stream.subscribe(sub["id"], lambda delta: print(delta.additions))
"""

from importlib.metadata import PackageNotFoundError, version

from dfdb_client._errors import (
    ConfigurationError,
    DfdbError,
    RequestError,
)
from dfdb_client._types import (
    AckMessage,
    Connection,
    DeltaMessage,
    ErrorMessage,
    Failure,
    HeadersLike,
    RequestOutcome,
    RequestSpec,
    StreamState,
    Success,
)
from dfdb_client.atransport import AsyncTransport
from dfdb_client.client import DfdbClient
from dfdb_client.delta_stream import DeltaStream, connect
from dfdb_client.transport import Transport

__all__ = [
    # Types
    "Connection",
    "RequestSpec",
    "RequestOutcome",
    "Success",
    "Failure",
    "DeltaMessage",
    "AckMessage",
    "ErrorMessage",
    "StreamState",
    "HeadersLike",
    # Errors
    "DfdbError",
    "ConfigurationError",
    "RequestError",
    # Top-level functions
    "connect",
    # Handle classes
    "Transport",
    "AsyncTransport",
    "DeltaStream",
    "DfdbClient",
]

# Use importlib.metadata for version (works with installed package)
# Fall back to hard-coded version for editable installs
try:
    __version__ = version("dfdb-client")
except PackageNotFoundError:
    __version__ = "0.1.0"
