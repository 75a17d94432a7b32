"""
Pytest configuration and fixtures for dfdb-client tests.

This module provides fakes for unit tests (mock HTTP responses and an
in-memory WebSocket) and fixtures for integration tests against a running
dfdb server.
"""

import json
import os
import queue
import threading
import time
from collections.abc import Callable, Generator
from typing import Any

import httpx
import pytest
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK
from websockets.frames import Close

from dfdb_client import Connection, DeltaStream

DEFAULT_TEST_SERVER_URL = "http://localhost:8081"

# ============================================================================
# HTTP fakes
# ============================================================================


class MockResponse:
    """Mock httpx.Response for testing."""

    def __init__(
        self,
        content: bytes | str = b"",
        *,
        status_code: int = 200,
        headers: dict[str, str] | None = None,
    ):
        if isinstance(content, str):
            content = content.encode("utf-8")
        self._content = content
        self.status_code = status_code
        self.headers = httpx.Headers(headers or {})
        self.is_success = 200 <= status_code < 300
        self.text = content.decode("utf-8") if content else ""


class SleepRecorder:
    """Stand-in for time.sleep that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


# ============================================================================
# WebSocket fakes
# ============================================================================


class FakeSocket:
    """
    In-memory stand-in for a websockets sync ClientConnection.

    Frames pushed with push() are returned by recv() in order. close()
    makes recv() raise ConnectionClosedOK; drop() simulates an abnormal
    disconnect.
    """

    def __init__(
        self,
        on_send: Callable[["FakeSocket", dict[str, Any]], None] | None = None,
    ) -> None:
        self.sent: list[dict[str, Any]] = []
        self.closed = False
        self.on_send = on_send
        self._inbox: queue.Queue[Any] = queue.Queue()

    def recv(self) -> str | bytes:
        item = self._inbox.get()
        if isinstance(item, BaseException):
            raise item
        return item

    def send(self, data: str) -> None:
        if self.closed:
            raise ConnectionClosedOK(
                Close(1000, ""), Close(1000, ""), rcvd_then_sent=True
            )
        msg = json.loads(data)
        self.sent.append(msg)
        if self.on_send is not None:
            self.on_send(self, msg)

    def push(self, frame: Any) -> None:
        if not isinstance(frame, (str, bytes)):
            frame = json.dumps(frame)
        self._inbox.put(frame)

    def close(self, code: int = 1000, reason: str = "") -> None:
        if not self.closed:
            self.closed = True
            self._inbox.put(
                ConnectionClosedOK(
                    Close(code, reason), Close(code, reason), rcvd_then_sent=True
                )
            )

    def drop(self) -> None:
        self.closed = True
        self._inbox.put(ConnectionClosedError(None, None))


def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    """Poll until predicate() is true or timeout seconds pass."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def connection() -> Connection:
    """A connection to a fake server address."""
    return Connection("http://localhost:8080")


@pytest.fixture
def fake_socket() -> FakeSocket:
    return FakeSocket()


@pytest.fixture
def open_stream(
    connection: Connection, fake_socket: FakeSocket
) -> Generator[Callable[..., DeltaStream], None, None]:
    """Factory opening a DeltaStream over the fake socket."""
    opened: list[DeltaStream] = []

    def _open(**kwargs: Any) -> DeltaStream:
        stream = DeltaStream.connect(
            connection, connect_socket=lambda _url: fake_socket, **kwargs
        )
        assert stream is not None
        opened.append(stream)
        return stream

    yield _open

    for stream in opened:
        stream.close()


class Recorder:
    """Thread-safe callback that records its calls."""

    def __init__(self) -> None:
        self.calls: list[Any] = []
        self._lock = threading.Lock()

    def __call__(self, arg: Any) -> None:
        with self._lock:
            self.calls.append(arg)

    def wait(self, count: int = 1, timeout: float = 2.0) -> bool:
        return wait_for(lambda: len(self.calls) >= count, timeout)


# ============================================================================
# Integration Test Server Fixtures
# ============================================================================


def _server_url() -> str:
    return os.environ.get("DFDB_TEST_SERVER_URL", DEFAULT_TEST_SERVER_URL)


def _wait_for_server(url: str, timeout: float = 2.0) -> bool:
    """Wait for server to be ready by requesting its health endpoint."""
    start = time.time()
    while time.time() - start < timeout:
        try:
            httpx.get(f"{url}/api/health", timeout=1.0)
            # Any status code means the server is running
            return True
        except httpx.RequestError:
            pass
        time.sleep(0.1)
    return False


@pytest.fixture
def server_url() -> str:
    """Get the test server URL."""
    return _server_url()


# ============================================================================
# Skip markers for integration tests
# ============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (require server)"
    )


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]  # noqa: ARG001
) -> None:
    """Skip integration tests if no dfdb server is reachable."""
    integration = [item for item in items if "integration" in item.keywords]
    if not integration:
        return

    url = _server_url()
    if not _wait_for_server(url):
        skip_integration = pytest.mark.skip(
            reason=f"Integration tests require a dfdb server at {url}"
        )
        for item in integration:
            item.add_marker(skip_integration)
