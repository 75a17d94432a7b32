"""
Integration tests against a running dfdb server.

Set DFDB_TEST_SERVER_URL (default http://localhost:8081). Tests are skipped
when no server answers.
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Generator

import pytest
from conftest import Recorder

from dfdb_client import DfdbClient, RequestError

pytestmark = pytest.mark.integration


@pytest.fixture
def db(server_url: str) -> Generator[DfdbClient, None, None]:
    with DfdbClient(server_url) as client:
        yield client


def unique_ns(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


class TestRequests:
    """Request/response round trips."""

    def test_health(self, db):
        result = db.health()
        assert result["status"] == "ok"

    def test_transact_and_query(self, db):
        ns = unique_ns("it")
        tx = db.transact([{"db/id": -1, f"{ns}/name": "Charlie"}])

        assert isinstance(tx["tx-id"], int)
        assert isinstance(tx["temp-id-map"], dict)

        result = db.query(f"[:find ?name :where [?e :{ns}/name ?name]]")
        assert any(row.get("?name") == "Charlie" for row in result["bindings"])

    def test_missing_subscription_raises(self, db):
        with pytest.raises(RequestError):
            db.get_subscription(f"missing-{uuid.uuid4().hex}")


class TestDeltaStream:
    """WebSocket delta streaming."""

    def test_subscribe_and_receive_delta(self, db):
        ns = unique_ns("ws")
        sub = db.create_subscription("ws-test", f"[:find ?e ?name :where [?e :{ns}/name ?name]]")
        acks, deltas = Recorder(), Recorder()
        stream = db.stream(on_ack=acks)
        assert stream is not None
        try:
            stream.subscribe(sub["id"], deltas)
            assert acks.wait()
            assert acks.calls[0].action == "subscribed"

            db.transact([{"db/id": -1, f"{ns}/name": "WebSocketUser"}])

            assert deltas.wait(timeout=5.0)
            delta = deltas.calls[0]
            assert delta.subscription_id == sub["id"]
            assert delta.additions
            assert delta.timestamp is not None
        finally:
            stream.close()
            db.delete_subscription(sub["id"])

    def test_close(self, db):
        closes = Recorder()
        stream = db.stream(on_close=closes)
        assert stream is not None and stream.is_connected

        stream.close()
        time.sleep(0.05)

        assert not stream.is_connected
        assert closes.wait()
