"""
DfdbClient - Synchronous handle for the dfdb remote API.

Each method builds one request, hands it to the Transport, and returns the
decoded body or raises RequestError.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

import httpx

from dfdb_client._errors import ConfigurationError, error_from_outcome
from dfdb_client._types import (
    AckCallback,
    CloseCallback,
    Connection,
    ErrorCallback,
    HeadersLike,
    RequestOutcome,
)
from dfdb_client.delta_stream import DEFAULT_OPEN_TIMEOUT, DeltaStream
from dfdb_client.transport import Transport


def _unwrap(operation: str, outcome: RequestOutcome) -> Any:
    if outcome.ok:
        return outcome.body
    raise error_from_outcome(operation, outcome)


def _with_options(body: dict[str, Any], options: dict[str, Any]) -> dict[str, Any]:
    """Add only the options that were given."""
    for key, value in options.items():
        if value is not None:
            body[key] = value
    return body


class DfdbClient:
    """
    A synchronous client for a dfdb server.

    This is a lightweight handle around a pooled HTTP client - not a
    persistent connection. Delta streams are opened separately with
    ``stream()``.

    Example:
        >>> with DfdbClient("http://localhost:8080") as db:
        ...     db.transact([{"db/id": -1, "user/name": "Alice"}])
        ...     sub = db.create_subscription(
        ...         "names", "[:find ?name :where [?e :user/name ?name]]"
        ...     )
        ...     stream = db.stream(on_ack=print)
        ...     stream.subscribe(sub["id"], lambda d: print(d.additions))
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        connection: Connection | None = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        headers: HeadersLike | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        """
        Create a client.

        No network IO is performed by the constructor.

        Args:
            base_url: Base URL of the server
            connection: Prebuilt connection (instead of base_url and options)
            timeout: Request timeout in seconds
            max_retries: Retries for transient failures
            headers: Extra HTTP headers (static strings or callables)
            client: Optional httpx.Client to use

        Raises:
            ConfigurationError: If no base URL is given or settings are invalid
        """
        if connection is None:
            if not base_url:
                raise ConfigurationError("base_url is required")
            connection = Connection(
                base_url,
                timeout=timeout,
                max_retries=max_retries,
                headers=headers,
            )
        self._connection = connection
        self._transport = Transport(connection, client=client)

    @property
    def connection(self) -> Connection:
        """The connection settings for this client."""
        return self._connection

    @property
    def transport(self) -> Transport:
        """The transport used for requests."""
        return self._transport

    def close(self) -> None:
        """Close the client and release resources."""
        self._transport.close()

    def __enter__(self) -> DfdbClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _url(self, *parts: str) -> str:
        return self._connection.base_url + "/api/" + "/".join(parts)

    def _subscription_url(self, subscription_id: str, *parts: str) -> str:
        return self._url("subscriptions", quote(str(subscription_id), safe=""), *parts)

    # === Transactions and queries ===

    def transact(
        self,
        tx_data: list[Any],
        *,
        time_dimensions: dict[str, Any] | None = None,
        meta: dict[str, Any] | None = None,
    ) -> Any:
        """
        Execute a transaction.

        Args:
            tx_data: Entity maps or ``[op, e, a, v]`` tuples
            time_dimensions: Time dimension names to values
            meta: Transaction metadata

        Returns:
            Mapping with ``tx-id``, ``tx-time``, ``deltas`` and ``temp-id-map``
            (temp-id keys converted to integers)

        Raises:
            RequestError: If the transaction fails
        """
        body = _with_options(
            {"tx-data": tx_data},
            {"time-dimensions": time_dimensions, "meta": meta},
        )
        return _unwrap("Transaction", self._transport.post(self._url("transact"), body))

    def query(
        self,
        query: str,
        *,
        params: dict[str, Any] | None = None,
        as_of: dict[str, Any] | None = None,
    ) -> Any:
        """
        Execute a query.

        Args:
            query: Query text
            params: Parameter bindings (e.g. ``{"?min-age": 25}``)
            as_of: Time dimension names to timestamps

        Returns:
            Mapping with ``bindings`` or ``aggregate`` results

        Raises:
            RequestError: If the query fails
        """
        body = _with_options({"query": query}, {"params": params, "as-of": as_of})
        return _unwrap("Query", self._transport.post(self._url("query"), body))

    def health(self) -> Any:
        """Check server health; returns a mapping with ``status`` and ``time``."""
        return _unwrap("Health check", self._transport.get(self._url("health")))

    # === Subscriptions ===

    def create_subscription(self, name: str, query: str) -> Any:
        """
        Create a subscription backed by a materialized view.

        Returns:
            Subscription details including its ``id``
        """
        return _unwrap(
            "Create subscription",
            self._transport.post(
                self._url("subscriptions"), {"name": name, "query": query}
            ),
        )

    def list_subscriptions(self) -> Any:
        """List subscriptions; returns a mapping with a ``subscriptions`` list."""
        return _unwrap(
            "List subscriptions", self._transport.get(self._url("subscriptions"))
        )

    def get_subscription(self, subscription_id: str) -> Any:
        """Get a subscription by id."""
        return _unwrap(
            "Get subscription",
            self._transport.get(self._subscription_url(subscription_id)),
        )

    def update_subscription(self, subscription_id: str, query: str) -> Any:
        """Replace a subscription's query; returns the updated subscription."""
        return _unwrap(
            "Update subscription",
            self._transport.put(
                self._subscription_url(subscription_id), {"query": query}
            ),
        )

    def delete_subscription(self, subscription_id: str) -> None:
        """Delete a subscription."""
        _unwrap(
            "Delete subscription",
            self._transport.delete(self._subscription_url(subscription_id)),
        )

    def query_view(
        self,
        subscription_id: str,
        *,
        filter: dict[str, Any] | None = None,  # noqa: A002 - mirrors the API field
        sort: list[str] | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> Any:
        """
        Query a subscription's materialized view.

        Without options this is a GET; with any option set the options are
        POSTed as the request body.

        Args:
            subscription_id: Subscription id
            filter: Variable to criteria, e.g. ``{"?age": {">": 30}}``
            sort: Sort fields, ``-`` prefix for descending, e.g. ``["-?age"]``
            limit: Maximum number of results
            offset: Number of results to skip

        Returns:
            Mapping with ``results`` and ``total``

        Raises:
            RequestError: If the view query fails
        """
        url = self._subscription_url(subscription_id, "view")
        options = _with_options(
            {}, {"filter": filter, "sort": sort, "limit": limit, "offset": offset}
        )
        if options:
            outcome = self._transport.post(url, options)
        else:
            outcome = self._transport.get(url)
        return _unwrap("Query view", outcome)

    # === Delta streams ===

    def stream(
        self,
        on_error: ErrorCallback | None = None,
        on_close: CloseCallback | None = None,
        on_ack: AckCallback | None = None,
        *,
        open_timeout: float = DEFAULT_OPEN_TIMEOUT,
    ) -> DeltaStream | None:
        """
        Open a delta stream for this server.

        Returns:
            A connected DeltaStream, or None if it could not be opened
        """
        return DeltaStream.connect(
            self._connection,
            on_error=on_error,
            on_close=on_close,
            on_ack=on_ack,
            open_timeout=open_timeout,
        )
