"""
Transport - Synchronous request/response client with retries.

Every logical request is a RequestSpec; the transport makes up to
``max_retries + 1`` attempts and returns a Success or Failure outcome.
HTTP and network errors are reported through the outcome, never raised.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

import httpx

from dfdb_client._codec import decode_body, encode_body
from dfdb_client._types import (
    Connection,
    Failure,
    HeadersLike,
    RequestOutcome,
    RequestSpec,
    Success,
)
from dfdb_client._util import backoff_delay, request_headers, should_retry

logger = logging.getLogger(__name__)


def outcome_from_response(status: int, text: str) -> RequestOutcome:
    """Turn a final HTTP response into an outcome."""
    if status < 400:
        return Success(status=status, body=decode_body(text))
    return Failure(status=status, body=decode_body(text), error=f"HTTP {status}")


def outcome_from_error(exc: Exception) -> Failure:
    """Turn a network-level error into an outcome (no response observed)."""
    return Failure(status=0, body=None, error=str(exc) or type(exc).__name__)


def is_transient(status: int | None) -> bool:
    """A missing status means a network error, which is always transient."""
    return status is None or should_retry(status)


class Transport:
    """
    A synchronous, retrying HTTP transport.

    One pooled httpx.Client is shared by every request made through the
    transport; it is safe to call ``execute`` from several threads at once.
    Backoff sleeps block only the calling thread.

    Example:
        >>> conn = Connection("http://localhost:8080")
        >>> with Transport(conn) as transport:
        ...     outcome = transport.get(f"{conn.base_url}/api/health")
        ...     if outcome.ok:
        ...         print(outcome.body)
    """

    def __init__(
        self,
        connection: Connection | None = None,
        *,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
        backoff_base: float | None = None,
    ) -> None:
        """
        Create a transport.

        No network IO is performed by the constructor.

        Args:
            connection: Defaults for timeout, retries and headers
            client: Optional httpx.Client to use
            sleep: Function used to wait between attempts
            backoff_base: Override of the connection's backoff unit (seconds)
        """
        self._connection = connection
        self._sleep = sleep
        if backoff_base is not None:
            self._backoff_base = backoff_base
        elif connection is not None:
            self._backoff_base = connection.backoff_base
        else:
            self._backoff_base = 1.0
        self._headers: HeadersLike | None = connection.headers if connection else None

        # Client management
        self._own_client = client is None
        self._client = client or httpx.Client(
            timeout=connection.timeout if connection else 30.0
        )

    @property
    def connection(self) -> Connection | None:
        """The connection settings this transport was created with."""
        return self._connection

    def close(self) -> None:
        """Close the transport and release resources."""
        if self._own_client:
            self._client.close()

    def __enter__(self) -> Transport:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def execute(self, spec: RequestSpec) -> RequestOutcome:
        """
        Perform one logical request, retrying transient failures.

        Network errors, 5xx and 429 responses are retried while the retry
        budget lasts, sleeping ``backoff_base * 2 ** attempt`` seconds
        before each retry. Other error statuses are returned at once.

        Args:
            spec: The request to perform

        Returns:
            Success or Failure for the last attempt made
        """
        content = encode_body(spec.body) if spec.body is not None else None

        attempt = 0
        while True:
            headers = request_headers(self._headers, content is not None)
            status: int | None = None
            try:
                response = self._client.request(
                    spec.method,
                    spec.url,
                    content=content,
                    headers=headers,
                    timeout=spec.timeout,
                )
                status = response.status_code
                outcome = outcome_from_response(status, response.text)
            except httpx.RequestError as e:
                outcome = outcome_from_error(e)

            if outcome.ok:
                return outcome

            if is_transient(status) and attempt < spec.max_retries:
                delay = backoff_delay(self._backoff_base, attempt)
                logger.warning(
                    "%s %s failed (%s), retrying in %.2fs (attempt %d/%d)",
                    spec.method,
                    spec.url,
                    outcome.error,
                    delay,
                    attempt + 1,
                    spec.max_retries,
                )
                self._sleep(delay)
                attempt += 1
                continue

            logger.debug(
                "%s %s failed after %d attempt(s): %s",
                spec.method,
                spec.url,
                attempt + 1,
                outcome.error,
            )
            return outcome

    # === Convenience methods ===

    def _spec(
        self,
        method: str,
        url: str,
        body: Any,
        timeout: float | None,
        max_retries: int | None,
    ) -> RequestSpec:
        conn = self._connection
        if timeout is None:
            timeout = conn.timeout if conn else 30.0
        if max_retries is None:
            max_retries = conn.max_retries if conn else 3
        return RequestSpec(
            method=method,
            url=url,
            body=body,
            timeout=timeout,
            max_retries=max_retries,
        )

    def get(
        self,
        url: str,
        *,
        timeout: float | None = None,
        max_retries: int | None = None,
    ) -> RequestOutcome:
        """Make a GET request."""
        return self.execute(self._spec("GET", url, None, timeout, max_retries))

    def post(
        self,
        url: str,
        body: Any = None,
        *,
        timeout: float | None = None,
        max_retries: int | None = None,
    ) -> RequestOutcome:
        """Make a POST request with a JSON body."""
        return self.execute(self._spec("POST", url, body, timeout, max_retries))

    def put(
        self,
        url: str,
        body: Any = None,
        *,
        timeout: float | None = None,
        max_retries: int | None = None,
    ) -> RequestOutcome:
        """Make a PUT request with a JSON body."""
        return self.execute(self._spec("PUT", url, body, timeout, max_retries))

    def delete(
        self,
        url: str,
        *,
        timeout: float | None = None,
        max_retries: int | None = None,
    ) -> RequestOutcome:
        """Make a DELETE request."""
        return self.execute(self._spec("DELETE", url, None, timeout, max_retries))
