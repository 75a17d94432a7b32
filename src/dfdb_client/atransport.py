"""
AsyncTransport - Asynchronous request/response client with retries.

Same retry policy and outcomes as Transport, built on httpx.AsyncClient.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from dfdb_client._codec import encode_body
from dfdb_client._types import (
    Connection,
    HeadersLike,
    RequestOutcome,
    RequestSpec,
)
from dfdb_client._util import backoff_delay, request_headers
from dfdb_client.transport import (
    is_transient,
    outcome_from_error,
    outcome_from_response,
)

logger = logging.getLogger(__name__)


class AsyncTransport:
    """
    An asynchronous, retrying HTTP transport.

    Example:
        >>> conn = Connection("http://localhost:8080")
        >>> async with AsyncTransport(conn) as transport:
        ...     outcome = await transport.get(f"{conn.base_url}/api/health")
    """

    def __init__(
        self,
        connection: Connection | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        backoff_base: float | None = None,
    ) -> None:
        """
        Create an async transport.

        Args:
            connection: Defaults for timeout, retries and headers
            client: Optional httpx.AsyncClient to use
            sleep: Coroutine function used to wait between attempts
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

        self._own_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=connection.timeout if connection else 30.0
        )

    @property
    def connection(self) -> Connection | None:
        """The connection settings this transport was created with."""
        return self._connection

    async def aclose(self) -> None:
        """Close the transport and release resources."""
        if self._own_client:
            await self._client.aclose()

    async def __aenter__(self) -> AsyncTransport:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def execute(self, spec: RequestSpec) -> RequestOutcome:
        """
        Perform one logical request, retrying transient failures.

        See Transport.execute for the retry policy.
        """
        content = encode_body(spec.body) if spec.body is not None else None

        attempt = 0
        while True:
            headers = request_headers(self._headers, content is not None)
            status: int | None = None
            try:
                response = await self._client.request(
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
                await self._sleep(delay)
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

    async def get(
        self,
        url: str,
        *,
        timeout: float | None = None,
        max_retries: int | None = None,
    ) -> RequestOutcome:
        """Make a GET request."""
        return await self.execute(self._spec("GET", url, None, timeout, max_retries))

    async def post(
        self,
        url: str,
        body: Any = None,
        *,
        timeout: float | None = None,
        max_retries: int | None = None,
    ) -> RequestOutcome:
        """Make a POST request with a JSON body."""
        return await self.execute(self._spec("POST", url, body, timeout, max_retries))

    async def put(
        self,
        url: str,
        body: Any = None,
        *,
        timeout: float | None = None,
        max_retries: int | None = None,
    ) -> RequestOutcome:
        """Make a PUT request with a JSON body."""
        return await self.execute(self._spec("PUT", url, body, timeout, max_retries))

    async def delete(
        self,
        url: str,
        *,
        timeout: float | None = None,
        max_retries: int | None = None,
    ) -> RequestOutcome:
        """Make a DELETE request."""
        return await self.execute(self._spec("DELETE", url, None, timeout, max_retries))
