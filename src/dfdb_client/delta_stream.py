"""
DeltaStream - WebSocket multiplexer for subscription deltas.

One DeltaStream owns one WebSocket. Many subscriptions share it: each
subscription id maps to a callback, and inbound frames are dispatched to
the matching callback in arrival order.

Threading model:
    - A reader thread opens the socket and pushes every inbound frame onto
      a queue, followed by a final close event.
    - A dispatch thread consumes that queue and runs callbacks, one frame
      at a time. Callbacks run synchronously on this thread, so a slow
      callback delays every later frame for the stream; hand heavy work
      off to another thread or queue.
    - subscribe(), unsubscribe() and close() may be called from any thread.
      The callback map and subscribed-id set are updated together under
      one lock.
"""

from __future__ import annotations

import concurrent.futures
import functools
import json
import logging
import queue
import threading
from collections.abc import Callable, Iterable
from typing import Any

from websockets.exceptions import ConnectionClosed, ConnectionClosedOK
from websockets.sync.client import ClientConnection
from websockets.sync.client import connect as ws_connect

from dfdb_client._types import (
    ABNORMAL_CLOSE_CODE,
    CONNECTION_ERROR_CODE,
    CONNECTION_FAILED_CODE,
    ON_ACK_SLOT,
    ON_ERROR_SLOT,
    PARSE_ERROR_CODE,
    RESERVED_SLOTS,
    TIMEOUT_CODE,
    AckCallback,
    AckMessage,
    CloseCallback,
    Connection,
    DeltaCallback,
    DeltaMessage,
    ErrorCallback,
    ErrorMessage,
    StreamState,
)
from dfdb_client._util import normalize_ids, resolve_headers, ws_url

logger = logging.getLogger(__name__)

DEFAULT_OPEN_TIMEOUT = 5.0

# Opens a socket for a URL; blocks until open or raises
SocketFactory = Callable[[str], ClientConnection]

# Inbound queue item kinds
_FRAME = "frame"
_CLOSED = "closed"


def parse_frame(raw: str | bytes) -> DeltaMessage | AckMessage | ErrorMessage | None:
    """
    Decode one inbound frame.

    Args:
        raw: Frame payload as received from the socket

    Returns:
        The decoded message, or None for an unrecognized frame type

    Raises:
        ValueError: If the frame is not a well-formed JSON object
        TypeError: If a field has the wrong shape
        RecursionError: If the frame nests too deeply to decode
    """
    msg = json.loads(raw)
    if not isinstance(msg, dict):
        raise ValueError(f"expected a JSON object, got {type(msg).__name__}")

    msg_type = msg.get("type")
    if msg_type == "delta":
        sub_id = msg.get("subscription-id")
        if sub_id is None:
            raise ValueError("delta frame without subscription-id")
        if not isinstance(sub_id, str):
            raise ValueError(
                f"subscription-id must be a string, got {type(sub_id).__name__}"
            )
        return DeltaMessage(
            subscription_id=sub_id,
            additions=msg.get("additions") or [],
            retractions=msg.get("retractions") or [],
            timestamp=msg.get("timestamp"),
        )
    if msg_type == "ack":
        return AckMessage(
            action=msg.get("action"),
            subscription_ids=frozenset(msg.get("subscription-ids") or ()),
        )
    if msg_type == "error":
        return ErrorMessage(message=msg.get("message"), code=msg.get("code"))
    return None


def _close_code(exc: ConnectionClosed) -> int:
    if exc.rcvd is not None:
        return exc.rcvd.code
    return ABNORMAL_CLOSE_CODE


def _invoke(callback: Callable[[Any], Any], arg: Any) -> None:
    """Run a user callback; its exceptions are logged, not propagated."""
    try:
        callback(arg)
    except Exception:
        logger.exception("Delta stream callback %r raised", callback)


class DeltaStream:
    """
    A WebSocket session multiplexing delta notifications for many
    subscriptions.

    Create one with ``DeltaStream.connect()``. A stream that has failed or
    closed cannot be reopened; connect again and re-subscribe on the new
    instance.

    Example:
        >>> conn = Connection("http://localhost:8080")
        >>> stream = DeltaStream.connect(conn, on_error=print)
        >>> if stream is not None:
        ...     stream.subscribe("sub-1", lambda d: print(d.additions))
        ...     ...
        ...     stream.close()
    """

    def __init__(
        self,
        url: str,
        *,
        on_error: ErrorCallback | None = None,
        on_close: CloseCallback | None = None,
        on_ack: AckCallback | None = None,
    ) -> None:
        """
        Create an unopened stream in the ``connecting`` state.

        No network IO is performed by the constructor.

        Args:
            url: WebSocket URL of the delta stream endpoint
            on_error: Called with an ErrorMessage for protocol and socket errors
            on_close: Called with the close code when the socket closes
            on_ack: Called with an AckMessage for subscribe/unsubscribe acks
        """
        self._url = url
        self._on_close = on_close

        # Guards everything below
        self._lock = threading.Lock()
        self._ws: ClientConnection | None = None
        self._state: StreamState = "connecting"
        self._callbacks: dict[str, Callable[[Any], Any]] = {}
        self._subscriptions: set[str] = set()
        if on_error is not None:
            self._callbacks[ON_ERROR_SLOT] = on_error
        if on_ack is not None:
            self._callbacks[ON_ACK_SLOT] = on_ack

        self._opened: concurrent.futures.Future[bool] = concurrent.futures.Future()
        self._inbox: queue.Queue[tuple[Any, ...]] = queue.Queue()

    @classmethod
    def connect(
        cls,
        connection: Connection,
        on_error: ErrorCallback | None = None,
        on_close: CloseCallback | None = None,
        on_ack: AckCallback | None = None,
        *,
        open_timeout: float = DEFAULT_OPEN_TIMEOUT,
        connect_socket: SocketFactory | None = None,
    ) -> DeltaStream | None:
        """
        Open a delta stream for a connection.

        Blocks until the socket is open or ``open_timeout`` seconds pass.

        Args:
            connection: Connection whose base URL locates the server
            on_error: Error callback (also told about connect failures)
            on_close: Close callback
            on_ack: Ack callback
            open_timeout: Seconds to wait for the socket to open
            connect_socket: Optional factory opening a socket for a URL

        Returns:
            A connected DeltaStream, or None if the socket did not open
            (``on_error`` receives a TIMEOUT or CONNECTION_FAILED error)
        """
        stream = cls(
            ws_url(connection.base_url),
            on_error=on_error,
            on_close=on_close,
            on_ack=on_ack,
        )
        if connect_socket is None:
            connect_socket = functools.partial(
                ws_connect,
                open_timeout=open_timeout,
                additional_headers=resolve_headers(connection.headers) or None,
            )
        if stream._open(connect_socket, open_timeout):
            return stream
        return None

    # === Properties ===

    @property
    def url(self) -> str:
        """The WebSocket URL of this stream."""
        return self._url

    @property
    def state(self) -> StreamState:
        """Current lifecycle state."""
        with self._lock:
            return self._state

    @property
    def is_connected(self) -> bool:
        """True while the socket is open and the stream not closed."""
        return self.state == "connected"

    @property
    def subscribed_ids(self) -> frozenset[str]:
        """Snapshot of the subscription ids this stream is subscribed to."""
        with self._lock:
            return frozenset(self._subscriptions)

    # === Control operations ===

    def subscribe(
        self,
        subscription_ids: str | Iterable[str],
        callback: DeltaCallback,
    ) -> None:
        """
        Subscribe to deltas for one or more subscriptions.

        The callback is registered before the subscribe frame is sent, so an
        ack that arrives immediately already sees the registration. All ids
        go out in a single frame.

        Args:
            subscription_ids: A subscription id or a collection of ids
            callback: Called with a DeltaMessage for each delta

        Raises:
            ValueError: If an id collides with a reserved callback slot
        """
        ids = normalize_ids(subscription_ids)
        reserved = RESERVED_SLOTS.intersection(ids)
        if reserved:
            raise ValueError(f"Reserved names cannot be subscribed: {sorted(reserved)}")
        if not ids:
            return

        with self._lock:
            for sub_id in ids:
                self._callbacks[sub_id] = callback
                self._subscriptions.add(sub_id)

        self._send({"type": "subscribe", "subscription-ids": ids})

    def unsubscribe(self, subscription_ids: str | Iterable[str]) -> None:
        """
        Stop receiving deltas for one or more subscriptions.

        Callbacks are removed before the unsubscribe frame is sent; a delta
        for a removed id that is still in flight is dropped.

        Args:
            subscription_ids: A subscription id or a collection of ids
        """
        ids = [i for i in normalize_ids(subscription_ids) if i not in RESERVED_SLOTS]
        if not ids:
            return

        with self._lock:
            for sub_id in ids:
                self._callbacks.pop(sub_id, None)
                self._subscriptions.discard(sub_id)

        self._send({"type": "unsubscribe", "subscription-ids": ids})

    def close(self) -> None:
        """
        Close the stream.

        Safe to call more than once, and on a stream whose socket failed.
        Frames that arrive after close are discarded.
        """
        with self._lock:
            ws = self._ws
            if self._state != "failed":
                self._state = "closed"
        if ws is not None:
            ws.close()

    def __enter__(self) -> DeltaStream:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # === Internals ===

    def _send(self, msg: dict[str, Any]) -> bool:
        with self._lock:
            ws = self._ws
            connected = self._state == "connected"
        if ws is None or not connected:
            logger.debug("Delta stream not connected, dropping %s frame", msg["type"])
            return False
        try:
            ws.send(json.dumps(msg))
        except (ConnectionClosed, OSError) as e:
            logger.warning("Failed to send %s frame: %s", msg["type"], e)
            return False
        return True

    def _open(self, connect_socket: SocketFactory, timeout: float) -> bool:
        """Start the reader thread and wait for the socket to open."""
        reader = threading.Thread(
            target=self._read_loop,
            args=(connect_socket,),
            name="dfdb-delta-reader",
            daemon=True,
        )
        reader.start()

        try:
            self._opened.result(timeout=timeout)
        except (concurrent.futures.TimeoutError, TimeoutError):
            # Either the wait expired or the socket gave up opening on its own
            with self._lock:
                timed_out = self._state == "connecting"
                if timed_out:
                    self._state = "failed"
            if timed_out:
                logger.warning("Timed out opening delta stream at %s", self._url)
                self._report_error(
                    ErrorMessage("WebSocket connection timeout", TIMEOUT_CODE)
                )
                return False
        except Exception as e:
            with self._lock:
                self._state = "failed"
            logger.warning("Failed to open delta stream at %s: %s", self._url, e)
            self._report_error(
                ErrorMessage(
                    f"WebSocket connection failed: {e}",
                    CONNECTION_FAILED_CODE,
                )
            )
            return False

        logger.info("Delta stream connected to %s", self._url)
        return True

    def _read_loop(self, connect_socket: SocketFactory) -> None:
        try:
            ws = connect_socket(self._url)
        except Exception as e:
            self._opened.set_exception(e)
            return

        with self._lock:
            abandoned = self._state != "connecting"
            if not abandoned:
                self._ws = ws
                self._state = "connected"
        if abandoned:
            # connect() already gave up on this socket
            ws.close()
            return

        threading.Thread(
            target=self._dispatch_loop,
            name="dfdb-delta-dispatch",
            daemon=True,
        ).start()
        self._opened.set_result(True)

        error: Exception | None = None
        while True:
            try:
                raw = ws.recv()
            except ConnectionClosedOK as e:
                code = _close_code(e)
                break
            except ConnectionClosed as e:
                code = _close_code(e)
                error = e
                break
            except OSError as e:
                code = ABNORMAL_CLOSE_CODE
                error = e
                break
            self._inbox.put((_FRAME, raw))

        self._inbox.put((_CLOSED, code, error))

    def _dispatch_loop(self) -> None:
        while True:
            item = self._inbox.get()
            if item[0] == _CLOSED:
                self._handle_closed(item[1], item[2])
                return
            with self._lock:
                discard = self._state == "closed"
            if not discard:
                self._handle_frame(item[1])

    def _handle_frame(self, raw: str | bytes) -> None:
        try:
            msg = parse_frame(raw)
        except Exception as e:
            self._report_error(
                ErrorMessage(f"Failed to parse message: {e}", PARSE_ERROR_CODE)
            )
            return

        if isinstance(msg, DeltaMessage):
            slot = msg.subscription_id
            if slot in RESERVED_SLOTS:
                return
        elif isinstance(msg, AckMessage):
            slot = ON_ACK_SLOT
        elif isinstance(msg, ErrorMessage):
            slot = ON_ERROR_SLOT
        else:
            return

        with self._lock:
            callback = self._callbacks.get(slot)
        if callback is not None:
            _invoke(callback, msg)

    def _handle_closed(self, code: int, error: Exception | None) -> None:
        with self._lock:
            was_connected = self._state == "connected"
            self._state = "closed"
            self._ws = None

        logger.info("Delta stream at %s closed (code=%d)", self._url, code)
        if error is not None and was_connected:
            self._report_error(ErrorMessage(str(error), CONNECTION_ERROR_CODE))
        if self._on_close is not None:
            _invoke(self._on_close, code)

    def _report_error(self, error: ErrorMessage) -> None:
        with self._lock:
            callback = self._callbacks.get(ON_ERROR_SLOT)
        if callback is not None:
            _invoke(callback, error)


def connect(
    connection: Connection,
    on_error: ErrorCallback | None = None,
    on_close: CloseCallback | None = None,
    on_ack: AckCallback | None = None,
    *,
    open_timeout: float = DEFAULT_OPEN_TIMEOUT,
    connect_socket: SocketFactory | None = None,
) -> DeltaStream | None:
    """Open a delta stream; see DeltaStream.connect."""
    return DeltaStream.connect(
        connection,
        on_error=on_error,
        on_close=on_close,
        on_ack=on_ack,
        open_timeout=open_timeout,
        connect_socket=connect_socket,
    )
