"""
Shared utility functions for the dfdb client.

This module provides helpers used by the transports and the delta stream.
"""

from collections.abc import Iterable

from dfdb_client._types import (
    JSON_CONTENT_TYPE,
    STREAM_PATH,
    HeadersLike,
)


def resolve_headers(headers: HeadersLike | None) -> dict[str, str]:
    """
    Resolve headers from HeadersLike to a plain dict.

    Supports static string values or callable functions that return strings.

    Args:
        headers: Headers dict with static or callable values

    Returns:
        Resolved headers dict with all string values
    """
    if headers is None:
        return {}

    resolved: dict[str, str] = {}
    for key, value in headers.items():
        if callable(value):
            resolved[key] = value()
        else:
            resolved[key] = value
    return resolved


def request_headers(headers: HeadersLike | None, has_body: bool) -> dict[str, str]:
    """Build headers for one attempt: content negotiation plus user headers."""
    resolved = {"Accept": JSON_CONTENT_TYPE}
    if has_body:
        resolved["Content-Type"] = JSON_CONTENT_TYPE
    resolved.update(resolve_headers(headers))
    return resolved


def backoff_delay(base: float, attempt: int) -> float:
    """
    Delay before retrying after attempt ``attempt`` (0-indexed).

    Deterministic exponential backoff: ``base * 2 ** attempt``.
    """
    return base * (2**attempt)


def should_retry(status: int) -> bool:
    """Server errors and 429 Too Many Requests are transient."""
    return status >= 500 or status == 429


def ws_url(base_url: str) -> str:
    """
    Derive the delta stream WebSocket URL from an HTTP base URL.

    Args:
        base_url: e.g. "https://db.example.com"

    Returns:
        e.g. "wss://db.example.com/api/subscriptions/stream"
    """
    base = base_url.rstrip("/")
    if base.startswith("http://"):
        base = "ws://" + base[len("http://") :]
    elif base.startswith("https://"):
        base = "wss://" + base[len("https://") :]
    return base + STREAM_PATH


def normalize_ids(subscription_ids: str | Iterable[str]) -> list[str]:
    """
    Accept a single subscription id or a collection of them.

    Order is preserved and duplicates are dropped.
    """
    if isinstance(subscription_ids, str):
        return [subscription_ids]
    return list(dict.fromkeys(subscription_ids))
