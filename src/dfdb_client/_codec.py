"""
Body encoding and decoding for the dfdb HTTP API.

Request and response bodies are JSON. Decoding never raises: a body that
does not parse as strict JSON degrades to a lenient parse and finally to
the raw text.
"""

import json
from typing import Any

TEMP_ID_MAP_KEY = "temp-id-map"


def encode_body(body: Any) -> bytes:
    """
    Encode a request body to bytes.

    - Bytes are returned as-is
    - Other values are JSON-serialized as UTF-8

    Args:
        body: The body value to encode

    Returns:
        Encoded bytes
    """
    if isinstance(body, bytes):
        return body
    return json.dumps(body).encode("utf-8")


def _parse_int_key(key: str) -> int | str:
    try:
        return int(key)
    except ValueError:
        return key


def convert_temp_id_map(data: Any) -> Any:
    """
    Convert the keys of a transaction's temp-id map to integers.

    JSON object keys are always strings, but temporary ids are numbers
    (e.g. ``{"-1": 42}``). Keys that are not integers are left alone.

    Args:
        data: Decoded response body

    Returns:
        The body with ``temp-id-map`` keys converted where possible
    """
    if not isinstance(data, dict):
        return data
    temp_ids = data.get(TEMP_ID_MAP_KEY)
    if not isinstance(temp_ids, dict):
        return data
    converted = {_parse_int_key(str(k)): v for k, v in temp_ids.items()}
    return {**data, TEMP_ID_MAP_KEY: converted}


def decode_structured(text: str) -> Any:
    """
    Strict JSON decode of a response body.

    An empty body decodes to None.

    Raises:
        ValueError: If the body is not valid JSON
        RecursionError: If the body nests too deeply to decode
    """
    if not text:
        return None
    return convert_temp_id_map(json.loads(text))


def decode_generic(text: str) -> Any:
    """
    Lenient decode: JSON allowing control characters inside strings.

    Raises:
        ValueError: If the body is still not parseable
    """
    return json.loads(text, strict=False)


def decode_body(text: str) -> Any:
    """
    Decode a response body, falling back instead of raising.

    Tries the structured decode first, then the lenient one, and finally
    returns the raw text.

    Args:
        text: Response body text

    Returns:
        Decoded value, raw text, or None for an empty body
    """
    if not text:
        return None
    try:
        return decode_structured(text)
    except (ValueError, RecursionError):
        pass
    try:
        return decode_generic(text)
    except (ValueError, RecursionError):
        return text
