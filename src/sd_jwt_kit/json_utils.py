"""JSON and base64url utilities module.

This module provides a unified interface for the JSON and base64url operations
used across SD-JWT, isolating the encoding choices (compact separators, UTF-8,
no base64 padding) in one place.

Currently uses the standard library json and base64 modules.
"""

import base64
import json
from typing import Any, Union

# Deepest array/object nesting accepted from untrusted input
MAX_NESTING_DEPTH = 64


def encode(obj: Any) -> bytes:
    """Encode an object to compact UTF-8 JSON bytes.

    Args:
        obj: The object to encode

    Returns:
        JSON-encoded bytes
    """
    return json.dumps(obj, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


def decode(data: Union[bytes, str]) -> Any:
    """Decode JSON bytes to an object.

    Args:
        data: JSON-encoded bytes or text

    Returns:
        The decoded object

    Raises:
        ValueError: If the data is not valid JSON, or arrays and objects
            nest deeper than ``MAX_NESTING_DEPTH``
    """
    try:
        obj = json.loads(data)
    except RecursionError as e:
        raise ValueError("JSON nesting too deep") from e
    if nesting_depth(obj) > MAX_NESTING_DEPTH:
        raise ValueError(f"JSON nesting deeper than {MAX_NESTING_DEPTH}")
    return obj


def nesting_depth(obj: Any) -> int:
    """Count the deepest level of nested arrays and objects (0 for scalars)."""
    deepest = 0
    stack = [(obj, 1)]
    while stack:
        value, depth = stack.pop()
        if isinstance(value, dict):
            children = value.values()
        elif isinstance(value, list):
            children = value
        else:
            continue
        deepest = max(deepest, depth)
        stack.extend((child, depth + 1) for child in children)
    return deepest


def b64url_encode(data: bytes) -> str:
    """Encode bytes as unpadded base64url text."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(text: str) -> bytes:
    """Decode unpadded base64url text.

    Args:
        text: base64url text without padding

    Returns:
        The decoded bytes

    Raises:
        ValueError: If the text contains characters outside the base64url
            alphabet or has an impossible length
    """
    if "=" in text or "+" in text or "/" in text:
        raise ValueError("Not unpadded base64url")
    if len(text) % 4 == 1:
        raise ValueError("Invalid base64url length")
    padded = text + "=" * (-len(text) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


def b64url_encode_json(obj: Any) -> str:
    """Encode an object as base64url(JSON)."""
    return b64url_encode(encode(obj))


def b64url_decode_json(text: str) -> Any:
    """Decode base64url(JSON) text to an object.

    Raises:
        ValueError: If the text is not base64url or not JSON
    """
    return decode(b64url_decode(text))


def is_object(obj: Any) -> bool:
    """Check if a value is a JSON object."""
    return isinstance(obj, dict)


# Reserved claim names for selective disclosure
SD_CLAIM = "_sd"
SD_ALG_CLAIM = "_sd_alg"
ARRAY_DIGEST_KEY = "..."
SD_JWT_CLAIM = "_sd_jwt"
SD_HASH_CLAIM = "sd_hash"
RESERVED_CLAIM_NAMES = frozenset({SD_CLAIM, SD_ALG_CLAIM, ARRAY_DIGEST_KEY})
