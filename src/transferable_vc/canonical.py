"""
Canonical serialization helpers shared by signing, verification and
token id derivation.
"""

from __future__ import annotations

import base64
import json
from datetime import datetime, timezone
from typing import Any


def canonicalize_json(data: Any) -> str:
    """Canonicalize JSON according to JCS (RFC 8785).

    Args:
        data: JSON-compatible value to canonicalize.

    Returns:
        Canonical JSON string.
    """
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def canonical_bytes(data: Any) -> bytes:
    """UTF-8 bytes of the canonical JSON form."""
    return canonicalize_json(data).encode("utf-8")


def without_proof(credential: dict[str, Any]) -> dict[str, Any]:
    """Shallow copy of a credential with its proof removed."""
    return {k: v for k, v in credential.items() if k != "proof"}


def base64url_encode(data: bytes) -> str:
    """Encode bytes as base64url without padding."""
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def base64url_decode(data: str) -> bytes:
    """Decode base64url without padding.

    Args:
        data: Base64url encoded string.

    Returns:
        Decoded bytes.
    """
    padding = 4 - (len(data) % 4)
    if padding != 4:
        data += "=" * padding
    return base64.urlsafe_b64decode(data)


def format_datetime(value: datetime | None = None) -> str:
    """Format a datetime as an XSD dateTime in UTC with a Z suffix."""
    if value is None:
        value = datetime.now(timezone.utc)
    elif value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
