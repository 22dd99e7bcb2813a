"""
Helper functions for common infrastructure operations.

Domain-agnostic utility functions for canonical JSON serialization and
hashing (event fingerprints).

Usage:
    from core.helpers import canonical_json, sha256_hex

    digest = sha256_hex(canonical_json({"b": 1, "a": 2}))
"""

from __future__ import annotations

import hashlib
import json
from typing import TYPE_CHECKING

from django.core.serializers.json import DjangoJSONEncoder

if TYPE_CHECKING:
    from typing import Any


def canonical_json(value: Any) -> str:
    """
    Serialize a value to JSON with a stable key order and no whitespace.

    Two payloads that differ only in key order produce the same string.
    """
    return json.dumps(
        value,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        cls=DjangoJSONEncoder,
    )


def sha256_hex(value: str) -> str:
    """Hex sha256 digest of a UTF-8 string."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()

