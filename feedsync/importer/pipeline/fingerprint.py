"""
Content fingerprints used to detect unchanged feed items.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any


def _serialize(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def compute_fingerprint(item: Any, mappings: Any) -> str:
    """Return a stable MD5 digest over an item and the mapping configuration."""

    serialized = _serialize(item) + _serialize(mappings)
    return hashlib.md5(serialized.encode("utf-8")).hexdigest()
