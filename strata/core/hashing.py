"""Stable hashes for replica identity and policy drift detection."""
import hashlib
import json
from typing import Any


def _canonical(value: Any) -> bytes:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str).encode()


def hash_value(value: Any) -> str:
    """64-bit decimal digest of the JSON form of value.

    Used for replica IDs, which must stay identical across retries.
    """
    digest = hashlib.blake2b(_canonical(value), digest_size=8).digest()
    return str(int.from_bytes(digest, "big"))


def hash_object(value: Any) -> str:
    """32-bit decimal digest of the JSON form of value, for labels."""
    digest = hashlib.blake2b(_canonical(value), digest_size=4).digest()
    return str(int.from_bytes(digest, "big"))
