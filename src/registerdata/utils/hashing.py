"""
Cheap, deterministic fingerprints for cache keys.

Fingerprints here are approximate: they avoid hashing large
identifier sets and rely on the caller to confirm a hit against the exact
value it stored.
"""

import hashlib
import heapq
from collections.abc import Collection, Iterable
from typing import Any

DEFAULT_PREFIX_LENGTH = 5


def filter_fingerprint(
    keys: Collection[str],
    prefix_length: int = DEFAULT_PREFIX_LENGTH,
) -> str:
    """
    Compute an approximate fingerprint of a key filter.

    The fingerprint is the smallest ``prefix_length`` keys in sorted order
    followed by the cardinality. Two different filters of equal size that
    share their sorted prefix collide.

    Args:
        keys: Filter values (identifiers or secondary keys).
        prefix_length: Number of sorted keys to include.

    Returns:
        Fingerprint string.
    """
    prefix = heapq.nsmallest(prefix_length, keys)
    return f"{'|'.join(prefix)}#{len(keys)}"


def names_fingerprint(names: Iterable[str]) -> str:
    """Order-insensitive fingerprint of a set of source names."""
    return ",".join(sorted(set(names)))


def hash_config(config: Any) -> str:
    """
    Compute hash of a configuration object.

    Args:
        config: Configuration object.

    Returns:
        Hex digest string.
    """
    if hasattr(config, "model_dump"):
        config_str = str(config.model_dump())
    else:
        config_str = str(config)

    return hashlib.md5(config_str.encode()).hexdigest()[:12]
