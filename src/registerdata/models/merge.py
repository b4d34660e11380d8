"""
Merging of two records for the same person.

A single pure function serves both the cross-source join (fill absent
fields) and the longitudinal assembly (newer values win).
"""

from collections import Counter
from enum import Enum
from typing import Any

from registerdata.errors import ValidationError
from registerdata.models.entity import CanonicalEntity, canonical_attributes


class MergePolicy(str, Enum):
    """How scalar attributes present on both sides are resolved."""

    FILL_ABSENT = "fill_absent"  # keep dst, only fill None
    LAST_WINS = "last_wins"  # non-null src replaces dst


def merge_lists(
    current: list[Any],
    incoming: list[Any],
    unique: bool,
    append: bool = False,
) -> list[Any]:
    """
    Combine two list attributes.

    Unique lists take the ordered set union. With ``append`` other lists are
    concatenated; this is how rows of one extract for the same person are
    collected, where equal values are distinct events. Without it they take
    the multiset union: an element is appended only as many times as
    ``incoming`` holds it beyond what ``current`` already holds, so merging
    an already collected record again does not duplicate its events.

    Args:
        current: Existing values (kept in order).
        incoming: Values to add.
        unique: Whether the list is a set.
        append: Concatenate non-unique lists instead of taking the
            multiset union.

    Returns:
        New list; neither input is modified.
    """
    result = list(current)
    if unique:
        seen = set(current)
        for value in incoming:
            if value not in seen:
                seen.add(value)
                result.append(value)
        return result
    if append:
        return result + list(incoming)

    available = Counter(current)
    for value in incoming:
        if available[value] > 0:
            available[value] -= 1
        else:
            result.append(value)
    return result


def merge(
    dst: CanonicalEntity,
    src: CanonicalEntity,
    policy: MergePolicy = MergePolicy.FILL_ABSENT,
    append: bool = False,
) -> CanonicalEntity:
    """
    Merge ``src`` into a copy of ``dst``.

    Scalars follow ``policy``; list attributes are combined with
    ``merge_lists``; extensions follow the same rules per key. The identifier
    is only ever filled, never replaced. Without ``append`` the merge is
    idempotent: merging a record into itself changes nothing.

    Args:
        dst: Record merged into.
        src: Record merged from.
        policy: Scalar conflict rule.
        append: Concatenate non-unique lists, for collecting the rows of
            one extract.

    Returns:
        New entity; ``dst`` and ``src`` are unchanged.

    Raises:
        ValidationError: If both records carry different identifiers.
    """
    if dst.identifier and src.identifier and dst.identifier != src.identifier:
        msg = (
            f"Cannot merge records of different persons: "
            f"{dst.identifier!r} and {src.identifier!r}"
        )
        raise ValidationError(msg)

    result = dst.copy()
    for name, spec in canonical_attributes().items():
        incoming = getattr(src, name)
        if spec.is_list:
            if incoming:
                merged = merge_lists(
                    getattr(result, name), incoming, spec.unique, append
                )
                setattr(result, name, merged)
            continue
        if incoming is None:
            continue
        if getattr(result, name) is None or policy is MergePolicy.LAST_WINS:
            setattr(result, name, incoming)

    for key, incoming in src.extensions.items():
        current = result.extensions.get(key)
        if isinstance(incoming, list):
            if current is None:
                existing = []
            elif isinstance(current, list):
                existing = current
            else:
                existing = [current]
            result.extensions[key] = merge_lists(
                existing, incoming, unique=False, append=append
            )
        elif current is None or policy is MergePolicy.LAST_WINS:
            result.extensions[key] = incoming

    return result
