"""
Canonical entity model.

The unified per-person record, the merge rule shared by joins and
longitudinal assembly, and the store handed to consumers.
"""

from registerdata.models.entity import (
    AttributeSpec,
    CanonicalEntity,
    attribute_spec,
    canonical_attributes,
)
from registerdata.models.merge import MergePolicy, merge, merge_lists
from registerdata.models.store import EntityStore

__all__ = [
    "AttributeSpec",
    "CanonicalEntity",
    "EntityStore",
    "MergePolicy",
    "attribute_spec",
    "canonical_attributes",
    "merge",
    "merge_lists",
]
