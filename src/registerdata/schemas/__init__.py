"""
Registry schema definitions.

Field definitions, typed extractors, field mappings and the per-source
RegistrySchema, plus the Pandera contract for exported entity frames.
"""

from registerdata.schemas.entity import CanonicalEntityFrameSchema
from registerdata.schemas.extractors import EXTRACTORS, Extractor, for_field
from registerdata.schemas.fields import FieldDefinition, FieldType
from registerdata.schemas.mapping import (
    FieldMapping,
    Setter,
    SetterKind,
    append_attr,
    append_extension,
    field_mapping,
    set_attr,
    set_extension,
)
from registerdata.schemas.registry import RegistrySchema, types_compatible

__all__ = [
    "EXTRACTORS",
    "CanonicalEntityFrameSchema",
    "Extractor",
    "FieldDefinition",
    "FieldMapping",
    "FieldType",
    "RegistrySchema",
    "Setter",
    "SetterKind",
    "append_attr",
    "append_extension",
    "field_mapping",
    "for_field",
    "set_attr",
    "set_extension",
    "types_compatible",
]
