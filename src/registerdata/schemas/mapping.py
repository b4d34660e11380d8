"""
Field mappings: extraction paired with assignment.

A FieldMapping reads one column with the extractor selected by its
FieldType and hands non-null values to a Setter, which writes them into a
canonical entity. Setters come in four kinds and never touch anything but
the entity they are given.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import pandas as pd

from registerdata.errors import ValidationError
from registerdata.models.entity import CanonicalEntity, attribute_spec
from registerdata.schemas.extractors import Extractor, for_field
from registerdata.schemas.fields import FieldDefinition
from registerdata.types import FieldType


class SetterKind(str, Enum):
    """Assignment kinds."""

    ATTRIBUTE = "attribute"
    APPEND = "append"
    EXTENSION = "extension"
    APPEND_EXTENSION = "append_extension"


@dataclass(frozen=True)
class Setter:
    """Writes one extracted value into an entity."""

    kind: SetterKind
    target: str

    def __post_init__(self) -> None:
        if not self.target:
            msg = "Setter requires a target"
            raise ValidationError(msg)
        if self.kind is SetterKind.ATTRIBUTE and attribute_spec(self.target).is_list:
            msg = f"{self.target!r} is a list attribute; use an append setter"
            raise ValidationError(msg)
        if self.kind is SetterKind.APPEND and not attribute_spec(self.target).is_list:
            msg = f"{self.target!r} is not a list attribute"
            raise ValidationError(msg)

    @property
    def target_type(self) -> FieldType | None:
        """Declared type of the target; None for extension keys."""
        if self.kind in (SetterKind.ATTRIBUTE, SetterKind.APPEND):
            return attribute_spec(self.target).field_type
        return None

    @property
    def appends(self) -> bool:
        """Whether repeated mappings to the target accumulate values."""
        return self.kind in (SetterKind.APPEND, SetterKind.APPEND_EXTENSION)

    def __call__(self, entity: CanonicalEntity, value: Any) -> None:
        if self.kind is SetterKind.ATTRIBUTE:
            setattr(entity, self.target, value)
        elif self.kind is SetterKind.APPEND:
            values = getattr(entity, self.target)
            if attribute_spec(self.target).unique and value in values:
                return
            values.append(value)
        elif self.kind is SetterKind.EXTENSION:
            entity.set_extension(self.target, value)
        else:
            entity.append_extension(self.target, value)

    def read(self, entity: CanonicalEntity, occurrence: int = 0) -> Any:
        """
        Value this setter would have written.

        Args:
            entity: Entity to read from.
            occurrence: For append kinds, which element of the list.

        Returns:
            The value, or None if absent.
        """
        if self.kind is SetterKind.ATTRIBUTE:
            return getattr(entity, self.target)
        if self.kind is SetterKind.EXTENSION:
            value = entity.extensions.get(self.target)
            return None if isinstance(value, list) else value
        if self.kind is SetterKind.APPEND:
            values = getattr(entity, self.target)
        else:
            values = entity.extensions.get(self.target)
            if not isinstance(values, list):
                values = [] if values is None else [values]
        return values[occurrence] if occurrence < len(values) else None


def set_attr(name: str) -> Setter:
    """Assign a scalar canonical attribute."""
    return Setter(SetterKind.ATTRIBUTE, name)


def append_attr(name: str) -> Setter:
    """Append into a canonical list attribute."""
    return Setter(SetterKind.APPEND, name)


def set_extension(key: str) -> Setter:
    """Set a key of the extension map."""
    return Setter(SetterKind.EXTENSION, key)


def append_extension(key: str) -> Setter:
    """Append into a named list of the extension map."""
    return Setter(SetterKind.APPEND_EXTENSION, key)


BoundMapping = Callable[[int, CanonicalEntity], None]


@dataclass(frozen=True)
class FieldMapping:
    """
    A field definition with its extractor and setter.

    The extractor is derived from the definition's FieldType and cannot be
    supplied separately.
    """

    definition: FieldDefinition
    setter: Setter
    extractor: Extractor = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "extractor", for_field(self.definition))

    @property
    def source_name(self) -> str:
        return self.definition.source_name

    @property
    def field_type(self) -> FieldType:
        return self.definition.field_type

    def apply(self, batch: pd.DataFrame, row: int, entity: CanonicalEntity) -> None:
        """Extract the value at ``row`` and assign it if present."""
        value = self.extractor.extract(batch, row)
        if value is not None:
            self.setter(entity, value)

    def bind(self, batch: pd.DataFrame) -> BoundMapping:
        """
        Check the column once and return a per-row apply function.

        Raises:
            SchemaError: If the column is absent or has the wrong dtype.
        """
        accessor = self.extractor.bind(batch)
        setter = self.setter

        def apply_row(row: int, entity: CanonicalEntity) -> None:
            value = accessor(row)
            if value is not None:
                setter(entity, value)

        return apply_row

    def encode(self, entity: CanonicalEntity, occurrence: int = 0) -> Any:
        """Value this mapping would have read for ``entity``."""
        return self.setter.read(entity, occurrence)


def field_mapping(
    definition: FieldDefinition,
    kind: SetterKind = SetterKind.ATTRIBUTE,
) -> FieldMapping:
    """
    Build a mapping targeting the definition's canonical name.

    Args:
        definition: Source field.
        kind: Assignment kind.

    Returns:
        FieldMapping whose setter writes ``definition.canonical_name``.
    """
    return FieldMapping(definition, Setter(kind, definition.canonical_name))
