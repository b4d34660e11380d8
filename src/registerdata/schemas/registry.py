"""
Registry schemas.

A RegistrySchema is the ordered set of field mappings for one named source
plus the kind of join key its rows carry. Schemas are built once and shared
read-only between loaders, deserializers and the join planner.
"""

from collections.abc import Iterable
from dataclasses import dataclass

import pandas as pd

from registerdata.errors import ValidationError
from registerdata.models.entity import CanonicalEntity
from registerdata.schemas.fields import FieldDefinition
from registerdata.schemas.mapping import FieldMapping, SetterKind
from registerdata.types import FieldType, JoinKeyKind
from registerdata.utils.logging import get_logger

log = get_logger(__name__)


def types_compatible(field_type: FieldType, target_type: FieldType) -> bool:
    """Whether values of ``field_type`` may be stored in a ``target_type`` slot."""
    if field_type is target_type:
        return True
    return field_type.is_textual and target_type.is_textual


@dataclass(frozen=True)
class RegistrySchema:
    """
    Field mappings of one registry source.

    Attributes:
        name: Registry name (e.g. "bef", "lpr_adm").
        mappings: Field mappings in application order. Order matters for
            append targets.
        join_key: Key convention of the source's rows.
        description: Human-readable description.
    """

    name: str
    mappings: tuple[FieldMapping, ...]
    join_key: JoinKeyKind = JoinKeyKind.PRIMARY_IDENTIFIER
    description: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "mappings", tuple(self.mappings))

        claimed: dict[str, str] = {}
        for mapping in self.mappings:
            for column in mapping.definition.names:
                owner = claimed.get(column)
                if owner is not None:
                    msg = (
                        f"Schema {self.name!r}: column {column!r} is claimed by "
                        f"both {owner!r} and {mapping.source_name!r}"
                    )
                    raise ValidationError(msg)
                claimed[column] = mapping.source_name

            target_type = mapping.setter.target_type
            if target_type is not None and not types_compatible(
                mapping.field_type, target_type
            ):
                msg = (
                    f"Schema {self.name!r}: field {mapping.source_name!r} is "
                    f"{mapping.field_type.value} but {mapping.setter.target!r} "
                    f"is {target_type.value}"
                )
                raise ValidationError(msg)

    @property
    def definitions(self) -> tuple[FieldDefinition, ...]:
        return tuple(m.definition for m in self.mappings)

    @property
    def source_names(self) -> tuple[str, ...]:
        return tuple(m.source_name for m in self.mappings)

    @property
    def key_column(self) -> str | None:
        """Source column whose mapping writes the join key attribute."""
        return self.column_for(self.join_key.attribute)

    def column_for(self, attribute: str) -> str | None:
        """Source column assigning a canonical attribute, if any."""
        for mapping in self.mappings:
            setter = mapping.setter
            if setter.kind is SetterKind.ATTRIBUTE and setter.target == attribute:
                return mapping.source_name
        return None

    def get_field_mapping(self, name: str) -> FieldMapping | None:
        """Mapping whose source name or aliases match ``name``."""
        for mapping in self.mappings:
            if mapping.definition.matches_name(name):
                return mapping
        return None

    def has_field(self, name: str) -> bool:
        return self.get_field_mapping(name) is not None

    def alias_mapping(self) -> dict[str, str]:
        """Alias to source name, for column renaming."""
        return {
            alias: mapping.source_name
            for mapping in self.mappings
            for alias in mapping.definition.aliases
        }

    def encode(self, entities: Iterable[CanonicalEntity]) -> pd.DataFrame:
        """
        Re-encode entities into a batch with this schema's source columns.

        Append mappings sharing a target take successive list elements in
        declaration order, mirroring how they were filled.

        Args:
            entities: Entities to encode, one row each.

        Returns:
            DataFrame with one column per mapping.
        """
        rows = list(entities)
        columns: dict[str, pd.Series] = {}
        occurrences: dict[tuple[SetterKind, str], int] = {}
        for mapping in self.mappings:
            occurrence = 0
            if mapping.setter.appends:
                slot = (mapping.setter.kind, mapping.setter.target)
                occurrence = occurrences.get(slot, 0)
                occurrences[slot] = occurrence + 1
            values = [mapping.encode(entity, occurrence) for entity in rows]
            columns[mapping.source_name] = mapping.extractor.to_series(
                values, mapping.source_name
            )
        log.debug("Encoded entities", registry=self.name, rows=len(rows))
        return pd.DataFrame(columns, index=pd.RangeIndex(len(rows)))
