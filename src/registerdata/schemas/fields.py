"""
Registry field definitions.

A FieldDefinition describes one column of a registry extract: its name in
the source, the canonical attribute it feeds, its logical type and the
alternative spellings it is known under.
"""

from dataclasses import dataclass

from registerdata.types import FieldType

__all__ = ["FieldDefinition", "FieldType"]


@dataclass(frozen=True)
class FieldDefinition:
    """
    Definition of one source column.

    Attributes:
        source_name: Column name in the registry extract.
        canonical_name: Canonical attribute (or extension key) it maps to.
        field_type: Logical type; selects the extractor.
        nullable: Whether missing values are expected.
        description: Human-readable description.
        aliases: Other column names the same field appears under.
    """

    source_name: str
    canonical_name: str
    field_type: FieldType
    nullable: bool = True
    description: str = ""
    aliases: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.source_name:
            msg = "FieldDefinition requires a source_name"
            raise ValueError(msg)
        # Accept lists from callers but store an immutable tuple
        object.__setattr__(self, "aliases", tuple(self.aliases))

    @property
    def names(self) -> tuple[str, ...]:
        """Source name followed by aliases."""
        return (self.source_name, *self.aliases)

    def matches_name(self, name: str) -> bool:
        """Whether ``name`` is the source name or one of the aliases."""
        return name == self.source_name or name in self.aliases
