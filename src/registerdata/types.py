"""
Closed vocabularies shared by schemas, entities and joins.
"""

from enum import Enum


class FieldType(str, Enum):
    """Logical type of a registry field; selects the extractor."""

    IDENTIFIER = "identifier"
    STRING = "string"
    INTEGER = "integer"
    DECIMAL = "decimal"
    BOOLEAN = "boolean"
    DATE = "date"
    TIME = "time"
    CATEGORY = "category"

    @property
    def is_textual(self) -> bool:
        """Whether values of this type are carried as strings."""
        return self in {FieldType.IDENTIFIER, FieldType.STRING, FieldType.CATEGORY}


class JoinKeyKind(str, Enum):
    """Which key convention the rows of a source carry."""

    PRIMARY_IDENTIFIER = "primary_identifier"  # person number (PNR)
    RECORD_NUMBER = "record_number"  # e.g. hospital admission RECNUM
    CONTACT_ID = "contact_id"  # e.g. outpatient contact id

    @property
    def attribute(self) -> str:
        """Canonical entity attribute carrying this key."""
        return _KEY_ATTRIBUTES[self]


_KEY_ATTRIBUTES: dict[JoinKeyKind, str] = {
    JoinKeyKind.PRIMARY_IDENTIFIER: "identifier",
    JoinKeyKind.RECORD_NUMBER: "record_number",
    JoinKeyKind.CONTACT_ID: "contact_id",
}
