"""
Canonical per-person record.

Every registry source is mapped onto ``CanonicalEntity``. Attributes are
optional; each declares its logical FieldType in dataclass field metadata so
that schemas can check their mappings against it.
"""

import copy
from dataclasses import dataclass, field, fields
from datetime import date, time
from functools import cache
from typing import Any, Union

from registerdata.errors import ValidationError
from registerdata.types import FieldType, JoinKeyKind

ExtensionScalar = Union[str, int, float, bool, date, time]
ExtensionValue = Union[ExtensionScalar, list[ExtensionScalar]]

_EXTENSION_SCALARS = (str, int, float, bool, date, time)


def _scalar(field_type: FieldType) -> Any:
    return field(default=None, metadata={"type": field_type})


def _list(field_type: FieldType, *, unique: bool = False) -> Any:
    return field(
        default_factory=list,
        metadata={"type": field_type, "kind": "list", "unique": unique},
    )


@dataclass(frozen=True)
class AttributeSpec:
    """Declared type of one canonical attribute."""

    name: str
    field_type: FieldType
    is_list: bool = False
    unique: bool = False


@dataclass
class CanonicalEntity:
    """
    Unified record for one person across all registry sources.

    The identifier is write-once: assigning a different non-empty value
    after it has been set raises ValidationError; re-assigning the same value
    is a no-op.
    """

    identifier: str | None = _scalar(FieldType.IDENTIFIER)

    # Secondary keys
    record_number: str | None = _scalar(FieldType.IDENTIFIER)
    contact_id: str | None = _scalar(FieldType.IDENTIFIER)

    # Family
    mother_id: str | None = _scalar(FieldType.IDENTIFIER)
    father_id: str | None = _scalar(FieldType.IDENTIFIER)
    spouse_id: str | None = _scalar(FieldType.IDENTIFIER)
    family_id: str | None = _scalar(FieldType.STRING)

    # Demographics
    gender: str | None = _scalar(FieldType.CATEGORY)
    birth_date: date | None = _scalar(FieldType.DATE)
    birth_time: time | None = _scalar(FieldType.TIME)
    death_date: date | None = _scalar(FieldType.DATE)
    age: int | None = _scalar(FieldType.INTEGER)
    origin: str | None = _scalar(FieldType.CATEGORY)
    citizenship_status: str | None = _scalar(FieldType.CATEGORY)
    immigration_type: str | None = _scalar(FieldType.CATEGORY)
    marital_status: str | None = _scalar(FieldType.CATEGORY)
    marital_date: date | None = _scalar(FieldType.DATE)
    municipality_code: str | None = _scalar(FieldType.CATEGORY)
    regional_code: str | None = _scalar(FieldType.CATEGORY)
    household_type: str | None = _scalar(FieldType.CATEGORY)
    family_size: int | None = _scalar(FieldType.INTEGER)
    household_size: int | None = _scalar(FieldType.INTEGER)
    residence_from: date | None = _scalar(FieldType.DATE)
    position_in_family: str | None = _scalar(FieldType.CATEGORY)
    family_type: str | None = _scalar(FieldType.CATEGORY)
    cohabiting: bool | None = _scalar(FieldType.BOOLEAN)

    # Migration and civil events
    event_type: str | None = _scalar(FieldType.CATEGORY)
    event_date: date | None = _scalar(FieldType.DATE)
    emigration_date: date | None = _scalar(FieldType.DATE)
    immigration_date: date | None = _scalar(FieldType.DATE)

    # Education
    education_code: str | None = _scalar(FieldType.CATEGORY)
    education_valid_from: date | None = _scalar(FieldType.DATE)
    education_valid_to: date | None = _scalar(FieldType.DATE)
    education_institution: str | None = _scalar(FieldType.STRING)
    education_source: str | None = _scalar(FieldType.CATEGORY)
    education_level: str | None = _scalar(FieldType.CATEGORY)
    education_field: str | None = _scalar(FieldType.CATEGORY)
    education_program_code: str | None = _scalar(FieldType.CATEGORY)
    education_completion_date: date | None = _scalar(FieldType.DATE)

    # Employment
    socioeconomic_status: str | None = _scalar(FieldType.CATEGORY)
    occupation_code: str | None = _scalar(FieldType.CATEGORY)
    industry_code: str | None = _scalar(FieldType.CATEGORY)
    workplace_id: str | None = _scalar(FieldType.STRING)
    employment_start_date: date | None = _scalar(FieldType.DATE)
    working_hours: float | None = _scalar(FieldType.DECIMAL)

    # Income
    annual_income: float | None = _scalar(FieldType.DECIMAL)
    disposable_income: float | None = _scalar(FieldType.DECIMAL)
    employment_income: float | None = _scalar(FieldType.DECIMAL)
    self_employment_income: float | None = _scalar(FieldType.DECIMAL)
    capital_income: float | None = _scalar(FieldType.DECIMAL)
    transfer_income: float | None = _scalar(FieldType.DECIMAL)
    income_year: int | None = _scalar(FieldType.INTEGER)

    # Health care usage
    hospital_admissions_count: int | None = _scalar(FieldType.INTEGER)
    emergency_visits_count: int | None = _scalar(FieldType.INTEGER)
    outpatient_visits_count: int | None = _scalar(FieldType.INTEGER)
    gp_visits_count: int | None = _scalar(FieldType.INTEGER)
    last_hospital_admission_date: date | None = _scalar(FieldType.DATE)
    hospitalization_days: int | None = _scalar(FieldType.INTEGER)
    length_of_stay: int | None = _scalar(FieldType.INTEGER)

    # Health events
    diagnoses: list[str] = _list(FieldType.CATEGORY, unique=True)
    procedures: list[str] = _list(FieldType.CATEGORY, unique=True)
    hospital_admissions: list[date] = _list(FieldType.DATE)
    discharge_dates: list[date] = _list(FieldType.DATE)

    # Death
    death_cause: str | None = _scalar(FieldType.CATEGORY)
    underlying_death_cause: str | None = _scalar(FieldType.CATEGORY)

    # Birth
    birth_weight: int | None = _scalar(FieldType.INTEGER)
    birth_length: int | None = _scalar(FieldType.INTEGER)
    gestational_age: int | None = _scalar(FieldType.INTEGER)
    apgar_score: int | None = _scalar(FieldType.INTEGER)
    birth_order: int | None = _scalar(FieldType.INTEGER)
    plurality: int | None = _scalar(FieldType.INTEGER)

    # Period labels ("2020", "2020-03", "2020-Q1") this record was seen in
    observed_periods: list[str] = _list(FieldType.STRING, unique=True)

    # Source-specific values without a canonical attribute
    extensions: dict[str, ExtensionValue] = field(default_factory=dict)

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "identifier":
            current = self.__dict__.get("identifier")
            if current and value != current:
                msg = (
                    f"Identifier is immutable once set: "
                    f"{current!r} cannot become {value!r}"
                )
                raise ValidationError(msg)
        object.__setattr__(self, name, value)

    def key(self, kind: JoinKeyKind) -> str | None:
        """Value of the join key of the given kind, None if empty."""
        return getattr(self, kind.attribute) or None

    def has_key(self, kind: JoinKeyKind) -> bool:
        """Whether the join key of the given kind is set."""
        return self.key(kind) is not None

    def set_extension(self, key: str, value: ExtensionValue) -> None:
        """Set a source-specific value."""
        self.extensions[key] = _check_extension(key, value)

    def append_extension(self, key: str, value: ExtensionScalar) -> None:
        """Append to a source-specific list value."""
        _check_extension(key, value)
        current = self.extensions.get(key)
        if current is None:
            self.extensions[key] = [value]
        elif isinstance(current, list):
            current.append(value)
        else:
            self.extensions[key] = [current, value]

    def copy(self) -> "CanonicalEntity":
        """Independent copy; list attributes and extensions are not shared."""
        return copy.deepcopy(self)

    def to_record(self) -> dict[str, Any]:
        """Canonical attributes as a flat dict (extensions excluded)."""
        return {name: getattr(self, name) for name in canonical_attributes()}


def _check_extension(key: str, value: Any) -> Any:
    items = value if isinstance(value, list) else [value]
    for item in items:
        if not isinstance(item, _EXTENSION_SCALARS):
            msg = (
                f"Extension {key!r} holds unsupported value type "
                f"{type(item).__name__}"
            )
            raise ValidationError(msg)
    return value


@cache
def canonical_attributes() -> dict[str, AttributeSpec]:
    """
    Declared types of all canonical attributes, in declaration order.

    Returns:
        Mapping of attribute name to its spec. ``extensions`` is not a
        canonical attribute and is not included.
    """
    specs: dict[str, AttributeSpec] = {}
    for f in fields(CanonicalEntity):
        if "type" not in f.metadata:
            continue
        specs[f.name] = AttributeSpec(
            name=f.name,
            field_type=f.metadata["type"],
            is_list=f.metadata.get("kind") == "list",
            unique=f.metadata.get("unique", False),
        )
    return specs


def attribute_spec(name: str) -> AttributeSpec:
    """
    Look up one canonical attribute.

    Raises:
        ValidationError: If the entity has no such attribute.
    """
    spec = canonical_attributes().get(name)
    if spec is None:
        msg = f"CanonicalEntity has no attribute {name!r}"
        raise ValidationError(msg)
    return spec
