"""
Read-side store of merged canonical entities.

Join and longitudinal results are handed to consumers as an
``EntityStore``: one entity per identifier with simple cohort queries.
"""

from collections.abc import Callable, Iterable, Iterator
from datetime import date

import pandas as pd

from registerdata.errors import ValidationError
from registerdata.models.entity import CanonicalEntity, canonical_attributes
from registerdata.models.merge import MergePolicy, merge
from registerdata.schemas.entity import CanonicalEntityFrameSchema
from registerdata.types import FieldType
from registerdata.utils.logging import get_logger

log = get_logger(__name__)


class EntityStore:
    """Identifier-keyed collection of canonical entities."""

    def __init__(self, entities: Iterable[CanonicalEntity] | None = None) -> None:
        self._entities: dict[str, CanonicalEntity] = {}
        if entities is not None:
            self.merge_entities(entities)

    def __len__(self) -> int:
        return len(self._entities)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._entities

    def __iter__(self) -> Iterator[CanonicalEntity]:
        for identifier in self.identifiers():
            yield self._entities[identifier]

    def merge_entity(
        self,
        entity: CanonicalEntity,
        policy: MergePolicy = MergePolicy.FILL_ABSENT,
        append: bool = False,
    ) -> None:
        """
        Insert an entity or merge it into the one already stored.

        ``append`` concatenates non-unique lists; see ``merge``.

        Raises:
            ValidationError: If the entity has no identifier.
        """
        identifier = entity.identifier
        if not identifier:
            msg = "Cannot store an entity without identifier"
            raise ValidationError(msg)
        existing = self._entities.get(identifier)
        if existing is None:
            self._entities[identifier] = entity.copy()
        else:
            self._entities[identifier] = merge(existing, entity, policy, append)

    def merge_entities(
        self,
        entities: Iterable[CanonicalEntity],
        policy: MergePolicy = MergePolicy.FILL_ABSENT,
        append: bool = False,
    ) -> int:
        """
        Merge many entities in iteration order.

        Args:
            entities: Entities to merge.
            policy: Scalar conflict rule.
            append: Concatenate non-unique lists, for rows of one extract.

        Returns:
            Number of entities merged.
        """
        count = 0
        for entity in entities:
            self.merge_entity(entity, policy, append)
            count += 1
        return count

    def get(self, identifier: str) -> CanonicalEntity | None:
        """Stored entity for an identifier, or None."""
        return self._entities.get(identifier)

    def identifiers(self) -> list[str]:
        """Sorted identifiers."""
        return sorted(self._entities)

    def valid_at(self, when: date) -> list[CanonicalEntity]:
        """
        Entities present in the population at a date.

        Present means born on or before ``when`` and neither dead nor
        emigrated before it. Entities without a birth date are excluded.
        """
        result = []
        for entity in self:
            if entity.birth_date is None or entity.birth_date > when:
                continue
            if entity.death_date is not None and entity.death_date < when:
                continue
            if entity.emigration_date is not None and entity.emigration_date < when:
                continue
            result.append(entity)
        return result

    def matching(
        self, predicate: Callable[[CanonicalEntity], bool]
    ) -> list[CanonicalEntity]:
        """Entities for which ``predicate`` holds, sorted by identifier."""
        return [entity for entity in self if predicate(entity)]

    def snapshot(self) -> list[CanonicalEntity]:
        """Independent copies of all entities, sorted by identifier."""
        return [entity.copy() for entity in self]

    def to_frame(self, validate: bool = True) -> pd.DataFrame:
        """
        Tabular view with one row per entity.

        Dates become datetime64, integers nullable Int64, booleans nullable
        boolean. List attributes stay Python lists; extensions are dropped.

        Args:
            validate: Whether to validate against CanonicalEntityFrameSchema.

        Returns:
            DataFrame indexed 0..n-1, sorted by identifier.
        """
        specs = canonical_attributes()
        df = pd.DataFrame(
            [entity.to_record() for entity in self], columns=list(specs)
        )
        for name, spec in specs.items():
            if spec.is_list:
                continue
            if spec.field_type is FieldType.DATE:
                df[name] = pd.to_datetime(df[name])
            elif spec.field_type is FieldType.INTEGER:
                df[name] = df[name].astype("Int64")
            elif spec.field_type is FieldType.DECIMAL:
                df[name] = pd.to_numeric(df[name], errors="coerce").astype(float)
            elif spec.field_type is FieldType.BOOLEAN:
                df[name] = df[name].astype("boolean")

        if validate:
            df = CanonicalEntityFrameSchema.validate(df)
        log.debug("Exported entities", rows=len(df))
        return df
