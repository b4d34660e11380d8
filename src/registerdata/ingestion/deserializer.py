"""
Batch deserialization into canonical entities.

Turns adapted registry batches into CanonicalEntity objects by applying the
schema's field mappings row by row. Problems with single columns never fail
a batch: the column reads as null and is reported once.
"""

import threading
from collections.abc import Iterable

import pandas as pd

from registerdata.errors import SchemaError, ValidationError
from registerdata.models.entity import CanonicalEntity
from registerdata.normalization.adapter import SchemaAdapter
from registerdata.schemas.mapping import BoundMapping
from registerdata.schemas.registry import RegistrySchema
from registerdata.utils.logging import get_logger

log = get_logger(__name__)


class BatchDeserializer:
    """
    Maps batches of one registry onto canonical entities.

    Safe to share between threads; the only mutable state is the set of
    columns already reported as unreadable.
    """

    def __init__(
        self,
        schema: RegistrySchema,
        adapter: SchemaAdapter | None = None,
    ) -> None:
        """
        Initialize deserializer.

        Args:
            schema: Registry schema to apply.
            adapter: Type adapter (defaults to SchemaAdapter()).
        """
        self.schema = schema
        self.adapter = adapter or SchemaAdapter()
        self._reported: set[str] = set()
        self._reported_lock = threading.Lock()

    @property
    def unreadable_columns(self) -> list[str]:
        """Columns reported as missing or unreadable so far, sorted."""
        with self._reported_lock:
            return sorted(self._reported)

    def _report(self, error: SchemaError) -> None:
        column = error.column or str(error)
        with self._reported_lock:
            if column in self._reported:
                return
            self._reported.add(column)
        log.warning(
            "Column unreadable, values treated as missing",
            registry=self.schema.name,
            column=column,
            reason=str(error),
        )

    def _bind(self, batch: pd.DataFrame) -> list[BoundMapping]:
        bound = []
        for mapping in self.schema.mappings:
            try:
                bound.append(mapping.bind(batch))
            except SchemaError as exc:
                self._report(exc)
        return bound

    def _build(self, bound: list[BoundMapping], row: int) -> CanonicalEntity | None:
        entity = CanonicalEntity()
        try:
            for apply_row in bound:
                apply_row(row, entity)
        except ValidationError as exc:
            log.warning(
                "Dropping row with conflicting identifiers",
                registry=self.schema.name,
                row=row,
                error=str(exc),
            )
            return None
        if not entity.has_key(self.schema.join_key):
            return None
        return entity

    def deserialize_batch(self, batch: pd.DataFrame) -> list[CanonicalEntity]:
        """
        Deserialize all rows of a batch.

        Mappings are applied in schema order. Rows whose join key is empty
        are dropped.

        Args:
            batch: Raw batch.

        Returns:
            Entities in row order.
        """
        return self.deserialize_adapted(self.adapter.adapt(batch, self.schema))

    def deserialize_adapted(self, adapted: pd.DataFrame) -> list[CanonicalEntity]:
        """
        Deserialize a batch that was already passed through the adapter.

        Callers that filter rows on adapted key columns use this to avoid
        adapting the kept rows a second time.
        """
        bound = self._bind(adapted)

        entities = []
        for row in range(len(adapted)):
            entity = self._build(bound, row)
            if entity is not None:
                entities.append(entity)

        log.debug(
            "Deserialized batch",
            registry=self.schema.name,
            rows=len(adapted),
            entities=len(entities),
            dropped=len(adapted) - len(entities),
        )
        return entities

    def deserialize_batches(
        self, batches: Iterable[pd.DataFrame]
    ) -> list[CanonicalEntity]:
        """Deserialize several batches in order."""
        entities: list[CanonicalEntity] = []
        for batch in batches:
            entities.extend(self.deserialize_batch(batch))
        return entities

    def deserialize_row(self, batch: pd.DataFrame, row: int) -> CanonicalEntity | None:
        """
        Deserialize a single row.

        Args:
            batch: Raw batch.
            row: Row position.

        Returns:
            Entity, or None if the row is out of range or has no join key.
        """
        if row < 0 or row >= len(batch):
            return None
        adapted = self.adapter.adapt(batch.iloc[row : row + 1], self.schema)
        return self._build(self._bind(adapted), 0)
