"""
Base classes for registry loaders.

A loader reads the raw batches of one registry source from a location and
applies optional column projection and row filtering. Loaders never modify
a batch after handing it out.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from datetime import date
from pathlib import Path

import pandas as pd

from registerdata.normalization.columns import validate_required_columns
from registerdata.schemas.registry import RegistrySchema
from registerdata.temporal.periods import TemporalPeriodResolver, TimePeriod
from registerdata.utils.logging import get_logger

log = get_logger(__name__)

Location = str | Path
RowPredicate = Callable[[pd.DataFrame], "pd.Series[bool]"]


class RegistryLoader(ABC):
    """
    Abstract base class for registry loaders.

    Subclasses implement ``_read_batches``; projection, filtering, period
    discovery and async access are shared.
    """

    def __init__(self, schema: RegistrySchema, key_column: str | None = None) -> None:
        """
        Initialize registry loader.

        Args:
            schema: Schema of the registry this loader reads.
            key_column: Column holding the join key, if it differs from the
                one the schema maps.
        """
        self.schema = schema
        self.key_column = key_column or schema.key_column

    @property
    def name(self) -> str:
        return self.schema.name

    @abstractmethod
    def _read_batches(self, location: Location) -> list[pd.DataFrame]:
        """Read raw batches from a location. Implemented by subclasses."""
        ...

    def _period_locations(
        self, location: Location, resolver: TemporalPeriodResolver
    ) -> list[tuple[TimePeriod, Location]]:
        """(period, location) pairs below a location, chronologically."""
        return list(resolver.find_period_files(Path(location)))

    def load(
        self,
        location: Location,
        columns: Sequence[str] | None = None,
        predicate: RowPredicate | None = None,
    ) -> list[pd.DataFrame]:
        """
        Load the batches at a location.

        Args:
            location: File, directory or key understood by the loader.
            columns: Optional projection; absent columns are logged and
                skipped.
            predicate: Optional row filter returning a boolean mask.

        Returns:
            Batches in source order.

        Raises:
            RegistryIOError: If the location cannot be read.
        """
        log.debug("Loading registry", registry=self.name, location=str(location))
        batches = self._read_batches(location)

        if columns is not None:
            batches = [self._project(batch, columns) for batch in batches]
        if predicate is not None:
            batches = [self._filter(batch, predicate) for batch in batches]

        log.info(
            "Loaded registry",
            registry=self.name,
            batches=len(batches),
            rows=sum(len(b) for b in batches),
        )
        return batches

    async def load_async(
        self,
        location: Location,
        columns: Sequence[str] | None = None,
        predicate: RowPredicate | None = None,
    ) -> list[pd.DataFrame]:
        """``load`` run in a worker thread."""
        return await asyncio.to_thread(self.load, location, columns, predicate)

    def load_periods(
        self,
        location: Location,
        resolver: TemporalPeriodResolver | None = None,
        start: date | None = None,
        end: date | None = None,
        predicate: RowPredicate | None = None,
    ) -> dict[TimePeriod, list[pd.DataFrame]]:
        """
        Load every period file below a location.

        Args:
            location: Directory (or key prefix) holding period files.
            resolver: Period resolver (defaults to TemporalPeriodResolver()).
            start: Skip periods ending before this date.
            end: Skip periods starting after this date.
            predicate: Optional row filter applied to every batch.

        Returns:
            Batches per period, in chronological order. Several files for
            the same period are concatenated in file order.
        """
        resolver = resolver or TemporalPeriodResolver()
        result: dict[TimePeriod, list[pd.DataFrame]] = {}
        for period, period_location in self._period_locations(location, resolver):
            if not period.overlaps(start, end):
                continue
            batches = self.load(period_location, predicate=predicate)
            result.setdefault(period, []).extend(batches)
        log.info(
            "Loaded registry periods",
            registry=self.name,
            periods=[str(p) for p in result],
        )
        return result

    def _project(self, batch: pd.DataFrame, columns: Sequence[str]) -> pd.DataFrame:
        missing = validate_required_columns(
            batch, list(columns), raise_on_missing=False
        )
        present = [c for c in columns if c not in missing]
        return batch[present]

    def _filter(self, batch: pd.DataFrame, predicate: RowPredicate) -> pd.DataFrame:
        mask = pd.Series(predicate(batch), index=batch.index)
        return batch[mask.fillna(False).astype(bool)].reset_index(drop=True)
