"""
Longitudinal assembly of per-period registry extracts.

Entities of the same person observed in several periods are merged into one
timeline, oldest period first, so that later observations win.
"""

from collections.abc import Collection, Iterable, Mapping, Sequence
from typing import TYPE_CHECKING

import pandas as pd

from registerdata.models.entity import CanonicalEntity
from registerdata.models.merge import MergePolicy, merge, merge_lists
from registerdata.temporal.periods import TimePeriod
from registerdata.utils.logging import get_logger, log_context

if TYPE_CHECKING:
    from registerdata.ingestion.deserializer import BatchDeserializer

log = get_logger(__name__)


class LongitudinalAssembler:
    """Merges entities across periods into one record per identifier."""

    def __init__(self, policy: MergePolicy = MergePolicy.LAST_WINS) -> None:
        """
        Initialize assembler.

        Args:
            policy: Scalar conflict rule between periods. The default lets
                the most recent non-null value win.
        """
        self.policy = policy

    @staticmethod
    def group_by_period(
        pairs: Iterable[tuple[TimePeriod, CanonicalEntity]],
    ) -> dict[TimePeriod, list[CanonicalEntity]]:
        """
        Group (period, entity) pairs by period.

        Returns:
            Entities per period, periods in chronological order, entities
            in input order.
        """
        grouped: dict[TimePeriod, list[CanonicalEntity]] = {}
        for period, entity in pairs:
            grouped.setdefault(period, []).append(entity)
        return {period: grouped[period] for period in sorted(grouped)}

    def merge_across_periods(
        self,
        period_map: Mapping[TimePeriod, Iterable[CanonicalEntity]],
    ) -> list[CanonicalEntity]:
        """
        Merge per-period entities into one timeline per identifier.

        Periods are processed oldest to newest regardless of the mapping's
        iteration order. Rows of one period for the same identifier are
        collected first, their list values appended. The first period an
        identifier occurs in inserts it; later periods are merged into it.
        Every result records the labels of the periods it was observed in.

        Args:
            period_map: Entities per period.

        Returns:
            Merged entities sorted by identifier.
        """
        merged: dict[str, CanonicalEntity] = {}
        skipped = 0
        for period in sorted(period_map):
            label = period.label
            collected: dict[str, CanonicalEntity] = {}
            for entity in period_map[period]:
                identifier = entity.identifier
                if not identifier:
                    skipped += 1
                    continue
                current = collected.get(identifier)
                collected[identifier] = (
                    entity.copy()
                    if current is None
                    else merge(current, entity, self.policy, append=True)
                )

            for identifier, observed in collected.items():
                observed.observed_periods = merge_lists(
                    observed.observed_periods, [label], unique=True
                )
                existing = merged.get(identifier)
                if existing is None:
                    merged[identifier] = observed
                else:
                    merged[identifier] = merge(existing, observed, self.policy)

        if skipped:
            log.debug("Skipped entities without identifier", count=skipped)
        log.debug(
            "Merged across periods",
            periods=len(period_map),
            entities=len(merged),
        )
        return [merged[identifier] for identifier in sorted(merged)]

    def assemble(
        self,
        period_batches: Mapping[TimePeriod, Sequence[pd.DataFrame]],
        deserializer: "BatchDeserializer",
        id_filter: Collection[str] | None = None,
    ) -> list[CanonicalEntity]:
        """
        Deserialize per-period batches and merge them.

        Args:
            period_batches: Raw batches per period.
            deserializer: Deserializer of the registry.
            id_filter: Keep only these identifiers (None keeps all).

        Returns:
            Merged entities sorted by identifier.
        """
        period_map: dict[TimePeriod, list[CanonicalEntity]] = {}
        for period in sorted(period_batches):
            with log_context(registry=deserializer.schema.name, period=period.label):
                entities = deserializer.deserialize_batches(period_batches[period])
            if id_filter is not None:
                entities = [e for e in entities if e.identifier in id_filter]
            period_map[period] = entities
        return self.merge_across_periods(period_map)
