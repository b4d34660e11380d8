"""
Execution of identifier-filtered joins across registry sources.

Primary sources are filtered by the identifier set directly. Dependent
sources are filtered by the secondary keys found in their parent's rows;
each kept row is given the identifier its key resolves to. The rows of one
source are collected per identifier, list values appended, and the result
is merged into one entity per identifier with the fill-absent rule.
"""

from collections.abc import Collection, Iterable, Mapping, Sequence
from dataclasses import dataclass, field

import pandas as pd

from registerdata.errors import ValidationError
from registerdata.ingestion.deserializer import BatchDeserializer
from registerdata.joins.filters import KeyFilter
from registerdata.joins.planner import FilterPlan, PlanStep
from registerdata.models.entity import CanonicalEntity
from registerdata.models.merge import MergePolicy
from registerdata.models.store import EntityStore
from registerdata.normalization.adapter import SchemaAdapter
from registerdata.types import JoinKeyKind
from registerdata.utils.logging import get_logger, log_context

log = get_logger(__name__)


@dataclass
class JoinResult:
    """Outcome of a filtered join."""

    store: EntityStore
    source_rows: dict[str, int] = field(default_factory=dict)
    orphans: dict[str, int] = field(default_factory=dict)

    @property
    def identifiers(self) -> list[str]:
        return self.store.identifiers()


def build_key_lookup(
    entities: Iterable[CanonicalEntity], kind: JoinKeyKind
) -> dict[str, str]:
    """
    Map secondary keys to identifiers from resolved parent entities.

    The first entity carrying a key wins; later entities mapping the same
    key to another identifier are logged and ignored.

    Args:
        entities: Parent entities with identifiers assigned.
        kind: Secondary key kind to index.

    Returns:
        Key to identifier.
    """
    lookup: dict[str, str] = {}
    conflicts = 0
    for entity in entities:
        key = entity.key(kind)
        if key is None or not entity.identifier:
            continue
        existing = lookup.setdefault(key, entity.identifier)
        if existing != entity.identifier:
            conflicts += 1
    if conflicts:
        log.warning(
            "Secondary keys mapped to several identifiers, keeping first",
            key_kind=kind.value,
            conflicts=conflicts,
        )
    return lookup


class JoinExecutor:
    """Runs filter plans against loaded batches."""

    def __init__(
        self,
        adapter: SchemaAdapter | None = None,
        deserializers: Mapping[str, BatchDeserializer] | None = None,
    ) -> None:
        """
        Initialize executor.

        Args:
            adapter: Type adapter used for sources without a deserializer.
            deserializers: Deserializer per source name; reusing them keeps
                the one-warning-per-column guarantee across calls.
        """
        self.adapter = adapter or SchemaAdapter()
        self.deserializers = dict(deserializers or {})

    def _deserializer(self, step: PlanStep) -> BatchDeserializer:
        deserializer = self.deserializers.get(step.name)
        if deserializer is None:
            deserializer = BatchDeserializer(step.schema, self.adapter)
            self.deserializers[step.name] = deserializer
        return deserializer

    def _run_step(
        self,
        step: PlanStep,
        batches: Sequence[pd.DataFrame],
        key_filter: KeyFilter,
        lookup: Mapping[str, str] | None,
    ) -> tuple[list[CanonicalEntity], int]:
        deserializer = self._deserializer(step)
        entities: list[CanonicalEntity] = []
        orphans = 0
        for batch in batches:
            adapted = deserializer.adapter.adapt(batch, step.schema)
            kept = key_filter.apply(adapted, step.key_column)
            if lookup is not None:
                orphans += len(adapted) - len(kept)
            for entity in deserializer.deserialize_adapted(kept):
                if lookup is None:
                    entities.append(entity)
                    continue
                identifier = lookup.get(entity.key(step.key_kind) or "")
                if identifier is None:
                    orphans += 1
                    continue
                try:
                    entity.identifier = identifier
                except ValidationError as exc:
                    log.debug(
                        "Dropping row with conflicting identifier", error=str(exc)
                    )
                    orphans += 1
                    continue
                entities.append(entity)
        return entities, orphans

    def execute(
        self,
        plan: FilterPlan,
        loaded_batches: Mapping[str, Sequence[pd.DataFrame]],
        identifier_filter: Collection[str],
    ) -> JoinResult:
        """
        Execute a filter plan.

        Args:
            plan: Sources in dependency order.
            loaded_batches: Raw batches per source name.
            identifier_filter: Identifiers to keep.

        Returns:
            Joined entities with per-source row and orphan counts.

        Raises:
            ValidationError: If batches of a planned source are missing.
        """
        id_filter = KeyFilter.of(JoinKeyKind.PRIMARY_IDENTIFIER, identifier_filter)
        resolved: dict[str, list[CanonicalEntity]] = {}
        result = JoinResult(store=EntityStore())

        for step in plan.steps:
            if step.name not in loaded_batches:
                msg = f"No batches loaded for planned source {step.name!r}"
                raise ValidationError(msg)

            with log_context(registry=step.name):
                if step.parent is None:
                    lookup = None
                    key_filter = id_filter
                else:
                    lookup = build_key_lookup(resolved[step.parent], step.key_kind)
                    key_filter = KeyFilter.of(step.key_kind, lookup)

                entities, orphans = self._run_step(
                    step, loaded_batches[step.name], key_filter, lookup
                )
                resolved[step.name] = entities
                collected = EntityStore()
                collected.merge_entities(
                    entities, MergePolicy.FILL_ABSENT, append=True
                )
                result.store.merge_entities(collected, MergePolicy.FILL_ABSENT)
                result.source_rows[step.name] = len(entities)
                result.orphans[step.name] = orphans

                if orphans:
                    log.debug("Dropped unresolvable rows", orphans=orphans)

        log.info(
            "Executed filter plan",
            sources=plan.names,
            identifiers=len(id_filter),
            entities=len(result.store),
        )
        return result


def apply_filter_plan(
    plan: FilterPlan,
    loaded_batches: Mapping[str, Sequence[pd.DataFrame]],
    identifier_filter: Collection[str],
    adapter: SchemaAdapter | None = None,
) -> JoinResult:
    """Execute a filter plan with a fresh executor."""
    return JoinExecutor(adapter).execute(plan, loaded_batches, identifier_filter)
