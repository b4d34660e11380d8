"""
Join planning across registry sources.

Sources keyed by the person identifier can be filtered directly. Sources
keyed by a secondary key (a hospital record number, a contact id) depend on
a parent source that maps that key to identifiers. The plan orders sources
so every dependent source follows its parent.
"""

import heapq
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from registerdata.errors import ValidationError
from registerdata.schemas.registry import RegistrySchema
from registerdata.types import JoinKeyKind
from registerdata.utils.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class JoinSpec:
    """Declared dependency of a secondary-keyed source on its parent."""

    child: str
    parent: str


@dataclass(frozen=True)
class PlanStep:
    """One source in a filter plan."""

    schema: RegistrySchema
    key_column: str
    parent: str | None = None

    @property
    def name(self) -> str:
        return self.schema.name

    @property
    def key_kind(self) -> JoinKeyKind:
        return self.schema.join_key

    @property
    def is_dependent(self) -> bool:
        return self.parent is not None


@dataclass(frozen=True)
class FilterPlan:
    """Sources in execution order."""

    steps: tuple[PlanStep, ...]

    @property
    def names(self) -> list[str]:
        return [step.name for step in self.steps]

    def step(self, name: str) -> PlanStep:
        for step in self.steps:
            if step.name == name:
                return step
        msg = f"Source {name!r} is not part of the plan"
        raise ValidationError(msg)


def _key_column(schema: RegistrySchema, override: str | None) -> str:
    if override is not None:
        if not schema.has_field(override):
            msg = f"Key column {override!r} is not mapped by schema {schema.name!r}"
            raise ValidationError(msg)
        mapping = schema.get_field_mapping(override)
        return mapping.source_name if mapping is not None else override
    key_column = schema.key_column
    if key_column is None:
        msg = (
            f"Schema {schema.name!r} does not map its join key "
            f"{schema.join_key.attribute!r}"
        )
        raise ValidationError(msg)
    return key_column


def build_filter_plan(
    schemas: Iterable[RegistrySchema],
    declared_joins: Iterable[JoinSpec] = (),
    key_columns: Mapping[str, str | None] | None = None,
) -> FilterPlan:
    """
    Order sources so that dependents follow their parents.

    Ties are broken by source name, so the plan is deterministic.

    Args:
        schemas: Schemas of the sources to join.
        declared_joins: Known child/parent dependencies. Joins whose child
            is not among the schemas are ignored.
        key_columns: Optional key column override per source.

    Returns:
        Filter plan.

    Raises:
        ValidationError: On a dependency cycle, a dependent source without a
            declared parent, a parent that is not planned or does not map
            the child's key, or a key column the schema does not map.
    """
    key_columns = key_columns or {}
    by_name: dict[str, RegistrySchema] = {}
    for schema in schemas:
        if schema.name in by_name:
            msg = f"Source {schema.name!r} appears twice in the plan"
            raise ValidationError(msg)
        by_name[schema.name] = schema

    parents: dict[str, str] = {}
    for join in declared_joins:
        if join.child not in by_name:
            continue
        if join.child in parents and parents[join.child] != join.parent:
            msg = f"Source {join.child!r} has more than one parent"
            raise ValidationError(msg)
        parents[join.child] = join.parent

    steps: dict[str, PlanStep] = {}
    for name, schema in by_name.items():
        parent = parents.get(name)
        if schema.join_key is JoinKeyKind.PRIMARY_IDENTIFIER:
            if parent is not None:
                msg = (
                    f"Source {name!r} is keyed by identifier and cannot have "
                    f"a parent"
                )
                raise ValidationError(msg)
        else:
            if parent is None:
                msg = (
                    f"Source {name!r} is keyed by {schema.join_key.value} "
                    f"but no parent source is declared"
                )
                raise ValidationError(msg)
            if parent not in by_name:
                msg = f"Parent {parent!r} of {name!r} is not among the planned sources"
                raise ValidationError(msg)
            if by_name[parent].column_for(schema.join_key.attribute) is None:
                msg = (
                    f"Parent {parent!r} does not map {schema.join_key.attribute!r} "
                    f"needed by {name!r}"
                )
                raise ValidationError(msg)
        steps[name] = PlanStep(
            schema=schema,
            key_column=_key_column(schema, key_columns.get(name)),
            parent=parent,
        )

    children: dict[str, list[str]] = {name: [] for name in steps}
    waiting = {name: 0 for name in steps}
    for child, parent in parents.items():
        children[parent].append(child)
        waiting[child] += 1

    ready = [name for name, count in waiting.items() if count == 0]
    heapq.heapify(ready)
    ordered: list[PlanStep] = []
    while ready:
        name = heapq.heappop(ready)
        ordered.append(steps[name])
        for child in children[name]:
            waiting[child] -= 1
            if waiting[child] == 0:
                heapq.heappush(ready, child)

    if len(ordered) != len(steps):
        cyclic = sorted(name for name, count in waiting.items() if count > 0)
        msg = f"Join dependency cycle between sources: {cyclic}"
        raise ValidationError(msg)

    plan = FilterPlan(steps=tuple(ordered))
    log.debug("Built filter plan", order=plan.names)
    return plan
