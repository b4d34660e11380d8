"""
Registry manager.

Registers registry sources with their loaders, loads them in parallel or
asynchronously, runs identifier-filtered joins and longitudinal assembly,
and keeps bounded caches of raw batches and joined results. Caches belong
to the manager instance; several managers can coexist.
"""

import asyncio
import threading
from collections.abc import Collection, Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import date

import pandas as pd

from registerdata.config.settings import RegistryConfig
from registerdata.errors import ValidationError
from registerdata.ingestion.base import Location, RegistryLoader
from registerdata.ingestion.deserializer import BatchDeserializer
from registerdata.joins.executor import JoinExecutor, JoinResult
from registerdata.joins.filters import KeyFilter
from registerdata.joins.planner import FilterPlan, JoinSpec, build_filter_plan
from registerdata.models.store import EntityStore
from registerdata.normalization.adapter import SchemaAdapter
from registerdata.schemas.registry import RegistrySchema
from registerdata.temporal.longitudinal import LongitudinalAssembler
from registerdata.temporal.periods import TemporalPeriodResolver
from registerdata.types import JoinKeyKind
from registerdata.utils.cache import BoundedCache, CacheStats, ReadWriteLock, hold
from registerdata.utils.hashing import (
    filter_fingerprint,
    hash_config,
    names_fingerprint,
)
from registerdata.utils.logging import get_logger, log_context

log = get_logger(__name__)


@dataclass(frozen=True)
class _Registration:
    loader: RegistryLoader
    location: Location
    deserializer: BatchDeserializer


@dataclass(frozen=True)
class _JoinedEntry:
    """Cached join with the exact request it answers."""

    identifiers: frozenset[str]
    names: tuple[str, ...]
    result: JoinResult


class RegistryManager:
    """
    Entry point for loading and joining registry sources.

    Example:
        manager = RegistryManager()
        manager.register("bef", FileRegistryLoader(BEF_SCHEMA), "data/bef")
        store = manager.filter_by_identifier(["bef"], {"0101901234"})
    """

    def __init__(
        self,
        config: RegistryConfig | None = None,
        joins: Iterable[JoinSpec] = (),
    ) -> None:
        """
        Initialize manager.

        Args:
            config: Library configuration (defaults to RegistryConfig()).
            joins: Declared child/parent dependencies, in addition to the
                ones in ``config.joins``.
        """
        self.config = config or RegistryConfig()
        cache_config = self.config.cache
        self._lock_timeout = cache_config.lock_timeout_s

        self._registrations: dict[str, _Registration] = {}
        self._registration_lock = threading.Lock()
        self._joins: dict[str, JoinSpec] = {}
        for join in self.config.joins:
            self._joins[join.child] = JoinSpec(join.child, join.parent)
        for join in joins:
            self._joins[join.child] = join

        self._raw_cache: BoundedCache[str, tuple[pd.DataFrame, ...]] = BoundedCache(
            cache_config.max_raw_entries,
            cache_config.eviction_fraction,
            name="raw",
        )
        self._raw_lock = ReadWriteLock()
        self._joined_cache: BoundedCache[str, _JoinedEntry] = BoundedCache(
            cache_config.max_filtered_entries,
            cache_config.eviction_fraction,
            name="joined",
        )
        self._joined_lock = threading.Lock()

        self.adapter = SchemaAdapter(self.config.dates)
        self.resolver = TemporalPeriodResolver(self.config.periods.file_extensions)

        log.debug("Created registry manager", config_hash=hash_config(self.config))

    @classmethod
    def from_config(
        cls,
        config: RegistryConfig,
        loaders: Mapping[str, RegistryLoader],
    ) -> "RegistryManager":
        """
        Build a manager with every configured source registered.

        Args:
            config: Configuration listing sources and joins.
            loaders: Loader per configured source name.

        Returns:
            Manager with sources registered at their resolved locations.

        Raises:
            ValidationError: If a configured source has no loader or a
                loader has no configured source.
        """
        unknown = sorted(set(loaders) - set(config.sources))
        if unknown:
            msg = f"Loaders given for unconfigured sources: {unknown}"
            raise ValidationError(msg)

        manager = cls(config)
        for name, source in config.sources.items():
            loader = loaders.get(name)
            if loader is None:
                msg = f"No loader given for configured source {name!r}"
                raise ValidationError(msg)
            if source.key_column is not None:
                loader.key_column = source.key_column
            manager.register(name, loader, config.resolve(name))
        return manager

    # Registration

    def register(self, name: str, loader: RegistryLoader, location: Location) -> None:
        """
        Register a source.

        Re-registering a name replaces the source and drops its cached
        data.

        Raises:
            ValidationError: If ``name`` differs from the loader's schema name.
        """
        if name != loader.schema.name:
            msg = (
                f"Source name {name!r} does not match schema name "
                f"{loader.schema.name!r}"
            )
            raise ValidationError(msg)

        registration = _Registration(
            loader=loader,
            location=location,
            deserializer=BatchDeserializer(loader.schema, self.adapter),
        )
        with self._registration_lock:
            replaced = name in self._registrations
            self._registrations[name] = registration

        if replaced:
            with self._raw_lock.write(self._lock_timeout):
                self._raw_cache.invalidate(name)
            self._clear_joined()
        log.info("Registered registry", registry=name, location=str(location))

    def register_join(self, child: str, parent: str) -> None:
        """Declare that ``child`` resolves its keys through ``parent``."""
        with self._registration_lock:
            self._joins[child] = JoinSpec(child, parent)
        self._clear_joined()
        log.debug("Registered join", child=child, parent=parent)

    def has_registry(self, name: str) -> bool:
        with self._registration_lock:
            return name in self._registrations

    def registered(self) -> list[str]:
        """Registered source names, sorted."""
        with self._registration_lock:
            return sorted(self._registrations)

    def _registration(self, name: str) -> _Registration:
        with self._registration_lock:
            registration = self._registrations.get(name)
        if registration is None:
            msg = f"Registry {name!r} is not registered"
            raise ValidationError(msg)
        return registration

    def get_schema(self, name: str) -> RegistrySchema:
        """
        Schema of a registered source.

        Raises:
            ValidationError: If the source is not registered.
        """
        return self._registration(name).loader.schema

    # Loading

    def _cached(self, name: str) -> list[pd.DataFrame] | None:
        with self._raw_lock.read(self._lock_timeout):
            cached = self._raw_cache.get(name)
        return None if cached is None else list(cached)

    def _store(self, name: str, batches: Sequence[pd.DataFrame]) -> None:
        with self._raw_lock.write(self._lock_timeout):
            evicted = self._raw_cache.set(name, tuple(batches))
        if evicted:
            log.debug("Evicted raw batches", evicted=evicted)

    def load(self, name: str) -> list[pd.DataFrame]:
        """
        Raw batches of a source, from cache or its loader.

        Raises:
            ValidationError: If the source is not registered.
            RegistryIOError: If loading fails.
            LockError: If the cache lock cannot be acquired.
        """
        registration = self._registration(name)
        cached = self._cached(name)
        if cached is not None:
            return cached

        with log_context(registry=name):
            batches = registration.loader.load(registration.location)
        self._store(name, batches)
        return list(batches)

    async def load_async(self, name: str) -> list[pd.DataFrame]:
        """``load`` with the I/O run in a worker thread."""
        registration = self._registration(name)
        cached = self._cached(name)
        if cached is not None:
            return cached

        batches = await registration.loader.load_async(registration.location)
        self._store(name, batches)
        return list(batches)

    def load_multiple(self, names: Sequence[str]) -> dict[str, list[pd.DataFrame]]:
        """
        Load several sources in parallel threads.

        Args:
            names: Source names.

        Returns:
            Batches per source, in request order.

        Raises:
            Exception: The first load failure; pending loads are cancelled.
        """
        unique = list(dict.fromkeys(names))
        for name in unique:
            self._registration(name)

        results: dict[str, list[pd.DataFrame]] = {}
        workers = min(self.config.concurrency.workers, max(len(unique), 1))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {executor.submit(self.load, name): name for name in unique}
            for future in as_completed(futures):
                name = futures[future]
                try:
                    results[name] = future.result()
                except Exception as e:
                    log.error("Failed to load registry", registry=name, error=str(e))
                    for pending in futures:
                        pending.cancel()
                    raise

        return {name: results[name] for name in unique}

    async def load_multiple_async(
        self, names: Sequence[str]
    ) -> dict[str, list[pd.DataFrame]]:
        """
        Load several sources as asyncio tasks.

        At most ``concurrency.max_async_tasks`` loads run at once. If one
        fails, the others are cancelled and the failure is raised.
        """
        unique = list(dict.fromkeys(names))
        for name in unique:
            self._registration(name)

        semaphore = asyncio.Semaphore(self.config.concurrency.async_tasks)

        async def load_one(name: str) -> list[pd.DataFrame]:
            async with semaphore:
                return await self.load_async(name)

        tasks = [asyncio.create_task(load_one(name)) for name in unique]
        try:
            loaded = await asyncio.gather(*tasks)
        except Exception as e:
            log.error("Failed to load registries", registries=unique, error=str(e))
            for task in tasks:
                task.cancel()
            raise
        return dict(zip(unique, loaded))

    # Joins

    def _plan(self, names: Sequence[str]) -> FilterPlan:
        if not names:
            msg = "At least one registry name is required"
            raise ValidationError(msg)
        registrations = {name: self._registration(name) for name in names}
        with self._registration_lock:
            joins = list(self._joins.values())
        return build_filter_plan(
            [r.loader.schema for r in registrations.values()],
            joins,
            {name: r.loader.key_column for name, r in registrations.items()},
        )

    def _executor(self) -> JoinExecutor:
        with self._registration_lock:
            deserializers = {
                name: r.deserializer for name, r in self._registrations.items()
            }
        return JoinExecutor(self.adapter, deserializers)

    def _joined_key(self, names: Sequence[str], ids: frozenset[str]) -> str:
        prefix = self.config.cache.fingerprint_prefix
        return f"{filter_fingerprint(ids, prefix)}@{names_fingerprint(names)}"

    def _cached_join(
        self, key: str, names: tuple[str, ...], ids: frozenset[str]
    ) -> JoinResult | None:
        with hold(self._joined_lock, self._lock_timeout):
            entry = self._joined_cache.get(key)
        if entry is None:
            return None
        if entry.identifiers != ids or entry.names != names:
            log.debug("Joined cache fingerprint collision", key=key)
            return None
        return entry.result

    def _store_join(
        self, key: str, names: tuple[str, ...], ids: frozenset[str], result: JoinResult
    ) -> None:
        entry = _JoinedEntry(identifiers=ids, names=names, result=result)
        with hold(self._joined_lock, self._lock_timeout):
            self._joined_cache.set(key, entry)

    def _clear_joined(self) -> None:
        with hold(self._joined_lock, self._lock_timeout):
            self._joined_cache.clear()

    def filter_by_identifier(
        self, names: Sequence[str], id_filter: Collection[str]
    ) -> EntityStore:
        """
        Join sources for a set of identifiers.

        Results are cached per (identifier set, source names). The cache key
        is an approximate fingerprint; a hit is confirmed against the exact
        identifier set, so a fingerprint collision recomputes.

        Args:
            names: Sources to join; dependent sources need their parent.
            id_filter: Identifiers to keep.

        Returns:
            Store with one merged entity per matching identifier. The store
            is a copy the caller may modify.

        Raises:
            ValidationError: For unknown sources or an invalid join plan.
        """
        ids = KeyFilter.of(JoinKeyKind.PRIMARY_IDENTIFIER, id_filter).values
        requested = tuple(sorted(set(names)))
        key = self._joined_key(requested, ids)

        result = self._cached_join(key, requested, ids)
        if result is None:
            plan = self._plan(requested)
            batches = self.load_multiple(plan.names)
            result = self._executor().execute(plan, batches, ids)
            self._store_join(key, requested, ids, result)
        return EntityStore(result.store.snapshot())

    async def filter_by_identifier_async(
        self, names: Sequence[str], id_filter: Collection[str]
    ) -> EntityStore:
        """``filter_by_identifier`` loading the sources as asyncio tasks."""
        ids = KeyFilter.of(JoinKeyKind.PRIMARY_IDENTIFIER, id_filter).values
        requested = tuple(sorted(set(names)))
        key = self._joined_key(requested, ids)

        result = self._cached_join(key, requested, ids)
        if result is None:
            plan = self._plan(requested)
            batches = await self.load_multiple_async(plan.names)
            result = self._executor().execute(plan, batches, ids)
            self._store_join(key, requested, ids, result)
        return EntityStore(result.store.snapshot())

    # Longitudinal

    def load_longitudinal(
        self,
        name: str,
        date_range: tuple[date | None, date | None] | None = None,
        id_filter: Collection[str] | None = None,
    ) -> EntityStore:
        """
        Assemble one timeline per identifier from a source's period files.

        Args:
            name: Identifier-keyed source registered at a directory of
                period files.
            date_range: Optional (start, end); periods outside are skipped.
            id_filter: Optional identifiers to keep.

        Returns:
            Store with one entity per identifier, later periods winning.

        Raises:
            ValidationError: If the source is not keyed by identifier.
            RegistryIOError: If the period files cannot be read.
        """
        registration = self._registration(name)
        schema = registration.loader.schema
        if schema.join_key is not JoinKeyKind.PRIMARY_IDENTIFIER:
            msg = (
                f"Registry {name!r} is keyed by {schema.join_key.value}; "
                f"longitudinal assembly needs identifier-keyed sources"
            )
            raise ValidationError(msg)

        start, end = date_range if date_range is not None else (None, None)
        predicate = None
        ids = None
        if id_filter is not None:
            key_filter = KeyFilter.of(JoinKeyKind.PRIMARY_IDENTIFIER, id_filter)
            ids = key_filter.values
            key_names = self._key_names(registration)

            def predicate(batch: pd.DataFrame) -> pd.Series:
                for column in key_names:
                    if column in batch.columns:
                        return key_filter.mask(batch[column])
                return pd.Series(False, index=batch.index)

        with log_context(registry=name):
            period_batches = registration.loader.load_periods(
                registration.location, self.resolver, start, end, predicate
            )
            entities = LongitudinalAssembler().assemble(
                period_batches, registration.deserializer, ids
            )
        log.info(
            "Assembled longitudinal registry",
            registry=name,
            periods=len(period_batches),
            entities=len(entities),
        )
        return EntityStore(entities)

    @staticmethod
    def _key_names(registration: _Registration) -> tuple[str, ...]:
        key_column = registration.loader.key_column
        if key_column is None:
            return ()
        mapping = registration.loader.schema.get_field_mapping(key_column)
        return mapping.definition.names if mapping is not None else (key_column,)

    # Caches

    def clear_caches(self) -> None:
        """Drop all cached raw batches and joined results."""
        with self._raw_lock.write(self._lock_timeout):
            raw = self._raw_cache.clear()
        with hold(self._joined_lock, self._lock_timeout):
            joined = self._joined_cache.clear()
        log.info("Cleared caches", raw_entries=raw, joined_entries=joined)

    def cache_stats(self) -> dict[str, CacheStats]:
        """Size and hit counters of both caches."""
        with self._raw_lock.read(self._lock_timeout):
            raw = self._raw_cache.stats()
        with hold(self._joined_lock, self._lock_timeout):
            joined = self._joined_cache.stats()
        return {"raw": raw, "joined": joined}
