"""
In-memory registry loading.

Serves DataFrames held by the caller, keyed by location. Useful when
batches come from another system or in tests.
"""

from collections.abc import Mapping, Sequence

import pandas as pd

from registerdata.errors import RegistryIOError
from registerdata.ingestion.base import Location, RegistryLoader
from registerdata.schemas.registry import RegistrySchema
from registerdata.temporal.periods import TemporalPeriodResolver, TimePeriod


class FrameRegistryLoader(RegistryLoader):
    """Loader over a mapping of location to DataFrame(s)."""

    def __init__(
        self,
        schema: RegistrySchema,
        frames: Mapping[str, pd.DataFrame | Sequence[pd.DataFrame]],
        key_column: str | None = None,
    ) -> None:
        """
        Initialize frame loader.

        Args:
            schema: Schema of the registry.
            frames: Batches per location. A location may hold one frame or
                a sequence of frames.
            key_column: Join key column override.
        """
        super().__init__(schema, key_column)
        self._frames: dict[str, list[pd.DataFrame]] = {
            str(location): [value] if isinstance(value, pd.DataFrame) else list(value)
            for location, value in frames.items()
        }

    @property
    def locations(self) -> list[str]:
        return sorted(self._frames)

    def _read_batches(self, location: Location) -> list[pd.DataFrame]:
        batches = self._frames.get(str(location))
        if batches is None:
            msg = f"No frames registered for location: {location}"
            raise RegistryIOError(msg)
        return list(batches)

    def _period_locations(
        self, location: Location, resolver: TemporalPeriodResolver
    ) -> list[tuple[TimePeriod, Location]]:
        prefix = str(location).rstrip("/") + "/"
        found: list[tuple[TimePeriod, Location]] = []
        for key in self.locations:
            if not key.startswith(prefix):
                continue
            period = resolver.extract_from_name(key)
            if period is not None:
                found.append((period, key))
        if not found and str(location) not in self._frames:
            msg = f"No frames registered below location: {location}"
            raise RegistryIOError(msg)
        return sorted(found, key=lambda item: (item[0], str(item[1])))
