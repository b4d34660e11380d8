"""
File-backed registry loading.

Reads Parquet, Feather and CSV extracts through pandas. A directory is read
as one batch per file, in file-name order, with a bounded thread pool.
"""

from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path

import pandas as pd

from registerdata.errors import RegistryIOError
from registerdata.ingestion.base import Location, RegistryLoader
from registerdata.schemas.registry import RegistrySchema
from registerdata.temporal.periods import DEFAULT_EXTENSIONS
from registerdata.utils.logging import get_logger

log = get_logger(__name__)


class FileRegistryLoader(RegistryLoader):
    """Loader for registry files on disk."""

    def __init__(
        self,
        schema: RegistrySchema,
        key_column: str | None = None,
        max_workers: int | None = None,
        extensions: Iterable[str] = DEFAULT_EXTENSIONS,
    ) -> None:
        """
        Initialize file loader.

        Args:
            schema: Schema of the registry.
            key_column: Join key column override.
            max_workers: Thread pool size for directories (None = default).
            extensions: File extensions read from directories.
        """
        super().__init__(schema, key_column)
        self.max_workers = max_workers
        self.extensions = tuple(e.lower() for e in extensions)

    def _text_columns(self) -> dict[str, type]:
        """CSV dtypes keeping identifiers and codes as strings."""
        return {
            name: str
            for mapping in self.schema.mappings
            if mapping.field_type.is_textual
            for name in mapping.definition.names
        }

    def read_file(self, path: Path) -> pd.DataFrame:
        """
        Read one file.

        Raises:
            RegistryIOError: If the format is unsupported or reading fails.
        """
        suffix = path.suffix.lower()
        if suffix not in (".parquet", ".feather", ".csv"):
            msg = f"Unsupported registry file format: {path}"
            raise RegistryIOError(msg)

        try:
            if suffix == ".parquet":
                df = pd.read_parquet(path)
            elif suffix == ".feather":
                df = pd.read_feather(path)
            else:
                df = pd.read_csv(path, dtype=self._text_columns())
        except (OSError, ValueError) as exc:
            msg = f"Failed to read registry file {path}: {exc}"
            raise RegistryIOError(msg) from exc

        log.debug("Read registry file", path=str(path), rows=len(df))
        return df

    def list_files(self, directory: Path) -> list[Path]:
        """Readable files of a directory, sorted by name."""
        return sorted(
            path
            for path in directory.iterdir()
            if path.is_file() and path.suffix.lower() in self.extensions
        )

    def _read_batches(self, location: Location) -> list[pd.DataFrame]:
        path = Path(location)
        if not path.exists():
            msg = f"Registry location not found: {path}"
            raise RegistryIOError(msg)
        if path.is_file():
            return [self.read_file(path)]

        files = self.list_files(path)
        if len(files) <= 1:
            return [self.read_file(f) for f in files]

        results: dict[int, pd.DataFrame] = {}
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {
                executor.submit(self.read_file, file): position
                for position, file in enumerate(files)
            }
            for future in as_completed(futures):
                position = futures[future]
                try:
                    results[position] = future.result()
                except RegistryIOError as e:
                    log.error(
                        "Failed to read registry file",
                        registry=self.name,
                        path=str(files[position]),
                        error=str(e),
                    )
                    raise

        return [results[position] for position in range(len(files))]
