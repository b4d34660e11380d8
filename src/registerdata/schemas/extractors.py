"""
Typed value extraction from registry batches.

One extractor class per FieldType. ``bind`` checks the column once per batch
and returns a row accessor; the accessor converts cells to plain Python
values (str, int, float, bool, datetime.date, datetime.time) and maps nulls
and out-of-range rows to None.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from datetime import date, datetime, time
from typing import Any, ClassVar

import numpy as np
import pandas as pd
from pandas.api import types as ptypes

from registerdata.errors import SchemaError
from registerdata.schemas.fields import FieldDefinition
from registerdata.types import FieldType

RowAccessor = Callable[[int], Any]


def _missing(_row: int) -> None:
    return None


def is_null(value: Any) -> bool:
    """Whether a cell value is None, NaN, NaT or pd.NA."""
    return value is None or (np.ndim(value) == 0 and bool(pd.isna(value)))


class Extractor(ABC):
    """Reads values of one column, expecting a given physical type."""

    expected: ClassVar[str]

    def __init__(self, column: str) -> None:
        self.column = column

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.column!r})"

    @abstractmethod
    def accepts(self, dtype: Any) -> bool:
        """Whether a column of this dtype can be read."""

    @abstractmethod
    def convert(self, value: Any) -> Any:
        """Convert one non-null cell; return None if it cannot be read."""

    @abstractmethod
    def to_series(self, values: Sequence[Any], name: str) -> pd.Series:
        """Build a column from extracted values (inverse of extraction)."""

    def bind(self, batch: pd.DataFrame) -> RowAccessor:
        """
        Check the column once and return a row accessor.

        Args:
            batch: Batch to read from.

        Returns:
            Function mapping a row position to a value or None.

        Raises:
            SchemaError: If the column is absent or has the wrong dtype.
        """
        if self.column not in batch.columns:
            msg = f"Column {self.column!r} not found in batch"
            raise SchemaError(msg, column=self.column)
        series = batch[self.column]
        if not self.accepts(series.dtype):
            msg = (
                f"Column {self.column!r} has dtype {series.dtype}, "
                f"expected {self.expected}"
            )
            raise SchemaError(msg, column=self.column)

        cells = series.to_numpy(dtype=object)
        n_rows = len(cells)
        convert = self.convert

        def accessor(row: int) -> Any:
            if row < 0 or row >= n_rows:
                return None
            value = cells[row]
            if is_null(value):
                return None
            return convert(value)

        return accessor

    def bind_or_missing(self, batch: pd.DataFrame) -> RowAccessor:
        """Like ``bind`` but yields None for every row instead of raising."""
        try:
            return self.bind(batch)
        except SchemaError:
            return _missing

    def extract(self, batch: pd.DataFrame, row: int) -> Any:
        """Single value at ``row``; None if null, absent or unreadable."""
        return self.bind_or_missing(batch)(row)


class StringExtractor(Extractor):
    """Text columns: identifiers, free strings and category codes."""

    expected = "string"

    def accepts(self, dtype: Any) -> bool:
        return (
            ptypes.is_string_dtype(dtype)
            or ptypes.is_object_dtype(dtype)
            or isinstance(dtype, pd.CategoricalDtype)
        )

    def convert(self, value: Any) -> str | None:
        if isinstance(value, str):
            return value
        if isinstance(value, (bytes, bytearray)):
            return bytes(value).decode("utf-8", errors="replace")
        # Other cells in a mixed object column are not text
        return None

    def to_series(self, values: Sequence[Any], name: str) -> pd.Series:
        return pd.Series(list(values), name=name, dtype=object)


class IntegerExtractor(Extractor):
    """Whole-number columns (numpy or nullable integer dtypes)."""

    expected = "integer"

    def accepts(self, dtype: Any) -> bool:
        return ptypes.is_integer_dtype(dtype) and not ptypes.is_bool_dtype(dtype)

    def convert(self, value: Any) -> int:
        return int(value)

    def to_series(self, values: Sequence[Any], name: str) -> pd.Series:
        return pd.Series(list(values), name=name, dtype="Int64")


class DecimalExtractor(Extractor):
    """Floating point columns; integer columns are widened."""

    expected = "float"

    def accepts(self, dtype: Any) -> bool:
        return ptypes.is_float_dtype(dtype) or (
            ptypes.is_integer_dtype(dtype) and not ptypes.is_bool_dtype(dtype)
        )

    def convert(self, value: Any) -> float:
        return float(value)

    def to_series(self, values: Sequence[Any], name: str) -> pd.Series:
        return pd.Series(
            [np.nan if v is None else v for v in values], name=name, dtype=float
        )


class BooleanExtractor(Extractor):
    """Boolean columns (numpy bool or nullable boolean)."""

    expected = "boolean"

    def accepts(self, dtype: Any) -> bool:
        return ptypes.is_bool_dtype(dtype)

    def convert(self, value: Any) -> bool:
        return bool(value)

    def to_series(self, values: Sequence[Any], name: str) -> pd.Series:
        return pd.Series(list(values), name=name, dtype="boolean")


class DateExtractor(Extractor):
    """Datetime64 columns, read as calendar dates."""

    expected = "datetime64"

    def accepts(self, dtype: Any) -> bool:
        return ptypes.is_datetime64_any_dtype(dtype)

    def convert(self, value: Any) -> date | None:
        if isinstance(value, pd.Timestamp):
            return value.date()
        if isinstance(value, np.datetime64):
            return pd.Timestamp(value).date()
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        return None

    def to_series(self, values: Sequence[Any], name: str) -> pd.Series:
        return pd.Series(pd.to_datetime(list(values)), name=name)


class TimeExtractor(Extractor):
    """Time-of-day columns (``datetime.time`` objects or timedeltas)."""

    expected = "time"

    def accepts(self, dtype: Any) -> bool:
        return ptypes.is_object_dtype(dtype) or ptypes.is_timedelta64_dtype(dtype)

    def convert(self, value: Any) -> time | None:
        if isinstance(value, time):
            return value
        if isinstance(value, (pd.Timedelta, np.timedelta64)):
            seconds = int(pd.Timedelta(value).total_seconds())
            if not 0 <= seconds < 24 * 3600:
                return None
            return time(seconds // 3600, seconds % 3600 // 60, seconds % 60)
        return None

    def to_series(self, values: Sequence[Any], name: str) -> pd.Series:
        return pd.Series(list(values), name=name, dtype=object)


EXTRACTORS: dict[FieldType, type[Extractor]] = {
    FieldType.IDENTIFIER: StringExtractor,
    FieldType.STRING: StringExtractor,
    FieldType.CATEGORY: StringExtractor,
    FieldType.INTEGER: IntegerExtractor,
    FieldType.DECIMAL: DecimalExtractor,
    FieldType.BOOLEAN: BooleanExtractor,
    FieldType.DATE: DateExtractor,
    FieldType.TIME: TimeExtractor,
}


def for_field(definition: FieldDefinition) -> Extractor:
    """Extractor for a field definition, selected by its FieldType."""
    return EXTRACTORS[definition.field_type](definition.source_name)
