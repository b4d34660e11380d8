"""
Schema adaptation for registry batches.

Reconciles the physical encoding of a batch with what a RegistrySchema
expects before extraction: alias columns are renamed, date strings and
compact integers are parsed, numeric category codes become strings and
numeric/boolean columns are widened. Adaptation never aborts a batch;
single values that cannot be converted become null and a column where no
value converts is left as it was.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from enum import Enum
from typing import Any

import numpy as np
import pandas as pd
from pandas.api import types as ptypes

from registerdata.config.settings import DateFormatConfig
from registerdata.normalization.columns import normalize_columns
from registerdata.normalization.dates import parse_compact_dates, parse_date_strings
from registerdata.schemas.extractors import is_null
from registerdata.schemas.fields import FieldDefinition
from registerdata.schemas.registry import RegistrySchema
from registerdata.types import FieldType
from registerdata.utils.logging import get_logger

log = get_logger(__name__)

TRUE_STRINGS = frozenset({"true", "t", "yes", "y", "1", "ja", "j"})
FALSE_STRINGS = frozenset({"false", "f", "no", "n", "0", "nej"})

_TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")


class ColumnCompatibility(str, Enum):
    """How a batch column relates to the field that reads it."""

    EXACT = "exact"  # readable as is
    COMPATIBLE = "compatible"  # readable after adaptation
    INCOMPATIBLE = "incompatible"  # no value survives adaptation
    MISSING = "missing"  # neither source name nor alias present


@dataclass(frozen=True)
class CompatibilityReport:
    """Per-field compatibility of a batch with a schema."""

    registry: str
    columns: dict[str, ColumnCompatibility] = field(default_factory=dict)
    required: frozenset[str] = frozenset()

    def with_status(self, status: ColumnCompatibility) -> list[str]:
        """Fields with the given status, in schema order."""
        return [name for name, s in self.columns.items() if s is status]

    @property
    def missing(self) -> list[str]:
        return self.with_status(ColumnCompatibility.MISSING)

    @property
    def incompatible(self) -> list[str]:
        return self.with_status(ColumnCompatibility.INCOMPATIBLE)

    @property
    def is_compatible(self) -> bool:
        """No incompatible column and no missing non-nullable field."""
        if self.incompatible:
            return False
        return not any(name in self.required for name in self.missing)


def _convert_elementwise(
    series: pd.Series,
    convert: Callable[[Any], Any],
    dtype: str | None = None,
) -> pd.Series:
    values = [
        None if is_null(v) else convert(v) for v in series.to_numpy(dtype=object)
    ]
    return pd.Series(values, index=series.index, name=series.name, dtype=dtype)


def _to_text(value: Any) -> str | None:
    if isinstance(value, str):
        return value
    if isinstance(value, (bool, np.bool_)):
        return "true" if value else "false"
    if isinstance(value, (int, np.integer)):
        return str(int(value))
    if isinstance(value, (float, np.floating)) and float(value).is_integer():
        return str(int(value))
    return None


def _to_bool(value: Any) -> bool | None:
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if isinstance(value, (int, np.integer, float, np.floating)):
        if value == 1:
            return True
        if value == 0:
            return False
        return None
    if isinstance(value, str):
        text = value.strip().lower()
        if text in TRUE_STRINGS:
            return True
        if text in FALSE_STRINGS:
            return False
    return None


def _to_time(value: Any) -> time | None:
    if isinstance(value, datetime):
        return value.time()
    if isinstance(value, time):
        return value
    if isinstance(value, (timedelta, np.timedelta64)):
        seconds = int(pd.Timedelta(value).total_seconds())
        if 0 <= seconds < 24 * 3600:
            return time(seconds // 3600, seconds % 3600 // 60, seconds % 60)
        return None
    if isinstance(value, str):
        match = _TIME_PATTERN.match(value.strip())
        if match is None:
            return None
        hour, minute, second = (int(g) if g else 0 for g in match.groups())
        if hour < 24 and minute < 60 and second < 60:
            return time(hour, minute, second)
    return None


def _is_numeric(dtype: Any) -> bool:
    return ptypes.is_numeric_dtype(dtype) and not ptypes.is_bool_dtype(dtype)


def _integral_or_null(series: pd.Series) -> pd.Series:
    return series.where(series.isna() | (series % 1 == 0))


class SchemaAdapter:
    """Coerces batch columns to the physical types the extractors read."""

    def __init__(self, date_config: DateFormatConfig | None = None) -> None:
        self.date_config = date_config or DateFormatConfig()

    def adapt(self, batch: pd.DataFrame, schema: RegistrySchema) -> pd.DataFrame:
        """
        Adapt a batch to a schema.

        Args:
            batch: Raw batch (not modified).
            schema: Schema whose fields will be extracted.

        Returns:
            Adapted batch; unmapped columns are kept unchanged.
        """
        df = normalize_columns(batch, schema.alias_mapping())

        adapted: dict[str, pd.Series] = {}
        for mapping in schema.mappings:
            column = mapping.source_name
            if column not in df.columns:
                continue
            original = df[column]
            converted = self.adapt_column(original, mapping.definition)
            if converted is not original:
                adapted[column] = converted

        if adapted:
            log.debug(
                "Adapted columns",
                registry=schema.name,
                columns=sorted(adapted),
            )
            df = df.assign(**adapted)
        return df

    def adapt_column(
        self, series: pd.Series, definition: FieldDefinition
    ) -> pd.Series:
        """
        Convert one column for a field.

        Returns the input object itself when no conversion applies or when
        no non-null value could be converted.
        """
        converted = self._convert(series, definition)
        if converted is None:
            return series
        if series.notna().any() and not converted.notna().any():
            log.debug(
                "Column not convertible, passing through",
                column=definition.source_name,
                dtype=str(series.dtype),
                field_type=definition.field_type.value,
            )
            return series
        return converted

    def _convert(
        self, series: pd.Series, definition: FieldDefinition
    ) -> pd.Series | None:
        """Converted column, or None when the column needs no conversion."""
        field_type = definition.field_type
        if field_type.is_textual:
            return self._adapt_text(series)
        if field_type is FieldType.DATE:
            return self._adapt_date(series)
        if field_type is FieldType.INTEGER:
            return self._adapt_integer(series)
        if field_type is FieldType.DECIMAL:
            return self._adapt_decimal(series)
        if field_type is FieldType.BOOLEAN:
            return self._adapt_boolean(series)
        return self._adapt_time(series)

    def _adapt_text(self, series: pd.Series) -> pd.Series | None:
        dtype = series.dtype
        if ptypes.is_string_dtype(dtype) and not ptypes.is_object_dtype(dtype):
            return None
        if ptypes.is_object_dtype(dtype):
            needs_conversion = any(
                not isinstance(v, str) and not is_null(v)
                for v in series.to_numpy(dtype=object)
            )
            if not needs_conversion:
                return None
        elif ptypes.is_float_dtype(dtype) and not (series.dropna() % 1 == 0).all():
            return None
        return _convert_elementwise(series, _to_text, object)

    def _adapt_date(self, series: pd.Series) -> pd.Series | None:
        dtype = series.dtype
        if ptypes.is_datetime64_any_dtype(dtype):
            return None
        if _is_numeric(dtype):
            return parse_compact_dates(series)
        if ptypes.is_object_dtype(dtype) or ptypes.is_string_dtype(dtype):
            return parse_date_strings(series, self.date_config)
        return None

    def _adapt_integer(self, series: pd.Series) -> pd.Series | None:
        dtype = series.dtype
        if ptypes.is_integer_dtype(dtype) and not ptypes.is_bool_dtype(dtype):
            return None
        if ptypes.is_bool_dtype(dtype):
            return series.astype("Int64")
        if ptypes.is_float_dtype(dtype):
            return _integral_or_null(series).astype("Int64")
        if ptypes.is_object_dtype(dtype) or ptypes.is_string_dtype(dtype):
            numeric = pd.to_numeric(series, errors="coerce")
            return _integral_or_null(numeric).astype("Int64")
        return None

    def _adapt_decimal(self, series: pd.Series) -> pd.Series | None:
        dtype = series.dtype
        if _is_numeric(dtype):
            return None
        if ptypes.is_bool_dtype(dtype):
            return series.astype(float)
        if ptypes.is_object_dtype(dtype) or ptypes.is_string_dtype(dtype):
            return pd.to_numeric(series, errors="coerce").astype(float)
        return None

    def _adapt_boolean(self, series: pd.Series) -> pd.Series | None:
        if ptypes.is_bool_dtype(series.dtype):
            return None
        return _convert_elementwise(series, _to_bool, "boolean")

    def _adapt_time(self, series: pd.Series) -> pd.Series | None:
        dtype = series.dtype
        if ptypes.is_object_dtype(dtype) and all(
            isinstance(v, time) and not isinstance(v, datetime)
            for v in series.dropna().to_numpy(dtype=object)
        ):
            return None
        return _convert_elementwise(series, _to_time, object)

    def check_compatibility(
        self, batch: pd.DataFrame, schema: RegistrySchema
    ) -> CompatibilityReport:
        """
        Classify each mapped field of a schema against a batch.

        Args:
            batch: Raw batch.
            schema: Schema to check against.

        Returns:
            Report keyed by source name in schema order.
        """
        renamed = normalize_columns(batch, schema.alias_mapping())
        columns: dict[str, ColumnCompatibility] = {}
        for mapping in schema.mappings:
            name = mapping.source_name
            if name not in renamed.columns:
                columns[name] = ColumnCompatibility.MISSING
                continue
            original = renamed[name]
            converted = self._convert(original, mapping.definition)
            if converted is None:
                if not mapping.extractor.accepts(original.dtype):
                    status = ColumnCompatibility.INCOMPATIBLE
                elif name in batch.columns:
                    status = ColumnCompatibility.EXACT
                else:
                    status = ColumnCompatibility.COMPATIBLE
            elif original.notna().any() and not converted.notna().any():
                status = ColumnCompatibility.INCOMPATIBLE
            elif mapping.extractor.accepts(converted.dtype):
                status = ColumnCompatibility.COMPATIBLE
            else:
                status = ColumnCompatibility.INCOMPATIBLE
            columns[name] = status

        required = frozenset(
            m.source_name for m in schema.mappings if not m.definition.nullable
        )
        return CompatibilityReport(
            registry=schema.name, columns=columns, required=required
        )


def check_compatibility(
    batch: pd.DataFrame,
    schema: RegistrySchema,
    date_config: DateFormatConfig | None = None,
) -> CompatibilityReport:
    """Compatibility report of a batch against a schema with default adaptation."""
    return SchemaAdapter(date_config).check_compatibility(batch, schema)
