"""
Date parsing for registry columns.

Registry extracts carry dates as ISO strings, European or US style strings,
compact YYYYMMDD strings or integers, or native datetimes. Values are parsed
with the configured formats in priority order; anything left over can be
handled by a format guessed from the value itself.
"""

from datetime import date

import numpy as np
import pandas as pd

from registerdata.config.settings import DateFormatConfig
from registerdata.utils.logging import get_logger

log = get_logger(__name__)


def detect_date_format(value: str) -> str | None:
    """
    Guess the strftime format of a date string.

    Recognizes ISO dashes (YYYY-MM-DD), slashes (YYYY/MM/DD, DD/MM/YYYY,
    MM/DD/YYYY when the first part cannot be a month), dots (DD.MM.YYYY) and
    compact YYYYMMDD. Ambiguous slash dates are read day-first.

    Args:
        value: Date string.

    Returns:
        Format string or None if nothing fits.
    """
    s = value.strip()
    if len(s) == 10 and s[4] == "-" and s[7] == "-":
        return "%Y-%m-%d"

    if "/" in s:
        parts = s.split("/")
        if len(parts) == 3:
            if len(parts[0]) == 4:
                return "%Y/%m/%d"
            if len(parts[2]) == 4 and parts[0].isdigit() and parts[1].isdigit():
                if int(parts[1]) > 12 >= int(parts[0]):
                    return "%m/%d/%Y"
                return "%d/%m/%Y"

    if "." in s:
        parts = s.split(".")
        if len(parts) == 3 and len(parts[2]) == 4:
            return "%d.%m.%Y"

    if len(s) == 8 and s.isdigit():
        return "%Y%m%d"

    return None


def _is_native_date(value: object) -> bool:
    return isinstance(value, (date, np.datetime64))


def parse_date_strings(
    series: pd.Series,
    config: DateFormatConfig | None = None,
) -> pd.Series:
    """
    Parse a text or mixed object column into datetime64.

    Each value takes the first configured format that parses it. Native
    date/datetime cells are kept. Values no format fits become NaT.

    Args:
        series: Column to parse.
        config: Formats and detection switch (defaults to DateFormatConfig()).

    Returns:
        datetime64[ns] Series with the same index.
    """
    config = config or DateFormatConfig()
    original_index = series.index
    series = series.reset_index(drop=True)
    result = pd.Series(pd.NaT, index=series.index, dtype="datetime64[ns]")

    native = series.map(_is_native_date).astype(bool)
    if native.any():
        result.loc[native] = pd.to_datetime(series[native], errors="coerce")

    is_text = series.map(lambda v: isinstance(v, str)).astype(bool)
    remaining = series[is_text].str.strip()
    remaining = remaining[remaining != ""]

    for fmt in config.formats:
        if remaining.empty:
            break
        parsed = pd.to_datetime(remaining, format=fmt, errors="coerce")
        hit = parsed.notna()
        if hit.any():
            result.loc[hit[hit].index] = parsed[hit]
            remaining = remaining[~hit]

    if config.enable_format_detection and not remaining.empty:
        detected = remaining.map(detect_date_format)
        for fmt, values in remaining.groupby(detected):
            parsed = pd.to_datetime(values, format=fmt, errors="coerce")
            hit = parsed.notna()
            result.loc[hit[hit].index] = parsed[hit]
            remaining = remaining.drop(hit[hit].index)

    if not remaining.empty:
        log.debug(
            "Unparseable date values",
            column=series.name,
            count=len(remaining),
            example=str(remaining.iloc[0]),
        )
    result.index = original_index
    return result


def parse_compact_dates(series: pd.Series) -> pd.Series:
    """
    Parse YYYYMMDD integers (or integral floats) into datetime64.

    Args:
        series: Numeric column.

    Returns:
        datetime64[ns] Series; values that are not valid dates become NaT.
    """
    as_int = series.where(series.isna() | (series % 1 == 0)).astype("Int64")
    text = as_int.astype("string")
    return pd.to_datetime(text, format="%Y%m%d", errors="coerce")
