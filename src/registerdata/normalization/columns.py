"""
Column name normalization.

Registry extracts spell the same field differently across years and
deliveries (``PNR`` / ``CPR`` / ``person_id``). Alias columns are renamed to
the schema's source name before extraction.
"""

import pandas as pd

from registerdata.errors import SchemaError
from registerdata.utils.logging import get_logger

log = get_logger(__name__)


def normalize_columns(
    df: pd.DataFrame,
    mapping: dict[str, str],
) -> pd.DataFrame:
    """
    Rename alias columns to their canonical source name.

    An alias is not renamed if its target column is already present or if
    another alias for the same target came first.

    Args:
        df: DataFrame to normalize.
        mapping: Alias to source name.

    Returns:
        DataFrame with normalized column names (the input if nothing changed).
    """
    present = set(df.columns)
    rename_dict: dict[str, str] = {}
    for column in df.columns:
        target = mapping.get(column)
        if target is None or target in present or target in rename_dict.values():
            continue
        rename_dict[column] = target

    if rename_dict:
        log.debug("Normalizing columns", renamed=rename_dict)
        df = df.rename(columns=rename_dict)

    return df


def validate_required_columns(
    df: pd.DataFrame,
    required: list[str],
    *,
    raise_on_missing: bool = True,
) -> list[str]:
    """
    Check that required columns are present.

    Args:
        df: DataFrame to check.
        required: List of required column names.
        raise_on_missing: Whether to raise error if columns missing.

    Returns:
        List of missing columns.

    Raises:
        SchemaError: If raise_on_missing and columns are missing.
    """
    missing = [col for col in required if col not in df.columns]

    if missing and raise_on_missing:
        msg = f"Missing required columns: {missing}"
        raise SchemaError(msg, column=missing[0])

    if missing:
        log.warning("Missing columns", missing=missing)

    return missing
