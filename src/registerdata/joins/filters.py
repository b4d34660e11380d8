"""
Key filters restricting the rows of a source during a join.
"""

from collections.abc import Iterable
from dataclasses import dataclass

import pandas as pd
from pandas.api import types as ptypes

from registerdata.types import JoinKeyKind


@dataclass(frozen=True)
class KeyFilter:
    """
    Set of key values of one kind.

    For primary sources the values are identifiers; for dependent sources
    they are the secondary keys resolved from the parent source.
    """

    kind: JoinKeyKind
    values: frozenset[str]

    @classmethod
    def of(cls, kind: JoinKeyKind, values: Iterable[object]) -> "KeyFilter":
        """Build a filter, normalizing values to strings and dropping nulls."""
        return cls(kind, frozenset(str(v) for v in values if v is not None and v != ""))

    def __len__(self) -> int:
        return len(self.values)

    def __contains__(self, value: object) -> bool:
        return value in self.values

    def mask(self, column: pd.Series) -> pd.Series:
        """
        Boolean mask of rows whose key is in the filter.

        Works on raw as well as adapted columns: integer ids stored as
        floats (a numeric column with nulls) compare as "101", not "101.0".
        """
        dtype = column.dtype
        if ptypes.is_float_dtype(dtype):
            integral = column.notna() & (column % 1 == 0)
            text = pd.Series(pd.NA, index=column.index, dtype="string")
            text[integral] = column[integral].astype("int64").astype("string")
            column = text
        elif not (ptypes.is_object_dtype(dtype) or ptypes.is_string_dtype(dtype)):
            column = column.astype("string")
        return column.isin(self.values).fillna(False).astype(bool)

    def apply(self, batch: pd.DataFrame, key_column: str) -> pd.DataFrame:
        """
        Rows of a batch whose key column value is in the filter.

        A batch without the key column yields no rows.
        """
        if key_column not in batch.columns:
            return batch.iloc[0:0]
        return batch[self.mask(batch[key_column])]
