"""
Temporal handling of registry extracts.

Calendar periods parsed from tokens and file names, period file discovery
and longitudinal merging across periods.
"""

from registerdata.temporal.longitudinal import LongitudinalAssembler
from registerdata.temporal.periods import (
    Granularity,
    Month,
    Quarter,
    TemporalPeriodResolver,
    TimePeriod,
    Year,
)

__all__ = [
    "Granularity",
    "LongitudinalAssembler",
    "Month",
    "Quarter",
    "TemporalPeriodResolver",
    "TimePeriod",
    "Year",
]
