"""
Calendar periods of registry extracts.

Registries are delivered per year, quarter or month, with the period encoded
in the file name (``bef_2020.parquet``, ``lpr_2019-Q3.csv``,
``akm_202003.parquet``). This module parses such periods and discovers the
period files of a source directory.
"""

import calendar
import re
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from enum import Enum
from functools import total_ordering
from pathlib import Path

from registerdata.errors import RegistryIOError

DEFAULT_EXTENSIONS: tuple[str, ...] = (".parquet", ".feather", ".csv")

_YEAR_TOKEN = re.compile(r"^(\d{4})$")
_MONTH_TOKEN = re.compile(r"^(\d{4})-?(\d{2})$")
_QUARTER_TOKEN = re.compile(r"^(\d{4})-?[Qq](\d)$")

# Embedded in longer names; separators "-", "_" or none
_MONTH_IN_NAME = re.compile(r"(?<!\d)(\d{4})[-_]?(\d{2})(?!\d)")
_QUARTER_IN_NAME = re.compile(r"(?<!\d)(\d{4})[-_]?[Qq](\d)(?!\d)")
_YEAR_IN_NAME = re.compile(r"(?<!\d)(\d{4})(?!\d)")


class Granularity(str, Enum):
    """Calendar granularity of a period."""

    YEAR = "year"
    QUARTER = "quarter"
    MONTH = "month"


@total_ordering
class TimePeriod(ABC):
    """
    Base class of calendar periods.

    Periods are ordered by (start_date, end_date), so a month sorts before
    the year that starts on the same day.
    """

    granularity: Granularity

    @abstractmethod
    def start_date(self) -> date:
        """First day of the period."""

    @abstractmethod
    def end_date(self) -> date:
        """Last day of the period."""

    @property
    @abstractmethod
    def label(self) -> str:
        """Canonical token, e.g. ``2020``, ``2020-01`` or ``2020-Q1``."""

    def __str__(self) -> str:
        return self.label

    def _sort_key(self) -> tuple[date, date]:
        return (self.start_date(), self.end_date())

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, TimePeriod):
            return NotImplemented
        return self._sort_key() < other._sort_key()

    def contains(self, when: date) -> bool:
        """Whether ``when`` falls within the period (inclusive)."""
        return self.start_date() <= when <= self.end_date()

    def overlaps(self, start: date | None = None, end: date | None = None) -> bool:
        """Whether the period intersects [start, end]; None is unbounded."""
        if start is not None and self.end_date() < start:
            return False
        return not (end is not None and self.start_date() > end)


def _check_year(year: int) -> None:
    if not 1 <= year <= 9999:
        msg = f"Year out of range: {year}"
        raise ValueError(msg)


@dataclass(frozen=True, eq=True)
class Year(TimePeriod):
    """A calendar year."""

    year: int
    granularity = Granularity.YEAR

    def __post_init__(self) -> None:
        _check_year(self.year)

    def start_date(self) -> date:
        return date(self.year, 1, 1)

    def end_date(self) -> date:
        return date(self.year, 12, 31)

    @property
    def label(self) -> str:
        return f"{self.year:04d}"


@dataclass(frozen=True, eq=True)
class Quarter(TimePeriod):
    """A calendar quarter (1-4)."""

    year: int
    quarter: int
    granularity = Granularity.QUARTER

    def __post_init__(self) -> None:
        _check_year(self.year)
        if not 1 <= self.quarter <= 4:
            msg = f"Quarter must be 1-4, got {self.quarter}"
            raise ValueError(msg)

    def start_date(self) -> date:
        return date(self.year, 3 * self.quarter - 2, 1)

    def end_date(self) -> date:
        last_month = 3 * self.quarter
        return date(
            self.year, last_month, calendar.monthrange(self.year, last_month)[1]
        )

    @property
    def label(self) -> str:
        return f"{self.year:04d}-Q{self.quarter}"


@dataclass(frozen=True, eq=True)
class Month(TimePeriod):
    """A calendar month (1-12)."""

    year: int
    month: int
    granularity = Granularity.MONTH

    def __post_init__(self) -> None:
        _check_year(self.year)
        if not 1 <= self.month <= 12:
            msg = f"Month must be 1-12, got {self.month}"
            raise ValueError(msg)

    def start_date(self) -> date:
        return date(self.year, self.month, 1)

    def end_date(self) -> date:
        return date(
            self.year, self.month, calendar.monthrange(self.year, self.month)[1]
        )

    @property
    def label(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


def _year(value: str) -> Year | None:
    year = int(value)
    return Year(year) if year >= 1 else None


def _month(year: str, month: str) -> Month | None:
    y, m = int(year), int(month)
    return Month(y, m) if y >= 1 and 1 <= m <= 12 else None


def _quarter(year: str, quarter: str) -> Quarter | None:
    y, q = int(year), int(quarter)
    return Quarter(y, q) if y >= 1 and 1 <= q <= 4 else None


class TemporalPeriodResolver:
    """Parses periods from tokens and file names and finds period files."""

    def __init__(self, extensions: Iterable[str] = DEFAULT_EXTENSIONS) -> None:
        """
        Initialize resolver.

        Args:
            extensions: File extensions considered by the directory scans.
        """
        self.extensions = tuple(
            e.lower() if e.startswith(".") else f".{e.lower()}" for e in extensions
        )

    def parse(self, token: str) -> TimePeriod | None:
        """
        Parse a period token.

        Accepts "2020" (year), "2020-01" or "202001" (month) and "2020-Q1" or
        "2020Q1" (quarter).

        Returns:
            The period, or None for anything else including month 13 or
            quarter 5.
        """
        token = token.strip()
        if match := _QUARTER_TOKEN.match(token):
            return _quarter(*match.groups())
        if match := _MONTH_TOKEN.match(token):
            return _month(*match.groups())
        if match := _YEAR_TOKEN.match(token):
            return _year(match.group(1))
        return None

    def extract_from_name(self, name: str | Path) -> TimePeriod | None:
        """
        Period encoded in a file name.

        Directories and the extension are stripped; the stem is parsed as a
        whole first, then scanned for an embedded month, quarter and year, in
        that order.
        """
        stem = Path(name).stem
        period = self.parse(stem)
        if period is not None:
            return period

        for match in _MONTH_IN_NAME.finditer(stem):
            if period := _month(*match.groups()):
                return period
        for match in _QUARTER_IN_NAME.finditer(stem):
            if period := _quarter(*match.groups()):
                return period
        for match in _YEAR_IN_NAME.finditer(stem):
            if period := _year(match.group(1)):
                return period
        return None

    @staticmethod
    def period_from_date(when: date, granularity: Granularity) -> TimePeriod:
        """Period of the given granularity containing ``when``."""
        if granularity is Granularity.YEAR:
            return Year(when.year)
        if granularity is Granularity.QUARTER:
            return Quarter(when.year, (when.month - 1) // 3 + 1)
        return Month(when.year, when.month)

    def find_period_files(self, directory: Path) -> list[tuple[TimePeriod, Path]]:
        """
        Period files of a directory.

        Args:
            directory: Directory to scan (not recursive).

        Returns:
            (period, path) pairs sorted chronologically, then by file name.
            Files with another extension or without a period are skipped.

        Raises:
            RegistryIOError: If the directory does not exist.
        """
        directory = Path(directory)
        if not directory.is_dir():
            msg = f"Period directory not found: {directory}"
            raise RegistryIOError(msg)

        found = []
        for path in directory.iterdir():
            if not path.is_file() or path.suffix.lower() not in self.extensions:
                continue
            period = self.extract_from_name(path.name)
            if period is not None:
                found.append((period, path))
        return sorted(found, key=lambda item: (item[0], item[1].name))

    def files_in_range(
        self,
        directory: Path,
        start: date | None = None,
        end: date | None = None,
    ) -> list[tuple[TimePeriod, Path]]:
        """Period files whose period overlaps [start, end]."""
        return [
            (period, path)
            for period, path in self.find_period_files(directory)
            if period.overlaps(start, end)
        ]

    def latest_period(self, directory: Path) -> TimePeriod | None:
        """Most recent period found in a directory, or None."""
        files = self.find_period_files(directory)
        return max(period for period, _ in files) if files else None
