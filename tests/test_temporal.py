"""Tests for calendar periods and longitudinal assembly."""

from datetime import date
from itertools import permutations
from pathlib import Path

import pandas as pd
import pytest

from registerdata.errors import RegistryIOError
from registerdata.ingestion import BatchDeserializer
from registerdata.models import CanonicalEntity, MergePolicy
from registerdata.schemas import RegistrySchema
from registerdata.temporal import (
    Granularity,
    LongitudinalAssembler,
    Month,
    Quarter,
    TemporalPeriodResolver,
    TimePeriod,
    Year,
)


class TestPeriods:
    """Tests for Year, Quarter and Month."""

    def test_bounds(self) -> None:
        """Test start and end dates, including leap years."""
        assert Year(2020).start_date() == date(2020, 1, 1)
        assert Year(2020).end_date() == date(2020, 12, 31)
        assert Quarter(2020, 1).end_date() == date(2020, 3, 31)
        assert Quarter(2020, 4).start_date() == date(2020, 10, 1)
        assert Month(2020, 2).end_date() == date(2020, 2, 29)
        assert Month(2021, 2).end_date() == date(2021, 2, 28)

    def test_labels(self) -> None:
        """Test period labels."""
        assert str(Year(2020)) == "2020"
        assert Quarter(2020, 1).label == "2020-Q1"
        assert Month(2020, 3).label == "2020-03"

    def test_base_class_is_abstract(self) -> None:
        """Test periods must be one of the concrete granularities."""
        with pytest.raises(TypeError, match="abstract"):
            TimePeriod()  # type: ignore[abstract]

    def test_invalid_periods(self) -> None:
        """Test out-of-range components are rejected."""
        with pytest.raises(ValueError, match="Month"):
            Month(2020, 13)
        with pytest.raises(ValueError, match="Quarter"):
            Quarter(2020, 5)
        with pytest.raises(ValueError, match="Year"):
            Year(0)

    def test_ordering(self) -> None:
        """Test periods sort chronologically across granularities."""
        periods = [Year(2021), Month(2020, 1), Year(2020), Quarter(2020, 2)]
        assert sorted(periods) == [
            Month(2020, 1),
            Year(2020),
            Quarter(2020, 2),
            Year(2021),
        ]
        assert Year(2020) < Year(2021)
        assert Year(2020) == Year(2020)
        assert Year(2020) != Month(2020, 1)

    def test_contains_and_overlaps(self) -> None:
        """Test membership and range overlap."""
        q = Quarter(2020, 2)
        assert q.contains(date(2020, 4, 1))
        assert not q.contains(date(2020, 7, 1))
        assert q.overlaps(date(2020, 6, 30), None)
        assert not q.overlaps(date(2020, 7, 1), None)
        assert not q.overlaps(None, date(2020, 3, 31))
        assert q.overlaps()


class TestTemporalPeriodResolver:
    """Tests for TemporalPeriodResolver."""

    @pytest.fixture
    def resolver(self) -> TemporalPeriodResolver:
        """Default resolver."""
        return TemporalPeriodResolver()

    @pytest.mark.parametrize(
        ("token", "expected"),
        [
            ("2020", Year(2020)),
            ("2020-01", Month(2020, 1)),
            ("202012", Month(2020, 12)),
            ("2020-Q1", Quarter(2020, 1)),
            ("2020q4", Quarter(2020, 4)),
            (" 2020 ", Year(2020)),
            ("2020-13", None),
            ("2020-Q5", None),
            ("20", None),
            ("bef", None),
        ],
    )
    def test_parse(
        self, resolver: TemporalPeriodResolver, token: str, expected: object
    ) -> None:
        """Test period token parsing."""
        assert resolver.parse(token) == expected

    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("bef_2020.parquet", Year(2020)),
            ("lpr_2019-Q3.csv", Quarter(2019, 3)),
            ("akm_202003.parquet", Month(2020, 3)),
            ("data/ind/ind-2018_12.feather", Month(2018, 12)),
            ("2017.csv", Year(2017)),
            ("bef_202013.parquet", None),
            ("lookup.csv", None),
        ],
    )
    def test_extract_from_name(
        self, resolver: TemporalPeriodResolver, name: str, expected: object
    ) -> None:
        """Test periods embedded in file names."""
        assert resolver.extract_from_name(name) == expected

    def test_period_from_date(self) -> None:
        """Test the period containing a date."""
        when = date(2020, 8, 15)
        resolve = TemporalPeriodResolver.period_from_date
        assert resolve(when, Granularity.YEAR) == Year(2020)
        assert resolve(when, Granularity.QUARTER) == Quarter(2020, 3)
        assert resolve(when, Granularity.MONTH) == Month(2020, 8)

    def test_find_period_files(
        self, resolver: TemporalPeriodResolver, tmp_path: Path
    ) -> None:
        """Test period files are found in chronological order."""
        for name in (
            "bef_2021.parquet",
            "bef_2019.csv",
            "bef_2020-Q2.csv",
            "readme.md",
            "bef_lookup.csv",
        ):
            (tmp_path / name).write_text("", encoding="utf-8")
        (tmp_path / "bef_2018").mkdir()

        found = resolver.find_period_files(tmp_path)

        assert [(p.label, path.name) for p, path in found] == [
            ("2019", "bef_2019.csv"),
            ("2020-Q2", "bef_2020-Q2.csv"),
            ("2021", "bef_2021.parquet"),
        ]
        in_range = resolver.files_in_range(
            tmp_path, date(2020, 1, 1), date(2020, 12, 31)
        )
        assert [p.label for p, _ in in_range] == ["2020-Q2"]
        assert resolver.latest_period(tmp_path) == Year(2021)

    def test_custom_extensions(self, tmp_path: Path) -> None:
        """Test only configured extensions are scanned."""
        (tmp_path / "bef_2019.csv").write_text("", encoding="utf-8")
        (tmp_path / "bef_2020.parquet").write_text("", encoding="utf-8")
        resolver = TemporalPeriodResolver(extensions=("CSV",))
        assert [p.label for p, _ in resolver.find_period_files(tmp_path)] == ["2019"]

    def test_missing_directory(
        self, resolver: TemporalPeriodResolver, tmp_path: Path
    ) -> None:
        """Test a missing directory raises RegistryIOError."""
        with pytest.raises(RegistryIOError):
            resolver.find_period_files(tmp_path / "missing")
        assert resolver.latest_period(tmp_path) is None


class TestLongitudinalAssembler:
    """Tests for LongitudinalAssembler."""

    @pytest.fixture
    def period_map(self) -> dict:
        """Two persons observed in three years."""
        return {
            Year(2019): [
                CanonicalEntity(identifier="1", municipality_code="101"),
                CanonicalEntity(identifier="2", municipality_code="751"),
            ],
            Year(2020): [
                CanonicalEntity(
                    identifier="1", municipality_code="461", diagnoses=["DI21"]
                ),
                CanonicalEntity(record_number="R1"),
            ],
            Year(2021): [
                CanonicalEntity(identifier="1", gender="M", diagnoses=["DE11"]),
            ],
        }

    def test_last_period_wins(self, period_map: dict) -> None:
        """Test later periods override earlier values."""
        merged = LongitudinalAssembler().merge_across_periods(period_map)

        assert [e.identifier for e in merged] == ["1", "2"]
        first = merged[0]
        assert first.municipality_code == "461"
        assert first.gender == "M"
        assert first.diagnoses == ["DI21", "DE11"]
        assert first.observed_periods == ["2019", "2020", "2021"]
        assert merged[1].observed_periods == ["2019"]

    def test_fill_absent_policy(self, period_map: dict) -> None:
        """Test the earliest value is kept under FILL_ABSENT."""
        assembler = LongitudinalAssembler(MergePolicy.FILL_ABSENT)
        merged = assembler.merge_across_periods(period_map)
        assert merged[0].municipality_code == "101"

    def test_order_independent(self, period_map: dict) -> None:
        """Test the mapping's iteration order does not matter."""
        expected = [
            e.to_record()
            for e in LongitudinalAssembler().merge_across_periods(period_map)
        ]
        for order in permutations(period_map):
            shuffled = {period: period_map[period] for period in order}
            merged = LongitudinalAssembler().merge_across_periods(shuffled)
            assert [e.to_record() for e in merged] == expected

    def test_inputs_unchanged(self, period_map: dict) -> None:
        """Test input entities are not modified."""
        LongitudinalAssembler().merge_across_periods(period_map)
        assert period_map[Year(2019)][0].observed_periods == []

    def test_rows_of_one_period_appended(self) -> None:
        """Test equal list values from distinct rows of a period are kept."""
        day, later = date(2020, 3, 1), date(2021, 5, 1)
        period_map = {
            Year(2020): [
                CanonicalEntity(identifier="1", hospital_admissions=[day]),
                CanonicalEntity(identifier="1", hospital_admissions=[day]),
            ],
            Year(2021): [
                CanonicalEntity(identifier="1", hospital_admissions=[later]),
            ],
        }

        (merged,) = LongitudinalAssembler().merge_across_periods(period_map)

        assert merged.hospital_admissions == [day, day, later]
        assert merged.observed_periods == ["2020", "2021"]
        assert period_map[Year(2020)][0].hospital_admissions == [day]

    def test_group_by_period(self) -> None:
        """Test grouping pairs into chronological periods."""
        a = CanonicalEntity(identifier="1")
        b = CanonicalEntity(identifier="2")
        grouped = LongitudinalAssembler.group_by_period(
            [(Year(2021), a), (Year(2020), b), (Year(2021), b)]
        )
        assert list(grouped) == [Year(2020), Year(2021)]
        assert grouped[Year(2021)] == [a, b]

    def test_assemble(self, bef_schema: RegistrySchema) -> None:
        """Test deserializing and merging per-period batches."""
        batches = {
            Year(2020): [pd.DataFrame({"PNR": ["1", "2"], "KOM": [101, 751]})],
            Year(2019): [pd.DataFrame({"PNR": ["1"], "KOM": [147], "KOEN": ["M"]})],
        }
        assembler = LongitudinalAssembler()

        merged = assembler.assemble(batches, BatchDeserializer(bef_schema))
        filtered = assembler.assemble(
            batches, BatchDeserializer(bef_schema), id_filter={"2"}
        )

        assert [e.identifier for e in merged] == ["1", "2"]
        assert merged[0].municipality_code == "101"
        assert merged[0].gender == "M"
        assert [e.identifier for e in filtered] == ["2"]
        assert filtered[0].observed_periods == ["2020"]
