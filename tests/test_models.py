"""Tests for the canonical entity, merge rule and entity store."""

from datetime import date
from itertools import permutations

import pandas as pd
import pandera.errors
import pytest

from registerdata.errors import ValidationError
from registerdata.models import (
    CanonicalEntity,
    EntityStore,
    MergePolicy,
    attribute_spec,
    canonical_attributes,
    merge,
    merge_lists,
)
from registerdata.types import FieldType, JoinKeyKind


class TestCanonicalEntity:
    """Tests for CanonicalEntity."""

    def test_identifier_write_once(self) -> None:
        """Test a set identifier cannot change."""
        entity = CanonicalEntity()
        entity.identifier = "0101801234"
        entity.identifier = "0101801234"
        with pytest.raises(ValidationError, match="immutable"):
            entity.identifier = "0202851234"
        assert entity.identifier == "0101801234"

    def test_identifier_from_constructor(self) -> None:
        """Test the identifier given to the constructor is guarded too."""
        entity = CanonicalEntity(identifier="1")
        with pytest.raises(ValidationError):
            entity.identifier = "2"

    def test_keys(self) -> None:
        """Test key lookup by join key kind."""
        entity = CanonicalEntity(identifier="1", record_number="R1", contact_id="")
        assert entity.key(JoinKeyKind.PRIMARY_IDENTIFIER) == "1"
        assert entity.key(JoinKeyKind.RECORD_NUMBER) == "R1"
        assert entity.key(JoinKeyKind.CONTACT_ID) is None
        assert not entity.has_key(JoinKeyKind.CONTACT_ID)

    def test_extensions(self) -> None:
        """Test extension values and lists."""
        entity = CanonicalEntity(identifier="1")
        entity.set_extension("source_year", 2020)
        entity.append_extension("diag_type", "A")
        entity.append_extension("diag_type", "B")
        entity.set_extension("flag", True)
        entity.append_extension("flag", False)
        assert entity.extensions == {
            "source_year": 2020,
            "diag_type": ["A", "B"],
            "flag": [True, False],
        }

    def test_extension_rejects_unsupported_values(self) -> None:
        """Test extensions only hold scalars and lists of scalars."""
        entity = CanonicalEntity(identifier="1")
        with pytest.raises(ValidationError, match="unsupported"):
            entity.set_extension("bad", {"nested": 1})
        with pytest.raises(ValidationError):
            entity.set_extension("bad", [1, [2]])

    def test_copy_is_independent(self) -> None:
        """Test copies share no lists."""
        entity = CanonicalEntity(identifier="1", diagnoses=["A"])
        entity.set_extension("codes", ["x"])
        clone = entity.copy()
        clone.diagnoses.append("B")
        clone.extensions["codes"].append("y")
        assert entity.diagnoses == ["A"]
        assert entity.extensions["codes"] == ["x"]

    def test_attribute_catalogue(self) -> None:
        """Test declared attribute specs."""
        specs = canonical_attributes()
        assert next(iter(specs)) == "identifier"
        assert "extensions" not in specs
        assert specs["diagnoses"].is_list
        assert specs["diagnoses"].unique
        assert specs["hospital_admissions"].field_type is FieldType.DATE
        assert not specs["hospital_admissions"].unique
        assert attribute_spec("working_hours").field_type is FieldType.DECIMAL
        types = {spec.field_type for spec in specs.values()}
        assert types == set(FieldType)

    def test_unknown_attribute_spec(self) -> None:
        """Test unknown attribute lookup fails."""
        with pytest.raises(ValidationError):
            attribute_spec("shoe_size")

    def test_to_record(self) -> None:
        """Test the record view excludes extensions."""
        entity = CanonicalEntity(identifier="1", gender="M")
        entity.set_extension("x", 1)
        record = entity.to_record()
        assert record["gender"] == "M"
        assert "extensions" not in record
        assert list(record) == list(canonical_attributes())


class TestMergeLists:
    """Tests for list attribute merging."""

    def test_unique_union(self) -> None:
        """Test unique lists take the ordered union."""
        assert merge_lists(["A", "B"], ["B", "C", "A"], unique=True) == [
            "A",
            "B",
            "C",
        ]

    def test_multiset_union(self) -> None:
        """Test repeated values are only added beyond existing counts."""
        d1, d2 = date(2020, 1, 1), date(2021, 1, 1)
        assert merge_lists([d1], [d1, d1, d2], unique=False) == [d1, d1, d2]

    def test_append_concatenates(self) -> None:
        """Test appending keeps equal values of distinct rows."""
        d1 = date(2020, 1, 1)
        assert merge_lists([d1], [d1], unique=False, append=True) == [d1, d1]
        assert merge_lists(["A"], ["A", "B"], unique=True, append=True) == [
            "A",
            "B",
        ]

    def test_inputs_unchanged(self) -> None:
        """Test neither input list is modified."""
        current, incoming = ["A"], ["B"]
        merge_lists(current, incoming, unique=False)
        assert current == ["A"]
        assert incoming == ["B"]


class TestMerge:
    """Tests for merging two records."""

    def test_fill_absent(self) -> None:
        """Test only missing scalars are filled."""
        dst = CanonicalEntity(identifier="1", gender="M")
        src = CanonicalEntity(identifier="1", gender="K", municipality_code="101")
        result = merge(dst, src)
        assert result.gender == "M"
        assert result.municipality_code == "101"
        assert dst.municipality_code is None

    def test_last_wins(self) -> None:
        """Test non-null incoming scalars replace existing ones."""
        dst = CanonicalEntity(identifier="1", gender="M", municipality_code="101")
        src = CanonicalEntity(identifier="1", municipality_code="751")
        result = merge(dst, src, MergePolicy.LAST_WINS)
        assert result.gender == "M"
        assert result.municipality_code == "751"

    def test_identifier_filled(self) -> None:
        """Test a record without identifier takes the incoming one."""
        dst = CanonicalEntity(record_number="R1")
        result = merge(dst, CanonicalEntity(identifier="1"))
        assert result.identifier == "1"
        assert result.record_number == "R1"

    def test_different_identifiers_rejected(self) -> None:
        """Test records of different persons are never merged."""
        with pytest.raises(ValidationError, match="different persons"):
            merge(CanonicalEntity(identifier="1"), CanonicalEntity(identifier="2"))

    def test_lists_and_extensions(self) -> None:
        """Test list attributes and extension lists are combined."""
        dst = CanonicalEntity(identifier="1", diagnoses=["A"])
        dst.set_extension("diag_type", "x")
        dst.set_extension("year", 2019)
        src = CanonicalEntity(identifier="1", diagnoses=["A", "B"])
        src.append_extension("diag_type", "y")
        src.set_extension("year", 2020)
        src.set_extension("source", "lpr")

        result = merge(dst, src)

        assert result.diagnoses == ["A", "B"]
        assert result.extensions == {
            "diag_type": ["x", "y"],
            "year": 2019,
            "source": "lpr",
        }
        assert merge(dst, src, MergePolicy.LAST_WINS).extensions["year"] == 2020

    def test_idempotent(self) -> None:
        """Test merging the same record twice changes nothing further."""
        dst = CanonicalEntity(identifier="1", diagnoses=["A"])
        src = CanonicalEntity(
            identifier="1",
            diagnoses=["B"],
            hospital_admissions=[date(2020, 1, 1), date(2020, 1, 1)],
            gender="K",
        )
        once = merge(dst, src)
        twice = merge(once, src)
        assert twice == once

    def test_append_collects_rows(self) -> None:
        """Test two rows with equal list values both survive when appended."""
        first = CanonicalEntity(
            identifier="1",
            diagnoses=["DI21"],
            hospital_admissions=[date(2020, 1, 1)],
        )
        first.append_extension("diag_type", "B")
        second = CanonicalEntity(
            identifier="1",
            diagnoses=["DI21"],
            hospital_admissions=[date(2020, 1, 1)],
        )
        second.append_extension("diag_type", "B")

        result = merge(first, second, append=True)

        assert result.hospital_admissions == [date(2020, 1, 1), date(2020, 1, 1)]
        assert result.extensions["diag_type"] == ["B", "B"]
        assert result.diagnoses == ["DI21"]
        assert merge(result, result) == result

    def test_fill_absent_order_independent(self) -> None:
        """Test disjoint contributions give the same result in any order."""
        parts = [
            CanonicalEntity(identifier="1", gender="M"),
            CanonicalEntity(identifier="1", birth_date=date(1980, 1, 1)),
            CanonicalEntity(identifier="1", municipality_code="101"),
        ]
        results = []
        for order in permutations(parts):
            acc = CanonicalEntity()
            for part in order:
                acc = merge(acc, part)
            results.append(acc.to_record())
        assert all(r == results[0] for r in results)


class TestEntityStore:
    """Tests for EntityStore."""

    @pytest.fixture
    def store(self) -> EntityStore:
        """Store with three persons."""
        return EntityStore(
            [
                CanonicalEntity(identifier="3", birth_date=date(2000, 1, 1)),
                CanonicalEntity(
                    identifier="1",
                    birth_date=date(1980, 1, 1),
                    death_date=date(2010, 6, 1),
                    gender="M",
                ),
                CanonicalEntity(
                    identifier="2",
                    birth_date=date(1985, 2, 2),
                    emigration_date=date(2015, 1, 1),
                    gender="K",
                ),
            ]
        )

    def test_sorted_iteration(self, store: EntityStore) -> None:
        """Test iteration is ordered by identifier."""
        assert len(store) == 3
        assert "2" in store
        assert [e.identifier for e in store] == ["1", "2", "3"]
        assert store.identifiers() == ["1", "2", "3"]

    def test_merge_existing(self, store: EntityStore) -> None:
        """Test merging into a stored entity."""
        store.merge_entity(CanonicalEntity(identifier="3", gender="K"))
        entity = store.get("3")
        assert entity is not None
        assert entity.gender == "K"
        assert len(store) == 3

    def test_stored_entities_are_copies(self) -> None:
        """Test the caller's entity is not stored by reference."""
        entity = CanonicalEntity(identifier="1")
        store = EntityStore([entity])
        entity.gender = "M"
        stored = store.get("1")
        assert stored is not None
        assert stored.gender is None

    def test_missing_identifier_rejected(self) -> None:
        """Test entities without identifier cannot be stored."""
        with pytest.raises(ValidationError, match="without identifier"):
            EntityStore().merge_entity(CanonicalEntity(record_number="R1"))

    def test_valid_at(self, store: EntityStore) -> None:
        """Test population membership at a date."""
        assert [e.identifier for e in store.valid_at(date(2005, 1, 1))] == [
            "1",
            "2",
            "3",
        ]
        assert [e.identifier for e in store.valid_at(date(2012, 1, 1))] == ["2", "3"]
        assert [e.identifier for e in store.valid_at(date(2020, 1, 1))] == ["3"]
        assert [e.identifier for e in store.valid_at(date(1982, 1, 1))] == ["1"]

    def test_matching(self, store: EntityStore) -> None:
        """Test predicate queries."""
        women = store.matching(lambda e: e.gender == "K")
        assert [e.identifier for e in women] == ["2"]

    def test_snapshot(self, store: EntityStore) -> None:
        """Test snapshots are detached from the store."""
        snapshot = store.snapshot()
        snapshot[0].gender = "K"
        stored = store.get("1")
        assert stored is not None
        assert stored.gender == "M"

    def test_merge_batch_twice(self) -> None:
        """Test merging the same entities again leaves the store unchanged."""
        entities = [
            CanonicalEntity(identifier="1", diagnoses=["A"]),
            CanonicalEntity(
                identifier="1",
                diagnoses=["B"],
                hospital_admissions=[date(2020, 1, 1)],
            ),
            CanonicalEntity(identifier="2", gender="K"),
        ]
        once = EntityStore(entities)
        twice = EntityStore(entities)
        twice.merge_entities(entities)
        assert twice.snapshot() == once.snapshot()

    def test_merge_entities_append(self) -> None:
        """Test rows of one extract are collected by appending."""
        day = date(2020, 1, 1)
        rows = [
            CanonicalEntity(identifier="1", hospital_admissions=[day]),
            CanonicalEntity(identifier="1", hospital_admissions=[day]),
        ]
        store = EntityStore()
        store.merge_entities(rows, append=True)
        stored = store.get("1")
        assert stored is not None
        assert stored.hospital_admissions == [day, day]

    def test_to_frame(self, store: EntityStore) -> None:
        """Test the tabular export."""
        store.merge_entity(
            CanonicalEntity(identifier="1", age=30, diagnoses=["DI21"])
        )
        df = store.to_frame()

        assert list(df["identifier"]) == ["1", "2", "3"]
        assert pd.api.types.is_datetime64_any_dtype(df["birth_date"])
        assert str(df["age"].dtype) == "Int64"
        assert df.loc[0, "age"] == 30
        assert df.loc[0, "diagnoses"] == ["DI21"]
        assert "extensions" not in df.columns

    def test_to_frame_validation(self) -> None:
        """Test exported values are checked."""
        store = EntityStore([CanonicalEntity(identifier="1", age=-1)])
        with pytest.raises(pandera.errors.SchemaError):
            store.to_frame()
        assert store.to_frame(validate=False).loc[0, "age"] == -1
