"""Pytest configuration and shared fixtures."""

from datetime import date
from pathlib import Path

import pandas as pd
import pytest

from registerdata.schemas import (
    FieldDefinition,
    FieldType,
    RegistrySchema,
    SetterKind,
    field_mapping,
)
from registerdata.schemas.mapping import FieldMapping, append_extension
from registerdata.types import JoinKeyKind


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def bef_schema() -> RegistrySchema:
    """Population register: one row per person and year."""
    return RegistrySchema(
        name="bef",
        description="Population register",
        mappings=(
            field_mapping(
                FieldDefinition(
                    "PNR",
                    "identifier",
                    FieldType.IDENTIFIER,
                    nullable=False,
                    aliases=("CPR", "person_id"),
                )
            ),
            field_mapping(FieldDefinition("KOEN", "gender", FieldType.CATEGORY)),
            field_mapping(FieldDefinition("FOED_DAG", "birth_date", FieldType.DATE)),
            field_mapping(
                FieldDefinition("KOM", "municipality_code", FieldType.CATEGORY)
            ),
            field_mapping(FieldDefinition("FAMILIE_ID", "family_id", FieldType.STRING)),
        ),
    )


@pytest.fixture
def lpr_adm_schema() -> RegistrySchema:
    """Hospital admissions: person identifier plus record number."""
    return RegistrySchema(
        name="lpr_adm",
        mappings=(
            field_mapping(
                FieldDefinition("PNR", "identifier", FieldType.IDENTIFIER)
            ),
            field_mapping(
                FieldDefinition("RECNUM", "record_number", FieldType.IDENTIFIER)
            ),
            field_mapping(
                FieldDefinition("D_INDDTO", "hospital_admissions", FieldType.DATE),
                SetterKind.APPEND,
            ),
            field_mapping(
                FieldDefinition("C_ADIAG", "diagnoses", FieldType.CATEGORY),
                SetterKind.APPEND,
            ),
        ),
    )


@pytest.fixture
def lpr_diag_schema() -> RegistrySchema:
    """Hospital diagnoses keyed by admission record number only."""
    return RegistrySchema(
        name="lpr_diag",
        join_key=JoinKeyKind.RECORD_NUMBER,
        mappings=(
            field_mapping(
                FieldDefinition("RECNUM", "record_number", FieldType.IDENTIFIER)
            ),
            field_mapping(
                FieldDefinition("C_DIAG", "diagnoses", FieldType.CATEGORY),
                SetterKind.APPEND,
            ),
            FieldMapping(
                FieldDefinition("C_DIAGTYPE", "diag_type", FieldType.CATEGORY),
                append_extension("diag_type"),
            ),
        ),
    )


@pytest.fixture
def ind_schema() -> RegistrySchema:
    """Income register."""
    return RegistrySchema(
        name="ind",
        mappings=(
            field_mapping(FieldDefinition("PNR", "identifier", FieldType.IDENTIFIER)),
            field_mapping(
                FieldDefinition("PERINDKIALT", "annual_income", FieldType.DECIMAL)
            ),
            field_mapping(FieldDefinition("AAR", "income_year", FieldType.INTEGER)),
        ),
    )


@pytest.fixture
def bef_frame() -> pd.DataFrame:
    """Three persons, one without identifier."""
    return pd.DataFrame(
        {
            "PNR": ["0101801234", "0202851234", None],
            "KOEN": [1, 2, 1],
            "FOED_DAG": ["1980-01-01", "02/02/1985", "1990-03-03"],
            "KOM": [101, 751, 461],
            "FAMILIE_ID": ["F1", "F2", "F3"],
        }
    )


@pytest.fixture
def lpr_adm_frame() -> pd.DataFrame:
    """Two admissions of the first person."""
    return pd.DataFrame(
        {
            "PNR": ["0101801234", "0101801234"],
            "RECNUM": ["R1", "R2"],
            "D_INDDTO": [date(2015, 5, 1), date(2018, 7, 9)],
            "C_ADIAG": ["DI21", "DJ18"],
        }
    )


@pytest.fixture
def lpr_diag_frame() -> pd.DataFrame:
    """Diagnoses for R1 and an orphan record number."""
    return pd.DataFrame(
        {
            "RECNUM": ["R1", "R1", "R9"],
            "C_DIAG": ["DI21", "DE11", "DZ00"],
            "C_DIAGTYPE": ["A", "B", "A"],
        }
    )
