"""
Pandera schema for the tabular export of canonical entities.
"""

import pandas as pd
import pandera.pandas as pa
from pandera.typing import Series


class CanonicalEntityFrameSchema(pa.DataFrameModel):
    """
    Schema for ``EntityStore.to_frame()``.

    One row per person. Only the columns with value constraints are declared;
    all other canonical attributes pass through.
    """

    identifier: Series[str] = pa.Field(
        description="Person identifier (PNR)",
        unique=True,
        str_length={"min_value": 1},
    )
    birth_date: Series[pa.DateTime] = pa.Field(nullable=True)
    death_date: Series[pa.DateTime] = pa.Field(nullable=True)
    age: Series[pd.Int64Dtype] = pa.Field(ge=0, le=150, nullable=True)
    family_size: Series[pd.Int64Dtype] = pa.Field(ge=0, nullable=True)
    household_size: Series[pd.Int64Dtype] = pa.Field(ge=0, nullable=True)
    income_year: Series[pd.Int64Dtype] = pa.Field(nullable=True)
    working_hours: Series[float] = pa.Field(ge=0.0, nullable=True)
    hospital_admissions_count: Series[pd.Int64Dtype] = pa.Field(ge=0, nullable=True)
    emergency_visits_count: Series[pd.Int64Dtype] = pa.Field(ge=0, nullable=True)
    outpatient_visits_count: Series[pd.Int64Dtype] = pa.Field(ge=0, nullable=True)
    gp_visits_count: Series[pd.Int64Dtype] = pa.Field(ge=0, nullable=True)
    hospitalization_days: Series[pd.Int64Dtype] = pa.Field(ge=0, nullable=True)
    length_of_stay: Series[pd.Int64Dtype] = pa.Field(ge=0, nullable=True)
    birth_weight: Series[pd.Int64Dtype] = pa.Field(
        ge=0, nullable=True, description="Birth weight in grams"
    )
    gestational_age: Series[pd.Int64Dtype] = pa.Field(
        ge=0, le=50, nullable=True, description="Gestational age in weeks"
    )
    apgar_score: Series[pd.Int64Dtype] = pa.Field(ge=0, le=10, nullable=True)
    plurality: Series[pd.Int64Dtype] = pa.Field(ge=1, nullable=True)

    class Config:
        """Schema configuration."""

        name = "CanonicalEntityFrameSchema"
        strict = False
        coerce = True
