"""Data validation module for the diabetes dataset."""

import logging
from typing import Dict, List, Tuple

import pandas as pd
import pandera as pa
from pandera import Column, DataFrameSchema

from diabetes_rf.config.constants import REQUIRED_COLUMNS, SCHEMA_COLUMNS, TARGET_COLUMN
from diabetes_rf.errors import SchemaMismatch

logger = logging.getLogger(__name__)


class DiabetesDataValidator:
    """Validates raw observation tables against the 9-column schema."""

    REQUIRED_COLUMNS = SCHEMA_COLUMNS

    def __init__(self):
        """Initialize validator with schema."""
        self.schema = DataFrameSchema(
            {
                "Pregnancies": Column(int, checks=[pa.Check.ge(0)], nullable=False),
                "Glucose": Column(float, checks=[pa.Check.ge(0)], nullable=False),
                "BloodPressure": Column(float, checks=[pa.Check.ge(0)], nullable=False),
                "SkinThickness": Column(float, checks=[pa.Check.ge(0)], nullable=False),
                "Insulin": Column(float, checks=[pa.Check.ge(0)], nullable=False),
                "BMI": Column(float, checks=[pa.Check.ge(0)], nullable=False),
                "DiabetesPedigreeFunction": Column(float, checks=[pa.Check.ge(0)], nullable=False),
                "Age": Column(int, checks=[pa.Check.ge(0), pa.Check.le(120)], nullable=False),
                TARGET_COLUMN: Column(int, checks=[pa.Check.isin([0, 1])], nullable=False),
            },
            strict=False,
            coerce=True,
        )

    def validate(self, df: pd.DataFrame) -> pd.DataFrame:
        """Validate and coerce a raw observation table.

        Args:
            df: Input dataframe

        Returns:
            Dataframe holding exactly the schema columns, coerced to their dtypes

        Raises:
            SchemaMismatch: if columns are missing or values fail a check
        """
        missing_cols = [col for col in self.REQUIRED_COLUMNS if col not in df.columns]
        if missing_cols:
            raise SchemaMismatch(
                f"Missing required columns: {missing_cols}",
                [f"Missing required columns: {missing_cols}"],
            )

        try:
            return self.schema.validate(df[self.REQUIRED_COLUMNS], lazy=True)
        except pa.errors.SchemaErrors as e:
            errors = [
                f"Column '{row['column']}' failed check '{row['check']}' at index {row['index']}"
                for _, row in e.failure_cases.iterrows()
            ]
            raise SchemaMismatch(
                f"{len(errors)} schema violation(s); first: {errors[0] if errors else e}",
                errors,
            ) from e

    def validate_schema(self, df: pd.DataFrame) -> Tuple[bool, List[str]]:
        """Validate dataframe schema against required columns and data types.

        Checks for:
        - Missing required columns
        - Data type mismatches
        - Value constraints (non-negative values, age <= 120, binary outcome)

        Args:
            df: Input dataframe

        Returns:
            Tuple of (is_valid, error_messages)
        """
        try:
            self.validate(df)
        except SchemaMismatch as e:
            return False, e.errors
        return True, []

    def detect_outliers(self, df: pd.DataFrame, z_threshold: float = 3.0) -> Dict[str, List[int]]:
        """Detect outliers using z-score method.

        Args:
            df: Input dataframe
            z_threshold: Absolute z-score above which a value is flagged

        Returns:
            Dictionary mapping column names to list of outlier indices
        """
        outliers = {}

        for col in REQUIRED_COLUMNS:
            if col in df.columns and len(df) > 3:
                mean = df[col].mean()
                std = df[col].std()
                if std > 0:
                    z_scores = ((df[col] - mean) / std).abs()
                    outlier_indices = df[z_scores > z_threshold].index.tolist()
                    if outlier_indices:
                        outliers[col] = outlier_indices

        return outliers
