"""Tests for sentinel-zero recoding and the diagnosis label."""

import pandas as pd

from diabetes_rf.config.constants import ZERO_AS_MISSING_COLUMNS
from diabetes_rf.data.clean import clean_observations, missing_summary


def _raw():
    return pd.DataFrame({
        "Pregnancies": [0, 2, 5],
        "Glucose": [0, 120, 140],
        "BloodPressure": [70, 0, 80],
        "SkinThickness": [0, 30, 0],
        "Insulin": [0, 0, 94],
        "BMI": [25.0, 0.0, 33.1],
        "DiabetesPedigreeFunction": [0.5, 0.6, 0.0],
        "Age": [35, 45, 50],
        "Outcome": [0, 1, 1],
    })


class TestCleanObservations:
    """Test the cleaner."""

    def test_zeros_become_missing_in_sentinel_columns(self):
        """Test that zeros in the five measurement columns become NaN."""
        cleaned = clean_observations(_raw())

        assert pd.isna(cleaned.loc[0, "Glucose"])
        assert pd.isna(cleaned.loc[1, "BloodPressure"])
        assert cleaned["SkinThickness"].isna().tolist() == [True, False, True]
        assert cleaned["Insulin"].isna().tolist() == [True, True, False]
        assert pd.isna(cleaned.loc[1, "BMI"])

    def test_other_zeros_are_kept(self):
        """Test that zeros elsewhere are real values."""
        cleaned = clean_observations(_raw())

        assert cleaned.loc[0, "Pregnancies"] == 0
        assert cleaned.loc[2, "DiabetesPedigreeFunction"] == 0.0
        assert cleaned["Outcome"].tolist() == [0, 1, 1]

    def test_no_zeros_remain(self, pima_df):
        """Test that the sentinel columns hold no zeros after cleaning."""
        cleaned = clean_observations(pima_df)

        assert not (cleaned[ZERO_AS_MISSING_COLUMNS] == 0).any().any()

    def test_diagnosis_mapping(self):
        """Test the 0/1 -> label mapping and its level order."""
        cleaned = clean_observations(_raw())

        assert cleaned["Diagnosis"].tolist() == ["No Diabetes", "Diabetes", "Diabetes"]
        assert list(cleaned["Diagnosis"].cat.categories) == ["No Diabetes", "Diabetes"]

    def test_diagnosis_bijective_with_outcome(self, pima_df):
        """Test that each Outcome value maps to exactly one label and back."""
        cleaned = clean_observations(pima_df)
        pairs = cleaned[["Outcome", "Diagnosis"]].drop_duplicates()

        assert len(pairs) == 2
        assert pairs["Outcome"].is_unique
        assert pairs["Diagnosis"].is_unique

    def test_idempotent(self, pima_df):
        """Test that cleaning twice equals cleaning once."""
        once = clean_observations(pima_df)
        twice = clean_observations(once)

        pd.testing.assert_frame_equal(once, twice)

    def test_input_not_modified(self):
        """Test that the cleaner returns a copy."""
        raw = _raw()
        before = raw.copy()

        clean_observations(raw)

        pd.testing.assert_frame_equal(raw, before)

    def test_same_shape_plus_label(self, pima_df):
        """Test that rows are unchanged and one column is added."""
        cleaned = clean_observations(pima_df)

        assert len(cleaned) == len(pima_df)
        assert list(cleaned.columns) == list(pima_df.columns) + ["Diagnosis"]


class TestMissingSummary:
    """Test the missing-value summary."""

    def test_counts_missing(self):
        """Test counts and ordering of the summary."""
        summary = missing_summary(clean_observations(_raw()))

        assert summary.loc["Insulin", "missing"] == 2
        assert summary.loc["SkinThickness", "missing"] == 2
        assert summary.loc["Age", "missing"] == 0
        assert summary["missing"].is_monotonic_decreasing
