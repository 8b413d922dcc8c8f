"""Recode sentinel zeros and derive the diagnosis label."""

import logging

import numpy as np
import pandas as pd

from diabetes_rf.config.constants import (
    DIAGNOSIS_COLUMN,
    DIAGNOSIS_LABELS,
    DIAGNOSIS_LEVELS,
    TARGET_COLUMN,
    ZERO_AS_MISSING_COLUMNS,
)

logger = logging.getLogger(__name__)


def clean_observations(df: pd.DataFrame, zero_as_missing=None) -> pd.DataFrame:
    """Mark impossible zeros as missing and add the Diagnosis label.

    Applying this to an already-cleaned table returns an equal table.

    Args:
        df: Observation table
        zero_as_missing: Columns whose exact zeros mean "unknown"

    Returns:
        Cleaned copy of df
    """
    if zero_as_missing is None:
        zero_as_missing = ZERO_AS_MISSING_COLUMNS

    cleaned = df.copy()

    for col in zero_as_missing:
        cleaned[col] = cleaned[col].astype(float).replace(0.0, np.nan)

    cleaned[DIAGNOSIS_COLUMN] = pd.Categorical(
        cleaned[TARGET_COLUMN].map(DIAGNOSIS_LABELS),
        categories=DIAGNOSIS_LEVELS,
    )

    return cleaned


def missing_summary(df: pd.DataFrame) -> pd.DataFrame:
    """Count missing values per column.

    Args:
        df: Cleaned observation table

    Returns:
        Dataframe with missing count and percentage, most-missing first
    """
    counts = df.isna().sum()
    summary = pd.DataFrame({
        "missing": counts,
        "missing_pct": counts / max(len(df), 1) * 100,
    })
    return summary.sort_values("missing", ascending=False, kind="mergesort")
