"""Shared fixtures: a synthetic table shaped like the Pima Indians dataset."""

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

from diabetes_rf.config.settings import load_config
from diabetes_rf.data.clean import clean_observations

SENTINEL_ZERO_RATES = {
    "Glucose": 0.01,
    "BloodPressure": 0.05,
    "SkinThickness": 0.30,
    "Insulin": 0.45,
    "BMI": 0.015,
}


def make_pima_frame(n_rows=768, n_positive=268, seed=0):
    """Build a 9-column table with the dataset's size, class balance and zero codes."""
    rng = np.random.default_rng(seed)
    outcome = np.zeros(n_rows, dtype=int)
    outcome[:n_positive] = 1
    rng.shuffle(outcome)

    df = pd.DataFrame({
        "Pregnancies": rng.poisson(3 + outcome),
        "Glucose": np.round(rng.normal(110 + 30 * outcome, 20)).clip(44, 199),
        "BloodPressure": np.round(rng.normal(70 + 4 * outcome, 10)).clip(24, 122),
        "SkinThickness": np.round(rng.normal(27 + 5 * outcome, 8)).clip(7, 99),
        "Insulin": np.round(rng.normal(120 + 40 * outcome, 60)).clip(14, 846),
        "BMI": np.round(rng.normal(31 + 4 * outcome, 6), 1).clip(18, 67),
        "DiabetesPedigreeFunction": np.round(rng.gamma(2, 0.2 + 0.05 * outcome), 3).clip(0.078, 2.42),
        "Age": np.round(rng.normal(31 + 6 * outcome, 10)).clip(21, 81).astype(int),
        "Outcome": outcome,
    })

    for col, rate in SENTINEL_ZERO_RATES.items():
        df.loc[rng.random(n_rows) < rate, col] = 0

    return df


@pytest.fixture
def pima_df():
    return make_pima_frame()


@pytest.fixture
def cleaned_df(pima_df):
    return clean_observations(pima_df)


@pytest.fixture
def small_config(tmp_path):
    """Walkthrough settings scaled down so the forest fits in seconds."""
    return load_config(
        None,
        {
            "data": {"raw_path": str(tmp_path / "diabetes.csv")},
            "model": {"trees": 25, "n_jobs": 1},
            "tuning": {"grid_size": 4, "n_splits": 3, "n_repeats": 1, "n_workers": 1},
            "output": {"dir": str(tmp_path / "reports")},
            "mlflow": {"enabled": False},
        },
    )
