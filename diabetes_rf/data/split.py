"""Stratified train/test split."""

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd

from diabetes_rf.errors import DegenerateFold, SchemaMismatch

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DataSplit:
    """Disjoint training and test subsets of one observation table."""

    train: pd.DataFrame
    test: pd.DataFrame
    proportion: float
    strata: str
    seed: int

    def assignment(self) -> pd.Series:
        """Map each original row index to "train" or "test"."""
        labels = pd.concat([
            pd.Series("train", index=self.train.index),
            pd.Series("test", index=self.test.index),
        ])
        return labels.sort_index().rename("subset")


def stratified_split(df: pd.DataFrame, proportion: float, strata: str, seed: int) -> DataSplit:
    """Split rows into training/test subsets, sampling within each stratum.

    Each stratum contributes ``round(proportion * n_stratum)`` training rows,
    clamped so that both subsets keep at least one row of every level.

    Args:
        df: Cleaned observation table
        proportion: Fraction of rows assigned to training, in (0, 1)
        strata: Column whose level frequencies are preserved
        seed: Random seed

    Returns:
        DataSplit with both subsets in original row order

    Raises:
        DegenerateFold: if the table is empty or a stratum has a single row
    """
    if not 0 < proportion < 1:
        raise ValueError(f"proportion must be in (0, 1), got {proportion}")
    if strata not in df.columns:
        raise SchemaMismatch(f"Stratification column not found: {strata}")
    if df.empty:
        raise DegenerateFold("Cannot split an empty observation table")
    if df[strata].isna().any():
        raise SchemaMismatch(f"Stratification column has missing values: {strata}")

    counts = df[strata].value_counts()
    small = counts[(counts > 0) & (counts < 2)]
    if not small.empty:
        raise DegenerateFold(f"Strata too small to split: {small.to_dict()}")

    rng = np.random.default_rng(seed)
    in_train = np.zeros(len(df), dtype=bool)
    for positions in df.groupby(strata, observed=True, sort=True).indices.values():
        n_train = min(max(int(round(proportion * len(positions))), 1), len(positions) - 1)
        in_train[rng.choice(positions, size=n_train, replace=False)] = True

    train = df[in_train]
    test = df[~in_train]

    logger.info(f"Train size: {len(train)}, Test size: {len(test)}")
    for name, subset in (("Train", train), ("Test", test)):
        rates = subset[strata].value_counts(normalize=True).round(3).to_dict()
        logger.info(f"{name} {strata} distribution: {rates}")

    return DataSplit(train=train, test=test, proportion=proportion, strata=strata, seed=seed)
