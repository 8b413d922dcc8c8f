"""Grid tuning of the forest workflow with repeated stratified k-fold."""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from scipy.stats import qmc
from sklearn.metrics import accuracy_score, roc_auc_score
from sklearn.model_selection import RepeatedStratifiedKFold

from diabetes_rf.config.constants import (
    DIAGNOSIS_COLUMN,
    MIN_N_RANGE,
    MTRY_RANGE,
    POSITIVE_LABEL,
    REQUIRED_COLUMNS,
)
from diabetes_rf.errors import DegenerateFold, FitFailure
from diabetes_rf.models.workflow import ForestWorkflow

logger = logging.getLogger(__name__)

METRICS = ("accuracy", "roc_auc")


@dataclass(frozen=True)
class Fold:
    """One analysis/assessment partition of the training subset."""

    repeat: int
    fold: int
    analysis: np.ndarray
    assessment: np.ndarray

    @property
    def id(self) -> str:
        return f"Repeat{self.repeat}/Fold{self.fold}"


def space_filling_grid(size, mtry_range=MTRY_RANGE, min_n_range=MIN_N_RANGE, seed=None) -> pd.DataFrame:
    """Latin hypercube design over the integer ranges of mtry and min_n.

    Args:
        size: Number of points drawn
        mtry_range: Inclusive (low, high) for mtry
        min_n_range: Inclusive (low, high) for min_n
        seed: Random seed

    Returns:
        Dataframe with columns config, mtry, min_n (duplicates removed,
        enumeration order kept)
    """
    ranges = [tuple(int(v) for v in mtry_range), tuple(int(v) for v in min_n_range)]
    for low, high in ranges:
        if low > high:
            raise ValueError(f"Invalid parameter range: {(low, high)}")

    sampler = qmc.LatinHypercube(d=2, optimization="random-cd", rng=np.random.default_rng(seed))
    unit = sampler.random(n=size)

    columns = {}
    for name, (low, high), u in zip(("mtry", "min_n"), ranges, unit.T):
        values = low + np.floor(u * (high - low + 1)).astype(int)
        columns[name] = np.minimum(values, high)

    grid = pd.DataFrame(columns).drop_duplicates(keep="first").reset_index(drop=True)
    if len(grid) < size:
        logger.info(f"Grid reduced from {size} to {len(grid)} distinct candidates")

    width = max(2, len(str(len(grid))))
    grid.insert(0, "config", [f"Model{i + 1:0{width}d}" for i in range(len(grid))])
    return grid


def make_folds(train: pd.DataFrame, strata=DIAGNOSIS_COLUMN, n_splits=5, n_repeats=5, seed=None) -> List[Fold]:
    """Create repeated stratified k-fold partitions of the training subset.

    Raises:
        DegenerateFold: if any analysis or assessment portion misses a class
    """
    y = train[strata].astype(str).to_numpy()
    classes = np.unique(y)
    if len(classes) < 2:
        raise DegenerateFold(f"Training subset has a single {strata} level: {classes.tolist()}")

    cv = RepeatedStratifiedKFold(n_splits=n_splits, n_repeats=n_repeats, random_state=seed)
    try:
        splits = list(cv.split(np.zeros(len(y)), y))
    except ValueError as e:
        raise DegenerateFold(f"Cannot build {n_splits}-fold partitions: {e}") from e

    folds = []
    for i, (analysis, assessment) in enumerate(splits):
        fold = Fold(repeat=i // n_splits + 1, fold=i % n_splits + 1, analysis=analysis, assessment=assessment)
        for portion, idx in (("analysis", analysis), ("assessment", assessment)):
            if len(np.unique(y[idx])) < len(classes):
                raise DegenerateFold(f"{fold.id} {portion} portion lacks one of {classes.tolist()}")
        folds.append(fold)

    return folds


def score_fold(workflow: ForestWorkflow, X: pd.DataFrame, y: np.ndarray, fold: Fold, config: str) -> dict:
    """Fit on a fold's analysis rows and score its assessment rows."""
    model = workflow.fit(X.iloc[fold.analysis], y[fold.analysis])

    X_assess = X.iloc[fold.assessment]
    y_assess = y[fold.assessment]
    y_pred = model.predict(X_assess)
    positive_idx = list(model.classes_).index(POSITIVE_LABEL)
    y_proba = model.predict_proba(X_assess)[:, positive_idx]

    return {
        "config": config,
        "mtry": workflow.mtry,
        "min_n": workflow.min_n,
        "id": fold.id,
        "accuracy": accuracy_score(y_assess, y_pred),
        "roc_auc": roc_auc_score(y_assess == POSITIVE_LABEL, y_proba),
    }


class TuneResults:
    """Per-fold metrics for every grid candidate."""

    def __init__(self, fold_metrics: pd.DataFrame, grid: pd.DataFrame):
        self.fold_metrics = fold_metrics
        self.grid = grid

    def collect_metrics(self) -> pd.DataFrame:
        return self.fold_metrics.copy()

    def summarize(self) -> pd.DataFrame:
        """Mean and standard error of each metric per candidate, grid order."""
        grouped = self.fold_metrics.groupby("config", sort=False)
        summary = self.grid.set_index("config")[["mtry", "min_n"]].copy()
        for metric in METRICS:
            summary[f"mean_{metric}"] = grouped[metric].mean()
            summary[f"std_err_{metric}"] = grouped[metric].std(ddof=1) / np.sqrt(grouped[metric].count())
        summary["n"] = grouped.size()
        return summary.reset_index()

    def show_best(self, n: Optional[int] = 5, metric: str = "accuracy") -> pd.DataFrame:
        """Rank candidates by mean metric; ties keep grid order."""
        if metric not in METRICS:
            raise ValueError(f"metric must be one of {METRICS}, got {metric!r}")
        ranked = self.summarize().sort_values(f"mean_{metric}", ascending=False, kind="mergesort")
        ranked = ranked.reset_index(drop=True)
        ranked.insert(0, "rank", np.arange(1, len(ranked) + 1))
        return ranked if n is None else ranked.head(n)

    def select_best(self, metric: str = "accuracy") -> dict:
        best = self.show_best(1, metric).iloc[0]
        return {"config": best["config"], "mtry": int(best["mtry"]), "min_n": int(best["min_n"])}


def tune_grid(
    workflow: ForestWorkflow,
    train: pd.DataFrame,
    folds: Sequence[Fold],
    grid: pd.DataFrame,
    n_workers: int = 1,
    outcome=DIAGNOSIS_COLUMN,
) -> TuneResults:
    """Evaluate every candidate on every fold.

    One task per fold x candidate runs on a pool of ``n_workers``; the first
    failing task aborts the stage.

    Raises:
        FitFailure: if any fold fit fails
    """
    X = train[REQUIRED_COLUMNS]
    y = train[outcome].astype(str).to_numpy()

    # Workers get a single-threaded forest to avoid oversubscription
    base = workflow.set_args(n_jobs=1)
    tasks = [
        (base.finalize(row), fold, row["config"])
        for row in grid.to_dict("records")
        for fold in folds
    ]

    logger.info(
        f"Tuning {len(grid)} candidates x {len(folds)} folds "
        f"({len(tasks)} fits, {n_workers} workers)"
    )

    try:
        rows = Parallel(n_jobs=n_workers)(
            delayed(score_fold)(candidate, X, y, fold, config) for candidate, fold, config in tasks
        )
    except FitFailure:
        raise
    except ValueError as e:
        raise FitFailure(f"Tuning failed: {e}") from e

    results = TuneResults(pd.DataFrame(rows), grid)

    best = results.select_best()
    logger.info(f"Best candidate: {best}")
    return results
