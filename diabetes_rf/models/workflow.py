"""Declarative preprocessing + random-forest workflow."""

from dataclasses import dataclass, replace
from typing import Mapping, Optional, Tuple

from sklearn.ensemble import RandomForestClassifier
from sklearn.pipeline import Pipeline

from diabetes_rf.config.constants import DEFAULT_NEIGHBORS, DEFAULT_TREES, IMPUTE_COLUMNS
from diabetes_rf.errors import FitFailure
from diabetes_rf.features.preprocess import create_preprocessing_pipeline

IMPORTANCE_KINDS = (None, "impurity", "permutation")


@dataclass(frozen=True)
class ForestWorkflow:
    """Imputation, normalization and a random forest, not yet bound to data.

    Every configuration method returns a new workflow; ``fit`` returns a
    fitted scikit-learn Pipeline and leaves the workflow untouched.
    """

    trees: int = DEFAULT_TREES
    mtry: Optional[int] = None
    min_n: Optional[int] = None
    impute_columns: Tuple[str, ...] = tuple(IMPUTE_COLUMNS)
    neighbors: int = DEFAULT_NEIGHBORS
    importance: Optional[str] = None
    random_state: Optional[int] = None
    n_jobs: int = 1

    def __post_init__(self):
        if self.importance not in IMPORTANCE_KINDS:
            raise ValueError(f"importance must be one of {IMPORTANCE_KINDS}, got {self.importance!r}")
        object.__setattr__(self, "impute_columns", tuple(self.impute_columns))

    def set_args(self, **kwargs) -> "ForestWorkflow":
        return replace(self, **kwargs)

    def with_importance(self, kind: Optional[str] = "impurity") -> "ForestWorkflow":
        return replace(self, importance=kind)

    def finalize(self, params: Mapping) -> "ForestWorkflow":
        """Resolve tuning parameters from a selected configuration."""
        return replace(self, mtry=int(params["mtry"]), min_n=int(params["min_n"]))

    @property
    def params(self) -> dict:
        return {"mtry": self.mtry, "min_n": self.min_n, "trees": self.trees}

    def build(self) -> Pipeline:
        """Create an unfitted pipeline for the resolved configuration."""
        if self.mtry is None or self.min_n is None:
            raise ValueError(f"Workflow has unresolved tuning parameters: {self.params}")

        preprocessor = create_preprocessing_pipeline(
            impute_columns=list(self.impute_columns), n_neighbors=self.neighbors
        )
        forest = RandomForestClassifier(
            n_estimators=self.trees,
            max_features=self.mtry,
            min_samples_leaf=self.min_n,
            random_state=self.random_state,
            n_jobs=self.n_jobs,
        )
        return Pipeline(preprocessor.steps + [("forest", forest)])

    def fit(self, X, y) -> Pipeline:
        """Fit preprocessing statistics and the forest on one table.

        Raises:
            FitFailure: if the imputation or forest engine rejects the data
        """
        pipeline = self.build()
        try:
            return pipeline.fit(X, y)
        except FitFailure:
            raise
        except (ValueError, FloatingPointError) as e:
            raise FitFailure(f"Fit failed for {self.params}: {e}") from e
