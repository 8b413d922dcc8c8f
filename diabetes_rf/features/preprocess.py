"""Imputation and normalization steps for diabetes prediction."""

import numpy as np
import pandas as pd
from sklearn.base import BaseEstimator, TransformerMixin
from sklearn.impute import KNNImputer
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import StandardScaler

from diabetes_rf.config.constants import DEFAULT_NEIGHBORS, IMPUTE_COLUMNS, REQUIRED_COLUMNS
from diabetes_rf.errors import FitFailure


class KNNColumnImputer(BaseEstimator, TransformerMixin):
    """Fill missing values in selected columns from their nearest neighbours.

    Distances are computed over ``impute_with`` (all input columns by
    default). The donor rows are frozen at fit time; ``transform`` never
    re-estimates them.
    """

    def __init__(self, columns_to_impute=None, impute_with=None, n_neighbors=DEFAULT_NEIGHBORS):
        """Initialize imputer.

        Args:
            columns_to_impute: Columns to fill (default: every input column)
            impute_with: Columns used to measure neighbour distance
            n_neighbors: Number of donors averaged per missing value
        """
        self.columns_to_impute = columns_to_impute
        self.impute_with = impute_with
        self.n_neighbors = n_neighbors

    def fit(self, X, y=None):
        """Fit imputer by storing the training rows as donors.

        Args:
            X: Input features (DataFrame)
            y: Target (unused)

        Returns:
            self
        """
        X_df = self._as_frame(X)

        self.columns_ = list(self.columns_to_impute or X_df.columns)
        self.features_ = list(self.impute_with or X_df.columns)
        for col in self.columns_:
            if col not in self.features_:
                self.features_.append(col)

        donors = X_df[self.features_]
        empty = [col for col in self.columns_ if donors[col].notna().sum() == 0]
        if empty:
            raise FitFailure(f"No observed training values to impute from in columns: {empty}")

        self.imputer_ = KNNImputer(n_neighbors=self.n_neighbors, keep_empty_features=True)
        self.imputer_.fit(donors)
        self.donors_ = donors.to_numpy(dtype=float, copy=True)
        self.feature_names_in_ = np.asarray(X_df.columns, dtype=object)

        return self

    def transform(self, X):
        """Transform by replacing missing values in the configured columns.

        Args:
            X: Input features

        Returns:
            DataFrame with imputed columns
        """
        X_df = self._as_frame(X).copy()

        imputed = self.imputer_.transform(X_df[self.features_])
        for col in self.columns_:
            X_df[col] = imputed[:, self.features_.index(col)]

        return X_df

    def get_feature_names_out(self, input_features=None):
        return self.feature_names_in_

    @staticmethod
    def _as_frame(X):
        if isinstance(X, pd.DataFrame):
            return X
        return pd.DataFrame(X, columns=REQUIRED_COLUMNS)


def create_preprocessing_pipeline(impute_columns=None, n_neighbors=DEFAULT_NEIGHBORS):
    """Create preprocessing pipeline.

    Args:
        impute_columns: Columns filled by nearest-neighbour imputation
        n_neighbors: Neighbours used by the imputer

    Returns:
        sklearn Pipeline (imputation, then centering and scaling)
    """
    if impute_columns is None:
        impute_columns = IMPUTE_COLUMNS

    pipeline = Pipeline(
        [
            ("knn_imputer", KNNColumnImputer(columns_to_impute=list(impute_columns), n_neighbors=n_neighbors)),
            ("scaler", StandardScaler()),
        ]
    )

    return pipeline


def get_feature_names(preprocessor):
    """Extract feature names from fitted preprocessor.

    Args:
        preprocessor: Fitted pipeline containing a ``knn_imputer`` step

    Returns:
        List of feature names
    """
    imputer = preprocessor.named_steps.get("knn_imputer")
    if imputer is not None and hasattr(imputer, "feature_names_in_"):
        return list(imputer.feature_names_in_)
    return list(REQUIRED_COLUMNS)


def frozen_statistics(pipeline):
    """Return the statistics a fitted pipeline learned from its training rows.

    Args:
        pipeline: Fitted pipeline with ``knn_imputer`` and ``scaler`` steps

    Returns:
        Dictionary with imputation donors and scaler mean/scale arrays
    """
    imputer = pipeline.named_steps["knn_imputer"]
    scaler = pipeline.named_steps["scaler"]
    return {
        "donors": imputer.donors_.copy(),
        "mean": scaler.mean_.copy(),
        "scale": scaler.scale_.copy(),
    }
