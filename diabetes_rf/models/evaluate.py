"""Model evaluation: confusion matrices, accuracy, ROC curve and importances."""

import argparse
import json
import logging
from dataclasses import dataclass
from pathlib import Path

import joblib
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from sklearn.inspection import permutation_importance
from sklearn.metrics import auc, confusion_matrix, roc_curve

from diabetes_rf.config.constants import (
    DIAGNOSIS_COLUMN,
    DIAGNOSIS_LEVELS,
    POSITIVE_LABEL,
    REQUIRED_COLUMNS,
)
from diabetes_rf.data.clean import clean_observations
from diabetes_rf.data.load import load_observations
from diabetes_rf.errors import PipelineError
from diabetes_rf.features.preprocess import get_feature_names
from diabetes_rf.models.workflow import IMPORTANCE_KINDS

logger = logging.getLogger(__name__)


def confusion_table(y_true, y_pred, labels=DIAGNOSIS_LEVELS) -> pd.DataFrame:
    """Count actual x predicted labels.

    Args:
        y_true: Actual labels
        y_pred: Predicted labels
        labels: Label order for rows and columns

    Returns:
        Dataframe indexed by actual label with one column per predicted label
    """
    cm = confusion_matrix(np.asarray(y_true, dtype=str), np.asarray(y_pred, dtype=str), labels=list(labels))
    return pd.DataFrame(
        cm,
        index=pd.Index(labels, name="actual"),
        columns=pd.Index(labels, name="predicted"),
    )


def accuracy_from_confusion(cm) -> float:
    """Accuracy as trace over total count of a confusion matrix."""
    counts = np.asarray(cm, dtype=float)
    if counts.ndim != 2 or counts.shape[0] != counts.shape[1]:
        raise ValueError(f"Confusion matrix must be square, got shape {counts.shape}")
    total = counts.sum()
    if total <= 0:
        raise ValueError("Confusion matrix has no observations")
    return float(np.trace(counts) / total)


def roc_curve_points(y_true, y_proba, positive_label=POSITIVE_LABEL) -> pd.DataFrame:
    """ROC curve as the decision threshold sweeps from +inf down to the lowest score.

    Args:
        y_true: Actual labels
        y_proba: Predicted probability of the positive label
        positive_label: Event level

    Returns:
        Dataframe with threshold, false/true positive rates, specificity and
        sensitivity; first row (0, 0), last row (1, 1)
    """
    y_event = np.asarray(y_true, dtype=str) == positive_label
    fpr, tpr, thresholds = roc_curve(y_event, y_proba, drop_intermediate=False)
    return pd.DataFrame({
        "threshold": thresholds,
        "false_positive_rate": fpr,
        "true_positive_rate": tpr,
        "specificity": 1 - fpr,
        "sensitivity": tpr,
    })


def variable_importance(model, kind="impurity", X=None, y=None, random_state=None, n_repeats=10) -> pd.DataFrame:
    """Per-predictor importance scores, highest first.

    Args:
        model: Fitted pipeline ending in a ``forest`` step
        kind: "impurity" (from the fitted forest) or "permutation"
        X, y: Data for permutation importance
        random_state: Seed for permutation shuffles
        n_repeats: Permutation repeats

    Returns:
        Dataframe with columns variable, importance
    """
    if kind == "impurity":
        scores = model.named_steps["forest"].feature_importances_
    elif kind == "permutation":
        if X is None or y is None:
            raise ValueError("Permutation importance requires X and y")
        result = permutation_importance(
            model, X, y, scoring="accuracy", n_repeats=n_repeats, random_state=random_state
        )
        scores = result.importances_mean
    else:
        supported = [k for k in IMPORTANCE_KINDS if k is not None]
        raise ValueError(f"Unsupported importance kind {kind!r}; expected one of {supported}")

    importances = pd.DataFrame({"variable": get_feature_names(model), "importance": scores})
    return importances.sort_values("importance", ascending=False, kind="mergesort").reset_index(drop=True)


@dataclass
class ScoreSummary:
    confusion: pd.DataFrame
    accuracy: float


def score_subset(model, X, y) -> ScoreSummary:
    """Predict labels for a subset and summarise them as a confusion matrix."""
    cm = confusion_table(y, model.predict(X))
    return ScoreSummary(confusion=cm, accuracy=accuracy_from_confusion(cm))


@dataclass
class EvaluationReport:
    """Presentation artifacts of one evaluated model."""

    train: ScoreSummary
    test: ScoreSummary
    roc_curve: pd.DataFrame
    roc_auc: float
    importances: pd.DataFrame

    @property
    def train_accuracy(self) -> float:
        return self.train.accuracy

    @property
    def test_accuracy(self) -> float:
        return self.test.accuracy

    def as_metrics(self) -> dict:
        return {
            "train_accuracy": self.train_accuracy,
            "test_accuracy": self.test_accuracy,
            "train_accuracy_pct": round(100 * self.train_accuracy, 2),
            "test_accuracy_pct": round(100 * self.test_accuracy, 2),
            "test_roc_auc": self.roc_auc,
        }


def evaluate_model(model, train, test, importance="impurity", outcome=DIAGNOSIS_COLUMN, random_state=None):
    """Score a fitted model on the training and test subsets.

    Args:
        model: Fitted pipeline
        train: Training subset (cleaned observation table)
        test: Test subset
        importance: Importance kind, or None to skip importances
        outcome: Label column
        random_state: Seed for permutation importance

    Returns:
        EvaluationReport
    """
    X_train, y_train = train[REQUIRED_COLUMNS], train[outcome].astype(str)
    X_test, y_test = test[REQUIRED_COLUMNS], test[outcome].astype(str)

    train_scores = score_subset(model, X_train, y_train)
    test_scores = score_subset(model, X_test, y_test)

    positive_idx = list(model.classes_).index(POSITIVE_LABEL)
    y_proba = model.predict_proba(X_test)[:, positive_idx]
    roc = roc_curve_points(y_test, y_proba)
    roc_auc = float(auc(roc["false_positive_rate"], roc["true_positive_rate"]))

    if importance is None:
        importances = pd.DataFrame(columns=["variable", "importance"])
    else:
        importances = variable_importance(
            model, kind=importance, X=X_train, y=y_train, random_state=random_state
        )

    logger.info(f"Training accuracy: {train_scores.accuracy:.4f}")
    logger.info(f"Test accuracy: {test_scores.accuracy:.4f}")
    logger.info(f"Test ROC AUC: {roc_auc:.4f}")

    return EvaluationReport(
        train=train_scores,
        test=test_scores,
        roc_curve=roc,
        roc_auc=roc_auc,
        importances=importances,
    )


def generate_confusion_matrix_plot(cm: pd.DataFrame, output_path, title="Confusion Matrix"):
    """Generate confusion matrix visualization.

    Args:
        cm: Confusion table (actual x predicted)
        output_path: Path to save plot
        title: Plot title
    """
    fig, ax = plt.subplots(figsize=(8, 6))
    sns.heatmap(cm, annot=True, fmt="d", cmap="Blues", ax=ax)

    ax.set_title(f"{title} (accuracy {accuracy_from_confusion(cm):.1%})", fontsize=14, fontweight="bold")
    ax.set_xlabel("Predicted", fontsize=12)
    ax.set_ylabel("Actual", fontsize=12)

    plt.tight_layout()
    plt.savefig(output_path, dpi=150, bbox_inches="tight")
    plt.close(fig)

    logger.info(f"Confusion matrix saved to: {output_path}")


def generate_roc_curve(roc: pd.DataFrame, roc_auc: float, output_path):
    """Generate ROC curve.

    Args:
        roc: Output of roc_curve_points
        roc_auc: Area under the curve
        output_path: Path to save plot
    """
    fig, ax = plt.subplots(figsize=(8, 7))
    ax.plot(
        roc["false_positive_rate"],
        roc["true_positive_rate"],
        linewidth=2,
        label=f"ROC Curve (AUC = {roc_auc:.3f})",
    )
    ax.plot([0, 1], [0, 1], "k--", linewidth=1, label="Random Classifier")

    ax.set_xlabel("1 - Specificity", fontsize=12)
    ax.set_ylabel("Sensitivity", fontsize=12)
    ax.set_title("ROC Curve (test subset)", fontsize=14, fontweight="bold")
    ax.legend(loc="lower right", fontsize=10)
    ax.grid(alpha=0.3)

    plt.tight_layout()
    plt.savefig(output_path, dpi=150, bbox_inches="tight")
    plt.close(fig)

    logger.info(f"ROC curve saved to: {output_path}")


def generate_importance_plot(importances: pd.DataFrame, output_path):
    """Generate variable importance bar chart.

    Args:
        importances: Output of variable_importance
        output_path: Path to save plot
    """
    fig, ax = plt.subplots(figsize=(9, 6))
    sns.barplot(data=importances, x="importance", y="variable", color="steelblue", ax=ax)

    ax.set_xlabel("Importance", fontsize=12)
    ax.set_ylabel("")
    ax.set_title("Variable Importance", fontsize=14, fontweight="bold")
    ax.grid(axis="x", alpha=0.3)

    plt.tight_layout()
    plt.savefig(output_path, dpi=150, bbox_inches="tight")
    plt.close(fig)

    logger.info(f"Variable importance plot saved to: {output_path}")


def generate_evaluation_report(model_path: Path, data_path: Path, output_dir: Path) -> dict:
    """Re-score a saved model against a dataset.

    Args:
        model_path: Path to model artifacts (model_artifacts.pkl)
        data_path: CSV with the 9-column schema
        output_dir: Directory to save evaluation outputs

    Returns:
        Summary dictionary
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    artifacts = joblib.load(model_path)
    model = artifacts["model"]

    df = clean_observations(load_observations(data_path))
    X = df[REQUIRED_COLUMNS]
    y = df[DIAGNOSIS_COLUMN].astype(str)

    scores = score_subset(model, X, y)
    positive_idx = list(model.classes_).index(POSITIVE_LABEL)
    roc = roc_curve_points(y, model.predict_proba(X)[:, positive_idx])
    roc_auc = float(auc(roc["false_positive_rate"], roc["true_positive_rate"]))

    generate_confusion_matrix_plot(scores.confusion, output_dir / "confusion_matrix.png")
    generate_roc_curve(roc, roc_auc, output_dir / "roc_curve.png")
    roc.to_csv(output_dir / "roc_curve.csv", index=False)

    summary = {
        "model_path": str(model_path),
        "data_path": str(data_path),
        "samples": len(df),
        "positive_rate": float((y == POSITIVE_LABEL).mean()),
        "accuracy": scores.accuracy,
        "roc_auc": roc_auc,
        "confusion_matrix": scores.confusion.to_dict(orient="index"),
        "evaluation_date": pd.Timestamp.now().isoformat(),
    }

    with open(output_dir / "evaluation_summary.json", "w") as f:
        json.dump(summary, f, indent=2, default=int)

    logger.info(f"Evaluation complete. Results saved to: {output_dir}")
    return summary


def main():
    """CLI entry point for model evaluation."""
    parser = argparse.ArgumentParser(description="Evaluate a saved diabetes random-forest model")
    parser.add_argument(
        "--model-path",
        type=Path,
        required=True,
        help="Path to model artifacts file (model_artifacts.pkl)",
    )
    parser.add_argument(
        "--data", default="data/raw/diabetes.csv", help="Path or URL of evaluation data"
    )
    parser.add_argument(
        "--output-dir", type=Path, default=Path("reports/model_evaluation"), help="Output directory"
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    try:
        generate_evaluation_report(args.model_path, args.data, args.output_dir)
    except PipelineError as e:
        logger.error(f"Evaluation failed: {type(e).__name__}: {e}")
        return 1
    return 0


if __name__ == "__main__":
    exit(main())
