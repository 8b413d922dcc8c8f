"""Report build: tune, finalize and evaluate the diabetes random forest."""

import argparse
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Mapping, Optional

import joblib
import mlflow
import pandas as pd

from diabetes_rf.config.constants import DIAGNOSIS_COLUMN, REQUIRED_COLUMNS
from diabetes_rf.config.settings import load_config
from diabetes_rf.data.clean import clean_observations, missing_summary
from diabetes_rf.data.load import load_observations
from diabetes_rf.data.split import DataSplit, stratified_split
from diabetes_rf.errors import PipelineError, PipelineStateError
from diabetes_rf.models.evaluate import (
    EvaluationReport,
    evaluate_model,
    generate_confusion_matrix_plot,
    generate_importance_plot,
    generate_roc_curve,
)
from diabetes_rf.models.tune import TuneResults, make_folds, space_filling_grid, tune_grid
from diabetes_rf.models.workflow import ForestWorkflow

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    TUNING = "tuning"
    FINALIZING = "finalizing"
    EVALUATED = "evaluated"


class ModelSelectionRun:
    """Tune, refit and evaluate one workflow on one train/test split.

    Stages run strictly in order: ``tune`` (optional when a configuration is
    given explicitly), ``finalize``, ``evaluate``. Only the training subset
    reaches tuning and fitting; the test subset is read by ``evaluate`` alone.
    """

    def __init__(self, workflow: ForestWorkflow, split: DataSplit, config: dict):
        self.workflow = workflow
        self.split = split
        self.config = config
        self.stage = Stage.TUNING
        self.tuning_results_: Optional[TuneResults] = None
        self.best_params_: Optional[dict] = None
        self.final_workflow_: Optional[ForestWorkflow] = None
        self.model_ = None
        self.report_: Optional[EvaluationReport] = None

    def _require(self, *stages):
        if self.stage not in stages:
            allowed = ", ".join(s.value for s in stages)
            raise PipelineStateError(f"Run is in stage '{self.stage.value}', expected one of: {allowed}")

    def tune(self) -> TuneResults:
        """Score the candidate grid with repeated stratified k-fold on training rows."""
        self._require(Stage.TUNING)
        tuning = self.config["tuning"]
        seed = self.config["data"]["random_seed"]

        folds = make_folds(
            self.split.train,
            strata=self.split.strata,
            n_splits=tuning["n_splits"],
            n_repeats=tuning["n_repeats"],
            seed=seed,
        )
        grid = space_filling_grid(
            tuning["grid_size"],
            mtry_range=tuning["mtry_range"],
            min_n_range=tuning["min_n_range"],
            seed=seed,
        )

        self.tuning_results_ = tune_grid(
            self.workflow, self.split.train, folds, grid, n_workers=tuning["n_workers"]
        )
        self.best_params_ = self.tuning_results_.select_best(tuning["metric"])
        self.stage = Stage.FINALIZING
        return self.tuning_results_

    def finalize(self, params: Optional[Mapping] = None):
        """Fit the selected configuration on the whole training subset.

        Args:
            params: Explicit {"mtry", "min_n"}; defaults to the tuned best
        """
        if params is None:
            self._require(Stage.FINALIZING)
            params = self.best_params_
        else:
            self._require(Stage.TUNING, Stage.FINALIZING)
            self.best_params_ = {"mtry": int(params["mtry"]), "min_n": int(params["min_n"])}

        self.final_workflow_ = self.workflow.finalize(params)
        logger.info(f"Fitting final model: {self.final_workflow_.params}")

        train = self.split.train
        self.model_ = self.final_workflow_.fit(
            train[REQUIRED_COLUMNS], train[DIAGNOSIS_COLUMN].astype(str)
        )
        self.stage = Stage.FINALIZING
        return self.model_

    def evaluate(self) -> EvaluationReport:
        """Score training and test subsets with the final model."""
        self._require(Stage.FINALIZING)
        if self.model_ is None:
            raise PipelineStateError("Run has no fitted model; call finalize() first")

        self.report_ = evaluate_model(
            self.model_,
            self.split.train,
            self.split.test,
            importance=self.final_workflow_.importance,
            random_state=self.config["data"]["random_seed"],
        )
        self.stage = Stage.EVALUATED
        return self.report_


@dataclass
class PipelineResult:
    config: dict
    data: pd.DataFrame
    split: DataSplit
    run: ModelSelectionRun

    @property
    def report(self) -> EvaluationReport:
        return self.run.report_

    @property
    def best_params(self) -> dict:
        return self.run.best_params_


def build_workflow(config: dict) -> ForestWorkflow:
    """Create the unfitted workflow described by the config."""
    model = config["model"]
    preprocessing = config["preprocessing"]
    return ForestWorkflow(
        trees=model["trees"],
        impute_columns=tuple(preprocessing["impute_columns"]),
        neighbors=preprocessing["neighbors"],
        importance=model["importance"],
        random_state=config["data"]["random_seed"],
        n_jobs=model["n_jobs"],
    )


def run_pipeline(config: dict, data: Optional[pd.DataFrame] = None) -> PipelineResult:
    """Run Loader -> Cleaner -> Splitter -> tuning -> final fit -> evaluation.

    Args:
        config: Run configuration (see settings.DEFAULT_CONFIG)
        data: Raw observation table; loaded from data.raw_path when omitted

    Returns:
        PipelineResult
    """
    data_config = config["data"]

    raw = data if data is not None else load_observations(data_config["raw_path"])
    df = clean_observations(raw, zero_as_missing=config["preprocessing"]["zero_as_missing"])

    missing = missing_summary(df[REQUIRED_COLUMNS])
    missing = missing[missing["missing"] > 0]
    logger.info(f"Missing values after cleaning: {missing['missing'].to_dict()}")

    split = stratified_split(
        df,
        proportion=data_config["train_proportion"],
        strata=data_config["strata"],
        seed=data_config["random_seed"],
    )

    run = ModelSelectionRun(build_workflow(config), split, config)
    if config["tuning"]["enabled"]:
        results = run.tune()
        top = results.show_best(config["output"]["top_n"], config["tuning"]["metric"])
        logger.info(f"Top configurations:\n{top.to_string(index=False)}")
        run.finalize()
    else:
        run.finalize(config["model"]["fixed_params"])
    run.evaluate()

    return PipelineResult(config=config, data=df, split=split, run=run)


def save_outputs(result: PipelineResult, output_dir: Path) -> Path:
    """Write tables, plots, metrics and the model artifact.

    Args:
        result: Completed pipeline result
        output_dir: Directory to save outputs

    Returns:
        Output directory
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    report = result.report
    run = result.run

    if run.tuning_results_ is not None:
        run.tuning_results_.show_best(None, result.config["tuning"]["metric"]).to_csv(
            output_dir / "tuning_results.csv", index=False
        )

    result.split.assignment().to_csv(output_dir / "split_assignment.csv", index_label="row")
    report.roc_curve.to_csv(output_dir / "roc_curve.csv", index=False)
    report.importances.to_csv(output_dir / "variable_importance.csv", index=False)

    metrics = {
        **report.as_metrics(),
        "train_confusion_matrix": report.train.confusion.to_dict(orient="index"),
        "test_confusion_matrix": report.test.confusion.to_dict(orient="index"),
    }
    with open(output_dir / "metrics.json", "w") as f:
        json.dump(metrics, f, indent=2, default=int)

    generate_confusion_matrix_plot(
        report.test.confusion, output_dir / "confusion_matrix.png", title="Test Confusion Matrix"
    )
    generate_roc_curve(report.roc_curve, report.roc_auc, output_dir / "roc_curve.png")
    if not report.importances.empty:
        generate_importance_plot(report.importances, output_dir / "variable_importance.png")

    joblib.dump(
        {
            "model": run.model_,
            "params": run.final_workflow_.params,
            "config": result.config,
            "metrics": report.as_metrics(),
        },
        output_dir / "model_artifacts.pkl",
    )

    metadata = {
        "version": datetime.now().strftime("%Y%m%d_%H%M%S"),
        "algorithm": "RandomForest",
        "params": run.final_workflow_.params,
        "tuned": run.tuning_results_ is not None,
        "random_seed": result.config["data"]["random_seed"],
        "train_rows": len(result.split.train),
        "test_rows": len(result.split.test),
        "metrics": report.as_metrics(),
        "training_date": datetime.now().isoformat(),
        "data_path": str(result.config["data"]["raw_path"]),
    }
    with open(output_dir / "metadata.json", "w") as f:
        json.dump(metadata, f, indent=2)

    logger.info(f"Outputs saved to: {output_dir}")
    return output_dir


def log_to_mlflow(result: PipelineResult, output_dir: Path):
    """Record params, metrics and output files of one run in MLflow."""
    config = result.config
    mlflow.set_tracking_uri(config["mlflow"]["tracking_uri"])
    mlflow.set_experiment(config["mlflow"]["experiment_name"])

    with mlflow.start_run():
        mlflow.log_params({
            "random_seed": config["data"]["random_seed"],
            "train_proportion": config["data"]["train_proportion"],
            "tuned": config["tuning"]["enabled"],
            **result.run.final_workflow_.params,
        })
        if config["tuning"]["enabled"]:
            mlflow.log_params({
                "grid_size": config["tuning"]["grid_size"],
                "n_splits": config["tuning"]["n_splits"],
                "n_repeats": config["tuning"]["n_repeats"],
            })
        mlflow.log_metrics(result.report.as_metrics())
        mlflow.log_artifacts(str(output_dir))

        logger.info(f"MLflow run ID: {mlflow.active_run().info.run_id}")


def main(argv=None):
    """CLI entry point for the report build."""
    parser = argparse.ArgumentParser(description="Train and evaluate the diabetes random forest")
    parser.add_argument(
        "--config", type=Path, default=Path("configs/train_config.yaml"), help="Config file path"
    )
    parser.add_argument("--output-dir", type=Path, default=None, help="Overrides output.dir")
    parser.add_argument("--data", default=None, help="Path or URL overriding data.raw_path")
    parser.add_argument(
        "--no-tune", action="store_true", help="Skip tuning and fit model.fixed_params"
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        overrides = {}
        if args.data:
            overrides["data"] = {"raw_path": args.data}
        if args.no_tune:
            overrides["tuning"] = {"enabled": False}
        config = load_config(args.config, overrides)

        log_level = config["logging"]["log_level"]
        logging.getLogger().setLevel(getattr(logging, log_level.upper(), logging.INFO))

        result = run_pipeline(config)
        output_dir = args.output_dir or Path(config["output"]["dir"])
        save_outputs(result, output_dir)
    except PipelineError as e:
        logger.error(f"Report build failed: {type(e).__name__}: {e}")
        return 1

    if config["mlflow"]["enabled"]:
        log_to_mlflow(result, output_dir)

    metrics = result.report.as_metrics()
    logger.info(f"Selected configuration: {result.best_params}")
    logger.info(f"Training accuracy: {metrics['train_accuracy_pct']:.2f}%")
    logger.info(f"Test accuracy: {metrics['test_accuracy_pct']:.2f}%")
    return 0


if __name__ == "__main__":
    exit(main())
