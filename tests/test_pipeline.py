"""End-to-end tests for the model-selection run and report build."""

import json
from dataclasses import replace

import numpy as np
import pytest
import yaml

import diabetes_rf.models.train as train_module
from diabetes_rf.config.settings import load_config
from diabetes_rf.data.split import stratified_split
from diabetes_rf.errors import DataUnavailable, PipelineStateError
from diabetes_rf.features.preprocess import frozen_statistics
from diabetes_rf.models.evaluate import generate_evaluation_report
from diabetes_rf.models.train import (
    ModelSelectionRun,
    Stage,
    build_workflow,
    main,
    run_pipeline,
    save_outputs,
)

FIXED = {"mtry": 2, "min_n": 21}


@pytest.fixture
def split(cleaned_df):
    return stratified_split(cleaned_df, 0.75, "Diagnosis", 456)


class TestModelSelectionRun:
    """Test stage ordering of a selection run."""

    def test_evaluate_before_finalize(self, small_config, split):
        """Test that evaluation needs a fitted model."""
        run = ModelSelectionRun(build_workflow(small_config), split, small_config)

        with pytest.raises(PipelineStateError):
            run.evaluate()

    def test_finalize_without_tuning_needs_params(self, small_config, split):
        """Test that finalize() without params requires a tuned run."""
        run = ModelSelectionRun(build_workflow(small_config), split, small_config)

        with pytest.raises(PipelineStateError):
            run.finalize()

    def test_stages_advance(self, small_config, split):
        """Test TUNING -> FINALIZING -> EVALUATED."""
        run = ModelSelectionRun(build_workflow(small_config), split, small_config)
        assert run.stage is Stage.TUNING

        run.tune()
        assert run.stage is Stage.FINALIZING
        assert set(run.best_params_) == {"config", "mtry", "min_n"}

        run.finalize()
        assert run.final_workflow_.mtry == run.best_params_["mtry"]

        run.evaluate()
        assert run.stage is Stage.EVALUATED

        with pytest.raises(PipelineStateError):
            run.tune()
        with pytest.raises(PipelineStateError):
            run.finalize(FIXED)

    def test_fixed_configuration_is_reproducible(self, small_config, split):
        """Test that rerunning mtry=2, min_n=21 reproduces both accuracies."""
        accuracies = []
        for _ in range(2):
            run = ModelSelectionRun(build_workflow(small_config), split, small_config)
            run.finalize(FIXED)
            report = run.evaluate()
            accuracies.append((report.train_accuracy, report.test_accuracy))

        assert accuracies[0] == accuracies[1]
        assert all(0 <= acc <= 1 for acc in accuracies[0])

    def test_test_rows_do_not_affect_frozen_statistics(self, small_config, split):
        """Test that perturbing held-out values leaves training statistics unchanged."""
        test = split.test.copy()
        test["Glucose"] = test["Glucose"] * 10 + 500
        test["BMI"] = np.nan
        perturbed = replace(split, test=test)

        stats = []
        for s in (split, perturbed):
            run = ModelSelectionRun(build_workflow(small_config), s, small_config)
            run.finalize(FIXED)
            before = frozen_statistics(run.model_)
            run.evaluate()
            after = frozen_statistics(run.model_)
            for key in before:
                np.testing.assert_array_equal(before[key], after[key])
            stats.append(after)

        for key in stats[0]:
            np.testing.assert_array_equal(stats[0][key], stats[1][key])

    def test_tuning_never_sees_test_rows(self, small_config, split, monkeypatch):
        """Test that only training rows reach the tuner."""
        seen = {}
        original = train_module.tune_grid

        def spy(workflow, train, folds, grid, n_workers=1):
            seen["index"] = train.index
            return original(workflow, train, folds, grid, n_workers=n_workers)

        monkeypatch.setattr(train_module, "tune_grid", spy)
        ModelSelectionRun(build_workflow(small_config), split, small_config).tune()

        assert seen["index"].equals(split.train.index)
        assert seen["index"].intersection(split.test.index).empty


class TestRunPipeline:
    """Test the full report build."""

    def test_tuned_run(self, small_config, pima_df):
        """Test the walkthrough end to end with a small grid."""
        result = run_pipeline(small_config, data=pima_df)

        assert len(result.split.train) == 576
        assert len(result.split.test) == 192
        assert result.run.stage is Stage.EVALUATED
        ranked = result.run.tuning_results_.show_best(None)
        assert ranked.iloc[0]["config"] == result.best_params["config"]
        assert 0 <= result.report.test_accuracy <= 1

    def test_fixed_run_is_deterministic(self, small_config, pima_df):
        """Test that two builds with the same seed give identical figures."""
        config = load_config(None, {**small_config, "tuning": {"enabled": False}})

        first = run_pipeline(config, data=pima_df)
        second = run_pipeline(config, data=pima_df)

        assert first.best_params == FIXED
        assert first.split.assignment().equals(second.split.assignment())
        assert first.report.as_metrics() == second.report.as_metrics()

    def test_save_outputs(self, small_config, pima_df, tmp_path):
        """Test the report artifacts written to disk."""
        result = run_pipeline(small_config, data=pima_df)
        output_dir = save_outputs(result, tmp_path / "out")

        for name in (
            "tuning_results.csv",
            "split_assignment.csv",
            "roc_curve.csv",
            "variable_importance.csv",
            "metrics.json",
            "metadata.json",
            "model_artifacts.pkl",
            "confusion_matrix.png",
            "roc_curve.png",
            "variable_importance.png",
        ):
            assert (output_dir / name).exists(), name

        metrics = json.loads((output_dir / "metrics.json").read_text())
        assert 0 <= metrics["test_accuracy"] <= 1

    def test_saved_model_can_be_rescored(self, small_config, pima_df, tmp_path):
        """Test re-scoring the saved artifact against a CSV."""
        config = load_config(None, {**small_config, "tuning": {"enabled": False}})
        output_dir = save_outputs(run_pipeline(config, data=pima_df), tmp_path / "out")
        data_path = tmp_path / "diabetes.csv"
        pima_df.to_csv(data_path, index=False)

        summary = generate_evaluation_report(
            output_dir / "model_artifacts.pkl", data_path, tmp_path / "rescored"
        )

        assert summary["samples"] == 768
        assert 0 <= summary["accuracy"] <= 1
        assert (tmp_path / "rescored" / "evaluation_summary.json").exists()

    def test_missing_data_is_fatal(self, small_config):
        """Test that an unreadable source aborts the build."""
        with pytest.raises(DataUnavailable):
            run_pipeline(small_config)


class TestMain:
    """Test the command-line entry point."""

    def _write_config(self, small_config, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump(small_config))
        return path

    def test_main_success(self, small_config, pima_df, tmp_path):
        """Test a successful build returns 0 and writes outputs."""
        pima_df.to_csv(small_config["data"]["raw_path"], index=False)
        config_path = self._write_config(small_config, tmp_path)

        code = main(["--config", str(config_path), "--no-tune", "--output-dir", str(tmp_path / "cli")])

        assert code == 0
        assert (tmp_path / "cli" / "metrics.json").exists()
        assert not (tmp_path / "cli" / "tuning_results.csv").exists()

    def test_main_missing_data(self, small_config, tmp_path):
        """Test that a missing dataset exits with status 1."""
        config_path = self._write_config(small_config, tmp_path)

        assert main(["--config", str(config_path)]) == 1

    def test_main_missing_config(self, tmp_path):
        """Test that a missing config file exits with status 1."""
        assert main(["--config", str(tmp_path / "absent.yaml")]) == 1
