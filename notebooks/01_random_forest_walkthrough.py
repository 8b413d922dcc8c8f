"""Random-forest walkthrough for the Pima Indians Diabetes dataset.

This marimo notebook narrates the report build:
- Recoding impossible zeros and auditing missing values
- Stratified train/test split
- Cross-validated tuning of mtry and min_n
- Final fit, accuracies, ROC curve and variable importance
"""

import marimo

__generated_with = "0.17.7"
app = marimo.App()


@app.cell
def _():
    import marimo as mo
    import matplotlib.pyplot as plt
    import seaborn as sns
    from pathlib import Path

    from diabetes_rf.config.constants import REQUIRED_COLUMNS, ZERO_AS_MISSING_COLUMNS
    from diabetes_rf.config.settings import load_config
    from diabetes_rf.data.clean import missing_summary
    from diabetes_rf.models.train import run_pipeline

    plt.style.use('seaborn-v0_8-darkgrid')
    sns.set_palette("husl")

    mo.md(
        """
        # Predicting Diabetes Onset with a Random Forest

        **Dataset**: Pima Indians Diabetes Database (768 women, 8 clinical predictors,
        binary outcome)

        **Approach**: k-nearest-neighbour imputation, centering and scaling, and a
        1500-tree random forest whose `mtry` and `min_n` are tuned by 5 x 5 repeated
        cross-validation on the training subset only.
        """
    )
    return (
        Path,
        REQUIRED_COLUMNS,
        ZERO_AS_MISSING_COLUMNS,
        load_config,
        missing_summary,
        mo,
        plt,
        run_pipeline,
        sns,
    )


@app.cell
def _(Path, load_config, run_pipeline):
    # Build the report with the shipped walkthrough settings
    notebook_dir = Path(__file__).parent
    config = load_config(
        notebook_dir.parent / "configs" / "train_config.yaml",
        {
            "data": {"raw_path": str(notebook_dir.parent / "data" / "raw" / "diabetes.csv")},
            "mlflow": {"enabled": False},
        },
    )
    result = run_pipeline(config)
    df = result.data
    return config, df, result


@app.cell
def _(REQUIRED_COLUMNS, ZERO_AS_MISSING_COLUMNS, df, missing_summary, mo):
    missing = missing_summary(df[REQUIRED_COLUMNS])

    mo.md(f"""
    ## 1. Impossible Zeros

    A glucose, blood pressure, skin fold, insulin or BMI reading of zero is not a
    measurement, it is a missing value. After recoding {", ".join(ZERO_AS_MISSING_COLUMNS)}:

    {missing[missing["missing"] > 0].round(1).to_markdown()}

    Insulin and skin thickness are missing for a large share of patients, so rows are
    kept and the gaps are filled from each patient's 5 nearest neighbours instead.
    """)
    return


@app.cell
def _(df, plt, sns):
    _fig, _axes = plt.subplots(2, 4, figsize=(16, 7))
    for _ax, _feature in zip(_axes.flatten(), df.columns[:8]):
        sns.boxplot(data=df, x="Diagnosis", y=_feature, ax=_ax)
        _ax.set_xlabel("")
    plt.tight_layout()
    _fig
    return


@app.cell
def _(mo, result):
    _split = result.split
    _rates = {
        name: subset["Outcome"].mean()
        for name, subset in (("Full", result.data), ("Training", _split.train), ("Test", _split.test))
    }

    mo.md(f"""
    ## 2. Train/Test Split

    Stratified by diagnosis with proportion {_split.proportion} and seed {_split.seed}:
    **{len(_split.train)}** training rows, **{len(_split.test)}** test rows.

    | Subset | Diabetes share |
    |--------|----------------|
    | Full | {_rates["Full"]:.1%} |
    | Training | {_rates["Training"]:.1%} |
    | Test | {_rates["Test"]:.1%} |
    """)
    return


@app.cell
def _(config, mo, result):
    _tuning = result.run.tuning_results_
    _best = (
        _tuning.show_best(config["output"]["top_n"]).round(4).to_markdown(index=False)
        if _tuning is not None
        else "Tuning disabled; fixed configuration used."
    )

    mo.md(f"""
    ## 3. Tuning

    {config["tuning"]["grid_size"]} candidates from a Latin hypercube over
    `mtry` in {config["tuning"]["mtry_range"]} and `min_n` in {config["tuning"]["min_n_range"]},
    each scored on {config["tuning"]["n_splits"]} folds x {config["tuning"]["n_repeats"]} repeats.

    {_best}

    **Selected**: `mtry = {result.best_params["mtry"]}`, `min_n = {result.best_params["min_n"]}`
    """)
    return


@app.cell
def _(mo, result):
    _metrics = result.report.as_metrics()

    mo.md(f"""
    ## 4. Final Model

    | | Accuracy |
    |---|---|
    | Training subset | {_metrics["train_accuracy_pct"]:.2f}% |
    | Test subset | {_metrics["test_accuracy_pct"]:.2f}% |

    Test confusion matrix (rows actual, columns predicted):

    {result.report.test.confusion.to_markdown()}
    """)
    return


@app.cell
def _(plt, result):
    _roc = result.report.roc_curve
    _fig, _axes = plt.subplots(1, 2, figsize=(14, 6))

    _axes[0].plot(_roc["false_positive_rate"], _roc["true_positive_rate"], linewidth=2)
    _axes[0].plot([0, 1], [0, 1], "k--", linewidth=1)
    _axes[0].set_xlabel("1 - Specificity")
    _axes[0].set_ylabel("Sensitivity")
    _axes[0].set_title(f"ROC Curve (AUC = {result.report.roc_auc:.3f})")

    _imp = result.report.importances
    _axes[1].barh(_imp["variable"][::-1], _imp["importance"][::-1])
    _axes[1].set_xlabel("Impurity importance")
    _axes[1].set_title("Variable Importance")

    plt.tight_layout()
    _fig
    return


@app.cell
def _(mo, result):
    _top = result.report.importances.head(3)["variable"].tolist()

    mo.md(f"""
    ## 5. Takeaways

    - The three most informative predictors are **{", ".join(_top)}**.
    - Training accuracy above test accuracy is expected from a forest; the test
      figure is the honest estimate because the test rows never touched imputation,
      scaling or tuning.
    """)
    return


if __name__ == "__main__":
    app.run()
