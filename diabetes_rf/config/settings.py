"""Run configuration for the diabetes random-forest report build."""

import copy
from pathlib import Path
from typing import Optional

import yaml

from diabetes_rf.config.constants import (
    DEFAULT_NEIGHBORS,
    DEFAULT_SEED,
    DEFAULT_TREES,
    DIAGNOSIS_COLUMN,
    IMPUTE_COLUMNS,
    MIN_N_RANGE,
    MTRY_RANGE,
    ZERO_AS_MISSING_COLUMNS,
)
from diabetes_rf.errors import ConfigError

DEFAULT_CONFIG = {
    "data": {
        "raw_path": "data/raw/diabetes.csv",
        "train_proportion": 0.75,
        "strata": DIAGNOSIS_COLUMN,
        "random_seed": DEFAULT_SEED,
    },
    "preprocessing": {
        "zero_as_missing": list(ZERO_AS_MISSING_COLUMNS),
        "impute_columns": list(IMPUTE_COLUMNS),
        "neighbors": DEFAULT_NEIGHBORS,
    },
    "model": {
        "trees": DEFAULT_TREES,
        "importance": "impurity",
        "n_jobs": -1,
        "fixed_params": {"mtry": 2, "min_n": 21},
    },
    "tuning": {
        "enabled": True,
        "grid_size": 60,
        "n_splits": 5,
        "n_repeats": 5,
        "mtry_range": list(MTRY_RANGE),
        "min_n_range": list(MIN_N_RANGE),
        "n_workers": 4,
        "metric": "accuracy",
    },
    "output": {
        "dir": "reports/diabetes_rf",
        "top_n": 5,
    },
    "mlflow": {
        "enabled": True,
        "tracking_uri": "mlruns",
        "experiment_name": "pima-diabetes-random-forest",
    },
    "logging": {
        "log_level": "INFO",
    },
}


def _merge(base: dict, override: dict, section: str = "") -> dict:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(merged.get(key), dict):
            if not isinstance(value, dict):
                raise ConfigError(f"Section '{section}{key}' must be a mapping")
            merged[key] = _merge(merged[key], value, f"{section}{key}.")
        else:
            merged[key] = value
    return merged


def load_config(config_path: Optional[Path] = None, overrides: Optional[dict] = None) -> dict:
    """Load run configuration.

    Values from the YAML file are layered over DEFAULT_CONFIG, so a file
    only needs the keys it changes.

    Args:
        config_path: Path to YAML config, or None for defaults
        overrides: Extra nested values applied last

    Returns:
        Configuration dictionary
    """
    raw = {}
    if config_path is not None:
        try:
            with open(config_path, "r") as f:
                raw = yaml.safe_load(f) or {}
        except FileNotFoundError as e:
            raise ConfigError(f"Config file not found: {config_path}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"Config root must be a mapping, got {type(raw).__name__}")

    unknown = set(raw) - set(DEFAULT_CONFIG)
    if unknown:
        raise ConfigError(f"Unknown config sections: {sorted(unknown)}")

    config = _merge(DEFAULT_CONFIG, raw)
    if overrides:
        config = _merge(config, overrides)

    proportion = config["data"]["train_proportion"]
    if not 0 < proportion < 1:
        raise ConfigError(f"data.train_proportion must be in (0, 1), got {proportion}")

    return config
