"""Load the Pima Indians diabetes table from a local file or URL."""

import logging
from pathlib import Path
from typing import Union
from urllib.error import URLError

import pandas as pd

from diabetes_rf.data.validate_input import DiabetesDataValidator
from diabetes_rf.errors import DataUnavailable

logger = logging.getLogger(__name__)


def is_url(location: Union[str, Path]) -> bool:
    return str(location).lower().startswith(("http://", "https://"))


def read_table(location: Union[str, Path]) -> pd.DataFrame:
    """Read a CSV from a path or URL.

    Raises:
        DataUnavailable: if the source is missing, unreachable or not a CSV
    """
    if not is_url(location) and not Path(location).is_file():
        raise DataUnavailable(f"Dataset not found: {location}")

    try:
        df = pd.read_csv(location)
    except (URLError, OSError) as e:
        raise DataUnavailable(f"Failed to read {location}: {e}") from e
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        raise DataUnavailable(f"Malformed CSV at {location}: {e}") from e

    if df.empty:
        raise DataUnavailable(f"Dataset at {location} has no rows")

    return df


def load_observations(location: Union[str, Path], validator: DiabetesDataValidator = None) -> pd.DataFrame:
    """Load and validate the observation table.

    Args:
        location: Local CSV path or http(s) URL
        validator: Schema validator (a default one is created if omitted)

    Returns:
        Dataframe with the 9 schema columns

    Raises:
        DataUnavailable: if the source cannot be read
        SchemaMismatch: if required columns are absent or invalid
    """
    validator = validator or DiabetesDataValidator()

    df = read_table(location)
    df = validator.validate(df)

    outliers = validator.detect_outliers(df)
    if outliers:
        counts = {col: len(rows) for col, rows in outliers.items()}
        logger.warning(f"Outliers detected (|z| > 3): {counts}")

    logger.info(
        f"Loaded {len(df)} rows from {location} "
        f"(positive rate {df['Outcome'].mean():.3f})"
    )
    return df
