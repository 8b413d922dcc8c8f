"""Shared constants for the diabetes random-forest walkthrough."""

# Predictor columns, in model order
REQUIRED_COLUMNS = [
    "Pregnancies",
    "Glucose",
    "BloodPressure",
    "SkinThickness",
    "Insulin",
    "BMI",
    "DiabetesPedigreeFunction",
    "Age",
]

# Target column name
TARGET_COLUMN = "Outcome"

# Full input schema
SCHEMA_COLUMNS = REQUIRED_COLUMNS + [TARGET_COLUMN]

# Columns where zero values should be treated as missing (biological impossibility)
ZERO_AS_MISSING_COLUMNS = [
    "Glucose",
    "BloodPressure",
    "SkinThickness",
    "BMI",
    "Insulin",
]

# Columns filled by nearest-neighbour imputation
IMPUTE_COLUMNS = [
    "Glucose",
    "BloodPressure",
    "SkinThickness",
    "Insulin",
    "BMI",
    "DiabetesPedigreeFunction",
]

# Derived label column
DIAGNOSIS_COLUMN = "Diagnosis"
DIAGNOSIS_LABELS = {0: "No Diabetes", 1: "Diabetes"}
DIAGNOSIS_LEVELS = ["No Diabetes", "Diabetes"]
POSITIVE_LABEL = "Diabetes"

DEFAULT_SEED = 456
DEFAULT_TREES = 1500
DEFAULT_NEIGHBORS = 5

# Tuning ranges (inclusive)
MTRY_RANGE = (1, len(REQUIRED_COLUMNS))
MIN_N_RANGE = (2, 40)
