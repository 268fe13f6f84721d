# Data loading and preparation utilities

import os
import re

import numpy as np
import pandas as pd

from .errors import ConfigurationError

DELIMITED_EXTENSIONS = {'.csv': ',', '.tsv': '\t', '.txt': None}
COLUMNAR_EXTENSIONS = ('.parquet', '.pq')


def load_dataset(config, dataset_path=None):
    """
    Load a delimited-text or Parquet dataset.

    Returns:
        (DataFrame, path)
    """
    path = dataset_path or config['data'].get('dataset_path')
    if path is None:
        raise ConfigurationError("No dataset path given (data.dataset_path or --dataset)")
    if not os.path.exists(path):
        raise FileNotFoundError(f"Dataset not found: {path}")

    print(f"Loading dataset: {path}")
    ext = os.path.splitext(str(path))[1].lower()
    if ext in COLUMNAR_EXTENSIONS:
        df = pd.read_parquet(path)
    elif ext in DELIMITED_EXTENSIONS:
        sep = config['data'].get('delimiter', DELIMITED_EXTENSIONS[ext])
        if sep is None:
            df = pd.read_csv(path, sep=None, engine='python')
        else:
            df = pd.read_csv(path, sep=sep)
    else:
        raise ConfigurationError(
            f"Unsupported dataset format '{ext}'. Supported: {sorted(DELIMITED_EXTENSIONS) + list(COLUMNAR_EXTENSIONS)}"
        )
    return df, path


def resolve_formula(formula, columns):
    """
    Resolve an `outcome ~ terms` formula into (outcome, predictors).

    Supported terms: `.` (every other column), `a + b` (named columns) and
    `- c` (exclusions). Resolution happens once; the returned list is what
    every later fit uses.
    """
    if '~' not in formula:
        raise ConfigurationError(f"Formula must look like 'outcome ~ terms', got '{formula}'")
    lhs, rhs = formula.split('~', 1)
    outcome = lhs.strip()
    columns = list(columns)
    if outcome not in columns:
        raise ConfigurationError(f"Outcome '{outcome}' not found in dataset. Available: {columns}")

    included, excluded = [], []
    for sign, term in re.findall(r'([+-]?)\s*([^+-]+)', rhs):
        term = term.strip()
        if not term:
            continue
        target = excluded if sign == '-' else included
        if term == '.':
            target.extend(c for c in columns if c != outcome)
        elif term not in columns:
            raise ConfigurationError(f"Formula term '{term}' is not a column")
        else:
            target.append(term)

    predictors = []
    for col in included:
        if col != outcome and col not in excluded and col not in predictors:
            predictors.append(col)
    if not predictors:
        raise ConfigurationError(f"Formula '{formula}' selects no predictors")
    return outcome, predictors


def resolve_roles(df, data_config):
    """Outcome and predictor list from the `data` config section."""
    if data_config.get('formula'):
        outcome, predictors = resolve_formula(data_config['formula'], df.columns)
    else:
        outcome = data_config['outcome']
        if outcome not in df.columns:
            raise ConfigurationError(f"Outcome column '{outcome}' not found in dataset. Available: {list(df.columns)}")
        predictors = data_config.get('predictors', '.')
        if predictors == '.' or predictors is None:
            predictors = [c for c in df.columns if c != outcome]
        missing = [c for c in predictors if c not in df.columns]
        if missing:
            raise ConfigurationError(f"Predictor columns not found: {missing}")

    ignored = data_config.get('ignored_columns', []) or []
    predictors = [c for c in predictors if c not in ignored and c != outcome]
    return outcome, predictors


def near_zero_variance(df, columns=None, freq_cut=95 / 5, unique_cut=10.0):
    """
    Columns with near-zero variance.

    A column is flagged when it is constant, or when the ratio of its most
    common to second most common value exceeds `freq_cut` and its distinct
    values are below `unique_cut` percent of the rows.
    """
    columns = list(df.columns) if columns is None else list(columns)
    flagged = []
    for col in columns:
        counts = df[col].value_counts(dropna=True)
        if len(counts) <= 1:
            flagged.append(col)
            continue
        freq_ratio = counts.iloc[0] / counts.iloc[1]
        pct_unique = 100.0 * len(counts) / len(df)
        if freq_ratio > freq_cut and pct_unique < unique_cut:
            flagged.append(col)
    return flagged


def drop_near_zero_variance(df, predictors, **kwargs):
    """
    Drop near-zero-variance predictors from the whole dataset.

    Runs once on the full dataset, strictly before any split or fold
    generation, so every resample sees the same column set.

    Returns:
        (DataFrame without the flagged columns, remaining predictors, dropped columns)
    """
    dropped = near_zero_variance(df, predictors, **kwargs)
    if dropped:
        print(f"DROPPED (near-zero variance): {dropped}")
    remaining = [c for c in predictors if c not in dropped]
    return df.drop(columns=dropped), remaining, dropped


def validate_data_integrity(df, outcome, predictors, task):
    """
    Validate data before partitioning.

    Checks:
    - Outcome has no missing / infinite values
    - Predictors are not entirely missing
    - Classification outcomes have at least two classes
    """
    errors = []
    y = df[outcome]

    if y.isnull().any():
        errors.append(f"Missing values found in outcome ({outcome}): {int(y.isnull().sum())} rows")
    if pd.api.types.is_numeric_dtype(y) and not pd.api.types.is_bool_dtype(y):
        if not np.isfinite(y.dropna().to_numpy(dtype=float)).all():
            errors.append(f"Infinite values found in outcome: {outcome}")

    empty = [c for c in predictors if df[c].isnull().all()]
    if empty:
        errors.append(f"Predictors with no observed values: {empty}")

    if task == 'classification' and y.nunique(dropna=True) < 2:
        errors.append(f"Classification outcome '{outcome}' has fewer than two classes")
    if task == 'regression' and not pd.api.types.is_numeric_dtype(y):
        errors.append(f"Regression outcome '{outcome}' must be numeric, got {y.dtype}")

    if errors:
        raise ConfigurationError("Data integrity check failed:\n  - " + "\n  - ".join(errors))

    return True
