# Dataset partitioning
# Train/test splits with optional stratification on a categorical or continuous column

from dataclasses import dataclass

import numpy as np
import pandas as pd

from .errors import ConfigurationError

# Numeric columns with at most this many distinct values are stratified as categories
MAX_DISCRETE_LEVELS = 10

MISSING_STRATUM = '__missing__'


@dataclass(frozen=True)
class Split:
    """Disjoint positional index sets covering every row of a dataset."""
    train_indices: np.ndarray
    test_indices: np.ndarray

    def __post_init__(self):
        for arr in (self.train_indices, self.test_indices):
            arr.setflags(write=False)

    @property
    def n_rows(self):
        return len(self.train_indices) + len(self.test_indices)

    def training(self, dataset):
        return dataset.iloc[self.train_indices]

    def testing(self, dataset):
        return dataset.iloc[self.test_indices]


def is_continuous(column):
    """True when a column should be binned into quantiles before stratifying."""
    if pd.api.types.is_bool_dtype(column) or not pd.api.types.is_numeric_dtype(column):
        return False
    return column.nunique(dropna=True) > MAX_DISCRETE_LEVELS


def make_strata(column, n_bins=4):
    """
    Map a column onto stratum labels.

    Continuous columns are cut into `n_bins` quantile bins; everything else is
    used as-is. Missing values form their own stratum.
    """
    if is_continuous(column):
        binned = pd.qcut(column, q=n_bins, labels=False, duplicates='drop')
        strata = binned.astype(object)
    else:
        strata = column.astype(object)
    return strata.where(column.notna(), MISSING_STRATUM).to_numpy()


def _n_train(size, train_fraction):
    n = int(round(size * train_fraction))
    return min(max(n, 1), size - 1)


def split(dataset, train_fraction, stratify_by=None, seed=None, n_bins=4):
    """
    Split a dataset into training and holdout row positions.

    Args:
        dataset: DataFrame to partition (not modified)
        train_fraction: Share of rows used for training, strictly inside (0, 1).
            Values above ~0.8 leave little data to judge overfitting.
        stratify_by: Optional column name whose distribution is preserved
        seed: Random seed; identical seed and input give identical splits
        n_bins: Quantile bins used when the stratify column is continuous

    Returns:
        Split with sorted positional indices

    Raises:
        ConfigurationError on an invalid fraction, unknown column or a stratum
        that cannot appear on both sides of the split
    """
    if not (0.0 < float(train_fraction) < 1.0):
        raise ConfigurationError(f"train_fraction must be inside (0, 1), got {train_fraction}")

    n = len(dataset)
    if n < 2:
        raise ConfigurationError(f"Cannot split a dataset with {n} rows")

    rng = np.random.default_rng(seed)

    if stratify_by is None:
        perm = rng.permutation(n)
        k = _n_train(n, train_fraction)
        train_idx, test_idx = perm[:k], perm[k:]
    else:
        if stratify_by not in dataset.columns:
            raise ConfigurationError(
                f"Stratification column '{stratify_by}' not found. Available: {list(dataset.columns)}"
            )
        strata = make_strata(dataset[stratify_by], n_bins=n_bins)
        labels, counts = np.unique(strata.astype(str), return_counts=True)
        too_small = [lab for lab, c in zip(labels, counts) if c < 2]
        if too_small:
            raise ConfigurationError(
                f"Strata of '{stratify_by}' with fewer than 2 rows cannot be split: {too_small}"
            )

        str_strata = strata.astype(str)
        train_parts, test_parts = [], []
        for label in labels:
            members = np.flatnonzero(str_strata == label)
            members = rng.permutation(members)
            k = _n_train(len(members), train_fraction)
            train_parts.append(members[:k])
            test_parts.append(members[k:])
        train_idx = np.concatenate(train_parts)
        test_idx = np.concatenate(test_parts)

    return Split(train_indices=np.sort(train_idx), test_indices=np.sort(test_idx))
