# Resampling plans
# k-fold / repeated k-fold / bootstrap (fit, validation) index pairs

from dataclasses import dataclass
from typing import List, NamedTuple

import numpy as np
import pandas as pd
from sklearn.model_selection import RepeatedKFold, RepeatedStratifiedKFold

from .errors import ConfigurationError
from .partition import make_strata


@dataclass(frozen=True)
class KFold:
    k: int
    repeats: int = 1


@dataclass(frozen=True)
class Bootstrap:
    iterations: int


class Fold(NamedTuple):
    """One (fit, validation) pair. Indices are positions in the resampled frame."""
    fit_indices: np.ndarray
    validation_indices: np.ndarray
    repeat: int
    fold: int


def k_fold(k, repeats=1):
    return KFold(k=int(k), repeats=int(repeats))


def bootstrap(iterations):
    return Bootstrap(iterations=int(iterations))


def _k_fold_plan(n, strategy, seed, strata, n_bins):
    if strategy.k < 2 or strategy.k > n:
        raise ConfigurationError(f"k must satisfy 2 <= k <= n (k={strategy.k}, n={n})")
    if strategy.repeats < 1:
        raise ConfigurationError(f"repeats must be >= 1, got {strategy.repeats}")

    placeholder = np.zeros((n, 1))
    if strata is not None:
        if len(strata) != n:
            raise ConfigurationError(f"strata has {len(strata)} labels for {n} rows")
        # continuous outcomes are binned the same way the partitioner bins them
        strata = make_strata(pd.Series(np.asarray(strata)), n_bins=n_bins)
        cv = RepeatedStratifiedKFold(n_splits=strategy.k, n_repeats=strategy.repeats, random_state=seed)
        splits = cv.split(placeholder, strata.astype(str))
    else:
        cv = RepeatedKFold(n_splits=strategy.k, n_repeats=strategy.repeats, random_state=seed)
        splits = cv.split(placeholder)

    plan = []
    try:
        for i, (fit_idx, val_idx) in enumerate(splits):
            plan.append(Fold(fit_idx, val_idx, repeat=i // strategy.k, fold=i % strategy.k))
    except ValueError as e:
        raise ConfigurationError(f"Cannot build stratified folds: {e}") from e
    return plan


def _bootstrap_plan(n, strategy, seed):
    if strategy.iterations < 1:
        raise ConfigurationError(f"iterations must be >= 1, got {strategy.iterations}")
    if n < 1:
        raise ConfigurationError("Cannot bootstrap an empty dataset")

    rng = np.random.default_rng(seed)
    plan = []
    for i in range(strategy.iterations):
        drawn = rng.integers(0, n, size=n)
        # Out-of-bag rows: never drawn in this iteration
        held_out = np.setdiff1d(np.arange(n), drawn)
        plan.append(Fold(drawn, held_out, repeat=i, fold=0))
    return plan


def make_folds(n, strategy, seed=None, strata=None, n_bins=4) -> List[Fold]:
    """
    Build an ordered resampling plan over `n` rows.

    Args:
        n: Number of rows in the frame being resampled
        strategy: KFold (from k_fold) or Bootstrap (from bootstrap)
        seed: Random seed for permutations / draws
        strata: Optional labels (length n) for stratified k-fold. Continuous
            numeric labels are cut into `n_bins` quantile bins first
        n_bins: Quantile bins for continuous strata

    Returns:
        list of Fold
    """
    if isinstance(strategy, KFold):
        return _k_fold_plan(n, strategy, seed, strata, n_bins)
    if isinstance(strategy, Bootstrap):
        return _bootstrap_plan(n, strategy, seed)
    raise ConfigurationError(f"Unknown resampling strategy: {strategy!r}")


def strategy_from_config(resampling_config: dict):
    """Build a strategy object from the `resampling` config section."""
    name = resampling_config.get('strategy', 'k_fold')
    if name == 'k_fold':
        return k_fold(resampling_config.get('k', 10), resampling_config.get('repeats', 1))
    if name == 'bootstrap':
        return bootstrap(resampling_config.get('iterations', 25))
    raise ConfigurationError(f"Unknown resampling strategy '{name}'. Allowed: ['k_fold', 'bootstrap']")
