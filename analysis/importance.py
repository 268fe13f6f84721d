# Importance Module
# Normalized feature-importance rankings for fitted models:
# standardized coefficients for linear families, permutation importance otherwise

import numpy as np
import pandas as pd
from typing import Optional
from sklearn.inspection import permutation_importance

from tabeval.errors import ConfigurationError
from tabeval.metrics import get_metric
from tabeval.models import LINEAR_FAMILIES


def scale_importance(scores: pd.Series) -> pd.DataFrame:
    """
    Min-max scale raw scores to 0..100 and sort descending.

    The top feature gets exactly 100 and the weakest exactly 0; when every
    score is equal they all get 100.
    """
    scores = scores.astype(float)
    low, high = scores.min(), scores.max()
    if high > low:
        scaled = 100.0 * (scores - low) / (high - low)
    else:
        scaled = pd.Series(100.0, index=scores.index)

    ranking = pd.DataFrame({
        'feature': list(scores.index),
        'importance': scaled.to_numpy(),
        'raw': scores.to_numpy(),
    })
    return ranking.sort_values('importance', ascending=False, kind='mergesort').reset_index(drop=True)


def coefficient_importance(fitted, X=None) -> pd.Series:
    """
    Absolute coefficients; multi-class models sum them over classes.

    When `X` is given each magnitude is multiplied by the feature's sample
    standard deviation, so the ranking does not depend on units. Centred
    and scaled features have a spread of about 1.
    """
    coef = fitted.coefficients()
    if coef is None:
        raise ConfigurationError(f"'{fitted.family}' has no coefficients; use permutation importance")
    magnitude = coef.abs().sum(axis=1) if isinstance(coef, pd.DataFrame) else coef.abs()
    if X is not None:
        spread = X[fitted.feature_names].std(ddof=1).fillna(0.0)
        magnitude = magnitude * spread.reindex(magnitude.index).to_numpy()
    return magnitude


def _scorer(metric):
    """scikit-learn scorer (higher is better) built from a workflow metric."""
    sign = 1.0 if metric.greater_is_better else -1.0

    def _score(estimator, X, y):
        if metric.input == 'proba':
            value = metric(y, estimator.predict_proba(X), classes=estimator.classes_)
        elif metric.input == 'regression':
            value = metric(y, np.asarray(estimator.predict(X), dtype=float).ravel())
        else:
            value = metric(y, estimator.predict(X))
        return sign * value

    return _score


def compute_permutation_importance(
    fitted,
    X: pd.DataFrame,
    y,
    metric: Optional[str] = None,
    n_repeats: int = 10,
    random_state: Optional[int] = None
) -> pd.Series:
    """
    Mean degradation of `metric` when one feature is shuffled.

    Args:
        fitted: FittedModel
        X: Transformed validation features
        y: Validation outcome
        metric: Metric name (defaults to rmse / accuracy by task)
        n_repeats: Number of permutations per feature
        random_state: Random seed

    Returns:
        Series of mean degradation per feature
    """
    if metric is None:
        metric = 'rmse' if fitted.task == 'regression' else 'accuracy'
    metric = get_metric(metric)
    if metric.task != fitted.task:
        raise ConfigurationError(f"Metric '{metric.name}' cannot score a {fitted.task} model")

    result = permutation_importance(
        fitted.estimator,
        X[fitted.feature_names].to_numpy(dtype=float),
        np.asarray(y),
        scoring=_scorer(metric),
        n_repeats=n_repeats,
        random_state=random_state,
    )
    return pd.Series(result.importances_mean, index=fitted.feature_names)


def rank_importance(fitted, X=None, y=None, metric=None, n_repeats=10, seed=None,
                    method='auto') -> pd.DataFrame:
    """
    Ranked, normalized feature importance for a fitted model.

    Linear / penalized / logistic families use absolute coefficients,
    standardized by the spread of `X` when it is supplied. Other families, or method='permutation', use permutation
    importance on the supplied validation data.

    Returns:
        DataFrame with columns feature, importance (0..100) and raw,
        sorted by importance descending
    """
    if method not in ('auto', 'coefficients', 'permutation'):
        raise ConfigurationError(f"Unknown importance method '{method}'")

    use_coef = method == 'coefficients' or (method == 'auto' and fitted.family in LINEAR_FAMILIES)
    if use_coef:
        raw = coefficient_importance(fitted, X)
    else:
        if X is None or y is None:
            raise ConfigurationError(
                f"Permutation importance for '{fitted.family}' needs validation data (X, y)"
            )
        raw = compute_permutation_importance(fitted, X, y, metric=metric, n_repeats=n_repeats,
                                             random_state=seed)
    return scale_importance(raw)
