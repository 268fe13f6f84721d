# Model families
# Closed registry of model families: build, fit and predict with one configuration

import warnings

import numpy as np
import pandas as pd
from sklearn.cross_decomposition import PLSRegression
from sklearn.decomposition import PCA
from sklearn.exceptions import ConvergenceWarning
from sklearn.linear_model import ElasticNet, Lasso, LinearRegression, LogisticRegression, Ridge
from sklearn.neighbors import KNeighborsClassifier, KNeighborsRegressor
from sklearn.pipeline import Pipeline as SkPipeline

from .errors import ConfigurationError, FitConvergenceError


SUPPORTED_MODELS = {
    'regression': ['ols', 'penalized', 'pcr', 'pls', 'knn_regression'],
    'classification': ['knn_classification', 'logistic'],
}

MODEL_FAMILIES = SUPPORTED_MODELS['regression'] + SUPPORTED_MODELS['classification']

# Hyperparameters each family accepts (required ones have no default)
HYPERPARAMETERS = {
    'ols': {},
    'penalized': {'penalty': None, 'mixture': 0.0},
    'pcr': {'num_comp': None},
    'pls': {'num_comp': None},
    'knn_regression': {'neighbors': None},
    'knn_classification': {'neighbors': None},
    'logistic': {'penalty': 0.0, 'mixture': None},
}

# Families exposing coefficients on the (already standardized) predictors
LINEAR_FAMILIES = ['ols', 'penalized', 'logistic']


def task_type(family):
    if family in SUPPORTED_MODELS['regression']:
        return 'regression'
    if family in SUPPORTED_MODELS['classification']:
        return 'classification'
    raise ConfigurationError(f"Unknown model family: '{family}'. Supported: {SUPPORTED_MODELS}")


def resolve_config(family, config):
    """Fill defaults and reject unknown or missing hyperparameters."""
    task_type(family)
    allowed = HYPERPARAMETERS[family]
    config = dict(config or {})

    unknown = sorted(set(config) - set(allowed))
    if unknown:
        raise ConfigurationError(f"Unknown hyperparameters for '{family}': {unknown}. Allowed: {sorted(allowed)}")

    resolved = {}
    for name, default in allowed.items():
        value = config.get(name, default)
        if value is None and name not in ('mixture',):
            raise ConfigurationError(f"Model family '{family}' requires hyperparameter '{name}'")
        resolved[name] = value
    return resolved


def complexity(family, config):
    """
    Ordering key for model simplicity; lower means simpler.

    Larger penalties, fewer components and more neighbours give simpler models.
    """
    config = config or {}
    if family in ('pcr', 'pls'):
        return float(config['num_comp'])
    if family in ('knn_regression', 'knn_classification'):
        return -float(config['neighbors'])
    if family in ('penalized', 'logistic'):
        return -float(config.get('penalty') or 0.0)
    return 0.0


def build_model(family, config=None, seed=None):
    """
    Build an unfitted scikit-learn estimator for one configuration.

    Note: 'penalized' maps mixture=0 to Ridge, mixture=1 to Lasso and anything
    in between to ElasticNet; penalty=0 falls back to ordinary least squares.
    """
    params = resolve_config(family, config)

    if family == 'ols':
        return LinearRegression()

    elif family == 'penalized':
        penalty = float(params['penalty'])
        mixture = float(params['mixture'] or 0.0)
        if penalty < 0 or not (0.0 <= mixture <= 1.0):
            raise ConfigurationError(f"penalized needs penalty >= 0 and 0 <= mixture <= 1, got {params}")
        if penalty == 0:
            return LinearRegression()
        if mixture == 0:
            return Ridge(alpha=penalty)
        if mixture == 1:
            return Lasso(alpha=penalty, max_iter=10000)
        return ElasticNet(alpha=penalty, l1_ratio=mixture, max_iter=10000)

    elif family == 'pcr':
        return SkPipeline([
            ('pca', PCA(n_components=int(params['num_comp']), svd_solver='full')),
            ('ols', LinearRegression()),
        ])

    elif family == 'pls':
        return PLSRegression(n_components=int(params['num_comp']), scale=False)

    elif family == 'knn_regression':
        return KNeighborsRegressor(n_neighbors=int(params['neighbors']))

    elif family == 'knn_classification':
        return KNeighborsClassifier(n_neighbors=int(params['neighbors']))

    elif family == 'logistic':
        penalty = float(params['penalty'] or 0.0)
        if penalty < 0:
            raise ConfigurationError(f"logistic penalty must be >= 0, got {penalty}")
        if penalty == 0:
            return LogisticRegression(C=np.inf, max_iter=1000)
        if params['mixture'] is None:
            return LogisticRegression(C=1.0 / penalty, max_iter=1000)
        return LogisticRegression(
            C=1.0 / penalty,
            penalty='elasticnet',
            l1_ratio=float(params['mixture']),
            solver='saga',
            max_iter=5000,
            random_state=seed,
        )


def _check_numeric(X):
    bad = [c for c in X.columns if not pd.api.types.is_numeric_dtype(X[c])]
    if bad:
        raise ConfigurationError(
            f"All predictors must be numeric before fitting; encode {bad} in the preprocessing pipeline"
        )


class FittedModel:
    """A trained model family under one configuration."""

    def __init__(self, family, config, estimator, feature_names):
        self.family = family
        self.config = dict(config)
        self.estimator = estimator
        self.feature_names = list(feature_names)

    def __repr__(self):
        return f"FittedModel(family={self.family!r}, config={self.config})"

    @property
    def task(self):
        return task_type(self.family)

    @property
    def classes_(self):
        return getattr(self.estimator, 'classes_', None)

    def _matrix(self, X):
        missing = [c for c in self.feature_names if c not in X.columns]
        if missing:
            raise ConfigurationError(f"Prediction frame is missing columns: {missing}")
        return X[self.feature_names].to_numpy(dtype=float)

    def predict(self, X):
        pred = self.estimator.predict(self._matrix(X))
        if self.task == 'regression':
            pred = np.asarray(pred, dtype=float).ravel()
        return pred

    def predict_proba(self, X):
        if self.task != 'classification':
            raise ConfigurationError(f"'{self.family}' does not produce class probabilities")
        return self.estimator.predict_proba(self._matrix(X))

    def coefficients(self):
        """Coefficients by predictor name, or None for families without them."""
        if self.family not in LINEAR_FAMILIES:
            return None
        coef = np.asarray(self.estimator.coef_, dtype=float)
        if coef.ndim == 2 and coef.shape[0] > 1:
            # multi-class: one row per class
            return pd.DataFrame(coef.T, index=self.feature_names, columns=list(self.classes_))
        return pd.Series(coef.ravel(), index=self.feature_names)


def fit_model(family, config, X, y, seed=None) -> FittedModel:
    """
    Fit one model family under one configuration.

    Raises:
        ConfigurationError if predictors are not numeric or the config is invalid
        FitConvergenceError if the solver fails or does not converge
    """
    _check_numeric(X)
    estimator = build_model(family, config, seed=seed)
    matrix = X.to_numpy(dtype=float)
    target = np.asarray(y)

    with warnings.catch_warnings():
        warnings.simplefilter('error', ConvergenceWarning)
        try:
            estimator.fit(matrix, target)
        except ConvergenceWarning as e:
            raise FitConvergenceError(f"{family} {config}: did not converge ({e})") from e
        except (ValueError, np.linalg.LinAlgError) as e:
            raise FitConvergenceError(f"{family} {config}: fit failed ({e})") from e

    return FittedModel(family, resolve_config(family, config), estimator, X.columns)
