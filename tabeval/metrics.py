# Evaluation metrics
# Pure functions of (ground truth, predictions) for regression and classification

from dataclasses import dataclass
from typing import Callable

import numpy as np
from sklearn.metrics import (
    accuracy_score, confusion_matrix, mean_absolute_error, mean_squared_error,
    precision_score, r2_score, recall_score, roc_auc_score
)

from .errors import ConfigurationError, MetricDomainError

PROBABILITY_EPS = 1e-15


def _as_arrays(y_true, y_pred):
    y_true = np.asarray(y_true)
    y_pred = np.asarray(y_pred)
    if len(y_true) == 0:
        raise MetricDomainError("Cannot compute a metric on an empty validation set")
    if len(y_true) != len(y_pred):
        raise MetricDomainError(f"Length mismatch: {len(y_true)} truths vs {len(y_pred)} predictions")
    return y_true, y_pred


def _finite(y_pred):
    y_pred = np.asarray(y_pred, dtype=float)
    if not np.isfinite(y_pred).all():
        raise MetricDomainError("Predictions contain NaN or infinite values")
    return y_pred


# =============================================================================
# REGRESSION
# =============================================================================

def mse(y_true, y_pred):
    y_true, y_pred = _as_arrays(y_true, y_pred)
    return float(mean_squared_error(y_true, _finite(y_pred)))


def rmse(y_true, y_pred):
    return float(np.sqrt(mse(y_true, y_pred)))


def mae(y_true, y_pred):
    y_true, y_pred = _as_arrays(y_true, y_pred)
    return float(mean_absolute_error(y_true, _finite(y_pred)))


def rmsle(y_true, y_pred):
    """Root mean squared log error; truths and predictions must be positive."""
    y_true, y_pred = _as_arrays(y_true, y_pred)
    y_true = np.asarray(y_true, dtype=float)
    y_pred = _finite(y_pred)
    if (y_true <= 0).any() or (y_pred <= 0).any():
        raise MetricDomainError("rmsle is undefined for non-positive truths or predictions")
    return float(np.sqrt(np.mean((np.log1p(y_pred) - np.log1p(y_true)) ** 2)))


def rsq(y_true, y_pred):
    y_true, y_pred = _as_arrays(y_true, y_pred)
    if len(y_true) < 2:
        raise MetricDomainError("R^2 needs at least two observations")
    return float(r2_score(y_true, _finite(y_pred)))


# =============================================================================
# CLASSIFICATION (hard labels)
# =============================================================================

def accuracy(y_true, y_pred):
    y_true, y_pred = _as_arrays(y_true, y_pred)
    return float(accuracy_score(y_true, y_pred))


def misclassification(y_true, y_pred):
    return 1.0 - accuracy(y_true, y_pred)


def mean_per_class_error(y_true, y_pred):
    """Average over the observed classes of each class's error rate."""
    y_true, y_pred = _as_arrays(y_true, y_pred)
    errors = [np.mean(y_pred[y_true == c] != c) for c in np.unique(y_true)]
    return float(np.mean(errors))


def _positive_label(y_true, pos_label):
    if pos_label is not None:
        return pos_label
    labels = np.unique(y_true)
    if len(labels) > 2:
        raise MetricDomainError("Binary metric requested for more than two classes; pass pos_label")
    # Same convention as scikit-learn: the larger label is positive
    return labels[-1]


def precision(y_true, y_pred, pos_label=None):
    y_true, y_pred = _as_arrays(y_true, y_pred)
    pos = _positive_label(np.concatenate([y_true, y_pred]), pos_label)
    return float(precision_score(y_true, y_pred, pos_label=pos, average='binary', zero_division=0))


def recall(y_true, y_pred, pos_label=None):
    """Recall / sensitivity / true positive rate."""
    y_true, y_pred = _as_arrays(y_true, y_pred)
    pos = _positive_label(np.concatenate([y_true, y_pred]), pos_label)
    return float(recall_score(y_true, y_pred, pos_label=pos, average='binary', zero_division=0))


sensitivity = recall


def specificity(y_true, y_pred, pos_label=None):
    """True negative rate."""
    y_true, y_pred = _as_arrays(y_true, y_pred)
    pos = _positive_label(np.concatenate([y_true, y_pred]), pos_label)
    truth = y_true == pos
    predicted = y_pred == pos
    tn, fp, _, _ = confusion_matrix(truth, predicted, labels=[False, True]).ravel()
    if tn + fp == 0:
        raise MetricDomainError("specificity is undefined without negative observations")
    return float(tn / (tn + fp))


def gini_impurity(labels):
    """Gini impurity of a node's labels (used for tree splits, not sweeps)."""
    labels = np.asarray(labels)
    if len(labels) == 0:
        raise MetricDomainError("Gini impurity of an empty node is undefined")
    _, counts = np.unique(labels, return_counts=True)
    p = counts / counts.sum()
    return float(1.0 - np.sum(p ** 2))


# =============================================================================
# CLASSIFICATION (probabilities)
# =============================================================================

def _proba_matrix(y_true, proba, classes):
    proba = np.asarray(proba, dtype=float)
    if classes is None:
        classes = np.unique(y_true)
    classes = np.asarray(classes)
    if proba.ndim == 1:
        if len(classes) != 2:
            raise MetricDomainError("1-D probabilities are only valid for binary problems")
        proba = np.column_stack([1.0 - proba, proba])
    if proba.shape[1] != len(classes):
        raise MetricDomainError(f"{proba.shape[1]} probability columns for {len(classes)} classes")
    if not np.isfinite(proba).all():
        raise MetricDomainError("Probabilities contain NaN or infinite values")
    return proba, classes


def _one_hot(y_true, classes):
    unknown = set(np.unique(y_true)) - set(classes.tolist())
    if unknown:
        raise MetricDomainError(f"Truth contains classes without a probability column: {sorted(unknown)}")
    return (np.asarray(y_true)[:, None] == classes[None, :]).astype(float)


def brier(y_true, proba, classes=None):
    """
    Multi-class Brier score: squared distance between the probability vector
    and the one-hot truth, summed over classes and averaged over rows.
    """
    y_true, proba = _as_arrays(y_true, proba)
    proba, classes = _proba_matrix(y_true, proba, classes)
    truth = _one_hot(y_true, classes)
    return float(np.mean(np.sum((proba - truth) ** 2, axis=1)))


def log_loss(y_true, proba, classes=None, eps=PROBABILITY_EPS):
    """Cross-entropy; probabilities are clipped away from exactly 0 and 1."""
    y_true, proba = _as_arrays(y_true, proba)
    proba, classes = _proba_matrix(y_true, proba, classes)
    truth = _one_hot(y_true, classes)
    clipped = np.clip(proba, eps, 1.0 - eps)
    return float(-np.mean(np.sum(truth * np.log(clipped), axis=1)))


def roc_auc(y_true, proba, classes=None):
    """
    Area under the ROC curve for a binary problem, ranking rows by the
    probability of the positive (last) class.
    """
    y_true, proba = _as_arrays(y_true, proba)
    proba, classes = _proba_matrix(y_true, proba, classes)
    if len(classes) != 2:
        raise MetricDomainError("roc_auc is only defined here for binary problems")
    truth = np.asarray(y_true) == classes[1]
    if truth.all() or not truth.any():
        raise MetricDomainError("roc_auc needs both classes in the validation set")
    return float(roc_auc_score(truth, proba[:, 1]))


# =============================================================================
# REGISTRY
# =============================================================================

@dataclass(frozen=True)
class Metric:
    name: str
    func: Callable
    greater_is_better: bool
    # 'regression', 'labels' or 'proba'
    input: str
    binary: bool = False

    def __call__(self, y_true, y_pred, **kwargs):
        return self.func(y_true, y_pred, **kwargs)

    @property
    def task(self):
        return 'regression' if self.input == 'regression' else 'classification'


METRICS = {m.name: m for m in [
    Metric('mse', mse, False, 'regression'),
    Metric('rmse', rmse, False, 'regression'),
    Metric('mae', mae, False, 'regression'),
    Metric('rmsle', rmsle, False, 'regression'),
    Metric('rsq', rsq, True, 'regression'),
    Metric('accuracy', accuracy, True, 'labels'),
    Metric('misclassification', misclassification, False, 'labels'),
    Metric('mean_per_class_error', mean_per_class_error, False, 'labels'),
    Metric('precision', precision, True, 'labels', binary=True),
    Metric('recall', recall, True, 'labels', binary=True),
    Metric('sensitivity', sensitivity, True, 'labels', binary=True),
    Metric('specificity', specificity, True, 'labels', binary=True),
    Metric('brier', brier, False, 'proba'),
    Metric('log_loss', log_loss, False, 'proba'),
    Metric('roc_auc', roc_auc, True, 'proba'),
]}


def get_metric(name):
    if name not in METRICS:
        raise ConfigurationError(f"Unknown metric '{name}'. Supported: {sorted(METRICS)}")
    return METRICS[name]


def score(metric, fitted, X, y):
    """Score a FittedModel on (X, y) with the prediction type the metric needs."""
    metric = get_metric(metric) if isinstance(metric, str) else metric
    if metric.task != fitted.task:
        raise ConfigurationError(f"Metric '{metric.name}' cannot score a {fitted.task} model ({fitted.family})")
    if metric.input == 'proba':
        return metric(y, fitted.predict_proba(X), classes=fitted.classes_)
    if metric.binary and fitted.classes_ is not None and len(fitted.classes_) == 2:
        return metric(y, fitted.predict(X), pos_label=fitted.classes_[-1])
    return metric(y, fitted.predict(X))


# Metrics reported on the holdout set after the final fit
REPORT_METRICS = {
    'regression': ['rmse', 'mae', 'rsq'],
    'classification': ['accuracy', 'roc_auc', 'log_loss'],
}
