import numpy as np
import pytest

from tabeval.errors import ConfigurationError, MetricDomainError
from tabeval.metrics import (
    mse, rmse, mae, rmsle, rsq, accuracy, misclassification, mean_per_class_error,
    precision, recall, sensitivity, specificity, gini_impurity, brier, log_loss, roc_auc,
    get_metric, METRICS
)


def test_regression_metrics():
    y = [1.0, 2.0, 3.0, 4.0]
    pred = [1.0, 2.0, 3.0, 6.0]
    assert mse(y, pred) == pytest.approx(1.0)
    assert rmse(y, pred) == pytest.approx(1.0)
    assert mae(y, pred) == pytest.approx(0.5)
    assert rsq(y, y) == pytest.approx(1.0)


def test_rmsle_requires_positive_values():
    assert rmsle([1.0, 2.0], [1.0, 2.0]) == pytest.approx(0.0)
    with pytest.raises(MetricDomainError, match="non-positive"):
        rmsle([1.0, 2.0], [1.0, -2.0])
    with pytest.raises(MetricDomainError):
        rmsle([0.0, 2.0], [1.0, 2.0])


def test_non_finite_predictions_are_a_domain_error():
    with pytest.raises(MetricDomainError):
        rmse([1.0, 2.0], [1.0, np.nan])


def test_empty_validation_set_is_a_domain_error():
    with pytest.raises(MetricDomainError, match="empty"):
        accuracy([], [])


def test_label_metrics():
    y = np.array(["Yes", "No", "No", "Yes", "No"])
    pred = np.array(["Yes", "No", "Yes", "No", "No"])
    assert accuracy(y, pred) == pytest.approx(0.6)
    assert misclassification(y, pred) == pytest.approx(0.4)
    # 'Yes' is the larger label and therefore the positive class
    assert precision(y, pred) == pytest.approx(0.5)
    assert recall(y, pred) == pytest.approx(0.5)
    assert sensitivity(y, pred) == recall(y, pred)
    assert specificity(y, pred) == pytest.approx(2 / 3)
    assert specificity(y, pred, pos_label="No") == pytest.approx(0.5)
    # per-class error: No 1/3, Yes 1/2
    assert mean_per_class_error(y, pred) == pytest.approx((1 / 3 + 1 / 2) / 2)


def test_gini_impurity():
    assert gini_impurity(["a", "a", "a"]) == pytest.approx(0.0)
    assert gini_impurity(["a", "b"]) == pytest.approx(0.5)
    with pytest.raises(MetricDomainError):
        gini_impurity([])


def test_multiclass_brier_score():
    proba = np.array([[0.91, 0.07, 0.02]])
    assert brier(["A"], proba, classes=["A", "B", "C"]) == pytest.approx(0.0134)


def test_log_loss_clips_probabilities():
    proba = np.array([[0.0, 1.0], [1.0, 0.0]])
    value = log_loss(["No", "Yes"], proba, classes=["No", "Yes"])
    assert np.isfinite(value)
    assert value == pytest.approx(-np.log(1e-15), rel=1e-6)

    perfect = log_loss(["No", "Yes"], np.array([[1.0, 0.0], [0.0, 1.0]]), classes=["No", "Yes"])
    assert perfect == pytest.approx(0.0, abs=1e-12)


def test_roc_auc_binary_and_single_class_fold():
    y = np.array(["No", "No", "Yes", "Yes"])
    p_yes = np.array([0.1, 0.4, 0.35, 0.8])
    assert roc_auc(y, p_yes, classes=["No", "Yes"]) == pytest.approx(0.75)

    with pytest.raises(MetricDomainError, match="both classes"):
        roc_auc(np.array(["No", "No"]), np.array([0.2, 0.3]), classes=["No", "Yes"])


def test_probability_columns_must_match_classes():
    with pytest.raises(MetricDomainError):
        brier(["A"], np.array([[0.5, 0.5]]), classes=["A", "B", "C"])


def test_metric_registry():
    assert get_metric("rmse").greater_is_better is False
    assert get_metric("roc_auc").greater_is_better is True
    assert get_metric("accuracy").task == "classification"
    assert METRICS["rsq"].task == "regression"
    with pytest.raises(ConfigurationError, match="Unknown metric"):
        get_metric("f2")
