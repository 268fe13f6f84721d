# Hyperparameter sweep
# One model per (configuration, fold) cell, scheduled on a joblib worker pool

import time
import warnings
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
from joblib import Parallel, delayed, effective_n_jobs

from .aggregate import aggregate, select_best
from .errors import ConfigurationError, FitConvergenceError, MetricDomainError, SweepWarning
from .metrics import REPORT_METRICS, get_metric, score
from .models import HYPERPARAMETERS, complexity, fit_model, resolve_config, task_type
from .transforms import Pipeline

RESULT_COLUMNS = ['repeat', 'fold', 'complexity', 'metric', 'error']


@dataclass
class SweepResult:
    """Results table, per-configuration summary and the selected configuration."""
    results: pd.DataFrame
    summary: pd.DataFrame
    best_config: Optional[Dict[str, Any]]
    family: str
    metric: str
    greater_is_better: bool
    n_cells: int
    n_completed: int
    elapsed: float

    @property
    def completion(self):
        """Fraction of all (configuration, fold) cells that ran."""
        return self.n_completed / self.n_cells if self.n_cells else 1.0

    @property
    def is_partial(self):
        return self.n_completed < self.n_cells

    @property
    def n_failed(self):
        return int(self.results['metric'].isna().sum())


@dataclass
class FinalFit:
    """Model refit on the whole training split and scored once on the test split."""
    model: Any
    prepared: Any
    test_metrics: Dict[str, Optional[float]]
    test_predictions: pd.Series


def _validate_inputs(train, outcome, predictors, fold_plan, family, grid, metric):
    if outcome not in train.columns:
        raise ConfigurationError(f"Outcome column '{outcome}' not found in training data")
    missing = [p for p in predictors if p not in train.columns]
    if missing:
        raise ConfigurationError(f"Predictor columns not found: {missing}")
    if outcome in predictors:
        raise ConfigurationError(f"Outcome '{outcome}' cannot also be a predictor")
    if not fold_plan:
        raise ConfigurationError("Resampling plan is empty")
    if not grid:
        raise ConfigurationError("Hyperparameter grid is empty")

    n = len(train)
    for i, fold in enumerate(fold_plan):
        for idx in (fold.fit_indices, fold.validation_indices):
            if len(idx) and (np.min(idx) < 0 or np.max(idx) >= n):
                raise ConfigurationError(f"Fold {i} references rows outside the training data (n={n})")

    if metric.task != task_type(family):
        raise ConfigurationError(
            f"Metric '{metric.name}' is a {metric.task} metric but '{family}' is a {task_type(family)} family"
        )


def _score_cell(metric, fitted, X, y):
    try:
        return score(metric, fitted, X, y)
    except MetricDomainError:
        raise
    except ValueError as e:
        # e.g. more neighbours requested than fit rows
        raise FitConvergenceError(f"prediction failed ({e})") from e


def _prepare(pipeline, frame):
    try:
        return pipeline.fit(frame)
    except (ValueError, np.linalg.LinAlgError) as e:
        # e.g. Box-Cox on a column that is constant within the fold
        raise FitConvergenceError(f"transform fit failed ({e})") from e


def _transform(prepared, frame):
    try:
        return prepared.apply(frame)
    except (ValueError, np.linalg.LinAlgError) as e:
        raise FitConvergenceError(f"transform failed ({e})") from e


def _run_cell(train, outcome, predictors, pipeline, family, metric, config_id, config, fold, seed):
    """Fit and score one (configuration, fold) cell. Runs inside a worker."""
    fit_frame = train.iloc[fold.fit_indices]
    val_frame = train.iloc[fold.validation_indices]

    row = {'config_id': config_id}
    row.update(config)
    row.update({
        'repeat': fold.repeat,
        'fold': fold.fold,
        'complexity': complexity(family, config),
        'metric': np.nan,
        'error': None,
    })

    try:
        prepared = _prepare(pipeline, fit_frame[predictors])
    except FitConvergenceError as e:
        row['error'] = f"{type(e).__name__}: {e}"
        return row
    # only a custom Pipeline that misreports its fit rows can trip this
    prepared.check_no_leakage(fit_frame.index, val_frame.index)

    try:
        if len(val_frame) == 0:
            raise MetricDomainError("validation set is empty")
        X_fit = _transform(prepared, fit_frame[predictors])
        X_val = _transform(prepared, val_frame[predictors])
        fitted = fit_model(family, config, X_fit, fit_frame[outcome], seed=seed)
        row['metric'] = _score_cell(metric, fitted, X_val, val_frame[outcome])
    except (FitConvergenceError, MetricDomainError) as e:
        row['error'] = f"{type(e).__name__}: {e}"
    return row


def sweep(train, outcome, predictors, fold_plan, family, grid, pipeline=None, metric='rmse',
          one_standard_error=False, n_jobs=1, max_cells=None, time_budget=None, seed=None):
    """
    Evaluate every configuration of `grid` on every fold of `fold_plan`.

    For each cell the pipeline is fit on the fold's fit rows only, applied to
    the fit and validation rows, the model family is fit on the transformed
    fit rows and scored on the transformed validation rows.

    Args:
        train: Training DataFrame (the plan's indices are positions into it)
        outcome: Outcome column name
        predictors: Explicit list of predictor column names
        fold_plan: List of Fold from `make_folds`
        family: Model family name (see models.MODEL_FAMILIES)
        grid: List of configuration dicts (see grid.expand_grid)
        pipeline: Transform Pipeline (identity when None)
        metric: Metric name used for selection
        one_standard_error: Select the simplest configuration within one SE
        n_jobs: joblib worker count (-1 = all cores)
        max_cells: Optional cap on the number of cells run
        time_budget: Optional wall-clock budget in seconds; no new cells are
            scheduled once it is exhausted, running cells finish
        seed: Seed handed to stochastic model families

    Returns:
        SweepResult; `completion` < 1.0 marks a partial sweep

    Raises:
        ConfigurationError for invalid inputs (before any cell runs)
        TransformLeakageViolation if a pipeline was fit outside its fold
    """
    metric = get_metric(metric) if isinstance(metric, str) else metric
    predictors = list(predictors)
    _validate_inputs(train, outcome, predictors, fold_plan, family, grid, metric)
    if max_cells is not None and int(max_cells) < 0:
        raise ConfigurationError(f"max_cells must be >= 0, got {max_cells}")
    if time_budget is not None and float(time_budget) < 0:
        raise ConfigurationError(f"time_budget must be >= 0, got {time_budget}")

    configs = [resolve_config(family, c) for c in grid]
    config_columns = list(HYPERPARAMETERS[family])
    pipeline = pipeline if pipeline is not None else Pipeline()
    train = train.reset_index(drop=True)

    cells = [(cid, cfg, fold) for cid, cfg in enumerate(configs) for fold in fold_plan]
    scheduled = cells if max_cells is None else cells[:int(max_cells)]

    print(f"Sweeping {family}: {len(configs)} configurations x {len(fold_plan)} resamples "
          f"= {len(cells)} cells (metric={metric.name}, n_jobs={n_jobs})...")

    start = time.monotonic()
    deadline = start + float(time_budget) if time_budget is not None else None
    batch_size = effective_n_jobs(n_jobs) if deadline is not None else max(len(scheduled), 1)

    rows: List[dict] = []
    with Parallel(n_jobs=n_jobs) as parallel:
        for offset in range(0, len(scheduled), batch_size):
            if deadline is not None and time.monotonic() >= deadline:
                break
            batch = scheduled[offset:offset + batch_size]
            rows.extend(parallel(
                delayed(_run_cell)(train, outcome, predictors, pipeline, family, metric, cid, cfg, fold, seed)
                for cid, cfg, fold in batch
            ))
    elapsed = time.monotonic() - start

    results = pd.DataFrame(rows, columns=['config_id'] + config_columns + RESULT_COLUMNS)
    results.attrs.update({
        'config_columns': config_columns,
        'family': family,
        'metric': metric.name,
        'greater_is_better': metric.greater_is_better,
        'completion': len(rows) / len(cells),
    })

    for row in rows:
        if row['error'] is not None:
            cfg = {k: row[k] for k in config_columns}
            warnings.warn(
                f"Excluded cell config={cfg} repeat={row['repeat']} fold={row['fold']}: {row['error']}",
                SweepWarning,
            )
    if len(rows) < len(cells):
        warnings.warn(
            f"Partial sweep: {len(rows)}/{len(cells)} cells completed "
            f"({len(rows) / len(cells):.1%}) within the given budget",
            SweepWarning,
        )

    summary = aggregate(results)
    best_config = None
    if rows:
        best_row = select_best(summary, metric.greater_is_better, one_standard_error)
        best_config = dict(configs[int(best_row["config_id"])])

    return SweepResult(
        results=results,
        summary=summary,
        best_config=best_config,
        family=family,
        metric=metric.name,
        greater_is_better=metric.greater_is_better,
        n_cells=len(cells),
        n_completed=len(rows),
        elapsed=elapsed,
    )


def fit_final(train, test, outcome, predictors, family, config, pipeline=None, metrics=None, seed=None):
    """
    Refit the pipeline and the chosen configuration on the whole training split
    and score the untouched test split once.

    Metrics whose domain is violated on the test split are reported as None.
    """
    predictors = list(predictors)
    pipeline = pipeline if pipeline is not None else Pipeline()
    metrics = metrics or REPORT_METRICS[task_type(family)]

    prepared = pipeline.fit(train[predictors])
    X_train = prepared.apply(train[predictors])
    X_test = prepared.apply(test[predictors])
    fitted = fit_model(family, config, X_train, train[outcome], seed=seed)

    test_metrics = {}
    for name in metrics:
        try:
            test_metrics[name] = score(name, fitted, X_test, test[outcome])
        except MetricDomainError as e:
            warnings.warn(f"Test metric '{name}' undefined: {e}", SweepWarning)
            test_metrics[name] = None

    predictions = pd.Series(fitted.predict(X_test), index=test.index, name='prediction')
    return FinalFit(model=fitted, prepared=prepared, test_metrics=test_metrics, test_predictions=predictions)
