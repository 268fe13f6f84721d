# tabeval package
# Tabular model-evaluation workflow: split, resample, transform, sweep, aggregate

from .errors import (
    ConfigurationError, MetricDomainError, FitConvergenceError,
    TransformLeakageViolation, SweepWarning
)
from .config_schema import validate_config
from .io import load_config, save_results, create_run_dir, save_data_profile
from .data import load_dataset, resolve_formula, resolve_roles, drop_near_zero_variance, validate_data_integrity
from .partition import Split, split
from .resampling import Fold, k_fold, bootstrap, make_folds
from .transforms import (
    Pipeline, PreparedPipeline, Impute, PowerTransform, CenterScale,
    CollapseRare, Encode, PCAProjection, build_pipeline
)
from .models import FittedModel, fit_model, build_model, MODEL_FAMILIES, SUPPORTED_MODELS
from .grid import expand_grid, random_grid
from .metrics import METRICS, get_metric
from .aggregate import aggregate, select_best
from .sweep import SweepResult, FinalFit, sweep, fit_final

__version__ = '0.1.0'

__all__ = [
    'ConfigurationError',
    'MetricDomainError',
    'FitConvergenceError',
    'TransformLeakageViolation',
    'SweepWarning',
    'validate_config',
    'load_config',
    'save_results',
    'create_run_dir',
    'save_data_profile',
    'load_dataset',
    'resolve_formula',
    'resolve_roles',
    'drop_near_zero_variance',
    'validate_data_integrity',
    'Split',
    'split',
    'Fold',
    'k_fold',
    'bootstrap',
    'make_folds',
    'Pipeline',
    'PreparedPipeline',
    'Impute',
    'PowerTransform',
    'CenterScale',
    'CollapseRare',
    'Encode',
    'PCAProjection',
    'build_pipeline',
    'FittedModel',
    'fit_model',
    'build_model',
    'MODEL_FAMILIES',
    'SUPPORTED_MODELS',
    'expand_grid',
    'random_grid',
    'METRICS',
    'get_metric',
    'aggregate',
    'select_best',
    'SweepResult',
    'FinalFit',
    'sweep',
    'fit_final',
]
