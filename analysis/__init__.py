# Analysis and Reporting Module
# Importance rankings, tuning curves and model comparison for sweep results

from .importance import (
    compute_permutation_importance,
    coefficient_importance,
    scale_importance,
    rank_importance
)

from .plots import (
    plot_tuning_curve,
    plot_feature_importance
)

from .comparison import (
    best_fold_metrics,
    compare_models
)

__all__ = [
    'compute_permutation_importance',
    'coefficient_importance',
    'scale_importance',
    'rank_importance',
    'plot_tuning_curve',
    'plot_feature_importance',
    'best_fold_metrics',
    'compare_models'
]
