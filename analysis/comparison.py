# Model Comparison Module
# Compares competing model families on the same resampling plan using the
# per-fold metrics of each family's selected configuration

import numpy as np
import pandas as pd
from typing import Dict
from scipy import stats


def best_fold_metrics(sweep_result) -> pd.Series:
    """Per-fold metric of the selected configuration, indexed by (repeat, fold)."""
    results = sweep_result.results
    config_cols = list(results.attrs.get('config_columns', []))
    if sweep_result.best_config is None:
        return pd.Series(dtype=float)

    mask = pd.Series(True, index=results.index)
    for col in config_cols:
        value = sweep_result.best_config[col]
        column = results[col]
        if value is None:
            mask &= column.isna()
        else:
            mask &= column == value
    chosen = results[mask]
    return chosen.set_index(['repeat', 'fold'])['metric'].astype(float)


def compare_models(sweep_results: Dict[str, object], test_significance: bool = True) -> pd.DataFrame:
    """
    Compare the selected configurations of several sweeps.

    The sweeps must share the same fold plan so folds can be paired. Returns
    one row per model with mean / std / std_err of the fold metric and, for
    each pair of models, the paired t-test p-value on the folds both
    completed.

    Args:
        sweep_results: Dict mapping model name to SweepResult
        test_significance: Whether to run paired t-tests

    Returns:
        DataFrame with comparative statistics
    """
    fold_metrics = {name: best_fold_metrics(res) for name, res in sweep_results.items()}

    rows = []
    for name, res in sweep_results.items():
        values = fold_metrics[name].dropna().to_numpy()
        row = {
            'model': name,
            'family': res.family,
            'metric': res.metric,
            'config': res.best_config,
            'mean': float(np.mean(values)) if len(values) else np.nan,
            'std': float(np.std(values, ddof=1)) if len(values) > 1 else np.nan,
            'std_err': float(stats.sem(values)) if len(values) > 1 else np.nan,
            'n': int(len(values)),
        }
        rows.append(row)

    comparison = pd.DataFrame(rows)

    if test_significance and len(fold_metrics) >= 2:
        names = list(fold_metrics)
        for i in range(len(names)):
            for j in range(i + 1, len(names)):
                a, b = names[i], names[j]
                paired = pd.concat([fold_metrics[a], fold_metrics[b]], axis=1, join='inner').dropna()
                p_value = np.nan
                if len(paired) > 1 and not np.allclose(paired.iloc[:, 0], paired.iloc[:, 1]):
                    _, p_value = stats.ttest_rel(paired.iloc[:, 0], paired.iloc[:, 1])
                comparison.loc[comparison['model'] == a, f'pvalue_vs_{b}'] = p_value
                comparison.loc[comparison['model'] == b, f'pvalue_vs_{a}'] = p_value

    greater = {res.greater_is_better for res in sweep_results.values()}
    if len(greater) == 1 and not comparison['mean'].isna().all():
        ascending = not greater.pop()
        comparison = comparison.sort_values('mean', ascending=ascending).reset_index(drop=True)

    return comparison

