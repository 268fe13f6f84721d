# Metric aggregation
# Per-configuration summaries of fold results and best-configuration selection

import numpy as np
import pandas as pd
from scipy import stats

from .errors import ConfigurationError

SUMMARY_STATS = ['mean', 'median', 'std', 'std_err', 'n', 'n_missing']


def aggregate(results, metric_column='metric', group_column='config_id'):
    """
    Summarize fold results per configuration.

    Missing metrics (failed cells) are excluded from every statistic and
    counted in `n_missing`; they are never treated as zero.

    Args:
        results: Results table with one row per (configuration, fold)
        metric_column: Column holding the fold metric
        group_column: Column identifying the configuration

    Returns:
        DataFrame with one row per configuration: the configuration columns,
        mean, median, std, std_err, n and n_missing
    """
    if metric_column not in results.columns or group_column not in results.columns:
        raise ConfigurationError(
            f"Results table needs '{group_column}' and '{metric_column}' columns, got {list(results.columns)}"
        )

    config_columns = list(results.attrs.get('config_columns', []))
    rows = []
    for config_id, group in results.groupby(group_column, sort=True):
        values = group[metric_column].astype(float).to_numpy()
        valid = values[~np.isnan(values)]
        row = {group_column: config_id}
        for col in config_columns:
            row[col] = group[col].iloc[0]
        if 'complexity' in group.columns:
            row['complexity'] = group['complexity'].iloc[0]
        if len(valid):
            row['mean'] = float(np.mean(valid))
            row['median'] = float(np.median(valid))
            row['std'] = float(np.std(valid, ddof=1)) if len(valid) > 1 else np.nan
            row['std_err'] = float(stats.sem(valid)) if len(valid) > 1 else np.nan
        else:
            row.update({'mean': np.nan, 'median': np.nan, 'std': np.nan, 'std_err': np.nan})
        row['n'] = int(len(valid))
        row['n_missing'] = int(len(values) - len(valid))
        rows.append(row)

    columns = [group_column] + config_columns
    if 'complexity' in results.columns:
        columns.append('complexity')
    summary = pd.DataFrame(rows, columns=columns + SUMMARY_STATS)
    summary.attrs.update(results.attrs)
    return summary


def select_best(summary, greater_is_better=False, one_standard_error=False):
    """
    Pick the best configuration from a summary.

    Without the one-standard-error rule this is the configuration with the
    best mean. With it, every configuration whose mean lies within one
    standard error of the best mean is eligible and the simplest one wins
    (lowest `complexity`). Ties prefer the simpler configuration, then the
    better mean.

    Returns:
        The selected summary row as a Series
    """
    candidates = summary.dropna(subset=['mean'])
    if candidates.empty:
        raise ConfigurationError("No configuration produced a valid metric; cannot select a best model")

    sign = -1.0 if greater_is_better else 1.0
    # Lower is better on this scale
    loss = sign * candidates['mean']
    best_pos = int(np.argmin(loss.to_numpy()))
    best_loss = float(loss.iloc[best_pos])

    if 'complexity' in candidates.columns:
        simplicity = candidates['complexity'].astype(float)
    else:
        simplicity = pd.Series(0.0, index=candidates.index)

    if one_standard_error:
        se = candidates['std_err'].iloc[best_pos]
        se = 0.0 if pd.isna(se) else float(se)
        eligible = loss <= best_loss + se + 1e-12
    else:
        eligible = np.isclose(loss, best_loss, rtol=0.0, atol=1e-12)

    pool = candidates[eligible].assign(_simplicity=simplicity[eligible], _loss=loss[eligible])
    chosen = pool.sort_values(['_simplicity', '_loss'], kind='mergesort').iloc[0]
    return chosen.drop(labels=['_simplicity', '_loss'])
