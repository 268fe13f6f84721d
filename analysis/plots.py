# Plotting Module
# Tuning curves and importance bar charts for sweep results

import numpy as np
import pandas as pd
import matplotlib
# Use non-interactive backend to allow saving plots on CI without display
matplotlib.use('Agg')
import matplotlib.pyplot as plt
from typing import Optional, Tuple


def plot_tuning_curve(
    sweep_result,
    x: Optional[str] = None,
    figsize: Tuple[int, int] = (8, 5),
    save_path: Optional[str] = None,
) -> plt.Figure:
    """
    Mean resampled metric (± one standard error) against a hyperparameter.

    With more than one hyperparameter the remaining ones define separate
    lines. Families without hyperparameters get a single point.
    """
    summary = sweep_result.summary
    config_cols = list(summary.attrs.get('config_columns', []))
    varying = [c for c in config_cols if summary[c].nunique(dropna=True) > 1]
    if x is None:
        x = varying[0] if varying else None
    groups = [c for c in varying if c != x]

    fig, ax = plt.subplots(figsize=figsize)

    if x is None:
        ax.errorbar([0], summary['mean'], yerr=summary['std_err'].fillna(0), fmt='o', capsize=3)
        ax.set_xticks([0])
        ax.set_xticklabels([sweep_result.family])
    else:
        grouped = summary.groupby(groups, dropna=False) if groups else [(None, summary)]
        for key, part in grouped:
            part = part.sort_values(x)
            label = None
            if groups:
                key = key if isinstance(key, tuple) else (key,)
                label = ", ".join(f"{g}={v}" for g, v in zip(groups, key))
            ax.errorbar(part[x], part['mean'], yerr=part['std_err'].fillna(0),
                        marker='o', capsize=3, label=label)
        ax.set_xlabel(x)
        if x == 'penalty' and (summary[x] > 0).all():
            ax.set_xscale('log')
        if groups:
            ax.legend()

    selected = (sweep_result.best_config or {}).get(x) if x is not None else None
    if selected is not None:
        ax.axvline(selected, color='red', linestyle='--', alpha=0.6)

    ax.set_ylabel(f"{sweep_result.metric} (resampled mean ± SE)")
    ax.set_title(f"{sweep_result.family}: {sweep_result.metric} by configuration")
    ax.grid(alpha=0.3)
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        plt.close(fig)

    return fig


def plot_feature_importance(
    importance_df: pd.DataFrame,
    top_n: int = 20,
    title: str = "Variable Importance",
    figsize: Tuple[int, int] = (8, 6),
    save_path: Optional[str] = None,
    color: str = '#2E86AB'
) -> plt.Figure:
    """
    Horizontal bar chart of normalized importance (0..100).

    Args:
        importance_df: DataFrame from rank_importance
        top_n: Number of top features to show
        title: Plot title
        figsize: Figure size
        save_path: Path to save figure
        color: Bar color

    Returns:
        Figure object
    """
    df_plot = importance_df.head(top_n)

    fig, ax = plt.subplots(figsize=figsize)
    y_pos = np.arange(len(df_plot))
    ax.barh(y_pos, df_plot['importance'], color=color, alpha=0.8)
    ax.set_yticks(y_pos)
    ax.set_yticklabels(df_plot['feature'])
    ax.invert_yaxis()
    ax.set_xlim(0, 105)
    ax.set_xlabel('Importance (scaled to 100)')
    ax.set_title(title)
    ax.grid(axis='x', alpha=0.3)
    ax.set_axisbelow(True)

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        plt.close(fig)

    return fig
