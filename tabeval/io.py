# I/O utilities for the evaluation workflow
# Config loading, result saving, run directory management

import os
import json
import hashlib
from datetime import datetime

import numpy as np
import yaml


def load_config(config_path):
    """Load YAML configuration file."""
    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r') as f:
        config = yaml.safe_load(f)

    if config is None:
        raise ValueError(f"Config file is empty or invalid: {config_path}")

    return config


def config_hash(config):
    """Generate deterministic hash of config for run naming."""
    config_str = json.dumps(config, sort_keys=True, default=str)
    return hashlib.md5(config_str.encode()).hexdigest()[:8]


def dataset_hash(df):
    """Generate hash of dataset content for fingerprinting."""
    # Hash based on shape and sample of data
    content = f"{df.shape}_{df.columns.tolist()}_{df.head(10).to_json()}_{df.tail(10).to_json()}"
    return hashlib.md5(content.encode()).hexdigest()[:12]


def create_run_dir(config, output_dir=None):
    """Create unique run directory for experiment outputs."""
    output_dir = output_dir or config['experiment'].get('output_dir', 'runs')
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    cfg_hash = config_hash(config)
    run_name = f"{config['experiment']['name']}_{timestamp}_{cfg_hash}"
    run_dir = os.path.join(output_dir, run_name)
    os.makedirs(run_dir, exist_ok=True)
    return run_dir


def _json_value(value):
    if isinstance(value, (np.integer,)):
        return int(value)
    if isinstance(value, (np.floating, float)):
        return None if np.isnan(value) else float(value)
    return value


def save_results(run_dir, config, sweep_result, final_fit=None, importance=None):
    """
    Save all experiment artifacts to the run directory.

    Writes config.yaml, results.csv (one row per cell), summary.csv (one row
    per configuration), metrics.json, model.joblib and, unless disabled,
    the tuning-curve and importance plots.
    """
    import joblib

    with open(os.path.join(run_dir, 'config.yaml'), 'w') as f:
        yaml.dump(config, f, default_flow_style=False)

    sweep_result.results.to_csv(os.path.join(run_dir, 'results.csv'), index=False)
    sweep_result.summary.to_csv(os.path.join(run_dir, 'summary.csv'), index=False)

    metrics_json = {
        'experiment_name': config['experiment']['name'],
        'seed': config['experiment']['seed'],
        'family': sweep_result.family,
        'metric': sweep_result.metric,
        'greater_is_better': sweep_result.greater_is_better,
        'completion': sweep_result.completion,
        'n_cells': sweep_result.n_cells,
        'n_completed': sweep_result.n_completed,
        'n_failed': sweep_result.n_failed,
        'best_config': {k: _json_value(v) for k, v in (sweep_result.best_config or {}).items()},
        'cv_results': [
            {k: _json_value(v) for k, v in row.items()}
            for row in sweep_result.summary.to_dict(orient='records')
        ],
    }
    if final_fit is not None:
        metrics_json['test_metrics'] = {k: _json_value(v) for k, v in final_fit.test_metrics.items()}
    if importance is not None:
        metrics_json['importance'] = [
            {'feature': r['feature'], 'importance': _json_value(r['importance'])}
            for r in importance.to_dict(orient='records')
        ]

    with open(os.path.join(run_dir, 'metrics.json'), 'w') as f:
        json.dump(metrics_json, f, indent=2)

    if final_fit is not None:
        model_path = os.path.join(run_dir, 'model.joblib')
        joblib.dump({'model': final_fit.model, 'pipeline': final_fit.prepared}, model_path)
        print(f"Model saved to: {model_path}")

    if config.get('metrics', {}).get('save_plots', True):
        from analysis.plots import plot_feature_importance, plot_tuning_curve
        plot_tuning_curve(sweep_result, save_path=os.path.join(run_dir, 'tuning_curve.png'))
        if importance is not None:
            plot_feature_importance(importance, save_path=os.path.join(run_dir, 'importance.png'))

    print(f"Results saved to: {run_dir}")
    return run_dir


def save_data_profile(run_dir, df, outcome, predictors, dataset_path, dropped=None):
    """Save dataset fingerprint/profile for reproducibility tracking."""
    y = df[outcome]
    numeric = y.dtype.kind in 'if'
    profile = {
        'dataset_path': str(dataset_path) if dataset_path else 'in_memory',
        'dataset_hash': dataset_hash(df),
        'total_rows': len(df),
        'total_columns': len(df.columns),
        'feature_count': len(predictors),
        'features_used': list(predictors),
        'features_dropped_nzv': list(dropped or []),
        'outcome': outcome,
        'outcome_stats': {
            'mean': float(y.mean()) if numeric else None,
            'std': float(y.std()) if numeric else None,
            'min': float(y.min()) if numeric else None,
            'max': float(y.max()) if numeric else None,
            'unique_values': int(y.nunique()),
            'value_counts': {str(k): int(v) for k, v in y.value_counts().items()} if y.nunique() <= 10 else None
        },
        'missing_values': int(df[list(predictors)].isnull().sum().sum()),
        'timestamp': datetime.now().isoformat()
    }

    with open(os.path.join(run_dir, 'data_profile.json'), 'w') as f:
        json.dump(profile, f, indent=2)

    return profile
