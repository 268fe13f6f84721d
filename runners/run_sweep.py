# Sweep experiment runner
# Split -> resample -> transform -> hyperparameter sweep -> final fit -> importance

import argparse
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tabeval.config_schema import validate_config
from tabeval.errors import ConfigurationError
from tabeval.io import load_config, save_results, create_run_dir, save_data_profile
from tabeval.data import load_dataset, resolve_roles, drop_near_zero_variance, validate_data_integrity
from tabeval.partition import split
from tabeval.resampling import make_folds, strategy_from_config
from tabeval.transforms import build_pipeline
from tabeval.grid import grid_from_config
from tabeval.models import task_type
from tabeval.sweep import sweep, fit_final
from analysis.importance import rank_importance


def _seed(config, section):
    """Per-operation seed, falling back to experiment.seed."""
    value = (config.get(section) or {}).get('seed')
    return config['experiment']['seed'] if value is None else value


def run_sweep(config_path, dataset_path=None, output_dir=None):
    """
    Run a complete evaluation experiment.

    Args:
        config_path: Path to YAML config file
        dataset_path: Optional path to dataset (overrides config)
        output_dir: Optional output directory (overrides config)

    Returns:
        run_dir: Path to experiment output directory
    """
    config = load_config(config_path)

    if output_dir:
        config['experiment']['output_dir'] = output_dir

    try:
        validate_config(config)
    except ConfigurationError as e:
        print(f"\nCONFIG ERROR:\n{e}")
        raise

    family = config['model']['family']
    task = task_type(family)
    evaluation = config['evaluation']
    preprocessing = config.get('preprocessing') or {}

    print("=" * 60)
    print("MODEL EVALUATION SWEEP")
    print("=" * 60)
    print(f"Experiment: {config['experiment']['name']}")
    print(f"Family: {family} ({task})")
    print(f"Metric: {evaluation['metric']}")
    print(f"Seed: {config['experiment']['seed']}")
    print("=" * 60)

    # Load data and resolve roles once
    df, actual_path = load_dataset(config, dataset_path)
    outcome, predictors = resolve_roles(df, config['data'])

    dropped = []
    if preprocessing.get('near_zero_variance', False):
        df, predictors, dropped = drop_near_zero_variance(df, predictors)

    validate_data_integrity(df, outcome, predictors, task)

    print(f"\nDataset shape: {df.shape}")
    print(f"Outcome: {outcome}")
    print(f"Predictors: {len(predictors)}")

    # Partition
    partition = config['partition']
    data_split = split(
        df,
        partition['train_fraction'],
        stratify_by=partition.get('stratify_by'),
        seed=_seed(config, 'partition'),
        n_bins=partition.get('n_bins', 4),
    )
    train = data_split.training(df)
    test = data_split.testing(df)
    print(f"Train rows: {len(train)}, test rows: {len(test)}")

    # Resampling plan on the training split
    resampling = config['resampling']
    strata = train[outcome].to_numpy() if resampling.get('stratify', False) else None
    fold_plan = make_folds(len(train), strategy_from_config(resampling),
                           seed=_seed(config, 'resampling'), strata=strata,
                           n_bins=partition.get('n_bins', 4))

    pipeline = build_pipeline(preprocessing.get('steps') or [], seed=config['experiment']['seed'])
    grid = grid_from_config(config['model'], seed=config['model'].get('grid_seed', config['experiment']['seed']))
    print(f"Pipeline: {pipeline}")
    print(f"Resamples: {len(fold_plan)}, configurations: {len(grid)}")

    result = sweep(
        train, outcome, predictors, fold_plan, family, grid,
        pipeline=pipeline,
        metric=evaluation['metric'],
        one_standard_error=evaluation.get('one_standard_error', False),
        n_jobs=evaluation.get('n_jobs', 1),
        max_cells=evaluation.get('max_cells'),
        time_budget=evaluation.get('time_budget'),
        seed=config['experiment']['seed'],
    )

    print("\n" + "=" * 60)
    print(f"SWEEP RESULTS ({result.n_completed}/{result.n_cells} cells, {result.elapsed:.1f}s)")
    print("=" * 60)
    config_columns = list(result.summary.attrs.get('config_columns', []))
    for _, row in result.summary.iterrows():
        params = ", ".join(f"{c}={row[c]}" for c in config_columns) or family
        print(f"{params:40s} | {result.metric}: {row['mean']:.4f} ± {row['std_err']:.4f} (n={row['n']})")

    final_fit = None
    importance = None
    if result.best_config is None:
        print("\nNo configuration completed; skipping final fit")
    else:
        print(f"\nSelected configuration: {result.best_config}")
        final_fit = fit_final(train, test, outcome, predictors, family, result.best_config,
                              pipeline=pipeline, seed=config['experiment']['seed'])

        print("\n" + "=" * 60)
        print("TEST SET RESULTS")
        print("=" * 60)
        for name, value in final_fit.test_metrics.items():
            shown = 'undefined' if value is None else f"{value:.4f}"
            print(f"{name:10s} {shown}")

        method = evaluation.get('importance', 'auto')
        if method != 'none':
            X_test = final_fit.prepared.apply(test[predictors])
            importance = rank_importance(
                final_fit.model, X_test, test[outcome],
                metric=evaluation['metric'], seed=config['experiment']['seed'], method=method,
            )
            print("\nTop predictors:")
            for _, row in importance.head(10).iterrows():
                print(f"  {row['feature']:30s} {row['importance']:6.1f}")

    run_dir = create_run_dir(config)
    save_data_profile(run_dir, df, outcome, predictors, actual_path, dropped=dropped)
    save_results(run_dir, config, result, final_fit=final_fit, importance=importance)

    print("\n" + "=" * 60)
    print("Sweep experiment complete!")
    print("=" * 60)

    return run_dir


def main():
    parser = argparse.ArgumentParser(description='Run a resampled hyperparameter sweep from a YAML config')
    parser.add_argument('--config', '-c', type=str, required=True,
                        help='Path to config YAML file')
    parser.add_argument('--dataset', '-d', type=str, default=None,
                        help='Path to dataset CSV / Parquet (overrides config)')
    parser.add_argument('--output-dir', '-o', type=str, default=None,
                        help='Output directory (overrides config)')
    args = parser.parse_args()

    run_sweep(args.config, args.dataset, args.output_dir)


if __name__ == "__main__":
    main()
