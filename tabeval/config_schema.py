# Config schema validation
# Validates config structure, types and value ranges before anything runs

from .errors import ConfigurationError
from .metrics import METRICS
from .models import HYPERPARAMETERS, MODEL_FAMILIES, task_type
from .transforms import STEP_TYPES

REQUIRED_KEYS = {
    'experiment': ['name', 'seed'],
    'data': [],
    'model': ['family'],
    'partition': ['train_fraction'],
    'resampling': ['strategy'],
    'evaluation': ['metric'],
}

ALLOWED_STRATEGIES = ['k_fold', 'bootstrap']
IMPORTANCE_METHODS = ['auto', 'coefficients', 'permutation', 'none']

# Recognized keys per section; anything else is rejected
ALLOWED_KEYS = {
    'experiment': ['name', 'seed', 'output_dir'],
    'data': ['dataset_path', 'delimiter', 'outcome', 'predictors', 'formula', 'ignored_columns'],
    'preprocessing': ['near_zero_variance', 'steps'],
    'partition': ['train_fraction', 'stratify_by', 'n_bins', 'seed'],
    'resampling': ['strategy', 'k', 'repeats', 'iterations', 'stratify', 'seed'],
    'model': ['family', 'grid', 'random_grid_size', 'grid_seed'],
    'evaluation': ['metric', 'one_standard_error', 'n_jobs', 'max_cells', 'time_budget', 'importance'],
    'metrics': ['save_plots'],
}


def _is_int(value):
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value):
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_config(config):
    """
    Validate an experiment configuration.

    Args:
        config: dict - Configuration dictionary

    Raises:
        ConfigurationError listing every problem found
    """
    errors = []

    # Check required top-level keys
    for section, required_keys in REQUIRED_KEYS.items():
        if section not in config or not isinstance(config[section], dict):
            errors.append(f"Missing required section: '{section}'")
            continue
        for key in required_keys:
            if key not in config[section]:
                errors.append(f"Missing required key: '{section}.{key}'")

    if errors:
        raise ConfigurationError("Config validation failed:\n  - " + "\n  - ".join(errors))

    for section, value in config.items():
        if section not in ALLOWED_KEYS:
            errors.append(f"Unknown section '{section}'. Allowed: {sorted(ALLOWED_KEYS)}")
            continue
        unknown = sorted(set(value or {}) - set(ALLOWED_KEYS[section]))
        if unknown:
            errors.append(f"Unknown keys in '{section}': {unknown}")

    # Outcome / predictors
    data = config['data']
    if not data.get('formula') and not data.get('outcome'):
        errors.append("data needs either 'outcome' or 'formula'")
    if data.get('formula') and data.get('outcome'):
        errors.append("data.outcome and data.formula are mutually exclusive")

    if not _is_int(config['experiment'].get('seed')):
        errors.append("experiment.seed must be an integer")

    # Partition
    partition = config['partition']
    fraction = partition.get('train_fraction')
    if not _is_number(fraction) or not (0.0 < fraction < 1.0):
        errors.append(f"partition.train_fraction must be inside (0, 1), got {fraction}")
    if 'n_bins' in partition and (not _is_int(partition['n_bins']) or partition['n_bins'] < 2):
        errors.append("partition.n_bins must be an integer >= 2")

    # Resampling
    resampling = config['resampling']
    strategy = resampling.get('strategy')
    if strategy not in ALLOWED_STRATEGIES:
        errors.append(f"Invalid resampling strategy '{strategy}'. Allowed: {ALLOWED_STRATEGIES}")
    elif strategy == 'k_fold':
        k = resampling.get('k', 10)
        if not _is_int(k) or k < 2:
            errors.append("resampling.k must be an integer >= 2")
        repeats = resampling.get('repeats', 1)
        if not _is_int(repeats) or repeats < 1:
            errors.append("resampling.repeats must be an integer >= 1")
    else:
        iterations = resampling.get('iterations', 25)
        if not _is_int(iterations) or iterations < 1:
            errors.append("resampling.iterations must be an integer >= 1")

    # Model
    model = config['model']
    family = model.get('family')
    if family not in MODEL_FAMILIES:
        errors.append(f"Invalid model family '{family}'. Allowed: {MODEL_FAMILIES}")
    else:
        grid = model.get('grid') or {}
        if not isinstance(grid, dict):
            errors.append("model.grid must map hyperparameter names to value lists")
        else:
            unknown = sorted(set(grid) - set(HYPERPARAMETERS[family]))
            if unknown:
                errors.append(f"Unknown hyperparameters for '{family}': {unknown}")
            required = [k for k, v in HYPERPARAMETERS[family].items() if v is None and k != 'mixture']
            absent = [k for k in required if k not in grid]
            if absent:
                errors.append(f"model.grid is missing required hyperparameters for '{family}': {absent}")
        size = model.get('random_grid_size')
        if size is not None and (not _is_int(size) or size < 1):
            errors.append("model.random_grid_size must be an integer >= 1")

    # Evaluation
    evaluation = config['evaluation']
    metric = evaluation.get('metric')
    if metric not in METRICS:
        errors.append(f"Invalid metric '{metric}'. Allowed: {sorted(METRICS)}")
    elif family in MODEL_FAMILIES and METRICS[metric].task != task_type(family):
        errors.append(f"Metric '{metric}' cannot evaluate the {task_type(family)} family '{family}'")
    for key in ('max_cells', 'n_jobs'):
        if evaluation.get(key) is not None and not _is_int(evaluation[key]):
            errors.append(f"evaluation.{key} must be an integer")
    budget = evaluation.get('time_budget')
    if budget is not None and (not _is_number(budget) or budget < 0):
        errors.append("evaluation.time_budget must be a non-negative number of seconds")
    importance = evaluation.get('importance', 'auto')
    if importance not in IMPORTANCE_METHODS:
        errors.append(f"Invalid importance method '{importance}'. Allowed: {IMPORTANCE_METHODS}")

    # Preprocessing steps
    steps = (config.get('preprocessing') or {}).get('steps') or []
    for i, step in enumerate(steps):
        if not isinstance(step, dict) or step.get('step') not in STEP_TYPES:
            errors.append(f"preprocessing.steps[{i}] must name a step in {sorted(STEP_TYPES)}")

    if errors:
        raise ConfigurationError("Config validation failed:\n  - " + "\n  - ".join(errors))

    return True
