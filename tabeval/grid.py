# Hyperparameter grids
# Full cross products and seeded random subsamples of them

import itertools

import numpy as np

from .errors import ConfigurationError


def expand_grid(param_lists):
    """
    Full cross product of named value lists.

    `{'penalty': [0.1, 1], 'mixture': [0, 1]}` gives four configurations. Keys
    keep their given order and the last key varies fastest. An empty mapping
    gives a single empty configuration (families without hyperparameters).
    """
    if not param_lists:
        return [{}]
    names = list(param_lists)
    values = []
    for name in names:
        options = param_lists[name]
        if not isinstance(options, (list, tuple, np.ndarray)):
            options = [options]
        if len(options) == 0:
            raise ConfigurationError(f"Hyperparameter '{name}' has no values")
        values.append(list(options))
    return [dict(zip(names, combo)) for combo in itertools.product(*values)]


def random_grid(param_lists, size, seed=None):
    """
    Random subsample (without replacement) of the full grid.

    The sampled configurations keep the order they have in the full grid.
    """
    full = expand_grid(param_lists)
    if size < 1:
        raise ConfigurationError(f"random grid size must be >= 1, got {size}")
    if size >= len(full):
        return full
    rng = np.random.default_rng(seed)
    picked = np.sort(rng.choice(len(full), size=size, replace=False))
    return [full[i] for i in picked]


def grid_from_config(model_config, seed=None):
    """Build the configuration list from the `model` config section."""
    params = model_config.get('grid') or {}
    size = model_config.get('random_grid_size')
    if size is None:
        return expand_grid(params)
    return random_grid(params, int(size), seed=seed)
