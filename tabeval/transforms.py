# Feature transform pipeline
# Ordered, stateless transform steps: parameters are learned on a fit subset and
# then reused unchanged on validation / test subsets.

import warnings
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from sklearn.decomposition import PCA
from sklearn.ensemble import BaggingRegressor
from sklearn.experimental import enable_iterative_imputer  # noqa: F401
from sklearn.impute import IterativeImputer, KNNImputer
from sklearn.preprocessing import OneHotEncoder, OrdinalEncoder, PowerTransformer

from .errors import ConfigurationError, TransformLeakageViolation

OTHER_CATEGORY = 'other'


def is_numeric_column(column):
    return pd.api.types.is_numeric_dtype(column) and not pd.api.types.is_bool_dtype(column)


class Step:
    """
    Base transform step.

    Subclasses implement `fit(frame) -> params` and `apply(frame, params)`.
    Steps hold configuration only; everything learned from data lives in the
    returned params so a step can be shared between folds and workers.
    """
    name = 'step'
    # 'numeric', 'categorical' or None (any)
    kind: Optional[str] = None

    def __init__(self, columns=None):
        self.columns = list(columns) if columns is not None else None

    def __repr__(self):
        return f"{type(self).__name__}(columns={self.columns})"

    def select_columns(self, frame):
        """Resolve the columns this step touches and check their kind."""
        if self.columns is None:
            if self.kind == 'numeric':
                return [c for c in frame.columns if is_numeric_column(frame[c])]
            if self.kind == 'categorical':
                return [c for c in frame.columns if not is_numeric_column(frame[c])]
            return list(frame.columns)

        missing = [c for c in self.columns if c not in frame.columns]
        if missing:
            raise ConfigurationError(f"{self.name}: columns not found: {missing}")
        if self.kind == 'numeric':
            wrong = [c for c in self.columns if not is_numeric_column(frame[c])]
            if wrong:
                raise ConfigurationError(f"{self.name} requires numeric columns; got non-numeric {wrong}")
        elif self.kind == 'categorical':
            wrong = [c for c in self.columns if is_numeric_column(frame[c])]
            if wrong:
                raise ConfigurationError(f"{self.name} requires categorical columns; got numeric {wrong}")
        return list(self.columns)

    def fit(self, frame):
        raise NotImplementedError

    def apply(self, frame, params):
        raise NotImplementedError


def _attach(kept, added):
    """Column-bind positionally; bootstrap fit frames carry duplicate row labels."""
    out = pd.concat([kept.reset_index(drop=True), added], axis=1)
    out.index = kept.index
    return out


def _mode(column):
    modes = column.mode(dropna=True)
    if modes.empty:
        return None
    return modes.iloc[0]


class Impute(Step):
    """
    Fill missing values from statistics of the fit subset.

    Strategies:
      - 'mean' / 'median': numeric columns; categorical columns fall back to the mode
      - 'mode': most frequent value for every column
      - 'knn': nearest-neighbour donors drawn from the fit subset (numeric columns)
      - 'bagged': iterative imputation with bagged trees trained on the fit subset
    """
    name = 'impute'
    STRATEGIES = ('mean', 'median', 'mode', 'knn', 'bagged')

    def __init__(self, strategy='median', columns=None, neighbors=5, n_estimators=25, seed=None):
        super().__init__(columns)
        if strategy not in self.STRATEGIES:
            raise ConfigurationError(f"Unknown impute strategy '{strategy}'. Allowed: {list(self.STRATEGIES)}")
        self.strategy = strategy
        self.neighbors = int(neighbors)
        self.n_estimators = int(n_estimators)
        self.seed = seed

    def fit(self, frame):
        cols = self.select_columns(frame)
        numeric = [c for c in cols if is_numeric_column(frame[c])]
        categorical = [c for c in cols if c not in numeric]

        fill = {}
        for col in categorical:
            fill[col] = _mode(frame[col])

        model = None
        if self.strategy == 'mean':
            fill.update({c: frame[c].mean() for c in numeric})
        elif self.strategy == 'median':
            fill.update({c: frame[c].median() for c in numeric})
        elif self.strategy == 'mode':
            fill.update({c: _mode(frame[c]) for c in numeric})
        elif numeric:
            if self.strategy == 'knn':
                model = KNNImputer(n_neighbors=self.neighbors, keep_empty_features=True)
            else:
                model = IterativeImputer(
                    estimator=BaggingRegressor(n_estimators=self.n_estimators, random_state=self.seed),
                    random_state=self.seed,
                    keep_empty_features=True,
                )
            model.fit(frame[numeric].to_numpy(dtype=float))

        fill = {c: v for c, v in fill.items() if v is not None and not pd.isna(v)}
        return {'fill': fill, 'model': model, 'model_columns': numeric if model is not None else []}

    def apply(self, frame, params):
        out = frame.copy()
        model_cols = params['model_columns']
        if params['model'] is not None:
            values = params['model'].transform(out[model_cols].to_numpy(dtype=float))
            out[model_cols] = values
        if params['fill']:
            out = out.fillna(value=params['fill'])
        return out


class PowerTransform(Step):
    """Box-Cox (strictly positive data) or Yeo-Johnson, one lambda per column."""
    name = 'power_transform'
    kind = 'numeric'
    METHODS = ('box-cox', 'yeo-johnson')

    def __init__(self, method='yeo-johnson', columns=None):
        super().__init__(columns)
        if method not in self.METHODS:
            raise ConfigurationError(f"Unknown power transform '{method}'. Allowed: {list(self.METHODS)}")
        self.method = method

    def _check_domain(self, frame, cols):
        if self.method != 'box-cox':
            return
        bad = [c for c in cols if (frame[c].dropna() <= 0).any()]
        if bad:
            raise ConfigurationError(f"Box-Cox requires strictly positive values; non-positive data in {bad}")

    def fit(self, frame):
        cols = self.select_columns(frame)
        self._check_domain(frame, cols)
        transformer = None
        if cols:
            transformer = PowerTransformer(method=self.method, standardize=False)
            transformer.fit(frame[cols].to_numpy(dtype=float))
        return {'columns': cols, 'transformer': transformer}

    def apply(self, frame, params):
        out = frame.copy()
        cols = params['columns']
        if params['transformer'] is None:
            return out
        self._check_domain(out, cols)
        values = params['transformer'].transform(out[cols].to_numpy(dtype=float))
        out[cols] = values
        return out

    @staticmethod
    def lambdas(params):
        if params['transformer'] is None:
            return pd.Series(dtype=float)
        return pd.Series(params['transformer'].lambdas_, index=params['columns'])


class CenterScale(Step):
    """Standardize with the fit subset's mean and sample standard deviation."""
    name = 'center_scale'
    kind = 'numeric'

    def fit(self, frame):
        cols = self.select_columns(frame)
        values = frame[cols].astype(float)
        mean = values.mean()
        sd = values.std(ddof=1)
        # Constant columns are centred only
        sd = sd.where(sd > 0, 1.0).fillna(1.0)
        return {'columns': cols, 'mean': mean, 'sd': sd}

    def apply(self, frame, params):
        out = frame.copy()
        cols = params['columns']
        if cols:
            scaled = (out[cols].astype(float) - params["mean"]) / params["sd"]
            out[cols] = scaled.to_numpy()
        return out


class CollapseRare(Step):
    """Pool categories rarer than `threshold` (and unseen ones) into 'other'."""
    name = 'collapse_rare'
    kind = 'categorical'

    def __init__(self, threshold=0.05, columns=None, other=OTHER_CATEGORY):
        super().__init__(columns)
        if not (0.0 < float(threshold) < 1.0):
            raise ConfigurationError(f"collapse_rare threshold must be inside (0, 1), got {threshold}")
        self.threshold = float(threshold)
        self.other = other

    def fit(self, frame):
        cols = self.select_columns(frame)
        keep = {}
        for col in cols:
            freq = frame[col].value_counts(normalize=True, dropna=True)
            keep[col] = set(freq[freq >= self.threshold].index)
        return {'keep': keep}

    def apply(self, frame, params):
        out = frame.copy()
        for col, kept in params['keep'].items():
            values = out[col].astype(object)
            rare = values.notna() & ~values.isin(kept)
            out[col] = values.where(~rare, self.other).to_numpy()
        return out


class Encode(Step):
    """
    Encode categorical columns with the vocabulary of the fit subset.

    'one_hot' creates one indicator per category, 'dummy' drops the first
    (reference) category, 'label' maps categories to integer codes. Categories
    unseen at fit time become an all-zero indicator row (or code -1).
    """
    name = 'encode'
    kind = 'categorical'
    METHODS = ('one_hot', 'dummy', 'label')
    UNSEEN_CODE = -1

    def __init__(self, method='dummy', columns=None):
        super().__init__(columns)
        if method not in self.METHODS:
            raise ConfigurationError(f"Unknown encoding '{method}'. Allowed: {list(self.METHODS)}")
        self.method = method

    def fit(self, frame):
        cols = self.select_columns(frame)
        if not cols:
            return {'columns': cols, 'encoder': None}
        if self.method == 'label':
            encoder = OrdinalEncoder(handle_unknown='use_encoded_value', unknown_value=self.UNSEEN_CODE)
        else:
            encoder = OneHotEncoder(
                handle_unknown='ignore',
                drop='first' if self.method == 'dummy' else None,
                sparse_output=False,
            )
        encoder.fit(frame[cols].astype(object))
        return {'columns': cols, 'encoder': encoder}

    def apply(self, frame, params):
        cols = params['columns']
        encoder = params['encoder']
        if encoder is None:
            return frame.copy()

        with warnings.catch_warnings():
            # unseen categories are expected here and encode as zeros
            warnings.simplefilter('ignore', UserWarning)
            encoded = encoder.transform(frame[cols].astype(object))

        if self.method == 'label':
            out = frame.copy()
            out[cols] = encoded
            return out

        names = [str(n) for n in encoder.get_feature_names_out(cols)]
        return _attach(frame.drop(columns=cols), pd.DataFrame(encoded, columns=names))

    @staticmethod
    def vocabulary(params):
        if params['encoder'] is None:
            return {}
        return {c: list(cats) for c, cats in zip(params['columns'], params['encoder'].categories_)}


class PCAProjection(Step):
    """
    Project numeric columns on their leading principal directions.

    Keeps the fewest components whose cumulative explained variance reaches
    `threshold`, unless `num_comp` fixes the count. Inputs are expected to be
    centred/scaled by an earlier step.
    """
    name = 'pca'
    kind = 'numeric'

    def __init__(self, threshold=0.95, num_comp=None, columns=None, prefix='PC'):
        super().__init__(columns)
        if num_comp is None and not (0.0 < float(threshold) <= 1.0):
            raise ConfigurationError(f"pca threshold must be inside (0, 1], got {threshold}")
        if num_comp is not None and int(num_comp) < 1:
            raise ConfigurationError(f"pca num_comp must be >= 1, got {num_comp}")
        self.threshold = float(threshold)
        self.num_comp = int(num_comp) if num_comp is not None else None
        self.prefix = prefix

    def _matrix(self, frame, cols):
        values = frame[cols].to_numpy(dtype=float)
        if np.isnan(values).any():
            raise ConfigurationError("pca cannot handle missing values; add an impute step before it")
        return values

    def fit(self, frame):
        cols = self.select_columns(frame)
        if not cols:
            return {'columns': cols, 'pca': None, 'n_components': 0}
        pca = PCA(svd_solver='full')
        pca.fit(self._matrix(frame, cols))
        cumulative = np.cumsum(pca.explained_variance_ratio_)
        if self.num_comp is not None:
            k = self.num_comp
        else:
            k = int(np.searchsorted(cumulative, self.threshold - 1e-12) + 1)
        k = min(k, pca.n_components_)
        return {'columns': cols, 'pca': pca, 'n_components': k}

    def apply(self, frame, params):
        cols = params['columns']
        if params['pca'] is None:
            return frame.copy()
        k = params['n_components']
        scores = params['pca'].transform(self._matrix(frame, cols))[:, :k]
        names = [f"{self.prefix}{i + 1}" for i in range(k)]
        return _attach(frame.drop(columns=cols), pd.DataFrame(scores, columns=names))

    @staticmethod
    def explained_variance(params):
        if params['pca'] is None:
            return np.array([])
        return params['pca'].explained_variance_ratio_[:params['n_components']]


@dataclass(frozen=True)
class PreparedPipeline:
    """A pipeline whose step parameters have been estimated on `fit_rows`."""
    steps: Tuple[Step, ...]
    params: Tuple[Dict[str, Any], ...]
    fit_rows: frozenset = field(default_factory=frozenset)

    def apply(self, frame):
        current = frame
        for step, params in zip(self.steps, self.params):
            current = step.apply(current, params)
        return current

    def check_no_leakage(self, fit_rows, validation_rows):
        """
        Fail hard if parameters were learned on anything but `fit_rows`.

        Raises:
            TransformLeakageViolation
        """
        expected = frozenset(fit_rows)
        overlap = self.fit_rows & frozenset(validation_rows)
        if overlap:
            raise TransformLeakageViolation(
                f"Transform parameters were estimated on {len(overlap)} validation rows"
            )
        if self.fit_rows != expected:
            raise TransformLeakageViolation(
                f"Transform parameters were estimated on {len(self.fit_rows)} rows, "
                f"expected the {len(expected)} fit rows of this fold"
            )


class Pipeline:
    """Ordered list of transform steps."""

    def __init__(self, steps: Sequence[Step] = ()):
        self.steps: List[Step] = list(steps)

    def __repr__(self):
        return f"Pipeline({self.steps})"

    def __len__(self):
        return len(self.steps)

    def fit(self, frame) -> PreparedPipeline:
        params = []
        current = frame
        for step in self.steps:
            step_params = step.fit(current)
            params.append(step_params)
            current = step.apply(current, step_params)
        return PreparedPipeline(steps=tuple(self.steps), params=tuple(params), fit_rows=frozenset(frame.index))


def apply(prepared: PreparedPipeline, frame):
    return prepared.apply(frame)


STEP_TYPES = {
    'impute': Impute,
    'power_transform': PowerTransform,
    'center_scale': CenterScale,
    'collapse_rare': CollapseRare,
    'encode': Encode,
    'pca': PCAProjection,
}


def build_pipeline(step_configs, seed=None):
    """
    Build a Pipeline from config entries such as
    `{'step': 'impute', 'strategy': 'knn', 'neighbors': 5}`.
    """
    steps = []
    for i, cfg in enumerate(step_configs or []):
        cfg = dict(cfg)
        name = cfg.pop('step', None)
        if name not in STEP_TYPES:
            raise ConfigurationError(
                f"preprocessing.steps[{i}]: unknown step '{name}'. Allowed: {sorted(STEP_TYPES)}"
            )
        if name == 'impute' and cfg.get('strategy') == 'bagged':
            cfg.setdefault('seed', seed)
        try:
            steps.append(STEP_TYPES[name](**cfg))
        except TypeError as e:
            raise ConfigurationError(f"preprocessing.steps[{i}] ({name}): {e}") from e
    return Pipeline(steps)
