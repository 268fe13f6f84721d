import pytest
import pandas as pd
import numpy as np


@pytest.fixture(scope="session")
def seed():
    return 42


@pytest.fixture
def housing_df(seed):
    """
    Small deterministic frame resembling the Ames housing data.
    Includes:
      - Sale_Price (regression outcome, strictly positive)
      - numeric predictors with a known linear effect
      - Neighborhood (categorical, with one rare level and some missing values)
      - Utilities (near-zero variance: constant except one row)
    """
    rng = np.random.default_rng(seed)
    n = 120

    df = pd.DataFrame({
        "Gr_Liv_Area": rng.normal(1500, 400, size=n).round(),
        "Year_Built": rng.integers(1950, 2010, size=n),
        "Lot_Area": rng.normal(10000, 2500, size=n).round(),
    })
    df["Neighborhood"] = rng.choice(["North_Ames", "College_Creek", "Old_Town"], size=n, p=[0.5, 0.3, 0.2])
    df.loc[0, "Neighborhood"] = "Green_Hills"
    df.loc[[5, 17, 33], "Neighborhood"] = np.nan
    df["Utilities"] = "AllPub"
    df.loc[1, "Utilities"] = "NoSewr"
    df["Sale_Price"] = (
        50000
        + 80 * df["Gr_Liv_Area"]
        + 300 * (df["Year_Built"] - 1950)
        + rng.normal(0, 10000, size=n)
    ).round()
    return df


@pytest.fixture
def attrition_df(seed):
    """Employee-attrition style frame: 1000 rows, 84% 'No' / 16% 'Yes'."""
    rng = np.random.default_rng(seed)
    n = 1000
    attrition = np.array(["No"] * 840 + ["Yes"] * 160)
    rng.shuffle(attrition)
    left = attrition == "Yes"

    return pd.DataFrame({
        "Age": np.where(left, rng.normal(30, 6, n), rng.normal(40, 8, n)).round(),
        "Monthly_Income": np.where(left, rng.normal(4000, 900, n), rng.normal(6500, 1500, n)).round(),
        "Years_At_Company": rng.integers(0, 20, size=n),
        "Over_Time": np.where(left, rng.choice(["Yes", "No"], n, p=[0.6, 0.4]),
                              rng.choice(["Yes", "No"], n, p=[0.2, 0.8])),
        "Attrition": attrition,
    })


@pytest.fixture
def linear_df():
    """100 rows of y = 2 + 3*x1 - 1.5*x2 + N(0, 0.5^2)."""
    rng = np.random.default_rng(2024)
    n = 100
    x1 = rng.normal(size=n)
    x2 = rng.normal(size=n)
    y = 2.0 + 3.0 * x1 - 1.5 * x2 + rng.normal(0, 0.5, size=n)
    return pd.DataFrame({"x1": x1, "x2": x2, "y": y})


@pytest.fixture
def base_regression_config(tmp_path, seed):
    """Minimal config for a penalized regression sweep on Sale_Price."""
    cfg = {
        "experiment": {
            "name": "pytest_regression",
            "seed": seed,
            "output_dir": str(tmp_path / "runs")
        },
        "data": {
            "dataset_path": "DUMMY.csv",
            "formula": "Sale_Price ~ ."
        },
        "preprocessing": {
            "near_zero_variance": True,
            "steps": [
                {"step": "impute", "strategy": "median"},
                {"step": "center_scale"},
                {"step": "encode", "method": "dummy"}
            ]
        },
        "partition": {
            "train_fraction": 0.75,
            "stratify_by": "Sale_Price"
        },
        "resampling": {
            "strategy": "k_fold",
            "k": 4,
            "repeats": 2
        },
        "model": {
            "family": "penalized",
            "grid": {
                "penalty": [0.01, 1.0, 100.0],
                "mixture": [0.0]
            }
        },
        "evaluation": {
            "metric": "rmse",
            "one_standard_error": True
        },
        "metrics": {"save_plots": False}
    }
    return cfg


@pytest.fixture
def base_classification_config(tmp_path, seed):
    cfg = {
        "experiment": {
            "name": "pytest_classification",
            "seed": seed,
            "output_dir": str(tmp_path / "runs")
        },
        "data": {
            "dataset_path": "DUMMY.csv",
            "outcome": "Attrition",
            "predictors": "."
        },
        "preprocessing": {
            "steps": [
                {"step": "center_scale"},
                {"step": "encode", "method": "one_hot"}
            ]
        },
        "partition": {
            "train_fraction": 0.7,
            "stratify_by": "Attrition"
        },
        "resampling": {
            "strategy": "bootstrap",
            "iterations": 3
        },
        "model": {
            "family": "knn_classification",
            "grid": {"neighbors": [5, 15]}
        },
        "evaluation": {
            "metric": "roc_auc",
            "importance": "permutation"
        },
        "metrics": {"save_plots": False}
    }
    return cfg


@pytest.fixture
def patch_dataset_loader(monkeypatch, housing_df):
    """
    Monkeypatch load_dataset so runs don't hit disk.
    """
    def _fake_load_dataset(config, dataset_path=None):
        return housing_df.copy(), "test_dataset.csv"

    monkeypatch.setattr("tabeval.data.load_dataset", _fake_load_dataset)
    monkeypatch.setattr("runners.run_sweep.load_dataset", _fake_load_dataset)
    return _fake_load_dataset


@pytest.fixture
def write_yaml(tmp_path):
    import yaml
    def _write(cfg, name="temp.yaml"):
        p = tmp_path / name
        with open(p, "w") as f:
            yaml.safe_dump(cfg, f, default_flow_style=False)
        return str(p)
    return _write
