import numpy as np
import pandas as pd
import pytest

from tabeval.data import (
    load_dataset, resolve_formula, resolve_roles, near_zero_variance,
    drop_near_zero_variance, validate_data_integrity
)
from tabeval.errors import ConfigurationError
from tabeval.partition import split


def test_resolve_formula_dot_expands_to_all_other_columns():
    outcome, predictors = resolve_formula("Sale_Price ~ .", ["Gr_Liv_Area", "Sale_Price", "Year_Built"])
    assert outcome == "Sale_Price"
    assert predictors == ["Gr_Liv_Area", "Year_Built"]


def test_resolve_formula_named_terms_and_exclusions():
    columns = ["a", "b", "c", "y"]
    assert resolve_formula("y ~ a + c", columns) == ("y", ["a", "c"])
    assert resolve_formula("y ~ . - b", columns) == ("y", ["a", "c"])


def test_resolve_formula_errors():
    with pytest.raises(ConfigurationError, match="outcome ~ terms"):
        resolve_formula("y = a", ["a", "y"])
    with pytest.raises(ConfigurationError, match="not a column"):
        resolve_formula("y ~ z", ["a", "y"])
    with pytest.raises(ConfigurationError, match="selects no predictors"):
        resolve_formula("y ~ . - a", ["a", "y"])


def test_resolve_roles_with_ignored_columns(housing_df):
    outcome, predictors = resolve_roles(housing_df, {
        "outcome": "Sale_Price", "predictors": ".", "ignored_columns": ["Utilities"]
    })
    assert outcome == "Sale_Price"
    assert "Utilities" not in predictors
    assert "Sale_Price" not in predictors
    assert len(predictors) == 4

    with pytest.raises(ConfigurationError, match="not found"):
        resolve_roles(housing_df, {"outcome": "Price"})


def test_near_zero_variance_flags_degenerate_columns(housing_df):
    flagged = near_zero_variance(housing_df, ["Gr_Liv_Area", "Neighborhood", "Utilities"])
    assert flagged == ["Utilities"]


def test_near_zero_variance_filter_runs_before_the_split(housing_df, seed):
    """
    Utilities is constant except for one row. Filtering the full dataset drops
    it for every subset; a per-split filter would disagree depending on where
    the odd row lands.
    """
    predictors = [c for c in housing_df.columns if c != "Sale_Price"]
    filtered, remaining, dropped = drop_near_zero_variance(housing_df, predictors)
    assert dropped == ["Utilities"]
    assert "Utilities" not in filtered.columns

    s = split(filtered, 0.7, seed=seed)
    assert "Utilities" not in s.training(filtered).columns
    assert "Utilities" not in s.testing(filtered).columns
    assert remaining == [c for c in predictors if c != "Utilities"]
    # the input frame is untouched
    assert "Utilities" in housing_df.columns


def test_validate_data_integrity(housing_df, attrition_df):
    predictors = ["Gr_Liv_Area", "Year_Built"]
    assert validate_data_integrity(housing_df, "Sale_Price", predictors, "regression")

    broken = housing_df.copy()
    broken.loc[0, "Sale_Price"] = np.nan
    with pytest.raises(ConfigurationError, match="Missing values found in outcome"):
        validate_data_integrity(broken, "Sale_Price", predictors, "regression")

    with pytest.raises(ConfigurationError, match="must be numeric"):
        validate_data_integrity(attrition_df, "Attrition", ["Age"], "regression")

    one_class = attrition_df[attrition_df["Attrition"] == "No"]
    with pytest.raises(ConfigurationError, match="fewer than two classes"):
        validate_data_integrity(one_class, "Attrition", ["Age"], "classification")


def test_load_dataset_csv_and_parquet(housing_df, tmp_path):
    csv_path = tmp_path / "ames.csv"
    housing_df.to_csv(csv_path, index=False)
    df, path = load_dataset({"data": {}}, str(csv_path))
    assert df.shape == housing_df.shape
    assert path == str(csv_path)

    parquet_path = tmp_path / "ames.parquet"
    housing_df.to_parquet(parquet_path, index=False)
    df, _ = load_dataset({"data": {"dataset_path": str(parquet_path)}})
    assert list(df.columns) == list(housing_df.columns)
    assert df["Sale_Price"].tolist() == housing_df["Sale_Price"].tolist()


def test_load_dataset_errors(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_dataset({"data": {}}, str(tmp_path / "missing.csv"))
    odd = tmp_path / "data.xlsx"
    odd.write_text("x")
    with pytest.raises(ConfigurationError, match="Unsupported dataset format"):
        load_dataset({"data": {}}, str(odd))
    with pytest.raises(ConfigurationError, match="No dataset path"):
        load_dataset({"data": {}})
