import numpy as np
import pandas as pd
import pytest

from tabeval.errors import ConfigurationError, TransformLeakageViolation
from tabeval.transforms import (
    Pipeline, Impute, PowerTransform, CenterScale, CollapseRare, Encode,
    PCAProjection, build_pipeline, apply
)


def test_center_scale_uses_fit_subset_statistics():
    fit_rows = pd.DataFrame({"x": [10.0, 20.0, 30.0]}, index=[1, 2, 3])
    validation = pd.DataFrame({"x": [100.0]}, index=[4])

    prepared = Pipeline([CenterScale()]).fit(fit_rows)
    out = prepared.apply(validation)

    assert out.loc[4, "x"] == pytest.approx(8.0)


def test_center_scale_constant_column_is_only_centred():
    frame = pd.DataFrame({"c": [5.0, 5.0, 5.0], "x": [1.0, 2.0, 3.0]})
    out = Pipeline([CenterScale()]).fit(frame).apply(frame)
    assert (out["c"] == 0.0).all()
    assert np.isfinite(out.to_numpy()).all()


def test_apply_is_idempotent_and_does_not_mutate_input(housing_df):
    pipe = Pipeline([Impute("median"), CenterScale(), Encode("dummy")])
    frame = housing_df.drop(columns=["Sale_Price", "Utilities"])
    before = frame.copy()

    prepared = pipe.fit(frame.iloc[:80])
    first = apply(prepared, frame.iloc[80:])
    second = apply(prepared, frame.iloc[80:])

    pd.testing.assert_frame_equal(first, second)
    pd.testing.assert_frame_equal(before, frame)


def test_prepared_pipeline_records_fit_rows_and_detects_leakage(housing_df):
    frame = housing_df[["Gr_Liv_Area", "Lot_Area"]]
    prepared = Pipeline([CenterScale()]).fit(frame)

    with pytest.raises(TransformLeakageViolation):
        prepared.check_no_leakage(frame.index[:60], frame.index[60:])

    ok = Pipeline([CenterScale()]).fit(frame.iloc[:60])
    ok.check_no_leakage(frame.index[:60], frame.index[60:])


def test_impute_median_uses_fit_statistics():
    fit_rows = pd.DataFrame({"x": [1.0, 2.0, 3.0, np.nan]})
    validation = pd.DataFrame({"x": [np.nan, 100.0]})

    out = Pipeline([Impute("median")]).fit(fit_rows).apply(validation)
    assert out["x"].tolist() == [2.0, 100.0]


def test_impute_categorical_columns_use_the_mode():
    fit_rows = pd.DataFrame({"x": [1.0, np.nan, 3.0], "g": ["a", "a", "b"]})
    validation = pd.DataFrame({"x": [np.nan], "g": pd.Series([np.nan], dtype=object)})

    out = Pipeline([Impute("mean")]).fit(fit_rows).apply(validation)
    assert out.loc[0, "x"] == pytest.approx(2.0)
    assert out.loc[0, "g"] == "a"


def test_knn_impute_draws_donors_from_fit_subset():
    fit_rows = pd.DataFrame({
        "a": [1.0, 2.0, 3.0, 10.0, 11.0, 12.0],
        "b": [1.0, 2.0, 3.0, 10.0, 11.0, 12.0],
    })
    validation = pd.DataFrame({"a": [11.5], "b": [np.nan]})

    out = Pipeline([Impute("knn", neighbors=2)]).fit(fit_rows).apply(validation)
    assert out.loc[0, "b"] == pytest.approx(11.5)


def test_bagged_impute_fills_every_value_reproducibly(housing_df):
    frame = housing_df[["Gr_Liv_Area", "Year_Built", "Lot_Area"]].astype(float).copy()
    frame.loc[[3, 9, 27], "Lot_Area"] = np.nan
    step = Impute("bagged", n_estimators=5, seed=0)

    a = Pipeline([step]).fit(frame).apply(frame)
    b = Pipeline([step]).fit(frame).apply(frame)
    assert not a.isnull().any().any()
    pd.testing.assert_frame_equal(a, b)


def test_unknown_impute_strategy():
    with pytest.raises(ConfigurationError, match="impute strategy"):
        Impute("interpolate")


def test_box_cox_requires_positive_values():
    frame = pd.DataFrame({"x": [0.0, 1.0, 2.0, 3.0]})
    with pytest.raises(ConfigurationError, match="strictly positive"):
        Pipeline([PowerTransform("box-cox")]).fit(frame)

    positive = pd.DataFrame({"x": [1.0, 2.0, 4.0, 8.0]})
    prepared = Pipeline([PowerTransform("box-cox")]).fit(positive)
    with pytest.raises(ConfigurationError, match="strictly positive"):
        prepared.apply(pd.DataFrame({"x": [-1.0]}))


def test_yeo_johnson_estimates_one_lambda_per_column(housing_df):
    frame = housing_df[["Gr_Liv_Area", "Lot_Area"]]
    step = PowerTransform("yeo-johnson")
    params = step.fit(frame.iloc[:80])

    lambdas = PowerTransform.lambdas(params)
    assert list(lambdas.index) == ["Gr_Liv_Area", "Lot_Area"]
    # validation rows reuse the fit-subset lambdas
    out = step.apply(frame.iloc[80:], params)
    assert out.shape == (40, 2)
    assert np.isfinite(out.to_numpy()).all()


def test_collapse_rare_pools_rare_and_unseen_categories():
    fit_rows = pd.DataFrame({"g": ["a"] * 5 + ["b"] * 4 + ["c"]})
    validation = pd.DataFrame({"g": ["a", "c", "z", np.nan]})

    out = Pipeline([CollapseRare(threshold=0.2)]).fit(fit_rows).apply(validation)
    assert out["g"].tolist()[:3] == ["a", "other", "other"]
    assert pd.isna(out["g"].iloc[3])


def test_dummy_encoding_drops_reference_level_and_zeroes_unseen():
    fit_rows = pd.DataFrame({"color": ["red", "green", "blue", "green"], "x": [1.0, 2.0, 3.0, 4.0]})
    validation = pd.DataFrame({"color": ["green", "purple"], "x": [5.0, 6.0]})

    out = Pipeline([Encode("dummy")]).fit(fit_rows).apply(validation)
    assert list(out.columns) == ["x", "color_green", "color_red"]
    assert out.iloc[0][["color_green", "color_red"]].tolist() == [1.0, 0.0]
    assert out.iloc[1][["color_green", "color_red"]].tolist() == [0.0, 0.0]


def test_one_hot_encoding_has_one_indicator_per_level():
    fit_rows = pd.DataFrame({"color": ["red", "green", "blue"]})
    step = Encode("one_hot")
    params = step.fit(fit_rows)

    out = step.apply(fit_rows, params)
    assert out.shape == (3, 3)
    assert (out.sum(axis=1) == 1).all()
    assert Encode.vocabulary(params) == {"color": ["blue", "green", "red"]}


def test_label_encoding_maps_unseen_to_minus_one():
    fit_rows = pd.DataFrame({"color": ["red", "green", "blue"]})
    validation = pd.DataFrame({"color": ["red", "purple"]})

    out = Pipeline([Encode("label")]).fit(fit_rows).apply(validation)
    assert out["color"].tolist() == [2.0, -1.0]


def test_numeric_step_on_categorical_column_is_rejected():
    frame = pd.DataFrame({"color": ["red", "green"], "x": [1.0, 2.0]})
    with pytest.raises(ConfigurationError, match="numeric"):
        Pipeline([CenterScale(columns=["color"])]).fit(frame)
    with pytest.raises(ConfigurationError, match="categorical"):
        Pipeline([Encode(columns=["x"])]).fit(frame)


def test_pca_keeps_minimal_components_reaching_threshold():
    rng = np.random.default_rng(0)
    base = rng.normal(size=(200, 1))
    frame = pd.DataFrame(
        np.hstack([base * 10, base * 10 + rng.normal(size=(200, 1)), rng.normal(size=(200, 3))]),
        columns=["a", "b", "c", "d", "e"],
    )
    step = PCAProjection(threshold=0.9)
    params = step.fit(frame.iloc[:150])
    k = params["n_components"]

    cumulative = np.cumsum(params["pca"].explained_variance_ratio_)
    assert cumulative[k - 1] >= 0.9
    assert k == 1 or cumulative[k - 2] < 0.9
    assert len(PCAProjection.explained_variance(params)) == k

    out = step.apply(frame.iloc[150:], params)
    assert list(out.columns) == [f"PC{i + 1}" for i in range(k)]
    assert len(out) == 50


def test_pca_keeps_non_numeric_columns_and_rejects_missing_values():
    frame = pd.DataFrame({"a": [1.0, 2.0, 3.0, 4.0], "b": [2.0, 1.0, 4.0, 3.0], "g": list("wxyz")})
    out = Pipeline([PCAProjection(num_comp=1)]).fit(frame).apply(frame)
    assert list(out.columns) == ["g", "PC1"]

    with pytest.raises(ConfigurationError, match="missing values"):
        Pipeline([PCAProjection()]).fit(frame.assign(a=[1.0, np.nan, 3.0, 4.0]))


def test_steps_run_in_declared_order(housing_df):
    frame = housing_df[["Gr_Liv_Area", "Year_Built", "Neighborhood"]]
    prepared = Pipeline([Impute("median"), CollapseRare(0.05), CenterScale(), Encode("one_hot")]).fit(frame)
    out = prepared.apply(frame)

    assert all(pd.api.types.is_numeric_dtype(out[c]) for c in out.columns)
    assert not out.isnull().any().any()
    assert "Neighborhood_other" in out.columns
    assert out["Gr_Liv_Area"].mean() == pytest.approx(0.0, abs=1e-9)


def test_build_pipeline_from_config_entries():
    pipe = build_pipeline([
        {"step": "impute", "strategy": "bagged"},
        {"step": "center_scale"},
        {"step": "pca", "threshold": 0.8},
    ], seed=3)
    assert len(pipe) == 3
    assert isinstance(pipe.steps[0], Impute) and pipe.steps[0].seed == 3
    assert isinstance(pipe.steps[2], PCAProjection)

    with pytest.raises(ConfigurationError, match="unknown step"):
        build_pipeline([{"step": "spline"}])
    with pytest.raises(ConfigurationError, match="center_scale"):
        build_pipeline([{"step": "center_scale", "degree": 2}])
