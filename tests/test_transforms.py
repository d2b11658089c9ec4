import numpy as np
import pandas as pd
import pytest

from amazon_gllvm.config import COVARIATE_TRANSFORMS, ID_COL, SQRT_SHIFT, TTCLASS_COL, TTCLASS_REFERENCE
from amazon_gllvm.errors import InputDataError
from amazon_gllvm.transforms import (
    log_offset,
    log_transform,
    relevel,
    spearman_screen,
    sqrt_transform,
    standardize,
    transform_covariates,
)


@pytest.fixture
def raw_covariates(tables):
    _, cov, _ = tables
    return cov.set_index(ID_COL)


def test_log_transform_adds_epsilon_before_log():
    x = pd.Series([0.0, 1.0, 10.0], name="DEFOR_KM2")
    t = log_transform(x, 1e-3)
    assert t.iloc[0] == pytest.approx(np.log(1e-3))
    assert t.iloc[2] == pytest.approx(np.log(10.001))


def test_log_transform_rejects_non_positive_input():
    with pytest.raises(InputDataError):
        log_transform(pd.Series([-1.0, 2.0], name="MPI"), 1e-6)


def test_sqrt_transform_uses_three_eighths():
    x = pd.Series([0.0, 1.0, 4.0], name="PASTURE_PCT")
    assert np.allclose(sqrt_transform(x), np.sqrt(x + 3.0 / 8.0))
    assert SQRT_SHIFT == pytest.approx(0.375)


def test_sqrt_transform_rejects_negative_values():
    with pytest.raises(InputDataError):
        sqrt_transform(pd.Series([-0.5, 1.0], name="EDGE_DENSITY"))


def test_standardize_uses_sample_sd():
    x = pd.Series([1.0, 2.0, 3.0, 4.0])
    s = standardize(x)
    assert s.mean() == pytest.approx(0.0)
    assert s.std(ddof=1) == pytest.approx(1.0)
    assert s.iloc[0] == pytest.approx((1.0 - 2.5) / x.std(ddof=1))


def test_standardize_rejects_constant():
    with pytest.raises(InputDataError, match="constant"):
        standardize(pd.Series([3.0, 3.0, 3.0], name="GINI"))


def test_transform_covariates_matches_per_variable_rules(raw_covariates):
    Xt = transform_covariates(raw_covariates)

    assert list(Xt.columns) == list(COVARIATE_TRANSFORMS) + [TTCLASS_COL]
    assert Xt.index.equals(raw_covariates.index)

    defor = np.log(raw_covariates["DEFOR_KM2"] + 1e-3)
    expected = (defor - defor.mean()) / defor.std(ddof=1)
    assert np.allclose(Xt["DEFOR_KM2"], expected)

    pasture = np.sqrt(raw_covariates["PASTURE_PCT"] + 3.0 / 8.0)
    expected = (pasture - pasture.mean()) / pasture.std(ddof=1)
    assert np.allclose(Xt["PASTURE_PCT"], expected)

    for col in COVARIATE_TRANSFORMS:
        assert Xt[col].mean() == pytest.approx(0.0, abs=1e-10)
        assert Xt[col].std(ddof=1) == pytest.approx(1.0)


def test_ttclass_reference_is_first_level(raw_covariates):
    Xt = transform_covariates(raw_covariates)
    assert isinstance(Xt[TTCLASS_COL].dtype, pd.CategoricalDtype)
    assert Xt[TTCLASS_COL].cat.categories[0] == TTCLASS_REFERENCE


def test_relevel_moves_reference_to_front():
    x = pd.Series(["b", "a", "forest_stable", "a"], name=TTCLASS_COL)
    r = relevel(x, "forest_stable")
    assert list(r.cat.categories) == ["forest_stable", "a", "b"]
    assert list(r.astype(str)) == ["b", "a", "forest_stable", "a"]


def test_relevel_requires_reference():
    with pytest.raises(InputDataError, match="Reference level"):
        relevel(pd.Series(["a", "b"], name=TTCLASS_COL), "forest_stable")


def test_non_numeric_covariate_is_rejected(raw_covariates):
    X = raw_covariates.copy()
    X["GINI"] = "high"
    with pytest.raises(InputDataError, match="numeric"):
        transform_covariates(X)


def test_missing_covariate_is_rejected(raw_covariates):
    with pytest.raises(InputDataError, match="Missing covariate"):
        transform_covariates(raw_covariates.drop(columns=["MPI"]))


def test_spearman_screen_flags_only_strong_pairs():
    a = np.arange(1, 11, dtype=float)
    X = pd.DataFrame({
        "a": a,
        "b": 2 * a + 1,
        "c": [3, 7, 1, 9, 5, 2, 10, 4, 8, 6],
        TTCLASS_COL: ["x"] * 10,
    })

    corr, flagged = spearman_screen(X, threshold=0.7)

    assert list(corr.columns) == ["a", "b", "c"]
    assert len(flagged) == 1
    assert (flagged.loc[0, "var1"], flagged.loc[0, "var2"]) == ("a", "b")
    assert flagged.loc[0, "rho"] == pytest.approx(1.0)


def test_spearman_screen_empty_when_uncorrelated():
    X = pd.DataFrame({"a": np.arange(10.0), "c": [3, 7, 1, 9, 5, 2, 10, 4, 8, 6]})
    _, flagged = spearman_screen(X, threshold=0.7)
    assert flagged.empty
    assert list(flagged.columns) == ["var1", "var2", "rho"]


def test_log_offset():
    pop = pd.Series([1000.0, 2500.0])
    assert np.allclose(log_offset(pop), np.log([1000.0, 2500.0]))
    with pytest.raises(InputDataError):
        log_offset(pd.Series([0.0, 10.0]))
