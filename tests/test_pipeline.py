import os

import pandas as pd
import pytest

from amazon_gllvm.config import DISEASE_LABELS
from amazon_gllvm.pipeline import run_pipeline

from conftest import N_MUN, FakeEngine


def _association_matrix(path):
    labels = ["Malaria (rural)", "Dengue", "DEFOR_KM2", "POVERTY_PCT"]
    q = pd.DataFrame(0.0, index=labels, columns=labels)
    q.loc["Malaria (rural)", "DEFOR_KM2"] = 0.4
    q.loc["Dengue", "POVERTY_PCT"] = -0.25
    q.to_csv(os.path.join(path, "association_matrix.csv"))


def test_full_run_with_tables_and_figures(tmp_path, data_dir):
    _association_matrix(data_dir)
    out_root = str(tmp_path / "out")

    res = run_pipeline(FakeEngine(aics={"nb_va_row": 40.0}), data_dir=data_dir, out_root=out_root,
                       export_tables=True, export_figures=True)

    assert res.selection.best.spec.name == "nb_va_row"
    cov = res.covariate_analysis
    assert cov.selected.spec.family == res.selection.best.spec.family
    assert cov.selected.spec.row_eff == res.selection.best.spec.row_eff
    assert cov.proportion_explained == pytest.approx(0.5)
    assert res.observed_incidence.shape == (N_MUN, len(DISEASE_LABELS))
    assert res.predicted_incidence.index.equals(res.observed_incidence.index)

    figs = os.path.join(out_root, "FIGURES")
    for name in ("COVARIATES_SPEARMAN", "COEFFICIENTS", "COEFFICIENT_HEATMAP",
                 "RESIDUAL_CORRELATIONS", "OBSERVED_VS_PREDICTED", "ORDINATION_nb_va_row",
                 "ORDINATION_BY_DEFOR_KM2", "ASSOCIATION_NETWORK"):
        for ext in (".png", ".pdf", ".svg"):
            assert os.path.exists(os.path.join(figs, name + ext)), name + ext

    tables = os.path.join(out_root, "TABLES")
    summary = pd.read_csv(os.path.join(tables, "SUMMARY.csv"), encoding="utf-8-sig")
    assert summary.loc[0, "proportionExplained"] == pytest.approx(0.5)
    assert summary.loc[0, "selectedFamilyModel"] == "nb_va_row"

    aic = pd.read_csv(os.path.join(tables, "AIC_SELECTION.csv"), encoding="utf-8-sig")
    assert len(aic) == 8
    assert "nParams" in aic.columns
    assert not any("_" in c for c in aic.columns)

    coef = pd.read_csv(os.path.join(tables, "COEFFICIENTS.csv"), encoding="utf-8-sig")
    assert {"covariate", "disease", "estimate", "ciLow", "ciHigh"} <= set(coef.columns)

    spearman = pd.read_csv(os.path.join(tables, "SPEARMAN.csv"), index_col=0, encoding="utf-8-sig")
    assert list(spearman.index) == list(spearman.columns)
    assert set(spearman.columns) <= set(coef["covariate"])

    rcor = pd.read_csv(os.path.join(tables, "RESIDUAL_COR_NULL.csv"), index_col=0, encoding="utf-8-sig")
    assert list(rcor.index) == list(rcor.columns) == list(DISEASE_LABELS.values())

    assert os.path.exists(os.path.join(out_root, "GUIDE.TXT"))


def test_default_run_writes_no_tables(tmp_path, data_dir):
    out_root = str(tmp_path / "out")
    run_pipeline(FakeEngine(), data_dir=data_dir, out_root=out_root,
                 export_tables=False, export_figures=False)

    assert os.path.exists(os.path.join(out_root, "GUIDE.TXT"))
    assert not os.path.exists(os.path.join(out_root, "TABLES"))
    assert not os.path.exists(os.path.join(out_root, "FIGURES"))


def test_missing_association_matrix_is_skipped(tmp_path, data_dir):
    out_root = str(tmp_path / "out")
    run_pipeline(FakeEngine(), data_dir=data_dir, out_root=out_root,
                 export_tables=False, export_figures=True)
    assert not os.path.exists(os.path.join(out_root, "FIGURES", "ASSOCIATION_NETWORK.png"))
    assert os.path.exists(os.path.join(out_root, "FIGURES", "COEFFICIENTS.png"))
