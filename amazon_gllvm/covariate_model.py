from dataclasses import dataclass
from typing import Dict, Sequence

import numpy as np
import pandas as pd

from amazon_gllvm.config import AIC_TIE_TOL, LV_GRID, Z_95
from amazon_gllvm.errors import ModelFitError
from amazon_gllvm.models import CandidateOutcome, FittedGllvm, GllvmEngine, GllvmInputs, ModelSpec
from amazon_gllvm.selection import aic_table, run_candidates, select_best_by_aic
from amazon_gllvm.utils import log

# ============================================================
# COVARIATE MODELS (selected family / row effect, LV = 1, 2, 3)
#
#   null model      : y ~ offset(log pop) + LVs
#   covariate model : y ~ offset(log pop) + X + LVs
#
# Dimension chosen by AIC among covariate models whose null counterpart also
# fitted; the null model with the same number of LVs is the baseline for the
# residual covariance.
# ============================================================

@dataclass(frozen=True)
class CovariateAnalysis:
    null_models: Dict[int, CandidateOutcome]
    covariate_models: Dict[int, CandidateOutcome]
    table: pd.DataFrame
    selected: FittedGllvm
    null_model: FittedGllvm
    coefficients: pd.DataFrame
    proportion_explained: float

    @property
    def residual_cor_null(self) -> pd.DataFrame:
        return self.null_model.residual_cor

    @property
    def residual_cor_covariates(self) -> pd.DataFrame:
        return self.selected.residual_cor


def proportion_residual_covariance_explained(cov_with: pd.DataFrame, cov_without: pd.DataFrame) -> float:
    """
    1 - trace(Sigma_with_covariates) / trace(Sigma_without_covariates).

    Uses residual covariance matrices (not correlations). The value is
    expected in [0, 1] but may be negative when covariates worsen the
    residual structure; it is returned as is.
    """
    tr_with = float(np.trace(np.asarray(cov_with, dtype=float)))
    tr_without = float(np.trace(np.asarray(cov_without, dtype=float)))
    if not np.isfinite(tr_without) or tr_without <= 0:
        raise ValueError(f"Baseline residual covariance trace must be positive (got {tr_without})")
    return 1.0 - tr_with / tr_without

def coefficient_table(fit: FittedGllvm, z: float = Z_95) -> pd.DataFrame:
    """Long table: one row per (covariate term, disease) with Wald 95% interval."""
    if fit.xcoef is None:
        return pd.DataFrame(columns=["covariate", "disease", "estimate", "se",
                                     "ci_low", "ci_high", "significant"])

    est = fit.xcoef.stack()
    est.index = est.index.set_names(["disease", "covariate"])
    out = est.rename("estimate").reset_index()

    if fit.xcoef_se is not None:
        se = fit.xcoef_se.stack()
        se.index = se.index.set_names(["disease", "covariate"])
        out = out.merge(se.rename("se").reset_index(), on=["disease", "covariate"], how="left")
    else:
        out["se"] = np.nan

    out["ci_low"] = out["estimate"] - z * out["se"]
    out["ci_high"] = out["estimate"] + z * out["se"]
    out["significant"] = (out["ci_low"] > 0) | (out["ci_high"] < 0)
    return out[["covariate", "disease", "estimate", "se", "ci_low", "ci_high", "significant"]]

def coefficient_matrix(fit: FittedGllvm) -> pd.DataFrame:
    """Covariates (rows) × diseases (columns)."""
    if fit.xcoef is None:
        raise ValueError(f"{fit.name} has no covariate coefficients")
    return fit.xcoef.T.copy()

def fit_covariate_models(engine: GllvmEngine,
                         y: pd.DataFrame,
                         X: pd.DataFrame,
                         offset: pd.Series,
                         base: ModelSpec,
                         lv_grid: Sequence[int] = LV_GRID,
                         tol: float = AIC_TIE_TOL) -> CovariateAnalysis:
    log(f"\nCovariate models: {base.family}/{base.method}/"
        f"{'row effect' if base.row_eff else 'no row effect'}, LV in {list(lv_grid)}")

    null_specs = [
        ModelSpec(name=f"null_lv{k}", family=base.family, row_eff=base.row_eff,
                  method=base.method, num_lv=k, with_covariates=False)
        for k in lv_grid
    ]
    cov_specs = [
        ModelSpec(name=f"cov_lv{k}", family=base.family, row_eff=base.row_eff,
                  method=base.method, num_lv=k, with_covariates=True)
        for k in lv_grid
    ]

    null_out = run_candidates(engine, null_specs, GllvmInputs(y=y, offset=offset),
                              desc="Null models (no covariates)")
    cov_out = run_candidates(engine, cov_specs, GllvmInputs(y=y, X=X, offset=offset),
                             desc="Covariate models")

    null_models = {o.spec.num_lv: o for o in null_out}
    covariate_models = {o.spec.num_lv: o for o in cov_out}

    # a latent dimension is ranked only when both fits of its pair succeeded
    paired = [k for k in lv_grid if null_models[k].ok and covariate_models[k].ok]
    for k in lv_grid:
        if k not in paired:
            log(f"⚠️ LV = {k} excluded: null and covariate fits are not both available.")
    if not paired:
        raise ModelFitError("covariate models", "no latent dimension with both a null and a "
                                                "covariate fit")

    best = select_best_by_aic([covariate_models[k] for k in paired], tol=tol)
    k = best.spec.num_lv
    baseline = null_models[k]

    prop = proportion_residual_covariance_explained(best.fit.residual_cov, baseline.fit.residual_cov)

    log(f"Selected covariate model: {best.spec.name} (LV = {k}), AIC = {best.fit.aic:.2f}")
    log(f"  trace(residual cov) without covariates: {baseline.fit.residual_trace:.4f}")
    log(f"  trace(residual cov) with covariates:    {best.fit.residual_trace:.4f}")
    log(f"  proportion of residual covariance explained: {prop:.3f}")
    if prop < 0:
        log("⚠️ Covariates increased the residual covariance (negative proportion explained).")
    elif prop > 1:
        log("⚠️ Proportion explained above 1; check the residual covariance matrices.")

    table = aic_table(null_out + cov_out)
    table["paired"] = table["num_lv"].isin(paired)
    table["selected"] = table["model"].isin([best.spec.name, baseline.spec.name])

    return CovariateAnalysis(
        null_models=null_models,
        covariate_models=covariate_models,
        table=table,
        selected=best.fit,
        null_model=baseline.fit,
        coefficients=coefficient_table(best.fit),
        proportion_explained=prop,
    )
