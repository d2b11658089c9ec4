# ============================================================
# GLLVM – DISEASES × SOCIO-ENVIRONMENTAL DRIVERS (AMAZON LEGAL)
# FULL PIPELINE
#
#   1) load y (diseases), X (covariates), z (population)
#   2) transform covariates + Spearman screen
#   3) family / row-effect / method selection by AIC (no covariates)
#   4) null vs covariate models at LV = 1, 2, 3 (AIC) +
#      proportion of residual covariance explained
#   5) figures (+ optional tables) and GUIDE.TXT
#
# OUTPUT ROOT:
#   <OUT_ROOT>\
#       FIGURES\   ordinations, coefficients, correlations, scatter, network
#       TABLES\    AIC tables, coefficients, correlation / incidence matrices
#       GUIDE.TXT
# ============================================================

from dataclasses import dataclass
import os
from typing import Optional, Sequence
import warnings

import pandas as pd

from amazon_gllvm.config import (
    ASSOCIATION_FILE,
    DATA_DIR,
    EXPORT_FIGURES,
    EXPORT_TABLES,
    FIGURES_SUBDIR,
    ORDINATION_OVERLAYS,
    OUT_ROOT,
    SPEARMAN_THRESHOLD,
    TABLES_SUBDIR,
    TTCLASS_COL,
)
from amazon_gllvm.covariate_model import CovariateAnalysis, coefficient_matrix, fit_covariate_models
from amazon_gllvm.incidence import incidence_tables
from amazon_gllvm.loader import AnalysisData, load_analysis_data
from amazon_gllvm.models import GllvmEngine
from amazon_gllvm.network import build_association_graph, plot_association_network, read_association_matrix
from amazon_gllvm.plots import (
    plot_coefficient_heatmap,
    plot_coefficients,
    plot_correlation_heatmap,
    plot_observed_vs_predicted,
    plot_ordination,
    plot_ordination_by_covariate,
    plot_residual_correlations,
)
from amazon_gllvm.selection import SelectionResult, run_model_selection
from amazon_gllvm.transforms import log_offset, spearman_screen, transform_covariates
from amazon_gllvm.utils import ensure_dir, log, sanitize_filename, save_csv_nature, self_test_saving


@dataclass(frozen=True)
class AnalysisResults:
    data: AnalysisData
    covariates: pd.DataFrame
    offset: pd.Series
    spearman: pd.DataFrame
    flagged_pairs: pd.DataFrame
    selection: SelectionResult
    covariate_analysis: CovariateAnalysis
    observed_incidence: pd.DataFrame
    predicted_incidence: pd.DataFrame
    residual_incidence: pd.DataFrame

# ============================================================
# GUIDE
# ============================================================

def write_guide_txt(out_root: str, export_tables: bool, export_figures: bool):
    guide_path = os.path.join(out_root, "GUIDE.TXT")
    lines = [
        "GLLVM – diseases × socio-environmental drivers (Legal Amazon municipalities)",
        "",
        "Folder structure and content:",
        "",
        "FIGURES\\" + ("" if export_figures else "   (disabled in this run)"),
        "    - COVARIATES_SPEARMAN: Spearman matrix of covariates (|rho| >= threshold outlined).",
        "    - ORDINATION_*: municipalities in latent space by state, diseases as arrows;",
        "      ORDINATION_BY_<covariate>: same axes coloured by a transformed covariate.",
        "    - COEFFICIENTS / COEFFICIENT_HEATMAP: covariate effects with 95% CI and",
        "      covariate × disease heatmap (diverging scale centred at zero).",
        "    - RESIDUAL_CORRELATIONS: residual correlation without vs with covariates,",
        "      in hierarchical-clustering order.",
        "    - OBSERVED_VS_PREDICTED: annual incidence per 1000 inhabitants, 1:1 line.",
        "    - ASSOCIATION_NETWORK: curated disease–covariate network.",
        "",
        "TABLES\\" + ("" if export_tables else "   (disabled in this run)"),
        "    - AIC_SELECTION / AIC_COVARIATE_MODELS: every candidate with status and AIC.",
        "    - COEFFICIENTS: estimate, SE, 95% CI per covariate and disease.",
        "    - SPEARMAN / SPEARMAN_FLAGGED: covariate correlations and flagged pairs.",
        "    - RESIDUAL_COR_* / RESIDUAL_COV_*: residual matrices of null and covariate models.",
        "    - INCIDENCE_OBSERVED / _PREDICTED / _RESIDUAL: per 1000 inhabitants per year.",
        "    - SUMMARY: selected models, residual-covariance traces and proportion explained.",
        "",
        "Notes:",
        "    - Column names in CSV files are camelCase, without underscores.",
        "",
    ]
    with open(guide_path, "w", encoding="utf-8") as f:
        for line in lines:
            f.write(line + "\n")
    log(f"GUIDE written to: {guide_path}")

# ============================================================
# STAGES
# ============================================================

def export_tables_all(res: AnalysisResults, out_tables: str):
    sel = res.selection
    cov = res.covariate_analysis

    save_csv_nature(sel.table, os.path.join(out_tables, "AIC_SELECTION.csv"))
    save_csv_nature(cov.table, os.path.join(out_tables, "AIC_COVARIATE_MODELS.csv"))
    save_csv_nature(cov.coefficients, os.path.join(out_tables, "COEFFICIENTS.csv"))
    save_csv_nature(res.spearman, os.path.join(out_tables, "SPEARMAN.csv"), index=True)
    save_csv_nature(res.flagged_pairs, os.path.join(out_tables, "SPEARMAN_FLAGGED.csv"))
    save_csv_nature(cov.residual_cor_null, os.path.join(out_tables, "RESIDUAL_COR_NULL.csv"), index=True)
    save_csv_nature(cov.residual_cor_covariates, os.path.join(out_tables, "RESIDUAL_COR_COVARIATES.csv"), index=True)
    save_csv_nature(cov.null_model.residual_cov, os.path.join(out_tables, "RESIDUAL_COV_NULL.csv"), index=True)
    save_csv_nature(cov.selected.residual_cov, os.path.join(out_tables, "RESIDUAL_COV_COVARIATES.csv"), index=True)
    save_csv_nature(res.observed_incidence, os.path.join(out_tables, "INCIDENCE_OBSERVED.csv"), index=True)
    save_csv_nature(res.predicted_incidence, os.path.join(out_tables, "INCIDENCE_PREDICTED.csv"), index=True)
    save_csv_nature(res.residual_incidence, os.path.join(out_tables, "INCIDENCE_RESIDUAL.csv"), index=True)

    summary = pd.DataFrame([{
        "selectedFamilyModel": sel.best.spec.name,
        "family": sel.best.spec.family,
        "rowEffect": sel.best.spec.row_eff,
        "method": sel.best.spec.method,
        "covariateModel": cov.selected.name,
        "numLv": cov.selected.spec.num_lv,
        "aicCovariateModel": cov.selected.aic,
        "aicNullModel": cov.null_model.aic,
        "traceNull": cov.null_model.residual_trace,
        "traceCovariates": cov.selected.residual_trace,
        "proportionExplained": cov.proportion_explained,
    }])
    save_csv_nature(summary, os.path.join(out_tables, "SUMMARY.csv"))

def export_figures_all(res: AnalysisResults, out_figs: str,
                       overlays: Sequence[str] = ORDINATION_OVERLAYS):
    cov = res.covariate_analysis
    states = res.data.states

    plot_correlation_heatmap(res.spearman, os.path.join(out_figs, "COVARIATES_SPEARMAN"),
                             threshold=SPEARMAN_THRESHOLD)

    plot_ordination(res.selection.best.fit, states,
                    os.path.join(out_figs, f"ORDINATION_{res.selection.best.spec.name}"))
    plot_ordination(cov.null_model, states, os.path.join(out_figs, f"ORDINATION_{cov.null_model.name}"))
    plot_ordination(cov.selected, states, os.path.join(out_figs, f"ORDINATION_{cov.selected.name}"))
    for col in overlays:
        if col in res.covariates.columns:
            plot_ordination_by_covariate(
                cov.null_model, res.covariates[col],
                os.path.join(out_figs, sanitize_filename(f"ORDINATION_BY_{col}")),
            )

    plot_coefficients(cov.coefficients, os.path.join(out_figs, "COEFFICIENTS"))
    plot_coefficient_heatmap(coefficient_matrix(cov.selected), os.path.join(out_figs, "COEFFICIENT_HEATMAP"))
    plot_residual_correlations(cov.residual_cor_null, cov.residual_cor_covariates,
                               os.path.join(out_figs, "RESIDUAL_CORRELATIONS"))
    plot_observed_vs_predicted(res.observed_incidence, res.predicted_incidence,
                               os.path.join(out_figs, "OBSERVED_VS_PREDICTED"))

def run_network(association_path: str, out_figs: str):
    if not os.path.exists(association_path):
        log(f"⚠️ Association matrix not found ({association_path}); network skipped.")
        return None
    Q = read_association_matrix(association_path)
    G = build_association_graph(Q)
    plot_association_network(G, os.path.join(out_figs, "ASSOCIATION_NETWORK"))
    return G

def run_pipeline(engine: GllvmEngine,
                 data_dir: str = DATA_DIR,
                 out_root: str = OUT_ROOT,
                 export_tables: bool = EXPORT_TABLES,
                 export_figures: bool = EXPORT_FIGURES,
                 association_file: Optional[str] = ASSOCIATION_FILE) -> AnalysisResults:
    out_figs = os.path.join(out_root, FIGURES_SUBDIR)
    out_tables = os.path.join(out_root, TABLES_SUBDIR)
    for d in [out_root] + ([out_figs] if export_figures else []) + ([out_tables] if export_tables else []):
        ensure_dir(d)
    if export_figures:
        self_test_saving(out_root)

    # ------------------------------------------------------------
    # 1) DATA
    # ------------------------------------------------------------
    log("\n" + "=" * 70)
    log("1) Loading diseases / covariates / population")
    log("=" * 70)
    data = load_analysis_data(data_dir)

    # ------------------------------------------------------------
    # 2) COVARIATES
    # ------------------------------------------------------------
    log("\n" + "=" * 70)
    log("2) Covariate transforms + Spearman screen")
    log("=" * 70)
    Xt = transform_covariates(data.X)
    offset = log_offset(data.population)
    spearman, flagged = spearman_screen(data.X.drop(columns=[TTCLASS_COL], errors="ignore"))

    # ------------------------------------------------------------
    # 3) FAMILY / ROW EFFECT / METHOD
    # ------------------------------------------------------------
    log("\n" + "=" * 70)
    log("3) Model selection (no covariates)")
    log("=" * 70)
    selection = run_model_selection(engine, data.y)

    # ------------------------------------------------------------
    # 4) COVARIATE MODELS
    # ------------------------------------------------------------
    log("\n" + "=" * 70)
    log("4) Null vs covariate models, latent dimension by AIC")
    log("=" * 70)
    cov_analysis = fit_covariate_models(engine, data.y, Xt, offset, selection.best.spec)

    obs_inc, pred_inc, resid_inc = incidence_tables(data.y, cov_analysis.selected.fitted, data.population)

    res = AnalysisResults(
        data=data,
        covariates=Xt,
        offset=offset,
        spearman=spearman,
        flagged_pairs=flagged,
        selection=selection,
        covariate_analysis=cov_analysis,
        observed_incidence=obs_inc,
        predicted_incidence=pred_inc,
        residual_incidence=resid_inc,
    )

    # ------------------------------------------------------------
    # 5) OUTPUTS
    # ------------------------------------------------------------
    log("\n" + "=" * 70)
    log("5) Figures and tables")
    log("=" * 70)
    if export_tables:
        export_tables_all(res, out_tables)
    if export_figures:
        export_figures_all(res, out_figs)
        if association_file:
            run_network(os.path.join(data_dir, association_file), out_figs)

    write_guide_txt(out_root, export_tables, export_figures)

    log(f"\n✅ DONE. Proportion of residual covariance explained by covariates: "
        f"{cov_analysis.proportion_explained:.3f}")
    log(f"Outputs in: {out_root}")
    return res

# ============================================================
# MAIN
# ============================================================

def main():
    warnings.filterwarnings("ignore")
    from amazon_gllvm.gllvm_r import RGllvmEngine

    engine = RGllvmEngine()
    run_pipeline(engine)

if __name__ == "__main__":
    main()
