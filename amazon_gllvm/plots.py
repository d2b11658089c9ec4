# ============================================================
# PLOTS – read-only views over fitted models
#
#   ordination biplots (by state / by covariate)
#   coefficient plot + covariate × disease heatmap
#   residual correlations with vs without covariates (clustered order)
#   covariate Spearman heatmap
#   observed vs predicted incidence
# ============================================================

import math
from typing import List, Optional

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from matplotlib.ticker import MaxNLocator
from scipy.cluster.hierarchy import leaves_list, linkage
from scipy.spatial.distance import squareform

from amazon_gllvm.config import (
    HEATMAP_CMAP,
    LINE_BLUE,
    RC_PARAMS,
    SHADE_BLUEGRAY,
    STATE_COLORS,
    STATE_MARKERS,
)
from amazon_gllvm.models import FittedGllvm
from amazon_gllvm.utils import save_fig_all

plt.rcParams.update(RC_PARAMS)

# ============================================================
# ORDINATION
# ============================================================

def _ordination_axes(fit: FittedGllvm):
    lvs = fit.lvs
    if lvs.shape[1] >= 2:
        return lvs.iloc[:, 0].to_numpy(float), lvs.iloc[:, 1].to_numpy(float), "LV1", "LV2"
    # one latent variable: LV1 against municipality order
    return np.arange(lvs.shape[0], dtype=float), lvs.iloc[:, 0].to_numpy(float), "Municipality", "LV1"

def _add_disease_loadings(ax, fit: FittedGllvm, x: np.ndarray, y: np.ndarray):
    if fit.loadings.shape[1] < 2:
        return
    load = fit.loadings.iloc[:, :2].to_numpy(float)
    lmax = np.nanmax(np.abs(load))
    smax = np.nanmax(np.abs(np.concatenate([x, y])))
    if not np.isfinite(lmax) or lmax == 0:
        return
    scale = 0.8 * smax / lmax
    for (lx, ly), name in zip(load * scale, fit.loadings.index):
        ax.annotate("", xy=(lx, ly), xytext=(0, 0),
                    arrowprops=dict(arrowstyle="->", color=LINE_BLUE, lw=1.0))
        ax.text(lx * 1.05, ly * 1.05, name, color=LINE_BLUE, fontsize=7,
                ha="center", va="center")

def plot_ordination(fit: FittedGllvm, states: pd.Series, out_base: str, biplot: bool = True):
    """Municipalities in latent space, coloured and marked by state; diseases as arrows."""
    x, y, xlabel, ylabel = _ordination_axes(fit)
    st = states.reindex(fit.lvs.index).astype(str).to_numpy()

    fig, ax = plt.subplots(figsize=(6.4, 5.6))
    fallback = plt.get_cmap("tab10")
    for i, s in enumerate(sorted(set(st))):
        m = st == s
        ax.scatter(x[m], y[m], s=14, alpha=0.8,
                   color=STATE_COLORS.get(s, fallback(i % 10)),
                   marker=STATE_MARKERS[i % len(STATE_MARKERS)],
                   label=s, edgecolors="none")

    if biplot and fit.lvs.shape[1] >= 2:
        _add_disease_loadings(ax, fit, x, y)

    ax.axhline(0, lw=0.6, color="black", alpha=0.3)
    if fit.lvs.shape[1] >= 2:
        ax.axvline(0, lw=0.6, color="black", alpha=0.3)
    ax.set_xlabel(xlabel)
    ax.set_ylabel(ylabel)
    ax.set_title("")
    ax.legend(title="State", frameon=False, ncols=2, loc="best", markerscale=1.5)
    save_fig_all(fig, out_base)

def plot_ordination_by_covariate(fit: FittedGllvm, covariate: pd.Series, out_base: str,
                                 cmap: str = "viridis"):
    x, y, xlabel, ylabel = _ordination_axes(fit)
    values = pd.to_numeric(covariate.reindex(fit.lvs.index), errors="coerce").to_numpy(float)

    fig, ax = plt.subplots(figsize=(6.4, 5.2))
    sc = ax.scatter(x, y, c=values, cmap=cmap, s=14, alpha=0.9, edgecolors="none")
    cb = fig.colorbar(sc, ax=ax, shrink=0.8)
    cb.set_label(str(covariate.name))
    ax.axhline(0, lw=0.6, color="black", alpha=0.3)
    ax.set_xlabel(xlabel)
    ax.set_ylabel(ylabel)
    ax.set_title("")
    save_fig_all(fig, out_base)

# ============================================================
# COEFFICIENTS
# ============================================================

def plot_coefficients(coef: pd.DataFrame, out_base: str, ncols: int = 4):
    """
    One panel per covariate term: estimate and 95% CI per disease.
    Intervals excluding zero are drawn in black, the others in grey.
    """
    if coef is None or coef.empty:
        return

    terms = list(dict.fromkeys(coef["covariate"]))
    ncols = min(ncols, len(terms))
    nrows = math.ceil(len(terms) / ncols)
    fig, axes = plt.subplots(nrows, ncols, figsize=(2.6 * ncols, 0.25 * coef["disease"].nunique() * nrows + 1.2 * nrows),
                             sharey=True, squeeze=False)

    for ax, term in zip(axes.ravel(), terms):
        sub = coef[coef["covariate"] == term].reset_index(drop=True)
        y_pos = np.arange(sub.shape[0])
        colors = np.where(sub["significant"], "black", "#999999")
        for i, r in sub.iterrows():
            ax.errorbar(r["estimate"], y_pos[i],
                        xerr=[[r["estimate"] - r["ci_low"]], [r["ci_high"] - r["estimate"]]],
                        fmt="o", color=colors[i], ecolor=colors[i],
                        elinewidth=1.0, capsize=2.0, markersize=3.5)
        ax.axvline(0, color="gray", linestyle="--", linewidth=0.8)
        ax.set_yticks(y_pos)
        ax.set_yticklabels(sub["disease"].tolist())
        ax.set_title(str(term))
        ax.xaxis.set_major_locator(MaxNLocator(4))

    for ax in axes.ravel()[len(terms):]:
        ax.set_visible(False)

    plt.tight_layout()
    save_fig_all(fig, out_base)

def plot_coefficient_heatmap(coef_matrix: pd.DataFrame, out_base: str, cmap: str = HEATMAP_CMAP,
                             annotate: bool = True):
    """Covariates × diseases, diverging scale centred at 0 and bounded by max |coefficient|."""
    if coef_matrix is None or coef_matrix.empty:
        return
    vmax = float(np.nanmax(np.abs(coef_matrix.to_numpy(float))))
    if not np.isfinite(vmax) or vmax == 0:
        vmax = 1.0

    fig, ax = plt.subplots(figsize=(0.7 * coef_matrix.shape[1] + 3.0, 0.32 * coef_matrix.shape[0] + 1.6))
    sns.heatmap(coef_matrix, ax=ax, cmap=cmap, center=0.0, vmin=-vmax, vmax=vmax,
                annot=annotate, fmt=".2f", annot_kws={"fontsize": 6},
                linewidths=0.4, linecolor="white", cbar_kws={"label": "Coefficient"})
    ax.set_xlabel("")
    ax.set_ylabel("")
    ax.set_title("")
    plt.setp(ax.get_xticklabels(), rotation=45, ha="right")
    save_fig_all(fig, out_base)

# ============================================================
# CORRELATION MATRICES
# ============================================================

def hierarchical_order(corr: pd.DataFrame, method: str = "average") -> List[str]:
    """Leaf order of a hierarchical clustering on 1 - correlation."""
    labels = list(corr.index)
    if len(labels) < 3:
        return labels
    d = 1.0 - corr.to_numpy(float)
    d = np.nan_to_num((d + d.T) / 2.0, nan=1.0)
    np.fill_diagonal(d, 0.0)
    d = np.clip(d, 0.0, None)
    z = linkage(squareform(d, checks=False), method=method)
    return [labels[i] for i in leaves_list(z)]

def plot_residual_correlations(cor_without: pd.DataFrame, cor_with: pd.DataFrame, out_base: str,
                               titles=("Without covariates", "With covariates")):
    """Side-by-side residual correlations, both in the clustering order of the first matrix."""
    order = hierarchical_order(cor_without)
    mats = [cor_without.loc[order, order], cor_with.reindex(index=order, columns=order)]

    n = len(order)
    fig, axes = plt.subplots(1, 2, figsize=(2 * (0.45 * n + 2.2), 0.45 * n + 1.8))
    for i, (ax, mat, title) in enumerate(zip(axes, mats, titles)):
        mask = np.triu(np.ones(mat.shape, dtype=bool), k=1)
        sns.heatmap(mat, ax=ax, cmap=HEATMAP_CMAP, vmin=-1, vmax=1, center=0, mask=mask,
                    square=True, annot=True, fmt=".2f", annot_kws={"fontsize": 6},
                    cbar=i == 1, cbar_kws={"label": "Residual correlation", "shrink": 0.7})
        ax.set_title(title)
        ax.set_xlabel("")
        ax.set_ylabel("")
        plt.setp(ax.get_xticklabels(), rotation=45, ha="right")
    plt.tight_layout()
    save_fig_all(fig, out_base)

def plot_correlation_heatmap(corr: pd.DataFrame, out_base: str, threshold: Optional[float] = None):
    """Spearman matrix of covariates; cells with |rho| >= threshold are outlined."""
    order = hierarchical_order(corr)
    mat = corr.loc[order, order]

    n = len(order)
    fig, ax = plt.subplots(figsize=(0.32 * n + 2.5, 0.32 * n + 2.0))
    mask = np.triu(np.ones(mat.shape, dtype=bool), k=1)
    sns.heatmap(mat, ax=ax, cmap=HEATMAP_CMAP, vmin=-1, vmax=1, center=0, mask=mask,
                square=True, linewidths=0.3, linecolor="white",
                cbar_kws={"label": "Spearman rho", "shrink": 0.7})
    if threshold is not None:
        vals = mat.to_numpy(float)
        for i in range(n):
            for j in range(i):
                if abs(vals[i, j]) >= threshold:
                    ax.add_patch(plt.Rectangle((j, i), 1, 1, fill=False, edgecolor="black", lw=1.0))
    ax.set_title("")
    ax.set_xlabel("")
    ax.set_ylabel("")
    save_fig_all(fig, out_base)

# ============================================================
# OBSERVED VS PREDICTED INCIDENCE
# ============================================================

def plot_observed_vs_predicted(observed: pd.DataFrame, predicted: pd.DataFrame, out_base: str,
                               ncols: int = 3):
    """One panel per disease, incidence per 1000 inhabitants per year, with the 1:1 line."""
    diseases = list(observed.columns)
    ncols = min(ncols, len(diseases))
    nrows = math.ceil(len(diseases) / ncols)
    fig, axes = plt.subplots(nrows, ncols, figsize=(2.8 * ncols, 2.6 * nrows), squeeze=False)

    for ax, dis in zip(axes.ravel(), diseases):
        o = observed[dis].to_numpy(float)
        p = predicted[dis].reindex(observed.index).to_numpy(float)
        ax.scatter(o, p, s=8, alpha=0.7, color=LINE_BLUE, edgecolors="none")
        finite = np.concatenate([o[np.isfinite(o)], p[np.isfinite(p)]])
        hi = float(finite.max()) if finite.size else 1.0
        lo = min(0.0, float(finite.min())) if finite.size else 0.0
        ax.plot([lo, hi], [lo, hi], lw=1.0, color=SHADE_BLUEGRAY, linestyle="--")
        ax.set_title(dis)
        ax.set_xlabel("Observed incidence")
        ax.set_ylabel("Predicted incidence")
        ax.xaxis.set_major_locator(MaxNLocator(4))
        ax.yaxis.set_major_locator(MaxNLocator(4))

    for ax in axes.ravel()[len(diseases):]:
        ax.set_visible(False)

    plt.tight_layout()
    save_fig_all(fig, out_base)
