# ============================================================
# ASSOCIATION NETWORK (manually curated coefficient matrix)
#
# The matrix Q is prepared by the analyst outside the pipeline:
#   rows = columns = diseases + covariates
#   disease-disease and covariate-covariate cells are zero
# Edges are cells with |coefficient| >= NETWORK_EDGE_THRESHOLD.
# Nothing here is derived from the fitted models.
# ============================================================

from typing import Iterable, Optional

import matplotlib.pyplot as plt
import networkx as nx
import numpy as np
import pandas as pd

from amazon_gllvm.config import (
    CSV_ENCODING,
    CSV_SEP,
    DISEASE_LABELS,
    MISSING_TOKEN,
    NETWORK_COVARIATE_COLOR,
    NETWORK_DISEASE_COLOR,
    NETWORK_EDGE_THRESHOLD,
    NETWORK_LAYOUT_SEED,
    NETWORK_NEGATIVE_COLOR,
    NETWORK_POSITIVE_COLOR,
)
from amazon_gllvm.errors import InputDataError
from amazon_gllvm.utils import assert_exists, log, save_fig_all


def read_association_matrix(path: str, sep: str = CSV_SEP, encoding: str = CSV_ENCODING) -> pd.DataFrame:
    assert_exists(path, "Association matrix")
    Q = pd.read_csv(path, sep=sep, encoding=encoding, index_col=0, na_values=[MISSING_TOKEN])
    Q.index = [str(i).strip() for i in Q.index]
    Q.columns = [str(c).strip() for c in Q.columns]
    validate_association_matrix(Q)
    return Q.astype(float).fillna(0.0)

def validate_association_matrix(Q: pd.DataFrame):
    if Q.shape[0] != Q.shape[1]:
        raise InputDataError(f"Association matrix must be square (got {Q.shape[0]}×{Q.shape[1]})")
    if list(Q.index) != list(Q.columns):
        raise InputDataError("Association matrix must use the same labels, in the same order, "
                             "for rows and columns")
    not_numeric = [c for c in Q.columns if not pd.api.types.is_numeric_dtype(Q[c])]
    if not_numeric:
        raise InputDataError(f"Association matrix has non-numeric columns: {not_numeric}")

def build_association_graph(Q: pd.DataFrame,
                            diseases: Optional[Iterable[str]] = None,
                            threshold: float = NETWORK_EDGE_THRESHOLD,
                            drop_isolated: bool = True) -> nx.Graph:
    """
    Undirected graph; for each pair the larger-magnitude of Q[i, j] and
    Q[j, i] is the signed edge weight.
    """
    validate_association_matrix(Q)
    disease_set = set(diseases) if diseases is not None else set(DISEASE_LABELS.values())

    G = nx.Graph()
    labels = list(Q.index)
    for lab in labels:
        G.add_node(lab, kind="disease" if lab in disease_set else "covariate")

    vals = Q.to_numpy(float)
    for i in range(len(labels)):
        for j in range(i + 1, len(labels)):
            a, b = vals[i, j], vals[j, i]
            w = a if abs(a) >= abs(b) else b
            if np.isfinite(w) and w != 0 and abs(w) >= threshold:
                G.add_edge(labels[i], labels[j], weight=float(w), absWeight=float(abs(w)))

    if drop_isolated:
        G.remove_nodes_from([n for n in list(G.nodes) if G.degree(n) == 0])

    log(f"Association network: {G.number_of_nodes()} nodes, {G.number_of_edges()} edges "
        f"(|coef| >= {threshold}).")
    return G

def plot_association_network(G: nx.Graph, out_base: str, seed: int = NETWORK_LAYOUT_SEED):
    if G.number_of_nodes() == 0:
        log("⚠️ Association network is empty; nothing to plot.")
        return

    pos = nx.spring_layout(G, seed=seed, weight="absWeight")
    diseases = [n for n, k in G.nodes(data="kind") if k == "disease"]
    covariates = [n for n, k in G.nodes(data="kind") if k != "disease"]

    edges = list(G.edges(data=True))
    wmax = max((d["absWeight"] for _, _, d in edges), default=1.0)
    widths = [0.8 + 3.2 * d["absWeight"] / wmax for _, _, d in edges]
    colors = [NETWORK_POSITIVE_COLOR if d["weight"] > 0 else NETWORK_NEGATIVE_COLOR for _, _, d in edges]

    fig, ax = plt.subplots(figsize=(7.2, 6.4))
    nx.draw_networkx_edges(G, pos, ax=ax, edgelist=[(u, v) for u, v, _ in edges],
                           width=widths, edge_color=colors, alpha=0.8)
    nx.draw_networkx_nodes(G, pos, ax=ax, nodelist=covariates, node_color=NETWORK_COVARIATE_COLOR,
                           node_shape="s", node_size=380, edgecolors="black", linewidths=0.5)
    nx.draw_networkx_nodes(G, pos, ax=ax, nodelist=diseases, node_color=NETWORK_DISEASE_COLOR,
                           node_shape="o", node_size=520, edgecolors="black", linewidths=0.5)
    nx.draw_networkx_labels(G, pos, ax=ax, font_size=7)

    ax.plot([], [], color=NETWORK_POSITIVE_COLOR, lw=2, label="Positive")
    ax.plot([], [], color=NETWORK_NEGATIVE_COLOR, lw=2, label="Negative")
    ax.legend(frameon=False, loc="lower left")
    ax.set_axis_off()
    save_fig_all(fig, out_base)
