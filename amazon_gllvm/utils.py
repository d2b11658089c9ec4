import os
import re
from typing import Dict

import matplotlib
import matplotlib.pyplot as plt
import pandas as pd

from amazon_gllvm.config import FIG_DPI, LINE_BLUE, MAX_PATH_SAFE
from amazon_gllvm.errors import InputDataError

# ============================================================
# UTILS
# ============================================================

def log(msg: str):
    print(msg)

def assert_exists(path: str, what: str):
    if not os.path.exists(path):
        raise InputDataError(f"{what} not found: {path}")

def ensure_dir(path: str):
    os.makedirs(path, exist_ok=True)

def sanitize_filename(s: str, max_len: int = 150) -> str:
    s = str(s)
    s = re.sub(r'[<>:"/\\|?*]', "_", s)
    s = re.sub(r"[\x00-\x1f]", "_", s)
    s = re.sub(r"\s+", "_", s)
    s = s.strip().strip(".")
    if len(s) > max_len:
        s = s[:max_len]
    return s

def safe_out_base(out_base: str) -> str:
    out_base = os.path.normpath(out_base)
    d = os.path.dirname(out_base)
    if d:
        os.makedirs(d, exist_ok=True)
    if len(out_base) > MAX_PATH_SAFE:
        base = sanitize_filename(os.path.basename(out_base), max_len=80)
        out_base = os.path.join(d, base)
    return out_base

def save_fig_all(fig, out_base: str):
    out_base = safe_out_base(out_base)
    for ext in [".png", ".pdf", ".svg"]:
        fig.savefig(out_base + ext, dpi=FIG_DPI, bbox_inches="tight")
    plt.close(fig)
    log(f"  saved: {out_base}.png/.pdf/.svg")

def self_test_saving(out_root: str):
    test_base = os.path.join(out_root, "_TEST_SAVEFIG")
    fig, ax = plt.subplots(figsize=(4.5, 2.8))
    ax.plot([0, 1, 2], [0, 1, 0], lw=2, color=LINE_BLUE)
    ax.set_xlabel("x")
    ax.set_ylabel("y")
    save_fig_all(fig, test_base)
    log(f"✅ Self-test figure writing OK (backend: {matplotlib.get_backend()}).")

# ============================================================
# CSV WITH CAMELCASE COLUMN NAMES (NO UNDERSCORES)
# ============================================================

COLUMN_NAME_MAP: Dict[str, str] = {
    "AIC": "aic",
    "CD_MUN": "municipality",
    "UF": "state",
    "POP": "population",
    "n_params": "nParams",
    "row_eff": "rowEffect",
    "num_lv": "numLv",
    "ci_low": "ciLow",
    "ci_high": "ciHigh",
}

def camel_case(name: str) -> str:
    sc = str(name)
    if sc in COLUMN_NAME_MAP:
        return COLUMN_NAME_MAP[sc]
    if "_" not in sc:
        return sc
    parts = [p for p in sc.split("_") if p]
    if not parts:
        return sc
    return parts[0].lower() + "".join(p.capitalize() for p in parts[1:])

def rename_for_nature(df: pd.DataFrame) -> pd.DataFrame:
    """
    Return a copy of df with camelCase column names (no underscores).
    Readable labels such as "Malaria (rural)" are kept as they are.
    """
    return df.rename(columns={c: camel_case(c) for c in df.columns})

def is_label_matrix(df: pd.DataFrame) -> bool:
    return df.shape[0] == df.shape[1] and list(df.index) == list(df.columns)

def save_csv_nature(df: pd.DataFrame, path: str, index: bool = False):
    """
    Save DataFrame with camelCase column names, UTF-8 BOM,
    without altering the original df in memory.

    Square matrices written with their index (rows and columns carry the
    same labels) keep the labels as they are on both axes.
    """
    d = os.path.dirname(path)
    if d:
        ensure_dir(d)
    df_out = df.copy()
    if not (index and is_label_matrix(df_out)):
        df_out = rename_for_nature(df_out)
    if index and df_out.index.name is not None:
        df_out.index = df_out.index.rename(camel_case(df_out.index.name))
    df_out.to_csv(path, index=index, encoding="utf-8-sig")
    log(f"  table: {path}")
