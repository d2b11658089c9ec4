from typing import Dict, Optional, Tuple

import numpy as np
import pandas as pd

from amazon_gllvm.config import (
    COVARIATE_TRANSFORMS,
    SPEARMAN_THRESHOLD,
    SQRT_SHIFT,
    TTCLASS_COL,
    TTCLASS_REFERENCE,
)
from amazon_gllvm.errors import InputDataError
from amazon_gllvm.utils import log

# ============================================================
# COVARIATE TRANSFORMS
#
#   log  : standardize(log(x + eps))      eps documented per variable
#   sqrt : standardize(sqrt(x + 3/8))     pasture, edge density
#   ttclass releveled to a fixed reference category
# ============================================================

def validate_covariates(X: pd.DataFrame, transforms: Dict = COVARIATE_TRANSFORMS,
                        ttclass_col: Optional[str] = TTCLASS_COL):
    required = list(transforms) + ([ttclass_col] if ttclass_col else [])
    missing = [c for c in required if c not in X.columns]
    if missing:
        raise InputDataError(f"Missing covariate columns: {missing}")

    not_numeric = [c for c in transforms if not pd.api.types.is_numeric_dtype(X[c])]
    if not_numeric:
        raise InputDataError(f"Covariates must be numeric: {not_numeric}")

    unknown = sorted({kind for kind, _ in transforms.values()} - {"log", "sqrt"})
    if unknown:
        raise InputDataError(f"Unknown transform kind(s): {unknown}")

def log_transform(x: pd.Series, eps: float) -> pd.Series:
    shifted = x.astype(float) + eps
    if (shifted <= 0).any():
        raise InputDataError(
            f"log({x.name} + {eps}) has non-positive input "
            f"(min {float(x.min())}); check the documented offset."
        )
    return np.log(shifted)

def sqrt_transform(x: pd.Series, shift: float = SQRT_SHIFT) -> pd.Series:
    if (x < 0).any():
        raise InputDataError(f"sqrt transform expects non-negative values in {x.name} (min {float(x.min())})")
    return np.sqrt(x.astype(float) + shift)

def standardize(x: pd.Series) -> pd.Series:
    sd = x.std(ddof=1)
    if not np.isfinite(sd) or sd == 0:
        raise InputDataError(f"Covariate {x.name} is constant; cannot standardize.")
    return (x - x.mean()) / sd

def relevel(x: pd.Series, reference: str) -> pd.Series:
    """Categorical with `reference` as the first (baseline) level."""
    values = x.astype("string").str.strip()
    levels = sorted(values.dropna().unique().tolist())
    if reference not in levels:
        raise InputDataError(f"Reference level '{reference}' not found in {x.name}: {levels}")
    levels = [reference] + [lv for lv in levels if lv != reference]
    return pd.Series(pd.Categorical(values, categories=levels), index=x.index, name=x.name)

def transform_covariates(X: pd.DataFrame,
                         transforms: Dict = COVARIATE_TRANSFORMS,
                         ttclass_col: Optional[str] = TTCLASS_COL,
                         ttclass_reference: str = TTCLASS_REFERENCE) -> pd.DataFrame:
    validate_covariates(X, transforms, ttclass_col)

    out = {}
    for col, (kind, eps) in transforms.items():
        if kind == "log":
            t = log_transform(X[col], eps)
        else:
            t = sqrt_transform(X[col])
        out[col] = standardize(t)

    Xt = pd.DataFrame(out, index=X.index)
    if ttclass_col:
        Xt[ttclass_col] = relevel(X[ttclass_col], ttclass_reference)
    return Xt

def log_offset(population: pd.Series) -> pd.Series:
    if (population <= 0).any():
        raise InputDataError("Population must be positive to be used as a log offset.")
    return np.log(population.astype(float))

# ============================================================
# MULTICOLLINEARITY SCREEN (advisory)
# ============================================================

def spearman_screen(X: pd.DataFrame, threshold: float = SPEARMAN_THRESHOLD) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Spearman correlation among numeric covariates and the pairs with
    |rho| >= threshold. Nothing is dropped: the analyst decides.
    """
    num = X.select_dtypes(include=[np.number])
    corr = num.corr(method="spearman")

    rows = []
    cols = list(corr.columns)
    for i in range(len(cols)):
        for j in range(i + 1, len(cols)):
            rho = corr.iat[i, j]
            if np.isfinite(rho) and abs(rho) >= threshold:
                rows.append({"var1": cols[i], "var2": cols[j], "rho": float(rho)})

    flagged = pd.DataFrame(rows, columns=["var1", "var2", "rho"])
    if not flagged.empty:
        flagged = (
            flagged.assign(absRho=flagged["rho"].abs())
            .sort_values("absRho", ascending=False)
            .drop(columns="absRho")
            .reset_index(drop=True)
        )
        log(f"⚠️ {len(flagged)} covariate pair(s) with |Spearman rho| >= {threshold}:")
        for _, r in flagged.iterrows():
            log(f"    {r['var1']} ~ {r['var2']}: rho = {r['rho']:.2f}")
    else:
        log(f"No covariate pair with |Spearman rho| >= {threshold}.")
    return corr, flagged
