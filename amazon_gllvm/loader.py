from dataclasses import dataclass
import os
from typing import Dict, List

import numpy as np
import pandas as pd

from amazon_gllvm.config import (
    COVARIATE_FILE,
    COVARIATE_TRANSFORMS,
    CSV_ENCODING,
    CSV_SEP,
    DATA_DIR,
    DISEASE_FILE,
    DISEASE_LABELS,
    ID_COL,
    MISSING_TOKEN,
    POPULATION_COL,
    POPULATION_FILE,
    STATE_COL,
    TTCLASS_COL,
)
from amazon_gllvm.errors import InputDataError
from amazon_gllvm.utils import assert_exists, log

# ============================================================
# DATA LOADER
#
# Three tables keyed by municipality id, read once:
#   y : disease counts (9 columns) + state label
#   X : covariates (raw, untransformed)
#   z : population
# Row order is municipality identity and must match across y, X, z.
# ============================================================

@dataclass(frozen=True)
class AnalysisData:
    y: pd.DataFrame
    states: pd.Series
    X: pd.DataFrame
    population: pd.Series

    @property
    def n_municipalities(self) -> int:
        return self.y.shape[0]

    @property
    def diseases(self) -> List[str]:
        return list(self.y.columns)


def read_table(path: str, what: str, sep: str = CSV_SEP, encoding: str = CSV_ENCODING,
               missing_token: str = MISSING_TOKEN, id_col: str = ID_COL) -> pd.DataFrame:
    assert_exists(path, what)
    df = pd.read_csv(path, sep=sep, encoding=encoding, na_values=[missing_token],
                     dtype={id_col: str})
    df.columns = [str(c).strip() for c in df.columns]
    if id_col not in df.columns:
        raise InputDataError(f"{what} has no '{id_col}' column: {os.path.basename(path)}")
    df[id_col] = df[id_col].str.strip()
    dup = df[id_col].duplicated()
    if dup.any():
        raise InputDataError(
            f"{what} has duplicated municipality ids: {df.loc[dup, id_col].head(5).tolist()}"
        )
    return df.set_index(id_col)

def require_columns(df: pd.DataFrame, cols: List[str], what: str):
    missing = [c for c in cols if c not in df.columns]
    if missing:
        raise InputDataError(f"{what} is missing required columns: {missing}")

def read_diseases(path: str, labels: Dict[str, str] = DISEASE_LABELS,
                  state_col: str = STATE_COL, **kwargs):
    df = read_table(path, "Disease table", **kwargs)
    require_columns(df, list(labels) + [state_col], "Disease table")

    y = df[list(labels)].apply(pd.to_numeric, errors="coerce")
    bad = [c for c in labels if y[c].isna().sum() > df[c].isna().sum()]
    if bad:
        raise InputDataError(f"Disease table has non-numeric counts in: {bad}")
    if (y < 0).any().any():
        raise InputDataError("Disease table has negative counts.")

    y = y.rename(columns=labels)
    states = df[state_col].astype("string").str.strip().str.upper()
    states.name = state_col
    return y, states

def read_covariates(path: str, transforms: Dict = COVARIATE_TRANSFORMS,
                    ttclass_col: str = TTCLASS_COL, **kwargs) -> pd.DataFrame:
    df = read_table(path, "Covariate table", **kwargs)
    required = list(transforms) + [ttclass_col]
    require_columns(df, required, "Covariate table")
    return df[required].copy()

def read_population(path: str, population_col: str = POPULATION_COL, **kwargs) -> pd.Series:
    df = read_table(path, "Population table", **kwargs)
    require_columns(df, [population_col], "Population table")
    z = pd.to_numeric(df[population_col], errors="coerce")
    z.name = population_col
    return z

def validate_alignment(y: pd.DataFrame, X: pd.DataFrame, z: pd.Series):
    """
    y, X and z must hold the same municipalities in the same order.
    Nothing is reindexed here: a mismatch is a fatal input error.
    """
    sizes = {"y": y.shape[0], "X": X.shape[0], "z": z.shape[0]}
    if len(set(sizes.values())) != 1:
        raise InputDataError(f"Row counts differ across inputs: {sizes}")

    for name, idx in (("X", X.index), ("z", z.index)):
        if not y.index.equals(idx):
            diff = np.flatnonzero(y.index.to_numpy() != idx.to_numpy())
            first = int(diff[0]) if diff.size else 0
            raise InputDataError(
                f"Municipality order differs between y and {name} "
                f"(first mismatch at row {first}: {y.index[first]} vs {idx[first]})"
            )

def complete_cases(data: AnalysisData) -> AnalysisData:
    keep = (
        data.y.notna().all(axis=1)
        & data.X.notna().all(axis=1)
        & data.population.notna()
        & data.states.notna()
    )
    n_drop = int((~keep).sum())
    if n_drop:
        log(f"⚠️ Dropping {n_drop} municipalities with missing values (complete cases kept: {int(keep.sum())}).")
    return AnalysisData(
        y=data.y.loc[keep].astype(float),
        states=data.states.loc[keep],
        X=data.X.loc[keep],
        population=data.population.loc[keep].astype(float),
    )

def load_analysis_data(data_dir: str = DATA_DIR,
                       disease_file: str = DISEASE_FILE,
                       covariate_file: str = COVARIATE_FILE,
                       population_file: str = POPULATION_FILE,
                       drop_incomplete: bool = True,
                       **kwargs) -> AnalysisData:
    y, states = read_diseases(os.path.join(data_dir, disease_file), **kwargs)
    X = read_covariates(os.path.join(data_dir, covariate_file), **kwargs)
    z = read_population(os.path.join(data_dir, population_file), **kwargs)

    validate_alignment(y, X, z)
    log(f"Loaded {y.shape[0]} municipalities × {y.shape[1]} diseases, {X.shape[1]} covariates.")

    data = AnalysisData(y=y, states=states, X=X, population=z)
    if drop_incomplete:
        data = complete_cases(data)

    if (data.population <= 0).any():
        bad = data.population.index[data.population <= 0].tolist()
        raise InputDataError(f"Population must be positive (offending municipalities: {bad[:5]})")
    return data
