"""
Model specifications and fitted-model results.

A fitted GLLVM is produced by an engine (the R `gllvm` package through rpy2,
see `amazon_gllvm.gllvm_r`) and is treated as an immutable, opaque result:
every later stage only reads from it.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Optional

import numpy as np
import pandas as pd


@dataclass(frozen=True)
class ModelSpec:
    name: str
    family: str
    row_eff: bool
    method: str
    num_lv: int
    with_covariates: bool = False
    start_from: Optional[str] = None

    def with_lv(self, num_lv: int, name: Optional[str] = None) -> "ModelSpec":
        return replace(self, num_lv=num_lv, name=name or f"{self.name}_lv{num_lv}")

    def label(self) -> str:
        row = "row" if self.row_eff else "norow"
        cov = "X" if self.with_covariates else "null"
        return f"{self.family}/{self.method}/{row}/LV{self.num_lv}/{cov}"


@dataclass(frozen=True)
class GllvmInputs:
    """Response matrix plus optional covariates and offset, row-aligned."""
    y: pd.DataFrame
    X: Optional[pd.DataFrame] = None
    offset: Optional[pd.Series] = None

    def __post_init__(self):
        for name, other in (("X", self.X), ("offset", self.offset)):
            if other is not None and not self.y.index.equals(other.index):
                raise ValueError(f"{name} is not row-aligned with y")


@dataclass(frozen=True)
class FittedGllvm:
    spec: ModelSpec
    aic: float
    loglik: float
    n_params: int
    converged: bool
    lvs: pd.DataFrame
    loadings: pd.DataFrame
    residual_cov: pd.DataFrame
    residual_cor: pd.DataFrame
    fitted: pd.DataFrame
    row_effects: Optional[pd.Series] = None
    xcoef: Optional[pd.DataFrame] = None
    xcoef_se: Optional[pd.DataFrame] = None

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def residual_trace(self) -> float:
        """Total unexplained co-variation: trace of the residual covariance."""
        return float(np.trace(self.residual_cov.to_numpy(dtype=float)))


@dataclass(frozen=True)
class CandidateOutcome:
    spec: ModelSpec
    fit: Optional[FittedGllvm]
    status: str
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.fit is not None and self.status == "ok"


class GllvmEngine(ABC):
    """Anything able to fit a GLLVM for a given specification."""

    @abstractmethod
    def fit(self, spec: ModelSpec, inputs: GllvmInputs) -> FittedGllvm:
        """
        Fit `spec` to `inputs`.

        Raises ModelFitError when the underlying library fails. A fit that
        returns without converging is reported through `FittedGllvm.converged`.
        """
