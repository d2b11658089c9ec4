import os

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

from amazon_gllvm.config import (
    COVARIATE_TRANSFORMS,
    DISEASE_LABELS,
    ID_COL,
    POPULATION_COL,
    STATE_COL,
    TTCLASS_COL,
    TTCLASS_REFERENCE,
)
from amazon_gllvm.errors import ModelFitError
from amazon_gllvm.models import FittedGllvm, GllvmEngine

N_MUN = 12
STATES = ["PA", "AM", "MT"]
TTCLASSES = [TTCLASS_REFERENCE, "forest_to_pasture", "pasture_stable"]


def make_tables(n: int = N_MUN, seed: int = 7):
    rng = np.random.default_rng(seed)
    ids = [f"15{i:05d}" for i in range(n)]

    dis = pd.DataFrame({raw: rng.poisson(4.0, size=n) for raw in DISEASE_LABELS})
    dis.insert(0, ID_COL, ids)
    dis[STATE_COL] = [STATES[i % len(STATES)].lower() for i in range(n)]

    cov = pd.DataFrame({c: rng.gamma(2.0, 1.5, size=n) for c in COVARIATE_TRANSFORMS})
    cov.loc[0, "DEFOR_KM2"] = 0.0
    cov[TTCLASS_COL] = [TTCLASSES[i % len(TTCLASSES)] for i in range(n)]
    cov.insert(0, ID_COL, ids)

    pop = pd.DataFrame({ID_COL: ids, POPULATION_COL: rng.integers(2_000, 50_000, size=n)})
    return dis, cov, pop


def write_tables(path, dis, cov, pop):
    os.makedirs(path, exist_ok=True)
    dis.to_csv(os.path.join(path, "diseases_by_municipality.csv"), index=False)
    cov.to_csv(os.path.join(path, "covariates_by_municipality.csv"), index=False)
    pop.to_csv(os.path.join(path, "population_by_municipality.csv"), index=False)
    return str(path)


@pytest.fixture
def tables():
    return make_tables()


@pytest.fixture
def data_dir(tmp_path, tables):
    return write_tables(tmp_path / "data", *tables)


def make_fit(spec, y: pd.DataFrame, X=None, aic: float = 100.0, n_params: int = 20,
             converged: bool = True, trace_scale: float = 1.0, seed: int = 0) -> FittedGllvm:
    rng = np.random.default_rng(seed)
    diseases = list(y.columns)
    lv_cols = [f"LV{k + 1}" for k in range(spec.num_lv)]

    lvs = pd.DataFrame(rng.normal(size=(y.shape[0], spec.num_lv)), index=y.index, columns=lv_cols)
    loadings = pd.DataFrame(rng.normal(size=(len(diseases), spec.num_lv)), index=diseases, columns=lv_cols)

    a = rng.normal(size=(len(diseases), len(diseases)))
    cov = a @ a.T / len(diseases) + np.eye(len(diseases))
    cov = cov / np.trace(cov) * len(diseases) * trace_scale
    sd = np.sqrt(np.diag(cov))
    cor = cov / np.outer(sd, sd)

    xcoef = xcoef_se = None
    if spec.with_covariates and X is not None:
        terms = [c for c in X.columns if c != TTCLASS_COL]
        xcoef = pd.DataFrame(rng.normal(scale=0.5, size=(len(diseases), len(terms))),
                             index=diseases, columns=terms)
        xcoef_se = pd.DataFrame(np.full((len(diseases), len(terms)), 0.1),
                                index=diseases, columns=terms)

    return FittedGllvm(
        spec=spec,
        aic=aic,
        loglik=-aic / 2.0 + n_params,
        n_params=n_params,
        converged=converged,
        lvs=lvs,
        loadings=loadings,
        residual_cov=pd.DataFrame(cov, index=diseases, columns=diseases),
        residual_cor=pd.DataFrame(cor, index=diseases, columns=diseases),
        fitted=y.astype(float) * 0.9 + 0.1,
        row_effects=pd.Series(0.0, index=y.index) if spec.row_eff else None,
        xcoef=xcoef,
        xcoef_se=xcoef_se,
    )


class FakeEngine(GllvmEngine):
    """In-test engine: AIC / params / failures chosen per model name."""

    def __init__(self, aics=None, n_params=None, fail=(), not_converged=(),
                 covariate_trace_scale: float = 0.5):
        self.aics = aics or {}
        self.n_params = n_params or {}
        self.fail = set(fail)
        self.not_converged = set(not_converged)
        self.covariate_trace_scale = covariate_trace_scale
        self.calls = []

    def fit(self, spec, inputs):
        self.calls.append((spec, inputs))
        if spec.name in self.fail:
            raise ModelFitError(spec.name, "optimisation failed")
        scale = self.covariate_trace_scale if spec.with_covariates else 1.0
        return make_fit(
            spec, inputs.y, inputs.X,
            aic=self.aics.get(spec.name, 100.0 + 10 * spec.num_lv),
            n_params=self.n_params.get(spec.name, 10 + 9 * spec.num_lv),
            converged=spec.name not in self.not_converged,
            trace_scale=scale,
        )


@pytest.fixture
def fake_engine():
    return FakeEngine()
