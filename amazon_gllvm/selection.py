from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd
from tqdm.auto import tqdm

from amazon_gllvm.config import AIC_TIE_TOL, SELECTION_GRID, SELECTION_NUM_LV
from amazon_gllvm.errors import ModelFitError
from amazon_gllvm.models import CandidateOutcome, GllvmEngine, GllvmInputs, ModelSpec
from amazon_gllvm.utils import log

# ============================================================
# MODEL SELECTION (family × row effect × method) BY AIC
#
# Candidates are fitted on the response matrix alone. A candidate that
# fails or does not converge is reported and skipped; the grid goes on.
# ============================================================

@dataclass(frozen=True)
class SelectionResult:
    outcomes: List[CandidateOutcome]
    table: pd.DataFrame
    best: CandidateOutcome


def build_selection_grid(grid=SELECTION_GRID, num_lv: int = SELECTION_NUM_LV) -> List[ModelSpec]:
    return [
        ModelSpec(name=name, family=family, row_eff=row_eff, method=method,
                  num_lv=num_lv, with_covariates=False, start_from=start)
        for name, family, row_eff, method, start in grid
    ]

def try_fit(engine: GllvmEngine, spec: ModelSpec, inputs: GllvmInputs) -> CandidateOutcome:
    try:
        fit = engine.fit(spec, inputs)
    except ModelFitError as e:
        log(f"⚠️ Fit failed for {spec.name} ({spec.label()}): {e.reason}")
        return CandidateOutcome(spec=spec, fit=None, status="failed", message=e.reason)

    if not fit.converged:
        log(f"⚠️ {spec.name} ({spec.label()}) did not converge; excluded from AIC ranking.")
        return CandidateOutcome(spec=spec, fit=fit, status="not converged",
                                message="optimizer did not report convergence")
    if not np.isfinite(fit.aic):
        log(f"⚠️ {spec.name} ({spec.label()}) returned a non-finite AIC; excluded.")
        return CandidateOutcome(spec=spec, fit=fit, status="failed", message="non-finite AIC")
    return CandidateOutcome(spec=spec, fit=fit, status="ok")

def run_candidates(engine: GllvmEngine, specs: Sequence[ModelSpec], inputs: GllvmInputs,
                   desc: str = "GLLVM candidates") -> List[CandidateOutcome]:
    outcomes = []
    for spec in tqdm(specs, desc=desc):
        outcomes.append(try_fit(engine, spec, inputs))
    return outcomes

def select_best_by_aic(outcomes: Sequence[CandidateOutcome], tol: float = AIC_TIE_TOL) -> CandidateOutcome:
    """
    Lowest AIC wins. Candidates within `tol` of the minimum are ties and the
    one with the fewest parameters is kept (then the first in grid order).
    """
    ok = [o for o in outcomes if o.ok]
    if not ok:
        names = ", ".join(o.spec.name for o in outcomes) or "none"
        raise ModelFitError("selection", f"no candidate fitted successfully ({names})")

    best_aic = min(o.fit.aic for o in ok)
    tied = [o for o in ok if o.fit.aic - best_aic <= tol]
    return min(tied, key=lambda o: o.fit.n_params)

def aic_table(outcomes: Sequence[CandidateOutcome], best: Optional[CandidateOutcome] = None) -> pd.DataFrame:
    rows = []
    for o in outcomes:
        f = o.fit
        rows.append({
            "model": o.spec.name,
            "family": o.spec.family,
            "row_eff": o.spec.row_eff,
            "method": o.spec.method,
            "num_lv": o.spec.num_lv,
            "covariates": o.spec.with_covariates,
            "start_from": o.spec.start_from or "",
            "AIC": f.aic if f is not None else np.nan,
            "loglik": f.loglik if f is not None else np.nan,
            "n_params": f.n_params if f is not None else np.nan,
            "status": o.status,
            "message": o.message,
        })
    table = pd.DataFrame(rows)
    if table.empty:
        return table

    valid = table["status"] == "ok"
    table["deltaAIC"] = np.nan
    if valid.any():
        table.loc[valid, "deltaAIC"] = table.loc[valid, "AIC"] - table.loc[valid, "AIC"].min()
    table["selected"] = False
    if best is not None:
        table["selected"] = table["model"] == best.spec.name
    return table

def run_model_selection(engine: GllvmEngine, y: pd.DataFrame,
                        specs: Optional[Sequence[ModelSpec]] = None,
                        tol: float = AIC_TIE_TOL) -> SelectionResult:
    specs = list(specs) if specs is not None else build_selection_grid()
    log(f"\nModel selection: {len(specs)} candidates on the response matrix alone.")

    outcomes = run_candidates(engine, specs, GllvmInputs(y=y), desc="Family / row-effect grid")
    best = select_best_by_aic(outcomes, tol=tol)
    table = aic_table(outcomes, best)

    n_bad = sum(not o.ok for o in outcomes)
    if n_bad:
        log(f"⚠️ {n_bad} of {len(outcomes)} candidates failed or did not converge.")
    log(f"Selected: {best.spec.name} ({best.spec.label()}), AIC = {best.fit.aic:.2f}")
    return SelectionResult(outcomes=outcomes, table=table, best=best)
