import pandas as pd

from amazon_gllvm.config import OBSERVATION_YEARS, PER_POPULATION

# ============================================================
# INCIDENCE (annualized, per 1000 inhabitants)
#
#   incidence = count / OBSERVATION_YEARS / population * PER_POPULATION
#
# Applied identically to observed counts, fitted counts and residuals.
# ============================================================

def to_incidence(counts: pd.DataFrame, population: pd.Series,
                 years: int = OBSERVATION_YEARS, per: int = PER_POPULATION) -> pd.DataFrame:
    if not counts.index.equals(population.index):
        raise ValueError("counts and population must share the same municipality index")
    return counts.div(years).div(population, axis=0) * per

def from_incidence(incidence: pd.DataFrame, population: pd.Series,
                   years: int = OBSERVATION_YEARS, per: int = PER_POPULATION) -> pd.DataFrame:
    if not incidence.index.equals(population.index):
        raise ValueError("incidence and population must share the same municipality index")
    return incidence.mul(population, axis=0) * years / per

def incidence_tables(observed: pd.DataFrame, fitted: pd.DataFrame, population: pd.Series):
    """Observed, predicted and residual (observed - predicted) incidence."""
    obs_inc = to_incidence(observed, population)
    pred_inc = to_incidence(fitted, population)
    resid_inc = to_incidence(observed - fitted, population)
    return obs_inc, pred_inc, resid_inc
