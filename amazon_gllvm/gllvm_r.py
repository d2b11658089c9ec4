# ============================================================
# R BRIDGE – gllvm (generalized linear latent variable models)
#
# All estimation (VA / LA approximations, TMB optimisation, residual
# covariance) happens in the R package `gllvm`; this module only:
#   1) ships y / X / offset to R
#   2) calls one fit per candidate specification
#   3) brings back AIC, latent variables, loadings, coefficients,
#      residual covariance/correlation and fitted values
#
# Fits named as a warm start are kept in the R session (gllvm_fits) so
# that later candidates can start from them (start.fit).
# ============================================================

import os
from typing import Iterable, List, Optional

os.environ.setdefault("RPY2_CFFI_MODE", "ABI")

import numpy as np
import pandas as pd

import rpy2.robjects as ro
from rpy2.robjects import pandas2ri
from rpy2.robjects.conversion import localconverter
from rpy2.rinterface_lib.embedded import RRuntimeError
from rpy2.rinterface_lib.sexp import NULLType

from amazon_gllvm.config import R_N_INIT, R_SEED, SELECTION_GRID
from amazon_gllvm.errors import ModelFitError
from amazon_gllvm.models import FittedGllvm, GllvmEngine, GllvmInputs, ModelSpec
from amazon_gllvm.utils import log

R_CODE = r"""
suppressPackageStartupMessages({
  if (!requireNamespace("gllvm", quietly = TRUE)) stop("Package 'gllvm' is required.")
  library(gllvm)
})

gllvm_fits <- list()

fit_gllvm_candidate <- function(name, y_df, x_df, offset_vec, family, num_lv,
                                row_eff, method, start_name, keep_fit, seed, n_init) {

  y <- as.matrix(y_df)
  storage.mode(y) <- "numeric"

  args <- list(
    y         = y,
    family    = family,
    num.lv    = as.integer(num_lv),
    method    = method,
    seed      = as.integer(seed),
    n.init    = as.integer(n_init),
    sd.errors = !is.null(x_df)
  )
  args$row.eff <- if (isTRUE(row_eff)) "random" else FALSE

  if (!is.null(x_df)) args$X <- x_df

  if (!is.null(offset_vec)) {
    args$offset <- matrix(rep(as.numeric(offset_vec), ncol(y)),
                          nrow = nrow(y), ncol = ncol(y))
  }

  if (!is.na(start_name)) {
    if (is.null(gllvm_fits[[start_name]])) {
      message("start fit '", start_name, "' not available; ",
              name, " uses default starting values")
    } else {
      args$start.fit <- gllvm_fits[[start_name]]
    }
  }

  fit <- do.call(gllvm::gllvm, args)
  if (isTRUE(keep_fit)) gllvm_fits[[name]] <<- fit

  ll <- logLik(fit)
  conv <- fit$convergence
  converged <- if (is.null(conv)) TRUE else if (is.logical(conv)) isTRUE(all(conv)) else isTRUE(all(conv == 0))
  converged <- converged && is.finite(as.numeric(ll))

  rc <- getResidualCov(fit)

  theta <- as.matrix(fit$params$theta)[, seq_len(num_lv), drop = FALSE]

  rp <- fit$params$row.params
  if (is.null(rp)) rp <- fit$params$row.params.random
  if (!is.null(rp) && length(rp) != nrow(y)) rp <- NULL

  xcoef <- fit$params$Xcoef
  xcoef_sd <- NULL
  if (!is.null(xcoef) && !is.null(fit$sd) && !is.null(fit$sd$Xcoef)) xcoef_sd <- fit$sd$Xcoef

  list(
    aic          = as.numeric(AIC(fit)),
    loglik       = as.numeric(ll),
    n_params     = as.numeric(attr(ll, "df")),
    converged    = converged,
    lvs          = as.matrix(getLV(fit)),
    loadings     = theta,
    residual_cov = as.matrix(rc$cov),
    residual_cor = as.matrix(getResidualCor(fit)),
    fitted       = as.matrix(fitted(fit)),
    row_effects  = if (is.null(rp)) NULL else as.numeric(rp),
    xcoef        = if (is.null(xcoef)) NULL else as.matrix(xcoef),
    xcoef_sd     = if (is.null(xcoef_sd)) NULL else as.matrix(xcoef_sd),
    xcoef_names  = if (is.null(xcoef)) NULL else colnames(as.matrix(xcoef))
  )
}
"""

def gllvm_available() -> bool:
    try:
        return bool(ro.r('requireNamespace("gllvm", quietly = TRUE)')[0])
    except RRuntimeError:
        return False

def py_to_r_df(df: pd.DataFrame):
    with localconverter(ro.default_converter + pandas2ri.converter):
        return ro.conversion.py2rpy(df)

def _is_null(obj) -> bool:
    return obj is None or isinstance(obj, NULLType)

def _r_matrix(obj) -> Optional[np.ndarray]:
    if _is_null(obj):
        return None
    dims = tuple(int(d) for d in ro.r["dim"](obj))
    return np.array(list(obj), dtype=float).reshape(dims, order="F")

def _r_vector(obj) -> Optional[np.ndarray]:
    if _is_null(obj):
        return None
    return np.array(list(obj), dtype=float)

def _r_strings(obj) -> Optional[List[str]]:
    if _is_null(obj):
        return None
    return [str(x) for x in obj]

class RGllvmEngine(GllvmEngine):
    """Fits candidate GLLVMs with the R package `gllvm`."""

    def __init__(self, seed: int = R_SEED, n_init: int = R_N_INIT,
                 keep_fits: Optional[Iterable[str]] = None):
        self.seed = seed
        self.n_init = n_init
        # only fits named here stay in the R session (warm starts)
        if keep_fits is None:
            keep_fits = {start for *_, start in SELECTION_GRID if start}
        self.keep_fits = set(keep_fits)
        ro.r(R_CODE)
        self._fit_fun = ro.globalenv["fit_gllvm_candidate"]

    def fit(self, spec: ModelSpec, inputs: GllvmInputs) -> FittedGllvm:
        y = inputs.y
        x_r = ro.NULL
        if spec.with_covariates:
            if inputs.X is None:
                raise ModelFitError(spec.name, "covariate model requested without X")
            x_r = py_to_r_df(inputs.X)
        offset_r = ro.NULL if inputs.offset is None else ro.FloatVector(inputs.offset.astype(float).tolist())
        start_r = ro.NA_Character if spec.start_from is None else spec.start_from

        try:
            res = self._fit_fun(
                spec.name,
                py_to_r_df(y),
                x_r,
                offset_r,
                spec.family,
                int(spec.num_lv),
                bool(spec.row_eff),
                spec.method,
                start_r,
                spec.name in self.keep_fits,
                int(self.seed),
                int(self.n_init),
            )
        except RRuntimeError as e:
            raise ModelFitError(spec.name, str(e).strip()) from e

        return self._to_fitted(spec, y, res)

    @staticmethod
    def _to_fitted(spec: ModelSpec, y: pd.DataFrame, res) -> FittedGllvm:
        diseases = list(y.columns)
        lv_cols = [f"LV{k + 1}" for k in range(spec.num_lv)]

        lvs = pd.DataFrame(_r_matrix(res.rx2("lvs")), index=y.index, columns=lv_cols)
        loadings = pd.DataFrame(_r_matrix(res.rx2("loadings")), index=diseases, columns=lv_cols)
        rcov = pd.DataFrame(_r_matrix(res.rx2("residual_cov")), index=diseases, columns=diseases)
        rcor = pd.DataFrame(_r_matrix(res.rx2("residual_cor")), index=diseases, columns=diseases)
        fitted = pd.DataFrame(_r_matrix(res.rx2("fitted")), index=y.index, columns=diseases)

        row_effects = _r_vector(res.rx2("row_effects"))
        if row_effects is not None:
            row_effects = pd.Series(row_effects, index=y.index, name="rowEffect")

        xcoef = xcoef_se = None
        xmat = _r_matrix(res.rx2("xcoef"))
        if xmat is not None:
            terms = _r_strings(res.rx2("xcoef_names")) or [f"X{k + 1}" for k in range(xmat.shape[1])]
            xcoef = pd.DataFrame(xmat, index=diseases, columns=terms)
            sd = _r_matrix(res.rx2("xcoef_sd"))
            if sd is not None:
                xcoef_se = pd.DataFrame(sd, index=diseases, columns=terms)

        fit = FittedGllvm(
            spec=spec,
            aic=float(res.rx2("aic")[0]),
            loglik=float(res.rx2("loglik")[0]),
            n_params=int(round(float(res.rx2("n_params")[0]))),
            converged=bool(res.rx2("converged")[0]),
            lvs=lvs,
            loadings=loadings,
            residual_cov=rcov,
            residual_cor=rcor,
            fitted=fitted,
            row_effects=row_effects,
            xcoef=xcoef,
            xcoef_se=xcoef_se,
        )
        log(f"  [{spec.name}] {spec.label()}  AIC = {fit.aic:.2f}  (df = {fit.n_params}, converged = {fit.converged})")
        return fit
