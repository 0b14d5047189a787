"""LC50 model fitting by maximum likelihood.

Minimises the binomial-probit negative log-likelihood over
``[alpha, gamma, beta]`` with ``scipy.optimize.minimize`` (BFGS), then
derives covariances from the Moore-Penrose pseudo-inverse of a
finite-difference Hessian at the optimum.  The pseudo-inverse tolerates the
singular Hessians produced by collinear stressor designs or weakly
identified groups.

Starting values default to the per-group probit regressions of
:func:`initialize_lc50`.
"""

from __future__ import annotations

import logging
import warnings
from collections.abc import Callable, Mapping, Sequence

import numpy as np
from numpy.typing import ArrayLike, NDArray
from scipy.optimize import minimize

from pystatstox.lc50._common import LC50Params, LC50Result, OptimizerResult
from pystatstox.lc50._data import ObservationSet, check_observations
from pystatstox.lc50._exceptions import ValidationError
from pystatstox.lc50._initialize import initial_estimates
from pystatstox.lc50._likelihood import (
    binomial_deviance,
    fitted_probability,
    negative_log_likelihood,
)

logger = logging.getLogger(__name__)

# Relative step for the finite-difference Hessian
HESSIAN_EPS = 1e-4


# ---------------------------------------------------------------------------
# Numerical Hessian
# ---------------------------------------------------------------------------

def _numerical_hessian(
    func: Callable[[NDArray], float],
    theta: NDArray[np.floating],
    eps: float = HESSIAN_EPS,
) -> NDArray[np.floating]:
    """Central-difference Hessian of *func* at *theta*.

    Step sizes are ``eps * max(|theta_j|, 1)``.  The result is symmetrised.
    """
    k = len(theta)
    h = eps * np.maximum(np.abs(theta), 1.0)
    f0 = func(theta)
    H = np.zeros((k, k))

    for i in range(k):
        ei = np.zeros(k)
        ei[i] = h[i]
        f_plus = func(theta + ei)
        f_minus = func(theta - ei)
        H[i, i] = (f_plus - 2.0 * f0 + f_minus) / h[i] ** 2

        for j in range(i):
            ej = np.zeros(k)
            ej[j] = h[j]
            f_pp = func(theta + ei + ej)
            f_pm = func(theta + ei - ej)
            f_mp = func(theta - ei + ej)
            f_mm = func(theta - ei - ej)
            H[i, j] = H[j, i] = (f_pp - f_pm - f_mp + f_mm) / (4.0 * h[i] * h[j])

    return 0.5 * (H + H.T)


# ---------------------------------------------------------------------------
# Starting values
# ---------------------------------------------------------------------------

def _beta_from_loglc50(obs: ObservationSet, loglc50: NDArray[np.floating]) -> NDArray[np.floating]:
    """Least-squares ``beta`` reproducing per-group log LC50s on every sample."""
    target = np.asarray(loglc50, dtype=np.float64)[obs.codes]
    beta, *_ = np.linalg.lstsq(obs.x, target, rcond=None)
    return beta


def _check_block(values: object, size: int, name: str) -> NDArray[np.floating]:
    arr = np.asarray(values, dtype=np.float64).reshape(-1)
    if arr.shape[0] != size:
        raise ValidationError(
            f"start['{name}'] must have length {size}, got {arr.shape[0]}", argument="start"
        )
    if not np.all(np.isfinite(arr)):
        raise ValidationError(f"start['{name}'] contains non-finite values", argument="start")
    return arr


def _resolve_start(
    obs: ObservationSet,
    start: LC50Params | Mapping[str, ArrayLike] | None,
) -> LC50Params:
    """Turn the ``start`` argument of :func:`fit_lc50` into full parameters."""
    G, p = obs.n_groups, obs.n_coef

    if start is None:
        init = initial_estimates(obs)
        return LC50Params(
            alpha=init.alpha,
            gamma=init.gamma,
            beta=_beta_from_loglc50(obs, init.loglc50),
        )

    if isinstance(start, LC50Params):
        start = {"alpha": start.alpha, "gamma": start.gamma, "beta": start.beta}

    missing = [k for k in ("alpha", "gamma") if k not in start]
    if missing:
        raise ValidationError(f"start is missing {missing}", argument="start")
    alpha = _check_block(start["alpha"], G, "alpha")
    gamma = _check_block(start["gamma"], G, "gamma")

    if "beta" in start:
        beta = _check_block(start["beta"], p, "beta")
    elif "loglc50" in start:
        beta = _beta_from_loglc50(obs, _check_block(start["loglc50"], G, "loglc50"))
    else:
        raise ValidationError("start must contain either 'beta' or 'loglc50'", argument="start")

    return LC50Params(alpha=alpha, gamma=gamma, beta=beta)


# ---------------------------------------------------------------------------
# Core fit on validated data
# ---------------------------------------------------------------------------

def _fit_observations(
    obs: ObservationSet,
    start: LC50Params,
    *,
    max_iter: int = 1000,
    gtol: float = 1e-5,
) -> LC50Result:
    """Maximum likelihood fit from explicit starting parameters.

    Used by :func:`fit_lc50` and by the sequential analysis of deviance,
    which refits truncated designs.
    """
    G, p, n = obs.n_groups, obs.n_coef, obs.n_obs
    theta0 = start.to_array()

    def objective(theta: NDArray) -> float:
        return negative_log_likelihood(theta, obs)

    opt = minimize(
        objective,
        theta0,
        method="BFGS",
        options={"maxiter": max_iter, "gtol": gtol},
    )
    converged = bool(opt.success)
    n_iter = int(opt.nit)

    if not converged:
        warnings.warn(
            f"LC50 optimizer did not converge after {n_iter} iterations. "
            f"Message: {opt.message}",
            RuntimeWarning,
            stacklevel=3,
        )

    theta_hat = np.asarray(opt.x, dtype=np.float64)
    nll_min = float(opt.fun)
    hessian = _numerical_hessian(objective, theta_hat)
    logger.debug(
        "LC50 fit: nll=%.6g after %d iterations (converged=%s)", nll_min, n_iter, converged
    )

    # --- Parameters and covariances ---
    params = LC50Params.from_array(theta_hat, G)
    s_alpha, s_gamma, s_beta = LC50Params.block_slices(G)
    H_inv = np.linalg.pinv(hessian)
    alpha_cov = H_inv[s_alpha, s_alpha]
    gamma_cov = H_inv[s_gamma, s_gamma]
    cov_scaled = H_inv[s_beta, s_beta]

    Xg = obs.group_design
    loglc50 = Xg @ params.beta if p else np.zeros(G)
    loglc50_cov = Xg @ cov_scaled @ Xg.T

    # --- Deviances ---
    fitted = fitted_probability(params, obs.x, obs.concentration, obs.codes)
    survivors, n_trials = obs.survivors, obs.n_trials
    deviance = binomial_deviance(survivors, n_trials, fitted)
    pooled = survivors.sum() / n_trials.sum()
    null_deviance = binomial_deviance(survivors, n_trials, pooled)

    optimizer = OptimizerResult(
        estimate=theta_hat,
        minimum=nll_min,
        hessian=hessian,
        converged=converged,
        n_iter=n_iter,
        message=str(opt.message),
        max_iter=max_iter,
        gtol=gtol,
    )

    return LC50Result(
        alpha=params.alpha,
        gamma=params.gamma,
        coefficients=params.beta,
        alpha_cov=alpha_cov,
        gamma_cov=gamma_cov,
        cov_scaled=cov_scaled,
        loglc50=loglc50,
        loglc50_cov=loglc50_cov,
        group_levels=obs.group_levels,
        column_names=obs.column_names,
        fitted_values=fitted,
        log_likelihood=-nll_min,
        aic=2.0 * (p + 2 * G + nll_min),
        deviance=deviance,
        df_residual=n - (p + G),
        null_deviance=null_deviance,
        df_null=n - (1 + G),
        converged=converged,
        n_iter=n_iter,
        x=obs.x,
        y=obs.response,
        concentration=obs.concentration,
        group=obs.group,
        assign=obs.assign,
        term_labels=obs.term_labels,
        response_name=obs.response_name,
        optimizer=optimizer,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def fit_lc50(
    x: ArrayLike,
    response: ArrayLike,
    concentration: ArrayLike,
    group: ArrayLike,
    *,
    start: LC50Params | Mapping[str, ArrayLike] | None = None,
    column_names: Sequence[str] | None = None,
    assign: Sequence[int] | None = None,
    term_labels: Sequence[str] | None = None,
    response_name: str = "response",
    max_iter: int = 1000,
    gtol: float = 1e-5,
) -> LC50Result:
    """Estimate LC50s in the presence of additional stressors and control mortality.

    The survival probability of a sample in group ``g`` exposed to
    concentration ``c > 0`` is
    ``Phi(alpha[g] * (log(c) - x @ beta)) * Phi(gamma[g])``; control samples
    (``c = 0``) survive with probability ``Phi(gamma[g])``.  ``x @ beta`` is
    the log LC50, so ``beta`` describes how the stressors shift the LC50.

    Parameters
    ----------
    x : (n, p) array
        Design matrix relating log LC50 to the additional stressors.  Rows
        must be constant within a treatment group.
    response : (n, 2) array
        Survivors and deaths of each sample.
    concentration : (n,) array
        Toxin concentrations (0 for controls).
    group : (n,) array
        Treatment group labels.
    start : LC50Params, dict or None
        Starting values.  A dict holds ``alpha`` and ``gamma`` (one value
        per group, in sorted level order) and either ``beta`` or
        ``loglc50``.  If ``None``, uses :func:`initialize_lc50`.
    column_names : sequence of str or None
        Names of the columns of *x*.  If ``None``, columns are named
        ``x0, x1, ...``, except that a first column of ones is named
        ``(Intercept)`` and so belongs to no term.
    assign : sequence of int or None
        Term index of each column of *x* (0 for the intercept), as produced
        by a formula layer.  Drives the sequential analysis of deviance.
    term_labels : sequence of str or None
        One label per term in *assign*.
    response_name : str
        Name of the response, checked when comparing models.
    max_iter : int
        Maximum BFGS iterations.
    gtol : float
        BFGS gradient-norm tolerance.

    Returns
    -------
    LC50Result

    Raises
    ------
    ValidationError
        On malformed input or start values.
    InitializationError
        If ``start`` is ``None`` and a group's probit regression fails.

    Notes
    -----
    Non-convergence of the optimiser is not an error: a ``RuntimeWarning``
    is issued and ``converged`` is ``False`` on the result.

    Examples
    --------
    >>> import numpy as np
    >>> conc = np.array([0, 0, 1, 2, 4] * 2, dtype=float)
    >>> group = np.repeat(["A", "B"], 5)
    >>> y = np.array([[10, 0], [9, 1], [8, 2], [5, 5], [2, 8],
    ...               [9, 1], [10, 0], [9, 1], [7, 3], [4, 6]])
    >>> x = np.column_stack([np.ones(10), (group == "B").astype(float)])
    >>> fit = fit_lc50(x, y, conc, group, column_names=["(Intercept)", "B"])
    >>> bool(np.all(fit.alpha < 0))  # survival falls as concentration rises
    True
    """
    if max_iter < 1:
        raise ValueError(f"max_iter must be >= 1, got {max_iter}")
    if gtol <= 0:
        raise ValueError(f"gtol must be positive, got {gtol}")

    obs = check_observations(
        x, response, concentration, group,
        column_names=column_names,
        assign=assign,
        term_labels=term_labels,
        response_name=response_name,
    )
    params0 = _resolve_start(obs, start)
    return _fit_observations(obs, params0, max_iter=max_iter, gtol=gtol)


def observations_from_result(fit: LC50Result) -> ObservationSet:
    """Rebuild the validated observation set stored on a fitted model."""
    return ObservationSet(
        x=fit.x,
        response=fit.y,
        concentration=fit.concentration,
        group=fit.group,
        group_levels=fit.group_levels,
        codes=np.searchsorted(fit.group_levels, fit.group).astype(np.intp),
        first_rows=np.array(
            [np.flatnonzero(fit.group == level)[0] for level in fit.group_levels],
            dtype=np.intp,
        ),
        column_names=fit.column_names,
        assign=fit.assign,
        term_labels=fit.term_labels,
        response_name=fit.response_name,
    )
