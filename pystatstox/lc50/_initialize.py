"""Self-starting estimates for LC50 model fits.

Each treatment group is fitted on its own with an ordinary binomial probit
regression on the columns

    [1, 1{c > 0}, log(c) if c > 0 else 0]

giving coefficients ``(c0, c1, c3)``.  Then ``alpha = c3``, ``gamma = c0``
(probit of control survival) and ``loglc50 = -(c0 + c1) / c3``.

The probit regression is fitted by Iteratively Reweighted Least Squares
(Fisher scoring), matching R's ``glm.fit(family=binomial(link=probit))``:

    mu = (N*y + 0.5) / (N + 1),  eta = probit(mu)
    repeat:
        z = eta + (y - mu) / phi(eta)
        w = N * phi(eta)^2 / (mu * (1 - mu))
        solve WLS  min || sqrt(w) (z - X b) ||^2
        stop when |dev - dev_old| / (|dev| + 0.1) < tol
"""

from __future__ import annotations

import numpy as np
from numpy.typing import ArrayLike, NDArray
from scipy.stats import norm

from pystatstox.lc50._common import InitialEstimates
from pystatstox.lc50._data import ObservationSet, check_observations
from pystatstox.lc50._exceptions import InitializationError, ValidationError
from pystatstox.lc50._likelihood import _safe_log_concentration, binomial_deviance

IRLS_TOL = 1e-8
IRLS_MAX_ITER = 25

# Fitted probabilities closer than this to 0 or 1 indicate separation
_EPS_PROB = 10.0 * np.finfo(np.float64).eps


# ---------------------------------------------------------------------------
# Probit IRLS
# ---------------------------------------------------------------------------

def _probit_irls(
    X: NDArray[np.floating],
    survivors: NDArray[np.integer],
    n_trials: NDArray[np.integer],
    group: object,
    tol: float = IRLS_TOL,
    max_iter: int = IRLS_MAX_ITER,
) -> NDArray[np.floating]:
    """Binomial probit regression of survivors on *X* by IRLS.

    Raises
    ------
    InitializationError
        If the design is rank deficient, IRLS does not converge, or the
        fit separates the data.
    """
    n_trials = n_trials.astype(np.float64)
    y = survivors / n_trials
    p = X.shape[1]

    mu = (n_trials * y + 0.5) / (n_trials + 1.0)
    eta = norm.ppf(mu)
    dev_old = binomial_deviance(survivors, n_trials, mu)

    converged = False
    for _ in range(max_iter):
        mu_eta = np.maximum(norm.pdf(eta), 1e-10)
        var_mu = np.maximum(mu * (1.0 - mu), 1e-30)

        z = eta + (y - mu) / mu_eta
        w = np.maximum(n_trials * mu_eta**2 / var_mu, 1e-30)

        sqrt_w = np.sqrt(w)
        coef, _, rank, _ = np.linalg.lstsq(X * sqrt_w[:, np.newaxis], z * sqrt_w, rcond=None)
        if rank < p:
            raise InitializationError(
                group, f"design is rank deficient (rank {rank} < {p}); "
                "each group needs control samples and at least two positive concentrations"
            )

        eta = X @ coef
        mu = norm.cdf(eta)
        dev = binomial_deviance(survivors, n_trials, mu)

        if abs(dev - dev_old) / (abs(dev) + 0.1) < tol:
            converged = True
            break
        dev_old = dev

    if not converged:
        raise InitializationError(group, f"probit regression did not converge in {max_iter} iterations")
    if not np.all(np.isfinite(coef)):
        raise InitializationError(group, "probit regression produced non-finite coefficients")
    if np.any(mu < _EPS_PROB) or np.any(mu > 1.0 - _EPS_PROB):
        raise InitializationError(group, "fitted probabilities numerically 0 or 1 (separation)")

    return coef


def _initial_design(concentration: NDArray[np.floating]) -> NDArray[np.floating]:
    """Columns: intercept, exposure indicator, log concentration (0 for controls)."""
    exposed = concentration > 0
    return np.column_stack([
        np.ones_like(concentration),
        exposed.astype(np.float64),
        np.where(exposed, _safe_log_concentration(concentration), 0.0),
    ])


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def initial_estimates(obs: ObservationSet) -> InitialEstimates:
    """Starting values for every group of a validated observation set."""
    G = obs.n_groups
    alpha = np.empty(G)
    gamma = np.empty(G)
    loglc50 = np.empty(G)

    for k, level in enumerate(obs.group_levels.tolist()):
        rows = obs.codes == k
        X = _initial_design(obs.concentration[rows])
        c0, c1, c3 = _probit_irls(X, obs.survivors[rows], obs.n_trials[rows], level)
        if abs(c3) < 1e-12:
            raise InitializationError(level, "estimated concentration rate is zero")
        alpha[k] = c3
        gamma[k] = c0
        loglc50[k] = -(c0 + c1) / c3

    return InitialEstimates(
        alpha=alpha, gamma=gamma, loglc50=loglc50, group_levels=obs.group_levels,
    )


def initialize_lc50(
    response: ArrayLike,
    concentration: ArrayLike,
    group: ArrayLike,
) -> InitialEstimates:
    """Starting parameters for an LC50 model fit.

    Fits a separate probit regression to each treatment group.  This is the
    default initializer used by :func:`fit_lc50`; the estimates only seed
    the optimiser.

    Parameters
    ----------
    response : (n, 2) array
        Survivors and deaths of each sample.
    concentration : (n,) array
        Toxin concentrations.
    group : (n,) array
        Treatment group labels.

    Returns
    -------
    InitialEstimates
        ``alpha``, ``gamma`` and ``loglc50`` per group, in sorted level order.

    Raises
    ------
    ValidationError
        On malformed input.
    InitializationError
        If a group's probit regression fails.
    """
    response = np.asarray(response)
    n = response.shape[0] if response.ndim >= 1 else 0
    if n == 0:
        raise ValidationError("response must not be empty", argument="response")
    # Intercept-only design: only response, concentration and group matter here
    obs = check_observations(np.ones((n, 1)), response, concentration, group)
    return initial_estimates(obs)
