"""Binomial-probit likelihood for LC50 models with control mortality.

A sample exposed to concentration ``c > 0`` survives with probability

.. math::
    \\Phi\\bigl(\\alpha_g (\\ln c - x^\\top \\beta)\\bigr) \\cdot \\Phi(\\gamma_g)

(toxin mortality and background mortality act as independent filters);
a control sample (``c = 0``) survives with probability
:math:`\\Phi(\\gamma_g)`.  The survivor count of each sample is binomial
with that probability and ``N = survivors + deaths`` trials.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
from scipy.stats import binom, norm

from pystatstox.lc50._common import LC50Params
from pystatstox.lc50._data import ObservationSet

# Finite stand-in for a non-finite negative log-likelihood.  Large enough to
# reject any trial point, small enough that finite differences stay finite.
NLL_SENTINEL = 1e100


# ---------------------------------------------------------------------------
# Safe log-concentration utility
# ---------------------------------------------------------------------------

def _safe_log_concentration(concentration: NDArray[np.floating]) -> NDArray[np.floating]:
    """log(concentration) with zero concentrations mapped to 0.

    The value at zero is never used: control samples take the
    control-survival branch of :func:`fitted_probability`.
    """
    positive = concentration > 0
    return np.log(np.where(positive, concentration, 1.0))


# ---------------------------------------------------------------------------
# Model probabilities
# ---------------------------------------------------------------------------

def fitted_probability(
    params: LC50Params,
    x: NDArray[np.floating],
    concentration: NDArray[np.floating],
    codes: NDArray[np.intp],
) -> NDArray[np.floating]:
    """Survival probability of every sample.

    Parameters
    ----------
    params : LC50Params
        ``alpha`` and ``gamma`` of length G, ``beta`` of length p.
    x : (n, p) array
        Design matrix relating log LC50 to the stressor covariates.
    concentration : (n,) array
        Toxin concentrations; zero marks a control sample.
    codes : (n,) int array
        Group index of each sample.

    Returns
    -------
    NDArray
        Probabilities in [0, 1].
    """
    concentration = np.asarray(concentration, dtype=np.float64)
    alpha = np.asarray(params.alpha, dtype=np.float64)[codes]
    gamma = np.asarray(params.gamma, dtype=np.float64)[codes]
    beta = np.asarray(params.beta, dtype=np.float64)

    loglc50 = x @ beta if beta.size else np.zeros(len(concentration))
    p = norm.cdf(alpha * (_safe_log_concentration(concentration) - loglc50))
    q = norm.cdf(gamma)
    return np.where(concentration > 0, p * q, q)


def negative_log_likelihood(theta: NDArray[np.floating], obs: ObservationSet) -> float:
    """Objective minimised by the fit: ``-sum(log Binom(survivors; N, fitted))``.

    Never raises or returns a non-finite value: anything non-finite (a
    probability of exactly 0 or 1 against a non-zero count, overflow) is
    replaced by :data:`NLL_SENTINEL`.
    """
    params = LC50Params.from_array(theta, obs.n_groups)
    with np.errstate(all="ignore"):
        prob = fitted_probability(params, obs.x, obs.concentration, obs.codes)
        nll = -float(np.sum(binom.logpmf(obs.survivors, obs.n_trials, prob)))
    if not np.isfinite(nll):
        return NLL_SENTINEL
    return nll


def binomial_deviance(
    survivors: NDArray[np.integer],
    n_trials: NDArray[np.integer],
    prob: NDArray[np.floating] | float,
) -> float:
    """Deviance of survival probabilities *prob* against the saturated model."""
    with np.errstate(divide="ignore", invalid="ignore"):
        saturated = binom.logpmf(survivors, n_trials, survivors / n_trials)
        model = binom.logpmf(survivors, n_trials, prob)
    return float(-2.0 * np.sum(model - saturated))
