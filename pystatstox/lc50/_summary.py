"""Inference tables for fitted LC50 models.

Wald standard errors come from the pseudo-inverse of the Hessian.  LC50
intervals are built on the log scale and exponentiated (so they are
asymmetric on the concentration scale); control-survival intervals are
built on the probit scale and mapped through the normal CDF.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray
from scipy.stats import norm

from pystatstox.lc50._common import LC50Result


@dataclass(frozen=True)
class CoefficientTable:
    """Log LC50 coefficients with Wald z tests."""

    names: tuple[str, ...]
    estimate: NDArray[np.floating]
    se: NDArray[np.floating]
    z_value: NDArray[np.floating]
    p_value: NDArray[np.floating]


@dataclass(frozen=True)
class LC50Table:
    """LC50 per treatment group.  ``estimate`` and ``se`` are on the log scale."""

    groups: NDArray
    estimate: NDArray[np.floating]
    se: NDArray[np.floating]
    lc50: NDArray[np.floating]
    ci_lower: NDArray[np.floating]
    ci_upper: NDArray[np.floating]


@dataclass(frozen=True)
class ControlSurvivalTable:
    """Control survival per treatment group.  ``estimate`` and ``se`` are probits."""

    groups: NDArray
    estimate: NDArray[np.floating]
    se: NDArray[np.floating]
    survival: NDArray[np.floating]
    ci_lower: NDArray[np.floating]
    ci_upper: NDArray[np.floating]


@dataclass(frozen=True)
class LC50Summary:
    """Summary of an LC50 fit."""

    coefficients: CoefficientTable
    lc50: LC50Table
    control_survival: ControlSurvivalTable
    conf_level: float
    deviance: float
    df_residual: int
    null_deviance: float
    df_null: int
    aic: float
    converged: bool


def _se_from_cov(cov: NDArray[np.floating]) -> NDArray[np.floating]:
    """Square roots of the variances; negative pseudo-inverse variances clamp to 0."""
    return np.sqrt(np.maximum(np.diag(cov), 0.0))


def summarize(fit: LC50Result, *, conf_level: float = 0.95) -> LC50Summary:
    """Coefficient, LC50 and control-survival tables for a fitted model.

    Parameters
    ----------
    fit : LC50Result
        A fitted LC50 model.
    conf_level : float
        Confidence level of the LC50 and control-survival intervals
        (default 0.95).

    Returns
    -------
    LC50Summary

    Notes
    -----
    The control-survival interval is ``Phi(gamma -/+ z * se)``, symmetric
    on the probit scale.
    """
    if not (0.0 < conf_level < 1.0):
        raise ValueError(f"conf_level must be in (0, 1), got {conf_level}")

    z = norm.ppf(1.0 - (1.0 - conf_level) / 2.0)

    # Coefficients
    cf = fit.coefficients
    cf_se = _se_from_cov(fit.cov_scaled)
    with np.errstate(divide="ignore", invalid="ignore"):
        z_value = np.where(cf_se > 0, np.abs(cf) / cf_se, np.nan)
    p_value = 2.0 * norm.cdf(-np.abs(z_value))
    coef_table = CoefficientTable(
        names=fit.column_names,
        estimate=cf,
        se=cf_se,
        z_value=z_value,
        p_value=p_value,
    )

    # LC50 on the log scale, back-transformed
    loglc50 = fit.loglc50
    loglc50_se = _se_from_cov(fit.loglc50_cov)
    lc50_table = LC50Table(
        groups=fit.group_levels,
        estimate=loglc50,
        se=loglc50_se,
        lc50=np.exp(loglc50),
        ci_lower=np.exp(loglc50 - z * loglc50_se),
        ci_upper=np.exp(loglc50 + z * loglc50_se),
    )

    # Control survival on the probit scale
    gamma = fit.gamma
    gamma_se = _se_from_cov(fit.gamma_cov)
    csurv_table = ControlSurvivalTable(
        groups=fit.group_levels,
        estimate=gamma,
        se=gamma_se,
        survival=norm.cdf(gamma),
        ci_lower=norm.cdf(gamma - z * gamma_se),
        ci_upper=norm.cdf(gamma + z * gamma_se),
    )

    return LC50Summary(
        coefficients=coef_table,
        lc50=lc50_table,
        control_survival=csurv_table,
        conf_level=conf_level,
        deviance=fit.deviance,
        df_residual=fit.df_residual,
        null_deviance=fit.null_deviance,
        df_null=fit.df_null,
        aic=fit.aic,
        converged=fit.converged,
    )
