"""Shared parameter and result types for LC50 estimation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray

if TYPE_CHECKING:
    from pystatstox.lc50._anova import DevianceTable
    from pystatstox.lc50._simulate import SimulationResult
    from pystatstox.lc50._summary import LC50Summary


@dataclass(frozen=True)
class LC50Params:
    """Model parameters as three named blocks.

    The optimiser works on one flat vector laid out as
    ``[alpha (G), gamma (G), beta (p)]``; :meth:`to_array` and
    :meth:`from_array` are the only conversions between the two forms.
    """

    alpha: NDArray[np.floating]  # rate per group
    gamma: NDArray[np.floating]  # probit of control survival per group
    beta: NDArray[np.floating]  # log LC50 coefficients

    @property
    def n_groups(self) -> int:
        return len(self.alpha)

    def to_array(self) -> NDArray[np.floating]:
        """Flatten to the optimiser's parameter vector."""
        return np.concatenate([
            np.asarray(self.alpha, dtype=np.float64),
            np.asarray(self.gamma, dtype=np.float64),
            np.asarray(self.beta, dtype=np.float64),
        ])

    @staticmethod
    def from_array(theta: NDArray[np.floating], n_groups: int) -> LC50Params:
        """Split a flat parameter vector into its blocks."""
        theta = np.asarray(theta, dtype=np.float64)
        return LC50Params(
            alpha=theta[:n_groups],
            gamma=theta[n_groups:2 * n_groups],
            beta=theta[2 * n_groups:],
        )

    @staticmethod
    def block_slices(n_groups: int) -> tuple[slice, slice, slice]:
        """Slices of the flat vector (and Hessian) for alpha, gamma, beta."""
        return (
            slice(0, n_groups),
            slice(n_groups, 2 * n_groups),
            slice(2 * n_groups, None),
        )


@dataclass(frozen=True)
class InitialEstimates:
    """Per-group starting values from independent probit regressions."""

    alpha: NDArray[np.floating]
    gamma: NDArray[np.floating]
    loglc50: NDArray[np.floating]
    group_levels: NDArray


@dataclass(frozen=True)
class OptimizerResult:
    """Raw output of the likelihood minimisation."""

    estimate: NDArray[np.floating]
    minimum: float
    hessian: NDArray[np.floating]
    converged: bool
    n_iter: int
    message: str
    max_iter: int
    gtol: float


@dataclass(frozen=True)
class LC50Result:
    """A fitted LC50 model.

    Arrays indexed by group follow ``group_levels``; arrays indexed by
    coefficient follow ``column_names``.
    """

    alpha: NDArray[np.floating]
    gamma: NDArray[np.floating]
    coefficients: NDArray[np.floating]  # beta
    alpha_cov: NDArray[np.floating]
    gamma_cov: NDArray[np.floating]
    cov_scaled: NDArray[np.floating]  # covariance of beta
    loglc50: NDArray[np.floating]
    loglc50_cov: NDArray[np.floating]
    group_levels: NDArray
    column_names: tuple[str, ...]
    fitted_values: NDArray[np.floating]  # fitted probability of survival
    log_likelihood: float
    aic: float
    deviance: float
    df_residual: int
    null_deviance: float
    df_null: int
    converged: bool
    n_iter: int
    x: NDArray[np.floating]
    y: NDArray[np.integer]
    concentration: NDArray[np.floating]
    group: NDArray
    assign: NDArray[np.intp]
    term_labels: tuple[str, ...]
    response_name: str
    optimizer: OptimizerResult

    @property
    def n_obs(self) -> int:
        return self.x.shape[0]

    @property
    def n_groups(self) -> int:
        return len(self.group_levels)

    @property
    def params(self) -> LC50Params:
        return LC50Params(alpha=self.alpha, gamma=self.gamma, beta=self.coefficients)

    def coef(self) -> NDArray[np.floating]:
        """The log LC50 coefficients (beta)."""
        return self.coefficients

    def vcov(self) -> NDArray[np.floating]:
        """Covariance matrix of the log LC50 coefficients."""
        return self.cov_scaled

    def model_matrix(self) -> NDArray[np.floating]:
        return self.x

    def summary(self, *, conf_level: float = 0.95) -> LC50Summary:
        """Coefficient, LC50 and control-survival tables."""
        from pystatstox.lc50._summary import summarize

        return summarize(self, conf_level=conf_level)

    def anova(self, *others: LC50Result, test: str | None = None) -> DevianceTable:
        """Analysis of deviance; see :func:`anova_lc50`."""
        from pystatstox.lc50._anova import anova_lc50

        return anova_lc50(self, *others, test=test)

    def simulate(
        self,
        nsim: int = 1,
        *,
        seed: int | np.random.Generator | None = None,
    ) -> SimulationResult:
        """Simulate responses from the fitted model; see :func:`simulate_lc50`."""
        from pystatstox.lc50._simulate import simulate_lc50

        return simulate_lc50(self, nsim, seed=seed)
