"""Parametric-bootstrap response simulation from a fitted LC50 model."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np
from numpy.typing import NDArray

from pystatstox.lc50._common import LC50Result


@dataclass(frozen=True)
class SimulationResult:
    """Simulated response matrices.

    ``responses[k]`` is an ``(n, 2)`` matrix of survivors and deaths for
    replicate ``k``.  ``rng_state`` is the generator's bit-generator state
    after drawing, so a caller-supplied generator can be resumed or audited.
    """

    responses: NDArray[np.int64]
    seed: int | None
    rng_state: dict[str, Any]

    @property
    def nsim(self) -> int:
        return self.responses.shape[0]


def simulate_lc50(
    fit: LC50Result,
    nsim: int = 1,
    *,
    seed: int | np.random.Generator | None = None,
) -> SimulationResult:
    """Draw binomial responses at the fitted survival probabilities.

    Each replicate keeps every sample's number of trials ``N`` and draws
    ``survivors ~ Binomial(N, fitted)``, ``deaths = N - survivors``.

    Parameters
    ----------
    fit : LC50Result
        A fitted LC50 model.
    nsim : int
        Number of replicates.
    seed : int, numpy.random.Generator or None
        Seed or generator.  A generator is advanced in place; no global
        random state is used.

    Returns
    -------
    SimulationResult
    """
    if nsim < 1:
        raise ValueError(f"nsim must be >= 1, got {nsim}")

    rng = np.random.default_rng(seed)
    n_trials = fit.y.sum(axis=1)
    survivors = rng.binomial(n_trials, fit.fitted_values, size=(nsim, len(n_trials)))
    responses = np.stack([survivors, n_trials - survivors], axis=-1).astype(np.int64)

    return SimulationResult(
        responses=responses,
        seed=seed if isinstance(seed, (int, np.integer)) else None,
        rng_state=rng.bit_generator.state,
    )
