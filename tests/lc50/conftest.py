"""Shared fixtures for LC50 tests."""

import numpy as np
import pytest
from scipy.stats import norm

from pystatstox.lc50 import fit_lc50


def expected_response(conc, group_codes, alpha, gamma, loglc50, n_trials=20):
    """Survivor/death counts rounded from the model's expected survival."""
    conc = np.asarray(conc, dtype=float)
    a = np.asarray(alpha)[group_codes]
    q = norm.cdf(np.asarray(gamma)[group_codes])
    l50 = np.asarray(loglc50)[group_codes]
    with np.errstate(divide="ignore"):
        p = norm.cdf(a * (np.log(np.where(conc > 0, conc, 1.0)) - l50))
    surv_prob = np.where(conc > 0, p * q, q)
    survivors = np.round(n_trials * surv_prob).astype(int)
    return np.column_stack([survivors, n_trials - survivors])


@pytest.fixture(scope="session")
def two_group_data():
    """Two treatment groups; group B is more tolerant than group A."""
    conc = np.array([0, 0, 1, 2, 4, 0, 0, 1, 2, 4], dtype=float)
    group = np.array(["A"] * 5 + ["B"] * 5)
    y = np.array([
        [10, 0], [9, 1], [8, 2], [5, 5], [2, 8],
        [9, 1], [10, 0], [9, 1], [7, 3], [4, 6],
    ])
    x = np.column_stack([np.ones(10), (group == "B").astype(float)])
    return x, y, conc, group


@pytest.fixture(scope="session")
def two_group_fit(two_group_data):
    x, y, conc, group = two_group_data
    return fit_lc50(x, y, conc, group, column_names=["(Intercept)", "groupB"])


@pytest.fixture(scope="session")
def factorial_data():
    """Four groups from a 2x2 temperature x salinity stressor design."""
    levels = ["cold.fresh", "cold.salt", "warm.fresh", "warm.salt"]
    temp = np.array([0.0, 0.0, 1.0, 1.0])
    salt = np.array([0.0, 1.0, 0.0, 1.0])
    doses = np.array([0, 0, 0.5, 1, 2, 4, 8], dtype=float)

    codes = np.repeat(np.arange(4), len(doses))
    conc = np.tile(doses, 4)
    group = np.array(levels)[codes]

    beta = np.array([1.0, -0.4, -0.3])
    x_group = np.column_stack([np.ones(4), temp, salt])
    loglc50 = x_group @ beta
    y = expected_response(
        conc, codes,
        alpha=np.full(4, -1.5),
        gamma=np.array([1.3, 1.1, 1.2, 1.0]),
        loglc50=loglc50,
    )
    x = x_group[codes]
    return x, y, conc, group


@pytest.fixture(scope="session")
def factorial_fit(factorial_data):
    x, y, conc, group = factorial_data
    return fit_lc50(
        x, y, conc, group,
        column_names=["(Intercept)", "temp", "salt"],
        assign=[0, 1, 2],
        term_labels=["temp", "salt"],
        response_name="cbind(alive, dead)",
    )
