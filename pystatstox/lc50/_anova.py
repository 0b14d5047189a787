"""Analysis of deviance for LC50 model fits.

With a single model the table is sequential: the model is refitted with
the design columns of the first 0, 1, 2, ... terms and each row gives the
reduction in residual deviance as a term is added.  With several models
the table has one row per model plus the differences between consecutive
models (meaningful only when the models are nested).

Optional tests (dispersion fixed at 1):

* ``"Chisq"`` / ``"LRT"``: p-value of the deviance change against a
  chi-square distribution on the change in degrees of freedom.
* ``"Cp"``: Mallows' Cp, ``resid_dev + 2 * (n - resid_df)``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

import numpy as np
from scipy.stats import chi2

from pystatstox.lc50._common import LC50Params, LC50Result
from pystatstox.lc50._exceptions import IncompatibleModelsError

logger = logging.getLogger(__name__)

VALID_TESTS = ("Chisq", "LRT", "Cp")


@dataclass(frozen=True)
class DevianceTableRow:
    """One row of an analysis of deviance table.

    ``df`` and ``deviance`` are ``None`` on the first row, which has no
    predecessor to compare with.
    """

    label: str
    df: int | None
    deviance: float | None
    resid_df: int
    resid_dev: float
    p_value: float | None = None
    cp: float | None = None


@dataclass(frozen=True)
class DevianceTable:
    """Analysis of deviance table."""

    rows: tuple[DevianceTableRow, ...]
    heading: str
    test: str | None
    sequential: bool

    @property
    def labels(self) -> tuple[str, ...]:
        return tuple(r.label for r in self.rows)

    @property
    def resid_dev(self) -> np.ndarray:
        return np.array([r.resid_dev for r in self.rows])

    @property
    def resid_df(self) -> np.ndarray:
        return np.array([r.resid_df for r in self.rows])


# ---------------------------------------------------------------------------
# Test statistics
# ---------------------------------------------------------------------------

def _add_tests(
    rows: list[DevianceTableRow],
    test: str | None,
    n_obs: int,
) -> list[DevianceTableRow]:
    """Attach chi-square p-values or Cp statistics to the rows."""
    if test is None:
        return rows

    out = []
    for r in rows:
        if test == "Cp":
            cp = r.resid_dev + 2.0 * (n_obs - r.resid_df)
            out.append(replace(r, cp=float(cp)))
            continue

        p_value = None
        if r.df is not None and r.deviance is not None and r.df != 0:
            stat = r.deviance * np.sign(r.df)
            if stat >= 0:
                p_value = float(chi2.sf(stat, abs(r.df)))
        out.append(replace(r, p_value=p_value))
    return out


def _check_test(test: str | None) -> None:
    if test is not None and test not in VALID_TESTS:
        raise ValueError(f"test must be one of {VALID_TESTS} or None, got {test!r}")


# ---------------------------------------------------------------------------
# Sequential (single model)
# ---------------------------------------------------------------------------

def _anova_sequential(fit: LC50Result, test: str | None) -> DevianceTable:
    from pystatstox.lc50._fit import _fit_observations, observations_from_result

    obs = observations_from_result(fit)
    n_terms = int(fit.assign.max()) if fit.assign.size else 0

    resid_df: list[int] = []
    resid_dev: list[float] = []
    for i in range(1, n_terms + 1):
        keep = fit.assign < i
        start = LC50Params(alpha=fit.alpha, gamma=fit.gamma, beta=fit.coefficients[keep])
        sub = _fit_observations(
            obs.with_columns(keep), start,
            max_iter=fit.optimizer.max_iter, gtol=fit.optimizer.gtol,
        )
        logger.debug("anova: %d term(s), deviance=%.6g", i - 1, sub.deviance)
        resid_df.append(sub.df_residual)
        resid_dev.append(sub.deviance)
    resid_df.append(fit.df_residual)
    resid_dev.append(fit.deviance)

    labels = ("NULL",) + fit.term_labels
    rows = []
    for k in range(len(resid_df)):
        if k == 0:
            df, dev = None, None
        else:
            df = resid_df[k - 1] - resid_df[k]
            dev = max(0.0, resid_dev[k - 1] - resid_dev[k])
        rows.append(DevianceTableRow(
            label=labels[k], df=df, deviance=dev,
            resid_df=resid_df[k], resid_dev=resid_dev[k],
        ))

    if n_terms == 0:
        rows = rows[:1]

    heading = (
        "Analysis of Deviance Table\n\n"
        f"Response: {fit.response_name}\n\n"
        "Terms added sequentially (first to last)"
    )
    return DevianceTable(
        rows=tuple(_add_tests(rows, test, fit.n_obs)),
        heading=heading,
        test=test,
        sequential=True,
    )


# ---------------------------------------------------------------------------
# Several models
# ---------------------------------------------------------------------------

def _check_compatible(models: tuple[LC50Result, ...]) -> None:
    first = models[0]
    for k, m in enumerate(models[1:], start=2):
        if m.response_name != first.response_name:
            raise IncompatibleModelsError(
                f"model {k} has response {m.response_name!r} but model 1 has "
                f"response {first.response_name!r}",
                model_index=k,
            )
        if m.n_obs != first.n_obs:
            raise IncompatibleModelsError(
                f"model {k} was fitted to {m.n_obs} samples but model 1 to {first.n_obs}; "
                "models were not all fitted to the same size of dataset",
                model_index=k,
            )


def _anova_models(models: tuple[LC50Result, ...], test: str | None) -> DevianceTable:
    _check_compatible(models)

    rows = []
    for k, m in enumerate(models):
        if k == 0:
            df, dev = None, None
        else:
            prev = models[k - 1]
            df = prev.df_residual - m.df_residual
            dev = prev.deviance - m.deviance
        rows.append(DevianceTableRow(
            label=str(k + 1), df=df, deviance=dev,
            resid_df=m.df_residual, resid_dev=m.deviance,
        ))

    topnote = "\n".join(
        f"Model {k + 1}: {m.response_name} ~ {' + '.join(m.term_labels) or '1'}"
        for k, m in enumerate(models)
    )
    # Largest model (fewest residual df) sets n for the Cp statistic
    bigmodel = models[int(np.argmin([m.df_residual for m in models]))]
    return DevianceTable(
        rows=tuple(_add_tests(rows, test, bigmodel.n_obs)),
        heading="Analysis of Deviance Table\n\n" + topnote,
        test=test,
        sequential=False,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def anova_lc50(
    fit: LC50Result,
    *others: LC50Result,
    test: str | None = None,
) -> DevianceTable:
    """Analysis of deviance table for one or more LC50 fits.

    Parameters
    ----------
    fit : LC50Result
        A fitted model.  On its own it gives a sequential table over the
        terms of its design (``assign`` / ``term_labels``).
    *others : LC50Result
        Further fitted models.  If given, the table compares all models in
        the order supplied.
    test : str or None
        ``"Chisq"``, ``"LRT"``, ``"Cp"`` or ``None``.

    Returns
    -------
    DevianceTable

    Raises
    ------
    IncompatibleModelsError
        If the models differ in response or number of samples.
    """
    _check_test(test)
    for k, m in enumerate(others, start=2):
        if not isinstance(m, LC50Result):
            raise TypeError(f"model {k} must be an LC50Result, got {type(m).__name__}")

    if others:
        return _anova_models((fit,) + others, test)
    return _anova_sequential(fit, test)
