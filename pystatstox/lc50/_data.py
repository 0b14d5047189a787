"""Observation set and input validation for LC50 fitting.

Every public entry point funnels its array arguments through
:func:`check_observations` so that shape and content errors surface before
any optimisation is attempted.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
from numpy.typing import ArrayLike, NDArray

from pystatstox.lc50._exceptions import ValidationError

INTERCEPT_NAME = "(Intercept)"


@dataclass(frozen=True)
class ObservationSet:
    """Validated data for one LC50 fit.

    ``codes`` indexes ``group_levels`` for every sample and ``first_rows``
    holds the index of the first sample of each level (the row of ``x``
    used as that group's representative stressor profile).
    """

    x: NDArray[np.floating]
    response: NDArray[np.integer]
    concentration: NDArray[np.floating]
    group: NDArray
    group_levels: NDArray
    codes: NDArray[np.intp]
    first_rows: NDArray[np.intp]
    column_names: tuple[str, ...]
    assign: NDArray[np.intp]
    term_labels: tuple[str, ...]
    response_name: str

    @property
    def n_obs(self) -> int:
        return self.x.shape[0]

    @property
    def n_coef(self) -> int:
        return self.x.shape[1]

    @property
    def n_groups(self) -> int:
        return len(self.group_levels)

    @property
    def survivors(self) -> NDArray[np.integer]:
        return self.response[:, 0]

    @property
    def n_trials(self) -> NDArray[np.integer]:
        return self.response.sum(axis=1)

    @property
    def group_design(self) -> NDArray[np.floating]:
        """Representative design row for each group, in level order."""
        return self.x[self.first_rows]

    def with_columns(self, keep: NDArray[np.bool_]) -> ObservationSet:
        """Copy restricted to the design columns selected by *keep*."""
        keep = np.asarray(keep, dtype=bool)
        max_term = int(self.assign[keep].max()) if keep.any() else 0
        return ObservationSet(
            x=self.x[:, keep],
            response=self.response,
            concentration=self.concentration,
            group=self.group,
            group_levels=self.group_levels,
            codes=self.codes,
            first_rows=self.first_rows,
            column_names=tuple(n for n, k in zip(self.column_names, keep) if k),
            assign=self.assign[keep],
            term_labels=self.term_labels[:max_term],
            response_name=self.response_name,
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _default_assign(column_names: Sequence[str]) -> NDArray[np.intp]:
    """Term index per column: 0 for the intercept, else 1, 2, ... in order."""
    assign = np.zeros(len(column_names), dtype=np.intp)
    term = 0
    for j, name in enumerate(column_names):
        if name != INTERCEPT_NAME:
            term += 1
            assign[j] = term
    return assign


def _check_response(response: ArrayLike, n: int) -> NDArray[np.int64]:
    y = np.asarray(response)
    if y.ndim != 2 or y.shape[1] != 2:
        raise ValidationError(
            f"response must be an (n, 2) matrix of survivors and deaths, got shape {y.shape}",
            argument="response",
        )
    if y.shape[0] != n:
        raise ValidationError(
            f"response has {y.shape[0]} rows but x has {n}", argument="response"
        )
    yf = y.astype(np.float64)
    if not np.all(np.isfinite(yf)):
        raise ValidationError("response contains non-finite counts", argument="response")
    if np.any(yf < 0):
        raise ValidationError("response counts must be non-negative", argument="response")
    if np.any(yf != np.round(yf)):
        raise ValidationError("response counts must be whole numbers", argument="response")

    y = yf.astype(np.int64)
    empty = np.flatnonzero(y.sum(axis=1) == 0)
    if empty.size:
        raise ValidationError(
            f"response rows {empty.tolist()} have no trials (survivors + deaths == 0)",
            argument="response",
        )
    return y


# ---------------------------------------------------------------------------
# Public validation entry point
# ---------------------------------------------------------------------------

def check_observations(
    x: ArrayLike,
    response: ArrayLike,
    concentration: ArrayLike,
    group: ArrayLike,
    *,
    column_names: Sequence[str] | None = None,
    assign: Sequence[int] | None = None,
    term_labels: Sequence[str] | None = None,
    response_name: str = "response",
) -> ObservationSet:
    """Validate raw arrays and build an :class:`ObservationSet`.

    Raises
    ------
    ValidationError
        Naming the offending argument.
    """
    x = np.asarray(x, dtype=np.float64)
    if x.ndim == 1:
        x = x[:, np.newaxis]
    if x.ndim != 2:
        raise ValidationError(f"x must be a 2-D design matrix, got {x.ndim}-D", argument="x")
    n, p = x.shape
    if n == 0 or p == 0:
        raise ValidationError(f"x must not be empty, got shape {x.shape}", argument="x")
    if not np.all(np.isfinite(x)):
        raise ValidationError("x contains non-finite values", argument="x")

    y = _check_response(response, n)

    conc = np.asarray(concentration, dtype=np.float64)
    if conc.ndim != 1 or conc.shape[0] != n:
        raise ValidationError(
            f"concentration must be 1-D of length {n}, got shape {conc.shape}",
            argument="concentration",
        )
    if not np.all(np.isfinite(conc)) or np.any(conc < 0):
        raise ValidationError(
            "concentration must be finite and non-negative", argument="concentration"
        )

    grp = np.asarray(group)
    if grp.ndim != 1 or grp.shape[0] != n:
        raise ValidationError(
            f"group must be 1-D of length {n}, got shape {grp.shape}", argument="group"
        )
    levels, first_rows, codes = np.unique(grp, return_index=True, return_inverse=True)
    codes = codes.reshape(-1)
    n_groups = len(levels)
    if n_groups == 0:
        raise ValidationError("group has no levels", argument="group")

    for k, level in enumerate(levels.tolist()):
        if not np.any(conc[codes == k] > 0):
            raise ValidationError(
                f"group {level!r} has no samples with positive concentration",
                argument="group",
            )

    n_params = 2 * n_groups + p
    if n < n_params:
        raise ValidationError(
            f"Need at least {n_params} observations for {n_groups} groups and "
            f"{p} coefficients, got {n}",
            argument="x",
        )

    if column_names is None:
        column_names = tuple(f"x{j}" for j in range(p))
        # A leading column of ones is the intercept
        if np.all(x[:, 0] == 1.0):
            column_names = (INTERCEPT_NAME,) + column_names[1:]
    else:
        column_names = tuple(str(c) for c in column_names)
        if len(column_names) != p:
            raise ValidationError(
                f"column_names has {len(column_names)} entries but x has {p} columns",
                argument="column_names",
            )

    zero_cols = [column_names[j] for j in np.flatnonzero(np.all(x == 0, axis=0))]
    if zero_cols:
        raise ValidationError(
            f"x columns {zero_cols} are all zero; their coefficients are not identified",
            argument="x",
        )

    if assign is None:
        assign_arr = _default_assign(column_names)
    else:
        assign_arr = np.asarray(assign, dtype=np.intp)
        if assign_arr.shape != (p,):
            raise ValidationError(
                f"assign must have one entry per column of x ({p}), got shape {assign_arr.shape}",
                argument="assign",
            )
        if np.any(assign_arr < 0) or np.any(np.diff(assign_arr) < 0):
            raise ValidationError(
                "assign must be non-negative and non-decreasing", argument="assign"
            )

    n_terms = int(assign_arr.max())
    if term_labels is None:
        # Label each term by its first column
        labels = []
        for t in range(1, n_terms + 1):
            cols = np.flatnonzero(assign_arr == t)
            labels.append(column_names[cols[0]] if cols.size else f"term{t}")
        term_labels = tuple(labels)
    else:
        term_labels = tuple(str(t) for t in term_labels)
        if len(term_labels) != n_terms:
            raise ValidationError(
                f"term_labels has {len(term_labels)} entries but assign names {n_terms} terms",
                argument="term_labels",
            )

    return ObservationSet(
        x=x,
        response=y,
        concentration=conc,
        group=grp,
        group_levels=levels,
        codes=codes.astype(np.intp),
        first_rows=first_rows.astype(np.intp),
        column_names=column_names,
        assign=assign_arr,
        term_labels=term_labels,
        response_name=response_name,
    )
