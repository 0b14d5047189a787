"""
Exception hierarchy for LC50 estimation.

All errors inherit from LC50Error. Input problems are also ValueErrors so
callers that already catch ValueError keep working.
"""

from __future__ import annotations


class LC50Error(Exception):
    """Base exception for all LC50 estimation errors."""
    pass


class ValidationError(LC50Error, ValueError):
    """
    Input validation failed.

    Raised before any optimisation when an argument has the wrong shape,
    an invalid value, or is inconsistent with the other arguments.

    Attributes:
        argument: Name of the offending argument, if known
    """

    def __init__(self, message: str, argument: str | None = None):
        super().__init__(message)
        self.argument = argument


class IncompatibleModelsError(ValidationError):
    """
    Fitted models cannot be compared in one analysis of deviance table.

    Attributes:
        model_index: 1-based position of the incompatible model
    """

    def __init__(self, message: str, model_index: int):
        super().__init__(message, argument="models")
        self.model_index = model_index


class InitializationError(LC50Error):
    """
    Starting values could not be computed for a treatment group.

    The per-group probit regression used to seed the optimiser failed
    (separation, a singular design, non-convergence). Supplying ``start``
    explicitly bypasses initialization.

    Attributes:
        group: Label of the treatment group that failed
        reason: Short description of the failure
    """

    def __init__(self, group: object, reason: str):
        super().__init__(f"initialization failed for group {group!r}: {reason}")
        self.group = group
        self.reason = reason
