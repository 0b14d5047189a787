"""
LC50 estimation for toxicology studies.

Estimates lethal concentrations of a toxin from destructively sampled
survival data in the presence of additional stressors and non-ignorable
control mortality.  Each treatment group has its own concentration-response
rate and control survival; a shared linear model relates the stressor
covariates to log LC50.

Provides maximum likelihood fitting, self-starting estimates, Wald
inference tables, analysis of deviance and parametric-bootstrap
simulation.

Validates against: R package LC50 (Wotherspoon & Proctor).
"""

from pystatstox.lc50._exceptions import (
    LC50Error,
    ValidationError,
    IncompatibleModelsError,
    InitializationError,
)
from pystatstox.lc50._common import (
    LC50Params,
    InitialEstimates,
    OptimizerResult,
    LC50Result,
)
from pystatstox.lc50._likelihood import (
    NLL_SENTINEL,
    fitted_probability,
    negative_log_likelihood,
)
from pystatstox.lc50._data import ObservationSet, check_observations
from pystatstox.lc50._initialize import initialize_lc50
from pystatstox.lc50._fit import fit_lc50
from pystatstox.lc50._summary import (
    summarize,
    LC50Summary,
    CoefficientTable,
    LC50Table,
    ControlSurvivalTable,
)
from pystatstox.lc50._anova import anova_lc50, DevianceTable, DevianceTableRow
from pystatstox.lc50._simulate import simulate_lc50, SimulationResult

__all__ = [
    "LC50Error",
    "ValidationError",
    "IncompatibleModelsError",
    "InitializationError",
    "LC50Params",
    "InitialEstimates",
    "OptimizerResult",
    "LC50Result",
    "ObservationSet",
    "LC50Summary",
    "CoefficientTable",
    "LC50Table",
    "ControlSurvivalTable",
    "DevianceTable",
    "DevianceTableRow",
    "SimulationResult",
    "NLL_SENTINEL",
    "check_observations",
    "fitted_probability",
    "negative_log_likelihood",
    "initialize_lc50",
    "fit_lc50",
    "summarize",
    "anova_lc50",
    "simulate_lc50",
]
