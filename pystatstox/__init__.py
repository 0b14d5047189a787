"""
PyStatsTox: Toxicology statistical computing for Python.

Estimates lethal concentrations from destructively sampled survival data
where additional stressors shift the toxin's LC50 and control mortality is
not ignorable.

Usage:
    from pystatstox import lc50
"""

__version__ = "0.1.0"
__author__ = "Hai-Shuo"
__email__ = "contact@sgcx.org"

from pystatstox import lc50

__all__ = [
    "__version__",
    "lc50",
]
