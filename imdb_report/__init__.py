"""
IMDb film rating regression report.

Loads the IMDb parental-guide title table, cleans it, fits a sequence of
OLS models and compares held-out error of the first and final model.
"""

from .base_model import FittedModel, FormulaSpec, ModelFitError, TransformDomainError, fit_ols

__version__ = "1.0.0"

__all__ = [
    "FittedModel",
    "FormulaSpec",
    "ModelFitError",
    "TransformDomainError",
    "fit_ols",
]
