"""
transforms.py
=============
Box-Cox transformation of the response.

The exponent is chosen on a fixed grid by maximizing the profile
log-likelihood of the model's design matrix refit against the transformed
response:

    l(lambda) = -n/2 * log(RSS(lambda) / n) + (lambda - 1) * sum(log y)

The transformed response is added as a new column; the original stays.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import statsmodels.api as sm
from scipy import special, stats

from .base_model import FittedModel, TransformDomainError

logger = logging.getLogger(__name__)

# -2.0, -1.9, ..., 2.0
LAMBDA_GRID = np.round(np.linspace(-2.0, 2.0, 41), 1)
BOXCOX_SUFFIX = '_bc'


@dataclass(frozen=True, eq=False)
class BoxCoxResult:
    lam: float
    shift: float
    lambdas: np.ndarray = field(repr=False)
    log_likelihood: np.ndarray = field(repr=False)
    confidence_interval: Tuple[float, float] = (float('nan'), float('nan'))

    def as_dict(self):
        return {
            'lambda': self.lam,
            'shift': self.shift,
            'ci_lower': self.confidence_interval[0],
            'ci_upper': self.confidence_interval[1],
            'max_log_likelihood': float(np.max(self.log_likelihood)),
        }


def _check_positive(values: np.ndarray, index: Sequence, allow_shift: bool, label: str) -> float:
    """Return the shift needed to make values positive, or raise"""
    nonpositive = [idx for idx, v in zip(index, values) if v <= 0]
    if not nonpositive:
        return 0.0
    if not allow_shift:
        raise TransformDomainError(
            f"Box-Cox needs a strictly positive response; '{label}' has "
            f"{len(nonpositive)} non-positive values (rows {nonpositive[:10]})",
            rows=nonpositive,
        )
    shift = float(1.0 - np.min(values))
    logger.warning(f"'{label}' has {len(nonpositive)} non-positive values; "
                   f"shifting by {shift:.4f} before Box-Cox")
    return shift


def boxcox_profile(model: FittedModel,
                   lambdas: Sequence[float] = LAMBDA_GRID,
                   allow_shift: bool = False) -> BoxCoxResult:
    """
    Profile log-likelihood of the Box-Cox exponent for a fitted model.

    Args:
        model: Fitted model whose response is transformed
        lambdas: Candidate exponents
        allow_shift: Add 1 - min(y) when the response is not strictly positive

    Returns:
        BoxCoxResult with the maximizing exponent and a 95% interval
    """
    y = np.asarray(model.results.model.endog, dtype=float)
    X = model.exog
    n = len(y)
    shift = _check_positive(y, list(model.row_index), allow_shift, model.spec.response)
    y = y + shift

    lambdas = np.asarray(lambdas, dtype=float)
    sum_log_y = float(np.sum(np.log(y)))
    log_lik = np.empty(len(lambdas))
    for i, lam in enumerate(lambdas):
        z = special.boxcox(y, lam)
        rss = sm.OLS(z, X).fit().ssr
        log_lik[i] = -0.5 * n * np.log(rss / n) + (lam - 1.0) * sum_log_y

    best = int(np.argmax(log_lik))
    cutoff = log_lik[best] - 0.5 * stats.chi2.ppf(0.95, 1)
    inside = lambdas[log_lik >= cutoff]
    result = BoxCoxResult(
        lam=float(lambdas[best]),
        shift=shift,
        lambdas=lambdas,
        log_likelihood=log_lik,
        confidence_interval=(float(inside.min()), float(inside.max())),
    )

    logger.info(f"Box-Cox ({model.name}): lambda = {result.lam:.2f} "
                f"(95% CI {result.confidence_interval[0]:.2f} to {result.confidence_interval[1]:.2f}), "
                f"grid {lambdas.min():.1f}..{lambdas.max():.1f}")
    if best in (0, len(lambdas) - 1):
        logger.warning("Box-Cox optimum lies on the edge of the lambda grid")
    return result


def apply_boxcox(data: pd.DataFrame,
                 column: str,
                 lam: float,
                 target: Optional[str] = None,
                 shift: float = 0.0) -> pd.DataFrame:
    """Return a copy of data with the transformed column added"""
    if column not in data.columns:
        raise ValueError(f"Cannot transform missing column '{column}'")
    target = target or f"{column}{BOXCOX_SUFFIX}"
    if target == column:
        raise ValueError("Box-Cox output must not overwrite the original column")

    values = data[column].to_numpy(dtype=float) + shift
    _check_positive(values, list(data.index), allow_shift=False, label=column)

    out = data.copy()
    out[target] = special.boxcox(values, lam)
    logger.info(f"Added {target} = BoxCox({column}{' + %.4f' % shift if shift else ''}, lambda = {lam:.2f})")
    return out


def inverse_boxcox(values, lam: float, shift: float = 0.0) -> np.ndarray:
    """(z * lam + 1)^(1 / lam) for lam != 0, exp(z) for lam == 0, minus the shift"""
    return special.inv_boxcox(np.asarray(values, dtype=float), lam) - shift
