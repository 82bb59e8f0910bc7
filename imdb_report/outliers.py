"""
outliers.py
===========
Influence diagnostics and influential-observation removal.

Leverage is the diagonal of the hat matrix; Cook's distance combines
leverage with the standardized residual. An observation is flagged when
its Cook's distance exceeds 4/n. Removal is a single pass: the threshold
is not re-derived on the trimmed data.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import numpy as np
import pandas as pd

from .base_model import FittedModel, constant_indicators
from .data_loader import drop_unused_levels

logger = logging.getLogger(__name__)

COOKS_NUMERATOR = 4.0


@dataclass(frozen=True, eq=False)
class OutlierResult:
    """Trimmed data plus what was removed and why"""
    data: pd.DataFrame = field(repr=False)
    removed_index: pd.Index
    threshold: float
    diagnostics: Dict[str, Any] = field(default_factory=dict)

    @property
    def n_removed(self) -> int:
        return len(self.removed_index)


def influence_table(model: FittedModel) -> pd.DataFrame:
    """Leverage, standardized residual and Cook's distance per observation"""
    influence = model.results.get_influence()
    return pd.DataFrame({
        'leverage': influence.hat_matrix_diag,
        'standardized_residual': influence.resid_studentized_internal,
        'cooks_distance': influence.cooks_distance[0],
    }, index=model.row_index)


def cooks_threshold(n: int) -> float:
    return COOKS_NUMERATOR / n


def remove_influential(model: FittedModel, threshold: Optional[float] = None) -> OutlierResult:
    """
    Drop observations whose Cook's distance exceeds the threshold.

    Args:
        model: Fitted model; its data snapshot is left untouched
        threshold: Cook's distance cut-off (default 4/n)

    Returns:
        OutlierResult holding the trimmed copy of the model's data
    """
    table = influence_table(model)
    n = len(table)
    p = len(model.params)
    if threshold is None:
        threshold = cooks_threshold(n)

    flagged = table.index[table['cooks_distance'] > threshold]
    trimmed = drop_unused_levels(model.data.drop(index=flagged).copy())
    constant = constant_indicators(trimmed)

    leverage = table['leverage'].to_numpy()
    n_removed = len(flagged)
    pct_removed = (n_removed / n) * 100 if n else 0.0
    diagnostics = {
        'n_before': n,
        'n_after': len(trimmed),
        'n_removed': n_removed,
        'pct_removed': pct_removed,
        'cooks_threshold': threshold,
        'cooks_max': float(table['cooks_distance'].max()),
        'leverage_mean': float(np.mean(leverage)),
        'leverage_max': float(np.max(leverage)),
        'high_leverage_threshold': 2 * p / n,
        'high_leverage_count': int(np.sum(leverage > (2 * p / n))),
        'constant_indicators': constant,
    }

    logger.info(f"Influential observation removal ({model.name}):")
    logger.info(f"  Threshold: Cook's D > {threshold:.5f} (4/n, n = {n:,})")
    logger.info(f"  Removed: {n_removed:,} observations ({pct_removed:.2f}%)")
    logger.info(f"  Leverage - Mean: {diagnostics['leverage_mean']:.4f}, "
                f"Max: {diagnostics['leverage_max']:.4f}, "
                f"above 2p/n: {diagnostics['high_leverage_count']:,}")
    if constant:
        logger.warning(f"  Indicators constant after removal: {', '.join(constant)}")

    return OutlierResult(data=trimmed, removed_index=flagged, threshold=threshold,
                         diagnostics=diagnostics)
