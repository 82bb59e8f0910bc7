"""
diagnostics.py
==============
Regression diagnostics for a fitted OLS model:

- Residuals vs fitted values
- Normal Q-Q pairs of standardized residuals
- Shapiro-Wilk normality test with a reject/keep decision
- Variance inflation factors per predictor term (GVIF for multi-column terms)
- Diagnostic plots (residuals vs fitted, normal Q-Q)
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Union

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from scipy import stats
from statsmodels.nonparametric.smoothers_lowess import lowess
from statsmodels.stats.outliers_influence import variance_inflation_factor

from .base_model import FittedModel

logger = logging.getLogger(__name__)

NORMALITY_ALPHA = 0.05
# scipy warns that Shapiro-Wilk p-values may be inaccurate above this size
SHAPIRO_MAX_N = 5000


@dataclass(frozen=True)
class NormalityResult:
    statistic: float
    p_value: float
    alpha: float
    n: int

    @property
    def reject(self) -> bool:
        """True when normality of the residuals is rejected"""
        return self.p_value < self.alpha

    def as_dict(self) -> Dict[str, Union[float, bool, int]]:
        return {
            'shapiro_statistic': self.statistic,
            'shapiro_p_value': self.p_value,
            'alpha': self.alpha,
            'reject_normality': self.reject,
            'n': self.n,
        }


def residuals_vs_fitted(model: FittedModel) -> pd.DataFrame:
    return pd.DataFrame({
        'fitted': model.fittedvalues,
        'residual': model.resid,
    })


def standardized_residuals(model: FittedModel) -> np.ndarray:
    """Internally studentized residuals"""
    return model.results.get_influence().resid_studentized_internal


def qq_pairs(model: FittedModel) -> pd.DataFrame:
    """Theoretical normal quantiles against sorted standardized residuals"""
    (theoretical, ordered), _ = stats.probplot(standardized_residuals(model), dist='norm')
    return pd.DataFrame({
        'theoretical': theoretical,
        'standardized_residual': ordered,
    })


def normality_test(model: FittedModel, alpha: float = NORMALITY_ALPHA) -> NormalityResult:
    """Shapiro-Wilk test on the residual vector"""
    resid = np.asarray(model.resid)
    if len(resid) > SHAPIRO_MAX_N:
        logger.warning(f"Shapiro-Wilk on {len(resid):,} residuals; p-value may be inaccurate above {SHAPIRO_MAX_N:,}")
    statistic, p_value = stats.shapiro(resid)
    result = NormalityResult(statistic=float(statistic), p_value=float(p_value), alpha=alpha, n=len(resid))

    decision = "reject normality" if result.reject else "normality not rejected"
    logger.info(f"Shapiro-Wilk ({model.name}): W = {result.statistic:.4f}, "
                f"p = {result.p_value:.4g} -> {decision} at alpha = {alpha}")
    return result


# ============================================================================
# COLLINEARITY
# ============================================================================

def variance_inflation(model: FittedModel) -> pd.DataFrame:
    """
    Variance inflation per predictor term.

    Single-column terms use statsmodels' VIF on the full design (intercept
    included). Terms spanning several dummy columns get the generalized VIF
    det(R11) * det(R22) / det(R) computed from the predictor correlation
    matrix; 'vif_adjusted' is GVIF^(1 / (2 * df)) so terms of different size
    can be compared.
    """
    exog = model.exog
    design_info = model.design_info
    intercept_cols = [i for i, name in enumerate(model.exog_names) if name == 'Intercept']
    predictor_cols = [i for i in range(exog.shape[1]) if i not in intercept_cols]

    corr = np.corrcoef(exog[:, predictor_cols], rowvar=False) if len(predictor_cols) > 1 else np.ones((1, 1))
    corr = np.atleast_2d(corr)
    det_all = np.linalg.det(corr)
    position = {col: pos for pos, col in enumerate(predictor_cols)}

    rows = []
    for term, term_slice in design_info.term_slices.items():
        cols = list(range(exog.shape[1]))[term_slice]
        if not cols or all(c in intercept_cols for c in cols):
            continue
        df_term = len(cols)
        if len(predictor_cols) == 1:
            vif = 1.0
        elif df_term == 1:
            vif = float(variance_inflation_factor(exog, cols[0]))
        else:
            inside = [position[c] for c in cols]
            outside = [p for p in range(len(predictor_cols)) if p not in inside]
            det_inside = np.linalg.det(corr[np.ix_(inside, inside)])
            det_outside = np.linalg.det(corr[np.ix_(outside, outside)]) if outside else 1.0
            vif = float(det_inside * det_outside / det_all) if det_all > 0 else float('inf')
        rows.append({
            'term': term.name(),
            'df': df_term,
            'vif': vif,
            'vif_adjusted': vif ** (1.0 / (2 * df_term)) if np.isfinite(vif) else float('inf'),
        })

    table = pd.DataFrame(rows, columns=['term', 'df', 'vif', 'vif_adjusted'])
    high = table[table['vif_adjusted'] ** 2 > 10]
    if not high.empty:
        logger.warning(f"{model.name}: {len(high)} terms with (adjusted) VIF above 10: "
                       f"{', '.join(high['term'])}")
    return table


def log_vif(log: logging.Logger, table: pd.DataFrame, title: str = "Variance Inflation Factors") -> None:
    log.info(f"{title}:")
    for _, row in table.sort_values('vif', ascending=False).iterrows():
        log.info(f"  {row['term']:35s} df={int(row['df']):2d}  VIF={row['vif']:10.3f}  "
                 f"GVIF^(1/2df)={row['vif_adjusted']:7.3f}")


# ============================================================================
# PLOTS
# ============================================================================

def plot_diagnostics(model: FittedModel, output_file: Union[str, Path]) -> Path:
    """Residuals-vs-fitted and normal Q-Q plots side by side"""
    output_file = Path(output_file)
    output_file.parent.mkdir(parents=True, exist_ok=True)

    rvf = residuals_vs_fitted(model)
    qq = qq_pairs(model)

    sns.set_style('whitegrid')
    fig, axes = plt.subplots(1, 2, figsize=(14, 6))

    # 1. Residuals vs Fitted
    ax = axes[0]
    ax.scatter(rvf['fitted'], rvf['residual'], alpha=0.5, s=15)
    ax.axhline(0, color='grey', linestyle='--', linewidth=1)
    if len(rvf) > 3:
        smooth = lowess(rvf['residual'], rvf['fitted'], frac=2 / 3)
        ax.plot(smooth[:, 0], smooth[:, 1], color='red', linewidth=2)
    ax.set_xlabel('Fitted values')
    ax.set_ylabel('Residuals')
    ax.set_title('Residuals vs Fitted')

    # 2. Normal Q-Q
    ax = axes[1]
    ax.scatter(qq['theoretical'], qq['standardized_residual'], alpha=0.5, s=15)
    lims = [qq['theoretical'].min(), qq['theoretical'].max()]
    ax.plot(lims, lims, 'r--', linewidth=2)
    ax.set_xlabel('Theoretical Quantiles')
    ax.set_ylabel('Standardized residuals')
    ax.set_title('Normal Q-Q')

    plt.suptitle(f'{model.name}: {model.spec.response}', fontsize=14, fontweight='bold')
    plt.tight_layout()
    plt.savefig(output_file, dpi=150, bbox_inches='tight')
    plt.close(fig)

    logger.info(f"Diagnostic plots saved to {output_file}")
    return output_file
