"""
base_model.py
=============
Formula specification, fitted-model container and OLS fitting for the
IMDb film rating report.

Every modelling stage consumes a FormulaSpec (response, linear terms,
pairwise interaction block, individual interaction terms) and produces a
new FittedModel. Fitted models are never edited in place; refinement steps
call refit() and get a fresh object back.

Design matrices are built by patsy through statsmodels formulas, so
categorical columns are dummy coded against their first level.
"""

import logging
from dataclasses import dataclass, field, replace
from itertools import combinations
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import statsmodels.formula.api as smf

# Set up logging
logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'

# Condition numbers above this are logged as a collinearity warning
CONDITION_WARNING = 1e10


# ============================================================================
# EXCEPTIONS
# ============================================================================

class ModelFitError(RuntimeError):
    """Raised when a design matrix is rank deficient."""

    def __init__(self, message: str, aliased: Sequence[str] = (), causes: Sequence[str] = ()):
        super().__init__(message)
        self.aliased = list(aliased)
        self.causes = list(causes)


class TransformDomainError(ValueError):
    """Raised when a log or power transform receives non-positive values."""

    def __init__(self, message: str, rows: Sequence[Any] = ()):
        super().__init__(message)
        self.rows = list(rows)


# ============================================================================
# LOGGING HELPERS
# ============================================================================

def setup_logging(name: str = "imdb_report",
                  log_dir: Optional[Path] = None,
                  log_suffix: Optional[str] = None,
                  level: int = logging.INFO) -> logging.Logger:
    """Set up a named logger writing to the console and to report/logs"""
    run_logger = logging.getLogger(name)
    run_logger.setLevel(level)
    run_logger.handlers.clear()

    # Prevent duplicate output through the root logger
    run_logger.propagate = False

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)

    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        if log_suffix:
            log_filename = log_dir / f"{name}_log_{log_suffix}.txt"
        else:
            log_filename = log_dir / f"{name}_log.txt"
        fh = logging.FileHandler(log_filename, mode='w', encoding='utf-8')
        fh.setLevel(level)
        fh.setFormatter(formatter)
        run_logger.addHandler(fh)

    ch = logging.StreamHandler()
    ch.setLevel(level)
    ch.setFormatter(formatter)
    run_logger.addHandler(ch)

    return run_logger


def log_section(log: logging.Logger, title: str, char: str = "-") -> None:
    """Log section header"""
    log.info("")
    log.info(char * 60)
    log.info(title.upper())
    log.info(char * 60)


# ============================================================================
# FORMULA SPECIFICATION
# ============================================================================

Term = Tuple[str, ...]


def _term_key(term: Term) -> frozenset:
    return frozenset(term)


@dataclass(frozen=True)
class FormulaSpec:
    """
    Declarative model formula shared by every stage.

    Attributes:
        response: Response column
        linear: Main-effect predictors, in order
        interaction_block: Predictors expanded to all main effects plus
            every pairwise product, like (a + b + c)**2
        interactions: Individual two-way products (a, b)
    """
    response: str
    linear: Tuple[str, ...] = ()
    interaction_block: Tuple[str, ...] = ()
    interactions: Tuple[Tuple[str, str], ...] = ()

    def __post_init__(self):
        object.__setattr__(self, 'linear', tuple(self.linear))
        object.__setattr__(self, 'interaction_block', tuple(self.interaction_block))
        object.__setattr__(self, 'interactions', tuple(tuple(t) for t in self.interactions))
        for pair in self.interactions:
            if len(pair) != 2:
                raise ValueError(f"Interaction terms must name two predictors, got {pair}")

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "FormulaSpec":
        """Build from a JSON-style dict"""
        if 'response' not in config:
            raise ValueError("Formula configuration needs a 'response'")
        return cls(
            response=config['response'],
            linear=tuple(config.get('linear', ())),
            interaction_block=tuple(config.get('interaction_block', ())),
            interactions=tuple(tuple(pair) for pair in config.get('interactions', ())),
        )

    @classmethod
    def from_terms(cls, response: str, terms: Iterable[Term]) -> "FormulaSpec":
        """Rebuild a spec from an explicit term list (used by stepwise selection)"""
        linear = []
        interactions = []
        for term in terms:
            if len(term) == 1:
                linear.append(term[0])
            elif len(term) == 2:
                interactions.append(tuple(term))
            else:
                raise ValueError(f"Only main effects and two-way terms are supported: {term}")
        return cls(response=response, linear=tuple(linear), interactions=tuple(interactions))

    def terms(self) -> List[Term]:
        """Ordered, de-duplicated model terms (main effects first)"""
        ordered: List[Term] = []
        seen = set()

        def add(term: Term):
            key = _term_key(term)
            if key not in seen:
                seen.add(key)
                ordered.append(term)

        for name in self.linear:
            add((name,))
        for name in self.interaction_block:
            add((name,))
        for a, b in combinations(self.interaction_block, 2):
            add((a, b))
        for a, b in self.interactions:
            add((a, b))
        return ordered

    def variables(self) -> List[str]:
        """Every column the formula touches, response first"""
        names = [self.response]
        for term in self.terms():
            for name in term:
                if name not in names:
                    names.append(name)
        return names

    def formula(self) -> str:
        rhs = " + ".join(":".join(term) for term in self.terms())
        return f"{self.response} ~ {rhs or '1'}"

    def with_response(self, response: str) -> "FormulaSpec":
        return replace(self, response=response)

    def drop_variables(self, names: Iterable[str]) -> "FormulaSpec":
        """Remove every term that involves one of the given predictors"""
        names = set(names)
        return replace(self,
                       linear=tuple(n for n in self.linear if n not in names),
                       interaction_block=tuple(n for n in self.interaction_block if n not in names),
                       interactions=tuple(p for p in self.interactions if not names & set(p)))

    def expand(self, placeholders: Dict[str, Sequence[str]]) -> "FormulaSpec":
        """Replace placeholder names (e.g. '@genres') with column lists"""
        def expand_names(names):
            out = []
            for name in names:
                out.extend(placeholders.get(name, [name]))
            return tuple(out)

        return replace(self,
                       linear=expand_names(self.linear),
                       interaction_block=expand_names(self.interaction_block))

    def __str__(self):
        return self.formula()


# ============================================================================
# FITTED MODEL
# ============================================================================

@dataclass(frozen=True, eq=False)
class FittedModel:
    """Immutable OLS fit: formula, data snapshot and statsmodels results"""
    name: str
    spec: FormulaSpec
    data: pd.DataFrame = field(repr=False)
    results: Any = field(repr=False)

    @property
    def params(self) -> pd.Series:
        return self.results.params

    @property
    def pvalues(self) -> pd.Series:
        return self.results.pvalues

    @property
    def resid(self) -> pd.Series:
        return self.results.resid

    @property
    def fittedvalues(self) -> pd.Series:
        return self.results.fittedvalues

    @property
    def rsquared_adj(self) -> float:
        return float(self.results.rsquared_adj)

    @property
    def aic(self) -> float:
        return float(self.results.aic)

    @property
    def nobs(self) -> int:
        return int(self.results.nobs)

    @property
    def exog(self) -> np.ndarray:
        return self.results.model.exog

    @property
    def exog_names(self) -> List[str]:
        return list(self.results.model.exog_names)

    @property
    def design_info(self):
        return self.results.model.data.design_info

    @property
    def row_index(self) -> pd.Index:
        """Labels of the data rows the model was fit on"""
        return self.results.fittedvalues.index

    def refit(self,
              data: Optional[pd.DataFrame] = None,
              spec: Optional[FormulaSpec] = None,
              name: Optional[str] = None) -> "FittedModel":
        """Fit a new model, reusing this one's data and/or formula"""
        return fit_ols(self.data if data is None else data,
                       self.spec if spec is None else spec,
                       name=name or self.name)

    def predict(self, data: pd.DataFrame) -> np.ndarray:
        return np.asarray(self.results.predict(data))

    def summary_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'formula': self.spec.formula(),
            'n': self.nobs,
            'n_parameters': len(self.params),
            'r_squared': float(self.results.rsquared),
            'adj_r_squared': self.rsquared_adj,
            'aic': self.aic,
            'bic': float(self.results.bic),
            'condition_number': float(self.results.condition_number),
        }

    def coefficient_table(self) -> pd.DataFrame:
        return pd.DataFrame({
            'coefficient': self.params,
            'std_error': self.results.bse,
            't_value': self.results.tvalues,
            'p_value': self.pvalues,
        })


# ============================================================================
# FITTING
# ============================================================================

def constant_indicators(data: pd.DataFrame, columns: Optional[Iterable[str]] = None) -> List[str]:
    """Boolean columns holding a single value (e.g. a genre no row carries)"""
    columns = data.columns if columns is None else [c for c in columns if c in data.columns]
    return [col for col in columns
            if pd.api.types.is_bool_dtype(data[col]) and data[col].nunique() < 2]


def empty_levels(data: pd.DataFrame, columns: Optional[Iterable[str]] = None) -> Dict[str, List[Any]]:
    """Categorical levels with no rows, per column"""
    columns = data.columns if columns is None else [c for c in columns if c in data.columns]
    out = {}
    for col in columns:
        if not isinstance(data[col].dtype, pd.CategoricalDtype):
            continue
        counts = data[col].value_counts()
        empty = [level for level in data[col].cat.categories if counts.get(level, 0) == 0]
        if empty:
            out[col] = empty
    return out


def design_problems(data: pd.DataFrame, spec: FormulaSpec,
                    exog: np.ndarray, names: Sequence[str]) -> List[str]:
    """Name the predictors behind a singular design: empty levels, constant indicators, zero columns"""
    predictors = spec.variables()[1:]
    problems = [f"{col} has no rows for level(s) {levels}"
                for col, levels in empty_levels(data, predictors).items()]
    problems.extend(f"{col} is constant ({bool(data[col].iloc[0]) if len(data) else 'empty'})"
                    for col in constant_indicators(data, predictors))
    problems.extend(f"design column {names[j]} is all zero"
                    for j in range(exog.shape[1]) if not np.any(exog[:, j]))
    return problems


def aliased_columns(exog: np.ndarray, names: Sequence[str], tol: Optional[float] = None) -> List[str]:
    """Design columns that are linear combinations of the columns before them"""
    aliased = []
    basis: List[int] = []
    rank = 0
    for j in range(exog.shape[1]):
        candidate = basis + [j]
        new_rank = np.linalg.matrix_rank(exog[:, candidate], tol=tol)
        if new_rank > rank:
            basis = candidate
            rank = new_rank
        else:
            aliased.append(names[j])
    return aliased


def fit_ols(data: pd.DataFrame, spec: FormulaSpec, name: Optional[str] = None) -> FittedModel:
    """
    Fit an OLS model for the given formula spec.

    Args:
        data: Cleaned data frame holding every column the spec references
        spec: Formula specification
        name: Label used in logs and reports

    Returns:
        FittedModel

    Raises:
        ValueError: If a referenced column is missing
        ModelFitError: If the design matrix is rank deficient
    """
    name = name or spec.response
    missing = [col for col in spec.variables() if col not in data.columns]
    if missing:
        raise ValueError(f"Model '{name}' references missing columns: {missing}")

    formula = spec.formula()
    ols_model = smf.ols(formula, data=data)

    exog = ols_model.exog
    rank = np.linalg.matrix_rank(exog)
    if rank < exog.shape[1]:
        causes = design_problems(data, spec, exog, ols_model.exog_names)
        aliased = aliased_columns(exog, ols_model.exog_names)
        logger.error(f"Rank-deficient design for '{name}': rank {rank} < {exog.shape[1]} columns")
        for cause in causes:
            logger.error(f"  Cause: {cause}")
        logger.error(f"  Aliased columns: {', '.join(aliased)}")
        reason = f"{'; '.join(causes)}; " if causes else ""
        raise ModelFitError(
            f"Design matrix for '{name}' is rank deficient "
            f"(rank {rank} of {exog.shape[1]}); {reason}aliased columns: {', '.join(aliased)}",
            aliased=aliased,
            causes=causes,
        )

    results = ols_model.fit()
    if results.condition_number > CONDITION_WARNING:
        logger.warning(f"'{name}': condition number {results.condition_number:.3g} "
                       f"indicates strong collinearity")

    logger.info(f"Fitted '{name}': {formula}")
    logger.info(f"  n = {int(results.nobs):,}, parameters = {len(results.params)}, "
                f"adj R^2 = {results.rsquared_adj:.4f}, AIC = {results.aic:,.2f}")
    return FittedModel(name=name, spec=spec, data=data, results=results)


def log_coefficients(log: logging.Logger, model: FittedModel, alpha: float = 0.05) -> None:
    """Log coefficients sorted by magnitude, split by significance"""
    table = model.coefficient_table().drop(index='Intercept', errors='ignore')
    table = table.reindex(table['coefficient'].abs().sort_values(ascending=False).index)

    log.info("")
    log.info("=" * 80)
    log.info(f"{model.name} Coefficients (All {len(table)} Terms)")
    log.info("=" * 80)

    for label, subset in (("Significant", table[table['p_value'] < alpha]),
                          ("Non-Significant", table[table['p_value'] >= alpha])):
        if subset.empty:
            continue
        op = '<' if label == "Significant" else '>='
        log.info(f"{label} Terms (p {op} {alpha}): {len(subset)} terms")
        log.info("-" * 60)
        for idx, (term, row) in enumerate(subset.iterrows(), 1):
            parts = [f"  {idx:3d}. {term:30s}", f"Beta={row['coefficient']:8.4f}",
                     f"SE={row['std_error']:7.4f}"]
            if row['p_value'] < 0.0001:
                parts.append("p<0.0001")
            else:
                parts.append(f"p={row['p_value']:7.4f}")
            log.info(" ".join(parts))

    log.info("=" * 80)
