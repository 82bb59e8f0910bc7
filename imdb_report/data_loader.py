"""
data_loader.py
==============
Load and clean the IMDb title table.

Cleaning order:
1. Drop rows with any missing field
2. Drop rows whose rating or advisory fields hold the "No Rate" sentinel
3. Keep films only; drop the Type and Episodes columns
4. Drop exact duplicates (first occurrence kept, order preserved)
5. Coerce numeric and categorical columns; rows that fail coercion are
   dropped and counted rather than carried forward as missing values
"""

import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import pandas as pd

from .base_model import empty_levels

logger = logging.getLogger(__name__)

# ============================================================================
# DATASET CONSTANTS
# ============================================================================

SENTINEL = "No Rate"
FILM_TYPE = "Film"

ADVISORY_COLUMNS = ['Nudity', 'Violence', 'Profanity', 'Alcohol', 'Frightening']
ADVISORY_LEVELS = ['None', 'Mild', 'Moderate', 'Severe']
SENTINEL_COLUMNS = ['Rate'] + ADVISORY_COLUMNS

NUMERIC_COLUMNS = ['Rate', 'Votes', 'Duration', 'Date']
GROUPED_NUMERIC_COLUMNS = ['Votes']  # may contain "1,234" style separators
DROP_COLUMNS = ['Type', 'Episodes']

REQUIRED_COLUMNS = [
    'Rate', 'Votes', 'Duration', 'Certificate',
    'Nudity', 'Violence', 'Profanity', 'Alcohol', 'Frightening',
    'Genre', 'Date', 'Type', 'Episodes',
]


@dataclass
class CleaningReport:
    """Row counts removed by each cleaning stage"""
    n_raw: int = 0
    dropped_missing: int = 0
    dropped_sentinel: int = 0
    dropped_not_film: int = 0
    dropped_duplicates: int = 0
    dropped_coercion: int = 0
    n_clean: int = 0

    @property
    def total_dropped(self) -> int:
        return (self.dropped_missing + self.dropped_sentinel + self.dropped_not_film
                + self.dropped_duplicates + self.dropped_coercion)

    def as_dict(self) -> Dict[str, int]:
        out = asdict(self)
        out['total_dropped'] = self.total_dropped
        return out

    def log(self, log: logging.Logger) -> None:
        log.info("Cleaning Summary:")
        log.info(f"  - Raw records: {self.n_raw:,}")
        log.info(f"  - Dropped (missing values): {self.dropped_missing:,}")
        log.info(f"  - Dropped ('{SENTINEL}' sentinel): {self.dropped_sentinel:,}")
        log.info(f"  - Dropped (not a film): {self.dropped_not_film:,}")
        log.info(f"  - Dropped (duplicates): {self.dropped_duplicates:,}")
        log.info(f"  - Dropped (failed type coercion): {self.dropped_coercion:,}")
        log.info(f"  - Clean records: {self.n_clean:,}")


# ============================================================================
# LOADING
# ============================================================================

def load_raw(path: Union[str, Path]) -> pd.DataFrame:
    """
    Read the raw CSV with every column as text.

    Only empty cells and "NA" count as missing; "None" is a valid advisory
    level and must survive the read.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Data file not found: {path}")

    logger.info(f"Loading data from {path}")
    raw = pd.read_csv(path, dtype=str, keep_default_na=False, na_values=['', 'NA'])
    raw.columns = [col.strip() for col in raw.columns]

    missing = [col for col in REQUIRED_COLUMNS if col not in raw.columns]
    if missing:
        raise ValueError(f"{path} is missing required columns: {missing}")

    logger.info(f"Found {len(raw):,} records, {len(raw.columns)} columns")
    return raw


# ============================================================================
# CLEANING
# ============================================================================

def _coerce_numeric(values: pd.Series, strip_grouping: bool = False) -> pd.Series:
    text = values.astype(str).str.strip()
    if strip_grouping:
        text = text.str.replace(',', '', regex=False)
    return pd.to_numeric(text, errors='coerce')


def clean_records(raw: pd.DataFrame,
                  sentinel: str = SENTINEL,
                  film_type: str = FILM_TYPE,
                  advisory_levels: Sequence[str] = ADVISORY_LEVELS) -> Tuple[pd.DataFrame, CleaningReport]:
    """
    Apply the cleaning stages in order and count what each one drops.

    Args:
        raw: Frame from load_raw()
        sentinel: Marker for an unrated observation
        film_type: Value of the Type column to keep
        advisory_levels: Fixed vocabulary for the advisory columns, baseline first

    Returns:
        Tuple of (clean frame with a fresh RangeIndex, CleaningReport)
    """
    report = CleaningReport(n_raw=len(raw))
    df = raw.copy()

    # 1. Missing values in any field
    before = len(df)
    df = df.dropna(how='any')
    report.dropped_missing = before - len(df)

    # 2. Sentinel values in rating / advisory fields
    before = len(df)
    sentinel_cols = [col for col in SENTINEL_COLUMNS if col in df.columns]
    has_sentinel = df[sentinel_cols].apply(lambda col: col.str.strip() == sentinel).any(axis=1)
    df = df[~has_sentinel]
    report.dropped_sentinel = before - len(df)

    # 3. Films only
    before = len(df)
    df = df[df['Type'].str.strip() == film_type]
    df = df.drop(columns=[col for col in DROP_COLUMNS if col in df.columns])
    report.dropped_not_film = before - len(df)

    # 4. Exact duplicates
    before = len(df)
    df = df.drop_duplicates(keep='first').copy()
    report.dropped_duplicates = before - len(df)

    # 5. Type coercion
    before = len(df)
    for col in NUMERIC_COLUMNS:
        df[col] = _coerce_numeric(df[col], strip_grouping=col in GROUPED_NUMERIC_COLUMNS)

    levels = list(advisory_levels)
    for col in ADVISORY_COLUMNS:
        df[col] = pd.Categorical(df[col].str.strip(), categories=levels)

    certificates = df['Certificate'].str.strip()
    df['Certificate'] = pd.Categorical(certificates, categories=sorted(certificates.unique()))

    failed = df[NUMERIC_COLUMNS + ADVISORY_COLUMNS].isna().any(axis=1)
    if failed.any():
        bad_cols = df.loc[failed, NUMERIC_COLUMNS + ADVISORY_COLUMNS].isna().sum()
        bad_cols = bad_cols[bad_cols > 0]
        logger.warning(f"Dropping {int(failed.sum()):,} records that failed type coercion")
        for col, count in bad_cols.items():
            logger.warning(f"  {col}: {int(count):,} unparseable values")
    df = df[~failed].copy()
    report.dropped_coercion = before - len(df)

    df = drop_unused_levels(df, ADVISORY_COLUMNS + ['Certificate'])
    df = df.reset_index(drop=True)
    report.n_clean = len(df)

    report.log(logger)
    if report.n_clean == 0:
        logger.error("No records survived cleaning!")

    return df, report


def drop_unused_levels(df: pd.DataFrame, columns: Optional[List[str]] = None) -> pd.DataFrame:
    """Remove categorical levels with no rows so dummy columns are never all zero"""
    if columns is None:
        columns = [col for col in df.columns if isinstance(df[col].dtype, pd.CategoricalDtype)]
    for col, unused in empty_levels(df, columns).items():
        logger.info(f"  {col}: removing unused levels {unused}")
        df[col] = df[col].cat.remove_unused_categories()
    return df


def load_and_clean(path: Union[str, Path],
                   sentinel: str = SENTINEL,
                   film_type: str = FILM_TYPE,
                   advisory_levels: Optional[Sequence[str]] = None) -> Tuple[pd.DataFrame, CleaningReport]:
    """Convenience wrapper: load_raw() followed by clean_records()"""
    raw = load_raw(path)
    return clean_records(raw, sentinel=sentinel, film_type=film_type,
                         advisory_levels=advisory_levels or ADVISORY_LEVELS)
