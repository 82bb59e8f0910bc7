"""
features.py
===========
Genre indicator columns and predictor transforms.

The Genre column holds a delimited list ("Action, Adventure, Sci-Fi").
Each distinct token becomes one boolean column named by a formula-safe
identifier ("Sci-Fi" -> "Sci_Fi"), in first-seen order.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

import numpy as np
import pandas as pd

from .base_model import TransformDomainError

logger = logging.getLogger(__name__)

GENRE_COLUMN = 'Genre'
GENRE_SEPARATOR = ','
LOG_PREFIX = 'log_'


def sanitize_token(token: str) -> str:
    """Turn a genre token into a valid column / formula identifier"""
    name = re.sub(r"\W", "_", token.strip())
    if not name:
        raise ValueError(f"Genre token {token!r} has no usable characters")
    if name[0].isdigit():
        name = f"_{name}"
    return name


def split_tokens(value: str, sep: str = GENRE_SEPARATOR) -> List[str]:
    return [token.strip() for token in str(value).split(sep) if token.strip()]


@dataclass(frozen=True)
class GenreVocabulary:
    """Genre tokens in first-seen order with their column names"""
    tokens: Tuple[str, ...]
    columns: Tuple[str, ...]

    def mapping(self) -> Dict[str, str]:
        return dict(zip(self.tokens, self.columns))

    def __len__(self):
        return len(self.tokens)


def genre_vocabulary(values: Sequence[str], sep: str = GENRE_SEPARATOR) -> GenreVocabulary:
    tokens: List[str] = []
    seen = set()
    for value in values:
        for token in split_tokens(value, sep):
            if token not in seen:
                seen.add(token)
                tokens.append(token)

    columns = [sanitize_token(token) for token in tokens]
    duplicates = sorted({c for c in columns if columns.count(c) > 1})
    if duplicates:
        raise ValueError(f"Distinct genres collapse to the same column name: {duplicates}")
    return GenreVocabulary(tokens=tuple(tokens), columns=tuple(columns))


def add_genre_dummies(data: pd.DataFrame,
                      column: str = GENRE_COLUMN,
                      sep: str = GENRE_SEPARATOR) -> Tuple[pd.DataFrame, GenreVocabulary]:
    """
    Expand the genre list column into boolean indicator columns.

    Args:
        data: Cleaned records
        column: Delimited genre column (dropped from the output)
        sep: Token separator

    Returns:
        Tuple of (new frame, GenreVocabulary)
    """
    if column not in data.columns:
        raise ValueError(f"Genre column '{column}' not found")

    vocab = genre_vocabulary(data[column], sep)
    clashes = [c for c in vocab.columns if c in data.columns and c != column]
    if clashes:
        raise ValueError(f"Genre columns would overwrite existing columns: {clashes}")

    token_sets = data[column].map(lambda value: set(split_tokens(value, sep)))
    indicators = pd.DataFrame(
        {col: token_sets.map(lambda tokens, t=token: t in tokens).astype(bool)
         for token, col in zip(vocab.tokens, vocab.columns)},
        index=data.index,
    )
    out = pd.concat([data.drop(columns=[column]), indicators], axis=1)

    logger.info(f"Genre indicators: {len(vocab)} columns [{', '.join(vocab.columns)}]")
    counts = indicators.sum()
    for col in vocab.columns:
        logger.debug(f"  {col:20s}: {int(counts[col]):,} records")

    return out, vocab


def add_log_columns(data: pd.DataFrame,
                    columns: Sequence[str],
                    prefix: str = LOG_PREFIX) -> Tuple[pd.DataFrame, List[str]]:
    """Add natural-log copies of numeric predictors (e.g. Votes -> log_Votes)"""
    out = data.copy()
    names = []
    for col in columns:
        if col not in out.columns:
            raise ValueError(f"Cannot log-transform missing column '{col}'")
        values = out[col].astype(float)
        nonpositive = out.index[values <= 0]
        if len(nonpositive):
            raise TransformDomainError(
                f"Column '{col}' has {len(nonpositive)} non-positive values; "
                f"first rows: {list(nonpositive[:10])}",
                rows=list(nonpositive),
            )
        name = f"{prefix}{col}"
        out[name] = np.log(values)
        names.append(name)
        logger.info(f"Added {name} = log({col})")
    return out, names
