"""
evaluation.py
=============
Held-out comparison of model formulas.

The data is split once with a fixed seed; every formula is refit from
scratch on the training rows only and scored by RMSE on the test rows.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Tuple

import numpy as np
import pandas as pd
from sklearn.metrics import mean_squared_error
from sklearn.model_selection import train_test_split

from .base_model import FormulaSpec, constant_indicators, fit_ols

logger = logging.getLogger(__name__)

# ============================================================================
# SINGLE POINT OF CONTROL FOR RANDOM SEED
# ============================================================================
RANDOM_SEED = 42
TRAIN_FRACTION = 0.85


@dataclass(frozen=True, eq=False)
class SplitResult:
    train_index: pd.Index
    test_index: pd.Index

    @property
    def n_train(self) -> int:
        return len(self.train_index)

    @property
    def n_test(self) -> int:
        return len(self.test_index)


def split_train_test(data: pd.DataFrame,
                     train_fraction: float = TRAIN_FRACTION,
                     seed: int = RANDOM_SEED) -> SplitResult:
    """Random, seeded partition of the row labels into train and test"""
    if not 0.0 < train_fraction < 1.0:
        raise ValueError(f"train_fraction must be between 0 and 1, got {train_fraction}")

    train_labels, test_labels = train_test_split(
        np.asarray(data.index), train_size=train_fraction, random_state=seed, shuffle=True
    )
    # keep the original row order inside each partition
    split = SplitResult(
        train_index=data.index[data.index.isin(train_labels)],
        test_index=data.index[data.index.isin(test_labels)],
    )

    logger.info(f"Training samples: {split.n_train:,}")
    logger.info(f"Test samples: {split.n_test:,}")
    logger.info(f"Split ratio: {train_fraction * 100:.1f}% train (seed {seed})")
    return split


def root_mean_squared_error(actual, predicted) -> float:
    return float(np.sqrt(mean_squared_error(actual, predicted)))


def align_categories(train: pd.DataFrame, test: pd.DataFrame) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Restrict categorical levels to those seen in training.

    Levels absent from the training rows would give all-zero dummy columns;
    test rows carrying such a level cannot be predicted and are dropped.
    """
    train = train.copy()
    test = test.copy()
    keep = pd.Series(True, index=test.index)
    for col in train.columns:
        if not isinstance(train[col].dtype, pd.CategoricalDtype):
            continue
        train[col] = train[col].cat.remove_unused_categories()
        levels = train[col].cat.categories
        unseen = ~test[col].isin(levels)
        if unseen.any():
            logger.warning(f"  {col}: {int(unseen.sum())} test rows have levels unseen in training "
                           f"({sorted(set(test.loc[unseen, col].astype(str)))})")
        keep &= ~unseen
        test[col] = pd.Categorical(test[col].astype(object), categories=levels)

    if not keep.all():
        logger.warning(f"Dropping {int((~keep).sum())} test rows with unseen categorical levels")
    return train, test[keep]


def evaluate_rmse(data: pd.DataFrame,
                  specs: Dict[str, FormulaSpec],
                  split: SplitResult) -> Dict[str, float]:
    """
    Refit each formula on the training rows and score it on the test rows.

    Args:
        data: Dataset holding every column the specs reference
        specs: Label -> formula
        split: Partition from split_train_test()

    Returns:
        Label -> test RMSE (on each formula's own response scale)
    """
    train, test = align_categories(data.loc[split.train_index], data.loc[split.test_index])

    rmse = {}
    for label, spec in specs.items():
        constant = [col for col in constant_indicators(train, spec.variables()) if col != spec.response]
        if constant:
            logger.warning(f"  {label}: dropping indicators constant on the training rows: {', '.join(constant)}")
            spec = spec.drop_variables(constant)
        model = fit_ols(train, spec, name=f"{label} (train)")
        predicted = model.predict(test)
        rmse[label] = root_mean_squared_error(test[spec.response].to_numpy(dtype=float), predicted)
        logger.info(f"  {label:30s} test RMSE = {rmse[label]:.4f} ({spec.response}, n_test = {len(test):,})")
    return rmse
