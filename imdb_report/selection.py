"""
selection.py
============
Backward stepwise selection by AIC.

Starting from a full model, every removable term is dropped in turn and
the model refit on the same data. The removal with the lowest AIC is
committed when it beats the current model; the search stops at the first
step where no single removal helps. A main effect is only removable once
no remaining interaction involves it.

This is a local, backward-only search; the result is not guaranteed to be
the best subset.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .base_model import FittedModel, FormulaSpec, Term

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepRecord:
    step: int
    removed: str
    aic_before: float
    aic_after: float


@dataclass(frozen=True, eq=False)
class StepwiseResult:
    model: FittedModel
    start_aic: float
    steps: List[StepRecord] = field(default_factory=list)

    @property
    def removed_terms(self) -> List[str]:
        return [s.removed for s in self.steps]


def removable_terms(terms: Sequence[Term]) -> List[Term]:
    """Terms not contained in any other present (higher-order) term"""
    out = []
    for term in terms:
        members = set(term)
        if not any(members < set(other) for other in terms if other is not term):
            out.append(term)
    return out


def _term_label(term: Term) -> str:
    return ":".join(term)


def backward_stepwise(model: FittedModel, max_steps: Optional[int] = None) -> StepwiseResult:
    """
    Drop terms one at a time while AIC improves.

    Args:
        model: Starting (full) model
        max_steps: Optional cap on the number of removals

    Returns:
        StepwiseResult with the model at the fixed point and the removal path
    """
    current = model
    steps: List[StepRecord] = []
    logger.info(f"Backward stepwise selection from '{model.name}': start AIC = {model.aic:,.2f}")

    while max_steps is None or len(steps) < max_steps:
        terms = current.spec.terms()
        candidates = removable_terms(terms)
        if not candidates:
            break

        best_term = None
        best_model = None
        for term in candidates:
            reduced = FormulaSpec.from_terms(current.spec.response, [t for t in terms if t != term])
            trial = current.refit(spec=reduced, name=f"{model.name} - {_term_label(term)}")
            logger.debug(f"  - {_term_label(term):35s} AIC = {trial.aic:,.2f}")
            if best_model is None or trial.aic < best_model.aic:
                best_term, best_model = term, trial

        if best_model.aic >= current.aic:
            logger.info(f"  No removal improves AIC {current.aic:,.2f}; stopping")
            break

        record = StepRecord(step=len(steps) + 1, removed=_term_label(best_term),
                            aic_before=current.aic, aic_after=best_model.aic)
        steps.append(record)
        logger.info(f"  Step {record.step}: - {record.removed:30s} "
                    f"AIC {record.aic_before:,.2f} -> {record.aic_after:,.2f}")
        current = best_model

    final = current.refit(name=f"{model.name} (stepwise)")
    logger.info(f"Stepwise selection finished after {len(steps)} removals: {final.spec.formula()}")
    return StepwiseResult(model=final, start_aic=model.aic, steps=steps)
