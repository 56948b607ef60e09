"""
engine.py — The iterative scaling loop.

    Init       build cohort index, seed raw percentiles, first polyscore/polyrank
    Iterating  rescale subjects → polyscore → polyrank, track max polyrank change
    Done       snapshot table, polyscore, polyrank and the iteration trace

Early stopping uses a position swing L: the loop stops once no student's
polyrank moved by L / n_students or more between iterations. L = 0 runs
every iteration.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from scaling.cohort import build_index
from scaling.errors import InvalidInputError
from scaling.percentiles import calculate_raw_percentile_rank, check_finite, to_dataframe
from scaling.polyscore import calculate_polyrank, calculate_polyscores
from scaling.rescaler import SubjectFit, fit_logistic
from scaling.settings import (
    DEFAULT_ITERATIONS,
    DEFAULT_SWING,
    DUPLICATE_POLICY,
    LOGIT_EPS,
    MAX_WORKERS,
)

logger = logging.getLogger(__name__)


@dataclass
class ScalingResult:
    """Final snapshot of a scaling run."""

    r: pd.DataFrame
    p: np.ndarray
    pdash: np.ndarray
    max_rank_changes: List[float]
    student_ids: List[int]
    fits: Dict[int, SubjectFit] = field(default_factory=dict)
    converged: bool = False

    @property
    def iterations_run(self) -> int:
        return len(self.max_rank_changes)


class LoggingObserver:
    """Reports iteration progress through the module logger."""

    def __init__(self, log: Optional[logging.Logger] = None):
        self.log = log or logger

    def on_iteration(self, m: int, max_change: float, n_students: int, swing: float):
        max_swing = max_change * n_students
        self.log.info(
            f"Iteration {m}: max swing = ±{max_swing:.3f} positions (ε = ±{swing:g} positions)"
        )

    def on_converged(self, m: int, max_change: float, n_students: int, swing: float):
        max_swing = max_change * n_students
        self.log.info(
            f"Converged after {m} iterations "
            f"(max swing ±{max_swing:.3f} < ±{swing:g} positions)"
        )


DEFAULT_OBSERVER = LoggingObserver()


def run_atar(
    raw_data: pd.DataFrame,
    iterations: int = DEFAULT_ITERATIONS,
    L: float = DEFAULT_SWING,
    observer=DEFAULT_OBSERVER,
    duplicate_policy: str = DUPLICATE_POLICY,
    eps: float = LOGIT_EPS,
    max_workers: int = MAX_WORKERS,
) -> ScalingResult:
    """
    Run the scaling algorithm.

    Args:
        raw_data:   DataFrame with integer student_id, integer subject_id and numeric result.
        iterations: Iteration cap M; 0 returns the raw-seeded snapshot.
        L:          Early-stop threshold as a position swing. The loop stops once
                    max |Δpolyrank| < L / n_students. L = 0 disables early stopping.
        observer:   Object with on_iteration / on_converged hooks, or None.
        duplicate_policy: 'reject' or 'last' for repeated (student, subject) pairs.
        eps:        Clamp applied to polyrank before the logit transform.
        max_workers: Threads used for the per-subject fits.
    """
    if iterations < 0:
        raise InvalidInputError(f"iterations must be >= 0, got {iterations}.")
    if L < 0:
        raise InvalidInputError(f"Position swing L must be >= 0, got {L}.")
    if not 0 < eps < 0.5:
        raise InvalidInputError(f"eps must lie in (0, 0.5), got {eps}.")

    idx = build_index(raw_data, duplicate_policy=duplicate_policy)
    n_students = idx.n_students
    threshold = L / n_students

    table = calculate_raw_percentile_rank(idx)
    p = calculate_polyscores(idx, table)
    pdash = calculate_polyrank(p)
    check_finite(p, "polyscore")

    max_rank_changes: List[float] = []
    fits: Dict[int, SubjectFit] = {}
    converged = False

    logger.debug(f"iterating: {n_students} students over {len(idx.subject_ids)} subjects")

    for m in range(1, iterations + 1):
        table, fits = fit_logistic(idx, pdash, eps=eps, max_workers=max_workers)
        check_finite(table.values(), "percentile")

        p = calculate_polyscores(idx, table)
        pdash_new = calculate_polyrank(p)
        check_finite(p, "polyscore")

        max_change = float(np.max(np.abs(pdash_new - pdash)))
        max_rank_changes.append(max_change)
        pdash = pdash_new

        if observer is not None:
            observer.on_iteration(m, max_change, n_students, L)

        if L > 0 and max_change < threshold:
            converged = True
            if observer is not None:
                observer.on_converged(m, max_change, n_students, L)
            break

    logger.debug(f"done: {len(max_rank_changes)} iterations run")

    return ScalingResult(
        r=to_dataframe(idx, table),
        p=p,
        pdash=pdash,
        max_rank_changes=max_rank_changes,
        student_ids=list(idx.student_ids),
        fits=fits,
        converged=converged,
    )
