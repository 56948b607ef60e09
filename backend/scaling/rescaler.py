"""
rescaler.py — Per-subject logistic re-scaling.

For each subject the current polyranks of its students are clamped to
[eps, 1 - eps], moved to logit space and regressed on the raw results
by ordinary least squares. Every distinct result of the subject then
gets percentile expit(b0 + b1 * result).
"""

import logging
import warnings
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Tuple

import numpy as np
from scipy.special import expit, logit

from scaling.cohort import CohortIndex
from scaling.errors import DegenerateFitWarning
from scaling.percentiles import PercentileTable

logger = logging.getLogger(__name__)

SubjectFit = Tuple[float, float]


def fit_subject(
    idx: CohortIndex,
    subj: int,
    polyrank: np.ndarray,
    eps: float = 1e-6,
) -> Tuple[SubjectFit, PercentileTable]:
    """Fit one subject; return ((beta0, beta1), {(subj, result): percentile})."""
    pairs = idx.subject_students[subj]
    positions = np.fromiter((si for si, _ in pairs), dtype=np.intp, count=len(pairs))
    results = np.fromiter((r for _, r in pairs), dtype=float, count=len(pairs))
    ys = logit(np.clip(polyrank[positions], eps, 1 - eps))

    mean_x = results.mean()
    mean_y = ys.mean()
    ss_xx = float(np.sum((results - mean_x) ** 2))
    ss_xy = float(np.sum((results - mean_x) * (ys - mean_y)))

    if ss_xx > 0:
        beta1 = ss_xy / ss_xx
    else:
        beta1 = 0.0
        logger.warning(f"Subject {subj}: all results identical, fit is flat")
        warnings.warn(
            f"Subject {subj} has no spread in its results; percentile collapses to a constant.",
            DegenerateFitWarning,
            stacklevel=2,
        )
    beta0 = float(mean_y - beta1 * mean_x)

    grid = np.asarray(idx.subject_results[subj], dtype=float)
    scaled = expit(beta0 + beta1 * grid)
    partial = {(subj, float(res)): float(pct) for res, pct in zip(grid, scaled)}
    return (beta0, float(beta1)), partial


def fit_logistic(
    idx: CohortIndex,
    polyrank: np.ndarray,
    eps: float = 1e-6,
    max_workers: int = 1,
) -> Tuple[PercentileTable, Dict[int, SubjectFit]]:
    """
    Refit every subject against the frozen polyrank vector.

    Returns a brand new percentile table plus the fitted coefficients per
    subject. With max_workers > 1 subjects are fitted on a thread pool and
    merged after all of them finish.
    """
    if max_workers > 1 and len(idx.subject_ids) > 1:
        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="rescale") as executor:
            outcomes = list(executor.map(
                lambda subj: fit_subject(idx, subj, polyrank, eps), idx.subject_ids
            ))
    else:
        outcomes = [fit_subject(idx, subj, polyrank, eps) for subj in idx.subject_ids]

    table: PercentileTable = {}
    fits: Dict[int, SubjectFit] = {}
    for subj, (coeffs, partial) in zip(idx.subject_ids, outcomes):
        fits[subj] = coeffs
        table.update(partial)
    return table, fits
