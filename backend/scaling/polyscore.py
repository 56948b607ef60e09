"""
polyscore.py — Per-student polyscore and polyrank.

polyscore: mean percentile over the subjects a student sat.
polyrank:  (n + 1 - competition_rank) / n, best student → 1.0.
"""

import numpy as np
from scipy import stats as sp_stats

from scaling.cohort import CohortIndex
from scaling.percentiles import PercentileTable


def calculate_polyscores(idx: CohortIndex, table: PercentileTable) -> np.ndarray:
    """Polyscore per student, in idx.student_ids order."""
    p = np.empty(idx.n_students, dtype=float)
    for i, sid in enumerate(idx.student_ids):
        p[i] = np.mean([table[(subj, res)] for subj, res in idx.student_subjects[sid]])
    return p


def competition_rank(values: np.ndarray) -> np.ndarray:
    """1-2-2-4 ranking with the largest value ranked 1."""
    return sp_stats.rankdata(-np.asarray(values, dtype=float), method="min")


def calculate_polyrank(p: np.ndarray) -> np.ndarray:
    """Normalised competition rank of the polyscores, each in (0, 1]."""
    n = len(p)
    return (n + 1 - competition_rank(p)) / n
