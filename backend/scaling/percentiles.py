"""
percentiles.py — The (subject, result) → percentile table.

Seeding uses the mid-rank percentile of each distinct result within its
subject, expressed as a fraction of the whole cohort:

    percentile = (cum + c / 2) / n_students

cum = students in the subject with a strictly smaller result,
c   = students in the subject with exactly this result.
"""

from collections import Counter
from typing import Dict, Tuple

import numpy as np
import pandas as pd

from scaling.cohort import CohortIndex
from scaling.errors import NonFiniteResultError

PercentileTable = Dict[Tuple[int, float], float]


def calculate_raw_percentile_rank(idx: CohortIndex) -> PercentileTable:
    """Return a fresh table of mid-rank percentiles for every (subject, result) pair."""
    n = idx.n_students
    table: PercentileTable = {}
    for subj in idx.subject_ids:
        counts = Counter(res for _, res in idx.subject_students[subj])
        cumcount = 0
        for res in idx.subject_results[subj]:
            c = counts[res]
            table[(subj, res)] = (cumcount + c / 2) / n
            cumcount += c
    return table


def check_finite(values, what: str):
    """Raise NonFiniteResultError if any value is NaN or Inf."""
    arr = np.asarray(list(values), dtype=float)
    if arr.size and not np.isfinite(arr).all():
        raise NonFiniteResultError(f"Non-finite {what} produced ({int((~np.isfinite(arr)).sum())} values).")


def to_dataframe(idx: CohortIndex, table: PercentileTable) -> pd.DataFrame:
    """One row per distinct (subject, result) pair: subject_id, result, percentile."""
    keys = idx.pair_keys()
    return pd.DataFrame({
        "subject_id": pd.Series([subj for subj, _ in keys], dtype="int64"),
        "result": pd.Series([res for _, res in keys], dtype="float64"),
        "percentile": pd.Series([table[key] for key in keys], dtype="float64"),
    })
