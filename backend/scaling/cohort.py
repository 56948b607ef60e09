"""
cohort.py — Lookup structures built once per scaling run.

The index fixes the student order used by every output vector and records,
per subject, the sorted distinct raw results that get a percentile entry.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

import numpy as np
import pandas as pd

from scaling.errors import InvalidInputError
from scaling.settings import DUPLICATE_POLICIES

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ["student_id", "subject_id", "result"]


@dataclass
class CohortIndex:
    """Read-only view of one cohort's (student, subject, result) triples."""

    student_ids: List[int]
    subject_ids: List[int]
    # student_id -> position in student_ids (0-based)
    student_index: Dict[int, int]
    # subject_id -> sorted distinct results
    subject_results: Dict[int, List[float]]
    # student_id -> [(subject_id, result), ...]
    student_subjects: Dict[int, List[Tuple[int, float]]]
    # subject_id -> [(student position, result), ...]
    subject_students: Dict[int, List[Tuple[int, float]]] = field(repr=False)

    @property
    def n_students(self) -> int:
        return len(self.student_ids)

    def pair_keys(self) -> List[Tuple[int, float]]:
        """Every distinct (subject, result) pair, subject order then ascending result."""
        return [(subj, res) for subj in self.subject_ids for res in self.subject_results[subj]]


def _resolve_duplicates(df: pd.DataFrame, policy: str) -> pd.DataFrame:
    """Apply the duplicate (student, subject) policy: 'reject' raises, 'last' keeps the last row."""
    if policy not in DUPLICATE_POLICIES:
        raise InvalidInputError(
            f"Unknown duplicate policy '{policy}'. Expected one of: {list(DUPLICATE_POLICIES)}"
        )

    dupes = df.duplicated(subset=["student_id", "subject_id"], keep=False)
    if not dupes.any():
        return df

    if policy == "reject":
        pairs = df.loc[dupes, ["student_id", "subject_id"]].drop_duplicates()
        sample = [tuple(int(v) for v in row) for row in pairs.head(5).itertuples(index=False)]
        raise InvalidInputError(
            f"{len(pairs)} (student, subject) pairs have more than one result, e.g. {sample}."
        )

    before = len(df)
    df = df.drop_duplicates(subset=["student_id", "subject_id"], keep="last")
    logger.info(f"Dropped {before - len(df)} duplicate rows (last result kept)")
    return df


def build_index(raw_data: pd.DataFrame, duplicate_policy: str = "reject") -> CohortIndex:
    """
    Build the cohort index from a student_id / subject_id / result table.

    Students and subjects are ordered by first appearance in raw_data.
    Raises InvalidInputError for an empty table, missing columns,
    missing ids, non-numeric or infinite results, or duplicate pairs under the 'reject' policy.
    """
    if raw_data is None or len(raw_data) == 0:
        raise InvalidInputError("The results table is empty.")

    missing = [c for c in REQUIRED_COLUMNS if c not in raw_data.columns]
    if missing:
        raise InvalidInputError(f"Missing required column(s): {', '.join(missing)}.")

    df = raw_data[REQUIRED_COLUMNS]
    missing_keys = int(df[["student_id", "subject_id"]].isna().any(axis=1).sum())
    if missing_keys > 0:
        raise InvalidInputError(f"{missing_keys} rows are missing a student or subject id.")
    for col in ("student_id", "subject_id"):
        if not pd.api.types.is_integer_dtype(df[col]):
            raise InvalidInputError(
                f"Column '{col}' must hold integer keys; encode labels with prepare_results first."
            )
    if not pd.api.types.is_numeric_dtype(df["result"]) or df["result"].isna().any():
        raise InvalidInputError("Column 'result' must hold a number on every row.")
    if not np.isfinite(df["result"].to_numpy(dtype=float)).all():
        raise InvalidInputError("Column 'result' must hold finite numbers (no inf).")

    df = _resolve_duplicates(df, duplicate_policy)

    student_ids = [int(s) for s in pd.unique(df["student_id"])]
    subject_ids = [int(s) for s in pd.unique(df["subject_id"])]
    student_index = {sid: i for i, sid in enumerate(student_ids)}

    student_subjects: Dict[int, List[Tuple[int, float]]] = {sid: [] for sid in student_ids}
    subject_students: Dict[int, List[Tuple[int, float]]] = {subj: [] for subj in subject_ids}

    for sid, subj, res in zip(df["student_id"], df["subject_id"], df["result"]):
        sid, subj, res = int(sid), int(subj), float(res)
        student_subjects[sid].append((subj, res))
        subject_students[subj].append((student_index[sid], res))

    subject_results = {
        subj: sorted({res for _, res in subject_students[subj]})
        for subj in subject_ids
    }

    logger.debug(
        f"Indexed {len(df)} results: {len(student_ids)} students, {len(subject_ids)} subjects"
    )

    return CohortIndex(
        student_ids=student_ids,
        subject_ids=subject_ids,
        student_index=student_index,
        subject_results=subject_results,
        student_subjects=student_subjects,
        subject_students=subject_students,
    )
