"""
cleaner.py — Turn a mapped results sheet into scaling triples.

Handles:
- Header mapping onto student_id / subject_id / result
- Whitespace fixes on key columns
- Result → float conversion (missing or non-numeric results are rejected)
- Encoding of text labels (e.g. subject names) to integer keys
- Preparation report generation
"""

import logging
from typing import Dict, Optional, Tuple

import numpy as np
import pandas as pd

from scaling.errors import InvalidInputError
from scaling.parser import REQUIRED_FIELDS, suggest_column_mapping

logger = logging.getLogger(__name__)


# ── Key Encoding ────────────────────────────────────────────────────

def encode_keys(values: pd.Series) -> Tuple[pd.Series, Dict[int, str]]:
    """
    Return integer keys for an id column.
    Integral numeric ids are kept as they are; anything else is numbered
    1..k in order of first appearance and the label map is returned.
    """
    numeric = pd.to_numeric(values, errors="coerce")
    if numeric.notna().all() and np.all(np.mod(numeric.to_numpy(dtype=float), 1) == 0):
        return numeric.astype("int64"), {}

    codes, uniques = pd.factorize(values, sort=False)
    labels = {int(i) + 1: str(label) for i, label in enumerate(uniques)}
    return pd.Series(codes + 1, index=values.index, dtype="int64"), labels


# ── Main Preparation Pipeline ───────────────────────────────────────

def prepare_results(
    df: pd.DataFrame,
    mapping: Optional[Dict[str, Optional[str]]] = None,
) -> Tuple[pd.DataFrame, Dict]:
    """
    Prepare the sheet and return (triples, report).

    triples has exactly the columns student_id (int64), subject_id (int64)
    and result (float64), one row per input row.
    """
    if df is None or len(df) == 0:
        raise InvalidInputError("The results table is empty.")

    report: Dict = {
        "original_rows": len(df),
        "original_columns": len(df.columns),
        "steps": [],
        "warnings": [],
        "labels": {},
    }

    if mapping is None:
        mapping = suggest_column_mapping(df)

    # ── 1. Apply header mapping ────────────────────────────────────
    missing = [f for f in REQUIRED_FIELDS if not mapping.get(f) or mapping[f] not in df.columns]
    if missing:
        raise InvalidInputError(f"Missing required column(s): {', '.join(missing)}.")

    triples = pd.DataFrame({field: df[mapping[field]] for field in REQUIRED_FIELDS})
    renamed = {mapping[f]: f for f in REQUIRED_FIELDS if mapping[f] != f}
    if renamed:
        report["steps"].append(f"Mapped columns: {renamed}.")

    # ── 2. Trim key columns ────────────────────────────────────────
    for col in ("student_id", "subject_id"):
        if not pd.api.types.is_numeric_dtype(triples[col]):
            triples[col] = triples[col].astype(str).str.strip()
            triples[col] = triples[col].replace({"": np.nan, "nan": np.nan, "None": np.nan})
    missing_keys = int(triples[["student_id", "subject_id"]].isna().any(axis=1).sum())
    if missing_keys > 0:
        raise InvalidInputError(f"{missing_keys} rows are missing a student or subject id.")
    report["steps"].append("Trimmed whitespace from id columns.")

    # ── 3. Convert results to numeric ──────────────────────────────
    results = pd.to_numeric(triples["result"], errors="coerce")
    bad = int((results.isna() | ~np.isfinite(results.fillna(0))).sum())
    if bad > 0:
        raise InvalidInputError(
            f"{bad} results are missing or not numeric; missing results are not imputed."
        )
    triples["result"] = results.astype("float64")
    report["steps"].append("Converted results to numeric.")

    # ── 4. Encode id labels ────────────────────────────────────────
    for col in ("student_id", "subject_id"):
        triples[col], labels = encode_keys(triples[col])
        if labels:
            report["labels"][col] = labels
            report["steps"].append(f"Encoded {len(labels)} {col} labels as integer keys.")

    # ── 5. Duplicate pairs (resolved later by the cohort policy) ──
    dupes = int(triples.duplicated(subset=["student_id", "subject_id"], keep="first").sum())
    report["duplicate_pairs"] = dupes
    if dupes > 0:
        report["warnings"].append(
            f"{dupes} rows repeat a (student, subject) pair already seen."
        )
        logger.warning(f"{dupes} duplicate (student, subject) rows in prepared results")

    # ── Final summary ─────────────────────────────────────────────
    triples = triples.reset_index(drop=True)
    report["prepared_rows"] = len(triples)
    report["students"] = int(triples["student_id"].nunique())
    report["subjects"] = int(triples["subject_id"].nunique())

    return triples, report


def generate_preparation_report(report: Dict) -> str:
    """Generate a human-readable preparation report text."""
    lines = [
        "═══ Result Preparation Report ═══",
        f"Original: {report['original_rows']} rows × {report['original_columns']} columns",
        f"Prepared: {report['prepared_rows']} rows "
        f"({report['students']} students, {report['subjects']} subjects)",
        "",
        "Steps performed:",
    ]
    for i, step in enumerate(report["steps"], 1):
        lines.append(f"  {i}. {step}")

    if report["warnings"]:
        lines.append("")
        lines.append("⚠ Warnings:")
        for w in report["warnings"]:
            lines.append(f"  • {w}")

    return "\n".join(lines)
