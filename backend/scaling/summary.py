"""
summary.py — JSON-safe views of a scaling run.

Computes:
- Per-student table (polyscore, polyrank, position)
- Per-subject scaled curve summary (min / median / max percentile, fit coefficients)
- Convergence trace in position units
"""

from typing import Any, Dict, Optional

import numpy as np
import pandas as pd

from scaling.engine import ScalingResult
from scaling.polyscore import competition_rank


# ── Helpers ─────────────────────────────────────────────────────────

def _safe_float(val, digits: int = 6) -> Optional[float]:
    """Convert to float or return None."""
    try:
        v = float(val)
        return None if np.isnan(v) or np.isinf(v) else round(v, digits)
    except (TypeError, ValueError):
        return None


def _sanitize(obj):
    """Recursively coerce numpy/pandas scalars to JSON-safe Python types."""
    if isinstance(obj, dict):
        return {(int(k) if isinstance(k, np.integer) else k): _sanitize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_sanitize(v) for v in obj]
    if isinstance(obj, np.ndarray):
        return [_sanitize(v) for v in obj.tolist()]
    if isinstance(obj, (np.bool_,)):
        return bool(obj)
    if isinstance(obj, (np.integer,)):
        return int(obj)
    if isinstance(obj, (np.floating, float)):
        v = float(obj)
        return None if (np.isnan(v) or np.isinf(v)) else v
    return obj


# ── Student Table ───────────────────────────────────────────────────

def student_frame(result: ScalingResult) -> pd.DataFrame:
    """One row per student in run order: student_id, polyscore, polyrank, position."""
    return pd.DataFrame({
        "student_id": pd.Series(result.student_ids, dtype="int64"),
        "polyscore": result.p,
        "polyrank": result.pdash,
        "position": competition_rank(result.p).astype(int),
    })


# ── Subject Curves ──────────────────────────────────────────────────

def subject_curves(result: ScalingResult) -> Dict[int, Dict[str, Any]]:
    """Summarise each subject's percentile curve and fitted coefficients."""
    curves: Dict[int, Dict[str, Any]] = {}
    for subj, grp in result.r.groupby("subject_id", sort=False):
        pct = grp["percentile"]
        entry: Dict[str, Any] = {
            "distinct_results": int(len(grp)),
            "min_result": _safe_float(grp["result"].min()),
            "max_result": _safe_float(grp["result"].max()),
            "min_percentile": _safe_float(pct.min()),
            "median_percentile": _safe_float(pct.median()),
            "max_percentile": _safe_float(pct.max()),
        }
        fit = result.fits.get(int(subj))
        if fit is not None:
            entry["intercept"] = _safe_float(fit[0])
            entry["slope"] = _safe_float(fit[1])
            entry["flat"] = fit[1] == 0.0
        curves[int(subj)] = entry
    return curves


# ── Run Summary ─────────────────────────────────────────────────────

def compute_scaling_summary(
    result: ScalingResult,
    labels: Optional[Dict[str, Dict[int, str]]] = None,
) -> Dict[str, Any]:
    """
    Summarise a run for API responses and reports.
    labels maps encoded keys back to original names (see cleaner.prepare_results).
    """
    labels = labels or {}
    n = len(result.student_ids)
    students = student_frame(result).sort_values(["position", "student_id"])

    student_labels = labels.get("student_id", {})
    subject_labels = labels.get("subject_id", {})

    rows = []
    for row in students.itertuples(index=False):
        rows.append({
            "student_id": int(row.student_id),
            "label": student_labels.get(int(row.student_id)),
            "polyscore": _safe_float(row.polyscore),
            "polyrank": _safe_float(row.polyrank),
            "position": int(row.position),
        })

    curves = subject_curves(result)
    for subj, entry in curves.items():
        entry["label"] = subject_labels.get(subj)

    summary = {
        "total_students": n,
        "total_subjects": len(curves),
        "percentile_rows": int(len(result.r)),
        "iterations_run": result.iterations_run,
        "converged": result.converged,
        "max_rank_changes": list(result.max_rank_changes),
        "max_position_swings": [c * n for c in result.max_rank_changes],
        "final_swing": (result.max_rank_changes[-1] * n) if result.max_rank_changes else None,
        "subjects": curves,
        "students": rows,
    }
    return _sanitize(summary)


def result_payload(result: ScalingResult) -> Dict[str, Any]:
    """The four return fields of a run as plain JSON: r, p, pdash, max_rank_changes."""
    return _sanitize({
        "r": result.r.to_dict(orient="records"),
        "p": result.p,
        "pdash": result.pdash,
        "max_rank_changes": result.max_rank_changes,
    })
