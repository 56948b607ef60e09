"""
Scaling routes — run the iterative scaling engine over posted results.
"""

import logging
from typing import Any, Dict, Tuple

import pandas as pd
from fastapi import APIRouter, HTTPException

from scaling.cleaner import prepare_results
from scaling.engine import ScalingResult, run_atar
from scaling.errors import InvalidInputError
from scaling.settings import (
    DEFAULT_ITERATIONS,
    DEFAULT_SWING,
    DUPLICATE_POLICIES,
    DUPLICATE_POLICY,
    LOGIT_EPS,
    MAX_WORKERS,
)
from scaling.summary import compute_scaling_summary, result_payload

logger = logging.getLogger(__name__)

router = APIRouter()


def _parse_options(payload: dict) -> Dict[str, Any]:
    """Request options with environment defaults filled in."""
    options = payload.get("options") or {}
    try:
        iterations = int(options.get("iterations", DEFAULT_ITERATIONS))
        swing = float(options.get("swing", DEFAULT_SWING))
    except (TypeError, ValueError):
        raise HTTPException(400, "Options 'iterations' and 'swing' must be numbers.")
    policy = str(options.get("duplicate_policy", DUPLICATE_POLICY)).strip().lower()
    return {"iterations": iterations, "L": swing, "duplicate_policy": policy}


def run_from_payload(payload: dict) -> Tuple[ScalingResult, Dict]:
    """
    Build triples from a {"data": [...], "options": {...}} payload and run the engine.
    Shared with the report routes.
    """
    data = payload.get("data")
    if not data:
        raise HTTPException(400, "No data provided.")

    options = _parse_options(payload)
    try:
        triples, report = prepare_results(pd.DataFrame(data))
        result = run_atar(triples, max_workers=MAX_WORKERS, **options)
    except InvalidInputError as e:
        raise HTTPException(400, str(e))

    logger.info(
        f"Scaled {len(result.student_ids)} students in {result.iterations_run} iterations "
        f"(converged={result.converged})"
    )
    return result, report


@router.post("/run")
async def run(payload: dict):
    """
    Run the scaling engine.
    Expects: { "data": [{student_id, subject_id, result}, ...],
               "options": { "iterations": 100, "swing": 0, "duplicate_policy": "reject" } }
    """
    result, report = run_from_payload(payload)
    response = result_payload(result)
    response["summary"] = compute_scaling_summary(result, labels=report.get("labels"))
    response["preparation_report"] = report
    return response


@router.get("/defaults")
async def defaults():
    """Configured engine defaults."""
    return {
        "iterations": DEFAULT_ITERATIONS,
        "swing": DEFAULT_SWING,
        "eps": LOGIT_EPS,
        "duplicate_policy": DUPLICATE_POLICY,
        "duplicate_policies": list(DUPLICATE_POLICIES),
        "max_workers": MAX_WORKERS,
    }
