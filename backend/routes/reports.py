"""
Report routes — Excel export of a scaling run.
"""

import uuid
from pathlib import Path

from fastapi import APIRouter
from fastapi.responses import FileResponse
from starlette.background import BackgroundTask

from routes.scale import run_from_payload
from scaling.report_builder import generate_excel_export

router = APIRouter()

UPLOAD_DIR = Path(__file__).resolve().parent.parent / "uploads"
REPORTS_DIR = UPLOAD_DIR / "reports"
REPORTS_DIR.mkdir(parents=True, exist_ok=True)


def _safe_unlink(path: str):
    """Delete the generated file after the response is sent."""
    Path(path).unlink(missing_ok=True)


@router.post("/excel")
async def excel_export(payload: dict):
    """Run the engine on the posted results and return the run as an Excel workbook."""
    result, report = run_from_payload(payload)

    report_id = str(uuid.uuid4())[:8]
    output_path = REPORTS_DIR / f"scaling_run_{report_id}.xlsx"
    generate_excel_export(str(output_path), result, labels=report.get("labels"))

    return FileResponse(
        str(output_path),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        filename=f"Scaling_Run_{report_id}.xlsx",
        background=BackgroundTask(_safe_unlink, str(output_path)),
    )
