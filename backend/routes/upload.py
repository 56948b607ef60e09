"""
Upload routes — file upload, layout detection, column mapping, and sample data loading.
"""

import json
import logging
import uuid
from pathlib import Path
from time import time
from typing import Optional

import pandas as pd
from fastapi import APIRouter, File, Form, HTTPException, UploadFile

from scaling.cleaner import generate_preparation_report, prepare_results
from scaling.errors import InvalidInputError
from scaling.parser import (
    SAMPLE_DATA_DIR,
    convert_wide_to_long,
    detect_layout,
    parse_upload,
    suggest_column_mapping,
    validate_data,
)

logger = logging.getLogger(__name__)

router = APIRouter()

# In-memory session store: session_id → { file_path, layout, mapping, ... }
sessions: dict = {}
SESSION_TTL_SECONDS = 60 * 60  # 1 hour

# Keep upload path stable regardless of process working directory.
UPLOAD_DIR = Path(__file__).resolve().parent.parent / "uploads"
UPLOAD_DIR.mkdir(exist_ok=True)

SAMPLE_FILES = {
    "cohort": SAMPLE_DATA_DIR / "sample_cohort.csv",
}


def _df_records(df: pd.DataFrame):
    """
    Convert DataFrame rows to JSON-safe records.
    Ensures NaN becomes null so FastAPI serialization won't raise 500.
    """
    return json.loads(df.to_json(orient="records"))


def _is_temp_upload_file(file_path: str) -> bool:
    p = Path(file_path).resolve()
    return p.is_file() and p.is_relative_to(UPLOAD_DIR.resolve())


def _drop_session(session_id: str, delete_file: bool = True):
    s = sessions.pop(session_id, None)
    if not s or not delete_file:
        return
    file_path = s.get("file_path")
    if isinstance(file_path, str) and _is_temp_upload_file(file_path):
        try:
            Path(file_path).unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not delete upload {file_path}: {e}")


def _purge_expired_sessions():
    now = time()
    expired = [
        sid for sid, s in sessions.items()
        if (now - float(s.get("created_at", now))) > SESSION_TTL_SECONDS
    ]
    for sid in expired:
        _drop_session(sid, delete_file=True)


def _open_session(file_path: Path, original_filename: str, delete_on_error: bool) -> dict:
    """Parse the first sheet, detect its layout and register a session."""
    try:
        sheets_data = parse_upload(str(file_path))
    except Exception as e:
        if delete_on_error:
            file_path.unlink(missing_ok=True)
        raise HTTPException(400, f"Failed to process '{original_filename}': {str(e)}")

    first_sheet = list(sheets_data.keys())[0]
    df = sheets_data[first_sheet]
    layout = detect_layout(df)
    mapping = suggest_column_mapping(df)

    session_id = str(uuid.uuid4())
    sessions[session_id] = {
        "file_path": str(file_path),
        "sheet": first_sheet,
        "layout": layout,
        "mapping": mapping,
        "original_filename": original_filename,
        "created_at": time(),
    }

    return {
        "session_id": session_id,
        "filename": original_filename,
        "sheets": list(sheets_data.keys()),
        "sheet_row_counts": {k: len(v) for k, v in sheets_data.items()},
        "layout": layout,
        "suggested_mapping": mapping,
        "issues": validate_data(df) if layout == "long" else [],
        "columns": [str(c) for c in df.columns],
        "preview": _df_records(df.head(10)),
    }


@router.post("/file")
async def upload_file(file: UploadFile = File(...)):
    """
    Upload a CSV, Excel, or ODS results file.
    Returns the detected layout, suggested column mapping, and a preview.
    """
    ext = Path(file.filename).suffix.lower()
    if ext not in (".csv", ".xlsx", ".xls", ".ods"):
        raise HTTPException(400, f"Unsupported file type: {ext}. Use CSV, Excel, or ODS.")

    _purge_expired_sessions()
    save_path = UPLOAD_DIR / f"{uuid.uuid4()}{ext}"
    with open(save_path, "wb") as f:
        while True:
            chunk = await file.read(1024 * 1024)
            if not chunk:
                break
            f.write(chunk)

    logger.info(f"Received upload '{file.filename}' ({save_path.stat().st_size} bytes)")
    return _open_session(save_path, file.filename, delete_on_error=True)


@router.post("/confirm-mapping")
async def confirm_mapping(
    session_id: str = Form(...),
    mapping: str = Form(...),  # JSON string of column mapping
):
    """
    Confirm or override the column mapping, then prepare scaling triples.
    The session and its uploaded file are dropped afterwards.
    """
    if session_id not in sessions:
        raise HTTPException(404, "Session not found. Please re-upload the file.")

    try:
        col_mapping = json.loads(mapping)
    except json.JSONDecodeError:
        raise HTTPException(400, "Invalid mapping JSON.")

    session = sessions[session_id]
    try:
        sheets_data = parse_upload(session["file_path"])
        df = sheets_data[session["sheet"]]

        if session["layout"] == "wide":
            student_col = col_mapping.get("student_id") or session["mapping"].get("student_id")
            df = convert_wide_to_long(df, student_col=student_col)
            col_mapping = {"student_id": "student_id", "subject_id": "subject_id", "result": "result"}

        triples, report = prepare_results(df, col_mapping)
    except InvalidInputError as e:
        _drop_session(session_id, delete_file=True)
        raise HTTPException(400, str(e))
    except ValueError as e:
        _drop_session(session_id, delete_file=True)
        raise HTTPException(400, f"Failed to confirm mapping: {str(e)}")

    _drop_session(session_id, delete_file=True)
    return {
        "session_id": session_id,
        "preparation_report": report,
        "preparation_text": generate_preparation_report(report),
        "row_count": len(triples),
        "data": _df_records(triples),
    }


@router.get("/sample/{dataset_name}")
async def load_sample_data(dataset_name: str):
    """Load one of the bundled sample cohorts."""
    if dataset_name not in SAMPLE_FILES:
        raise HTTPException(
            404, f"Sample dataset '{dataset_name}' not found. Available: {list(SAMPLE_FILES.keys())}"
        )

    file_path = SAMPLE_FILES[dataset_name]
    if not file_path.exists():
        raise HTTPException(404, f"Sample file not found on disk: {file_path.name}")

    _purge_expired_sessions()
    return _open_session(file_path, file_path.name, delete_on_error=False)


@router.get("/session/{session_id}")
async def get_session(session_id: str):
    """Get session info."""
    _purge_expired_sessions()
    if session_id not in sessions:
        raise HTTPException(404, "Session not found.")
    s = sessions[session_id]
    return {
        "session_id": session_id,
        "filename": s.get("original_filename"),
        "layout": s.get("layout"),
        "mapping": s.get("mapping"),
    }


@router.post("/end-session")
async def end_session(session_id: Optional[str] = Form(None)):
    """
    Explicitly end a session and remove its temporary file.
    If session_id is omitted, all in-memory sessions are purged.
    """
    if session_id:
        _drop_session(session_id, delete_file=True)
        return {"status": "ok", "message": f"Session {session_id} deleted."}

    for sid in list(sessions.keys()):
        _drop_session(sid, delete_file=True)
    return {"status": "ok", "message": "All active sessions deleted."}
