"""
parser.py — Result sheet ingestion for the scaling engine.

Supports:
- CSV files
- Excel (.xlsx, .xls) and ODS (OpenDocument Spreadsheet), every non-empty sheet
- Long layout: one row per (student, subject, result)
- Wide layout: one row per student, one column per subject
- Fuzzy header mapping onto student_id / subject_id / result
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

logger = logging.getLogger(__name__)

SAMPLE_DATA_DIR = Path(__file__).parent.parent / "sample_data"

REQUIRED_FIELDS = ("student_id", "subject_id", "result")

# Common header variations for auto-mapping
COLUMN_ALIASES = {
    "student_id": [
        "student_id", "studentid", "student id", "student", "candidate_id",
        "candidate id", "candidate", "lui", "id", "student_number",
        "student number", "reg_no", "index_no",
    ],
    "subject_id": [
        "subject_id", "subjectid", "subject id", "subject_code", "subject code",
        "course_id", "course id", "subject", "course", "subject_name",
        "subject name",
    ],
    "result": [
        "result", "raw_result", "raw result", "score", "raw_score", "raw score",
        "mark", "marks", "points", "percentage",
    ],
}

# Per-student descriptive columns a wide sheet may carry next to its subjects
WIDE_METADATA_FIELDS = {
    "name", "student_name", "first_name", "last_name", "surname", "class",
    "stream", "form", "gender", "sex", "region", "school", "term", "year",
    "sheet_source", "source_sheet", "upload_session_id",
}

EXCEL_ENGINES = {
    ".xlsx": "openpyxl",
    ".xls": "xlrd",
    ".ods": "odf",
}


def parse_upload(file_path: str) -> Dict[str, pd.DataFrame]:
    """
    Parse a results file and return {sheet_name: DataFrame}.
    CSV files come back as {"Sheet1": df}. Cells are read as strings so
    numeric coercion happens in one place (cleaner.prepare_results).
    """
    path = Path(file_path)
    ext = path.suffix.lower()

    if ext == ".csv":
        return {"Sheet1": pd.read_csv(file_path, dtype=str)}

    if ext not in EXCEL_ENGINES:
        raise ValueError(f"Unsupported file type: {ext}")

    xls = pd.ExcelFile(file_path, engine=EXCEL_ENGINES[ext])
    sheets = {}
    for sheet_name in xls.sheet_names:
        df = pd.read_excel(xls, sheet_name=sheet_name, dtype=str)
        # A results sheet needs at least an id column and one result column
        if not df.empty and len(df.columns) > 1:
            sheets[sheet_name] = df
    if not sheets:
        raise ValueError(f"No valid sheets found in {path.name}.")
    return sheets


def suggest_column_mapping(df: pd.DataFrame) -> Dict[str, Optional[str]]:
    """
    Suggest a mapping from expected field names to actual column names.
    Returns: { expected_field: actual_column_name_or_None }
    A column is claimed by at most one field.
    """
    cols_lower = {str(c).lower().strip(): c for c in df.columns}
    mapping: Dict[str, Optional[str]] = {}
    claimed = set()

    for field, aliases in COLUMN_ALIASES.items():
        matched = None
        for alias in aliases:
            col = cols_lower.get(alias)
            if col is not None and col not in claimed:
                matched = col
                break
        if matched is not None:
            claimed.add(matched)
        mapping[field] = matched

    return mapping


def _subject_columns(df: pd.DataFrame, student_col: Optional[str]) -> List[str]:
    """Columns of a wide sheet that hold at least one number and are not metadata."""
    return [
        c for c in df.columns
        if c != student_col
        and str(c).strip().lower() not in WIDE_METADATA_FIELDS
        and pd.to_numeric(df[c], errors="coerce").notna().any()
    ]


def detect_layout(df: pd.DataFrame) -> str:
    """
    Detect whether the sheet is 'long' or 'wide'.

    Long: has a subject column and a result column.
    Wide: a student column plus two or more columns that hold numbers,
    each column being one subject.
    """
    mapping = suggest_column_mapping(df)
    if mapping.get("subject_id") and mapping.get("result"):
        return "long"

    id_col = mapping.get("student_id")
    numeric_cols = _subject_columns(df, id_col)
    if id_col and len(numeric_cols) >= 2:
        return "wide"

    return "long"


def convert_wide_to_long(df: pd.DataFrame, student_col: str = "student_id") -> pd.DataFrame:
    """
    Melt a wide sheet (one column per subject) into student_id/subject_id/result rows.
    Blank cells mean the student did not sit that subject and are dropped.
    """
    if student_col not in df.columns:
        raise ValueError(f"Student column '{student_col}' not found in sheet.")

    subject_cols = _subject_columns(df, student_col)
    dropped = [c for c in df.columns if c != student_col and c not in subject_cols]
    if dropped:
        logger.info(f"Wide sheet: ignoring non-subject columns {dropped}")
    if not subject_cols:
        return df

    long_df = df.melt(
        id_vars=[student_col],
        value_vars=subject_cols,
        var_name="subject_id",
        value_name="result",
    )
    long_df = long_df.rename(columns={student_col: "student_id"})
    blank = long_df["result"].isna() | (long_df["result"].astype(str).str.strip() == "")
    return long_df[~blank].reset_index(drop=True)


def validate_data(df: pd.DataFrame) -> List[Dict]:
    """
    Inspect a mapped sheet and return a list of issues found.
    Critical issues would make prepare_results raise InvalidInputError.
    """
    issues = []
    mapping = suggest_column_mapping(df)

    for field in REQUIRED_FIELDS:
        if mapping.get(field) is None:
            issues.append({
                "type": "missing_column",
                "severity": "critical",
                "message": f"Required column '{field}' not found. "
                           f"Expected one of: {COLUMN_ALIASES[field]}",
            })

    if len(df) == 0:
        issues.append({
            "type": "empty_data",
            "severity": "critical",
            "message": "The uploaded file contains no data rows.",
        })

    result_col = mapping.get("result")
    if result_col:
        results = pd.to_numeric(df[result_col], errors="coerce")
        invalid_count = int(results.isna().sum())
        if invalid_count > 0:
            issues.append({
                "type": "invalid_results",
                "severity": "critical",
                "message": f"{invalid_count} results are missing or not numeric.",
            })

    id_col = mapping.get("student_id")
    subject_col = mapping.get("subject_id")
    if id_col and subject_col:
        dupe_count = int(df.duplicated(subset=[id_col, subject_col], keep=False).sum())
        if dupe_count > 0:
            issues.append({
                "type": "duplicates",
                "severity": "warning",
                "message": f"{dupe_count} rows share a (student, subject) pair with another row.",
            })

    return issues
