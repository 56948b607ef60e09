"""
report_builder.py — Excel export of a scaling run.

Sheets:
- Students      polyscore, polyrank and position per student (best first)
- Percentiles   the final (subject, result) → percentile table
- Subject Fits  logistic coefficients and curve range per subject
- Convergence   per-iteration max polyrank change and position swing
"""

from datetime import datetime
from typing import Dict, Optional

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils.dataframe import dataframe_to_rows

from scaling.engine import ScalingResult
from scaling.summary import student_frame, subject_curves

# ── Styling ─────────────────────────────────────────────────────────

HEADER_FONT = Font(bold=True, color="FFFFFF", size=11)
HEADER_FILL = PatternFill(start_color="1a1a2e", end_color="1a1a2e", fill_type="solid")
FLAT_FILL = PatternFill(start_color="fef9e7", end_color="fef9e7", fill_type="solid")
THIN_BORDER = Border(
    left=Side(style="thin"), right=Side(style="thin"),
    top=Side(style="thin"), bottom=Side(style="thin"),
)
TAB_COLORS = ["1a1a2e", "0f3460", "e94560", "2ecc71"]


def _style_sheet(ws):
    """Header styling, borders, frozen header row and auto-width columns."""
    for cell in ws[1]:
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = Alignment(horizontal="center")
        cell.border = THIN_BORDER

    for row in ws.iter_rows(min_row=2, max_row=ws.max_row):
        for cell in row:
            cell.border = THIN_BORDER
            cell.alignment = Alignment(horizontal="center")

    ws.freeze_panes = "A2"

    for col_cells in ws.columns:
        max_len = max(len(str(cell.value or "")) for cell in col_cells)
        ws.column_dimensions[col_cells[0].column_letter].width = min(max_len + 4, 30)


def _write_frame(wb: Workbook, title: str, df: pd.DataFrame, tab_color: str, first: bool = False):
    ws = wb.active if first else wb.create_sheet(title=title)
    ws.title = title
    ws.sheet_properties.tabColor = tab_color
    for row in dataframe_to_rows(df, index=False, header=True):
        ws.append(row)
    _style_sheet(ws)
    return ws


def generate_excel_export(
    output_path: str,
    result: ScalingResult,
    labels: Optional[Dict[str, Dict[int, str]]] = None,
):
    """Write the run's students, percentile table, subject fits and convergence trace."""
    labels = labels or {}
    student_labels = labels.get("student_id", {})
    subject_labels = labels.get("subject_id", {})
    n = len(result.student_ids)

    students = student_frame(result).sort_values(["position", "student_id"])
    if student_labels:
        students.insert(1, "label", students["student_id"].map(student_labels))

    percentiles = result.r.copy()
    if subject_labels:
        percentiles.insert(1, "subject", percentiles["subject_id"].map(subject_labels))

    fit_rows = []
    for subj, entry in subject_curves(result).items():
        fit_rows.append({
            "subject_id": subj,
            "subject": subject_labels.get(subj, ""),
            "intercept": entry.get("intercept"),
            "slope": entry.get("slope"),
            "distinct_results": entry["distinct_results"],
            "min_percentile": entry["min_percentile"],
            "max_percentile": entry["max_percentile"],
        })
    fits = pd.DataFrame(fit_rows)

    convergence = pd.DataFrame({
        "iteration": list(range(1, result.iterations_run + 1)),
        "max_rank_change": result.max_rank_changes,
        "max_position_swing": [c * n for c in result.max_rank_changes],
    })

    wb = Workbook()
    _write_frame(wb, "Students", students, TAB_COLORS[0], first=True)
    _write_frame(wb, "Percentiles", percentiles, TAB_COLORS[1])
    ws_fits = _write_frame(wb, "Subject Fits", fits, TAB_COLORS[2])
    _write_frame(wb, "Convergence", convergence, TAB_COLORS[3])

    # Highlight flat (zero-slope) subject fits
    if not fits.empty:
        slope_idx = list(fits.columns).index("slope")
        for row in ws_fits.iter_rows(min_row=2, max_row=ws_fits.max_row):
            if row[slope_idx].value == 0:
                for cell in row:
                    cell.fill = FLAT_FILL

    wb.properties.title = "Scaling run"
    wb.properties.created = datetime.now()
    wb.save(output_path)
