# exports.py — MallSurvey Collect
# Flat submission table (fixed columns + one column per catalog question + raw answers)
# and CSV / JSON / XLSX writers for it.

from __future__ import annotations

import csv
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence

from models import SubmissionWithJoins, answer_from_json, display_answer, dump_answers, parse_answers
import submissions as subs
import surveys as srv


log = logging.getLogger(__name__)

NONE_MARKER = "N/A"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

LEADING_COLUMNS = [
    "Submission ID",
    "Customer Name",
    "Customer Phone",
    "CNIC",
    "Invoice Number",
    "Worker Name",
    "Mall Name",
    "Survey Title",
]
ANSWERS_COLUMN = "Answers"
TRAILING_COLUMNS = [
    "Invoice Image URL",
    "Customer Image URL",
    "Submission Date",
]

EXPORT_FORMATS = {
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "csv": "text/csv",
    "json": "application/json",
}


@dataclass
class Table:
    headers: List[str]
    rows: List[List[str]] = field(default_factory=list)
    # Position of the raw answers column; its header may carry a suffix.
    answers_index: Optional[int] = None

    def as_records(self) -> List[Dict[str, str]]:
        return [dict(zip(self.headers, r)) for r in self.rows]


def _unique(headers: List[str], name: str) -> str:
    if name not in headers:
        return name
    i = 2
    while f"{name}_{i}" in headers:
        i += 1
    return f"{name}_{i}"


def _text(value: Any, placeholder: str = NONE_MARKER) -> str:
    if value is None:
        return placeholder
    s = str(value)
    return s if s.strip() else placeholder


def format_timestamp(value: Any) -> str:
    if not value:
        return NONE_MARKER
    raw = str(value).strip()
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00")).strftime(TIMESTAMP_FORMAT)
    except ValueError:
        return raw


def serialize_answers(answers: Optional[Mapping[Any, Any]]) -> str:
    """Full answer map, keys sorted, so the cell is identical across runs."""
    return json.dumps(dump_answers(parse_answers(answers)), ensure_ascii=False, sort_keys=True)


# -------------------------------------------------
# Projection
# -------------------------------------------------

def project(
    submissions: Sequence[SubmissionWithJoins],
    schema_snapshot: Optional[Mapping[str, str]] = None,
) -> Table:
    """
    One row per submission, in the order given. Dynamic columns follow the
    snapshot's order (question id -> current question text); answers whose
    ids are missing from the snapshot still land in the Answers column.
    Never raises on missing per-row data.
    """
    headers: List[str] = list(LEADING_COLUMNS)
    dynamic_ids: List[str] = []
    for qid, qtext in (schema_snapshot or {}).items():
        headers.append(_unique(headers, _text(qtext, str(qid))))
        dynamic_ids.append(str(qid))
    answers_index = len(headers)
    headers.append(_unique(headers, ANSWERS_COLUMN))
    for name in TRAILING_COLUMNS:
        headers.append(_unique(headers, name))

    table = Table(headers=headers, answers_index=answers_index)
    for sub in submissions:
        answers = parse_answers(getattr(sub, "answers", None) or {})
        row = [
            _text(getattr(sub, "id", None)),
            _text(getattr(sub, "customer_name", None)),
            _text(getattr(sub, "customer_phone", None)),
            _text(getattr(sub, "cnic", None)),
            _text(getattr(sub, "invoice_number", None)),
            _text(getattr(sub, "worker_name", None)),
            _text(getattr(sub, "mall_name", None)),
            _text(getattr(sub, "survey_title", None)),
        ]
        for qid in dynamic_ids:
            value = answers.get(qid)
            row.append(display_answer(answer_from_json(value)) if value is not None else "")
        row.append(serialize_answers(answers))
        row.append(_text(getattr(sub, "invoice_image_url", None)))
        row.append(_text(getattr(sub, "customer_image_url", None)))
        row.append(format_timestamp(getattr(sub, "created_at", None)))
        table.rows.append(row)
    return table


# -------------------------------------------------
# Writers
# -------------------------------------------------

def write_csv(table: Table, path: str) -> str:
    with open(path, "w", newline="", encoding="utf-8") as f:
        w = csv.writer(f)
        w.writerow(table.headers)
        for r in table.rows:
            w.writerow(r)
    return path


def write_json(table: Table, path: str) -> str:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(table.as_records(), f, ensure_ascii=False, indent=2)
    return path


def write_xlsx(table: Table, path: str, sheet_title: str = "Survey Submissions") -> str:
    from openpyxl import Workbook
    from openpyxl.styles import Font, PatternFill
    from openpyxl.utils import get_column_letter

    workbook = Workbook()
    sheet = workbook.active
    sheet.title = sheet_title

    sheet.append(table.headers)
    header_font = Font(bold=True, color="FFFFFFFF")
    header_fill = PatternFill(fill_type="solid", fgColor="FF4B5563")
    for cell in sheet[1]:
        cell.font = header_font
        cell.fill = header_fill

    for r in table.rows:
        sheet.append(r)

    for idx, header in enumerate(table.headers):
        width = 50 if idx == table.answers_index else min(max(len(header) + 4, 15), 40)
        sheet.column_dimensions[get_column_letter(idx + 1)].width = width

    workbook.save(path)
    return path


_WRITERS = {
    "xlsx": write_xlsx,
    "csv": write_csv,
    "json": write_json,
}


def render(table: Table, fmt: str, path: str) -> str:
    fmt = (fmt or "xlsx").strip().lower()
    writer = _WRITERS.get(fmt)
    if writer is None:
        raise ValueError(f"Unsupported export format: {fmt}")
    return writer(table, path)


def export_filename(fmt: str, today: Optional[datetime] = None) -> str:
    today = today or datetime.now()
    return f"survey-submissions-{today.strftime('%Y-%m-%d')}.{fmt}"


def export_submissions(
    path: str,
    fmt: str = "xlsx",
    survey_id: Optional[str] = None,
    date_filter: str = "all",
    start: Optional[str] = None,
    end: Optional[str] = None,
) -> Dict:
    """
    Loads submissions (newest first), builds the current question catalog
    and writes the flat table to `path`.
    Returns {path, rows, columns}.
    """
    rows = subs.fetch_submissions(survey_id=survey_id, date_filter=date_filter, start=start, end=end)
    if survey_id:
        catalog = srv.question_catalog(srv.list_questions(survey_id))
    else:
        catalog = srv.catalog_for_surveys([s.survey_id for s in rows])
    table = project(rows, catalog)
    render(table, fmt, path)
    log.info("Export written: %d rows, %d columns, format=%s", len(table.rows), len(table.headers), fmt)
    return {"path": path, "rows": len(table.rows), "columns": len(table.headers)}
