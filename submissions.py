# submissions.py — MallSurvey Collect
# Submission acceptance, listing with worker/survey joins, stats

from __future__ import annotations

import logging
import math
import sqlite3
import uuid
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from db import get_conn
from errors import DuplicateInvoiceError, StoreError
from models import Submission, SubmissionWithJoins, ValidatedSubmission, WorkerStat, answers_to_text
import surveys as srv
from validation import ensure_survey_active, validate_submission


log = logging.getLogger(__name__)

DATE_FILTERS = ("all", "today", "week", "month", "custom")
UNKNOWN = "Unknown"


def _now() -> str:
    return datetime.now().isoformat(timespec="seconds")


def _iso(dt: datetime) -> str:
    return dt.isoformat(timespec="seconds")


# -------------------------------------------------
# Acceptance
# -------------------------------------------------

def _is_invoice_conflict(err: sqlite3.IntegrityError) -> bool:
    msg = str(err).lower()
    return "unique" in msg and "invoice_number" in msg


def accept_submission(validated: ValidatedSubmission, worker_id: str) -> Submission:
    """
    Persists an already validated submission. A taken invoice number raises
    DuplicateInvoiceError; any other store failure raises StoreError.
    """
    submission = Submission(
        id=uuid.uuid4().hex,
        survey_id=validated.survey_id,
        worker_id=str(worker_id),
        customer_name=validated.customer_name,
        customer_phone=validated.customer_phone,
        cnic=validated.cnic,
        invoice_number=validated.invoice_number,
        invoice_image_url=validated.invoice_image_url,
        customer_image_url=validated.customer_image_url,
        answers=dict(validated.answers),
        created_at=_now(),
        schema_version=validated.schema_version,
    )
    try:
        with get_conn() as conn:
            conn.execute(
                """
                INSERT INTO submissions
                  (id, survey_id, worker_id, customer_name, customer_phone, cnic,
                   invoice_number, invoice_image_url, customer_image_url, answers,
                   schema_version, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    submission.id,
                    submission.survey_id,
                    submission.worker_id,
                    submission.customer_name,
                    submission.customer_phone,
                    submission.cnic,
                    submission.invoice_number,
                    submission.invoice_image_url,
                    submission.customer_image_url,
                    answers_to_text(submission.answers),
                    submission.schema_version,
                    submission.created_at,
                ),
            )
            conn.commit()
    except sqlite3.IntegrityError as e:
        if _is_invoice_conflict(e):
            log.info("Duplicate invoice rejected for survey %s", submission.survey_id)
            raise DuplicateInvoiceError(submission.invoice_number) from e
        log.exception("Submission insert violated a constraint")
        raise StoreError("Failed to save submission") from e
    except sqlite3.Error as e:
        log.exception("Submission insert failed")
        raise StoreError("Failed to save submission") from e

    log.info(
        "Accepted submission %s for survey %s (schema v%d)",
        submission.id,
        submission.survey_id,
        submission.schema_version,
    )
    return submission


def submit(payload: Mapping[str, Any], worker_id: str) -> Submission:
    """
    Full worker submission path: survey must exist and be active, then every
    field is validated against the survey's live questions, then stored.
    """
    survey_id = str(payload.get("survey_id") or "").strip()
    if not survey_id:
        # Raises with survey_id plus every other field error; answers can't be
        # checked without a question set.
        validate_submission({**payload, "answers": {}}, [])
    survey = srv.get_survey(survey_id)
    ensure_survey_active(survey)
    questions = srv.list_questions(survey.id)
    validated = validate_submission(payload, questions, schema_version=survey.schema_version)
    return accept_submission(validated, worker_id)


# -------------------------------------------------
# Filters
# -------------------------------------------------

def _parse_day_or_time(value: str) -> Tuple[Optional[datetime], bool]:
    """Returns (datetime, was_date_only)."""
    value = (value or "").strip()
    if not value:
        return None, False
    try:
        if len(value) == 10:
            return datetime.combine(date.fromisoformat(value), time.min), True
        return datetime.fromisoformat(value.replace("Z", "+00:00")).replace(tzinfo=None), False
    except ValueError:
        return None, False


def _month_back(dt: datetime) -> datetime:
    year, month = (dt.year, dt.month - 1) if dt.month > 1 else (dt.year - 1, 12)
    for day in (dt.day, 30, 29, 28):
        try:
            return dt.replace(year=year, month=month, day=day)
        except ValueError:
            continue
    return dt.replace(year=year, month=month, day=28)


def date_range(
    date_filter: str = "all",
    start: Optional[str] = None,
    end: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Tuple[Optional[str], Optional[str]]:
    """
    Maps a UI date filter to an inclusive (start, end) pair of ISO timestamps.
    Unknown filters and incomplete custom ranges mean no filtering.
    """
    now = now or datetime.now()
    f = (date_filter or "all").strip().lower()
    if f == "today":
        return _iso(datetime.combine(now.date(), time.min)), None
    if f == "week":
        return _iso(now - timedelta(days=7)), None
    if f == "month":
        return _iso(_month_back(now)), None
    if f == "custom":
        start_dt, _ = _parse_day_or_time(start or "")
        end_dt, end_is_day = _parse_day_or_time(end or "")
        if start_dt is None or end_dt is None:
            return None, None
        if end_is_day:
            end_dt = datetime.combine(end_dt.date(), time(23, 59, 59))
        return _iso(start_dt), _iso(end_dt)
    return None, None


def _where(
    survey_id: Optional[str],
    worker_id: Optional[str],
    start_iso: Optional[str],
    end_iso: Optional[str],
) -> Tuple[str, List[Any]]:
    where: List[str] = []
    params: List[Any] = []
    if survey_id:
        where.append("s.survey_id=?")
        params.append(str(survey_id))
    if worker_id:
        where.append("s.worker_id=?")
        params.append(str(worker_id))
    if start_iso:
        where.append("s.created_at >= ?")
        params.append(start_iso)
    if end_iso:
        where.append("s.created_at <= ?")
        params.append(end_iso)
    return ("WHERE " + " AND ".join(where)) if where else "", params


_SELECT_JOINED = """
    SELECT
      s.*,
      u.name AS worker_name,
      u.mall_name AS mall_name,
      v.title AS survey_title
    FROM submissions s
    LEFT JOIN users u ON u.id = s.worker_id
    LEFT JOIN surveys v ON v.id = s.survey_id
"""


# -------------------------------------------------
# Listing
# -------------------------------------------------

def list_submissions(
    survey_id: Optional[str] = None,
    date_filter: str = "all",
    start: Optional[str] = None,
    end: Optional[str] = None,
    page: int = 1,
    limit: int = 50,
    worker_id: Optional[str] = None,
) -> Dict[str, Any]:
    page = max(1, int(page or 1))
    limit = max(1, int(limit or 50))
    start_iso, end_iso = date_range(date_filter, start, end)
    where_sql, params = _where(survey_id, worker_id, start_iso, end_iso)
    try:
        with get_conn() as conn:
            cur = conn.cursor()
            cur.execute(f"SELECT COUNT(*) AS n FROM submissions s {where_sql}", tuple(params))
            total = int(cur.fetchone()["n"])
            cur.execute(
                f"""
                {_SELECT_JOINED}
                {where_sql}
                ORDER BY s.created_at DESC, s.rowid DESC
                LIMIT ? OFFSET ?
                """,
                (*params, limit, (page - 1) * limit),
            )
            rows = cur.fetchall()
    except sqlite3.Error as e:
        log.exception("Failed to list submissions")
        raise StoreError("Failed to load submissions") from e
    return {
        "submissions": [SubmissionWithJoins.from_row(r) for r in rows],
        "total": total,
        "page": page,
        "total_pages": math.ceil(total / limit) if total else 0,
    }


def fetch_submissions(
    survey_id: Optional[str] = None,
    date_filter: str = "all",
    start: Optional[str] = None,
    end: Optional[str] = None,
    worker_id: Optional[str] = None,
    limit: Optional[int] = None,
) -> List[SubmissionWithJoins]:
    """Whole result set, newest first. Used by exports and detail views."""
    start_iso, end_iso = date_range(date_filter, start, end)
    where_sql, params = _where(survey_id, worker_id, start_iso, end_iso)
    limit_sql = ""
    if limit is not None:
        limit_sql = "LIMIT ?"
        params.append(int(limit))
    try:
        with get_conn() as conn:
            cur = conn.cursor()
            cur.execute(
                f"""
                {_SELECT_JOINED}
                {where_sql}
                ORDER BY s.created_at DESC, s.rowid DESC
                {limit_sql}
                """,
                tuple(params),
            )
            return [SubmissionWithJoins.from_row(r) for r in cur.fetchall()]
    except sqlite3.Error as e:
        log.exception("Failed to fetch submissions")
        raise StoreError("Failed to load submissions") from e


def get_submission(submission_id: str) -> Optional[SubmissionWithJoins]:
    with get_conn() as conn:
        cur = conn.cursor()
        cur.execute(f"{_SELECT_JOINED} WHERE s.id=? LIMIT 1", (str(submission_id),))
        row = cur.fetchone()
    return SubmissionWithJoins.from_row(row) if row else None


# -------------------------------------------------
# Stats
# -------------------------------------------------

def compute_worker_stats(submissions: Iterable[SubmissionWithJoins]) -> List[WorkerStat]:
    """
    Groups by worker_id. Highest count first; equal counts keep the order the
    workers were first seen in.
    """
    stats: Dict[str, WorkerStat] = {}
    for sub in submissions:
        stat = stats.get(sub.worker_id)
        if stat is None:
            stat = WorkerStat(
                worker_id=sub.worker_id,
                name=sub.worker_name or UNKNOWN,
                mall_name=sub.mall_name or UNKNOWN,
            )
            stats[sub.worker_id] = stat
        stat.count += 1
    return sorted(stats.values(), key=lambda s: s.count, reverse=True)


def worker_stats(survey_id: str) -> List[WorkerStat]:
    return compute_worker_stats(fetch_submissions(survey_id=survey_id))


def start_of_week(now: datetime) -> datetime:
    # Weeks start on Sunday.
    days_since_sunday = (now.weekday() + 1) % 7
    return datetime.combine(now.date() - timedelta(days=days_since_sunday), time.min)


def worker_dashboard(worker_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or datetime.now()
    day_start = _iso(datetime.combine(now.date(), time.min))
    week_start = _iso(start_of_week(now))
    with get_conn() as conn:
        cur = conn.cursor()
        cur.execute(
            """
            SELECT
              COUNT(*) AS total,
              SUM(CASE WHEN created_at >= ? THEN 1 ELSE 0 END) AS today,
              SUM(CASE WHEN created_at >= ? THEN 1 ELSE 0 END) AS weekly
            FROM submissions
            WHERE worker_id=?
            """,
            (day_start, week_start, str(worker_id)),
        )
        r = cur.fetchone()
    recent = fetch_submissions(worker_id=worker_id, limit=5)
    return {
        "stats": {
            "total": int(r["total"] or 0),
            "today": int(r["today"] or 0),
            "weekly": int(r["weekly"] or 0),
        },
        "recent": [_history_item(s) for s in recent],
    }


def _history_item(sub: SubmissionWithJoins) -> Dict[str, Any]:
    return {
        "id": sub.id,
        "created_at": sub.created_at,
        "customer_name": sub.customer_name,
        "cnic": sub.cnic,
        "survey_title": sub.survey_title,
    }


def worker_history(worker_id: str, limit: int = 200) -> List[Dict[str, Any]]:
    return [_history_item(s) for s in fetch_submissions(worker_id=worker_id, limit=limit)]
