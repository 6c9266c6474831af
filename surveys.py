# surveys.py — MallSurvey Collect
# Survey schema store: surveys, ordered questions, whole-set question replacement

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from db import get_conn
from errors import SchemaMutationValidationError, StoreError, SurveyNotFoundError
from models import CHOICE_TYPES, QUESTION_TYPES, Question, QuestionInput, Survey


log = logging.getLogger(__name__)

MSG_QUESTION_TEXT = "All questions must have text"
MSG_QUESTION_OPTIONS = "Multiple choice questions need at least one option"
MSG_QUESTION_TYPE = "Question type must be one of: text, radio, checkbox"


# -------------------------------------------------
# Helpers
# -------------------------------------------------

def _now() -> str:
    return datetime.now().isoformat(timespec="seconds")


def _new_id() -> str:
    return uuid.uuid4().hex


def _as_input(item: Union[QuestionInput, Mapping[str, Any]]) -> QuestionInput:
    if isinstance(item, QuestionInput):
        return item
    options = item.get("options")
    return QuestionInput(
        question=item.get("question") or "",
        type=item.get("type") or "text",
        options=list(options) if isinstance(options, (list, tuple)) else None,
        required=bool(item.get("required") or False),
    )


# -------------------------------------------------
# Question set validation
# -------------------------------------------------

def validate_question_set(
    items: Sequence[Union[QuestionInput, Mapping[str, Any]]],
    allow_empty: bool = True,
) -> List[QuestionInput]:
    """
    Checks a whole question set before anything is written.
    Returns normalized inputs: trimmed text, lower-case type, blank options
    dropped, options cleared for text questions.
    """
    if not allow_empty and not items:
        raise SchemaMutationValidationError("Add at least one question")

    errors: Dict[int, str] = {}
    out: List[QuestionInput] = []
    for idx, raw in enumerate(items):
        if not isinstance(raw, (QuestionInput, Mapping)):
            errors[idx] = "Question must be an object"
            continue
        q = _as_input(raw)
        text = str(q.question or "").strip()
        qtype = str(q.type or "text").strip().lower()
        options: Optional[List[str]] = None

        if not text:
            errors[idx] = MSG_QUESTION_TEXT
        elif qtype not in QUESTION_TYPES:
            errors[idx] = MSG_QUESTION_TYPE
        elif qtype in CHOICE_TYPES:
            options = [str(o).strip() for o in (q.options or []) if o is not None and str(o).strip()]
            if not options:
                errors[idx] = MSG_QUESTION_OPTIONS

        out.append(QuestionInput(question=text, type=qtype, options=options, required=bool(q.required)))

    if errors:
        first = errors[min(errors)]
        raise SchemaMutationValidationError(first, errors)
    return out


def _question_rows(survey_id: str, inputs: Iterable[QuestionInput]) -> List[Dict[str, Any]]:
    now = _now()
    rows = []
    for index, q in enumerate(inputs):
        rows.append(
            {
                "id": _new_id(),
                "survey_id": survey_id,
                "question": q.question,
                "type": q.type,
                "options": json.dumps(q.options, ensure_ascii=False) if q.type in CHOICE_TYPES else None,
                "required": 1 if q.required else 0,
                "order_index": index,
                "created_at": now,
            }
        )
    return rows


_INSERT_QUESTION_SQL = """
    INSERT INTO survey_questions
      (id, survey_id, question, type, options, required, order_index, created_at)
    VALUES (:id, :survey_id, :question, :type, :options, :required, :order_index, :created_at)
"""


# -------------------------------------------------
# Surveys
# -------------------------------------------------

def create_survey(
    title: str,
    questions: Sequence[Union[QuestionInput, Mapping[str, Any]]],
) -> Tuple[Survey, List[Question]]:
    """
    Creates an inactive survey with its questions. If the questions cannot be
    stored the survey row is deleted again.
    """
    title = (title or "").strip()
    if not title:
        raise SchemaMutationValidationError("Survey title is required")
    inputs = validate_question_set(questions, allow_empty=False)

    now = _now()
    survey_id = _new_id()
    try:
        with get_conn() as conn:
            conn.execute(
                """
                INSERT INTO surveys (id, title, is_active, schema_version, created_at, updated_at)
                VALUES (?, ?, 0, 1, ?, ?)
                """,
                (survey_id, title, now, now),
            )
            conn.commit()
    except sqlite3.Error as e:
        log.exception("Failed to create survey")
        raise StoreError("Failed to create survey") from e

    try:
        with get_conn() as conn:
            conn.executemany(_INSERT_QUESTION_SQL, _question_rows(survey_id, inputs))
            conn.commit()
    except sqlite3.Error as e:
        log.exception("Failed to store questions for survey %s; rolling back survey", survey_id)
        _delete_survey_row(survey_id)
        raise StoreError("Failed to create survey questions") from e

    log.info("Created survey %s with %d questions", survey_id, len(inputs))
    return get_survey(survey_id), list_questions(survey_id)


def _delete_survey_row(survey_id: str) -> None:
    # Only used to undo a half-finished create.
    try:
        with get_conn() as conn:
            conn.execute("DELETE FROM survey_questions WHERE survey_id=?", (survey_id,))
            conn.execute("DELETE FROM surveys WHERE id=?", (survey_id,))
            conn.commit()
    except sqlite3.Error:
        log.exception("Rollback of survey %s failed", survey_id)


def get_survey(survey_id: str) -> Survey:
    with get_conn() as conn:
        cur = conn.cursor()
        cur.execute("SELECT * FROM surveys WHERE id=? LIMIT 1", (str(survey_id),))
        row = cur.fetchone()
    if not row:
        raise SurveyNotFoundError(f"Survey {survey_id} not found")
    return Survey.from_row(row)


def list_surveys(active_only: bool = False) -> List[Survey]:
    where = "WHERE is_active=1" if active_only else ""
    with get_conn() as conn:
        cur = conn.cursor()
        cur.execute(
            f"""
            SELECT *
            FROM surveys
            {where}
            ORDER BY created_at DESC, rowid DESC
            """
        )
        return [Survey.from_row(r) for r in cur.fetchall()]


def list_surveys_with_counts() -> List[Dict[str, Any]]:
    with get_conn() as conn:
        cur = conn.cursor()
        cur.execute(
            """
            SELECT s.*, COUNT(sub.id) AS response_count
            FROM surveys s
            LEFT JOIN submissions sub ON sub.survey_id = s.id
            GROUP BY s.id
            ORDER BY s.created_at DESC, s.rowid DESC
            """
        )
        out = []
        for r in cur.fetchall():
            d = Survey.from_row(r).to_dict()
            d["response_count"] = int(r["response_count"] or 0)
            out.append(d)
        return out


def set_survey_active(survey_id: str, is_active: bool) -> Survey:
    get_survey(survey_id)
    with get_conn() as conn:
        conn.execute(
            "UPDATE surveys SET is_active=?, updated_at=? WHERE id=?",
            (1 if is_active else 0, _now(), str(survey_id)),
        )
        conn.commit()
    log.info("Survey %s is now %s", survey_id, "active" if is_active else "inactive")
    return get_survey(survey_id)


def toggle_survey(survey_id: str) -> Survey:
    survey = get_survey(survey_id)
    return set_survey_active(survey.id, not survey.is_active)


def overview_counts() -> Dict[str, int]:
    with get_conn() as conn:
        cur = conn.cursor()
        cur.execute(
            """
            SELECT
              (SELECT COUNT(*) FROM surveys) AS total_surveys,
              (SELECT COUNT(*) FROM surveys WHERE is_active=1) AS active_surveys,
              (SELECT COUNT(*) FROM submissions) AS total_submissions
            """
        )
        r = cur.fetchone()
    return {
        "total_surveys": int(r["total_surveys"] or 0),
        "active_surveys": int(r["active_surveys"] or 0),
        "total_submissions": int(r["total_submissions"] or 0),
    }


# -------------------------------------------------
# Questions
# -------------------------------------------------

def list_questions(survey_id: str) -> List[Question]:
    with get_conn() as conn:
        cur = conn.cursor()
        cur.execute(
            """
            SELECT id, survey_id, question, type, options, required, order_index
            FROM survey_questions
            WHERE survey_id=?
            ORDER BY order_index ASC
            """,
            (str(survey_id),),
        )
        return [Question.from_row(r) for r in cur.fetchall()]


def replace_questions(
    survey_id: str,
    questions: Sequence[Union[QuestionInput, Mapping[str, Any]]],
) -> List[Question]:
    """
    Deletes every question of the survey and inserts the new set with fresh
    ids and order_index by position, in one transaction. Bumps the survey's
    schema_version. Answers stored against the old ids stop resolving.
    """
    inputs = validate_question_set(questions)
    survey = get_survey(survey_id)
    rows = _question_rows(survey.id, inputs)

    conn = get_conn()
    try:
        conn.execute("DELETE FROM survey_questions WHERE survey_id=?", (survey.id,))
        if rows:
            conn.executemany(_INSERT_QUESTION_SQL, rows)
        conn.execute(
            "UPDATE surveys SET schema_version=schema_version+1, updated_at=? WHERE id=?",
            (_now(), survey.id),
        )
        conn.commit()
    except sqlite3.Error as e:
        conn.rollback()
        log.exception("Failed to replace questions for survey %s", survey.id)
        raise StoreError("Failed to save questions") from e
    finally:
        conn.close()

    log.info("Replaced questions for survey %s (%d questions)", survey.id, len(rows))
    return list_questions(survey.id)


def question_catalog(questions: Iterable[Question]) -> Dict[str, str]:
    """question id -> question text, in the order given (schema order from list_questions)."""
    catalog: Dict[str, str] = {}
    for q in questions:
        if q.id not in catalog:
            catalog[q.id] = q.question
    return catalog


def catalog_for_surveys(survey_ids: Iterable[str]) -> Dict[str, str]:
    """
    Current question catalog across several surveys, surveys in the given
    order and questions in order_index order inside each.
    """
    catalog: Dict[str, str] = {}
    seen = set()
    for sid in survey_ids:
        if not sid or sid in seen:
            continue
        seen.add(sid)
        for qid, text in question_catalog(list_questions(sid)).items():
            catalog.setdefault(qid, text)
    return catalog
