# validation.py — MallSurvey Collect
# Field checks and full submission validation against a survey's live questions.
# Pure: no DB access here.

from __future__ import annotations

import re
from typing import Any, Dict, List, Mapping, Optional, Sequence
from urllib.parse import urlsplit

from errors import FieldValidationError, SurveyInactiveError
from models import (
    AnswerValue,
    ChoiceAnswer,
    Question,
    Survey,
    TextAnswer,
    ValidatedSubmission,
)


PHONE_RE = re.compile(r"03[0-9]{9}")
PHONE_SEPARATORS_RE = re.compile(r"[\s\-()]")
CNIC_RE = re.compile(r"[0-9]{5}-[0-9]{7}-[0-9]")

MSG_REQUIRED = "This field is required"


def is_required(value: Any) -> bool:
    if value is None:
        return False
    return len(str(value).strip()) > 0


def normalize_phone(phone: str) -> str:
    return PHONE_SEPARATORS_RE.sub("", phone or "")


def is_valid_phone(phone: str) -> bool:
    # Exactly 11 digits starting with 03, e.g. 03001234567
    return bool(PHONE_RE.fullmatch(normalize_phone(phone)))


def is_valid_cnic(cnic: str) -> bool:
    # 13101-2345678-9
    return bool(CNIC_RE.fullmatch(cnic or ""))


def is_valid_url(url: str) -> bool:
    try:
        parts = urlsplit((url or "").strip())
    except ValueError:
        return False
    return parts.scheme in ("http", "https") and bool(parts.netloc)


def question_error_key(question_id: str) -> str:
    return f"question_{question_id}"


def _text(payload: Mapping[str, Any], key: str) -> str:
    value = payload.get(key)
    if value is None:
        return ""
    return str(value).strip()


def _is_answered(raw: Any) -> bool:
    if raw is None:
        return False
    if isinstance(raw, str):
        return raw.strip() != ""
    if isinstance(raw, (list, tuple)):
        return len(raw) > 0
    return True


def _check_answer(question: Question, raw: Any) -> tuple:
    """
    Returns (AnswerValue | None, error message | None) for one supplied answer.
    """
    options = question.options or []

    if question.type == "checkbox":
        if not isinstance(raw, (list, tuple)):
            return None, "Expected a list of selected options"
        picked: List[str] = []
        for item in raw:
            if not isinstance(item, str):
                return None, "Expected a list of selected options"
            if item not in options:
                return None, f"'{item}' is not one of this question's options"
            if item not in picked:
                picked.append(item)
        return ChoiceAnswer(tuple(picked)), None

    if isinstance(raw, bool) or not isinstance(raw, (str, int, float)):
        return None, "Expected a single text answer"
    value = raw if isinstance(raw, str) else str(raw)

    if question.is_choice and value.strip() and value not in options:
        return None, f"'{value}' is not one of this question's options"
    return TextAnswer(value), None


def validate_answers(
    answers: Mapping[str, Any],
    live_questions: Sequence[Question],
    errors: Dict[str, str],
) -> Dict[str, AnswerValue]:
    answers = {str(k): v for k, v in answers.items()}
    accepted: Dict[str, AnswerValue] = {}

    for question in sorted(live_questions, key=lambda q: q.order_index):
        raw = answers.get(question.id)
        if not _is_answered(raw):
            if question.required:
                errors[question_error_key(question.id)] = MSG_REQUIRED
                continue
            if raw is None:
                continue
        value, message = _check_answer(question, raw)
        if message:
            errors[question_error_key(question.id)] = message
        else:
            accepted[question.id] = value

    known = {q.id for q in live_questions}
    for qid in answers:
        if qid not in known:
            errors[question_error_key(qid)] = "Unknown question"

    # Keep the order the answers were given in.
    return {qid: accepted[qid] for qid in answers if qid in accepted}


def validate_submission(
    payload: Mapping[str, Any],
    live_questions: Sequence[Question],
    schema_version: int = 1,
) -> ValidatedSubmission:
    """
    Checks every rule and raises FieldValidationError carrying all violations
    at once, keyed by form field (question errors as question_<id>).
    """
    errors: Dict[str, str] = {}

    survey_id = _text(payload, "survey_id")
    if not is_required(survey_id):
        errors["survey_id"] = "Survey ID is required"

    customer_name = _text(payload, "customer_name")
    if not is_required(customer_name):
        errors["customer_name"] = "Customer name is required"

    customer_phone = _text(payload, "customer_phone")
    if not is_required(customer_phone):
        errors["customer_phone"] = "Phone number is required"
    elif not is_valid_phone(customer_phone):
        errors["customer_phone"] = "Invalid phone number (must be 11 digits starting with 03)"

    cnic = _text(payload, "cnic")
    if not is_required(cnic):
        errors["cnic"] = "CNIC is required"
    elif not is_valid_cnic(cnic):
        errors["cnic"] = "Invalid CNIC format (e.g., 13101-2345678-9)"

    invoice_number = _text(payload, "invoice_number")
    if not is_required(invoice_number):
        errors["invoice_number"] = "Invoice number is required"

    invoice_image_url = _text(payload, "invoice_image_url")
    if not is_required(invoice_image_url):
        errors["invoice_image_url"] = "Invoice image is required"
    elif not is_valid_url(invoice_image_url):
        errors["invoice_image_url"] = "Invoice image URL is not valid"

    customer_image_url: Optional[str] = _text(payload, "customer_image_url") or None
    if customer_image_url and not is_valid_url(customer_image_url):
        errors["customer_image_url"] = "Customer image URL is not valid"

    raw_answers = payload.get("answers")
    if raw_answers is None:
        raw_answers = {}
    if not isinstance(raw_answers, Mapping):
        errors["answers"] = "Answers must be an object keyed by question id"
        raw_answers = {}
    answers = validate_answers(raw_answers, live_questions, errors)

    if errors:
        raise FieldValidationError(errors)

    return ValidatedSubmission(
        survey_id=survey_id,
        customer_name=customer_name,
        customer_phone=customer_phone,
        cnic=cnic,
        invoice_number=invoice_number,
        invoice_image_url=invoice_image_url,
        customer_image_url=customer_image_url,
        answers=answers,
        schema_version=int(schema_version),
    )


def ensure_survey_active(survey: Survey) -> None:
    if not survey.is_active:
        raise SurveyInactiveError(survey.id)
