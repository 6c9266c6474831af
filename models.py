# models.py — MallSurvey Collect
# Plain records for surveys, questions, submissions and the answer map.

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union


log = logging.getLogger(__name__)

QUESTION_TYPES = ("text", "radio", "checkbox")
CHOICE_TYPES = ("radio", "checkbox")


def _row_get(row: Any, key: str, default: Any = None) -> Any:
    try:
        return row[key]
    except (KeyError, IndexError):
        return default


# -------------------------------------------------
# Answer values
# -------------------------------------------------

@dataclass(frozen=True)
class TextAnswer:
    value: str


@dataclass(frozen=True)
class ChoiceAnswer:
    values: Tuple[str, ...]


AnswerValue = Union[TextAnswer, ChoiceAnswer]


def _coerce_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def answer_from_json(raw: Any) -> AnswerValue:
    """
    Lenient decode of one stored answer. Lists become ChoiceAnswer,
    everything else is coerced to text. Never raises.
    """
    if isinstance(raw, (TextAnswer, ChoiceAnswer)):
        return raw
    if isinstance(raw, (list, tuple)):
        return ChoiceAnswer(tuple(_coerce_text(v) for v in raw))
    return TextAnswer(_coerce_text(raw))


def answer_to_json(answer: AnswerValue) -> Union[str, List[str]]:
    if isinstance(answer, ChoiceAnswer):
        return list(answer.values)
    return answer.value


def display_answer(answer: AnswerValue) -> str:
    if isinstance(answer, ChoiceAnswer):
        return ", ".join(answer.values)
    return answer.value


def parse_answers(raw: Any) -> Dict[str, AnswerValue]:
    if not raw:
        return {}
    if not isinstance(raw, Mapping):
        log.warning("Answer map is a %s, not an object; treating as empty", type(raw).__name__)
        return {}
    return {str(k): answer_from_json(v) for k, v in raw.items()}


def dump_answers(answers: Mapping[str, AnswerValue]) -> Dict[str, Union[str, List[str]]]:
    return {k: answer_to_json(v) for k, v in answers.items()}


def answers_to_text(answers: Mapping[str, AnswerValue]) -> str:
    # Insertion order is kept; it is the order the resolver walks.
    return json.dumps(dump_answers(answers), ensure_ascii=False)


def answers_from_text(text: Optional[str]) -> Dict[str, AnswerValue]:
    if not text:
        return {}
    try:
        raw = json.loads(text)
    except ValueError:
        log.warning("Stored answer map is not valid JSON; treating as empty")
        return {}
    if not isinstance(raw, dict):
        log.warning("Stored answer map is not an object; treating as empty")
        return {}
    return parse_answers(raw)


# -------------------------------------------------
# Schema
# -------------------------------------------------

@dataclass
class Survey:
    id: str
    title: str
    is_active: bool = False
    created_at: str = ""
    updated_at: Optional[str] = None
    schema_version: int = 1

    @classmethod
    def from_row(cls, row: Any) -> "Survey":
        return cls(
            id=str(row["id"]),
            title=row["title"] or "",
            is_active=bool(int(row["is_active"] or 0)),
            created_at=row["created_at"] or "",
            updated_at=_row_get(row, "updated_at"),
            schema_version=int(_row_get(row, "schema_version", 1) or 1),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class QuestionInput:
    question: str
    type: str = "text"
    options: Optional[List[str]] = None
    required: bool = False


@dataclass
class Question:
    id: str
    survey_id: str
    question: str
    type: str = "text"
    options: Optional[List[str]] = None
    required: bool = False
    order_index: int = 0

    @property
    def is_choice(self) -> bool:
        return self.type in CHOICE_TYPES

    @classmethod
    def from_row(cls, row: Any) -> "Question":
        options = None
        raw_options = row["options"]
        if raw_options:
            try:
                parsed = json.loads(raw_options)
                if isinstance(parsed, list):
                    options = [_coerce_text(o) for o in parsed]
            except ValueError:
                log.warning("Question %s has unreadable options", row["id"])
        return cls(
            id=str(row["id"]),
            survey_id=str(row["survey_id"]),
            question=row["question"] or "",
            type=(row["type"] or "text").lower(),
            options=options,
            required=bool(int(row["required"] or 0)),
            order_index=int(row["order_index"] or 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# -------------------------------------------------
# Submissions
# -------------------------------------------------

@dataclass
class ValidatedSubmission:
    survey_id: str
    customer_name: str
    customer_phone: str
    cnic: str
    invoice_number: str
    invoice_image_url: str
    customer_image_url: Optional[str] = None
    answers: Dict[str, AnswerValue] = field(default_factory=dict)
    schema_version: int = 1


@dataclass
class Submission:
    id: str
    survey_id: str
    worker_id: str
    customer_name: str
    customer_phone: str
    cnic: Optional[str]
    invoice_number: str
    invoice_image_url: str
    customer_image_url: Optional[str] = None
    answers: Dict[str, AnswerValue] = field(default_factory=dict)
    created_at: str = ""
    schema_version: int = 1

    @classmethod
    def _base_kwargs(cls, row: Any) -> Dict[str, Any]:
        return {
            "id": str(row["id"]),
            "survey_id": str(row["survey_id"]),
            "worker_id": str(row["worker_id"]),
            "customer_name": row["customer_name"] or "",
            "customer_phone": row["customer_phone"] or "",
            "cnic": row["cnic"],
            "invoice_number": row["invoice_number"] or "",
            "invoice_image_url": row["invoice_image_url"] or "",
            "customer_image_url": row["customer_image_url"],
            "answers": answers_from_text(row["answers"]),
            "created_at": row["created_at"] or "",
            "schema_version": int(_row_get(row, "schema_version", 1) or 1),
        }

    @classmethod
    def from_row(cls, row: Any) -> "Submission":
        return cls(**cls._base_kwargs(row))

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["answers"] = dump_answers(self.answers)
        return d


@dataclass
class SubmissionWithJoins(Submission):
    worker_name: Optional[str] = None
    mall_name: Optional[str] = None
    survey_title: Optional[str] = None

    @classmethod
    def from_row(cls, row: Any) -> "SubmissionWithJoins":
        kwargs = cls._base_kwargs(row)
        kwargs["worker_name"] = _row_get(row, "worker_name")
        kwargs["mall_name"] = _row_get(row, "mall_name")
        kwargs["survey_title"] = _row_get(row, "survey_title")
        return cls(**kwargs)


@dataclass
class WorkerStat:
    worker_id: str
    name: str
    mall_name: str
    count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
