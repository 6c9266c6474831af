# answers.py — MallSurvey Collect
# Resolve a submission's answer map to (question text, display value) pairs.

from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any, Dict, Iterable, List

from models import Question, display_answer, parse_answers


@dataclass
class ResolvedAnswer:
    question_id: str
    question_text: str
    display_value: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def resolve_answers(
    answers: Any,
    questions: Iterable[Question],
) -> List[ResolvedAnswer]:
    """
    Walks the answer map in its own order. The question list may be a newer
    snapshot than the one the submission was made against; keys it does not
    know fall back to the raw key. Questions that were never answered are
    not emitted.
    """
    parsed = parse_answers(answers)
    if not parsed:
        return []
    text_by_id: Dict[str, str] = {q.id: q.question for q in questions}
    return [
        ResolvedAnswer(
            question_id=qid,
            question_text=text_by_id.get(qid) or qid,
            display_value=display_answer(value),
        )
        for qid, value in parsed.items()
    ]
