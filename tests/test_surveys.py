import pytest

import db
import surveys as srv
from errors import SchemaMutationValidationError, StoreError, SurveyNotFoundError
from models import QuestionInput
from conftest import ANSWERS_QUESTIONS


def test_create_survey_stores_questions_in_order(tmp_db):
    survey, qs = srv.create_survey("  Store Experience ", ANSWERS_QUESTIONS)
    assert survey.title == "Store Experience"
    assert survey.is_active is False
    assert survey.schema_version == 1
    assert [q.order_index for q in qs] == [0, 1, 2]
    assert [q.type for q in qs] == ["text", "radio", "checkbox"]
    assert qs[0].options is None
    assert qs[2].options == ["Apparel", "Shoes", "Kids"]
    assert qs[1].required is True


def test_create_survey_accepts_question_inputs(tmp_db):
    _, qs = srv.create_survey("Quick", [QuestionInput(question="Name of store?")])
    assert [q.question for q in qs] == ["Name of store?"]


@pytest.mark.parametrize(
    "title, questions, message",
    [
        ("", ANSWERS_QUESTIONS, "Survey title is required"),
        ("Empty", [], "Add at least one question"),
        ("Blank", [{"question": "   ", "type": "text"}], srv.MSG_QUESTION_TEXT),
        ("No options", [{"question": "Pick", "type": "radio", "options": ["", "  "]}], srv.MSG_QUESTION_OPTIONS),
        ("Bad type", [{"question": "Rate", "type": "slider"}], srv.MSG_QUESTION_TYPE),
    ],
)
def test_create_survey_rejects_bad_input(tmp_db, title, questions, message):
    with pytest.raises(SchemaMutationValidationError) as exc:
        srv.create_survey(title, questions)
    assert str(exc.value) == message
    assert srv.list_surveys() == []


def test_question_set_errors_are_indexed():
    with pytest.raises(SchemaMutationValidationError) as exc:
        srv.validate_question_set(
            [
                {"question": "Fine", "type": "text"},
                {"question": "", "type": "text"},
                {"question": "Pick", "type": "checkbox", "options": []},
            ]
        )
    assert exc.value.errors == {1: srv.MSG_QUESTION_TEXT, 2: srv.MSG_QUESTION_OPTIONS}
    assert str(exc.value) == srv.MSG_QUESTION_TEXT


def test_failed_question_insert_removes_the_survey(tmp_db, monkeypatch):
    monkeypatch.setattr(
        srv,
        "_INSERT_QUESTION_SQL",
        srv._INSERT_QUESTION_SQL.replace("INSERT INTO survey_questions", "INSERT INTO missing_table"),
    )
    with pytest.raises(StoreError):
        srv.create_survey("Store Experience", ANSWERS_QUESTIONS)
    assert srv.list_surveys() == []


def test_get_unknown_survey(tmp_db):
    with pytest.raises(SurveyNotFoundError):
        srv.get_survey("nope")


def test_replace_questions_swaps_the_whole_set(make_survey):
    survey, old = make_survey()
    new = srv.replace_questions(
        survey.id,
        [
            {"question": "Rate us", "type": "RADIO", "options": ["1", "2", "3"], "required": True},
            {"question": "Comments", "type": "text", "options": ["ignored"]},
        ],
    )
    assert [q.question for q in new] == ["Rate us", "Comments"]
    assert [q.order_index for q in new] == [0, 1]
    assert new[0].type == "radio"
    assert new[1].options is None
    assert not {q.id for q in new} & {q.id for q in old}
    assert srv.list_questions(survey.id) == new
    assert srv.get_survey(survey.id).schema_version == 2


def test_replace_with_empty_set_clears_questions(make_survey):
    survey, _ = make_survey()
    assert srv.replace_questions(survey.id, []) == []
    assert srv.list_questions(survey.id) == []


def test_invalid_replacement_leaves_old_questions(make_survey):
    survey, old = make_survey()
    with pytest.raises(SchemaMutationValidationError):
        srv.replace_questions(survey.id, [{"question": "Fine"}, {"question": "Pick", "type": "radio"}])
    assert srv.list_questions(survey.id) == old
    assert srv.get_survey(survey.id).schema_version == 1


def test_failed_replacement_rolls_back(make_survey, monkeypatch):
    survey, old = make_survey()
    monkeypatch.setattr(
        srv,
        "_INSERT_QUESTION_SQL",
        srv._INSERT_QUESTION_SQL.replace("INSERT INTO survey_questions", "INSERT INTO missing_table"),
    )
    with pytest.raises(StoreError):
        srv.replace_questions(survey.id, [{"question": "Rate us"}])
    assert srv.list_questions(survey.id) == old
    assert srv.get_survey(survey.id).schema_version == 1


def test_replace_on_unknown_survey(tmp_db):
    with pytest.raises(SurveyNotFoundError):
        srv.replace_questions("nope", [{"question": "Rate us"}])


def test_toggle_and_active_listing(make_survey):
    first, _ = make_survey("First", active=False)
    second, _ = make_survey("Second", active=True)

    assert [s.id for s in srv.list_surveys(active_only=True)] == [second.id]
    assert [s.id for s in srv.list_surveys()] == [second.id, first.id]

    assert srv.toggle_survey(first.id).is_active is True
    assert srv.toggle_survey(second.id).is_active is False
    assert [s.id for s in srv.list_surveys(active_only=True)] == [first.id]

    with pytest.raises(SurveyNotFoundError):
        srv.toggle_survey("nope")


def test_catalog_follows_question_order(make_survey):
    survey, qs = make_survey()
    catalog = srv.question_catalog(srv.list_questions(survey.id))
    assert list(catalog) == [q.id for q in qs]
    assert list(catalog.values()) == [q["question"] for q in ANSWERS_QUESTIONS]


def test_catalog_for_several_surveys(make_survey):
    a, qa = make_survey("A", [{"question": "One"}])
    b, qb = make_survey("B", [{"question": "Two"}, {"question": "Three"}])
    catalog = srv.catalog_for_surveys([b.id, a.id, b.id, ""])
    assert list(catalog.values()) == ["Two", "Three", "One"]


def test_overview_and_counts(make_survey, make_payload, worker):
    import submissions as subs

    active, qs = make_survey("Active")
    make_survey("Draft", active=False)
    subs.submit(make_payload(active.id, qs), worker["id"])

    assert srv.overview_counts() == {"total_surveys": 2, "active_surveys": 1, "total_submissions": 1}
    counts = {s["title"]: s["response_count"] for s in srv.list_surveys_with_counts()}
    assert counts == {"Active": 1, "Draft": 0}


def test_init_db_is_idempotent(make_survey):
    survey, qs = make_survey()
    db.init_db()
    assert srv.list_questions(survey.id) == qs
