"""
Test configuration and fixtures.

Provides:
- A throwaway SQLite database per test (config.DB_PATH pointed at tmp_path)
- Seed helpers for workers, surveys and submission payloads
- A Flask test client
"""
from typing import Any, Dict, List, Optional

import pytest

import config
import db
import surveys as srv
import workers as wrk


ANSWERS_QUESTIONS: List[Dict[str, Any]] = [
    {"question": "How did you hear about the store?", "type": "text", "required": False},
    {"question": "Have you shopped here before?", "type": "radio", "options": ["Yes", "No"], "required": True},
    {"question": "Which sections did you visit?", "type": "checkbox", "options": ["Apparel", "Shoes", "Kids"], "required": True},
]


@pytest.fixture
def tmp_db(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "DB_PATH", str(tmp_path / "mallsurvey-test.db"))
    monkeypatch.setattr(config, "UPLOAD_DIR", str(tmp_path / "uploads"))
    monkeypatch.setattr(config, "EXPORT_DIR", str(tmp_path / "exports"))
    db.init_db()
    return config.DB_PATH


@pytest.fixture
def worker(tmp_db) -> Dict[str, Any]:
    return wrk.create_worker(name="Bilal Ahmed", email="bilal@example.com", mall_name="Dolmen Mall")


@pytest.fixture
def admin_user(tmp_db) -> Dict[str, Any]:
    return wrk.create_worker(name="Sana Admin", email="sana@example.com", role="admin")


@pytest.fixture
def make_survey(tmp_db):
    def _make(title: str = "Store Experience", questions: Optional[List[Dict[str, Any]]] = None, active: bool = True):
        survey, qs = srv.create_survey(title, questions if questions is not None else ANSWERS_QUESTIONS)
        if active:
            survey = srv.set_survey_active(survey.id, True)
        return survey, qs
    return _make


@pytest.fixture
def make_payload():
    def _make(survey_id: str, questions, invoice: str = "INV-1001", **overrides) -> Dict[str, Any]:
        by_type = {q.type: q for q in questions}
        payload: Dict[str, Any] = {
            "survey_id": survey_id,
            "customer_name": "Ayesha Khan",
            "customer_phone": "0300-1234567",
            "cnic": "13101-2345678-9",
            "invoice_number": invoice,
            "invoice_image_url": "https://img.example.com/invoices/1001.jpg",
            "answers": {
                by_type["radio"].id: "Yes",
                by_type["checkbox"].id: ["Apparel", "Kids"],
            },
        }
        payload.update(overrides)
        return payload
    return _make


@pytest.fixture
def client(tmp_db, monkeypatch):
    import app as app_module

    monkeypatch.setattr(app_module, "ADMIN_KEY", "")
    monkeypatch.setattr(app_module, "EXPORT_DIR", config.EXPORT_DIR)
    monkeypatch.setattr(app_module, "UPLOAD_DIR", config.UPLOAD_DIR)
    app_module.app.config["TESTING"] = True
    with app_module.app.test_client() as c:
        yield c
