import csv
import io

from openpyxl import load_workbook

from conftest import ANSWERS_QUESTIONS


def _as(user):
    return {"X-Worker-Id": user["id"]}


def _create_active_survey(client):
    resp = client.post("/api/surveys", json={"title": "Store Experience", "questions": ANSWERS_QUESTIONS})
    assert resp.status_code == 201
    body = resp.get_json()
    client.post(f"/api/surveys/{body['id']}/toggle")
    return body


def _payload(survey, invoice="INV-1001", **overrides):
    qs = {q["type"]: q["id"] for q in survey["questions"]}
    payload = {
        "survey_id": survey["id"],
        "customer_name": "Ayesha Khan",
        "customer_phone": "03001234567",
        "cnic": "13101-2345678-9",
        "invoice_number": invoice,
        "invoice_image_url": "https://img.example.com/invoices/1001.jpg",
        "answers": {qs["radio"]: "No", qs["checkbox"]: ["Shoes"]},
    }
    payload.update(overrides)
    return payload


def test_create_and_list_surveys(client):
    created = _create_active_survey(client)
    assert [q["order_index"] for q in created["questions"]] == [0, 1, 2]

    listed = client.get("/api/surveys").get_json()
    assert [s["id"] for s in listed] == [created["id"]]
    assert listed[0]["is_active"] is True
    assert listed[0]["response_count"] == 0


def test_create_survey_requires_title_and_questions(client):
    resp = client.post("/api/surveys", json={"title": "No questions", "questions": []})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Title and questions are required"

    resp = client.post("/api/surveys", json={"title": "Bad", "questions": [{"question": "Pick", "type": "radio"}]})
    assert resp.status_code == 400
    assert resp.get_json()["questions"] == {"0": "Multiple choice questions need at least one option"}


def test_workers_only_see_active_surveys(client, worker):
    active = _create_active_survey(client)
    client.post("/api/surveys", json={"title": "Draft", "questions": ANSWERS_QUESTIONS})

    listed = client.get("/api/surveys", headers=_as(worker)).get_json()
    assert [s["id"] for s in listed] == [active["id"]]


def test_submission_needs_a_worker(client, admin_user):
    survey = _create_active_survey(client)
    assert client.post("/api/submissions", json=_payload(survey)).status_code == 401
    assert client.post("/api/submissions", json=_payload(survey), headers=_as(admin_user)).status_code == 403


def test_submit_then_duplicate_invoice(client, worker):
    survey = _create_active_survey(client)

    resp = client.post("/api/submissions", json=_payload(survey), headers=_as(worker))
    assert resp.status_code == 201
    created = resp.get_json()
    assert created["worker_id"] == worker["id"]

    resp = client.post("/api/submissions", json=_payload(survey), headers=_as(worker))
    assert resp.status_code == 409
    assert resp.get_json()["error"] == "This invoice number has already been submitted"

    detail = client.get(f"/api/submissions/{created['id']}").get_json()
    assert [a["display_value"] for a in detail["resolved_answers"]] == ["No", "Shoes"]
    assert detail["worker_name"] == "Bilal Ahmed"


def test_submit_validation_errors(client, worker):
    survey = _create_active_survey(client)
    resp = client.post(
        "/api/submissions",
        json=_payload(survey, customer_phone="12345", cnic="", answers={}),
        headers=_as(worker),
    )
    assert resp.status_code == 400
    body = resp.get_json()
    assert body["error"] == "Validation failed"
    assert {"customer_phone", "cnic"} <= set(body["fields"])
    assert sum(1 for k in body["fields"] if k.startswith("question_")) == 2


def test_submit_to_inactive_or_unknown_survey(client, worker):
    survey = _create_active_survey(client)
    client.post(f"/api/surveys/{survey['id']}/toggle")

    resp = client.post("/api/submissions", json=_payload(survey), headers=_as(worker))
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Survey is not active"

    resp = client.post("/api/submissions", json=_payload(survey, survey_id="nope"), headers=_as(worker))
    assert resp.status_code == 404


def test_survey_detail_and_listing(client, worker):
    survey = _create_active_survey(client)
    client.post("/api/submissions", json=_payload(survey, invoice="A"), headers=_as(worker))
    client.post("/api/submissions", json=_payload(survey, invoice="B"), headers=_as(worker))

    detail = client.get(f"/api/surveys/{survey['id']}").get_json()
    assert [s["invoice_number"] for s in detail["submissions"]] == ["B", "A"]
    assert detail["worker_stats"] == [
        {"worker_id": worker["id"], "name": "Bilal Ahmed", "mall_name": "Dolmen Mall", "count": 2}
    ]

    page = client.get("/api/submissions?limit=1&page=2").get_json()
    assert page["total"] == 2
    assert page["total_pages"] == 2
    assert [s["invoice_number"] for s in page["submissions"]] == ["A"]

    assert client.get("/api/surveys/nope").status_code == 404
    assert client.get("/api/overview").get_json()["total_submissions"] == 2


def test_replace_questions_endpoint(client):
    survey = _create_active_survey(client)
    url = f"/api/surveys/{survey['id']}/questions"

    resp = client.put(url, json={"questions": [{"question": ""}]})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "All questions must have text"

    resp = client.put(url, json=[{"question": "Rate us", "type": "radio", "options": ["1", "2"]}])
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["survey"]["schema_version"] == 2
    assert [q["question"] for q in body["questions"]] == ["Rate us"]

    assert client.put("/api/surveys/nope/questions", json=[]).status_code == 404


def test_worker_dashboard_and_history(client, worker):
    survey = _create_active_survey(client)
    client.post("/api/submissions", json=_payload(survey), headers=_as(worker))

    dash = client.get("/api/worker/dashboard", headers=_as(worker)).get_json()
    assert dash["stats"]["total"] == 1
    assert dash["stats"]["today"] == 1
    assert [s["id"] for s in dash["surveys"]] == [survey["id"]]

    history = client.get("/api/worker/history", headers=_as(worker)).get_json()
    assert [h["customer_name"] for h in history] == ["Ayesha Khan"]

    assert client.get("/api/worker/history").status_code == 401


def test_export_csv_and_xlsx(client, worker):
    survey = _create_active_survey(client)
    client.post("/api/submissions", json=_payload(survey), headers=_as(worker))

    resp = client.get("/api/export?format=csv")
    assert resp.status_code == 200
    assert resp.mimetype == "text/csv"
    assert "survey-submissions-" in resp.headers["Content-Disposition"]
    records = list(csv.DictReader(io.StringIO(resp.get_data(as_text=True))))
    assert len(records) == 1
    assert records[0]["Have you shopped here before?"] == "No"
    assert records[0]["Which sections did you visit?"] == "Shoes"
    assert records[0]["How did you hear about the store?"] == ""

    resp = client.get("/api/export?format=xlsx")
    assert resp.status_code == 200
    sheet = load_workbook(io.BytesIO(resp.data)).active
    assert sheet["A1"].value == "Submission ID"
    assert sheet.max_row == 2

    assert client.get("/api/export?format=pdf").status_code == 400


def test_admin_key_gates_admin_routes(client, worker, monkeypatch):
    import app as app_module

    monkeypatch.setattr(app_module, "ADMIN_KEY", "s3cret")
    assert client.get("/api/surveys").status_code == 403
    assert client.get("/api/surveys?key=wrong").status_code == 403
    assert client.get("/api/surveys?key=s3cret").status_code == 200
    assert client.get("/api/overview", headers={"X-Admin-Key": "s3cret"}).status_code == 200
    # Workers still get their own survey list without the key.
    assert client.get("/api/surveys", headers=_as(worker)).status_code == 200


def test_upload_image(client, worker):
    resp = client.post(
        "/api/upload",
        data={"file": (io.BytesIO(b"\x89PNG\r\n\x1a\nfake"), "invoice.png", "image/png")},
        headers=_as(worker),
        content_type="multipart/form-data",
    )
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["success"] is True
    assert body["imageUrl"].endswith(".png")

    name = body["imageUrl"].rsplit("/", 1)[1]
    fetched = client.get(f"/uploads/{name}")
    assert fetched.status_code == 200
    assert fetched.data.startswith(b"\x89PNG")
    fetched.close()


def test_upload_rejects_other_types(client, worker):
    resp = client.post(
        "/api/upload",
        data={"file": (io.BytesIO(b"%PDF-1.4"), "invoice.pdf", "application/pdf")},
        headers=_as(worker),
        content_type="multipart/form-data",
    )
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Invalid file type. Only JPG, PNG, and WebP are allowed."

    resp = client.post("/api/upload", data={}, headers=_as(worker), content_type="multipart/form-data")
    assert resp.status_code == 400
    assert client.post("/api/upload").status_code == 401


def test_request_id_is_echoed(client):
    resp = client.get("/api", headers={"X-Request-Id": "abc123"})
    assert resp.headers["X-Request-Id"] == "abc123"
    assert client.get("/api").headers["X-Request-Id"]


def test_export_leaves_no_files_behind(client, worker):
    import os

    import config

    survey = _create_active_survey(client)
    client.post("/api/submissions", json=_payload(survey), headers=_as(worker))
    for fmt in ("csv", "json", "xlsx"):
        resp = client.get(f"/api/export?format={fmt}")
        assert resp.status_code == 200
        assert resp.data
    assert os.listdir(config.EXPORT_DIR) == []


def test_request_id_is_cleared_after_response(client):
    from logging_setup import get_request_id

    client.get("/api", headers={"X-Request-Id": "abc123"})
    assert get_request_id() is None
