# app.py — MallSurvey Collect
# JSON API for admins (surveys, questions, submissions, exports) and field workers (submit, history).

from __future__ import annotations

import io
import logging
import os
import secrets
import uuid
from typing import Any, Dict, Optional

from flask import Flask, g, jsonify, request, send_file, send_from_directory

import config
import exports as exp
import submissions as subs
import surveys as srv
import uploads as upl
import workers as wrk
from answers import resolve_answers
from db import init_db
from errors import (
    DuplicateInvoiceError,
    FieldValidationError,
    SchemaMutationValidationError,
    StoreError,
    SurveyInactiveError,
    SurveyNotFoundError,
)
from logging_setup import get_request_id, set_request_id, setup_logging


APP_NAME = config.APP_NAME
ADMIN_KEY = config.ADMIN_KEY
WORKER_HEADER = config.WORKER_HEADER
EXPORT_DIR = config.EXPORT_DIR
UPLOAD_DIR = config.UPLOAD_DIR
SECRET_KEY = config.SECRET_KEY or secrets.token_urlsafe(32)

setup_logging(config.LOG_LEVEL, config.LOG_JSON)
log = logging.getLogger(__name__)

app = Flask(__name__)
app.secret_key = SECRET_KEY
# Image uploads are capped separately in uploads.py; this is the hard body limit.
app.config["MAX_CONTENT_LENGTH"] = (int(config.MAX_UPLOAD_MB) + 1) * 1024 * 1024


# ---------------------------
# Request context
# ---------------------------
@app.before_request
def _before_request_ids():
    rid = (request.headers.get("X-Request-Id") or "").strip() or uuid.uuid4().hex[:16]
    g.request_id = rid
    set_request_id(rid)
    g.user = wrk.get_worker((request.headers.get(WORKER_HEADER) or "").strip())


@app.after_request
def _after_request_ids(response):
    rid = get_request_id() or getattr(g, "request_id", None)
    if rid:
        response.headers["X-Request-Id"] = rid
    set_request_id(None)
    return response


def _error(message: str, status: int, **extra: Any):
    body: Dict[str, Any] = {"error": message}
    body.update(extra)
    return jsonify(body), status


def current_user() -> Optional[Dict[str, Any]]:
    return getattr(g, "user", None)


def require_admin() -> bool:
    user = current_user()
    if user and user.get("role") == "admin":
        return True
    if not ADMIN_KEY:
        return True
    supplied = request.args.get("key") or request.headers.get("X-Admin-Key") or ""
    return secrets.compare_digest(supplied.encode("utf-8"), ADMIN_KEY.encode("utf-8"))


def admin_gate():
    if require_admin():
        return None
    return _error("Forbidden", 403)


def worker_gate():
    user = current_user()
    if not user:
        return _error("Unauthorized", 401)
    if user.get("role") != "worker":
        return _error("Forbidden", 403)
    return None


def _int_arg(name: str, default: int) -> int:
    raw = request.args.get(name) or ""
    return int(raw) if raw.isdigit() else default


def _submission_out(sub, questions=None) -> Dict[str, Any]:
    d = sub.to_dict()
    if questions is None:
        questions = srv.list_questions(sub.survey_id)
    d["resolved_answers"] = [r.to_dict() for r in resolve_answers(sub.answers, questions)]
    return d


# ---------------------------
# API index
# ---------------------------
@app.route("/api")
def api_root():
    return jsonify(
        {
            "name": f"{APP_NAME} API",
            "endpoints": [
                "GET /api/overview",
                "GET /api/surveys",
                "POST /api/surveys",
                "GET /api/surveys/<id>",
                "POST /api/surveys/<id>/toggle",
                "PUT /api/surveys/<id>/questions",
                "GET /api/submissions?filter=&startDate=&endDate=&survey_id=&page=&limit=",
                "POST /api/submissions",
                "GET /api/submissions/<id>",
                "GET /api/worker/dashboard",
                "GET /api/worker/history",
                "GET /api/workers",
                "POST /api/workers",
                "POST /api/upload",
                "GET /api/export?filter=&startDate=&endDate=&survey_id=&format=xlsx|csv|json",
            ],
        }
    )


@app.route("/api/overview", methods=["GET"])
def api_overview():
    gate = admin_gate()
    if gate:
        return gate
    return jsonify(srv.overview_counts())


# ---------------------------
# Surveys
# ---------------------------
@app.route("/api/surveys", methods=["GET", "POST"])
def api_surveys():
    user = current_user()
    if request.method == "GET":
        if user and user.get("role") == "worker":
            return jsonify([s.to_dict() for s in srv.list_surveys(active_only=True)])
        gate = admin_gate()
        if gate:
            return gate
        return jsonify(srv.list_surveys_with_counts())

    gate = admin_gate()
    if gate:
        return gate
    data = request.get_json(silent=True) or {}
    title = (data.get("title") or "").strip()
    questions = data.get("questions") or []
    if not title or not isinstance(questions, list) or not questions:
        return _error("Title and questions are required", 400)
    try:
        survey, qs = srv.create_survey(title, questions)
    except SchemaMutationValidationError as e:
        return _error(str(e), 400, questions={str(k): v for k, v in e.errors.items()})
    except StoreError:
        return _error("Failed to create survey", 500)
    out = survey.to_dict()
    out["questions"] = [q.to_dict() for q in qs]
    return jsonify(out), 201


@app.route("/api/surveys/<survey_id>", methods=["GET"])
def api_survey_one(survey_id):
    gate = admin_gate()
    if gate:
        return gate
    try:
        survey = srv.get_survey(survey_id)
        questions = srv.list_questions(survey.id)
        rows = subs.fetch_submissions(survey_id=survey.id)
    except SurveyNotFoundError:
        return _error("Survey not found", 404)
    except StoreError:
        return _error("Failed to load survey details", 500)
    return jsonify(
        {
            "survey": survey.to_dict(),
            "questions": [q.to_dict() for q in questions],
            "submissions": [_submission_out(s, questions) for s in rows],
            "worker_stats": [w.to_dict() for w in subs.compute_worker_stats(rows)],
        }
    )


@app.route("/api/surveys/<survey_id>/toggle", methods=["POST"])
def api_survey_toggle(survey_id):
    gate = admin_gate()
    if gate:
        return gate
    try:
        survey = srv.toggle_survey(survey_id)
    except SurveyNotFoundError:
        return _error("Survey not found", 404)
    return jsonify(survey.to_dict())


@app.route("/api/surveys/<survey_id>/questions", methods=["PUT"])
def api_survey_questions(survey_id):
    gate = admin_gate()
    if gate:
        return gate
    data = request.get_json(silent=True)
    questions = data.get("questions") if isinstance(data, dict) else data
    if not isinstance(questions, list):
        return _error("questions must be a list", 400)
    try:
        qs = srv.replace_questions(survey_id, questions)
        survey = srv.get_survey(survey_id)
    except SchemaMutationValidationError as e:
        return _error(str(e), 400, questions={str(k): v for k, v in e.errors.items()})
    except SurveyNotFoundError:
        return _error("Survey not found", 404)
    except StoreError:
        return _error("Failed to save questions", 500)
    return jsonify({"survey": survey.to_dict(), "questions": [q.to_dict() for q in qs]})


# ---------------------------
# Submissions
# ---------------------------
@app.route("/api/submissions", methods=["GET", "POST"])
def api_submissions():
    if request.method == "GET":
        gate = admin_gate()
        if gate:
            return gate
        try:
            result = subs.list_submissions(
                survey_id=(request.args.get("survey_id") or "").strip() or None,
                date_filter=request.args.get("filter") or "all",
                start=request.args.get("startDate"),
                end=request.args.get("endDate"),
                page=_int_arg("page", 1),
                limit=_int_arg("limit", config.PAGE_SIZE),
            )
        except StoreError:
            return _error("Failed to load submissions", 500)
        result["submissions"] = [s.to_dict() for s in result["submissions"]]
        return jsonify(result)

    gate = worker_gate()
    if gate:
        return gate
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return _error("Request body must be a JSON object", 400)
    try:
        submission = subs.submit(data, current_user()["id"])
    except FieldValidationError as e:
        return _error("Validation failed", 400, fields=e.errors)
    except SurveyNotFoundError:
        return _error("Survey not found", 404)
    except SurveyInactiveError:
        return _error("Survey is not active", 400)
    except DuplicateInvoiceError:
        return _error("This invoice number has already been submitted", 409)
    except StoreError:
        return _error("Failed to submit survey", 500)
    return jsonify(submission.to_dict()), 201


@app.route("/api/submissions/<submission_id>", methods=["GET"])
def api_submission_one(submission_id):
    gate = admin_gate()
    if gate:
        return gate
    sub = subs.get_submission(submission_id)
    if not sub:
        return _error("Submission not found", 404)
    return jsonify(_submission_out(sub))


# ---------------------------
# Worker views
# ---------------------------
@app.route("/api/worker/dashboard", methods=["GET"])
def api_worker_dashboard():
    gate = worker_gate()
    if gate:
        return gate
    user = current_user()
    out = subs.worker_dashboard(user["id"])
    out["surveys"] = [s.to_dict() for s in srv.list_surveys(active_only=True)]
    return jsonify(out)


@app.route("/api/worker/history", methods=["GET"])
def api_worker_history():
    gate = worker_gate()
    if gate:
        return gate
    return jsonify(subs.worker_history(current_user()["id"]))


@app.route("/api/workers", methods=["GET", "POST"])
def api_workers():
    gate = admin_gate()
    if gate:
        return gate
    if request.method == "GET":
        return jsonify(wrk.list_workers(role=request.args.get("role") or "worker"))
    data = request.get_json(silent=True) or {}
    try:
        row = wrk.create_worker(
            name=data.get("name") or "",
            email=data.get("email") or "",
            mall_name=data.get("mall_name") or "",
            role=data.get("role") or "worker",
            worker_id=data.get("id"),
        )
    except ValueError as e:
        return _error(str(e), 400)
    except StoreError:
        return _error("Failed to create user", 500)
    return jsonify(row), 201


# ---------------------------
# Uploads
# ---------------------------
@app.route("/api/upload", methods=["POST"])
def api_upload():
    if not current_user():
        return _error("Unauthorized", 401)
    try:
        name = upl.save_image(request.files.get("file"))
    except ValueError as e:
        return _error(str(e), 400)
    return jsonify(
        {
            "success": True,
            "message": "Image uploaded successfully",
            "imageUrl": upl.public_url(name, request.host_url),
        }
    )


@app.route("/uploads/<path:filename>", methods=["GET"])
def uploaded_file(filename):
    return send_from_directory(UPLOAD_DIR, filename)


# ---------------------------
# Export
# ---------------------------
@app.route("/api/export", methods=["GET"])
def api_export():
    gate = admin_gate()
    if gate:
        return gate
    fmt = (request.args.get("format") or "xlsx").strip().lower()
    if fmt not in exp.EXPORT_FORMATS:
        return _error(f"Unsupported export format: {fmt}", 400)
    filename = exp.export_filename(fmt)
    os.makedirs(EXPORT_DIR, exist_ok=True)
    path = os.path.join(EXPORT_DIR, f"{uuid.uuid4().hex[:8]}-{filename}")
    try:
        exp.export_submissions(
            path,
            fmt=fmt,
            survey_id=(request.args.get("survey_id") or "").strip() or None,
            date_filter=request.args.get("filter") or "all",
            start=request.args.get("startDate"),
            end=request.args.get("endDate"),
        )
        with open(path, "rb") as f:
            buf = io.BytesIO(f.read())
    except StoreError:
        return _error("Failed to export submissions", 500)
    finally:
        # Staging copy only.
        if os.path.exists(path):
            os.remove(path)
    return send_file(
        buf,
        mimetype=exp.EXPORT_FORMATS[fmt],
        as_attachment=True,
        download_name=filename,
    )


if __name__ == "__main__":
    os.makedirs(UPLOAD_DIR, exist_ok=True)
    os.makedirs(EXPORT_DIR, exist_ok=True)
    init_db()
    app.run(host=config.HOST, port=config.PORT, debug=config.DEBUG)
