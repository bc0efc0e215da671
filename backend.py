# backend.py — Flask JSON API: upload -> structure -> edit -> undo/redo
import logging
import os
import uuid
from datetime import timedelta

from flask import Flask, jsonify, request, session
from pydantic import ValidationError
from werkzeug.utils import secure_filename

from resume_tree import llm
from resume_tree.errors import InitializationFailed, PatchParseError, ResumeTreeError
from resume_tree.models import Resume
from resume_tree.refresh import RefreshScheduler
from resume_tree.session import DocumentSession, initialize_session

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = Flask(__name__)
app.config.update(
    SESSION_COOKIE_HTTPONLY=True,
    SESSION_COOKIE_SAMESITE="Lax",
    SESSION_COOKIE_SECURE=bool(os.environ.get("COOKIE_SECURE", "0") == "1"),
)
app.secret_key = os.environ.get("SECRET_KEY", "dev-secret-change-me")
app.permanent_session_lifetime = timedelta(minutes=30)
BASE_DIR = os.path.dirname(os.path.abspath(__file__))
UPLOAD_DIR = os.environ.get("UPLOAD_DIR", os.path.join(BASE_DIR, "uploads"))
ALLOWED_EXTS = {"pdf", "docx"}
DESIGN_TEMPLATE = os.environ.get("DESIGN_TEMPLATE", "classic")
app.config["MAX_CONTENT_LENGTH"] = 10 * 1024 * 1024  # 10 MB

# doc_id -> (session, refresher); documents live only as long as the process
DOCUMENTS: dict = {}


def allowed_file(filename: str) -> bool:
    return "." in filename and filename.rsplit(".", 1)[1].lower() in ALLOWED_EXTS


def _open(doc: DocumentSession) -> DocumentSession:
    old = DOCUMENTS.pop(session.get("doc_id"), None)
    if old is not None:
        old[1].shutdown(wait=False)
    refresher = RefreshScheduler(doc, template=DESIGN_TEMPLATE).attach()
    doc_id = uuid.uuid4().hex
    DOCUMENTS[doc_id] = (doc, refresher)
    session["doc_id"] = doc_id
    session.permanent = True
    refresher.schedule()
    return doc


def _current():
    entry = DOCUMENTS.get(session.get("doc_id"))
    if entry is None:
        return None, None
    return entry


def _state(doc: DocumentSession, refresher: RefreshScheduler, **extra):
    out = doc.to_dict()
    out["design"] = refresher.artifact
    out["designError"] = refresher.last_error
    out.update(extra)
    return out


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


@app.errorhandler(ResumeTreeError)
def handle_tree_error(e: ResumeTreeError):
    body = e.to_dict()
    if isinstance(e, InitializationFailed):
        body["state"] = "failed"
    logger.warning("%s: %s", type(e).__name__, e.message)
    return jsonify(body), e.status_code


@app.post("/documents")
def upload():
    f = request.files.get("file")
    if not f or not f.filename:
        return jsonify({"error": "NoFile", "message": "No file"}), 400
    if not allowed_file(f.filename):
        return jsonify({"error": "UnsupportedFile", "message": "Unsupported file type"}), 400

    os.makedirs(UPLOAD_DIR, exist_ok=True)
    save_path = os.path.join(UPLOAD_DIR, f"{uuid.uuid4().hex}_{secure_filename(f.filename)}")
    f.save(save_path)
    try:
        doc = initialize_session(save_path)
    finally:
        try:
            os.remove(save_path)
        except OSError:
            logger.warning("Could not remove upload %s", save_path)

    _open(doc)
    return jsonify(_state(*_current())), 201


@app.post("/documents/blank")
def blank():
    data = _json_body()
    try:
        resume = Resume.model_validate(data.get("resume") or {})
    except ValidationError as e:
        return jsonify({"error": "InvalidResume", "message": str(e)}), 400
    _open(DocumentSession.from_resume(resume))
    return jsonify(_state(*_current())), 201


def _require_document():
    doc, refresher = _current()
    if doc is None:
        return None, None, (jsonify({"error": "NoDocument", "message": "No document is open"}), 404)
    return doc, refresher, None


@app.get("/documents/current")
def get_current():
    doc, refresher, err = _require_document()
    if err:
        return err
    return jsonify(_state(doc, refresher))


@app.post("/documents/current/actions")
def post_actions():
    doc, refresher, err = _require_document()
    if err:
        return err
    data = _json_body()
    if "actions" in data:
        doc.apply_actions(data.get("actions") or [], data.get("description"))
    else:
        doc.apply_action(data, data.get("description"))
    return jsonify(_state(doc, refresher))


def _patch_response(doc, refresher, result):
    if isinstance(result, PatchParseError):
        return jsonify({"error": "PatchParseError", **result.model_dump()}), 422
    return jsonify(_state(doc, refresher, notes=result.notes, changed=result.changed))


@app.post("/documents/current/patch")
def post_patch():
    doc, refresher, err = _require_document()
    if err:
        return err
    data = request.get_json(silent=True)
    if data is None:
        data = request.get_data(as_text=True)
    return _patch_response(doc, refresher, doc.apply_raw_patch(data))


@app.post("/documents/current/chat")
def post_chat():
    doc, refresher, err = _require_document()
    if err:
        return err
    message = (_json_body().get("message") or "").strip()
    if not message:
        return jsonify({"error": "EmptyMessage", "message": "Message is empty"}), 400

    # without a model the message itself is read as an edit instruction
    reply = llm.propose_patch(message, doc.chat_context()) if llm.llm_enabled() else message
    result = doc.apply_raw_patch(reply)
    if isinstance(result, PatchParseError):
        # a conversational reply with no edit is not an error for chat
        return jsonify(_state(doc, refresher, reply=reply, notes=[result.reason], changed=False))
    return jsonify(_state(doc, refresher, reply=reply, notes=result.notes, changed=result.changed))


@app.post("/documents/current/undo")
def post_undo():
    doc, refresher, err = _require_document()
    if err:
        return err
    return jsonify(_state(doc, refresher, applied=doc.undo()))


@app.post("/documents/current/redo")
def post_redo():
    doc, refresher, err = _require_document()
    if err:
        return err
    return jsonify(_state(doc, refresher, applied=doc.redo()))


@app.get("/healthz")
def healthz():
    return "ok", 200


if __name__ == "__main__":
    app.run(debug=False)
