# tests/test_smoke.py
import importlib
import io
import sys

import pytest

from resume_tree import ingest
from resume_tree.errors import UnreadableDocument


def _import_fresh(module_name: str):
    """Import a module after removing it from sys.modules (so env vars apply)."""
    if module_name in sys.modules:
        del sys.modules[module_name]
    return importlib.import_module(module_name)


TEXT = """Jane Doe
jane@example.com
Skills: Python, SQL
Experience
Engineer at Acme 2020 - 2022
- Built the billing service
"""


@pytest.fixture
def backend(tmp_path, monkeypatch):
    monkeypatch.setenv("UPLOAD_DIR", str(tmp_path / "uploads"))
    mod = _import_fresh("backend")
    mod.DOCUMENTS.clear()
    return mod


@pytest.fixture
def client(backend):
    return backend.app.test_client()


def _upload(client, name="cv.pdf"):
    return client.post(
        "/documents",
        data={"file": (io.BytesIO(b"%PDF-1.4 fake"), name)},
        content_type="multipart/form-data",
    )


def test_allowed_file(backend):
    assert backend.allowed_file("resume.pdf") is True
    assert backend.allowed_file("resume.DOCX") is True
    assert backend.allowed_file("resume.exe") is False


def test_healthz(client):
    r = client.get("/healthz")
    assert r.status_code == 200


def test_no_document_yet(client):
    assert client.get("/documents/current").status_code == 404


def test_upload_edit_undo_flow(client, monkeypatch, tmp_path):
    monkeypatch.setattr(ingest, "extract_text", lambda path: TEXT)

    r = _upload(client)
    assert r.status_code == 201
    body = r.get_json()
    assert body["state"] == "ready"
    assert body["title"] == "Jane Doe"
    assert body["resume"]["skills"] == ["Python", "SQL"]
    # uploaded file is not kept
    assert list((tmp_path / "uploads").iterdir()) == []

    r = client.post("/documents/current/actions", json={"action": "remove", "id": "1"})
    assert r.status_code == 200
    assert r.get_json()["canUndo"] is True

    r = client.post("/documents/current/undo")
    assert r.get_json()["applied"] is True
    assert r.get_json()["canRedo"] is True

    r = client.post("/documents/current/redo")
    assert r.get_json()["applied"] is True


def test_upload_failure_reports_failed_state(client, monkeypatch):
    def unreadable(path):
        raise UnreadableDocument("The document has too little text to work with")

    monkeypatch.setattr(ingest, "extract_text", unreadable)
    r = _upload(client)
    assert r.status_code == 422
    body = r.get_json()
    assert body["state"] == "failed"
    assert body["error"] == "InitializationFailed"


def test_upload_rejects_other_types(client):
    r = _upload(client, "cv.exe")
    assert r.status_code == 400


def test_structural_errors_map_to_status_codes(client):
    client.post("/documents/blank", json={"resume": {"skills": ["Go"], "summary": "Hi"}})

    r = client.post("/documents/current/actions", json={"action": "remove", "id": "9.9"})
    assert r.status_code == 404
    assert r.get_json()["error"] == "NotFound"

    r = client.post("/documents/current/actions", json={"action": "move", "id": "0", "newParent": "0.0"})
    assert r.status_code == 409

    r = client.post("/documents/current/actions", json={"action": "reorder", "order": ["0"]})
    assert r.status_code == 400
    assert r.get_json()["error"] == "InvalidPermutation"


def test_patch_and_chat(client):
    client.post("/documents/blank", json={"resume": {"skills": ["Python"]}})

    r = client.post("/documents/current/patch", data="[RESUME_DATA]{skills: ['Go'],}[/RESUME_DATA]")
    assert r.status_code == 200
    assert r.get_json()["resume"]["skills"] == ["Python", "Go"]

    r = client.post("/documents/current/patch", data="[RESUME_DATA]{broken[/RESUME_DATA]")
    assert r.status_code == 422
    assert r.get_json()["error"] == "PatchParseError"

    r = client.post("/documents/current/chat", json={"message": "remove skills Python"})
    assert r.status_code == 200
    assert r.get_json()["resume"]["skills"] == ["Go"]
    assert r.get_json()["changed"] is True


def test_batch_actions(client):
    client.post("/documents/blank", json={"resume": {"skills": ["Go"], "summary": "Hi"}})
    r = client.post("/documents/current/actions", json={"actions": [
        {"action": "appendChild", "node": {"layout": "heading", "title": "Awards"}},
        {"action": "reorder", "order": ["2", "0", "1"]},
    ]})
    assert r.status_code == 200
    body = r.get_json()
    assert body["tree"][0]["title"] == "Awards"
    assert body["history"][-1] == "Applied 2 editing actions"
