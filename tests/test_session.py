import pytest

from resume_tree import ingest, llm
from resume_tree.errors import (
    CycleRejected,
    InitializationFailed,
    InvalidTree,
    NotFound,
    PatchParseError,
    ServiceError,
    UnreadableDocument,
)
from resume_tree.models import Node, Resume
from resume_tree.session import DocumentSession, initialize_session


@pytest.fixture
def doc(sample_tree, sample_resume):
    return DocumentSession(sample_tree, "Jane Doe", sample_resume)


def _snapshot(d):
    return ([n.model_dump() for n in d.tree], d.resume.model_dump())


def test_new_session_has_one_entry_and_fresh_indexes(doc):
    assert doc.history.descriptions() == ["Loaded document"]
    assert not doc.can_undo() and not doc.can_redo()
    assert doc.get_node("1.0.1").uid == "a-2"
    assert doc.address_of("skills") == "2"


def test_duplicate_uids_are_rejected():
    tree = [Node(uid="x", text="a"), Node(uid="x", text="b")]
    with pytest.raises(InvalidTree):
        DocumentSession(tree)


def test_action_by_address_resolves_to_uid(doc):
    doc.apply_action({"action": "remove", "id": "1.0.0"})
    assert doc.get_node("a-1") is None
    # indexes were rebuilt: 1.0.0 is now the former second line
    assert doc.get_node("1.0.0").uid == "a-2"
    assert doc.history.descriptions()[-1] == "Removed a-1"


def test_root_sentinel_only_in_parent_position(doc):
    doc.apply_action({"action": "move", "id": "0", "newParent": "0", "position": 2})
    assert [n.uid for n in doc.tree] == ["exp", "skills", "header"]


def test_failed_action_leaves_session_untouched(doc):
    before = _snapshot(doc)
    with pytest.raises(CycleRejected):
        doc.apply_action({"action": "move", "id": "exp", "newParent": "1.0"})
    with pytest.raises(NotFound):
        doc.apply_action({"action": "remove", "id": "7.7"})
    assert _snapshot(doc) == before
    assert len(doc.history) == 1


def test_undo_redo_restores_exact_snapshots(doc):
    s0 = _snapshot(doc)
    doc.apply_action({"action": "replaceText", "id": "name", "text": "J. Doe"})
    s1 = _snapshot(doc)
    assert doc.undo()
    assert _snapshot(doc) == s0
    assert doc.get_node("0.0").text == "Jane Doe"
    assert doc.redo()
    assert _snapshot(doc) == s1
    assert not doc.redo()


def test_batch_is_all_or_nothing(doc):
    before = _snapshot(doc)
    with pytest.raises(NotFound):
        doc.apply_actions([
            {"action": "remove", "id": "a-1"},
            {"action": "remove", "id": "missing"},
        ])
    assert _snapshot(doc) == before

    doc.apply_actions([
        {"action": "remove", "id": "a-1"},
        {"action": "replaceText", "id": "a-2", "text": "Faster deploys"},
    ])
    assert doc.history.descriptions()[-1] == "Applied 2 editing actions"
    assert doc.undo()
    assert _snapshot(doc) == before


def test_raw_patch_goes_through_history(doc):
    res = doc.apply_raw_patch('[RESUME_DATA]{"skills": ["Go"]}[/RESUME_DATA]')
    assert res.changed
    assert doc.resume.skills == ["Python", "SQL", "Go"]
    assert doc.history.descriptions()[-1] == "Applied resume patch"
    doc.undo()
    assert doc.resume.skills == ["Python", "SQL"]


def test_raw_patch_parse_error_is_returned(doc):
    res = doc.apply_raw_patch("no edits here")
    assert isinstance(res, PatchParseError)
    assert len(doc.history) == 1


def test_unchanged_patch_adds_no_entry(doc):
    doc.apply_raw_patch({"skills": ["python"]})
    assert len(doc.history) == 1


def test_listeners_fire_on_every_change(doc):
    seen = []
    doc.add_listener(lambda s: seen.append(len(s.history)))
    doc.apply_action({"action": "remove", "id": "skills"})
    doc.undo()
    assert seen == [2, 2]


def test_listener_failure_does_not_undo_the_edit(doc):
    def boom(_):
        raise RuntimeError("render queue down")

    doc.add_listener(boom)
    doc.apply_action({"action": "remove", "id": "skills"})
    assert doc.get_node("skills") is None


def test_outline_and_chat_context(doc):
    assert doc.outline().splitlines()[3] == "1 [heading] Experience"
    ctx = doc.chat_context()
    assert "RESUME_JSON" in ctx and '"e1"' not in ctx


def test_blank_session_from_resume(sample_resume):
    d = DocumentSession.from_resume(sample_resume)
    assert d.title == "Jane Doe"
    assert [n.title for n in d.tree if n.layout == "heading"] == ["Summary", "Experience", "Skills"]


def test_initialize_session(monkeypatch):
    text = "Jane Doe\njane@example.com\nSkills: Python, SQL\nExperience\nEngineer at Acme 2020 - 2022\n- Built billing"
    monkeypatch.setattr(ingest, "extract_text", lambda path: text)
    d = initialize_session("cv.pdf")
    assert d.title == "Jane Doe"
    assert d.resume.skills == ["Python", "SQL"]
    assert d.resume.experiences[0].company == "Acme"
    assert d.resume.experiences[0].duration == "2020 – 2022"


@pytest.mark.parametrize(
    "exc",
    [
        UnreadableDocument("too short"),
        ServiceError("timeout"),
        ValueError("Unsupported file type: .txt"),
    ],
)
def test_initialize_session_failures_collapse(monkeypatch, exc):
    def fail(path):
        raise exc

    monkeypatch.setattr(ingest, "extract_text", fail)
    with pytest.raises(InitializationFailed) as ei:
        initialize_session("cv.pdf")
    assert ei.value.context["cause"] == type(exc).__name__


def test_initialize_session_structuring_failure(monkeypatch):
    monkeypatch.setattr(ingest, "extract_text", lambda path: "x" * 100)

    def fail(text):
        raise ServiceError("model down")

    monkeypatch.setattr(llm, "structure_resume", fail)
    with pytest.raises(InitializationFailed):
        initialize_session("cv.pdf")


def test_history_bound_from_session(sample_tree):
    d = DocumentSession(sample_tree, max_history=2)
    d.apply_action({"action": "replaceText", "id": "name", "text": "A"})
    d.apply_action({"action": "replaceText", "id": "name", "text": "B"})
    assert d.history.descriptions() == ["Replaced text of name", "Replaced text of name"]
    assert d.undo()
    assert d.get_node("name").text == "A"
    assert not d.undo()
    assert d.resume == Resume()
