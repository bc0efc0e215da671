import pytest

from resume_tree.actions import apply_action
from resume_tree.addressing import compute_numbering
from resume_tree.history import HistoryStack, make_entry
from resume_tree.models import Resume


def _entry(tree, desc, resume=None):
    return make_entry(tree, compute_numbering(tree), desc, resume=resume)


def test_undo_redo_walks_the_log(sample_tree):
    h = HistoryStack(10)
    h.reset(_entry(sample_tree, "Loaded"))
    t1 = apply_action(sample_tree, {"action": "remove", "id": "skills"})
    h.apply(_entry(t1, "Removed skills"))

    assert h.can_undo() and not h.can_redo()
    back = h.undo()
    assert back.description == "Loaded"
    assert [n.uid for n in back.tree] == ["header", "exp", "skills"]
    assert h.can_redo() and not h.can_undo()
    assert h.undo() is None

    fwd = h.redo()
    assert fwd.description == "Removed skills"
    assert h.redo() is None


def test_push_after_undo_drops_redo_branch(sample_tree):
    h = HistoryStack(10)
    h.reset(_entry(sample_tree, "Loaded"))
    h.apply(_entry(sample_tree, "a"))
    h.apply(_entry(sample_tree, "b"))
    h.undo()
    h.apply(_entry(sample_tree, "c"))
    assert h.descriptions() == ["Loaded", "a", "c"]
    assert not h.can_redo()


def test_bound_evicts_oldest(sample_tree):
    h = HistoryStack(3)
    for d in "abcde":
        h.apply(_entry(sample_tree, d))
    assert h.descriptions() == ["c", "d", "e"]
    assert h.index == 2
    assert len(h) == 3


def test_entries_are_snapshots(sample_tree):
    resume = Resume(skills=["Python"])
    e = _entry(sample_tree, "Loaded", resume)
    sample_tree[0].children.clear()
    resume.skills.append("Go")
    assert len(e.tree[0].children) == 2
    assert e.resume.skills == ["Python"]

    tree, restored = e.restore()
    tree[0].children.clear()
    restored.skills.append("Rust")
    assert len(e.tree[0].children) == 2
    assert e.resume.skills == ["Python"]


def test_empty_stack():
    h = HistoryStack()
    assert h.current is None
    assert not h.can_undo() and not h.can_redo()
    assert h.undo() is None


def test_max_size_must_be_positive():
    with pytest.raises(ValueError):
        HistoryStack(0)
