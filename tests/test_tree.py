from resume_tree.models import Node
from resume_tree.tree import find_parent, is_descendant, iter_nodes, new_uid, validate_tree


def test_iter_nodes_is_preorder(sample_tree):
    assert [n.uid for n in iter_nodes(sample_tree)][:6] == ["header", "name", "email", "exp", "job-a", "a-1"]


def test_find_parent(sample_tree):
    parent, idx = find_parent(sample_tree, "a-2")
    assert parent.uid == "job-a" and idx == 1
    assert find_parent(sample_tree, "skills") == (None, 2)
    assert find_parent(sample_tree, "nope") == (None, -1)


def test_is_descendant(sample_tree):
    assert is_descendant(sample_tree, "exp", "a-1")
    assert not is_descendant(sample_tree, "a-1", "exp")
    assert not is_descendant(sample_tree, "exp", "exp")


def test_uids_are_unique_and_never_address_shaped():
    a, b = new_uid(), new_uid()
    assert a != b
    assert not a[0].isdigit()


def test_validate_tree_errors_and_warnings():
    tree = [
        Node(uid="h", layout="heading", title="Deep", style={"level": 3}),
        Node(uid="c", layout="container"),
        Node(uid="kv", layout="key-value", title="Email"),
        Node(uid="li", layout="list-item", text="one\n\ntwo"),
        Node(uid="h", text="dup"),
    ]
    res = validate_tree(tree)
    assert not res.valid
    assert res.errors == ["Duplicate uid: h"]
    assert "Empty container: c" in res.warnings
    assert "Key-value node missing key or value: kv" in res.warnings
    assert "List item holds several paragraphs: li" in res.warnings
    assert "Top-level heading with level 3: h" in res.warnings


def test_valid_tree(sample_tree):
    res = validate_tree(sample_tree)
    assert res.valid and res.errors == []
