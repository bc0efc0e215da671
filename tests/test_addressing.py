from resume_tree.addressing import (
    AddressMap,
    compute_numbering,
    is_address,
    parent_address,
    serialize_outline,
)
from resume_tree.tree import iter_nodes


def test_every_node_has_exactly_one_address(sample_tree):
    amap = AddressMap(sample_tree)
    uids = [n.uid for n in iter_nodes(sample_tree)]
    assert len(amap) == len(uids)
    assert sorted(amap.address_of(u) for u in uids) == sorted(amap.addresses())


def test_addresses_are_zero_based_and_in_walk_order(sample_tree):
    amap = AddressMap(sample_tree)
    assert amap.addresses() == [
        "0", "0.0", "0.1",
        "1", "1.0", "1.0.0", "1.0.1", "1.1", "1.1.0",
        "2", "2.0",
    ]
    assert amap.get("1.0.1").uid == "a-2"
    assert amap.get("9") is None
    assert not amap.has("1.5")


def test_parent_children_and_siblings(sample_tree):
    amap = AddressMap(sample_tree)
    assert amap.parent("1.0.1").uid == "job-a"
    assert amap.parent("1") is None
    assert amap.children_addresses("1") == ["1.0", "1.1"]
    assert amap.children_addresses("2.0") == []
    assert amap.sibling_addresses("1.0") == ["1.1"]
    assert amap.sibling_addresses("0") == ["1", "2"]


def test_numbering_round_trips(sample_tree):
    num = compute_numbering(sample_tree)
    for addr, uid in num.addr_to_uid.items():
        assert num.uid_to_addr[uid] == addr
        assert num.resolve(addr) == uid
    assert num.address_of("b-1") == "1.1.0"
    assert num.resolve("3") is None


def test_address_helpers():
    assert is_address("0") and is_address("2.1.3")
    assert not is_address("uid_abc_1")
    assert not is_address("1.")
    assert parent_address("2.1.3") == "2.1"
    assert parent_address("2") is None


def test_outline_lists_every_node_with_its_address(sample_tree):
    lines = serialize_outline(sample_tree).splitlines()
    assert len(lines) == 11
    assert lines[0] == "0 [container] (untitled)"
    assert lines[1] == "  0.0 [paragraph] Jane Doe"
    assert "    1.0.1 [list-item] Cut deploy time by 40%" in lines


def test_empty_tree_has_no_addresses():
    assert len(AddressMap([])) == 0
    assert compute_numbering([]).addr_to_uid == {}
    assert serialize_outline([]) == ""
