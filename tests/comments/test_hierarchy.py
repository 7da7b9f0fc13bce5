"""Tests for building nested comment trees."""

from uuid import uuid4

import pytest

from threadkeeper.comments.exceptions import ThreadIntegrityError
from threadkeeper.comments.hierarchy import build_nested_structure


def _node(parent=None, **fields):
    return {"id": uuid4(), "thread_of": parent, "blocked_thread": False, **fields}


def test_nests_replies_under_parents() -> None:
    root = _node()
    reply = _node(root["id"])
    nested = _node(reply["id"])
    other_root = _node()

    tree = build_nested_structure([root, reply, nested, other_root])

    assert [n["id"] for n in tree] == [root["id"], other_root["id"]]
    assert tree[0]["children"][0]["id"] == reply["id"]
    assert tree[0]["children"][0]["children"][0]["id"] == nested["id"]
    assert tree[1]["children"] == []


def test_preserves_sibling_order() -> None:
    root = _node()
    replies = [_node(root["id"]) for _ in range(4)]

    tree = build_nested_structure([root, *replies])

    assert [c["id"] for c in tree[0]["children"]] == [r["id"] for r in replies]


def test_starting_from_id_roots_at_children() -> None:
    root = _node()
    a = _node(root["id"])
    b = _node(root["id"])
    a_reply = _node(a["id"])

    tree = build_nested_structure([root, a, b, a_reply], starting_from_id=root["id"])

    assert [n["id"] for n in tree] == [a["id"], b["id"]]
    assert tree[0]["children"][0]["id"] == a_reply["id"]


def test_every_node_appears_once_when_parents_present() -> None:
    roots = [_node() for _ in range(3)]
    replies = [_node(roots[i % 3]["id"]) for i in range(6)]
    nested = [_node(replies[i]["id"]) for i in range(4)]
    flat = [*roots, *replies, *nested]

    tree = build_nested_structure(flat)

    seen = []
    pending = list(tree)
    while pending:
        node = pending.pop()
        seen.append(node["id"])
        pending.extend(node["children"])
    assert len(seen) == len(flat)
    assert set(seen) == {n["id"] for n in flat}


def test_parent_may_be_embedded_entity() -> None:
    root = _node()
    reply = _node({"id": root["id"], "content": "parent"})

    tree = build_nested_structure([root, reply])

    assert tree[0]["children"][0]["id"] == reply["id"]


def test_orphans_are_left_out() -> None:
    root = _node()
    orphan = _node(uuid4())

    tree = build_nested_structure([root, orphan])

    assert [n["id"] for n in tree] == [root["id"]]


def test_drop_blocked_threads_keeps_node_but_not_replies() -> None:
    root = _node(blocked_thread=True)
    reply = _node(root["id"], blocked_thread=True)
    open_root = _node()
    open_reply = _node(open_root["id"])

    tree = build_nested_structure(
        [root, reply, open_root, open_reply], drop_blocked_threads=True
    )

    assert tree[0]["id"] == root["id"]
    assert tree[0]["children"] == []
    assert tree[1]["children"][0]["id"] == open_reply["id"]


def test_does_not_mutate_input() -> None:
    root = _node()
    reply = _node(root["id"])

    build_nested_structure([root, reply])

    assert "children" not in root


def test_deep_thread_does_not_hit_recursion_limit() -> None:
    nodes = [_node()]
    for _ in range(5000):
        nodes.append(_node(nodes[-1]["id"]))

    tree = build_nested_structure(nodes)

    depth = 0
    current = tree[0]
    while current["children"]:
        current = current["children"][0]
        depth += 1
    assert depth == 5000


def test_cycle_raises_integrity_error() -> None:
    a_id, b_id = uuid4(), uuid4()
    a = {"id": a_id, "thread_of": b_id}
    b = {"id": b_id, "thread_of": a_id}
    root = {"id": uuid4(), "thread_of": None}
    with pytest.raises(ThreadIntegrityError):
        build_nested_structure([root, a, b], starting_from_id=a_id)


def test_empty_input() -> None:
    assert build_nested_structure([]) == []
