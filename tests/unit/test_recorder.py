from __future__ import annotations

import pytest

from patchroute.core.events.patches import Patch
from patchroute.recorder.diff import PatchRecorder, record_patches


def test_records_primitive_replace_and_leaves_input_untouched() -> None:
    state = {"count": 0, "name": "x"}

    def mutate(s):
        s["count"] += 1

    new_state, patches = record_patches(state, mutate)

    assert patches == [Patch(op="replace", path=("count",), value=1, old_value=0)]
    assert new_state == {"count": 1, "name": "x"}
    assert state == {"count": 0, "name": "x"}


def test_records_key_add_and_remove() -> None:
    state = {"users": {"a": {"name": "A"}, "b": {"name": "B"}}}

    def mutate(s):
        del s["users"]["a"]
        s["users"]["c"] = {"name": "C"}

    _, patches = record_patches(state, mutate)

    assert patches == [
        Patch(op="remove", path=("users", "a"), old_value={"name": "A"}),
        Patch(op="add", path=("users", "c"), value={"name": "C"}),
    ]


def test_reassigned_container_is_one_replace() -> None:
    state = {"user": {"name": "John", "age": 30}}

    def mutate(s):
        s["user"] = {"name": "Bob", "age": 25}

    _, patches = record_patches(state, mutate)

    assert patches == [
        Patch(
            op="replace",
            path=("user",),
            value={"name": "Bob", "age": 25},
            old_value={"name": "John", "age": 30},
        )
    ]


def test_in_place_container_mutation_is_diffed() -> None:
    state = {"user": {"name": "John", "age": 30}}

    def mutate(s):
        s["user"].update(name="Jane", age=31)

    _, patches = record_patches(state, mutate)

    assert [p.path for p in patches] == [("user", "name"), ("user", "age")]


def test_values_compare_by_type() -> None:
    state = {"flag": True, "ratio": 1}

    def mutate(s):
        s["flag"] = 1
        s["ratio"] = 1.0

    _, patches = record_patches(state, mutate)

    assert [p.path for p in patches] == [("flag",), ("ratio",)]


def test_list_push_and_pop() -> None:
    state = {"items": [1, 2, 3]}

    _, pushed = record_patches(state, lambda s: s["items"].append(4))
    assert pushed == [Patch(op="add", path=("items", 3), value=4)]

    def pop_two(s):
        s["items"].pop()
        s["items"].pop()

    _, popped = record_patches(state, pop_two)
    assert popped == [
        Patch(op="remove", path=("items", 2), old_value=3),
        Patch(op="remove", path=("items", 1), old_value=2),
    ]


def test_list_shrink_as_length_assignment() -> None:
    recorder = PatchRecorder(array_length_assignment=True)

    _, patches = recorder({"items": [1, 2, 3]}, lambda s: s["items"].pop())

    assert patches == [Patch(op="replace", path=("items", "length"), value=2, old_value=3)]


def test_identity_is_attached_to_in_place_item_updates_only() -> None:
    state = {"items": [{"id": "a", "value": 1}, {"id": "b", "value": 2}]}
    config = {"items": lambda item: item["id"]}

    def update_b(s):
        s["items"][1]["value"] = 20

    _, patches = record_patches(state, update_b, config)
    assert patches == [Patch(op="replace", path=("items", 1, "value"), value=20, old_value=2, id="b")]

    def replace_a(s):
        s["items"][0] = {"id": "c", "value": 100}

    _, patches = record_patches(state, replace_a, config)
    assert [p.id for p in patches] == [None]

    def shift(s):
        s["items"].pop(0)

    _, patches = record_patches(state, shift, config)
    assert patches
    assert all(p.id is None for p in patches)


def test_reorder_does_not_attach_identity() -> None:
    state = {"items": [{"id": "a"}, {"id": "b"}]}

    def swap(s):
        s["items"].reverse()

    _, patches = record_patches(state, swap, {"items": lambda item: item["id"]})

    assert [p.path for p in patches] == [("items", 0), ("items", 1)]
    assert all(p.id is None for p in patches)


def test_nested_identity_config() -> None:
    state = {"users": [{"id": "u1", "posts": [{"postId": "p1", "title": "Hello"}]}]}
    config = {"users": {"posts": lambda post: post["postId"]}}

    def mutate(s):
        s["users"][0]["posts"][0]["title"] = "Updated"

    _, patches = record_patches(state, mutate, config)

    assert patches == [
        Patch(
            op="replace",
            path=("users", 0, "posts", 0, "title"),
            value="Updated",
            old_value="Hello",
            id="p1",
        )
    ]


def test_identity_function_errors_propagate() -> None:
    def identify(item):
        if item["value"] == 100:
            raise ValueError("Test error")
        return item["id"]

    def mutate(s):
        s["items"][0]["value"] = 100

    with pytest.raises(ValueError, match="Test error"):
        record_patches({"items": [{"id": "a", "value": 1}]}, mutate, {"items": identify})


def test_rejects_non_dict_state() -> None:
    with pytest.raises(TypeError):
        record_patches([1, 2], lambda s: None)  # type: ignore[arg-type]


def test_patches_follow_first_write_order() -> None:
    state = {"a": 1, "users": {"u1": {"n": 1}, "u2": {"n": 2}}, "z": 0}

    def mutate(s):
        s["z"] = 1
        s["users"]["u2"]["n"] = 20
        s["new"] = True
        del s["a"]
        s["users"]["u1"]["n"] = 10

    _, patches = record_patches(state, mutate)

    assert [(p.op, p.path) for p in patches] == [
        ("replace", ("z",)),
        ("replace", ("users", "u2", "n")),
        ("add", ("new",)),
        ("remove", ("a",)),
        ("replace", ("users", "u1", "n")),
    ]


def test_draft_methods_record_writes_in_call_order() -> None:
    state = {"m": {"x": 1, "y": 2}, "items": [3, 1, 2]}

    def mutate(s):
        s["m"].update(y=20, x=10)
        s["items"].sort()

    new_state, patches = record_patches(state, mutate)

    assert [p.path for p in patches] == [
        ("m", "y"),
        ("m", "x"),
        ("items", 0),
        ("items", 1),
        ("items", 2),
    ]
    assert new_state == {"m": {"x": 10, "y": 20}, "items": [1, 2, 3]}


def test_new_state_holds_plain_containers() -> None:
    state = {"user": {"tags": ["a"]}, "other": {"k": 1}}

    def mutate(s):
        s["user"]["tags"].append("b")
        s["moved"] = s["other"]

    new_state, patches = record_patches(state, mutate)

    assert type(new_state) is dict
    assert type(new_state["user"]) is dict
    assert type(new_state["user"]["tags"]) is list
    assert new_state["moved"] is new_state["other"]
    [added] = [p for p in patches if p.op == "add" and p.path == ("moved",)]
    assert added.value is new_state["moved"]
    assert type(added.value) is dict
