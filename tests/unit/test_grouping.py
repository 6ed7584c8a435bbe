from __future__ import annotations

import pytest

from patchroute.core.events.patches import Patch
from patchroute.core.store.grouping import (
    LengthReduction,
    extract_keys_from_patches,
    group_patches_by_field,
)


def test_groups_patches_by_top_level_field_in_first_seen_order() -> None:
    patches = [
        Patch(op="replace", path=("user", "name"), value="Jane", old_value="John"),
        Patch(op="replace", path=("count",), value=1, old_value=0),
        Patch(op="add", path=("user", "address", "city"), value="Paris"),
    ]

    groups = group_patches_by_field(patches)

    assert list(groups.all) == ["user", "count"]
    assert groups.all["user"] == [patches[0], patches[2]]
    assert groups.all["count"] == [patches[1]]

    # deep patches are excluded from the top-level view
    assert groups.top_level["user"] == [patches[0]]
    assert groups.top_level["count"] == [patches[1]]

    assert groups.replaced_fields == {"count"}
    assert groups.length_reductions == {}


def test_detects_length_reduction() -> None:
    patches = [Patch(op="replace", path=("rows", "length"), value=1, old_value=3)]

    groups = group_patches_by_field(patches)

    reduction = groups.length_reductions["rows"]
    assert reduction == LengthReduction(old_length=3, new_length=1)
    assert list(reduction.removed_keys()) == [1, 2]


@pytest.mark.parametrize(
    "patch",
    [
        # growth
        Patch(op="replace", path=("rows", "length"), value=5, old_value=3),
        # not a replace
        Patch(op="add", path=("rows", "length"), value=1),
        # non-numeric
        Patch(op="replace", path=("rows", "length"), value="1", old_value="3"),
        # bools are not lengths
        Patch(op="replace", path=("rows", "length"), value=False, old_value=True),
        # deeper than the field
        Patch(op="replace", path=("rows", "x", "length"), value=1, old_value=3),
    ],
)
def test_ignores_non_reducing_length_patches(patch: Patch) -> None:
    assert group_patches_by_field([patch]).length_reductions == {}


def test_empty_path_is_an_invariant_violation() -> None:
    patches = [
        Patch(op="replace", path=("count",), value=1, old_value=0),
        Patch(op="replace", path=(), value={}),
    ]

    with pytest.raises(RuntimeError, match="empty path"):
        group_patches_by_field(patches)


def test_extract_keys_for_keyed_fields_uses_second_segment() -> None:
    patches = [
        Patch(op="replace", path=("users", "u2", "name"), value="B"),
        Patch(op="remove", path=("users", "u1"), old_value={}),
        Patch(op="replace", path=("users", "u2", "age"), value=3),
        Patch(op="replace", path=("users",), value={}),
    ]

    keys = extract_keys_from_patches(patches, is_ordered=False)

    assert list(keys) == ["u2", "u1"]


def test_extract_keys_for_ordered_fields_uses_identity_only() -> None:
    patches = [
        Patch(op="replace", path=("items", 3, "done"), value=True, id=0),
        Patch(op="replace", path=("items", 4, "done"), value=True, id=""),
        Patch(op="replace", path=("items", 5, "done"), value=True, id=None),
        Patch(op="remove", path=("items", 6), old_value={}),
        Patch(op="replace", path=("items", 3, "text"), value="x", id=0),
    ]

    keys = extract_keys_from_patches(patches, is_ordered=True)

    # positions never leak into keys; falsy identities are kept
    assert list(keys) == [0, ""]
