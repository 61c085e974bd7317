"""Tests for the group reducer in :mod:`feedkeeper.groups.transitions`."""

from __future__ import annotations

import pytest

from feedkeeper.errors import InvariantViolation
from feedkeeper.groups.models import SourceGroup, check_invariants, locate_source
from feedkeeper.groups.transitions import (
    AddSourceToGroup,
    CreateGroup,
    DeleteGroup,
    RemoveSourceFromGroup,
    ReorderGroups,
    SourceAdded,
    SourceDeleted,
    ToggleExpansion,
    Transition,
    UpdateGroup,
    reduce,
    replay,
)


def _single(*sids: int) -> tuple[SourceGroup, ...]:
    return tuple(SourceGroup.single(sid) for sid in sids)


class TestSourceGroupModel:
    def test_single_and_named_constructors(self) -> None:
        single = SourceGroup.single(4)
        named = SourceGroup.named("Tech", [1, 2])

        assert single.sids == (4,) and not single.is_multiple and single.name is None
        assert named.sids == (1, 2) and named.is_multiple and named.name == "Tech"
        assert named.expanded is True

    def test_dict_payload_uses_persisted_keys(self) -> None:
        group = SourceGroup.named("News", [3, 1])
        payload = group.to_dict()

        assert payload == {"sids": [3, 1], "name": "News", "isMultiple": True, "expanded": True}
        assert SourceGroup.from_dict(payload) == group

    def test_groups_are_immutable(self) -> None:
        group = SourceGroup.single(1)
        with pytest.raises(AttributeError):
            group.sids = (2,)  # type: ignore[misc]

    def test_check_invariants_flags_bad_single_group(self) -> None:
        with pytest.raises(InvariantViolation, match="holds 2 sources"):
            check_invariants((SourceGroup(sids=(1, 2)),))

    def test_check_invariants_flags_duplicates(self) -> None:
        with pytest.raises(InvariantViolation, match=r"\[1\]"):
            check_invariants((SourceGroup.single(1), SourceGroup.named("A", [1])))

    def test_check_invariants_flags_blank_group_name(self) -> None:
        with pytest.raises(InvariantViolation, match="blank name"):
            check_invariants((SourceGroup(sids=(1,), name=" ", is_multiple=True),))

    def test_check_invariants_against_source_table(self) -> None:
        groups = (SourceGroup.single(1), SourceGroup.named("A", [2]))
        check_invariants(groups, [1, 2])

        with pytest.raises(InvariantViolation, match="missing"):
            check_invariants(groups, [1, 2, 3])
        with pytest.raises(InvariantViolation, match="unknown"):
            check_invariants(groups, [1])

    def test_locate_source(self) -> None:
        groups = (SourceGroup.single(1), SourceGroup.named("A", [5, 6]))
        assert locate_source(groups, 6) == 1
        assert locate_source(groups, 9) is None


class TestSourceLifecycle:
    def test_source_added_appends_one_source_group(self) -> None:
        groups = reduce(_single(1), SourceAdded(2))
        assert groups == _single(1, 2)

    def test_source_added_rejects_grouped_sid(self) -> None:
        with pytest.raises(InvariantViolation):
            reduce(_single(1), SourceAdded(1))

    def test_source_deleted_drops_one_source_group(self) -> None:
        assert reduce(_single(1, 2, 3), SourceDeleted(2)) == _single(1, 3)

    def test_source_deleted_leaves_other_members(self) -> None:
        groups = (SourceGroup.named("A", [1, 2]),)
        assert reduce(groups, SourceDeleted(1)) == (SourceGroup.named("A", [2]),)

    def test_source_deleted_drops_emptied_multi_group(self) -> None:
        groups = (SourceGroup.named("A", [1]), SourceGroup.single(2))
        assert reduce(groups, SourceDeleted(1)) == (SourceGroup.single(2),)

    def test_source_deleted_requires_grouped_sid(self) -> None:
        with pytest.raises(InvariantViolation):
            reduce(_single(1), SourceDeleted(7))


class TestGroupMembership:
    def test_create_group_appends_empty_multi_group(self) -> None:
        groups = reduce(_single(1), CreateGroup("Tech"))
        assert groups[-1] == SourceGroup.named("Tech")
        assert len(groups) == 2

    def test_create_group_trims_name(self) -> None:
        groups = reduce((), CreateGroup("  Tech\t"))
        assert groups == (SourceGroup.named("Tech"),)

    @pytest.mark.parametrize("name", ["", "   ", None])
    def test_create_group_requires_name(self, name) -> None:
        with pytest.raises(InvariantViolation, match="non-blank name"):
            reduce(_single(1), CreateGroup(name))

    def test_add_source_drops_redundant_one_source_group(self) -> None:
        groups = (SourceGroup.named("Tech"),) + _single(1, 2)
        result = reduce(groups, AddSourceToGroup(0, 2))

        assert result == (SourceGroup.named("Tech", [2]), SourceGroup.single(1))

    def test_add_ungrouped_source(self) -> None:
        groups = (SourceGroup.named("Tech", [1]),)
        result = reduce(groups, AddSourceToGroup(0, 9))
        assert result == (SourceGroup.named("Tech", [1, 9]),)

    def test_add_source_already_in_multi_group_is_rejected(self) -> None:
        groups = (SourceGroup.named("A", [1]), SourceGroup.named("B"))
        with pytest.raises(InvariantViolation, match="already belongs"):
            reduce(groups, AddSourceToGroup(1, 1))

    def test_add_source_to_one_source_group_is_rejected(self) -> None:
        with pytest.raises(InvariantViolation, match="one-source"):
            reduce(_single(1, 2), AddSourceToGroup(0, 2))

    def test_add_source_index_out_of_range(self) -> None:
        with pytest.raises(InvariantViolation, match="out of range"):
            reduce(_single(1), AddSourceToGroup(3, 1))

    def test_remove_respawns_after_original_position(self) -> None:
        groups = (
            SourceGroup.single(1),
            SourceGroup.named("Tech", [2, 3, 4]),
            SourceGroup.single(5),
        )
        result = reduce(groups, RemoveSourceFromGroup(1, (4, 2)))

        assert result == (
            SourceGroup.single(1),
            SourceGroup.named("Tech", [3]),
            SourceGroup.single(4),
            SourceGroup.single(2),
            SourceGroup.single(5),
        )
        check_invariants(result)

    def test_remove_requires_members(self) -> None:
        groups = (SourceGroup.named("Tech", [2, 3]),)
        with pytest.raises(InvariantViolation, match="not members"):
            reduce(groups, RemoveSourceFromGroup(0, (9,)))
        with pytest.raises(InvariantViolation, match="duplicate"):
            reduce(groups, RemoveSourceFromGroup(0, (2, 2)))

    def test_update_group_renames(self) -> None:
        groups = (SourceGroup.named("Tech", [1, 2]),)
        renamed = SourceGroup.named("Science", [2, 1])
        assert reduce(groups, UpdateGroup(0, renamed)) == (renamed,)

    def test_update_group_trims_name(self) -> None:
        groups = (SourceGroup.named("Tech", [1]),)
        result = reduce(groups, UpdateGroup(0, SourceGroup.named(" Science ", [1])))
        assert result == (SourceGroup.named("Science", [1]),)

    @pytest.mark.parametrize("name", ["", "  ", None])
    def test_update_group_rejects_blank_name(self, name) -> None:
        groups = (SourceGroup.named("Tech", [1]),)
        with pytest.raises(InvariantViolation, match="non-blank name"):
            reduce(groups, UpdateGroup(0, SourceGroup(sids=(1,), name=name, is_multiple=True)))

    def test_update_group_cannot_change_members(self) -> None:
        groups = (SourceGroup.named("Tech", [1, 2]),)
        with pytest.raises(InvariantViolation, match="changes its members"):
            reduce(groups, UpdateGroup(0, SourceGroup.named("Tech", [1])))

    def test_update_group_cannot_produce_invalid_single(self) -> None:
        groups = (SourceGroup.named("Tech", [1, 2]),)
        with pytest.raises(InvariantViolation, match="invalid one-source"):
            reduce(groups, UpdateGroup(0, SourceGroup(sids=(1, 2))))


class TestCollectionOperations:
    def test_reorder_replaces_collection(self) -> None:
        groups = (SourceGroup.named("A", [1]), SourceGroup.single(2), SourceGroup.named("B"))
        permuted = (groups[2], groups[0], groups[1])
        assert reduce(groups, ReorderGroups(permuted)) == permuted

    def test_reorder_requires_permutation(self) -> None:
        groups = _single(1, 2)
        with pytest.raises(InvariantViolation, match="permutation"):
            reduce(groups, ReorderGroups(_single(1)))
        with pytest.raises(InvariantViolation, match="permutation"):
            reduce(groups, ReorderGroups(_single(1, 3)))

    def test_delete_group_rematerializes_in_place(self) -> None:
        groups = (
            SourceGroup.single(1),
            SourceGroup.named("Trio", [3, 7, 9]),
            SourceGroup.single(2),
        )
        result = reduce(groups, DeleteGroup(1))

        assert result == _single(1, 3, 7, 9, 2)
        check_invariants(result, [1, 2, 3, 7, 9])

    def test_delete_empty_group(self) -> None:
        groups = (SourceGroup.named("Empty"), SourceGroup.single(1))
        assert reduce(groups, DeleteGroup(0)) == _single(1)

    def test_toggle_expansion_only_flips_flag(self) -> None:
        groups = (SourceGroup.named("A", [1]), SourceGroup.single(2))
        result = reduce(groups, ToggleExpansion(0))

        assert result[0].expanded is False
        assert result[0].sids == (1,)
        assert result[1] is groups[1]
        assert reduce(result, ToggleExpansion(0)) == groups

    def test_unknown_transition_is_rejected(self) -> None:
        with pytest.raises(InvariantViolation, match="unknown transition"):
            reduce((), Transition())


class TestSnapshots:
    def test_previous_collection_is_unchanged(self) -> None:
        before = (SourceGroup.named("Trio", [3, 7, 9]), SourceGroup.single(1))
        copy = tuple(before)

        after = reduce(before, DeleteGroup(0))
        reduce(after, ToggleExpansion(0))

        assert before == copy
        assert after is not before

    def test_replay_is_deterministic(self) -> None:
        transitions = [
            SourceAdded(0),
            SourceAdded(1),
            SourceAdded(2),
            CreateGroup("Tech"),
            AddSourceToGroup(3, 1),
            AddSourceToGroup(2, 2),
            ToggleExpansion(1),
            RemoveSourceFromGroup(1, (1,)),
            SourceDeleted(0),
        ]

        first = replay((), transitions)
        second = replay((), transitions)

        assert first == second
        assert first == (
            SourceGroup(sids=(2,), name="Tech", is_multiple=True, expanded=False),
            SourceGroup.single(1),
        )
        check_invariants(first, [1, 2])
