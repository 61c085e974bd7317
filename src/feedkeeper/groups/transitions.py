"""Transition records accepted by the group store and the pure reducer.

Each transition is an immutable record. :func:`reduce` validates the
transition's preconditions against a collection and returns a brand new
collection; the input is never modified, so earlier snapshots stay valid.
Feeding the same records to :func:`replay` from the same starting snapshot
always yields the same collection.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, replace
from typing import Callable, Iterable, Sequence

from ..errors import InvariantViolation
from .models import GroupCollection, SourceGroup, locate_source

__all__ = [
    "Transition",
    "SourceAdded",
    "SourceDeleted",
    "CreateGroup",
    "AddSourceToGroup",
    "RemoveSourceFromGroup",
    "UpdateGroup",
    "ReorderGroups",
    "DeleteGroup",
    "ToggleExpansion",
    "reduce",
    "replay",
]


@dataclass(frozen=True, slots=True)
class Transition:
    """Base class for group transitions."""


@dataclass(frozen=True, slots=True)
class SourceAdded(Transition):
    """A source was created; it gets its own one-source group at the end."""

    sid: int


@dataclass(frozen=True, slots=True)
class SourceDeleted(Transition):
    """A source was deleted; its sid leaves the group that held it."""

    sid: int


@dataclass(frozen=True, slots=True)
class CreateGroup(Transition):
    """Append a new, empty, user-named group."""

    name: str


@dataclass(frozen=True, slots=True)
class AddSourceToGroup(Transition):
    group_index: int
    sid: int


@dataclass(frozen=True, slots=True)
class RemoveSourceFromGroup(Transition):
    group_index: int
    sids: tuple[int, ...]


@dataclass(frozen=True, slots=True)
class UpdateGroup(Transition):
    """Replace a group wholesale (rename, member reorder, ...)."""

    group_index: int
    group: SourceGroup


@dataclass(frozen=True, slots=True)
class ReorderGroups(Transition):
    groups: GroupCollection


@dataclass(frozen=True, slots=True)
class DeleteGroup(Transition):
    group_index: int


@dataclass(frozen=True, slots=True)
class ToggleExpansion(Transition):
    group_index: int


def reduce(groups: Sequence[SourceGroup], transition: Transition) -> GroupCollection:
    """Apply ``transition`` to ``groups`` and return the new collection.

    Raises:
        InvariantViolation: If the transition's preconditions are not met.
    """

    handler = _REDUCERS.get(type(transition))
    if handler is None:
        raise InvariantViolation(f"unknown transition {type(transition).__name__}")
    return handler(tuple(groups), transition)


def replay(initial: Sequence[SourceGroup], transitions: Iterable[Transition]) -> GroupCollection:
    """Fold ``transitions`` over ``initial`` in order."""

    groups: GroupCollection = tuple(initial)
    for transition in transitions:
        groups = reduce(groups, transition)
    return groups


def _require_index(groups: GroupCollection, index: int) -> SourceGroup:
    if not 0 <= index < len(groups):
        raise InvariantViolation(f"group index {index} out of range (0..{len(groups) - 1})")
    return groups[index]


def _require_multiple(groups: GroupCollection, index: int) -> SourceGroup:
    group = _require_index(groups, index)
    if not group.is_multiple:
        raise InvariantViolation(f"group at index {index} is a one-source group")
    return group


def _source_added(groups: GroupCollection, transition: SourceAdded) -> GroupCollection:
    if locate_source(groups, transition.sid) is not None:
        raise InvariantViolation(f"source {transition.sid} is already grouped")
    return groups + (SourceGroup.single(transition.sid),)


def _source_deleted(groups: GroupCollection, transition: SourceDeleted) -> GroupCollection:
    index = locate_source(groups, transition.sid)
    if index is None:
        raise InvariantViolation(f"source {transition.sid} is not grouped")
    group = groups[index]
    remaining = tuple(sid for sid in group.sids if sid != transition.sid)
    if not remaining:
        return groups[:index] + groups[index + 1:]
    return groups[:index] + (replace(group, sids=remaining),) + groups[index + 1:]


def _require_name(name: str | None) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise InvariantViolation("a named group needs a non-blank name")
    return cleaned


def _create_group(groups: GroupCollection, transition: CreateGroup) -> GroupCollection:
    return groups + (SourceGroup.named(_require_name(transition.name)),)


def _add_source_to_group(groups: GroupCollection, transition: AddSourceToGroup) -> GroupCollection:
    target = _require_multiple(groups, transition.group_index)
    previous = locate_source(groups, transition.sid)
    if previous is not None and groups[previous].is_multiple:
        raise InvariantViolation(
            f"source {transition.sid} already belongs to group {previous}"
        )
    updated = replace(target, sids=target.sids + (transition.sid,))
    result = []
    for index, group in enumerate(groups):
        if index == transition.group_index:
            result.append(updated)
        elif index != previous:
            result.append(group)
    return tuple(result)


def _remove_source_from_group(
    groups: GroupCollection, transition: RemoveSourceFromGroup
) -> GroupCollection:
    index = transition.group_index
    target = _require_multiple(groups, index)
    removed = transition.sids
    if len(set(removed)) != len(removed):
        raise InvariantViolation(f"duplicate sources in removal {list(removed)}")
    strangers = [sid for sid in removed if sid not in target.sids]
    if strangers:
        raise InvariantViolation(f"sources {strangers} are not members of group {index}")
    kept = replace(target, sids=tuple(sid for sid in target.sids if sid not in removed))
    respawned = tuple(SourceGroup.single(sid) for sid in removed)
    return groups[:index] + (kept,) + respawned + groups[index + 1:]


def _update_group(groups: GroupCollection, transition: UpdateGroup) -> GroupCollection:
    index = transition.group_index
    current = _require_index(groups, index)
    group = transition.group
    if Counter(group.sids) != Counter(current.sids):
        raise InvariantViolation(f"update of group {index} changes its members")
    if not group.is_multiple and len(group.sids) != 1:
        raise InvariantViolation(f"update of group {index} yields an invalid one-source group")
    if group.is_multiple:
        group = replace(group, name=_require_name(group.name))
    return groups[:index] + (group,) + groups[index + 1:]


def _reorder_groups(groups: GroupCollection, transition: ReorderGroups) -> GroupCollection:
    reordered = tuple(transition.groups)
    if Counter(reordered) != Counter(groups):
        raise InvariantViolation("reorder is not a permutation of the current groups")
    return reordered


def _delete_group(groups: GroupCollection, transition: DeleteGroup) -> GroupCollection:
    index = transition.group_index
    target = _require_index(groups, index)
    respawned = tuple(SourceGroup.single(sid) for sid in target.sids)
    return groups[:index] + respawned + groups[index + 1:]


def _toggle_expansion(groups: GroupCollection, transition: ToggleExpansion) -> GroupCollection:
    index = transition.group_index
    target = _require_index(groups, index)
    return groups[:index] + (replace(target, expanded=not target.expanded),) + groups[index + 1:]


_REDUCERS: dict[type, Callable[[GroupCollection, Transition], GroupCollection]] = {
    SourceAdded: _source_added,
    SourceDeleted: _source_deleted,
    CreateGroup: _create_group,
    AddSourceToGroup: _add_source_to_group,
    RemoveSourceFromGroup: _remove_source_from_group,
    UpdateGroup: _update_group,
    ReorderGroups: _reorder_groups,
    DeleteGroup: _delete_group,
    ToggleExpansion: _toggle_expansion,
}
