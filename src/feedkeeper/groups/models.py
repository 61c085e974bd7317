"""Group data model and structural invariant checks."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence

from ..errors import InvariantViolation

__all__ = ["SourceGroup", "GroupCollection", "check_invariants", "locate_source"]


@dataclass(frozen=True, slots=True)
class SourceGroup:
    """An ordered bucket of source identities.

    A one-source group (``is_multiple=False``) holds exactly one sid and has
    no meaningful name. A multi group is user-named and may be empty.
    Instances are immutable; transitions build new ones with
    :func:`dataclasses.replace`.
    """

    sids: tuple[int, ...] = ()
    name: str | None = None
    is_multiple: bool = False
    expanded: bool = True

    @classmethod
    def single(cls, sid: int) -> SourceGroup:
        return cls(sids=(sid,))

    @classmethod
    def named(cls, name: str, sids: Iterable[int] = ()) -> SourceGroup:
        return cls(sids=tuple(sids), name=name, is_multiple=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sids": list(self.sids),
            "name": self.name,
            "isMultiple": self.is_multiple,
            "expanded": self.expanded,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> SourceGroup:
        return cls(
            sids=tuple(int(sid) for sid in payload.get("sids", ())),
            name=payload.get("name"),
            is_multiple=bool(payload.get("isMultiple", False)),
            expanded=bool(payload.get("expanded", True)),
        )


# Collections are plain tuples so every snapshot handed out stays valid.
GroupCollection = tuple[SourceGroup, ...]


def locate_source(groups: Sequence[SourceGroup], sid: int) -> int | None:
    """Return the index of the group holding ``sid``, or ``None``."""

    for index, group in enumerate(groups):
        if sid in group.sids:
            return index
    return None


def check_invariants(
    groups: Sequence[SourceGroup],
    sids: Iterable[int] | None = None,
) -> None:
    """Raise :class:`InvariantViolation` if ``groups`` is structurally invalid.

    Every one-source group must hold exactly one sid, every named group
    needs a non-blank name and no sid may appear twice. When ``sids`` (the
    identities of the source table) is given, each of them must be grouped
    and no group may reference an unknown sid.
    """

    for index, group in enumerate(groups):
        if not group.is_multiple and len(group.sids) != 1:
            raise InvariantViolation(
                f"one-source group at index {index} holds {len(group.sids)} sources"
            )
        if group.is_multiple and not (group.name or "").strip():
            raise InvariantViolation(f"named group at index {index} has a blank name")

    counts = Counter(sid for group in groups for sid in group.sids)
    duplicates = sorted(sid for sid, count in counts.items() if count > 1)
    if duplicates:
        raise InvariantViolation(f"sources grouped more than once: {duplicates}")

    if sids is None:
        return
    known = set(sids)
    missing = sorted(known - counts.keys())
    if missing:
        raise InvariantViolation(f"sources missing from every group: {missing}")
    unknown = sorted(counts.keys() - known)
    if unknown:
        raise InvariantViolation(f"groups reference unknown sources: {unknown}")
