"""Group store domain manager.

The store owns the canonical group collection. Transitions are applied
synchronously through :func:`~feedkeeper.groups.transitions.reduce`, so no
reader can observe a half-applied transition. After each accepted
transition the new snapshot is handed to the persistence gateway without
waiting for the write to finish.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, replace
from typing import Any, Iterable, Protocol, Sequence

from ..errors import InvariantViolation
from ..events import EventBus, GroupsChanged, NoticePosted, PersistenceFailed
from .models import GroupCollection, SourceGroup, check_invariants, locate_source
from .transitions import (
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
)

LOGGER = logging.getLogger(__name__)


class GroupGateway(Protocol):
    """Durable storage for the group collection.

    ``save`` may be a plain function or a coroutine function.
    """

    def load(self) -> GroupCollection:
        ...

    def save(self, groups: GroupCollection) -> Any:
        ...


@dataclass(frozen=True, slots=True)
class TransitionRecord:
    """One entry of the store's transition log."""

    seq: int
    transition: Transition


class GroupStore:
    """Domain manager for the group collection.

    Events Emitted:
        - GroupsChanged: after every accepted transition
        - PersistenceFailed / NoticePosted: when a save did not succeed
    """

    def __init__(
        self,
        gateway: GroupGateway | None,
        event_bus: EventBus,
        *,
        initial: Sequence[SourceGroup] | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            gateway: Persistence gateway consulted after every transition.
                ``None`` keeps the collection in memory only.
            event_bus: Bus used to publish change and failure events.
            initial: Starting collection. When omitted the gateway is asked
                to ``load()`` one; without a gateway the store starts empty.
        """
        self._gateway = gateway
        self._bus = event_bus
        if initial is None and gateway is not None:
            initial = gateway.load()
        self._groups: GroupCollection = tuple(initial or ())
        check_invariants(self._groups)
        self._initial = self._groups
        self._history: list[TransitionRecord] = []
        self._pending_saves: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Snapshot access
    # ------------------------------------------------------------------

    @property
    def groups(self) -> GroupCollection:
        """Return the current collection; callers may keep it indefinitely."""
        return self._groups

    @property
    def initial(self) -> GroupCollection:
        """Return the collection the store started from."""
        return self._initial

    @property
    def history(self) -> tuple[TransitionRecord, ...]:
        """Return the ordered log of accepted transitions."""
        return tuple(self._history)

    def __len__(self) -> int:
        return len(self._groups)

    def locate(self, sid: int) -> int | None:
        """Return the index of the group holding ``sid``, if any."""
        return locate_source(self._groups, sid)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def dispatch(self, transition: Transition) -> GroupCollection:
        """Apply ``transition`` and return the new collection.

        Raises:
            InvariantViolation: If the transition's preconditions are unmet.
                The current collection is left untouched in that case.
        """
        groups = reduce(self._groups, transition)
        self._groups = groups
        record = TransitionRecord(seq=len(self._history), transition=transition)
        self._history.append(record)
        LOGGER.debug(
            "GroupStore.dispatch: seq=%d, transition=%s, groups=%d",
            record.seq,
            transition,
            len(groups),
        )
        self._bus.publish(GroupsChanged(seq=record.seq, transition=transition, groups=groups))
        self._schedule_save(groups)
        return groups

    def source_added(self, sid: int) -> GroupCollection:
        return self.dispatch(SourceAdded(sid))

    def source_deleted(self, sid: int) -> GroupCollection:
        return self.dispatch(SourceDeleted(sid))

    def create_group(self, name: str) -> int:
        """Append an empty named group and return its index."""
        groups = self.dispatch(CreateGroup(name))
        return len(groups) - 1

    def add_source_to_group(self, group_index: int, sid: int) -> GroupCollection:
        return self.dispatch(AddSourceToGroup(group_index, sid))

    def remove_sources_from_group(self, group_index: int, sids: Iterable[int]) -> GroupCollection:
        return self.dispatch(RemoveSourceFromGroup(group_index, tuple(sids)))

    def update_group(self, group_index: int, group: SourceGroup) -> GroupCollection:
        return self.dispatch(UpdateGroup(group_index, group))

    def rename_group(self, group_index: int, name: str) -> GroupCollection:
        if not 0 <= group_index < len(self._groups):
            raise InvariantViolation(f"group index {group_index} out of range")
        current = self._groups[group_index]
        if not current.is_multiple:
            raise InvariantViolation(f"group at index {group_index} is a one-source group")
        return self.dispatch(UpdateGroup(group_index, replace(current, name=name)))

    def reorder_groups(self, groups: Sequence[SourceGroup]) -> GroupCollection:
        return self.dispatch(ReorderGroups(tuple(groups)))

    def delete_group(self, group_index: int) -> GroupCollection:
        return self.dispatch(DeleteGroup(group_index))

    def toggle_expansion(self, group_index: int) -> GroupCollection:
        return self.dispatch(ToggleExpansion(group_index))

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def flush(self) -> None:
        """Wait until every scheduled save has finished."""
        while self._pending_saves:
            await asyncio.gather(*tuple(self._pending_saves), return_exceptions=True)

    def _schedule_save(self, groups: GroupCollection) -> None:
        if self._gateway is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is None:
            try:
                result = self._gateway.save(groups)
            except Exception as exc:
                self._report_save_failure(exc)
                return
            if inspect.isawaitable(result):
                asyncio.run(self._await_save(result))
            return

        task = loop.create_task(self._save(groups))
        self._pending_saves.add(task)
        task.add_done_callback(self._pending_saves.discard)

    async def _save(self, groups: GroupCollection) -> None:
        try:
            result = self._gateway.save(groups)  # type: ignore[union-attr]
        except Exception as exc:
            self._report_save_failure(exc)
            return
        if inspect.isawaitable(result):
            await self._await_save(result)

    async def _await_save(self, pending: Any) -> None:
        try:
            await pending
        except Exception as exc:
            self._report_save_failure(exc)

    def _report_save_failure(self, exc: Exception) -> None:
        LOGGER.warning("Saving groups failed; in-memory state kept: %s", exc)
        LOGGER.debug("Group save traceback", exc_info=exc)
        self._bus.publish(PersistenceFailed(target="groups", error=str(exc)))
        self._bus.publish(NoticePosted(title="Could not save groups", detail=str(exc)))


__all__ = ["GroupGateway", "GroupStore", "TransitionRecord"]
