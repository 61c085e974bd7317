"""Group domain: immutable group collections, transitions and the store.

Modules:
    - models: SourceGroup and the structural invariant checks
    - transitions: transition records and the pure reducer
    - store: GroupStore, the single owner of the canonical collection
"""

from __future__ import annotations

from .models import GroupCollection, SourceGroup, check_invariants, locate_source
from .store import GroupGateway, GroupStore, TransitionRecord
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
    replay,
)

__all__: list[str] = [
    "GroupCollection",
    "SourceGroup",
    "check_invariants",
    "locate_source",
    "GroupGateway",
    "GroupStore",
    "TransitionRecord",
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
