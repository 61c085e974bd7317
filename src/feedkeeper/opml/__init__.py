"""OPML outline codec plus the import and export orchestrators."""

from __future__ import annotations

from .codec import DEFAULT_EXPORT_TITLE, DecodedOutline, OutlineDescriptor, decode, encode
from .exporter import ExportOrchestrator
from .importer import (
    BatchCoordinator,
    ImportFailure,
    ImportOrchestrator,
    ImportReport,
    Settlement,
    SourceCreator,
)

__all__: list[str] = [
    "DEFAULT_EXPORT_TITLE",
    "DecodedOutline",
    "OutlineDescriptor",
    "decode",
    "encode",
    "ExportOrchestrator",
    "BatchCoordinator",
    "ImportFailure",
    "ImportOrchestrator",
    "ImportReport",
    "Settlement",
    "SourceCreator",
]
