"""Tests for :class:`feedkeeper.opml.exporter.ExportOrchestrator`."""

from __future__ import annotations

from feedkeeper.events import EventBus
from feedkeeper.groups.models import SourceGroup
from feedkeeper.groups.store import GroupStore
from feedkeeper.opml.codec import decode
from feedkeeper.opml.exporter import ExportOrchestrator
from feedkeeper.sources.models import SourceTable

from helpers import source


def _exporter(bus: EventBus, store: GroupStore, table: SourceTable) -> ExportOrchestrator:
    return ExportOrchestrator(lambda: store.groups, lambda: table, bus, title="Test Export")


class TestExportOrchestrator:
    def test_export_writes_current_snapshot(self, bus: EventBus, tmp_path) -> None:
        table = SourceTable.from_sources([source(0), source(1)])
        store = GroupStore(None, bus, initial=[SourceGroup.single(0), SourceGroup.single(1)])
        exporter = _exporter(bus, store, table)
        store.reorder_groups([SourceGroup.single(1), SourceGroup.single(0)])

        target = exporter.export_file(tmp_path / "out" / "feeds.opml")

        assert target == tmp_path / "out" / "feeds.opml"
        text = target.read_text(encoding="utf-8")
        assert "<title>Test Export</title>" in text
        assert [d.url for d in decode(text).descriptors] == [source(1).url, source(0).url]

    def test_write_failure_is_reported_not_raised(self, bus: EventBus, notices, tmp_path) -> None:
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("file", encoding="utf-8")
        store = GroupStore(None, bus, initial=[SourceGroup.single(0)])
        before = store.groups
        exporter = _exporter(bus, store, SourceTable.from_sources([source(0)]))

        result = exporter.export_file(blocker / "feeds.opml")

        assert result is None
        assert store.groups is before
        assert [notice.title for notice in notices] == ["Could not write the export file"]

    def test_render_is_pure(self, bus: EventBus) -> None:
        store = GroupStore(None, bus, initial=[SourceGroup.named("Tech", [0])])
        exporter = _exporter(bus, store, SourceTable.from_sources([source(0)]))

        assert exporter.render() == exporter.render()
        assert store.history == ()
