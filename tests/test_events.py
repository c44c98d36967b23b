"""Tests for event sinks and publishing."""

import logging
from unittest.mock import MagicMock

from mission_tracker.core import ChangeSet, DiffAvailability, ScopeVerdict, UnitStatus
from mission_tracker.events import (
    CollectingSink,
    LoggingSink,
    UnitCompletedEvent,
    UnitStartedEvent,
    publish,
)


def test_unit_completed_event_summarizes_changes():
    changes = ChangeSet(
        added=["a.ts"], modified=["b.ts", "c.ts"],
        availability=DiffAvailability.PARTIAL, notes=["staged diff unavailable"],
    )
    verdict = ScopeVerdict(scope_match=False, unexpected_files=["a.ts"], warnings=["w"])

    event = UnitCompletedEvent.build("u1", "wf", UnitStatus.SUCCESS, changes, verdict)

    assert (event.added, event.modified, event.deleted) == (1, 2, 0)
    assert event.availability == DiffAvailability.PARTIAL
    assert event.scope_match is False
    assert event.unexpected_files == ["a.ts"]


def test_collecting_sink_filters_by_type():
    sink = CollectingSink()
    started = UnitStartedEvent(unit_id="u1", container_id="wf", snapshot_id="abc")
    sink.emit(started)

    assert sink.events == [started]
    assert sink.of_type(UnitStartedEvent) == [started]
    assert sink.of_type(UnitCompletedEvent) == []


def test_logging_sink(caplog):
    with caplog.at_level(logging.INFO, logger="mission_tracker.events"):
        LoggingSink().emit(UnitStartedEvent(unit_id="u1", container_id="wf", snapshot_id="abc"))
    assert "unit_started" in caplog.text


def test_publish_swallows_sink_failure(caplog):
    sink = MagicMock()
    sink.emit.side_effect = ConnectionError("observer gone")

    with caplog.at_level(logging.WARNING, logger="mission_tracker.events"):
        publish(sink, UnitStartedEvent(unit_id="u1", container_id="wf", snapshot_id="abc"))

    assert "observer gone" in caplog.text


def test_publish_without_sink():
    publish(None, UnitStartedEvent(unit_id="u1", container_id="wf", snapshot_id="abc"))
