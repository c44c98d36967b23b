"""Outbound events for live-update observers.

The tracker publishes after the state it describes has been written, so an
observer that refetches on an event always sees at least that state.
Delivery is best-effort; see ``publish``.
"""

import logging
import threading
from datetime import datetime
from typing import List, Optional, Protocol, Union

from pydantic import BaseModel, Field

from .core import (
    ChangeSet,
    ContainerStatus,
    DiffAvailability,
    RollupMetrics,
    ScopeVerdict,
    UnitStatus,
    utcnow,
)

logger = logging.getLogger(__name__)


class UnitStartedEvent(BaseModel):
    event: str = "unit_started"
    unit_id: str
    container_id: str
    snapshot_id: str
    at: datetime = Field(default_factory=utcnow)


class UnitCompletedEvent(BaseModel):
    """Completion of one unit with a summary of what changed."""

    event: str = "unit_completed"
    unit_id: str
    container_id: str
    status: UnitStatus
    added: int = 0
    modified: int = 0
    deleted: int = 0
    availability: DiffAvailability = DiffAvailability.COMPLETE
    scope_match: bool = True
    unexpected_files: List[str] = Field(default_factory=list)
    at: datetime = Field(default_factory=utcnow)

    @classmethod
    def build(cls, unit_id: str, container_id: str, status: UnitStatus,
              changes: ChangeSet, verdict: ScopeVerdict) -> "UnitCompletedEvent":
        return cls(
            unit_id=unit_id,
            container_id=container_id,
            status=status,
            added=len(changes.added),
            modified=len(changes.modified),
            deleted=len(changes.deleted),
            availability=changes.availability,
            scope_match=verdict.scope_match,
            unexpected_files=list(verdict.unexpected_files),
        )


class DecisionLoggedEvent(BaseModel):
    event: str = "decision_logged"
    decision_id: str
    unit_id: str
    container_id: str
    question: str
    chosen: str
    at: datetime = Field(default_factory=utcnow)


class ContainerUpdatedEvent(BaseModel):
    event: str = "container_updated"
    container_id: str
    previous_status: ContainerStatus
    status: ContainerStatus
    rollup: RollupMetrics
    at: datetime = Field(default_factory=utcnow)


TrackerEvent = Union[
    UnitStartedEvent, UnitCompletedEvent, DecisionLoggedEvent, ContainerUpdatedEvent,
]


class EventSink(Protocol):
    """Anything that accepts tracker events."""

    def emit(self, event: TrackerEvent) -> None:
        ...


class LoggingSink:
    """Writes events to the log. Used when no other sink is configured."""

    def __init__(self, level: int = logging.INFO):
        self.level = level

    def emit(self, event: TrackerEvent) -> None:
        logger.log(self.level, "event %s", event.model_dump_json())


class CollectingSink:
    """Keeps events in memory, in emission order."""

    def __init__(self):
        self.events: List[TrackerEvent] = []
        self._lock = threading.Lock()

    def emit(self, event: TrackerEvent) -> None:
        with self._lock:
            self.events.append(event)

    def of_type(self, event_type: type) -> List[TrackerEvent]:
        with self._lock:
            return [e for e in self.events if isinstance(e, event_type)]


def publish(sink: Optional[EventSink], event: TrackerEvent) -> None:
    """Emit an event, logging instead of raising if the sink fails.

    The underlying record is already written when this runs; a broken
    observer must not undo or fail a completion.
    """
    if sink is None:
        return
    try:
        sink.emit(event)
    except Exception as e:
        logger.warning("Failed to emit %s event: %s", event.event, e)
