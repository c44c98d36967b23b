"""Store-backed container status recomputation and upward propagation."""

import logging
import threading
from datetime import datetime
from typing import Callable, Dict, List, Optional, Set, Tuple

from pydantic import ValidationError as PydanticValidationError

from .aggregation import compute_rollup, derive_container_status
from .core import Container, ContainerStatus, Issue, RollupMetrics, WorkUnit, utcnow
from .errors import AggregationInconsistency, NotFoundError
from .events import ContainerUpdatedEvent, EventSink, publish
from .store import Record, RecordStore

logger = logging.getLogger(__name__)


class ContainerStatusComputer:
    """Re-derives container status from whatever the store holds right now.

    Children are discovered by querying the store rather than from a list
    kept on the container, so two units completing at once never lose each
    other. Each recomputation reads all children fresh. Within one process
    recomputations of a container are serialized; across processes the
    last writer wins, and a later recompute always converges.
    """

    def __init__(
        self,
        store: RecordStore,
        sink: Optional[EventSink] = None,
        now: Callable[[], datetime] = utcnow,
    ):
        """Initialize computer.

        Args:
            store: Record store holding units, containers and issues
            sink: Receives ContainerUpdatedEvent when a status changes
            now: Clock for started/completed timestamps
        """
        self.store = store
        self.sink = sink
        self.now = now
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def load_container(self, container_id: str) -> Container:
        """Load and validate a container record.

        Raises:
            NotFoundError: If no record exists with this id
            AggregationInconsistency: If the record exists but is not a valid container
        """
        record = self.store.get(container_id)
        if record is None or record.get("record_type") != "container":
            raise NotFoundError("Container", container_id)
        try:
            return Container.model_validate(record)
        except PydanticValidationError as e:
            raise AggregationInconsistency(container_id, container_id, f"invalid record: {e}") from e

    def load_children(self, container_id: str) -> Tuple[List[WorkUnit], List[Container]]:
        """Load direct child units and child containers.

        Raises:
            AggregationInconsistency: If any child record fails validation
        """
        units = [
            self._validate(container_id, WorkUnit, r)
            for r in self.store.list({"record_type": "unit", "container_id": container_id})
        ]
        containers = [
            self._validate(container_id, Container, r)
            for r in self.store.list({"record_type": "container", "parent_id": container_id})
        ]
        return units, containers

    def descendants(self, container_id: str) -> Tuple[List[WorkUnit], Set[str]]:
        """All units below a container and the ids of every container in its subtree."""
        units: Dict[str, WorkUnit] = {}
        container_ids: Set[str] = set()
        pending = [container_id]

        while pending:
            current = pending.pop()
            if current in container_ids:
                continue
            container_ids.add(current)
            child_units, child_containers = self.load_children(current)
            for unit in child_units:
                units[unit.id] = unit
            pending.extend(c.id for c in child_containers)

        return list(units.values()), container_ids

    def has_open_blockers(self, container_ids: Set[str]) -> bool:
        """Whether any unresolved human-review issue is filed under these containers."""
        for record in self.store.list(
            {"record_type": "issue", "resolved": False, "requires_human_review": True}
        ):
            issue = Issue.model_validate(record)
            if issue.container_id in container_ids:
                return True
        return False

    def recompute(self, container_id: str) -> Tuple[ContainerStatus, RollupMetrics]:
        """Recompute one container's status and rollup and write them back.

        Idempotent: recomputing with unchanged children writes the same
        values again.
        """
        _, status, rollup = self._recompute(container_id)
        return status, rollup

    def propagate(self, container_id: str) -> Tuple[ContainerStatus, RollupMetrics]:
        """Recompute a container and then each ancestor up to the root.

        Returns:
            Status and rollup of ``container_id`` itself
        """
        container, status, rollup = self._recompute(container_id)
        seen = {container.id}
        parent_id = container.parent_id

        while parent_id and parent_id not in seen:
            seen.add(parent_id)
            parent, _, _ = self._recompute(parent_id)
            parent_id = parent.parent_id

        return status, rollup

    def _container_lock(self, container_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(container_id, threading.Lock())

    def _recompute(self, container_id: str) -> Tuple[Container, ContainerStatus, RollupMetrics]:
        # Recomputations of one container within this process run one at a
        # time, so the last write always reflects every child written before it.
        with self._container_lock(container_id):
            return self._recompute_locked(container_id)

    def _recompute_locked(self, container_id: str) -> Tuple[Container, ContainerStatus, RollupMetrics]:
        container = self.load_container(container_id)
        units, child_containers = self.load_children(container_id)
        all_units, subtree = self.descendants(container_id)

        blocked = self.has_open_blockers(subtree)
        child_statuses = [u.status for u in units] + [c.status for c in child_containers]
        status = derive_container_status(child_statuses, container.status, blocked)
        rollup = compute_rollup(all_units)

        fields = {
            "status": status.value,
            "blocked": blocked,
            "rollup": rollup.model_dump(mode="json"),
        }
        now = self.now()
        if status != ContainerStatus.PENDING and container.started_at is None:
            fields["started_at"] = now.isoformat()
        if status.is_terminal:
            if container.completed_at is None:
                fields["completed_at"] = now.isoformat()
        elif container.completed_at is not None:
            fields["completed_at"] = None

        self.store.update(container_id, fields)

        if status != container.status:
            logger.info(
                "Container %s: %s -> %s", container_id, container.status.value, status.value
            )
            publish(self.sink, ContainerUpdatedEvent(
                container_id=container_id,
                previous_status=container.status,
                status=status,
                rollup=rollup,
            ))
        else:
            logger.debug("Container %s unchanged at %s", container_id, status.value)

        return container, status, rollup

    @staticmethod
    def _validate(container_id: str, model, record: Record):
        try:
            return model.model_validate(record)
        except PydanticValidationError as e:
            raise AggregationInconsistency(
                container_id, str(record.get("id", "<unknown>")), f"invalid record: {e}"
            ) from e
