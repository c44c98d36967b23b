"""Stable API for mission-tracker operations.

This module provides a minimal, stable API surface for external tools
(protocol layers, orchestrators) that want the change-tracking engine
without the record hierarchy: snapshot a tree when work starts, and later
get back what changed and whether it stayed in scope.

Keeping this API minimal allows callers to depend on mission-tracker
without coupling to the service layer's internals.
"""

from pathlib import Path
from typing import Optional, Sequence, Tuple, Union

from .core import ChangeSet, ContainerStatus, DiffAvailability, RollupMetrics, ScopeVerdict, SnapshotDescriptor
from .diffing import DiffEngine
from .errors import ProbeError
from .events import EventSink
from .scope import verify_scope
from .snapshot import SnapshotService
from .status_computer import ContainerStatusComputer
from .store import RecordStore


def start_unit(root_path: Union[str, Path], declared_areas: Sequence[str] = ()) -> SnapshotDescriptor:
    """Snapshot a tree at the start of a unit of work.

    Never fails because of the version-control tool: a tree that cannot
    be probed is fingerprinted instead.

    Args:
        root_path: Tree the unit will work in
        declared_areas: Accepted for symmetry with ``complete_unit``; scope
            is only checked at completion

    Returns:
        Descriptor to hand back to ``complete_unit``

    Example:
        >>> from mission_tracker.api import start_unit, complete_unit
        >>> descriptor = start_unit(".", ["auth"])
        >>> # ... work happens ...
        >>> changes, verdict = complete_unit(descriptor, ".", ["auth"])
        >>> verdict.scope_match
        True
    """
    return SnapshotService().create_snapshot(root_path)


def complete_unit(
    descriptor: SnapshotDescriptor,
    root_path: Union[str, Path],
    declared_areas: Sequence[str] = (),
) -> Tuple[ChangeSet, ScopeVerdict]:
    """Compute what changed since ``descriptor`` and verify it against scope.

    If the probe cannot run, the ChangeSet comes back empty and marked
    unavailable rather than raising.

    Returns:
        Tuple of (ChangeSet, ScopeVerdict)
    """
    try:
        changes = DiffEngine().compute_diff(descriptor, root_path)
    except ProbeError as e:
        changes = ChangeSet.empty(DiffAvailability.UNAVAILABLE, f"Diff unavailable: {e}")
    return changes, verify_scope(changes.all_paths, declared_areas)


def recompute_container_status(
    container_id: str,
    store: RecordStore,
    sink: Optional[EventSink] = None,
) -> Tuple[ContainerStatus, RollupMetrics]:
    """Re-derive a container's status from the store and propagate it upward.

    Raises:
        NotFoundError: If the container does not exist
        AggregationInconsistency: If a child record cannot be loaded
    """
    return ContainerStatusComputer(store, sink).propagate(container_id)
