"""Pure status aggregation for containers.

Nothing here reads or writes records. Given the statuses of a
container's direct children (and its descendant units for the numbers),
the same inputs always produce the same status and rollup, so callers may
recompute as often as they like.
"""

from typing import Iterable, Sequence, Set, Union

from .core import ContainerStatus, RollupMetrics, UnitStatus, WorkUnit

ChildStatus = Union[UnitStatus, ContainerStatus]

# Child outcomes that fail the parent. Partial success of any component
# fails the aggregate.
_FAILING = {UnitStatus.FAILED, UnitStatus.PARTIAL_SUCCESS, ContainerStatus.FAILED}


def all_terminal(child_statuses: Iterable[ChildStatus]) -> bool:
    """True when there is at least one child and none is still open."""
    statuses = list(child_statuses)
    return bool(statuses) and all(s.is_terminal for s in statuses)


def derive_container_status(
    child_statuses: Sequence[ChildStatus],
    current: ContainerStatus = ContainerStatus.PENDING,
    blocked: bool = False,
) -> ContainerStatus:
    """Compute a container's status from its direct children.

    Transitions:
        no children          -> PENDING if still pending, else IN_PROGRESS
        some child open      -> IN_PROGRESS (BLOCKED when ``blocked``)
        all children terminal:
            any FAILED / PARTIAL_SUCCESS -> FAILED
            otherwise                    -> COMPLETED

    BLOCKED is an overlay on the non-terminal states only; a container whose
    children have all finished is terminal regardless of open issues.

    Args:
        child_statuses: Statuses of direct children (units or containers)
        current: The container's stored status
        blocked: Whether an unresolved human-review issue exists below it
    """
    statuses = list(child_statuses)

    if all_terminal(statuses):
        if any(s in _FAILING for s in statuses):
            return ContainerStatus.FAILED
        return ContainerStatus.COMPLETED

    if blocked:
        return ContainerStatus.BLOCKED

    if not statuses and current == ContainerStatus.PENDING:
        return ContainerStatus.PENDING

    return ContainerStatus.IN_PROGRESS


def compute_rollup(units: Iterable[WorkUnit]) -> RollupMetrics:
    """Recompute totals from scratch over a set of descendant units.

    Never accumulated incrementally, so a retried completion cannot be
    counted twice. Missing durations and token counts count as zero and
    changed files are counted once across all units.
    """
    metrics = RollupMetrics()
    files: Set[str] = set()
    seen: Set[str] = set()

    for unit in units:
        if unit.id in seen:
            continue
        seen.add(unit.id)

        metrics.total_units += 1
        if unit.status == UnitStatus.SUCCESS:
            metrics.success += 1
        elif unit.status == UnitStatus.PARTIAL_SUCCESS:
            metrics.partial += 1
        elif unit.status == UnitStatus.FAILED:
            metrics.failed += 1
        else:
            metrics.in_progress += 1

        metrics.total_duration_ms += unit.duration_ms or 0
        metrics.total_tokens += (unit.tokens_input or 0) + (unit.tokens_output or 0)
        if unit.changes is not None:
            files.update(unit.changes.all_paths)

    metrics.files_changed = len(files)
    return metrics
