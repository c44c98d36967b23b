"""Diff computation - union of committed and working-tree changes.

Committed-only diffing misses uncommitted work and working-tree-only
diffing misses work committed during the unit, so both are computed and
merged. The working tree reflects the more current truth and overrides
the committed status of any path they share.
"""

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from .constants import MISSION_TRACKER_DIR
from .core import ChangeSet, DiffAvailability, SnapshotDescriptor, SnapshotKind
from .errors import InvalidRevision, ProbeCommandFailed, ProbeTimeout, ProbeUnavailable
from .vcs import ChangeStatus, GitProbe, StatusEntry, VersionedTreeProbe

logger = logging.getLogger(__name__)


def merge_entries(*diffs: Iterable[StatusEntry]) -> Dict[str, ChangeStatus]:
    """Fold status entries into path -> last-seen status.

    Later diffs override earlier ones for the same path. A rename counts
    as its old path deleted and its new path added, each overridable on
    its own.
    """
    status_by_path: Dict[str, ChangeStatus] = {}
    for entries in diffs:
        for entry in entries:
            if entry.status == ChangeStatus.RENAMED:
                status_by_path[entry.path] = ChangeStatus.DELETED
                if entry.new_path:
                    status_by_path[entry.new_path] = ChangeStatus.ADDED
            else:
                status_by_path[entry.path] = entry.status
    return status_by_path


def drop_tracker_paths(status_by_path: Dict[str, ChangeStatus]) -> Dict[str, ChangeStatus]:
    """Remove the tracker's own files, in case they were committed anyway."""
    prefix = f"{MISSION_TRACKER_DIR}/"
    return {
        p: s for p, s in status_by_path.items()
        if not (p.startswith(prefix) or f"/{prefix}" in p)
    }


def build_change_set(
    status_by_path: Dict[str, ChangeStatus],
    availability: DiffAvailability = DiffAvailability.COMPLETE,
    notes: Optional[List[str]] = None,
) -> ChangeSet:
    """Split a merged status map into the three sorted ChangeSet lists."""
    added = [p for p, s in status_by_path.items() if s == ChangeStatus.ADDED]
    modified = [p for p, s in status_by_path.items() if s == ChangeStatus.MODIFIED]
    deleted = [p for p, s in status_by_path.items() if s == ChangeStatus.DELETED]
    return ChangeSet(
        added=added,
        modified=modified,
        deleted=deleted,
        availability=availability,
        notes=notes or [],
    )


class DiffEngine:
    """Computes the ChangeSet between a snapshot and the live tree."""

    def __init__(self, probe: Optional[VersionedTreeProbe] = None):
        self.probe = probe or GitProbe()

    def compute_diff(self, descriptor: SnapshotDescriptor, root: Union[str, Path]) -> ChangeSet:
        """Compute added/modified/deleted paths since ``descriptor``.

        Each probe half that fails contributes nothing and the result is
        marked partial.

        Raises:
            ProbeUnavailable: The probe cannot run at all, or the tree is
                no longer versioned although a versioned snapshot was taken
        """
        if descriptor.kind == SnapshotKind.FINGERPRINT:
            return ChangeSet.empty(
                DiffAvailability.NOT_SUPPORTED,
                "Fingerprint snapshots cannot be diffed",
            )

        root = Path(root)
        if not self.probe.is_tracked(root):
            raise ProbeUnavailable(
                f"{root} is no longer a version-controlled tree", root=str(root)
            )

        notes: List[str] = []
        committed = self._committed_diff(descriptor.revision, root, notes)
        staged = self._working_tree_half(root, cached=True, notes=notes)
        unstaged = self._working_tree_half(root, cached=False, notes=notes)

        availability = DiffAvailability.PARTIAL if notes else DiffAvailability.COMPLETE
        change_set = build_change_set(
            drop_tracker_paths(merge_entries(committed, staged, unstaged)), availability, notes
        )
        logger.debug("Diff since %s: %s", descriptor.id[:12], change_set.summary)
        return change_set

    def _committed_diff(self, start: str, root: Path, notes: List[str]) -> List[StatusEntry]:
        try:
            current = self.probe.current_revision(root)
        except (ProbeCommandFailed, ProbeTimeout) as e:
            logger.warning("Cannot resolve current revision in %s: %s", root, e)
            notes.append(f"Current revision unavailable; committed changes are not included ({e})")
            return []

        if current.strip() == start.strip():
            return []

        try:
            return self.probe.diff_by_status((start, current), root)
        except InvalidRevision as e:
            logger.error(
                "Snapshot revision %s is no longer resolvable, using working-tree diff only: %s",
                start, e,
            )
            notes.append(
                f"Revision {start[:12]} is no longer resolvable; committed changes are not included"
            )
        except (ProbeCommandFailed, ProbeTimeout) as e:
            logger.warning("Failed to get committed diff %s..%s: %s", start[:12], current[:12], e)
            notes.append(f"Committed diff unavailable ({e})")
        return []

    def _working_tree_half(self, root: Path, cached: bool, notes: List[str]) -> List[StatusEntry]:
        label = "staged" if cached else "unstaged"
        try:
            return self.probe.diff_by_status(None, root, cached=cached)
        except (ProbeCommandFailed, ProbeTimeout) as e:
            logger.warning("Failed to get %s diff in %s: %s", label, root, e)
            notes.append(f"{label.capitalize()} diff unavailable ({e})")
            return []


def compute_diff(descriptor: SnapshotDescriptor, root: Union[str, Path]) -> ChangeSet:
    """Compute a diff with the default git probe."""
    return DiffEngine().compute_diff(descriptor, root)
