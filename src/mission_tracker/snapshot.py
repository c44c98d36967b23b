"""Snapshot creation at the start of a unit of work."""

import logging
import time
from pathlib import Path
from typing import Callable, Optional, Union

from .constants import FINGERPRINT_ID_PREFIX
from .core import SnapshotDescriptor, SnapshotKind
from .errors import ProbeError
from .fingerprint import FingerprintProbe
from .vcs import GitProbe, VersionedTreeProbe

logger = logging.getLogger(__name__)


class SnapshotService:
    """Creates comparable snapshot descriptors.

    Prefers the current revision of a versioned tree. Any probe failure
    degrades to a fingerprint snapshot instead of raising. Nothing is
    written to the tree.
    """

    def __init__(
        self,
        probe: Optional[VersionedTreeProbe] = None,
        fallback: Optional[FingerprintProbe] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.probe = probe or GitProbe()
        self.fallback = fallback or FingerprintProbe()
        self.clock = clock

    def create_snapshot(self, root: Union[str, Path]) -> SnapshotDescriptor:
        root = Path(root)
        try:
            if self.probe.is_tracked(root):
                revision = self.probe.current_revision(root)
                logger.debug("Versioned snapshot of %s at %s", root, revision)
                return SnapshotDescriptor(
                    kind=SnapshotKind.VERSIONED,
                    id=revision,
                    payload=revision,
                )
            logger.debug("%s is not a versioned tree, using fingerprints", root)
        except ProbeError as e:
            logger.warning(
                "Failed to create versioned snapshot of %s, falling back to fingerprints: %s",
                root, e,
            )

        fingerprints = self.fallback.fingerprint(root)
        return SnapshotDescriptor(
            kind=SnapshotKind.FINGERPRINT,
            id=f"{FINGERPRINT_ID_PREFIX}{int(self.clock() * 1000)}",
            payload=fingerprints,
        )


def create_snapshot(root: Union[str, Path]) -> SnapshotDescriptor:
    """Create a snapshot with default probes."""
    return SnapshotService().create_snapshot(root)
