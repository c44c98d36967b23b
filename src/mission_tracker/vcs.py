"""Version-control probe.

Only enough git is used to diff two points in history plus the live
working copy: nothing here writes to the repository.

Paths are reported relative to the repository top level, regardless of
which subdirectory the probe is pointed at.
"""

import logging
import subprocess
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional, Protocol, Tuple, Union

from .constants import DEFAULT_PROBE_TIMEOUT, DEFAULT_VCS_BINARY
from .errors import (
    InvalidRevision,
    ProbeCommandFailed,
    ProbeTimeout,
    ProbeUnavailable,
)

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

# stderr fragments git prints when a revision cannot be resolved
_BAD_REVISION_MARKERS = (
    "bad object",
    "bad revision",
    "unknown revision",
    "ambiguous argument",
    "invalid object",
    "not a valid object",
)


class ChangeStatus(str, Enum):
    """Per-path status letter reported by the probe."""

    ADDED = "A"
    MODIFIED = "M"
    DELETED = "D"
    RENAMED = "R"


@dataclass(frozen=True)
class StatusEntry:
    """One line of a name-status diff."""

    status: ChangeStatus
    path: str
    new_path: Optional[str] = None  # Renames only


def parse_name_status(output: str) -> List[StatusEntry]:
    r"""Parse ``git diff --name-status -z`` output.

    Fields are NUL separated and paths are never quoted, so names holding
    tabs, newlines, quotes or backslashes come through verbatim::

        A\0new.ts\0M\0file.ts\0R100\0old.ts\0new.ts\0

    Renames and copies carry two paths, every other letter one. Type
    changes (T) count as modifications and copies (C) as an added
    destination. Unmerged and unknown letters are skipped.
    """
    fields = output.split("\0")
    entries: List[StatusEntry] = []
    i = 0
    while i < len(fields):
        code = fields[i].strip()
        i += 1
        if not code:
            continue

        letter = code[0]
        width = 2 if letter in ("R", "C") else 1
        paths = fields[i:i + width]
        i += width
        if len(paths) < width or not all(paths):
            logger.debug("Skipping truncated status record %r", code)
            continue

        path = paths[0]
        if letter == "A":
            entries.append(StatusEntry(ChangeStatus.ADDED, path))
        elif letter in ("M", "T"):
            entries.append(StatusEntry(ChangeStatus.MODIFIED, path))
        elif letter == "D":
            entries.append(StatusEntry(ChangeStatus.DELETED, path))
        elif letter == "R":
            entries.append(StatusEntry(ChangeStatus.RENAMED, path, paths[1]))
        elif letter == "C":
            entries.append(StatusEntry(ChangeStatus.ADDED, paths[1]))
        else:
            logger.debug("Skipping unsupported status %r for %s", code, path)
    return entries


class VersionedTreeProbe(Protocol):
    """Capability over an external version-control system."""

    def is_tracked(self, root: PathLike) -> bool:
        """Is ``root`` inside a version-controlled tree."""
        ...

    def current_revision(self, root: PathLike) -> str:
        """Current revision id of the tree containing ``root``."""
        ...

    def diff_by_status(
        self,
        rev_range: Optional[Tuple[str, str]],
        root: PathLike,
        *,
        cached: bool = False,
    ) -> List[StatusEntry]:
        """Path/status changes between two revisions.

        With ``rev_range=None`` the live working copy is compared instead:
        staged changes against the current revision when ``cached`` is set,
        unstaged changes against the index otherwise.
        """
        ...


class GitProbe:
    """VersionedTreeProbe backed by the git command line."""

    def __init__(self, binary: str = DEFAULT_VCS_BINARY, timeout: float = DEFAULT_PROBE_TIMEOUT):
        self.binary = binary
        self.timeout = timeout

    def is_tracked(self, root: PathLike) -> bool:
        try:
            out = self._run(["rev-parse", "--is-inside-work-tree"], root)
        except ProbeCommandFailed:
            return False
        return out.strip() == "true"

    def current_revision(self, root: PathLike) -> str:
        try:
            return self._run(["rev-parse", "--verify", "HEAD"], root).strip()
        except ProbeCommandFailed as e:
            # Repository without commits, or HEAD pointing nowhere
            raise InvalidRevision("HEAD", e.command, e.returncode, e.stderr)

    def diff_by_status(
        self,
        rev_range: Optional[Tuple[str, str]],
        root: PathLike,
        *,
        cached: bool = False,
    ) -> List[StatusEntry]:
        args = ["diff", "--name-status", "-z", "-M", "--no-color", "--no-ext-diff"]
        if rev_range is not None:
            args.extend(rev_range)
        elif cached:
            args.append("--cached")

        try:
            out = self._run(args, root)
        except ProbeCommandFailed as e:
            if rev_range is not None and _is_bad_revision(e.stderr):
                raise InvalidRevision(rev_range[0], e.command, e.returncode, e.stderr)
            raise
        return parse_name_status(out)

    def _run(self, args: List[str], root: PathLike) -> str:
        """Run a git command in ``root`` and return stdout.

        Raises:
            ProbeUnavailable: git cannot be started (missing binary or directory)
            ProbeTimeout: the command exceeded the configured timeout
            ProbeCommandFailed: the command exited non-zero
        """
        cmd = [self.binary, "-c", "core.quotepath=off", *args]
        try:
            result = subprocess.run(
                cmd,
                cwd=str(root),
                capture_output=True,
                text=True,
                encoding="utf-8",
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired:
            raise ProbeTimeout(cmd, self.timeout)
        except OSError as e:
            raise ProbeUnavailable(f"Cannot run '{self.binary}' in {root}: {e}", root=str(root))

        if result.returncode != 0:
            raise ProbeCommandFailed(cmd, result.returncode, result.stderr)
        logger.debug("%s -> %d bytes", " ".join(cmd), len(result.stdout))
        return result.stdout


def _is_bad_revision(stderr: str) -> bool:
    text = stderr.lower()
    return any(marker in text for marker in _BAD_REVISION_MARKERS)
