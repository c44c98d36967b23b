"""Custom exceptions for mission-tracker.

This module defines typed exceptions so that callers can tell a degraded
probe apart from a broken record store or an invalid state transition.
"""

from typing import Optional, Sequence


class TrackerError(RuntimeError):
    """Base class for all tracker errors."""
    pass


# Probe Errors
class ProbeError(TrackerError):
    """Base class for version-control probe failures."""
    pass


class ProbeUnavailable(ProbeError):
    """The version-control tool is missing or the tree is not versioned."""

    def __init__(self, message: str, root: Optional[str] = None):
        self.root = root
        super().__init__(message)


class ProbeCommandFailed(ProbeError):
    """A probe command ran but exited with a non-zero status."""

    def __init__(self, args: Sequence[str], returncode: int, stderr: str):
        self.command = list(args)
        self.returncode = returncode
        self.stderr = stderr
        detail = stderr.strip().splitlines()[0] if stderr.strip() else "no output"
        super().__init__(
            f"Command '{' '.join(self.command)}' failed with exit code {returncode}: {detail}"
        )


class InvalidRevision(ProbeCommandFailed):
    """A stored revision id can no longer be resolved."""

    def __init__(self, revision: str, args: Sequence[str] = (), returncode: int = 128, stderr: str = ""):
        self.revision = revision
        super().__init__(args or ["rev-parse", revision], returncode, stderr or f"unknown revision {revision}")


class ProbeTimeout(ProbeError):
    """A probe command did not finish within the configured timeout."""

    def __init__(self, args: Sequence[str], timeout: float):
        self.command = list(args)
        self.timeout = timeout
        super().__init__(
            f"Command '{' '.join(self.command)}' timed out after {timeout:g}s"
        )


# Snapshot Errors
class ReadFailure(TrackerError):
    """A single file could not be read while fingerprinting."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot read {path}: {reason}")


# Aggregation Errors
class AggregationInconsistency(TrackerError):
    """A container references a child record that cannot be loaded."""

    def __init__(self, container_id: str, child_id: str, reason: str = "record not found"):
        self.container_id = container_id
        self.child_id = child_id
        super().__init__(
            f"Container '{container_id}' references child '{child_id}' that cannot be loaded "
            f"({reason}). Aggregation aborted."
        )


# Record Errors
class NotFoundError(TrackerError):
    """Record not found in the store."""

    def __init__(self, kind: str, record_id: str):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} not found: {record_id}")


class ValidationError(TrackerError):
    """Invalid input or invalid state transition."""
    pass


# Configuration Errors
class ConfigError(TrackerError):
    """Configuration could not be loaded."""
    pass
