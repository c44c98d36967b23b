"""Utility functions for mission-tracker."""

import os
import tempfile
import uuid
from pathlib import Path


def new_id(prefix: str) -> str:
    """Generate a record id such as ``unit-3f2a...``."""
    return f"{prefix}-{uuid.uuid4().hex[:16]}"


def atomic_write_text(path: Path, text: str) -> None:
    """Atomically write text to file with crash safety.

    1. Writes to a temp file in the same directory and fsyncs it
    2. Atomically renames it over the target
    3. Fsyncs the parent directory so the rename is durable

    Directory fsync is best-effort (not supported on Windows).
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    with tempfile.NamedTemporaryFile(
        mode="w",
        delete=False,
        dir=path.parent,
        prefix=f".{path.name}.tmp-",
        suffix=""
    ) as f:
        f.write(text)
        f.flush()
        os.fsync(f.fileno())
        tmp = Path(f.name)

    try:
        os.replace(tmp, path)

        try:
            flags = os.O_RDONLY
            if hasattr(os, "O_DIRECTORY"):
                flags |= os.O_DIRECTORY
            dirfd = os.open(str(path.parent), flags)
            try:
                os.fsync(dirfd)
            finally:
                os.close(dirfd)
        except OSError:
            # Directory fsync unsupported; the file itself is already durable
            pass
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


def humanize_duration(ms: int) -> str:
    """Convert milliseconds to a short human-readable duration.

    Examples:
        950 -> "950ms"
        65000 -> "1m 5s"
        7260000 -> "2h 1m"
    """
    if ms < 1000:
        return f"{ms}ms"
    seconds = ms // 1000
    if seconds < 60:
        return f"{seconds}s"
    minutes, seconds = divmod(seconds, 60)
    if minutes < 60:
        return f"{minutes}m {seconds}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes}m"
