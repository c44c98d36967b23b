"""Hashing utilities for fingerprint snapshots.

File contents are hashed byte-for-byte with SHA256.
"""

from pathlib import Path
import hashlib


def compute_file_digest(path: Path) -> str:
    """Compute SHA256 hash of file contents.

    Args:
        path: Path to file to hash

    Returns:
        SHA256 digest in format "sha256:xxxx"
    """
    sha256 = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            sha256.update(chunk)
    return f"sha256:{sha256.hexdigest()}"


__all__ = [
    "compute_file_digest",
]
