"""Gitignore-style exclusions for fingerprint snapshots."""

from pathlib import Path
from typing import Iterable

from pathspec import PathSpec
from pathspec.patterns import GitWildMatchPattern

from .constants import IGNORE_FILE, MISSION_TRACKER_DIR


# Build, dependency and VCS-internal directories never fingerprinted
DEFAULTS = [
    # Version control
    ".git/",
    ".hg/",
    ".svn/",

    # Tracker metadata
    f"{MISSION_TRACKER_DIR}/",

    # Build output
    "dist/",
    "build/",
    "out/",
    ".next/",
    "coverage/",
    "*.egg-info/",

    # Dependencies
    "node_modules/",
    "venv/",
    ".venv/",
    "env/",
    "site-packages/",
    ".yarn/",
    ".npm/",

    # Caches
    "__pycache__/",
    ".pytest_cache/",
    ".mypy_cache/",
    ".ruff_cache/",
    ".tox/",
    ".turbo/",
]


class IgnoreSpec:
    """Manages gitignore-style patterns for file exclusion."""

    def __init__(self, root: Path, extra: Iterable[str] = ()):
        """Initialize ignore spec with default and custom patterns.

        Args:
            root: Directory being fingerprinted
            extra: Additional patterns (e.g. from config)
        """
        self.root = root
        patterns = list(DEFAULTS)

        # Project-specific .trackerignore
        ignore_file = root / IGNORE_FILE
        if ignore_file.exists():
            for line in ignore_file.read_text().splitlines():
                line = line.strip()
                if line and not line.startswith("#"):
                    patterns.append(line)

        patterns.extend(extra)
        self.spec = PathSpec.from_lines(GitWildMatchPattern, patterns)

    def is_ignored(self, relpath: str) -> bool:
        """Check if a root-relative POSIX path should be ignored."""
        return self.spec.match_file(relpath)

    def should_traverse(self, dirpath: str) -> bool:
        """Check if a directory should be walked at all.

        Args:
            dirpath: Root-relative directory path in POSIX format
        """
        if not dirpath.endswith("/"):
            dirpath = dirpath + "/"
        return not self.spec.match_file(dirpath)
