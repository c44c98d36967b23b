"""Checksum fallback for trees without version control.

A fingerprint snapshot only proves that a snapshot existed: it records a
digest per source-like file and is never diffed later.
"""

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from .constants import DEFAULT_FINGERPRINT_EXTENSIONS, DEFAULT_FINGERPRINT_WORKERS
from .errors import ReadFailure
from .hashing import compute_file_digest
from .ignore import IgnoreSpec

logger = logging.getLogger(__name__)


class FingerprintProbe:
    """Enumerates and hashes source-like files under a root."""

    def __init__(
        self,
        extensions: Optional[Iterable[str]] = None,
        ignore: Iterable[str] = (),
        max_workers: int = DEFAULT_FINGERPRINT_WORKERS,
    ):
        exts = DEFAULT_FINGERPRINT_EXTENSIONS if extensions is None else extensions
        self.extensions = {e.lower().lstrip(".") for e in exts}
        self.extra_ignore = list(ignore)
        self.max_workers = max(1, max_workers)

    def enumerate_files(self, root: Path) -> List[str]:
        """List root-relative POSIX paths eligible for fingerprinting.

        Ignored directories are pruned rather than walked.
        """
        root = Path(root)
        spec = IgnoreSpec(root, self.extra_ignore)
        found = []
        for dirpath, dirnames, filenames in os.walk(root):
            rel_dir = Path(dirpath).relative_to(root).as_posix()
            rel_dir = "" if rel_dir == "." else rel_dir

            dirnames[:] = [
                d for d in dirnames
                if spec.should_traverse(f"{rel_dir}/{d}" if rel_dir else d)
            ]

            for name in filenames:
                suffix = Path(name).suffix.lower().lstrip(".")
                if suffix not in self.extensions:
                    continue
                rel = f"{rel_dir}/{name}" if rel_dir else name
                if not spec.is_ignored(rel):
                    found.append(rel)
        return sorted(found)

    def fingerprint(self, root: Path) -> Dict[str, str]:
        """Compute path -> digest for every eligible file.

        Unreadable files are logged and skipped.
        """
        root = Path(root)
        paths = self.enumerate_files(root)

        def digest_one(rel: str) -> Tuple[str, str]:
            try:
                return rel, compute_file_digest(root / rel)
            except OSError as e:
                raise ReadFailure(rel, e.strerror or str(e))

        results: Dict[str, str] = {}
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [executor.submit(digest_one, rel) for rel in paths]
            for future in futures:
                try:
                    rel, digest = future.result()
                except ReadFailure as e:
                    logger.warning("Skipping file for fingerprint: %s", e)
                    continue
                results[rel] = digest

        logger.debug("Fingerprinted %d of %d files under %s", len(results), len(paths), root)
        return results
