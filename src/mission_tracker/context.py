"""Project context for managing paths and project discovery."""

from pathlib import Path
from typing import Optional

from .config import TrackerConfig, load_config, save_config
from .constants import CONFIG_FILE, GITIGNORE_CONTENT, GITIGNORE_FILE, MISSION_TRACKER_DIR
from .errors import ConfigError
from .fingerprint import FingerprintProbe
from .snapshot import SnapshotService
from .store import JsonFileRecordStore
from .vcs import GitProbe


class TrackerContext:
    """Manages project root discovery and wiring from configuration."""

    def __init__(self, start_path: Optional[Path] = None):
        """Initialize context by finding the project root.

        Args:
            start_path: Path to start searching for project root
        """
        self.root = self._find_root(start_path or Path.cwd())
        if not self.root:
            raise ConfigError(f"Not inside a mission-tracker project (no {MISSION_TRACKER_DIR} found)")
        self._config: Optional[TrackerConfig] = None

    @classmethod
    def is_initialized(cls, path: Optional[Path] = None) -> bool:
        """Check if a specific directory is initialized (without traversing up)."""
        target = path or Path.cwd()
        return (target / MISSION_TRACKER_DIR).exists()

    @classmethod
    def init(cls, path: Optional[Path] = None) -> "TrackerContext":
        """Initialize a new project at the given path with a default config.

        The tracker directory gets its own .gitignore so that its records
        never show up in a unit's diff.
        """
        target = path or Path.cwd()
        marker = target / MISSION_TRACKER_DIR
        marker.mkdir(exist_ok=True)
        ctx = cls(target)
        if not ctx.config_path.exists():
            save_config(TrackerConfig(), ctx.config_path)
        ensure_gitignore(ctx.storage_dir)
        return ctx

    def _find_root(self, start: Path) -> Optional[Path]:
        """Walk up directory tree to find project root."""
        current = start.resolve()

        while current != current.parent:
            if (current / MISSION_TRACKER_DIR).is_dir():
                return current
            current = current.parent

        if (current / MISSION_TRACKER_DIR).is_dir():
            return current
        return None

    @property
    def storage_dir(self) -> Path:
        return self.root / MISSION_TRACKER_DIR

    @property
    def config_path(self) -> Path:
        return self.storage_dir / CONFIG_FILE

    @property
    def config(self) -> TrackerConfig:
        """Loaded configuration (memoized)."""
        if self._config is None:
            self._config = load_config(self.config_path)
        return self._config

    @property
    def records_dir(self) -> Path:
        return self.config.store_path(self.root)

    def make_store(self) -> JsonFileRecordStore:
        return JsonFileRecordStore(self.records_dir)

    def make_probe(self) -> GitProbe:
        return GitProbe(binary=self.config.vcs_binary, timeout=self.config.probe_timeout_seconds)

    def make_snapshot_service(self) -> SnapshotService:
        fallback = FingerprintProbe(
            extensions=self.config.fingerprint_extensions,
            ignore=self.config.fingerprint_ignore,
            max_workers=self.config.fingerprint_workers,
        )
        return SnapshotService(probe=self.make_probe(), fallback=fallback)


def ensure_gitignore(storage_dir: Path) -> bool:
    """Keep git from tracking anything under the tracker directory.

    An existing file is left alone.

    Returns:
        True if the ignore file was created
    """
    gitignore_path = storage_dir / GITIGNORE_FILE
    if gitignore_path.exists():
        return False
    gitignore_path.write_text(GITIGNORE_CONTENT)
    return True
