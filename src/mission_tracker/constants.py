"""Constants for mission-tracker."""

# Project marker directory
MISSION_TRACKER_DIR = ".mission-tracker"

# Files and directories inside MISSION_TRACKER_DIR
CONFIG_FILE = "config.yaml"
RECORDS_DIR = "records"

# Written to MISSION_TRACKER_DIR/.gitignore by init; git skips the whole directory
GITIGNORE_FILE = ".gitignore"
GITIGNORE_CONTENT = "# Created by mission-tracker init\n*\n"

# Project-level ignore file for fingerprint snapshots
IGNORE_FILE = ".trackerignore"

# Snapshot id prefix for fingerprint snapshots
FINGERPRINT_ID_PREFIX = "fingerprint-"

# Longest accepted milestone message
MILESTONE_MESSAGE_MAX = 500

# Source-like extensions hashed by fingerprint snapshots
DEFAULT_FINGERPRINT_EXTENSIONS = [
    "py", "pyi", "ts", "tsx", "js", "jsx", "json", "md", "prisma", "toml", "yaml", "yml",
]

DEFAULT_PROBE_TIMEOUT = 30.0
DEFAULT_VCS_BINARY = "git"
DEFAULT_FINGERPRINT_WORKERS = 4

# Environment overrides
ENV_PROBE_TIMEOUT = "MISSION_TRACKER_PROBE_TIMEOUT"
ENV_VCS_BINARY = "MISSION_TRACKER_GIT"
ENV_STORE_DIR = "MISSION_TRACKER_STORE"

TRACKER_VERSION = "0.1.0"
