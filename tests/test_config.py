"""Tests for configuration loading and project context."""

import pytest
import yaml

from mission_tracker.config import TrackerConfig, apply_env_overrides, load_config, save_config
from mission_tracker.constants import MISSION_TRACKER_DIR
from mission_tracker.context import TrackerContext
from mission_tracker.errors import ConfigError
from mission_tracker.store import JsonFileRecordStore


class TestLoadConfig:

    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_config(tmp_path / "config.yaml", environ={})
        assert config == TrackerConfig()
        assert config.vcs_binary == "git"
        assert config.probe_timeout_seconds == 30.0
        assert "ts" in config.fingerprint_extensions

    def test_round_trip(self, tmp_path):
        path = tmp_path / "config.yaml"
        config = TrackerConfig(probe_timeout_seconds=5, fingerprint_ignore=["generated/"])
        save_config(config, path)

        assert load_config(path, environ={}) == config
        assert yaml.safe_load(path.read_text())["probe_timeout_seconds"] == 5

    def test_partial_file_keeps_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("vcs_binary: /usr/local/bin/git\n")

        config = load_config(path, environ={})
        assert config.vcs_binary == "/usr/local/bin/git"
        assert config.fingerprint_workers == 4

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("probe_timeout_seconds: [unclosed\n")
        with pytest.raises(ConfigError):
            load_config(path, environ={})

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError):
            load_config(path, environ={})

    @pytest.mark.parametrize("content", [
        "probe_timeout_seconds: 0\n",
        "fingerprint_workers: 0\n",
        "probe_timeout_seconds: soon\n",
    ])
    def test_invalid_values(self, tmp_path, content):
        path = tmp_path / "config.yaml"
        path.write_text(content)
        with pytest.raises(ConfigError):
            load_config(path, environ={})


class TestEnvOverrides:

    def test_overrides_applied(self):
        config = apply_env_overrides(TrackerConfig(), {
            "MISSION_TRACKER_PROBE_TIMEOUT": "2.5",
            "MISSION_TRACKER_GIT": "/opt/git",
            "MISSION_TRACKER_STORE": "/var/tracker",
        })
        assert config.probe_timeout_seconds == 2.5
        assert config.vcs_binary == "/opt/git"
        assert config.store_dir == "/var/tracker"

    def test_no_overrides_returns_same(self):
        config = TrackerConfig()
        assert apply_env_overrides(config, {}) is config

    def test_bad_timeout(self):
        with pytest.raises(ConfigError):
            apply_env_overrides(TrackerConfig(), {"MISSION_TRACKER_PROBE_TIMEOUT": "fast"})

    def test_env_read_by_load_config(self, tmp_path, monkeypatch):
        monkeypatch.setenv("MISSION_TRACKER_GIT", "custom-git")
        assert load_config(tmp_path / "config.yaml").vcs_binary == "custom-git"


class TestTrackerContext:

    def test_init_creates_marker_and_config(self, initialized_ctx, tmp_path):
        assert initialized_ctx.root == tmp_path.resolve()
        assert (tmp_path / MISSION_TRACKER_DIR).is_dir()
        assert initialized_ctx.config_path.exists()

    def test_init_ignores_tracker_dir_in_git(self, initialized_ctx):
        gitignore = initialized_ctx.storage_dir / ".gitignore"
        assert gitignore.read_text().splitlines()[-1] == "*"

    def test_init_keeps_existing_gitignore(self, tmp_path):
        (tmp_path / MISSION_TRACKER_DIR).mkdir()
        (tmp_path / MISSION_TRACKER_DIR / ".gitignore").write_text("records/\n")
        TrackerContext.init(tmp_path)
        assert (tmp_path / MISSION_TRACKER_DIR / ".gitignore").read_text() == "records/\n"

    def test_tracker_files_invisible_to_git(self, git_repo):
        ctx = TrackerContext.init(git_repo.root)
        ctx.make_store().create("r1", {"record_type": "unit"})

        status = git_repo.git("status", "--porcelain", "--untracked-files=all")
        assert MISSION_TRACKER_DIR not in status

    def test_discovery_from_subdirectory(self, initialized_ctx, tmp_path):
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert TrackerContext(nested).root == tmp_path.resolve()

    def test_not_a_project(self, tmp_path):
        with pytest.raises(ConfigError):
            TrackerContext(tmp_path)

    def test_is_initialized(self, tmp_path):
        assert not TrackerContext.is_initialized(tmp_path)
        TrackerContext.init(tmp_path)
        assert TrackerContext.is_initialized(tmp_path)

    def test_store_location(self, initialized_ctx, tmp_path, monkeypatch):
        monkeypatch.delenv("MISSION_TRACKER_STORE", raising=False)
        store = initialized_ctx.make_store()
        assert isinstance(store, JsonFileRecordStore)
        assert store.base_dir == tmp_path.resolve() / MISSION_TRACKER_DIR / "records"

    def test_store_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv("MISSION_TRACKER_STORE", str(tmp_path / "elsewhere"))
        ctx = TrackerContext.init(tmp_path)
        assert ctx.records_dir == tmp_path / "elsewhere"

    def test_probe_uses_config(self, tmp_path):
        ctx = TrackerContext.init(tmp_path)
        save_config(TrackerConfig(vcs_binary="my-git", probe_timeout_seconds=3), ctx.config_path)

        probe = TrackerContext(tmp_path).make_probe()
        assert probe.binary == "my-git"
        assert probe.timeout == 3
