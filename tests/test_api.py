"""Tests for the stable API surface."""

from unittest.mock import patch

from mission_tracker.api import complete_unit, recompute_container_status, start_unit
from mission_tracker.core import ContainerStatus, DiffAvailability, SnapshotKind
from mission_tracker.errors import ProbeUnavailable


class TestStableApi:

    def test_start_and_complete(self, git_repo):
        descriptor = start_unit(git_repo.root, ["src"])
        assert descriptor.kind == SnapshotKind.VERSIONED

        git_repo.write("src/feature.ts", "f\n")
        git_repo.write("file.ts", "changed\n")
        git_repo.git("add", "src/feature.ts")

        changes, verdict = complete_unit(descriptor, git_repo.root, ["src"])

        assert changes.added == ["src/feature.ts"]
        assert changes.modified == ["file.ts"]
        assert verdict.unexpected_files == ["file.ts"]

    def test_complete_without_probe(self, git_repo):
        descriptor = start_unit(git_repo.root)
        with patch(
            "mission_tracker.diffing.DiffEngine.compute_diff",
            side_effect=ProbeUnavailable("git removed"),
        ):
            changes, verdict = complete_unit(descriptor, git_repo.root, ["src"])

        assert changes.availability == DiffAvailability.UNAVAILABLE
        assert changes.total_files == 0
        assert verdict.scope_match

    def test_fingerprint_fallback(self, tmp_path, write_file):
        write_file("main.py", "print()")
        with patch("mission_tracker.vcs.GitProbe.is_tracked", return_value=False):
            descriptor = start_unit(tmp_path)
        assert descriptor.kind == SnapshotKind.FINGERPRINT

        changes, _ = complete_unit(descriptor, tmp_path)
        assert changes.availability == DiffAvailability.NOT_SUPPORTED

    def test_recompute_container_status(self, store):
        store.create("wf", {
            "record_type": "container", "kind": "WORKFLOW", "name": "wf", "status": "IN_PROGRESS",
        })
        status, rollup = recompute_container_status("wf", store)

        assert status == ContainerStatus.IN_PROGRESS
        assert rollup.total_units == 0
