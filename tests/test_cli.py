"""CLI tests using typer's CliRunner."""

import json

import pytest
from typer.testing import CliRunner

from mission_tracker.cli import app
from mission_tracker.context import TrackerContext


@pytest.fixture
def runner():
    """Create a CliRunner for in-process testing."""
    return CliRunner()


@pytest.fixture
def project(tmp_path, monkeypatch, runner):
    monkeypatch.chdir(tmp_path)
    result = runner.invoke(app, ["init"])
    assert result.exit_code == 0, result.output
    return tmp_path


def records(kind):
    return TrackerContext().make_store().list({"record_type": kind})


class TestProjectCommands:

    def test_init(self, project):
        assert (project / ".mission-tracker" / "config.yaml").exists()
        assert (project / ".mission-tracker" / ".gitignore").read_text().endswith("*\n")

    def test_init_twice_fails(self, project, runner):
        result = runner.invoke(app, ["init"])
        assert result.exit_code == 1
        assert "Already initialized" in result.output

    def test_commands_require_project(self, tmp_path, monkeypatch, runner):
        monkeypatch.chdir(tmp_path)
        result = runner.invoke(app, ["workflow", "start", "wf"])
        assert result.exit_code == 1
        assert "mission-tracker init" in result.output

    def test_full_lifecycle(self, project, runner):
        (project / "app.ts").write_text("a")

        result = runner.invoke(app, ["workflow", "start", "Refactor", "--objective", "clean up"])
        assert result.exit_code == 0, result.output
        workflow_id = records("container")[0]["id"]

        result = runner.invoke(app, [
            "unit", "start", "edit", "--workflow", workflow_id, "--area", "src",
            "--caller", "orchestrator",
        ])
        assert result.exit_code == 0, result.output
        assert "fingerprint" in result.output
        unit_id = records("unit")[0]["id"]

        result = runner.invoke(app, [
            "unit", "complete", unit_id, "--status", "success", "--summary", "done",
            "--tests", "passed", "--tokens-in", "10", "--tokens-out", "5",
        ])
        assert result.exit_code == 0, result.output
        assert "not_supported" in result.output

        result = runner.invoke(app, ["status", workflow_id])
        assert result.exit_code == 0, result.output
        assert "COMPLETED" in result.output
        assert "Tokens: 15" in result.output

    def test_complete_twice_fails(self, project, runner):
        runner.invoke(app, ["workflow", "start", "wf"])
        workflow_id = records("container")[0]["id"]
        runner.invoke(app, ["unit", "start", "t", "--workflow", workflow_id])
        unit_id = records("unit")[0]["id"]

        assert runner.invoke(app, ["unit", "complete", unit_id, "--status", "failed"]).exit_code == 0
        result = runner.invoke(app, ["unit", "complete", unit_id, "--status", "success"])
        assert result.exit_code == 1
        assert "✗" in result.output

    def test_mission_with_phase_and_issue(self, project, runner):
        result = runner.invoke(app, ["mission", "start", "Ship", "--objective", "ship it", "--profile", "simple"])
        assert result.exit_code == 0, result.output
        assert "2 phases" in result.output
        mission_id = records("container")[0]["id"]

        result = runner.invoke(app, ["unit", "start", "t", "--mission", mission_id, "--phase", "1"])
        assert result.exit_code == 0, result.output
        assert "Created phase" in result.output
        unit_id = records("unit")[0]["id"]

        result = runner.invoke(app, [
            "issue", "log", unit_id, "--type", "unclear_requirement",
            "--description", "which db?", "--resolution", "asked", "--human-review",
        ])
        assert result.exit_code == 0, result.output
        issue_id = records("issue")[0]["id"]

        result = runner.invoke(app, ["status", mission_id])
        assert "BLOCKED" in result.output

        result = runner.invoke(app, ["issue", "resolve", issue_id])
        assert result.exit_code == 0, result.output
        result = runner.invoke(app, ["status", mission_id, "--recompute"])
        assert "IN_PROGRESS" in result.output

    def test_unknown_container(self, project, runner):
        result = runner.invoke(app, ["status", "wf-missing"])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_decision_and_milestone(self, project, runner):
        runner.invoke(app, ["workflow", "start", "wf"])
        workflow_id = records("container")[0]["id"]
        runner.invoke(app, ["unit", "start", "t", "--workflow", workflow_id])
        unit_id = records("unit")[0]["id"]

        result = runner.invoke(app, [
            "decision", "log", unit_id, "--category", "trade_off",
            "--question", "Cache?", "--chosen", "no", "--reasoning", "too early",
            "--option", "redis", "--option", "no",
        ])
        assert result.exit_code == 0, result.output
        assert records("decision")[0]["options_considered"] == ["redis", "no"]

        result = runner.invoke(app, ["milestone", "log", unit_id, "Tests passing", "--progress", "75"])
        assert result.exit_code == 0, result.output
        assert "(75%)" in result.output

        result = runner.invoke(app, ["status", workflow_id])
        assert "Cache?" in result.output
        assert "Latest milestone: Tests passing (75%)" in result.output

    def test_milestone_progress_rejected(self, project, runner):
        runner.invoke(app, ["workflow", "start", "wf"])
        workflow_id = records("container")[0]["id"]
        runner.invoke(app, ["unit", "start", "t", "--workflow", workflow_id])
        unit_id = records("unit")[0]["id"]

        result = runner.invoke(app, ["milestone", "log", unit_id, "step", "--progress", "150"])
        assert result.exit_code == 1
        assert "between 0 and 100" in result.output


class TestToolCommands:

    def test_scope_in_scope(self, runner):
        result = runner.invoke(app, ["scope", "auth", "--files", "src/auth/a.ts"])
        assert result.exit_code == 0
        assert "within declared scope" in result.output

    def test_scope_violation(self, runner):
        result = runner.invoke(app, ["scope", "file", "--files", "new.ts", "--files", "file.ts"])
        assert result.exit_code == 1
        assert "1 file(s) modified outside declared scope (file)" in result.output
        assert "new.ts" in result.output

    def test_snapshot_outside_git(self, tmp_path, runner, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / "a.md").write_text("a")
        result = runner.invoke(app, ["snapshot", str(tmp_path)])
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["kind"] == "fingerprint"
        assert list(data["payload"]) == ["a.md"]

    def test_diff_since(self, git_repo, runner):
        start = git_repo.head()
        git_repo.write("file.ts", "changed\n")
        git_repo.commit("change")
        git_repo.write("added.ts", "new\n")
        git_repo.git("add", "added.ts")

        result = runner.invoke(app, ["diff", "--since", start, str(git_repo.root)])
        assert result.exit_code == 0, result.output
        assert "+ added.ts" in result.output
        assert "~ file.ts" in result.output
