"""Tests for fingerprint ignore patterns."""

from mission_tracker.ignore import IgnoreSpec


class TestIgnoreSpec:

    def test_defaults(self, tmp_path):
        spec = IgnoreSpec(tmp_path)
        assert spec.is_ignored("node_modules/react/index.js")
        assert spec.is_ignored("pkg/__pycache__/mod.pyc")
        assert spec.is_ignored(".mission-tracker/config.yaml")
        assert not spec.is_ignored("src/app.ts")

    def test_should_traverse(self, tmp_path):
        spec = IgnoreSpec(tmp_path)
        assert not spec.should_traverse(".git")
        assert not spec.should_traverse("web/node_modules")
        assert spec.should_traverse("src")
        assert spec.should_traverse("src/")

    def test_ignore_file(self, tmp_path):
        (tmp_path / ".trackerignore").write_text("# generated code\n\n*.gen.ts\nvendor/\n")
        spec = IgnoreSpec(tmp_path)

        assert spec.is_ignored("api/client.gen.ts")
        assert not spec.should_traverse("vendor")
        assert not spec.is_ignored("api/client.ts")

    def test_extra_patterns(self, tmp_path):
        spec = IgnoreSpec(tmp_path, extra=["docs/", "!keep.md", "*.md"])
        assert spec.is_ignored("docs/guide.ts")
        assert spec.is_ignored("README.md")

    def test_negation_in_ignore_file(self, tmp_path):
        (tmp_path / ".trackerignore").write_text("*.json\n!package.json\n")
        spec = IgnoreSpec(tmp_path)

        assert spec.is_ignored("data.json")
        assert not spec.is_ignored("package.json")
