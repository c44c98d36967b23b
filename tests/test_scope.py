"""Tests for scope verification."""

from mission_tracker.scope import path_matches_area, verify_scope


class TestPathMatchesArea:

    def test_segment_match(self):
        assert path_matches_area("src/auth/login.ts", "auth")

    def test_prefix_match(self):
        assert path_matches_area("auth/index.ts", "auth")

    def test_case_insensitive(self):
        assert path_matches_area("src/Auth/Login.ts", "AUTH")

    def test_substring_match_is_loose(self):
        # "auth" is a substring of "oauth"
        assert path_matches_area("src/oauth.ts", "auth")

    def test_no_match(self):
        assert not path_matches_area("src/billing/invoice.ts", "auth")


class TestVerifyScope:

    def test_no_areas_always_matches(self):
        verdict = verify_scope(["anything.ts", "else.py"], [])
        assert verdict.scope_match
        assert verdict.unexpected_files == []
        assert verdict.warnings == []

    def test_all_in_scope(self):
        verdict = verify_scope(["src/auth/a.ts", "src/api/b.ts"], ["auth", "api"])
        assert verdict.scope_match
        assert verdict.warnings == []

    def test_unexpected_files_and_warning(self):
        verdict = verify_scope(["new.ts", "file.ts"], ["file"])

        assert not verdict.scope_match
        assert verdict.unexpected_files == ["new.ts"]
        assert verdict.warnings == ["1 file(s) modified outside declared scope (file)"]

    def test_unexpected_preserve_input_order(self):
        verdict = verify_scope(["z.ts", "a.ts", "src/auth/x.ts", "m.ts"], ["auth", "api"])

        assert verdict.unexpected_files == ["z.ts", "a.ts", "m.ts"]
        assert verdict.warnings == [
            "3 file(s) modified outside declared scope (auth, api)"
        ]

    def test_no_changes(self):
        verdict = verify_scope([], ["auth"])
        assert verdict.scope_match
        assert verdict.unexpected_files == []
