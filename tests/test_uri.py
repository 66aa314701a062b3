"""Tests for resource URIs and pattern matching."""

import pytest

from trustgate.exceptions import InvalidPatternError
from trustgate.uri import (
    compile_pattern,
    filter_uris,
    fs_uri,
    has_path_traversal,
    matches_uri,
    parse_uri,
    path_from_uri,
    resolve_pattern,
    scheme_of,
)


class TestUriHelpers:
    """Tests for URI parsing helpers."""

    def test_parse_uri(self):
        """Test parse URI."""
        assert parse_uri("fs://workspace/src/a.py") == ("fs", "workspace/src/a.py")

    def test_parse_uri_rejects_plain_path(self):
        """Test parse URI rejects plain path."""
        with pytest.raises(ValueError):
            parse_uri("src/a.py")

    def test_scheme_of(self):
        """Test scheme extraction from URIs."""
        assert scheme_of("gmail://inbox/123") == "gmail"
        assert scheme_of("not a uri") is None

    def test_fs_uri_round_trip(self):
        """Test fs URI round trip."""
        uri = fs_uri("src/main.py")
        assert uri == "fs://workspace/src/main.py"
        assert path_from_uri(uri) == "src/main.py"

    def test_path_from_uri_rejects_other_schemes(self):
        """Test path from URI rejects other schemes."""
        with pytest.raises(ValueError):
            path_from_uri("db://prod/users")

    @pytest.mark.parametrize(
        "uri",
        [
            "fs://workspace/../etc/passwd",
            "fs://workspace/src/../../secret",
            "fs://workspace/%2e%2e/etc",
            "fs://workspace/%2E%2E/etc",
        ],
    )
    def test_path_traversal_detected(self, uri):
        """Test path traversal detected."""
        assert has_path_traversal(uri)

    def test_dotted_names_are_not_traversal(self):
        """Test dotted names are not traversal."""
        assert not has_path_traversal("fs://workspace/src/..hidden/file..txt")


class TestPatterns:
    """Tests for scheme-scoped glob matching."""

    def test_bare_pattern_is_workspace_shorthand(self):
        """Test bare pattern is workspace shorthand."""
        assert resolve_pattern("src/*.py") == "fs://workspace/src/*.py"
        assert resolve_pattern("db://prod/*") == "db://prod/*"

    def test_single_star_stays_in_segment(self):
        """Test single star stays in segment."""
        assert matches_uri("src/*.py", "fs://workspace/src/main.py")
        assert not matches_uri("src/*.py", "fs://workspace/src/pkg/main.py")

    def test_double_star_crosses_segments(self):
        """Test double star crosses segments."""
        assert matches_uri("src/**", "fs://workspace/src/pkg/deep/main.py")
        assert matches_uri("src/**/*.py", "fs://workspace/src/main.py")
        assert matches_uri("src/**/*.py", "fs://workspace/src/a/b/main.py")

    def test_question_mark_and_class(self):
        """Test ? and character class patterns."""
        assert matches_uri("v?.txt", "fs://workspace/v1.txt")
        assert matches_uri("[ab].txt", "fs://workspace/a.txt")
        assert not matches_uri("[ab].txt", "fs://workspace/c.txt")
        assert matches_uri("[!ab].txt", "fs://workspace/c.txt")

    def test_bare_pattern_never_matches_other_scheme(self):
        """Test bare pattern never matches other scheme."""
        assert not matches_uri("**", "gmail://inbox/123")

    def test_scheme_isolation(self):
        """Test scheme isolation."""
        assert matches_uri("gmail://**", "gmail://inbox/123")
        assert not matches_uri("gmail://**", "fs://workspace/inbox/123")
        assert not matches_uri("fs://workspace/**", "db://workspace/x")

    def test_literal_characters_escaped(self):
        """Test literal characters escaped."""
        assert matches_uri("src/a+b.py", "fs://workspace/src/a+b.py")
        assert not matches_uri("src/a.py", "fs://workspace/src/aXpy")

    @pytest.mark.parametrize("pattern", ["", "   ", "src/[abc", "src/[].py"])
    def test_malformed_patterns_fail_closed(self, pattern):
        """Test malformed patterns fail closed."""
        assert not matches_uri(pattern, "fs://workspace/src/a.py")
        with pytest.raises(InvalidPatternError):
            compile_pattern(pattern)

    def test_filter_uris_keeps_order(self):
        """Test filter URIs keeps order."""
        uris = [
            "fs://workspace/b.py",
            "fs://workspace/a.txt",
            "fs://workspace/a.py",
            "db://prod/a.py",
        ]
        assert filter_uris("*.py", uris) == ["fs://workspace/b.py", "fs://workspace/a.py"]
        assert filter_uris("[", uris) == []
