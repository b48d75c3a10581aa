"""Tests for exclusion pattern matching."""

import pytest

from bn_loader import patterns
from bn_loader.errors import PatternError
from bn_loader.patterns import (
    DEFAULT_EXCLUSIONS,
    ExclusionSet,
    PatternKind,
    compile_pattern,
    matches,
)


class TestMatches:
    def test_directory_pattern_matches_contents(self):
        assert matches("keychain/secret.dat", "keychain/") is True

    def test_directory_pattern_matches_directory_itself(self):
        assert matches("keychain", "keychain/") is True

    def test_name_matches_at_any_depth(self):
        assert matches("foo/license.dat", "license.dat") is True
        assert matches("license.dat", "license.dat") is True

    def test_glob_does_not_match_other_extension(self):
        assert matches("notes.txt", "*.pyc") is False

    def test_glob_matches_nested_file(self):
        assert matches("plugins/tools/mod.pyc", "*.pyc") is True

    def test_single_segment_directory_matches_at_depth(self):
        assert matches("plugins/x/__pycache__/m.cpython-312.pyc", "__pycache__/") is True

    def test_star_stays_within_one_segment(self):
        assert matches("plugins/a.py", "plugins/*.py") is True
        assert matches("plugins/sub/a.py", "plugins/*.py") is False

    def test_multi_segment_pattern_is_anchored(self):
        assert matches("snippets/private_notes.py", "snippets/private_*") is True
        assert matches("plugins/snippets/private_notes.py", "snippets/private_*") is False

    def test_name_does_not_match_partial_segment(self):
        assert matches("mykeychain/secret", "keychain/") is False
        assert matches("license.dat.bak", "license.dat") is False

    def test_case_sensitive(self):
        assert matches("LICENSE.DAT", "license.dat") is False

    def test_separator_agnostic(self):
        assert matches("keychain\\secret.dat", "keychain/") is True
        assert matches("keychain/secret.dat", "keychain\\") is True
        assert matches("plugins\\a.py", "plugins/*.py") is True

    def test_unclosed_bracket_is_literal(self):
        assert matches("plugins/[abc", "[abc") is True
        assert matches("plugins/a", "[abc") is False


class TestCompilePattern:
    def test_kinds(self):
        assert compile_pattern("keychain/").kind is PatternKind.DIRECTORY
        assert compile_pattern("*.pyc").kind is PatternKind.GLOB
        assert compile_pattern("license.dat").kind is PatternKind.NAME

    def test_leading_dot_slash_stripped(self):
        assert compile_pattern("./themes/").text == "themes/"

    def test_empty_pattern_raises(self):
        with pytest.raises(PatternError):
            compile_pattern("   ")

    def test_bad_glob_raises(self, monkeypatch):
        monkeypatch.setattr(patterns.fnmatch, "translate", lambda s: "(")
        with pytest.raises(PatternError, match="Invalid glob pattern"):
            compile_pattern("broken*")


class TestExclusionSet:
    def test_defaults_always_present_first(self):
        ex = ExclusionSet(["themes/"])
        assert ex.patterns[: len(DEFAULT_EXCLUSIONS)] == DEFAULT_EXCLUSIONS
        assert ex.patterns[-1] == "themes/"

    def test_duplicates_collapse(self):
        ex = ExclusionSet(["*.pyc", "extra/"], ["extra/", "extra\\", "x.txt"])
        assert ex.patterns == DEFAULT_EXCLUSIONS + ("extra/", "x.txt")

    def test_blank_patterns_dropped(self):
        ex = ExclusionSet(["", "  "])
        assert ex.patterns == DEFAULT_EXCLUSIONS

    def test_contains(self):
        ex = ExclusionSet()
        assert "license.dat" in ex
        assert "themes/" not in ex

    def test_matches_and_first_match(self):
        ex = ExclusionSet(["snippets/private_*"])
        assert ex.matches("keychain/token")
        assert ex.first_match("snippets/private_x.py").text == "snippets/private_*"
        assert ex.first_match("plugins/a.py") is None

    def test_bad_glob_falls_back_to_literal(self, monkeypatch):
        monkeypatch.setattr(patterns.fnmatch, "translate", lambda s: "(")
        ex = ExclusionSet(["odd*glob"])
        assert "odd*glob" in ex.patterns
        assert ex.matches("plugins/odd*glob")
        assert not ex.matches("plugins/oddXglob")
