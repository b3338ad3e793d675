"""Tests for exclude rules."""

from __future__ import annotations

from pathlib import Path

import pytest

from bisyncd.core.errors import OperatorError, UnknownPatternError
from bisyncd.sync.excludes import DEFAULT_EXCLUDE_PATTERNS, ExcludeRules


class TestExcludeRules:
    """Tests for ExcludeRules."""

    def test_defaults_included(self) -> None:
        rules = ExcludeRules()
        assert rules.patterns()[: len(DEFAULT_EXCLUDE_PATTERNS)] == list(
            dict.fromkeys(DEFAULT_EXCLUDE_PATTERNS)
        )

    def test_duplicates_collapsed(self) -> None:
        rules = ExcludeRules(["*.iso", "*.iso", "**/.git/**"])
        assert rules.patterns().count("*.iso") == 1
        assert rules.patterns().count("**/.git/**") == 1

    def test_add(self) -> None:
        rules = ExcludeRules(include_defaults=False)

        assert rules.add("*.iso") is True
        assert rules.add("*.iso") is False
        assert rules.patterns() == ["*.iso"]

    def test_add_empty_rejected(self) -> None:
        with pytest.raises(OperatorError):
            ExcludeRules().add("   ")

    def test_remove(self) -> None:
        rules = ExcludeRules(["*.iso"], include_defaults=False)

        rules.remove("*.iso")

        assert len(rules) == 0

    def test_remove_unknown(self) -> None:
        """Removing an unknown pattern should fail without changing the set."""
        rules = ExcludeRules(["*.iso"], include_defaults=False)

        with pytest.raises(UnknownPatternError):
            rules.remove("*.img")
        assert rules.patterns() == ["*.iso"]

    def test_to_args(self) -> None:
        rules = ExcludeRules(["a/**", "*.b"], include_defaults=False)
        assert rules.to_args() == ["--exclude", "a/**", "--exclude", "*.b"]

    def test_load_from_file(self, tmp_path: Path) -> None:
        ignore_file = tmp_path / ".bisyncignore"
        ignore_file.write_text("# comment\n\n*.iso\nbig/**\n*.iso\n")
        rules = ExcludeRules(include_defaults=False)

        assert rules.load_from_file(ignore_file) == 2
        assert rules.patterns() == ["*.iso", "big/**"]

    def test_load_missing_file(self, tmp_path: Path) -> None:
        assert ExcludeRules().load_from_file(tmp_path / "nope") == 0

    @pytest.mark.parametrize(
        ("path", "excluded"),
        [
            ("node_modules/react/index.js", True),
            ("src/app/node_modules/x.js", True),
            ("notes/todo.swp", True),
            (".DS_Store", True),
            (".cache/pip/x", True),
            ("notes/todo.md", False),
            ("src/main.py", False),
        ],
    )
    def test_matches(self, path: str, excluded: bool) -> None:
        assert ExcludeRules().matches(path) is excluded
