"""Tests for selection rule compilation and part membership."""

import pytest

from parts.config import PartConfig
from parts.exceptions import ConfigError
from parts.matcher import (
    compile_glob,
    compile_part,
    compile_parts,
    compile_regex,
)


class TestGlobRules:
    """Test glob compilation and matching."""

    def test_glob_is_anchored_at_root(self):
        rule = compile_glob("*.md")
        assert rule.matches("README.md")
        assert not rule.matches("docs/guide.md")

    def test_double_star_matches_any_depth(self):
        rule = compile_glob("**/*.md")
        assert rule.matches("README.md")
        assert rule.matches("docs/guide.md")
        assert rule.matches("docs/api/index.md")
        assert not rule.matches("docs/guide.txt")

    def test_leading_double_star_in_segment_crosses_directories(self):
        rule = compile_glob("src/**.rs")
        assert rule.matches("src/a.rs")
        assert rule.matches("src/sub/b.rs")
        assert rule.matches("src/sub/deeper/c.rs")
        assert not rule.matches("lib/a.rs")
        assert not rule.matches("src/a.rsx")

    def test_trailing_double_star_in_segment(self):
        rule = compile_glob("build**")
        assert rule.matches("build-old/out/app.bin")
        assert not rule.matches("src/build/app.bin")

    def test_named_directory_selects_its_content(self):
        rule = compile_glob("docs")
        assert rule.matches("docs")
        assert rule.matches("docs/guide/index.md")
        assert not rule.matches("src/docs/index.md")

    def test_question_mark(self):
        rule = compile_glob("file?.txt")
        assert rule.matches("file1.txt")
        assert not rule.matches("file10.txt")

    @pytest.mark.parametrize("pattern", ["", "   ", "!src/*", "#comment", "../outside/*", "src/a**b.rs"])
    def test_invalid_globs_rejected(self, pattern):
        with pytest.raises(ValueError):
            compile_glob(pattern)


class TestRegexRules:
    """Test regex compilation and matching."""

    def test_regex_is_searched_not_anchored(self):
        rule = compile_regex(r"\.md$")
        assert rule.matches("README.md")
        assert rule.matches("docs/deep/guide.md")
        assert not rule.matches("README.md.bak")

    def test_malformed_regex_raises(self):
        import re

        with pytest.raises(re.error):
            compile_regex("(unclosed")


class TestPartMembership:
    """Test include/exclude evaluation of compiled parts."""

    def test_include_and_exclude(self):
        part = compile_part("code", PartConfig(
            globs=["src/**/*.py"],
            exclude_globs=["src/generated/**"],
        ))
        assert part.matches("src/app.py")
        assert part.matches("src/pkg/mod.py")
        assert not part.matches("src/generated/schema.py")
        assert not part.matches("tests/test_app.py")

    def test_regex_and_glob_are_alternatives(self):
        part = compile_part("mixed", PartConfig(globs=["Makefile"], regexes=[r"\.toml$"]))
        assert part.matches("Makefile")
        assert part.matches("config/settings.toml")
        assert not part.matches("README.md")

    def test_exclude_regex(self):
        part = compile_part("docs", PartConfig(regexes=[r"\.md$"], exclude_regexes=["^CHANGELOG"]))
        assert part.matches("README.md")
        assert not part.matches("CHANGELOG.md")

    def test_directory_restricts_members(self):
        part = compile_part("web", PartConfig(directory="./frontend/", regexes=[r"\.ts$"]))
        assert part.directory == "frontend"
        assert part.matches("frontend/app.ts")
        assert not part.matches("backend/app.ts")
        assert not part.matches("frontend-old/app.ts")

    def test_no_rules_matches_nothing(self):
        part = compile_part("empty", PartConfig())
        assert not part.matches("anything.txt")

    def test_rules_digest_tracks_definition(self):
        a = compile_part("a", PartConfig(globs=["*.py"]))
        b = compile_part("b", PartConfig(globs=["*.py"]))
        c = compile_part("a", PartConfig(globs=["*.pyi"]))
        d = compile_part("a", PartConfig(globs=["*.py"], ignore_hidden=False))
        assert a.rules_digest == b.rules_digest
        assert a.rules_digest != c.rules_digest
        assert a.rules_digest != d.rules_digest


class TestCompileParts:
    """Test whole-configuration compilation."""

    def test_malformed_regex_names_the_part(self):
        with pytest.raises(ConfigError) as exc_info:
            compile_parts([
                ("good", PartConfig(globs=["*.py"])),
                ("broken", PartConfig(regexes=["([a-z"])),
            ])
        assert exc_info.value.part == "broken"
        assert exc_info.value.rule == "([a-z"
        assert "broken" in str(exc_info.value)

    def test_invalid_glob_names_the_part(self):
        with pytest.raises(ConfigError) as exc_info:
            compile_parts([("neg", PartConfig(exclude_globs=["!keep"]))])
        assert exc_info.value.part == "neg"

    def test_duplicate_names_rejected(self):
        with pytest.raises(ConfigError, match="duplicate"):
            compile_parts([("a", PartConfig()), ("a", PartConfig())])

    def test_declaration_order_preserved(self):
        parts = compile_parts([(name, PartConfig()) for name in ["z", "a", "m"]])
        assert [p.name for p in parts] == ["z", "a", "m"]

    def test_extra_ignores_reach_walk_options(self):
        parts = compile_parts([("a", PartConfig(globs=["**"]))], extra_ignores=["/.parts/state.json"])
        assert parts[0].walk.extra_ignores == ("/.parts/state.json",)
        assert parts[0].walk.excluded_by_extra(".parts/state.json")
        assert not parts[0].walk.excluded_by_extra("state.json")
