"""Compilation of selection rules into path predicates."""

import hashlib
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Literal, Sequence, Tuple, Union

from pathspec import GitIgnoreSpec

from .config.parser import PartConfig, PartsConfig
from .exceptions import ConfigError
from .sources.base import WalkOptions

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GlobRule:
    """Shell-style glob anchored at the project root (``*``, ``**``, ``?``)."""

    pattern: str
    spec: GitIgnoreSpec = field(repr=False, compare=False)
    kind: Literal["glob"] = "glob"

    def matches(self, path: str) -> bool:
        return self.spec.check_file(path).include is True


@dataclass(frozen=True)
class RegexRule:
    """Regular expression searched anywhere in the relative path."""

    pattern: str
    regex: "re.Pattern[str]" = field(repr=False, compare=False)
    kind: Literal["regex"] = "regex"

    def matches(self, path: str) -> bool:
        return self.regex.search(path) is not None


SelectionRule = Union[GlobRule, RegexRule]


def _expand_double_star(segment: str) -> str:
    """Rewrite a path segment so that a leading ``**`` crosses directories.

    ``**.rs`` becomes ``**/*.rs``. A trailing ``**`` (``build**``) already
    covers everything below a matching directory. ``**`` between other
    characters has no directory-crossing form and is rejected.
    """
    if "**" not in segment or segment == "**":
        return segment
    head = segment.lstrip("*")
    if "**" in head.rstrip("*"):
        raise ValueError(f"'**' must start or end the path segment {segment!r}")
    if segment.startswith("**"):
        return "**/*" + head
    return segment


def compile_glob(pattern: str) -> GlobRule:
    """Compile a glob pattern.

    Patterns are always rooted at the project root: ``*.md`` matches only
    top-level markdown files, ``**/*.md`` matches them at any depth and
    ``src/**.rs`` matches ``.rs`` files anywhere below ``src``.

    Matching follows gitignore rules, so a pattern that names a directory
    also selects everything inside it: ``docs`` matches ``docs/index.md``
    and ``src/a.rs`` would match ``src/a.rs/inner.txt``.

    Raises:
        ValueError: If the pattern is blank, a comment, a negation, climbs
            out of the root with ``..``, or embeds ``**`` mid-segment.
    """
    text = pattern.strip()
    if not text:
        raise ValueError("empty glob pattern")
    if text.startswith(("!", "#")):
        raise ValueError("glob patterns cannot start with '!' or '#', use exclusions instead")
    if ".." in text.split("/"):
        raise ValueError("glob pattern escapes the project root")

    text = "/".join(_expand_double_star(segment) for segment in text.split("/"))
    anchored = text if text.startswith("/") else "/" + text
    spec = GitIgnoreSpec.from_lines([anchored])
    if len(spec.patterns) != 1 or spec.patterns[0].include is not True:
        raise ValueError("glob pattern selects nothing")
    return GlobRule(pattern=pattern, spec=spec)


def compile_regex(pattern: str) -> RegexRule:
    """Compile a regex pattern, raising ``re.error`` when malformed."""
    return RegexRule(pattern=pattern, regex=re.compile(pattern))


def compile_rule(kind: str, pattern: str) -> SelectionRule:
    if kind == "glob":
        return compile_glob(pattern)
    if kind == "regex":
        return compile_regex(pattern)
    raise ValueError(f"unknown rule kind {kind!r}")


@dataclass(frozen=True)
class Part:
    """A compiled part: selection rules plus the walk options used to enumerate it.

    Attributes:
        name: Unique, case-sensitive part name.
        include: Rules of which at least one must match.
        exclude: Rules of which none may match.
        directory: Only paths under this directory are members (``.`` for all).
        walk: Enumeration options for the part.
        rules_digest: Digest of the canonical definition.
    """

    name: str
    include: Tuple[SelectionRule, ...]
    exclude: Tuple[SelectionRule, ...] = ()
    directory: str = "."
    walk: WalkOptions = WalkOptions()
    rules_digest: str = ""

    def in_directory(self, path: str) -> bool:
        if self.directory == ".":
            return True
        return path == self.directory or path.startswith(self.directory + "/")

    def matches(self, path: str) -> bool:
        """Return whether ``path`` is a member of this part. Never performs I/O."""
        if not self.in_directory(path):
            return False
        if not any(rule.matches(path) for rule in self.include):
            return False
        return not any(rule.matches(path) for rule in self.exclude)


def _rules_digest(config: PartConfig, walk: WalkOptions) -> str:
    canonical = {
        "directory": config.directory,
        "globs": config.globs,
        "regexes": config.regexes,
        "exclude_globs": config.exclude_globs,
        "exclude_regexes": config.exclude_regexes,
        "ignore_hidden": walk.ignore_hidden,
        "use_gitignore": walk.use_gitignore,
        "extra_ignores": list(walk.extra_ignores),
    }
    payload = json.dumps(canonical, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def _compile_many(name: str, kind: str, patterns: Iterable[str]) -> List[SelectionRule]:
    rules = []
    for pattern in patterns:
        try:
            rules.append(compile_rule(kind, pattern))
        except (ValueError, re.error) as e:
            raise ConfigError(
                f"part {name!r}: invalid {kind} {pattern!r}: {e}", part=name, rule=pattern
            ) from e
    return rules


def compile_part(
    name: str,
    config: PartConfig,
    extra_ignores: Sequence[str] = (),
) -> Part:
    """Compile one part definition.

    Raises:
        ConfigError: If any rule fails to compile. The error names the part
            and the offending rule.
    """
    walk = WalkOptions(
        ignore_hidden=config.ignore_hidden,
        use_gitignore=config.use_gitignore,
        extra_ignores=tuple(extra_ignores),
    )
    include = _compile_many(name, "glob", config.globs) + _compile_many(name, "regex", config.regexes)
    exclude = (
        _compile_many(name, "glob", config.exclude_globs)
        + _compile_many(name, "regex", config.exclude_regexes)
    )
    if not include:
        logger.debug(f"Part {name!r} declares no selection rules and will always be empty")

    return Part(
        name=name,
        include=tuple(include),
        exclude=tuple(exclude),
        directory=config.directory,
        walk=walk,
        rules_digest=_rules_digest(config, walk),
    )


def compile_parts(
    config: Union[PartsConfig, Sequence[Tuple[str, PartConfig]]],
    extra_ignores: Sequence[str] = (),
) -> List[Part]:
    """Compile every declared part, in declaration order, before any I/O happens.

    Args:
        config: A loaded configuration, or ``(name, PartConfig)`` pairs.
        extra_ignores: Gitignore-style patterns always excluded from
            enumeration (e.g. the state directory).

    Raises:
        ConfigError: On duplicate names or the first invalid rule.
    """
    items = list(config.parts.items()) if isinstance(config, PartsConfig) else list(config)

    seen = set()
    parts = []
    for name, part_config in items:
        if name in seen:
            raise ConfigError(f"duplicate part name {name!r}", part=name)
        seen.add(name)
        parts.append(compile_part(name, part_config, extra_ignores))
    return parts

