"""Enumeration and content-access interface shared by file tree backends."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import cached_property
from pathlib import Path
from typing import BinaryIO, ContextManager, Iterable, Iterator, List, Optional, Tuple

from pathspec import GitIgnoreSpec

from ..exceptions import EnumerationError
from ..models.files import FileRecord


@dataclass(frozen=True)
class WalkOptions:
    """How a tree is enumerated.

    Attributes:
        ignore_hidden: Skip files and directories whose name starts with a dot.
        use_gitignore: Honor ``.gitignore``/``.ignore`` files and ``.git/info/exclude``.
        extra_ignores: Gitignore-style patterns that are always excluded.
    """

    ignore_hidden: bool = True
    use_gitignore: bool = True
    extra_ignores: Tuple[str, ...] = ()

    @cached_property
    def extra_spec(self) -> Optional[GitIgnoreSpec]:
        if not self.extra_ignores:
            return None
        return GitIgnoreSpec.from_lines(self.extra_ignores)

    def excluded_by_extra(self, rel_path: str) -> bool:
        spec = self.extra_spec
        return spec is not None and spec.match_file(rel_path)


def is_hidden(rel_path: str) -> bool:
    """Return whether any component of ``rel_path`` is a dot-file or dot-directory."""
    return any(part.startswith(".") for part in rel_path.split("/") if part not in ("", "."))


# Per-directory ignore files, later entries take precedence
IGNORE_FILES = (".gitignore", ".ignore")

IgnoreLevel = Tuple[str, GitIgnoreSpec]


def compile_ignore_lines(lines: Iterable[str]) -> Optional[GitIgnoreSpec]:
    """Compile gitignore-style lines, or return None when they hold no pattern."""
    spec = GitIgnoreSpec.from_lines(lines)
    return spec if len(spec) else None


def load_ignore_file(path: Path) -> Optional[GitIgnoreSpec]:
    """Load a gitignore-style file, or return None when it does not exist.

    Raises:
        EnumerationError: If the file exists but cannot be read.
    """
    if not path.is_file():
        return None
    try:
        lines = path.read_text(encoding="utf-8", errors="replace").splitlines()
    except OSError as e:
        raise EnumerationError(f"cannot read ignore file {path}: {e}") from e
    return compile_ignore_lines(lines)


def is_ignored(rel_path: str, is_dir: bool, levels: List[IgnoreLevel]) -> bool:
    """Apply gitignore precedence: the deepest file and last matching pattern win."""
    for base, spec in reversed(levels):
        sub = rel_path[len(base) + 1:] if base else rel_path
        result = spec.check_file(sub + "/" if is_dir else sub)
        if result.include is not None:
            return result.include
    return False


class ContentSource(ABC):
    """A file tree that can be enumerated and read.

    The live working tree and a git revision both implement this
    interface so that resolution and fingerprinting never need to know
    which one they are working against. Both follow git's view of a
    tree: a symbolic link is a member in its own right whose content is the
    link target text, and ignore files are applied the same way.
    """

    revision: Optional[str] = None

    @abstractmethod
    def iter_paths(self, options: WalkOptions) -> Iterator[str]:
        """Lazily yield candidate project-relative paths.

        Each call starts a fresh pass over the tree as it is at call time.
        """

    @abstractmethod
    def record(self, path: str) -> FileRecord:
        """Return a :class:`FileRecord` for a path yielded by :meth:`iter_paths`."""

    @abstractmethod
    def open(self, path: str) -> ContextManager[BinaryIO]:
        """Open a member file for streamed binary reading.

        Raises:
            OSError: If the content cannot be read.
        """

    def describe(self) -> str:
        return type(self).__name__
