"""Enumeration of the live working tree."""

import io
import logging
import os
from pathlib import Path
from typing import BinaryIO, Dict, Iterator, List

from ..exceptions import EnumerationError
from ..models.files import FileRecord
from .base import (
    IGNORE_FILES,
    ContentSource,
    IgnoreLevel,
    WalkOptions,
    is_ignored,
    load_ignore_file,
)

logger = logging.getLogger(__name__)

# Directories that are never part of a project's content
ALWAYS_SKIPPED_DIRS = {".git"}


def _join(rel_dir: str, name: str) -> str:
    return f"{rel_dir}/{name}" if rel_dir else name


def _raise_walk_error(error: OSError) -> None:
    raise EnumerationError(f"failed to walk {error.filename}: {error.strerror}") from error


class LiveTree(ContentSource):
    """The project's working tree on the local filesystem.

    Walks with :meth:`pathlib.Path.walk`, pruning ``.git``, hidden entries
    and gitignored directories before descending into them. Symbolic links
    are never followed; a link is read as its target text, like git stores it.
    """

    revision = None

    def __init__(self, root: Path):
        self.root = Path(root).resolve()

    def __repr__(self) -> str:
        return f"LiveTree({str(self.root)!r})"

    def describe(self) -> str:
        return f"working tree {self.root}"

    def _root_levels(self, options: WalkOptions) -> List[IgnoreLevel]:
        if not options.use_gitignore:
            return []
        spec = load_ignore_file(self.root / ".git" / "info" / "exclude")
        return [("", spec)] if spec else []

    def _skip(self, rel: str, name: str, is_dir: bool, levels: List[IgnoreLevel], options: WalkOptions) -> bool:
        if options.ignore_hidden and name.startswith("."):
            return True
        if options.excluded_by_extra(rel + "/" if is_dir else rel):
            return True
        return options.use_gitignore and is_ignored(rel, is_dir, levels)

    def iter_paths(self, options: WalkOptions) -> Iterator[str]:
        """Yield every regular file under the root that survives the ignore rules.

        Raises:
            EnumerationError: If the root is missing or a directory cannot be listed.
        """
        if not self.root.is_dir():
            raise EnumerationError(f"project root {self.root} is not a directory")

        pending: Dict[Path, List[IgnoreLevel]] = {self.root: self._root_levels(options)}
        count = 0

        for dirpath, dirnames, filenames in self.root.walk(on_error=_raise_walk_error):
            rel_dir = "" if dirpath == self.root else dirpath.relative_to(self.root).as_posix()
            levels = pending.pop(dirpath, [])

            if options.use_gitignore:
                for ignore_name in IGNORE_FILES:
                    spec = load_ignore_file(dirpath / ignore_name)
                    if spec is not None:
                        levels = levels + [(rel_dir, spec)]

            kept = []
            for name in sorted(dirnames):
                rel = _join(rel_dir, name)
                if name in ALWAYS_SKIPPED_DIRS or self._skip(rel, name, True, levels, options):
                    continue
                kept.append(name)
                pending[dirpath / name] = levels
            dirnames[:] = kept

            for name in sorted(filenames):
                rel = _join(rel_dir, name)
                if self._skip(rel, name, False, levels, options):
                    continue
                # Symlinks are content (their target text), special files are not
                path = dirpath / name
                if not (path.is_symlink() or path.is_file()):
                    logger.debug(f"Skipping non-regular file {rel}")
                    continue
                count += 1
                yield rel

        logger.debug(f"Enumerated {count} files under {self.root}")

    def record(self, path: str) -> FileRecord:
        return FileRecord(path=path)

    def open(self, path: str) -> BinaryIO:
        full_path = self.root / path
        if full_path.is_symlink():
            return io.BytesIO(os.readlink(os.fsencode(full_path)))
        return open(full_path, "rb")
