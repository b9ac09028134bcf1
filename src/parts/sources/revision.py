"""Enumeration of a git revision's tree."""

import logging
from typing import ContextManager, Dict, IO, Iterator, List, Optional

from pathspec import GitIgnoreSpec

from ..exceptions import EnumerationError, GitError
from ..git import GitClient
from ..models.files import FileRecord
from ..models.git import TreeEntry
from .base import (
    IGNORE_FILES,
    ContentSource,
    IgnoreLevel,
    WalkOptions,
    compile_ignore_lines,
    is_hidden,
    is_ignored,
    load_ignore_file,
)

logger = logging.getLogger(__name__)


def _parent(path: str) -> str:
    return path.rpartition("/")[0]


class RevisionTree(ContentSource):
    """The tracked files of a git revision, read from the object store.

    Interchangeable with :class:`~parts.sources.live.LiveTree`: the same
    content yields the same fingerprints. The ``.gitignore`` and ``.ignore``
    files committed in the revision, plus the repository's
    ``.git/info/exclude``, are applied as the working tree walk applies
    them, so a tracked file matching an ignore rule is not a member in
    either backend. Symbolic links are blobs holding the target text.
    """

    def __init__(self, git: GitClient, revision: str):
        self.git = git
        self.requested = revision
        try:
            self.revision = git.rev_parse(revision)
        except GitError as e:
            raise EnumerationError(f"cannot resolve revision {revision!r}: {e}") from e
        self._entries: Optional[Dict[str, TreeEntry]] = None
        self._ignore_specs: Optional[Dict[str, List[GitIgnoreSpec]]] = None

    def __repr__(self) -> str:
        return f"RevisionTree({self.requested!r} -> {self.revision[:12]})"

    def describe(self) -> str:
        return f"revision {self.requested} ({self.revision[:12]})"

    @property
    def entries(self) -> Dict[str, TreeEntry]:
        if self._entries is None:
            try:
                listing = self.git.ls_tree(self.revision)
            except GitError as e:
                raise EnumerationError(f"cannot list tree of {self.revision}: {e}") from e
            self._entries = {entry.path: entry for entry in listing}
            logger.debug(f"Revision {self.revision[:12]} tracks {len(self._entries)} blobs")
        return self._entries

    def _read_ignore_blob(self, entry: TreeEntry) -> Optional[GitIgnoreSpec]:
        try:
            with self.git.open_blob(entry.blob_id) as f:
                content = f.read()
        except GitError as e:
            raise EnumerationError(f"cannot read ignore file {entry.path} at {self.revision}: {e}") from e
        return compile_ignore_lines(content.decode("utf-8", errors="replace").splitlines())

    @property
    def ignore_specs(self) -> Dict[str, List[GitIgnoreSpec]]:
        """Committed ignore files per directory, in :data:`IGNORE_FILES` order."""
        if self._ignore_specs is None:
            specs: Dict[str, List[GitIgnoreSpec]] = {}
            for name in IGNORE_FILES:
                for path, entry in self.entries.items():
                    directory, _, base = path.rpartition("/")
                    if base != name:
                        continue
                    spec = self._read_ignore_blob(entry)
                    if spec is not None:
                        specs.setdefault(directory, []).append(spec)
            self._ignore_specs = specs
        return self._ignore_specs

    def iter_paths(self, options: WalkOptions) -> Iterator[str]:
        levels_by_dir: Dict[str, List[IgnoreLevel]] = {}
        ignored_dirs: Dict[str, bool] = {}

        if options.use_gitignore:
            exclude = load_ignore_file(self.git.repo_path / ".git" / "info" / "exclude")
            root_levels: List[IgnoreLevel] = [("", exclude)] if exclude else []
            specs = self.ignore_specs
        else:
            root_levels, specs = [], {}

        def levels_for(directory: str) -> List[IgnoreLevel]:
            # Levels in effect for entries directly inside ``directory``
            if directory not in levels_by_dir:
                inherited = levels_for(_parent(directory)) if directory else root_levels
                own = [(directory, spec) for spec in specs.get(directory, [])]
                levels_by_dir[directory] = inherited + own
            return levels_by_dir[directory]

        def dir_excluded(directory: str) -> bool:
            # An excluded directory is pruned with everything below it
            if not directory:
                return False
            if directory not in ignored_dirs:
                parent = _parent(directory)
                ignored_dirs[directory] = (
                    dir_excluded(parent)
                    or options.excluded_by_extra(directory + "/")
                    or (options.use_gitignore and is_ignored(directory, True, levels_for(parent)))
                )
            return ignored_dirs[directory]

        for path in self.entries:
            if options.ignore_hidden and is_hidden(path):
                continue
            if options.excluded_by_extra(path):
                continue
            directory = _parent(path)
            if dir_excluded(directory):
                continue
            if options.use_gitignore and is_ignored(path, False, levels_for(directory)):
                continue
            yield path

    def record(self, path: str) -> FileRecord:
        entry = self.entries[path]
        return FileRecord(path=path, size=entry.size, blob_id=entry.blob_id)

    def open(self, path: str) -> ContextManager[IO[bytes]]:
        entry = self.entries.get(path)
        if entry is None:
            raise FileNotFoundError(f"{path} is not tracked at {self.revision}")
        return self.git.open_blob(entry.blob_id)
