"""Thin wrapper around the git command line."""

import logging
import subprocess
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Iterator, List, Set

from .exceptions import GitError
from .models.git import TreeEntry

logger = logging.getLogger(__name__)


class GitClient:
    """Run git plumbing commands against a repository.

    Only what change detection needs is exposed: the tracked tree of a
    revision, blob content, and the paths touched between two revisions.
    """

    def __init__(self, repo_path: Path, git: str = "git"):
        self.repo_path = Path(repo_path)
        self.git = git

    def _run(self, args: List[str], check: bool = True) -> subprocess.CompletedProcess:
        cmd = [self.git, *args]
        logger.debug(f"Running {' '.join(cmd)}")
        try:
            result = subprocess.run(cmd, cwd=self.repo_path, capture_output=True)
        except OSError as e:
            raise GitError(f"failed to run git: {e}", command=cmd) from e

        if check and result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace").strip()
            raise GitError(f"{' '.join(cmd)} failed: {stderr}", command=cmd, stderr=stderr)
        return result

    def is_repository(self) -> bool:
        """Return whether ``repo_path`` is inside a git work tree."""
        try:
            result = self._run(["rev-parse", "--is-inside-work-tree"], check=False)
        except GitError:
            return False
        return result.returncode == 0 and result.stdout.strip() == b"true"

    def rev_parse(self, revision: str) -> str:
        """Resolve a revision (branch, tag, ``HEAD~1``...) to a full commit id."""
        result = self._run(["rev-parse", "--verify", "--end-of-options", f"{revision}^{{commit}}"])
        return result.stdout.decode().strip()

    def ls_tree(self, revision: str) -> List[TreeEntry]:
        """List every blob recorded in the tree of ``revision``.

        Submodules (commit entries) are skipped.
        """
        result = self._run(["ls-tree", "-r", "-l", "-z", "--full-tree", revision])
        return self._parse_ls_tree(result.stdout)

    def _parse_ls_tree(self, output: bytes) -> List[TreeEntry]:
        entries = []
        for record in output.split(b"\0"):
            if not record:
                continue
            meta, _, path = record.partition(b"\t")
            # "<mode> <type> <object> <size>", size is right-aligned
            fields = meta.split()
            if len(fields) != 4 or fields[1] != b"blob":
                continue
            mode, _, blob_id, size = fields
            entries.append(TreeEntry(
                path=path.decode("utf-8", errors="surrogateescape"),
                blob_id=blob_id.decode(),
                size=int(size),
                mode=mode.decode(),
            ))
        return entries

    @contextmanager
    def open_blob(self, blob_id: str) -> Iterator[IO[bytes]]:
        """Stream the content of a blob without buffering it whole.

        Raises:
            GitError: If git cannot produce the blob.
        """
        cmd = [self.git, "cat-file", "blob", blob_id]
        try:
            proc = subprocess.Popen(
                cmd, cwd=self.repo_path, stdout=subprocess.PIPE, stderr=subprocess.PIPE
            )
        except OSError as e:
            raise GitError(f"failed to run git: {e}", command=cmd) from e

        try:
            yield proc.stdout
            # Drain so that a truncated read cannot look like success
            proc.stdout.read()
        finally:
            proc.stdout.close()
            stderr = proc.stderr.read().decode("utf-8", errors="replace").strip()
            proc.stderr.close()
            returncode = proc.wait()
        if returncode != 0:
            raise GitError(f"{' '.join(cmd)} failed: {stderr}", command=cmd, stderr=stderr)

    def diff_paths(self, old_rev: str, new_rev: str) -> Set[str]:
        """Return every path added, modified, deleted or renamed between two revisions.

        Renames are reported as both their old and new path.
        """
        result = self._run(["diff", "--name-only", "--no-renames", "-z", old_rev, new_rev])
        return {
            p.decode("utf-8", errors="surrogateescape")
            for p in result.stdout.split(b"\0")
            if p
        }
