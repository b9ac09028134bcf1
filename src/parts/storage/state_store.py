"""JSON file storage for the last committed snapshot.

Layout::

    <project>/.parts/
        state.json        committed snapshot
        state.json.lock   advisory lock held while committing

Writes go to a temporary file in the same directory which is then renamed
over ``state.json``, so readers only ever see a complete snapshot.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from ..exceptions import StateConflictError, StateFormatError, StateIOError
from ..models.snapshot import STATE_FORMAT, STATE_VERSION, Snapshot

try:
    import fcntl  # POSIX systems

    HAVE_FCNTL = True
except ImportError:
    HAVE_FCNTL = False

try:
    import msvcrt  # Windows

    HAVE_MSVCRT = True
except ImportError:
    HAVE_MSVCRT = False

logger = logging.getLogger(__name__)


class _FileLock:
    """Exclusive advisory lock on ``<path>.lock``, blocking until acquired."""

    def __init__(self, path: Path):
        self.lock_path = path.with_name(path.name + ".lock")
        self.lock_file = None

    def __enter__(self):
        try:
            self.lock_path.parent.mkdir(parents=True, exist_ok=True)
            self.lock_file = open(self.lock_path, "a+b")
        except OSError as e:
            raise StateIOError(f"cannot open lock file {self.lock_path}: {e}") from e
        if HAVE_FCNTL:
            fcntl.flock(self.lock_file.fileno(), fcntl.LOCK_EX)
        elif HAVE_MSVCRT:
            self.lock_file.seek(0)
            msvcrt.locking(self.lock_file.fileno(), msvcrt.LK_LOCK, 1)
        else:
            logger.warning("File locking not available on this platform")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.lock_file:
            if HAVE_FCNTL:
                fcntl.flock(self.lock_file.fileno(), fcntl.LOCK_UN)
            elif HAVE_MSVCRT:
                self.lock_file.seek(0)
                msvcrt.locking(self.lock_file.fileno(), msvcrt.LK_UNLCK, 1)
            self.lock_file.close()
            self.lock_file = None


class StateStore:
    """Persist and load the per-part fingerprint snapshot.

    Usage:
        store = StateStore(Path(".parts/state.json"))
        prior = store.load()
        store.commit(new_snapshot, expected_generation=prior.generation if prior else 0)
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def __repr__(self) -> str:
        return f"StateStore({str(self.path)!r})"

    def ignore_patterns(self, root: Path) -> List[str]:
        """Gitignore-style patterns covering the state, lock and temporary files.

        Returns an empty list when the state file lives outside ``root``.
        """
        try:
            rel = self.path.resolve().relative_to(Path(root).resolve()).as_posix()
        except ValueError:
            return []
        parent, _, name = rel.rpartition("/")
        prefix = f"/{parent}/" if parent else "/"
        return [f"/{rel}", f"/{rel}.lock", f"{prefix}.{name}.*.tmp"]

    def load(self) -> Optional[Snapshot]:
        """Return the last committed snapshot, or None on the first run.

        Raises:
            StateIOError: If the file exists but cannot be read.
            StateFormatError: If the content is corrupt, of another format,
                or of an unsupported version.
        """
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            logger.debug(f"No state file at {self.path}")
            return None
        except OSError as e:
            raise StateIOError(f"cannot read state file {self.path}: {e}") from e

        return self._parse(raw)

    def _parse(self, raw: bytes) -> Snapshot:
        try:
            document = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise StateFormatError(f"state file {self.path} is not valid JSON: {e}") from e

        if not isinstance(document, dict) or document.get("format") != STATE_FORMAT:
            raise StateFormatError(f"state file {self.path} is not a {STATE_FORMAT} document")

        version = document.get("version")
        if version != STATE_VERSION:
            raise StateFormatError(
                f"state file {self.path} has format version {version!r}, "
                f"this release reads version {STATE_VERSION}"
            )

        try:
            return Snapshot.model_validate(document)
        except ValidationError as e:
            raise StateFormatError(f"state file {self.path} is corrupt: {e}") from e

    def _current_generation(self, overwrite_invalid: bool = False) -> int:
        try:
            snapshot = self.load()
        except StateFormatError:
            if not overwrite_invalid:
                raise
            logger.warning(f"Overwriting unreadable state file {self.path}")
            return 0
        return snapshot.generation if snapshot is not None else 0

    def commit(
        self,
        snapshot: Snapshot,
        expected_generation: Optional[int] = None,
        overwrite_invalid: bool = False,
    ) -> Snapshot:
        """Atomically replace the persisted snapshot.

        Args:
            snapshot: Snapshot to persist; its generation is overwritten.
            expected_generation: Generation the caller based its work on
                (0 for a first run). When given and another run committed in
                the meantime, nothing is written.
            overwrite_invalid: Replace a corrupt or incompatible state file
                instead of failing. Only set when the caller opted in.

        Returns:
            The snapshot as written, with its new generation.

        Raises:
            StateConflictError: If the stored generation differs from
                ``expected_generation``.
            StateIOError: If the snapshot cannot be written.
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StateIOError(f"cannot create state directory {self.path.parent}: {e}") from e

        with _FileLock(self.path):
            current = self._current_generation(overwrite_invalid)
            if expected_generation is not None and current != expected_generation:
                raise StateConflictError(
                    f"state file {self.path} was updated by another run "
                    f"(generation {current}, expected {expected_generation})"
                )

            written = snapshot.model_copy(update={"generation": current + 1})
            self._write_atomic(written.model_dump_json(indent=2).encode("utf-8"))

        logger.info(f"Committed snapshot generation {written.generation} with {len(written.parts)} part(s)")
        return written

    def _write_atomic(self, payload: bytes) -> None:
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            # Atomic rename (POSIX guarantees atomicity)
            os.replace(tmp_path, self.path)
        except OSError as e:
            try:
                os.unlink(tmp_path)
            except FileNotFoundError:
                pass
            raise StateIOError(f"cannot write state file {self.path}: {e}") from e
        except BaseException:
            try:
                os.unlink(tmp_path)
            except FileNotFoundError:
                pass
            raise

