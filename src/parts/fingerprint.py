"""Deterministic content fingerprints for parts."""

import hashlib
import logging
import threading
from typing import Dict, Iterable, Optional, Tuple

from .exceptions import GitError, PartIOError
from .models.files import FileRecord
from .sources.base import ContentSource

logger = logging.getLogger(__name__)

FINGERPRINT_HEADER = b"parts-fingerprint-v1\0"
CHUNK_SIZE = 64 * 1024


def empty_fingerprint() -> str:
    """Fingerprint of a part with no member files."""
    return hashlib.sha256(FINGERPRINT_HEADER).hexdigest()


class Fingerprinter:
    """Fold the content of a part's members into a single sha256 digest.

    Members are sorted by path before folding, so the result does not
    depend on enumeration order. For each member the path, the byte length
    and the sha256 of the content are folded in: renames, truncation and
    content edits all change the fingerprint.

    Per-file digests are memoised for the lifetime of the instance so a file
    shared by overlapping parts is read once per run. The part accumulator
    itself is local to each :meth:`fingerprint` call, which makes concurrent
    calls for different parts safe.
    """

    def __init__(self, source: ContentSource, chunk_size: int = CHUNK_SIZE):
        self.source = source
        self.chunk_size = chunk_size
        self._digests: Dict[str, Tuple[int, bytes]] = {}
        self._lock = threading.Lock()

    def file_digest(self, record: FileRecord, part: Optional[str] = None) -> Tuple[int, bytes]:
        """Return ``(length, sha256 digest)`` of one member file, streaming its content.

        Raises:
            PartIOError: If the file cannot be read, or its size does not
                match the size recorded when it was enumerated.
        """
        with self._lock:
            cached = self._digests.get(record.path)
        if cached is not None:
            return cached

        hasher = hashlib.sha256()
        length = 0
        try:
            with self.source.open(record.path) as f:
                while chunk := f.read(self.chunk_size):
                    hasher.update(chunk)
                    length += len(chunk)
        except (OSError, GitError) as e:
            raise PartIOError(
                f"cannot read {record.path!r}" + (f" of part {part!r}" if part else "") + f": {e}",
                part=part,
                path=record.path,
            ) from e

        if record.size is not None and record.size != length:
            raise PartIOError(
                f"{record.path!r} changed while being read: expected {record.size} bytes, got {length}",
                part=part,
                path=record.path,
            )

        with self._lock:
            return self._digests.setdefault(record.path, (length, hasher.digest()))

    def fingerprint(self, records: Iterable[FileRecord], part: Optional[str] = None) -> str:
        """Compute the fingerprint of a member set.

        Args:
            records: Member files, in any order.
            part: Part name, used in error messages.

        Returns:
            Lowercase hex sha256 digest. An empty set yields :func:`empty_fingerprint`.
        """
        accumulator = hashlib.sha256(FINGERPRINT_HEADER)
        count = 0
        for record in sorted(records, key=lambda r: r.path):
            length, digest = self.file_digest(record, part)
            accumulator.update(record.path.encode("utf-8", errors="surrogateescape"))
            accumulator.update(b"\0")
            accumulator.update(length.to_bytes(8, "big"))
            accumulator.update(digest)
            count += 1

        result = accumulator.hexdigest()
        logger.debug(f"Fingerprinted {count} file(s) for part {part!r}: {result[:12]}")
        return result
