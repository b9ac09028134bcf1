"""Data models for Git-related information."""

from dataclasses import dataclass


@dataclass(frozen=True)
class TreeEntry:
    """A blob listed in a revision's tree object.

    Attributes:
        path: Path relative to the repository root.
        blob_id: Object id of the blob.
        size: Blob size in bytes.
        mode: Git file mode (e.g. ``100644``, ``120000`` for symlinks).
    """

    path: str
    blob_id: str
    size: int
    mode: str = "100644"
