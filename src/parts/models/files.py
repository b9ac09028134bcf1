"""Transient records describing resolved part members."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True, order=True)
class FileRecord:
    """A resolved member of a part at a point in time.

    Attributes:
        path: Project-relative path, always ``/`` separated.
        size: Byte length observed when the record was created, if known.
        blob_id: Content-addressable handle (git blob id) when read from a revision.
    """

    path: str
    size: Optional[int] = None
    blob_id: Optional[str] = None
