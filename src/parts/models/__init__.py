"""Data models for parts."""

from .files import FileRecord
from .git import TreeEntry
from .report import ChangeReport, PartOutcome, PartStatus
from .snapshot import STATE_FORMAT, STATE_VERSION, PartState, Snapshot

__all__ = [
    "ChangeReport",
    "FileRecord",
    "PartOutcome",
    "PartState",
    "PartStatus",
    "STATE_FORMAT",
    "STATE_VERSION",
    "Snapshot",
    "TreeEntry",
]
