"""File tree backends: the live working tree and git revisions."""

from .base import ContentSource, WalkOptions, is_hidden
from .live import LiveTree
from .revision import RevisionTree

__all__ = ["ContentSource", "LiveTree", "RevisionTree", "WalkOptions", "is_hidden"]
