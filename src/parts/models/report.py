"""Data models for change classification results."""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, computed_field


class PartStatus(str, Enum):
    UNCHANGED = "unchanged"
    CHANGED = "changed"
    ADDED = "added"
    REMOVED = "removed"
    FAILED = "failed"


class PartOutcome(BaseModel):
    """Classification of a single part for one run.

    Attributes:
        name: Part name.
        status: Classification.
        old: Fingerprint from the prior snapshot, if any.
        new: Freshly computed fingerprint, if any.
        error: Why the part could not be evaluated (``failed`` only).
        files: Number of member files, when the part was resolved.
        reused: True when the prior fingerprint was carried over because no
            member path was touched between the two revisions.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    status: PartStatus
    old: Optional[str] = None
    new: Optional[str] = None
    error: Optional[str] = None
    files: Optional[int] = None
    reused: bool = False


class ChangeReport(BaseModel):
    """Ordered per-part outcomes of one run.

    Parts appear in declaration order, followed by removed parts sorted by
    name.
    """

    model_config = ConfigDict(frozen=True)

    outcomes: List[PartOutcome]
    revision: Optional[str] = None
    base_revision: Optional[str] = None
    committed: bool = False

    @computed_field
    @property
    def changed_count(self) -> int:
        """Number of changed, added and removed parts."""
        return sum(
            1 for o in self.outcomes
            if o.status in (PartStatus.CHANGED, PartStatus.ADDED, PartStatus.REMOVED)
        )

    @computed_field
    @property
    def has_changes(self) -> bool:
        return self.changed_count > 0

    @property
    def failed(self) -> List[PartOutcome]:
        return [o for o in self.outcomes if o.status is PartStatus.FAILED]

    @property
    def ok(self) -> bool:
        """True when every part could be evaluated."""
        return not self.failed

    def by_name(self) -> Dict[str, PartOutcome]:
        return {o.name: o for o in self.outcomes}

    def names(self, status: PartStatus) -> List[str]:
        return [o.name for o in self.outcomes if o.status is status]
