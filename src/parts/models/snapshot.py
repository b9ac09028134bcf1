"""Persisted per-part fingerprint state."""

from datetime import datetime, timezone
from typing import Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

STATE_FORMAT = "parts-state"
STATE_VERSION = 1


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PartState(BaseModel):
    """Last known state of a single part.

    Attributes:
        fingerprint: Hex digest of the part's content.
        revision: Git revision the fingerprint was computed at, if any.
        rules_digest: Digest of the part definition used to compute it.
        updated_at: When the fingerprint was recorded.
    """

    model_config = ConfigDict(extra="forbid")

    fingerprint: str = Field(pattern=r"^[0-9a-f]{64}$")
    revision: Optional[str] = None
    rules_digest: Optional[str] = None
    updated_at: datetime = Field(default_factory=utcnow)


class Snapshot(BaseModel):
    """Mapping of part name to its last committed state.

    ``format`` and ``version`` make the document self-describing so that a
    file written by another tool or an incompatible release is rejected
    instead of misread.

    Attributes:
        format: Format tag, always ``parts-state``.
        version: Format version.
        generation: Incremented on every commit, used to detect lost updates.
        parts: Part name to state.
    """

    model_config = ConfigDict(extra="forbid")

    format: Literal["parts-state"] = STATE_FORMAT
    version: int = STATE_VERSION
    generation: int = 0
    parts: Dict[str, PartState] = Field(default_factory=dict)

    def fingerprints(self) -> Dict[str, str]:
        """Return a plain name to fingerprint mapping."""
        return {name: state.fingerprint for name, state in self.parts.items()}
