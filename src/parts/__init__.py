"""parts - monitor changes of user-defined, possibly overlapping project sections."""

from .detector import ChangeDetector, classify
from .exceptions import (
    ConfigError,
    PartIOError,
    PartsError,
    StateFormatError,
)
from .fingerprint import Fingerprinter
from .matcher import compile_parts
from .models.report import ChangeReport, PartOutcome, PartStatus
from .resolver import PartResolver
from .sources import LiveTree, RevisionTree
from .storage import StateStore

__version__ = "0.1.0"

__all__ = [
    "ChangeDetector",
    "ChangeReport",
    "ConfigError",
    "Fingerprinter",
    "LiveTree",
    "PartIOError",
    "PartOutcome",
    "PartResolver",
    "PartStatus",
    "PartsError",
    "RevisionTree",
    "StateFormatError",
    "StateStore",
    "classify",
    "compile_parts",
]
