"""Resolution of declared parts to their member files."""

import logging
from collections import OrderedDict
from typing import Dict, List, Sequence

from .matcher import Part
from .models.files import FileRecord
from .sources.base import ContentSource, WalkOptions

logger = logging.getLogger(__name__)


class PartResolver:
    """Compute the member files of every part in a single pass per walk setting.

    Parts sharing the same :class:`WalkOptions` (the common case) share one
    streaming pass over the enumerator; each yielded path is tested against
    every part of the group. A path that matches several parts is recorded
    for each of them.
    """

    def __init__(self, parts: Sequence[Part]):
        self.parts = list(parts)

    def _groups(self) -> Dict[WalkOptions, List[Part]]:
        groups: Dict[WalkOptions, List[Part]] = OrderedDict()
        for part in self.parts:
            groups.setdefault(part.walk, []).append(part)
        return groups

    def resolve(self, source: ContentSource) -> Dict[str, List[FileRecord]]:
        """Return part name to member records, in declaration order.

        Parts whose rules match nothing map to an empty list.

        Raises:
            EnumerationError: If the source cannot be enumerated.
        """
        members: Dict[str, List[FileRecord]] = {part.name: [] for part in self.parts}

        for options, parts in self._groups().items():
            scanned = 0
            for path in source.iter_paths(options):
                scanned += 1
                record = None
                for part in parts:
                    if part.matches(path):
                        if record is None:
                            record = source.record(path)
                        members[part.name].append(record)
            logger.debug(f"Scanned {scanned} paths for {len(parts)} part(s) in {source.describe()}")

        for name, records in members.items():
            logger.debug(f"Part {name!r} has {len(records)} member file(s)")
        return members

    def members_of(self, part: Part, source: ContentSource) -> List[FileRecord]:
        """Resolve a single part."""
        return [source.record(path) for path in source.iter_paths(part.walk) if part.matches(path)]
