"""Change classification of parts against the last committed snapshot."""

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Set

from .config.settings import default_jobs
from .exceptions import GitError, PartIOError, StateFormatError
from .fingerprint import Fingerprinter
from .git import GitClient
from .logging import RunContext, get_logger
from .matcher import Part
from .models.report import ChangeReport, PartOutcome, PartStatus
from .models.snapshot import PartState, Snapshot, utcnow
from .resolver import PartResolver
from .sources.base import ContentSource
from .storage.state_store import StateStore

logger = logging.getLogger(__name__)
events = get_logger(__name__)


@dataclass
class Evaluation:
    """Fingerprints computed for one run, before classification."""

    fingerprints: Dict[str, str] = field(default_factory=dict)
    failures: Dict[str, str] = field(default_factory=dict)
    file_counts: Dict[str, int] = field(default_factory=dict)
    reused: Set[str] = field(default_factory=set)


def classify(
    declared: Sequence[str],
    current: Mapping[str, str],
    prior: Optional[Mapping[str, str]],
    failures: Optional[Mapping[str, str]] = None,
    files: Optional[Mapping[str, int]] = None,
    reused: Optional[Set[str]] = None,
) -> List[PartOutcome]:
    """Classify every part named in either the declared set or the prior snapshot.

    Pure function: no I/O.

    Args:
        declared: Currently declared part names, in declaration order.
        current: Fresh fingerprints of declared parts that could be evaluated.
        prior: Fingerprints from the last snapshot, None on a first run.
        failures: Error message of declared parts that could not be evaluated.
        files: Member count per part, informational.
        reused: Parts whose fingerprint was carried over from the snapshot.

    Returns:
        Outcomes in declaration order, then removed parts sorted by name.
    """
    prior = prior or {}
    failures = failures or {}
    files = files or {}
    reused = reused or set()
    declared_set = set(declared)
    outcomes = []

    for name in declared:
        old = prior.get(name)
        if name in failures:
            outcomes.append(PartOutcome(
                name=name, status=PartStatus.FAILED, old=old, error=failures[name],
            ))
            continue

        new = current[name]
        if old is None:
            status = PartStatus.ADDED
        elif old == new:
            status = PartStatus.UNCHANGED
        else:
            status = PartStatus.CHANGED
        outcomes.append(PartOutcome(
            name=name, status=status, old=old, new=new,
            files=files.get(name), reused=name in reused,
        ))

    for name in sorted(n for n in prior if n not in declared_set):
        outcomes.append(PartOutcome(name=name, status=PartStatus.REMOVED, old=prior[name]))

    return outcomes


class ChangeDetector:
    """Fingerprint every part, compare with the stored snapshot and optionally commit.

    Args:
        parts: Compiled parts in declaration order.
        source: Tree to evaluate (working tree or git revision).
        store: Snapshot persistence.
        jobs: Maximum number of parts fingerprinted concurrently.
        git: Git client, enables the touched-paths shortcut together with
            ``base_revision``.
        base_revision: Revision the prior snapshot is expected to be anchored at.
    """

    def __init__(
        self,
        parts: Sequence[Part],
        source: ContentSource,
        store: StateStore,
        jobs: Optional[int] = None,
        git: Optional[GitClient] = None,
        base_revision: Optional[str] = None,
    ):
        self.parts = list(parts)
        self.source = source
        self.store = store
        self.jobs = jobs or default_jobs()
        self.git = git
        self.base_revision = base_revision
        self._resolved_base: Optional[str] = None

    def load_prior(self, ignore_invalid_state: bool = False) -> Optional[Snapshot]:
        """Load the prior snapshot.

        A corrupt or incompatible state file is an error unless the caller
        explicitly opts into treating it as a first run.
        """
        try:
            return self.store.load()
        except StateFormatError as e:
            if not ignore_invalid_state:
                raise
            events.warning("invalid_state_ignored", path=str(self.store.path), error=str(e))
            return None

    def _touched_paths(self, prior: Optional[Snapshot]) -> Optional[Set[str]]:
        """Paths changed between the base revision and the evaluated revision, if usable."""
        if self.git is None or self.base_revision is None or prior is None:
            return None
        if self.source.revision is None:
            return None
        try:
            base = self.git.rev_parse(self.base_revision)
            touched = self.git.diff_paths(base, self.source.revision)
        except GitError as e:
            logger.warning(f"Cannot diff against {self.base_revision}, recomputing every part: {e}")
            return None
        self._resolved_base = base
        logger.debug(f"{len(touched)} path(s) touched since {base[:12]}")
        return touched

    def _reusable(self, part: Part, prior: Optional[Snapshot], touched: Optional[Set[str]]) -> Optional[PartState]:
        if touched is None or prior is None:
            return None
        state = prior.parts.get(part.name)
        if state is None or state.revision != self._resolved_base:
            return None
        if state.rules_digest != part.rules_digest:
            return None
        if any(part.matches(path) for path in touched):
            return None
        return state

    def compute(self, prior: Optional[Snapshot] = None) -> Evaluation:
        """Fingerprint every declared part.

        Parts whose member files could not be read are reported in
        ``failures`` instead of ``fingerprints``.

        Raises:
            EnumerationError: If the tree cannot be enumerated at all.
        """
        self._resolved_base = None
        touched = self._touched_paths(prior)
        result = Evaluation()

        pending = []
        for part in self.parts:
            state = self._reusable(part, prior, touched)
            if state is not None:
                result.fingerprints[part.name] = state.fingerprint
                result.reused.add(part.name)
            else:
                pending.append(part)

        if not pending:
            return result

        members = PartResolver(pending).resolve(self.source)
        fingerprinter = Fingerprinter(self.source)

        executor = ThreadPoolExecutor(max_workers=min(self.jobs, len(pending)))
        try:
            futures: Dict[str, Future] = {
                part.name: executor.submit(fingerprinter.fingerprint, members[part.name], part.name)
                for part in pending
            }
            for part in pending:
                try:
                    result.fingerprints[part.name] = futures[part.name].result()
                    result.file_counts[part.name] = len(members[part.name])
                except PartIOError as e:
                    result.failures[part.name] = str(e)
                    events.error("part_failed", part=part.name, error=str(e))
        except BaseException:
            # Interrupted: drop queued parts, nothing gets committed
            executor.shutdown(wait=True, cancel_futures=True)
            raise
        executor.shutdown(wait=True)

        return result

    def run(
        self,
        commit: bool = True,
        ignore_invalid_state: bool = False,
        ignore_prior: bool = False,
    ) -> ChangeReport:
        """Classify every part and, when asked and possible, commit the new snapshot.

        Nothing is committed when ``commit`` is false (dry run) or when any
        part failed to fingerprint. The stored snapshot is only ever replaced
        by a successful commit.

        Args:
            commit: Persist the new snapshot.
            ignore_invalid_state: Treat a corrupt or incompatible state file
                as a first run (and overwrite it on commit).
            ignore_prior: Compare against nothing, as on a first run, while
                keeping the stored snapshot until the commit replaces it.

        Raises:
            EnumerationError: If the tree cannot be enumerated.
            StateFormatError: If the state file is invalid and not ignored.
            StateIOError: If the state file cannot be read or written.
            StateConflictError: If another run committed in the meantime.
        """
        with RunContext():
            start_time = time.time()
            stored = self.load_prior(ignore_invalid_state or ignore_prior)
            prior = None if ignore_prior else stored
            events.info(
                "run_started",
                source=self.source.describe(),
                parts=len(self.parts),
                prior_generation=prior.generation if prior else None,
            )

            evaluation = self.compute(prior)

            outcomes = classify(
                [part.name for part in self.parts],
                evaluation.fingerprints,
                prior.fingerprints() if prior else None,
                evaluation.failures,
                evaluation.file_counts,
                evaluation.reused,
            )

            committed = False
            if commit and evaluation.failures:
                events.warning("commit_skipped", failed=sorted(evaluation.failures))
            elif commit:
                self.store.commit(
                    self._build_snapshot(evaluation.fingerprints),
                    expected_generation=stored.generation if stored else 0,
                    overwrite_invalid=ignore_invalid_state or ignore_prior,
                )
                committed = True

            report = ChangeReport(
                outcomes=outcomes,
                revision=self.source.revision,
                base_revision=self._resolved_base,
                committed=committed,
            )
            events.info(
                "run_finished",
                changed=report.changed_count,
                failed=len(report.failed),
                reused=len(evaluation.reused),
                committed=committed,
                elapsed=round(time.time() - start_time, 3),
            )
            return report

    def _build_snapshot(self, fingerprints: Mapping[str, str]) -> Snapshot:
        now = utcnow()
        return Snapshot(parts={
            part.name: PartState(
                fingerprint=fingerprints[part.name],
                revision=self.source.revision,
                rules_digest=part.rules_digest,
                updated_at=now,
            )
            for part in self.parts
        })
