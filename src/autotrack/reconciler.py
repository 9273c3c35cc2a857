"""Merge-or-create reconciliation of estimates against the time ledger."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional, Protocol

from .config import TrackerSettings
from .errors import LedgerTransportError
from .ledger import LedgerClient
from .models import (
    ActivityEstimate,
    LedgerEntry,
    Project,
    ReconcileAction,
    ReconcileOutcome,
)
from .scheduler import block_bounds

logger = logging.getLogger(__name__)

CREATED_WITH = "autotrack"
ORIGIN_FEATURE = "autotrack_activity"
PRIVATE_MARKERS = ("private", "incognito")


class SimilarityService(Protocol):
    def score(self, first: str, second: str) -> float: ...


class Reconciler:
    """Decides whether an estimate is skipped, merged or written as a new entry.

    The ledger stays the system of record: the reconciler only issues create and
    update calls and keeps no entry state between cycles.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        settings: TrackerSettings,
        workspace_id: int,
        similarity: Optional[SimilarityService] = None,
    ) -> None:
        self.ledger = ledger
        self.settings = settings
        self.workspace_id = workspace_id
        self.similarity = similarity

    def skip_reason(self, estimate: ActivityEstimate) -> Optional[str]:
        title = (estimate.evidence.window_title or "").lower()
        if self.settings.skip_private_browsing and any(
            marker in title for marker in PRIVATE_MARKERS
        ):
            return "private browsing"
        if estimate.confidence < self.settings.confidence_threshold:
            return (
                f"confidence {estimate.confidence:.2f} below "
                f"{self.settings.confidence_threshold:.2f}"
            )
        return None

    def reconcile(
        self, estimate: ActivityEstimate, project: Optional[Project] = None
    ) -> ReconcileOutcome:
        start, stop = block_bounds(estimate.timestamp, self.settings.time_block_division)

        reason = self.skip_reason(estimate)
        if reason:
            logger.info("Skipping '%s': %s", estimate.label, reason)
            return ReconcileOutcome(ReconcileAction.SKIPPED, reason, start=start, stop=stop)

        project_id = project.id if project else None
        merged = self._try_merge(estimate.label, project_id, start, stop)
        if merged is not None:
            return merged

        entry = LedgerEntry.for_block(
            description=estimate.label,
            start=start,
            stop=stop,
            project_id=project_id,
            workspace_id=self.workspace_id,
            created_with=CREATED_WITH,
            metadata={
                "origin_feature": ORIGIN_FEATURE,
                "confidence": round(estimate.confidence, 3),
                "source": estimate.source,
            },
        )
        entry_id = self.ledger.create_entry(entry)
        logger.info(
            "Created entry %s '%s' %s-%s", entry_id, entry.description, start, stop
        )
        return ReconcileOutcome(
            ReconcileAction.CREATED, "new entry", entry_id=entry_id, start=start, stop=stop
        )

    def _try_merge(
        self,
        description: str,
        project_id: Optional[int],
        start: datetime,
        stop: datetime,
    ) -> Optional[ReconcileOutcome]:
        since = start - self.settings.merge_lookback
        try:
            entries = self.ledger.list_entries(self.workspace_id, since, stop)
        except LedgerTransportError as exc:
            logger.warning("Could not load recent entries, creating instead: %s", exc)
            return None

        candidates = sorted(entries, key=lambda entry: entry.start, reverse=True)
        for entry in candidates:
            if not self._is_mergeable(entry, description, project_id):
                continue
            gap = abs(start - entry.stop)
            logger.debug("Entry %s ends %s before block start", entry.id, gap)
            if gap > self.settings.merge_gap:
                continue

            new_stop = max(entry.stop, stop)
            try:
                self.ledger.update_entry_stop(entry.id, new_stop)
            except LedgerTransportError as exc:
                logger.warning("Merge into entry %s failed, creating instead: %s", entry.id, exc)
                return None
            logger.info("Extended entry %s '%s' to %s", entry.id, entry.description, new_stop)
            return ReconcileOutcome(
                ReconcileAction.MERGED,
                "extended adjacent entry",
                entry_id=entry.id,
                start=entry.start,
                stop=new_stop,
            )
        return None

    def _is_mergeable(
        self, entry: LedgerEntry, description: str, project_id: Optional[int]
    ) -> bool:
        if entry.id is None or entry.stop is None:
            return False
        if entry.project_id != project_id:
            return False
        return self._descriptions_match(entry.description, description)

    def _descriptions_match(self, existing: str, new: str) -> bool:
        if existing == new:
            return True
        if self.similarity is None:
            return False
        try:
            score = self.similarity.score(existing, new)
        except Exception:
            logger.warning(
                "Similarity check failed for '%s' / '%s'", existing, new, exc_info=True
            )
            return False
        logger.debug("Similarity '%s' / '%s' = %.3f", existing, new, score)
        return score > self.settings.similarity_threshold
