"""One analysis cycle: recent samples -> estimate -> project -> ledger."""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from .classifier import Classifier
from .config import TrackerSettings
from .db import fetch_recent_samples, insert_analysis
from .errors import EmptyInput, LedgerTransportError, RemoteClassifierError
from .ledger import LedgerClient
from .models import ActivityEstimate, Project, ReconcileAction, ReconcileOutcome
from .projects import infer_project
from .reconciler import Reconciler

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class CycleResult:
    estimate: ActivityEstimate
    project: Optional[Project]
    outcome: Optional[ReconcileOutcome]


class AnalysisPipeline:
    """Classifies the latest block of samples and reconciles it into the ledger."""

    def __init__(
        self,
        conn: sqlite3.Connection,
        settings: TrackerSettings,
        classifier: Classifier,
        ledger: LedgerClient,
        reconciler: Reconciler,
    ) -> None:
        self._conn = conn
        self.settings = settings
        self.classifier = classifier
        self.ledger = ledger
        self.reconciler = reconciler

    def close(self) -> None:
        self.ledger.close()
        self._conn.close()

    def estimate(self, now: Optional[datetime] = None) -> Optional[ActivityEstimate]:
        now = now or datetime.now(timezone.utc)
        window_minutes = self.settings.block_length.total_seconds() / 60
        samples = fetch_recent_samples(self._conn, window_minutes, now=now)
        try:
            estimate = self.classifier.classify(samples)
        except EmptyInput:
            logger.info("No samples in the last %d minutes; nothing to analyze.", window_minutes)
            return None
        except RemoteClassifierError as exc:
            logger.error("Classification failed; skipping this block: %s", exc)
            return None
        logger.info(
            "Analysis result: activity='%s', confidence=%.2f (%d samples)",
            estimate.label,
            estimate.confidence,
            len(samples),
        )
        return estimate

    def run_cycle(
        self, now: Optional[datetime] = None, *, dry_run: bool = False
    ) -> Optional[CycleResult]:
        estimate = self.estimate(now)
        if estimate is None:
            return None

        reason = self.reconciler.skip_reason(estimate)
        if reason:
            logger.info("Skipping '%s': %s", estimate.label, reason)
            outcome = ReconcileOutcome(ReconcileAction.SKIPPED, reason)
            if not dry_run:
                insert_analysis(self._conn, estimate, outcome)
            return CycleResult(estimate, None, outcome)

        try:
            projects = self.ledger.list_projects()
        except LedgerTransportError as exc:
            logger.error("Could not load projects; skipping this block: %s", exc)
            return CycleResult(estimate, None, None)
        project = infer_project(projects, estimate)

        if dry_run:
            return CycleResult(estimate, project, None)

        try:
            outcome = self.reconciler.reconcile(estimate, project)
        except LedgerTransportError as exc:
            logger.error("Failed to write to the ledger; skipping this block: %s", exc)
            return CycleResult(estimate, project, None)

        insert_analysis(self._conn, estimate, outcome)
        return CycleResult(estimate, project, outcome)
