"""Background daemon: a sampling thread and a block-aligned analysis thread."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from .calendar import GoogleCalendarProvider
from .classifier import Classifier, build_classifier
from .collector import SampleCollector, XActiveWindowProbe, XIdleProbe
from .config import AppConfig, TrackerSettings
from .db import open_database
from .ledger import TogglClient
from .pipeline import AnalysisPipeline
from .reconciler import Reconciler, SimilarityService
from .scheduler import BlockSchedule, minutes_per_block, nearest_block_boundary

logger = logging.getLogger(__name__)


def build_similarity(config: AppConfig) -> Optional[SimilarityService]:
    if not config.toggl.use_similarity:
        return None
    if config.openai is None:
        logger.warning("use_similarity is set but [openai] is not configured; ignoring.")
        return None
    from .similarity import EmbeddingSimilarity

    return EmbeddingSimilarity.from_config(config.openai)


def build_sampler(config: AppConfig, settings: TrackerSettings, db_path: Path) -> SampleCollector:
    calendar = (
        GoogleCalendarProvider(config.google_calendar) if config.google_calendar else None
    )
    return SampleCollector(
        open_database(db_path),
        settings,
        window_probe=XActiveWindowProbe(),
        idle_probe=XIdleProbe(),
        calendar=calendar,
    )


def build_pipeline(
    config: AppConfig,
    settings: TrackerSettings,
    db_path: Path,
    classifier: Optional[Classifier] = None,
) -> AnalysisPipeline:
    ledger = TogglClient(config.toggl.api_token, config.toggl.workspace_id)
    reconciler = Reconciler(
        ledger,
        settings,
        workspace_id=config.toggl.workspace_id,
        similarity=build_similarity(config),
    )
    return AnalysisPipeline(
        open_database(db_path),
        settings,
        classifier or build_classifier(config),
        ledger,
        reconciler,
    )


class TrackerDaemon:
    """Runs sampling and analysis as independent threads.

    The sampler owns the idle state; the analysis thread owns ledger writes.
    Each side opens its own database connection inside its thread.
    """

    def __init__(
        self,
        settings: TrackerSettings,
        sampler_factory: Callable[[], SampleCollector],
        pipeline_factory: Callable[[], AnalysisPipeline],
    ) -> None:
        minutes_per_block(settings.time_block_division)
        self.settings = settings
        self._sampler_factory = sampler_factory
        self._pipeline_factory = pipeline_factory
        self._threads: list[threading.Thread] = []

    def run_forever(self) -> None:
        stop_event = threading.Event()
        try:
            self.start(stop_event)
            while any(thread.is_alive() for thread in self._threads):
                stop_event.wait(1.0)
        except KeyboardInterrupt:
            logger.info("Interrupted; stopping tracker.")
        finally:
            stop_event.set()
            self.join()

    def start(self, stop_event: threading.Event) -> None:
        logger.info(
            "Starting tracker: sampling every %ds, %d blocks per hour",
            self.settings.collect_interval.total_seconds(),
            self.settings.time_block_division,
        )
        self._threads = [
            threading.Thread(
                target=self._sample_loop, args=(stop_event,), name="sampler", daemon=True
            ),
            threading.Thread(
                target=self._analysis_loop, args=(stop_event,), name="analysis", daemon=True
            ),
        ]
        for thread in self._threads:
            thread.start()

    def join(self, timeout: float = 10.0) -> None:
        for thread in self._threads:
            thread.join(timeout=timeout)
        self._threads = []
        logger.info("Tracker stopped.")

    def _sample_loop(self, stop_event: threading.Event) -> None:
        sampler = self._sampler_factory()
        interval = self.settings.collect_interval.total_seconds()
        count = 0
        try:
            while not stop_event.is_set():
                try:
                    if sampler.sample_once() is not None:
                        count += 1
                        logger.debug("Collected sample #%d", count)
                except Exception:
                    logger.exception("Error collecting sample")
                stop_event.wait(interval)
        finally:
            sampler.close()

    def _analysis_loop(self, stop_event: threading.Event) -> None:
        pipeline = self._pipeline_factory()
        schedule = BlockSchedule(
            self.settings.time_block_division, datetime.now(timezone.utc)
        )
        logger.info("First analysis in %d seconds", schedule.initial_delay)
        try:
            while not stop_event.wait(schedule.next_delay()):
                boundary = nearest_block_boundary(
                    datetime.now(timezone.utc), self.settings.time_block_division
                )
                logger.info("Running analysis at block %02d:%02d", boundary.hour, boundary.minute)
                try:
                    pipeline.run_cycle(boundary)
                except Exception:
                    logger.exception("Error during analysis")
        finally:
            pipeline.close()
