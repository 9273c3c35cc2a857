"""Offline keyword classifier and backend selection."""

from __future__ import annotations

import logging
from collections import Counter
from typing import Optional, Protocol, Sequence

from .config import AppConfig
from .errors import EmptyInput
from .models import (
    ActivityCandidate,
    ActivityEstimate,
    CalendarEvent,
    Evidence,
    Sample,
)

logger = logging.getLogger(__name__)

MAX_ALTERNATIVES = 3

BROWSER_KEYWORDS = ("firefox", "chrome", "edge")

# Checked in order; the first rule with a matching keyword wins.
_BROWSER_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("gmail", "mail"), "メール確認"),
    (("google doc", "document"), "ドキュメント作成"),
    (("calendar",), "スケジュール確認"),
    (("youtube", "video"), "動画視聴"),
    (("chat", "slack", "discord"), "チャット/コミュニケーション"),
)
BROWSING_LABEL = "ウェブブラウジング"

_APP_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("terminal", "console", "bash"), "ターミナル作業"),
    (("code", "vscode", "intellij"), "プログラミング"),
    (("libreoffice", "calc", "writer"), "オフィス作業"),
    (("gimp", "photoshop", "illustrator"), "画像編集"),
    (("meeting", "zoom", "teams"), "ミーティング"),
)
OTHER_LABEL = "その他の活動"


class Classifier(Protocol):
    def classify(self, samples: Sequence[Sample]) -> ActivityEstimate: ...


def categorize(title: str) -> str:
    """Map a window title to an activity category label."""
    title = title.lower()
    if _contains_any(title, BROWSER_KEYWORDS):
        for keywords, label in _BROWSER_RULES:
            if _contains_any(title, keywords):
                return label
        return BROWSING_LABEL
    for keywords, label in _APP_RULES:
        if _contains_any(title, keywords):
            return label
    return OTHER_LABEL


def _contains_any(text: str, keywords: tuple[str, ...]) -> bool:
    return any(keyword in text for keyword in keywords)


def find_overlapping_event(samples: Sequence[Sample]) -> Optional[CalendarEvent]:
    """First event (samples, then their events) containing the first sample's time."""
    if not samples:
        return None
    moment = samples[0].timestamp
    for sample in samples:
        for event in sample.calendar_events:
            if event.overlaps(moment):
                return event
    return None


class HeuristicClassifier:
    """Labels the majority window title using keyword rules."""

    source = "heuristic"

    def classify(self, samples: Sequence[Sample]) -> ActivityEstimate:
        if not samples:
            raise EmptyInput("No samples to classify")

        total = len(samples)
        # Counter keeps first-encounter order, which breaks count ties.
        counts = Counter(sample.window_title.lower() for sample in samples)
        ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
        majority_title, majority_count = ranked[0]
        label = categorize(majority_title)

        alternatives: list[ActivityCandidate] = []
        seen = {label}
        for title, count in ranked[1:]:
            alt_label = categorize(title)
            if alt_label in seen:
                continue
            seen.add(alt_label)
            alternatives.append(ActivityCandidate(alt_label, count / total))
            if len(alternatives) >= MAX_ALTERNATIVES:
                break

        estimate = ActivityEstimate(
            label=label,
            confidence=majority_count / total,
            timestamp=samples[0].timestamp,
            alternatives=tuple(alternatives),
            evidence=Evidence(
                window_title=majority_title,
                calendar_event=find_overlapping_event(samples),
            ),
            source=self.source,
        )
        logger.debug(
            "Heuristic estimate: %s (%.2f) from '%s' over %d samples",
            estimate.label,
            estimate.confidence,
            majority_title,
            total,
        )
        return estimate


def build_classifier(config: AppConfig) -> Classifier:
    """Pick the classifier backend from the configured credentials."""
    if config.openai is not None:
        from .llm import LLMClassifier

        logger.info("Using %s for activity classification", config.openai.model)
        return LLMClassifier.from_config(config.openai)
    logger.info("Using the offline keyword classifier")
    return HeuristicClassifier()
