"""Infer the ledger project that best fits an activity estimate."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from .models import ActivityEstimate, Project

logger = logging.getLogger(__name__)

MATCH_THRESHOLD = 0.5

EXACT_SCORE = 1.0
PROJECT_CONTAINS_LABEL_SCORE = 0.8
LABEL_CONTAINS_PROJECT_SCORE = 0.7
WORD_OVERLAP_WEIGHT = 0.6
WINDOW_TITLE_BONUS = 0.2
CALENDAR_BONUS = 0.3


@dataclass(slots=True)
class ProjectMatch:
    project: Project
    score: float
    reasons: list[str] = field(default_factory=list)


def score_project(project: Project, estimate: ActivityEstimate) -> ProjectMatch:
    name = project.name.strip().lower()
    label = estimate.label.lower()
    match = ProjectMatch(project=project, score=0.0)
    if not name:
        return match

    if name == label:
        match.score = EXACT_SCORE
        match.reasons.append("label equals project name")
    elif label and label in name:
        match.score = PROJECT_CONTAINS_LABEL_SCORE
        match.reasons.append("project name contains label")
    elif name in label:
        match.score = LABEL_CONTAINS_PROJECT_SCORE
        match.reasons.append("label contains project name")
    else:
        project_words = name.split()
        label_words = set(label.split())
        matching = sum(1 for word in project_words if word in label_words)
        if matching:
            match.score = matching / len(project_words) * WORD_OVERLAP_WEIGHT
            match.reasons.append(f"{matching} matching word(s)")

    evidence = estimate.evidence
    if evidence.window_title and name in evidence.window_title.lower():
        match.score += WINDOW_TITLE_BONUS
        match.reasons.append("window title contains project name")
    if evidence.calendar_event and name in evidence.calendar_event.title.lower():
        match.score += CALENDAR_BONUS
        match.reasons.append("calendar event contains project name")

    return match


def rank_projects(
    projects: Iterable[Project], estimate: ActivityEstimate
) -> list[ProjectMatch]:
    """Positive-scoring projects, best first; listing order breaks ties."""
    matches = [score_project(project, estimate) for project in projects]
    candidates = [match for match in matches if match.score > 0]
    candidates.sort(key=lambda match: match.score, reverse=True)
    return candidates


def infer_project(
    projects: Iterable[Project],
    estimate: ActivityEstimate,
    threshold: float = MATCH_THRESHOLD,
) -> Optional[Project]:
    ranked = rank_projects(projects, estimate)
    for index, match in enumerate(ranked, start=1):
        logger.debug(
            "Project candidate %d: %s (id=%s, score=%.2f; %s)",
            index,
            match.project.name,
            match.project.id,
            match.score,
            ", ".join(match.reasons),
        )
    if ranked and ranked[0].score >= threshold:
        best = ranked[0]
        logger.info(
            "Selected project %s (id=%s, score=%.2f)",
            best.project.name,
            best.project.id,
            best.score,
        )
        return best.project
    logger.debug("No project matched '%s'", estimate.label)
    return None
