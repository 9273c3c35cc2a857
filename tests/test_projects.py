"""Tests for project inference."""

import pytest

from autotrack.models import ActivityEstimate, Evidence, Project
from autotrack.projects import infer_project, rank_projects, score_project

from conftest import utc


def estimate(label, window_title=None, event=None):
    return ActivityEstimate(
        label=label,
        confidence=0.9,
        timestamp=utc(10),
        evidence=Evidence(window_title=window_title, calendar_event=event),
    )


REPORT = Project(1, "Report", 7)
WRITING = Project(2, "Writing", 7)


@pytest.mark.parametrize(
    "name, label, score",
    [
        ("Report", "report", 1.0),
        ("Quarterly Report", "report", 0.8),
        ("Report", "writing report", 0.7),
        ("Client Website Redesign", "website work", pytest.approx(0.2)),
        ("Infra", "email", 0.0),
    ],
)
def test_base_scores(name, label, score):
    assert score_project(Project(9, name, 7), estimate(label)).score == score


def test_blank_project_name_never_matches():
    assert score_project(Project(9, "  ", 7), estimate("anything")).score == 0.0


def test_window_and_calendar_bonuses(make_event):
    event = make_event("e1", "Infra review", utc(10))
    match = score_project(Project(9, "Infra", 7), estimate("meeting", "infra dashboards", event))
    assert match.score == pytest.approx(0.5)
    assert len(match.reasons) == 2


def test_tie_keeps_listing_order():
    ranked = rank_projects([REPORT, WRITING], estimate("Writing Report"))
    assert [match.project for match in ranked] == [REPORT, WRITING]
    assert [match.score for match in ranked] == [0.7, 0.7]
    assert infer_project([REPORT, WRITING], estimate("Writing Report")) == REPORT


def test_best_score_wins():
    assert infer_project([REPORT, WRITING], estimate("writing")) == WRITING


def test_below_threshold_returns_none():
    projects = [Project(3, "Client Website Redesign", 7)]
    assert infer_project(projects, estimate("website work")) is None


def test_window_bonus_can_lift_over_threshold():
    projects = [Project(3, "Website Redesign", 7)]
    assert infer_project(projects, estimate("website work", "website redesign - figma")) == projects[0]


def test_no_projects():
    assert infer_project([], estimate("writing")) is None
