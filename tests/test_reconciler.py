"""Tests for merge-or-create reconciliation."""

from datetime import timedelta

import pytest

from autotrack.models import ActivityEstimate, Evidence, Project, ReconcileAction
from autotrack.reconciler import Reconciler

from conftest import utc


def estimate(label, when, confidence=0.9, window_title=None, source="heuristic"):
    return ActivityEstimate(
        label=label,
        confidence=confidence,
        timestamp=when,
        evidence=Evidence(window_title=window_title),
        source=source,
    )


class StaticSimilarity:
    def __init__(self, score=None, error=None):
        self.value = score
        self.error = error
        self.calls = []

    def score(self, first, second):
        self.calls.append((first, second))
        if self.error:
            raise self.error
        return self.value


@pytest.fixture
def reconciler(ledger, settings):
    return Reconciler(ledger, settings, workspace_id=7)


class TestSkip:
    def test_confidence_at_threshold_is_accepted(self, reconciler, ledger):
        outcome = reconciler.reconcile(estimate("Coding", utc(10, 5), confidence=0.5))
        assert outcome.action is ReconcileAction.CREATED
        assert len(ledger.created) == 1

    def test_confidence_below_threshold_is_skipped(self, reconciler, ledger):
        outcome = reconciler.reconcile(estimate("Coding", utc(10, 5), confidence=0.49))
        assert outcome.action is ReconcileAction.SKIPPED
        assert "below" in outcome.reason
        assert (outcome.start, outcome.stop) == (utc(10), utc(10, 15))
        assert ledger.created == []

    @pytest.mark.parametrize("title", ["Search - Private Browsing", "New Incognito Tab - Chrome"])
    def test_private_windows_are_skipped(self, reconciler, ledger, title):
        outcome = reconciler.reconcile(estimate("Browsing", utc(10, 5), window_title=title))
        assert outcome.action is ReconcileAction.SKIPPED
        assert outcome.reason == "private browsing"
        assert ledger.created == []

    def test_private_skip_can_be_disabled(self, ledger, settings):
        settings.skip_private_browsing = False
        reconciler = Reconciler(ledger, settings, workspace_id=7)
        outcome = reconciler.reconcile(
            estimate("Browsing", utc(10, 5), window_title="private browsing")
        )
        assert outcome.action is ReconcileAction.CREATED


class TestCreate:
    def test_new_entry_covers_the_block(self, reconciler, ledger):
        outcome = reconciler.reconcile(
            estimate("Writing", utc(10, 44), source="llm"), Project(2, "Writing", 7)
        )
        entry = ledger.created[0]

        assert outcome.action is ReconcileAction.CREATED
        assert outcome.entry_id == entry.id
        assert (entry.start, entry.stop) == (utc(10, 30), utc(10, 45))
        assert entry.duration == int((entry.stop - entry.start).total_seconds()) == 900
        assert entry.project_id == 2
        assert entry.workspace_id == 7
        assert entry.created_with == "autotrack"
        assert entry.metadata == {
            "origin_feature": "autotrack_activity",
            "confidence": 0.9,
            "source": "llm",
        }


class TestMerge:
    def test_estimates_five_minutes_apart_share_one_entry(self, reconciler, ledger):
        first = reconciler.reconcile(estimate("Coding", utc(10, 14)))
        second = reconciler.reconcile(estimate("Coding", utc(10, 19)))

        assert first.action is ReconcileAction.CREATED
        assert second.action is ReconcileAction.MERGED
        assert second.entry_id == first.entry_id
        assert len(ledger.entries) == 1
        entry = ledger.entries[first.entry_id]
        assert (entry.start, entry.stop) == (utc(10), utc(10, 30))
        assert entry.duration == 1800

    def test_same_block_twice_does_not_duplicate(self, reconciler, ledger):
        reconciler.reconcile(estimate("Coding", utc(10, 5)))
        outcome = reconciler.reconcile(estimate("Coding", utc(10, 10)))
        assert outcome.action is ReconcileAction.MERGED
        assert len(ledger.entries) == 1
        assert ledger.updates == [(1, utc(10, 15))]

    def test_gap_too_large_creates(self, reconciler, ledger, make_entry):
        ledger.add(make_entry("Coding", utc(9, 30), utc(9, 40)))
        outcome = reconciler.reconcile(estimate("Coding", utc(10, 5)))
        assert outcome.action is ReconcileAction.CREATED
        assert len(ledger.entries) == 2

    def test_gap_of_exactly_fifteen_minutes_merges(self, reconciler, ledger, make_entry):
        ledger.add(make_entry("Coding", utc(9, 30), utc(9, 45)))
        outcome = reconciler.reconcile(estimate("Coding", utc(10, 5)))
        assert outcome.action is ReconcileAction.MERGED
        assert outcome.start == utc(9, 30)
        assert outcome.stop == utc(10, 15)

    def test_entries_outside_lookback_are_ignored(self, reconciler, ledger, make_entry):
        ledger.add(make_entry("Coding", utc(8, 0), utc(9, 55)))
        outcome = reconciler.reconcile(estimate("Coding", utc(10, 5)))
        assert outcome.action is ReconcileAction.CREATED

    def test_project_mismatch_creates(self, reconciler, ledger, make_entry):
        ledger.add(make_entry("Writing", utc(9, 45), utc(10), project_id=1))
        outcome = reconciler.reconcile(estimate("Writing", utc(10, 5)), Project(2, "Writing", 7))
        assert outcome.action is ReconcileAction.CREATED
        assert ledger.created[0].project_id == 2

    def test_description_mismatch_creates(self, reconciler, ledger, make_entry):
        ledger.add(make_entry("Email", utc(9, 45), utc(10)))
        outcome = reconciler.reconcile(estimate("Coding", utc(10, 5)))
        assert outcome.action is ReconcileAction.CREATED

    def test_most_recent_candidate_is_extended(self, reconciler, ledger, make_entry):
        ledger.add(make_entry("Coding", utc(9, 20), utc(9, 50)))
        latest = ledger.add(make_entry("Coding", utc(9, 50), utc(10)))
        outcome = reconciler.reconcile(estimate("Coding", utc(10, 5)))
        assert outcome.entry_id == latest
        assert ledger.updates == [(latest, utc(10, 15))]

    def test_stop_never_moves_backwards(self, reconciler, ledger, make_entry):
        entry_id = ledger.add(make_entry("Coding", utc(10), utc(10, 30)))
        outcome = reconciler.reconcile(estimate("Coding", utc(10, 20)))
        assert outcome.action is ReconcileAction.MERGED
        assert ledger.entries[entry_id].stop == utc(10, 30)

    def test_update_failure_falls_back_to_create(self, reconciler, ledger, make_entry):
        ledger.add(make_entry("Coding", utc(9, 45), utc(10)))
        ledger.fail_update = True
        outcome = reconciler.reconcile(estimate("Coding", utc(10, 5)))
        assert outcome.action is ReconcileAction.CREATED
        assert len(ledger.created) == 1

    def test_listing_failure_falls_back_to_create(self, reconciler, ledger):
        ledger.fail_list = True
        outcome = reconciler.reconcile(estimate("Coding", utc(10, 5)))
        assert outcome.action is ReconcileAction.CREATED

    def test_lookback_is_configurable(self, ledger, settings, make_entry):
        settings.merge_lookback = timedelta(minutes=10)
        settings.merge_gap = timedelta(minutes=30)
        ledger.add(make_entry("Coding", utc(9, 40), utc(9, 45)))
        outcome = Reconciler(ledger, settings, workspace_id=7).reconcile(
            estimate("Coding", utc(10, 5))
        )
        assert outcome.action is ReconcileAction.CREATED


class TestSimilarity:
    def test_similar_descriptions_merge(self, ledger, settings, make_entry):
        ledger.add(make_entry("Writing the report", utc(9, 45), utc(10)))
        similarity = StaticSimilarity(0.9)
        outcome = Reconciler(ledger, settings, 7, similarity).reconcile(
            estimate("Report writing", utc(10, 5))
        )
        assert outcome.action is ReconcileAction.MERGED
        assert similarity.calls == [("Writing the report", "Report writing")]

    def test_threshold_is_exclusive(self, ledger, settings, make_entry):
        ledger.add(make_entry("Writing the report", utc(9, 45), utc(10)))
        outcome = Reconciler(ledger, settings, 7, StaticSimilarity(0.85)).reconcile(
            estimate("Report writing", utc(10, 5))
        )
        assert outcome.action is ReconcileAction.CREATED

    def test_exact_match_skips_similarity(self, ledger, settings, make_entry):
        ledger.add(make_entry("Coding", utc(9, 45), utc(10)))
        similarity = StaticSimilarity(0.0)
        outcome = Reconciler(ledger, settings, 7, similarity).reconcile(
            estimate("Coding", utc(10, 5))
        )
        assert outcome.action is ReconcileAction.MERGED
        assert similarity.calls == []

    def test_similarity_failure_means_no_match(self, ledger, settings, make_entry):
        ledger.add(make_entry("Writing the report", utc(9, 45), utc(10)))
        similarity = StaticSimilarity(error=RuntimeError("embedding service down"))
        outcome = Reconciler(ledger, settings, 7, similarity).reconcile(
            estimate("Report writing", utc(10, 5))
        )
        assert outcome.action is ReconcileAction.CREATED
