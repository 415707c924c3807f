"""Tests for the worklist and detail views."""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from helpers.factories import NOW, make_comment, make_pr, make_review

from reviewpanel.models import CheckRun, CIStatus, PRStatus
from reviewpanel.tools.dashboard import Dashboard

if TYPE_CHECKING:
    from pytest_mock import MockerFixture

    from reviewpanel.store import MemoryStore


def _dashboard(store: MemoryStore, **kwargs) -> Dashboard:
    return Dashboard(store, store, store, store, is_ignored=store.is_ignored, **kwargs)


class TestWorklist:
    def test_orders_by_severity_then_activity(self, store: MemoryStore):
        quiet = make_pr(id=1, number=1, last_activity_at=NOW - timedelta(hours=5))
        busy = make_pr(id=2, number=2, last_activity_at=NOW - timedelta(hours=1))
        old = make_pr(id=3, number=3, opened_at=NOW - timedelta(days=20), last_activity_at=NOW - timedelta(days=10))
        approved = make_pr(id=4, number=4, last_activity_at=NOW)
        for pr in (quiet, busy, old, approved):
            store.upsert_pull_request(pr)
        store.replace_review_data(
            4,
            reviews=[make_review(1, "bob"), make_review(2, "carol")],
            review_comments=[],
            issue_comments=[],
        )

        cards = _dashboard(store).worklist(now=NOW)

        assert [c.pr.number for c in cards] == [3, 2, 1, 4]
        assert cards[0].signals.severity() == 3
        assert cards[0].days_open == 20
        assert cards[0].days_inactive == 10

    def test_excludes_closed_and_ignored(self, store: MemoryStore):
        store.upsert_pull_request(make_pr(id=1, number=1))
        store.upsert_pull_request(make_pr(id=2, number=2, status=PRStatus.MERGED))
        store.upsert_pull_request(make_pr(id=3, number=3))
        store.ignore("acme/widgets", 3)
        assert [c.pr.number for c in _dashboard(store).worklist(now=NOW)] == [1]

    def test_filter_by_repo(self, store: MemoryStore):
        store.upsert_pull_request(make_pr(id=1, number=1))
        store.upsert_pull_request(make_pr(id=2, number=1, repo_full_name="acme/gadgets"))
        cards = _dashboard(store).worklist(repo="acme/gadgets", now=NOW)
        assert [c.pr.repo_full_name for c in cards] == ["acme/gadgets"]

    def test_query_matches_title_author_repo_and_branch(self, store: MemoryStore):
        store.upsert_pull_request(make_pr(id=1, number=1, title="Fix Sprocket alignment"))
        store.upsert_pull_request(make_pr(id=2, number=2, title="Docs", author="Sprocketeer"))
        store.upsert_pull_request(make_pr(id=3, number=3, title="Docs", repo_full_name="acme/sprockets"))
        store.upsert_pull_request(make_pr(id=4, number=4, title="Docs", branch="feature/sprocket-cache"))
        store.upsert_pull_request(make_pr(id=5, number=5, title="Docs", branch="feature/gears"))

        cards = _dashboard(store).worklist(query="  SPROCKET ", now=NOW)

        assert sorted(c.pr.id for c in cards) == [1, 2, 3, 4]

    def test_blank_query_matches_everything(self, store: MemoryStore):
        store.upsert_pull_request(make_pr(id=1, number=1))
        store.upsert_pull_request(make_pr(id=2, number=2))
        assert len(_dashboard(store).worklist(query="   ", now=NOW)) == 2

    def test_filter_by_status(self, store: MemoryStore):
        store.upsert_pull_request(make_pr(id=1, number=1))
        store.upsert_pull_request(make_pr(id=2, number=2, status=PRStatus.MERGED))
        store.upsert_pull_request(make_pr(id=3, number=3, status=PRStatus.CLOSED))
        dashboard = _dashboard(store)

        assert [c.pr.number for c in dashboard.worklist(status=PRStatus.MERGED, now=NOW)] == [2]
        assert [c.pr.number for c in dashboard.worklist(status=PRStatus.CLOSED, now=NOW)] == [3]
        assert sorted(c.pr.number for c in dashboard.worklist(status=None, now=NOW)) == [1, 2, 3]

    def test_query_and_status_combine(self, store: MemoryStore):
        store.upsert_pull_request(make_pr(id=1, number=1, title="Sprockets"))
        store.upsert_pull_request(make_pr(id=2, number=2, title="Sprockets", status=PRStatus.MERGED))
        store.upsert_pull_request(make_pr(id=3, number=3, title="Gears", status=PRStatus.MERGED))
        cards = _dashboard(store).worklist(query="sprocket", status=PRStatus.MERGED, now=NOW)
        assert [c.pr.number for c in cards] == [2]

    def test_own_pr_flag(self, store: MemoryStore):
        store.upsert_pull_request(make_pr(author="alice"))
        cards = _dashboard(store, username="alice").worklist(now=NOW)
        assert cards[0].is_own_pr

    def test_threshold_store_failure_uses_defaults(self, store: MemoryStore, mocker: MockerFixture):
        store.upsert_pull_request(make_pr())
        mocker.patch.object(store, "get_global_settings", side_effect=RuntimeError("db down"))
        cards = _dashboard(store).worklist(now=NOW)
        assert cards[0].signals.required_review_count == 2


class TestDetail:
    def test_enriched_detail(self, store: MemoryStore):
        pr = make_pr()
        store.upsert_pull_request(pr)
        store.replace_review_data(
            pr.id,
            reviews=[make_review(1, "bob")],
            review_comments=[make_comment(10), make_comment(11, in_reply_to_id=10)],
            issue_comments=[],
        )
        store.replace_check_runs(pr.id, [CheckRun(id=1, name="ci", status="completed", conclusion="success")])

        detail = _dashboard(store).get_detail("acme/widgets", 42, now=NOW)

        assert detail is not None
        assert detail.review_summary is not None
        assert detail.review_summary.threads[0].comment_count == 2
        assert detail.health is not None
        assert detail.health.ci_status == CIStatus.PASSING
        assert detail.signals.approval_count == 1
        assert not detail.optimistic

    def test_reads_review_data_once(self, store: MemoryStore, mocker: MockerFixture):
        pr = make_pr()
        store.upsert_pull_request(pr)
        store.replace_review_data(pr.id, reviews=[make_review(1, "bob")], review_comments=[], issue_comments=[])
        spy = mocker.spy(store, "get_review_data")

        detail = _dashboard(store).get_detail("acme/widgets", 42, now=NOW)

        assert detail is not None
        assert spy.call_count == 1
        assert detail.signals.approval_count == 1
        assert detail.review_summary is not None
        assert detail.review_summary.approval_count == 1

    def test_not_tracked(self, store: MemoryStore):
        assert _dashboard(store).get_detail("acme/widgets", 999) is None

    def test_enrichment_failures_still_render(self, store: MemoryStore, mocker: MockerFixture):
        store.upsert_pull_request(make_pr())
        mocker.patch.object(store, "get_review_data", side_effect=RuntimeError("reviews down"))
        mocker.patch.object(store, "get_check_runs", side_effect=RuntimeError("checks down"))

        detail = _dashboard(store).get_detail("acme/widgets", 42, now=NOW)

        assert detail is not None
        assert detail.pr.number == 42
        assert detail.review_summary is None
        assert detail.health is None
        assert not detail.signals.has_any()
