"""Tests for the in-memory store."""

from __future__ import annotations

from helpers.factories import make_pr, make_review

from reviewpanel.models import CheckRun, IssueComment, RepoThreshold
from reviewpanel.store import MemoryStore


class TestPullRequests:
    def test_upsert_and_lookup(self, store: MemoryStore):
        store.upsert_pull_request(make_pr())
        assert store.get_by_number("acme/widgets", 42) is not None
        assert store.get_by_number("acme/widgets", 43) is None
        assert len(store.list_all()) == 1

    def test_delete_drops_related_data(self, store: MemoryStore):
        pr = make_pr()
        store.upsert_pull_request(pr)
        store.replace_review_data(pr.id, reviews=[make_review(1, "bob")], review_comments=[], issue_comments=[])
        store.replace_check_runs(pr.id, [CheckRun(id=1, name="ci")])

        store.delete_pull_request("acme/widgets", 42)

        assert store.get_by_number("acme/widgets", 42) is None
        assert store.get_review_data(pr.id, pr.head_sha).reviews == []
        assert store.get_check_runs(pr.id) == []


class TestReviewData:
    def test_upstream_bots_join_configured_list(self, store: MemoryStore):
        store.replace_review_data(
            1,
            reviews=[make_review(1, "renovate[bot]", is_bot=True)],
            review_comments=[],
            issue_comments=[IssueComment(id=2, author="dependabot[bot]", is_bot=True)],
        )
        bots = store.get_review_data(1, "abcd123").bot_usernames
        assert bots == ["coderabbitai[bot]", "github-actions[bot]", "renovate[bot]", "dependabot[bot]"]


class TestThresholds:
    def test_list_sorted(self, store: MemoryStore):
        store.set_repo_threshold(RepoThreshold(repo_full_name="b/b", review_count=1))
        store.set_repo_threshold(RepoThreshold(repo_full_name="a/a", review_count=3))
        assert [t.repo_full_name for t in store.list_repo_thresholds()] == ["a/a", "b/b"]
        store.delete_repo_threshold("a/a")
        assert store.get_repo_threshold("a/a") is None


class TestRepositories:
    def test_add_is_idempotent(self):
        store = MemoryStore()
        assert store.add_repository("acme/widgets")
        assert not store.add_repository("acme/widgets")
        assert store.list_repositories() == ["acme/widgets"]

    def test_remove_forgets_prs(self):
        store = MemoryStore()
        store.add_repository("acme/widgets")
        store.upsert_pull_request(make_pr())
        store.upsert_pull_request(make_pr(id=2, repo_full_name="acme/gadgets"))
        store.remove_repository("acme/widgets")
        assert store.list_repositories() == []
        assert [pr.repo_full_name for pr in store.list_all()] == ["acme/gadgets"]


class TestIgnoreList:
    def test_ignore_roundtrip(self):
        store = MemoryStore()
        store.ignore("acme/widgets", 42)
        assert store.is_ignored("acme/widgets", 42)
        store.unignore("acme/widgets", 42)
        assert not store.is_ignored("acme/widgets", 42)
