"""Tests for local dashboard settings."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, override

from helpers.factories import make_pr

from reviewpanel.models import MutationStatus
from reviewpanel.ports import Reconciler
from reviewpanel.reconcile import ReconciliationScheduler
from reviewpanel.tools.settings import (
    CSRF_ERROR,
    clamp,
    delete_repo_threshold,
    save_global_thresholds,
    save_repo_threshold,
    set_ignored,
    unwatch_repository,
    watch_repository,
)

if TYPE_CHECKING:
    from reviewpanel.store import MemoryStore

CSRF = "session-token"


class RecordingReconciler(Reconciler):
    def __init__(self) -> None:
        self.repositories: list[str] = []

    @override
    async def refresh_pull_request(self, repo_full_name, number):
        pass

    @override
    async def refresh_repository(self, repo_full_name):
        self.repositories.append(repo_full_name)


class TestClamp:
    def test_negative_becomes_zero(self):
        assert clamp(-4) == 0

    def test_none_and_positive_pass_through(self):
        assert clamp(None) is None
        assert clamp(3) == 3


class TestGlobalThresholds:
    def test_save(self, store: MemoryStore):
        info = save_global_thresholds(
            store,
            review_count=-1,
            age_urgency_days=14,
            stale_review_enabled=False,
            csrf_token=CSRF,
            session_token=CSRF,
        )
        assert info.error is None
        assert info.global_settings.review_count_threshold == 0
        assert info.global_settings.age_urgency_days == 14
        assert not info.global_settings.stale_review_enabled
        assert store.get_global_settings() == info.global_settings

    def test_csrf_rejected(self, store: MemoryStore):
        info = save_global_thresholds(store, review_count=5, age_urgency_days=5, csrf_token="nope", session_token=CSRF)
        assert info.error == CSRF_ERROR
        assert store.get_global_settings().review_count_threshold is None


class TestRepoThresholds:
    def test_save_and_delete(self, store: MemoryStore):
        info = save_repo_threshold(
            store, "acme/widgets", review_count=1, age_urgency_days=None, csrf_token=CSRF, session_token=CSRF
        )
        assert [(t.repo_full_name, t.review_count, t.age_urgency_days) for t in info.repo_thresholds] == [
            ("acme/widgets", 1, None)
        ]

        info = delete_repo_threshold(store, "acme/widgets", csrf_token=CSRF, session_token=CSRF)
        assert info.repo_thresholds == []

    def test_save_signal_switches(self, store: MemoryStore):
        info = save_repo_threshold(
            store,
            "acme/widgets",
            review_count=None,
            age_urgency_days=None,
            stale_review_enabled=False,
            csrf_token=CSRF,
            session_token=CSRF,
        )
        saved = info.repo_thresholds[0]
        assert saved.stale_review_enabled is False
        assert saved.ci_failure_enabled is None
        assert store.get_repo_threshold("acme/widgets") == saved

    def test_invalid_repo(self, store: MemoryStore):
        info = save_repo_threshold(store, "widgets", review_count=1, age_urgency_days=1, csrf_token=CSRF, session_token=CSRF)
        assert info.error is not None
        assert "widgets" in info.error
        assert info.repo_thresholds == []

    def test_delete_requires_csrf(self, store: MemoryStore):
        save_repo_threshold(store, "acme/widgets", review_count=1, age_urgency_days=1, csrf_token=CSRF, session_token=CSRF)
        info = delete_repo_threshold(store, "acme/widgets", csrf_token=None, session_token=CSRF)
        assert info.error == CSRF_ERROR
        assert len(info.repo_thresholds) == 1


class TestRepositories:
    async def test_watch_schedules_sync(self, store: MemoryStore):
        reconciler = RecordingReconciler()
        scheduler = ReconciliationScheduler(reconciler)

        result = watch_repository(store, scheduler, "acme/widgets", csrf_token=CSRF, session_token=CSRF)

        assert result.repositories == ["acme/widgets"]
        assert result.reconciliation_scheduled
        await scheduler.drain(timeout=1)
        assert reconciler.repositories == ["acme/widgets"]

    async def test_watch_without_reconciliation(self, store: MemoryStore):
        scheduler = ReconciliationScheduler(RecordingReconciler(), enabled=False)
        result = watch_repository(store, scheduler, "acme/widgets", csrf_token=CSRF, session_token=CSRF)
        assert result.repositories == ["acme/widgets"]
        assert not result.reconciliation_scheduled

    def test_watch_rejects_bad_repo(self, store: MemoryStore):
        scheduler = ReconciliationScheduler(RecordingReconciler())
        result = watch_repository(store, scheduler, "not a repo", csrf_token=CSRF, session_token=CSRF)
        assert result.error is not None
        assert result.repositories == []

    def test_unwatch(self, store: MemoryStore):
        store.add_repository("acme/widgets")
        store.upsert_pull_request(make_pr())
        result = unwatch_repository(store, "acme/widgets", csrf_token=CSRF, session_token=CSRF)
        assert result.repositories == []
        assert store.list_all() == []

    def test_unwatch_requires_csrf(self, store: MemoryStore):
        store.add_repository("acme/widgets")
        result = unwatch_repository(store, "acme/widgets", csrf_token="", session_token=CSRF)
        assert result.error == CSRF_ERROR
        assert result.repositories == ["acme/widgets"]


class TestIgnore:
    def test_ignore_and_restore(self, store: MemoryStore):
        store.upsert_pull_request(make_pr())

        result = set_ignored(store, "acme/widgets", 42, ignored=True, csrf_token=CSRF, session_token=CSRF)
        assert result.ok
        assert store.is_ignored("acme/widgets", 42)

        result = set_ignored(store, "acme/widgets", 42, ignored=False, csrf_token=CSRF, session_token=CSRF)
        assert result.ok
        assert not store.is_ignored("acme/widgets", 42)

    def test_unknown_pr(self, store: MemoryStore):
        result = set_ignored(store, "acme/widgets", 7, ignored=True, csrf_token=CSRF, session_token=CSRF)
        assert result.status == MutationStatus.NOT_FOUND
        assert result.status_code == 404

    def test_csrf(self, store: MemoryStore):
        store.upsert_pull_request(make_pr())
        result = set_ignored(store, "acme/widgets", 42, ignored=True, csrf_token="x", session_token=CSRF)
        assert result.status == MutationStatus.FORBIDDEN
        assert not store.is_ignored("acme/widgets", 42)


class TestSchedulerLoop:
    async def test_watch_task_survives_caller(self, store: MemoryStore):
        reconciler = RecordingReconciler()
        scheduler = ReconciliationScheduler(reconciler)

        async def request() -> bool:
            return watch_repository(store, scheduler, "acme/widgets", csrf_token=CSRF, session_token=CSRF).reconciliation_scheduled

        assert await asyncio.create_task(request())
        await scheduler.drain(timeout=1)
        assert reconciler.repositories == ["acme/widgets"]
