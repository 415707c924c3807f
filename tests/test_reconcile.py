"""Tests for detached reconciliation."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, override

from reviewpanel.ports import Reconciler
from reviewpanel.reconcile import ReconciliationScheduler

if TYPE_CHECKING:
    import pytest


class SlowReconciler(Reconciler):
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.release = asyncio.Event()
        self.done: list[str] = []

    @override
    async def refresh_pull_request(self, repo_full_name, number):
        await self.release.wait()
        if self.fail:
            msg = "502 Bad Gateway"
            raise RuntimeError(msg)
        self.done.append(f"{repo_full_name}#{number}")

    @override
    async def refresh_repository(self, repo_full_name):
        await self.release.wait()
        self.done.append(repo_full_name)


class TestScheduler:
    async def test_schedule_returns_immediately(self):
        reconciler = SlowReconciler()
        scheduler = ReconciliationScheduler(reconciler)

        assert scheduler.schedule_pull_request("acme/widgets", 42)
        assert scheduler.pending == 1
        assert reconciler.done == []

        reconciler.release.set()
        await scheduler.drain(timeout=1)
        assert reconciler.done == ["acme/widgets#42"]
        assert scheduler.pending == 0

    async def test_disabled(self):
        scheduler = ReconciliationScheduler(SlowReconciler(), enabled=False)
        assert not scheduler.enabled
        assert not scheduler.schedule_pull_request("acme/widgets", 42)
        assert not scheduler.schedule_repository("acme/widgets")
        assert scheduler.pending == 0

    async def test_no_reconciler(self):
        scheduler = ReconciliationScheduler(None)
        assert not scheduler.enabled
        assert not scheduler.schedule_repository("acme/widgets")

    async def test_failure_is_logged_not_raised(self, caplog: pytest.LogCaptureFixture):
        reconciler = SlowReconciler(fail=True)
        scheduler = ReconciliationScheduler(reconciler)
        scheduler.schedule_pull_request("acme/widgets", 42)
        reconciler.release.set()

        with caplog.at_level(logging.ERROR, logger="reviewpanel.reconcile"):
            await scheduler.drain(timeout=1)

        assert "Reconciliation of acme/widgets#42 failed" in caplog.text
        assert scheduler.pending == 0

    async def test_task_outlives_cancelled_caller(self):
        reconciler = SlowReconciler()
        scheduler = ReconciliationScheduler(reconciler)

        async def handler() -> None:
            scheduler.schedule_repository("acme/widgets")
            await asyncio.sleep(10)

        request = asyncio.create_task(handler())
        await asyncio.sleep(0)
        request.cancel()
        await asyncio.gather(request, return_exceptions=True)

        assert scheduler.pending == 1
        reconciler.release.set()
        await scheduler.drain(timeout=1)
        assert reconciler.done == ["acme/widgets"]

    async def test_drain_timeout(self, caplog: pytest.LogCaptureFixture):
        reconciler = SlowReconciler()
        scheduler = ReconciliationScheduler(reconciler)
        scheduler.schedule_repository("acme/widgets")

        with caplog.at_level(logging.WARNING, logger="reviewpanel.reconcile"):
            await scheduler.drain(timeout=0.01)

        assert "still running" in caplog.text
        reconciler.release.set()
        await scheduler.drain(timeout=1)
