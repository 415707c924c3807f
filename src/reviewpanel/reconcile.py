"""Detached reconciliation.

After a draft toggle or a repository registration the dashboard answers
right away with a local view and asks this scheduler to re-fetch the
authoritative state from GitHub in the background.

Tasks are owned by the scheduler, not by the request that triggered them:
cancelling or finishing the request leaves the task running. A failed
reconciliation is logged and not retried; the next sync or refresh picks
the state up.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from reviewpanel.ports import Reconciler

logger = logging.getLogger(__name__)


class ReconciliationScheduler:
    """Fire-and-forget runner for :class:`~reviewpanel.ports.Reconciler` calls."""

    def __init__(self, reconciler: Reconciler | None, *, enabled: bool = True) -> None:
        self._reconciler = reconciler
        self._enabled = enabled
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def enabled(self) -> bool:
        return self._enabled and self._reconciler is not None

    @property
    def pending(self) -> int:
        """Number of reconciliations still running."""
        return len(self._tasks)

    def schedule_pull_request(self, repo_full_name: str, number: int) -> bool:
        """Schedule a refresh of one PR. Returns False when reconciliation is off."""
        reconciler = self._reconciler
        if not self.enabled or reconciler is None:
            return False
        return self._spawn(lambda: reconciler.refresh_pull_request(repo_full_name, number), f"{repo_full_name}#{number}")

    def schedule_repository(self, repo_full_name: str) -> bool:
        """Schedule a refresh of every open PR in a repository."""
        reconciler = self._reconciler
        if not self.enabled or reconciler is None:
            return False
        return self._spawn(lambda: reconciler.refresh_repository(repo_full_name), repo_full_name)

    def _spawn(self, factory: Callable[[], Awaitable[None]], label: str) -> bool:
        task = asyncio.get_running_loop().create_task(self._run(factory, label), name=f"reconcile:{label}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.debug("Scheduled reconciliation of %s", label)
        return True

    @staticmethod
    async def _run(factory: Callable[[], Awaitable[None]], label: str) -> None:
        try:
            await factory()
        except asyncio.CancelledError:
            logger.warning("Reconciliation of %s cancelled", label)
            raise
        except Exception:
            logger.exception("Reconciliation of %s failed", label)
        else:
            logger.info("Reconciled %s", label)

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for scheduled reconciliations (used at shutdown and in tests)."""
        while self._tasks:
            done, _ = await asyncio.wait(set(self._tasks), timeout=timeout)
            if not done:
                logger.warning("%d reconciliation(s) still running after %ss", len(self._tasks), timeout)
                return
