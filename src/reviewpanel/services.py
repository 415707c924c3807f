"""Process-wide wiring of store, credentials, sync and reconciliation.

The server builds one :class:`Services` at startup. Dashboards and mutation
coordinators are cheap and built per call so config edits (bot list, nitpick
markers, username) take effect without a restart.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from reviewpanel.config import get_config
from reviewpanel.credentials import EnvCredentialStore
from reviewpanel.csrf import generate_token
from reviewpanel.github_writer import GitHubWriter
from reviewpanel.reconcile import ReconciliationScheduler
from reviewpanel.store import MemoryStore
from reviewpanel.sync import GitHubSync
from reviewpanel.tools.dashboard import Dashboard
from reviewpanel.tools.mutations import MutationCoordinator

if TYPE_CHECKING:
    from collections.abc import Callable

    from reviewpanel.config import Config
    from reviewpanel.ports import CredentialStore, PullRequestWriter, Reconciler

logger = logging.getLogger(__name__)


class Services:
    """Long-lived collaborators shared by every tool call."""

    def __init__(  # noqa: PLR0913
        self,
        store: MemoryStore,
        credentials: CredentialStore,
        *,
        writer_factory: Callable[[str], PullRequestWriter] = GitHubWriter,
        reconciler: Reconciler | None = None,
        reconcile_enabled: bool = True,
        session_token: str | None = None,
    ) -> None:
        self.store = store
        self.credentials = credentials
        self.writer_factory = writer_factory
        self.reconciler = reconciler if reconciler is not None else GitHubSync(store)
        self.scheduler = ReconciliationScheduler(self.reconciler, enabled=reconcile_enabled)
        self.session_token = session_token or generate_token()

    def dashboard(self) -> Dashboard:
        config = get_config()
        self.store.set_bot_usernames(config.bots.usernames)
        return Dashboard(
            self.store,
            self.store,
            self.store,
            self.store,
            username=self.credentials.get_username(),
            markers=config.nitpicks.markers,
            is_ignored=self.store.is_ignored,
        )

    def coordinator(self) -> MutationCoordinator:
        return MutationCoordinator(
            self.dashboard(),
            self.store.get_by_number,
            self.credentials,
            self.writer_factory,
            reconciler=self.reconciler,
            scheduler=self.scheduler,
        )


def build_services(config: Config) -> Services:
    """Default wiring: in-memory store seeded from config, env credentials, GitHub sync."""
    store = MemoryStore(
        bot_usernames=config.bots.usernames,
        global_settings=config.thresholds.to_global_settings(),
    )
    return Services(store, EnvCredentialStore(), reconcile_enabled=config.reconcile.enabled)


class _ServicesState:
    __slots__ = ("services",)

    def __init__(self) -> None:
        self.services: Services | None = None


_state = _ServicesState()


def get_services() -> Services:
    """Return the active services, building defaults from the current config on first use."""
    if _state.services is None:
        logger.debug("No services set, building defaults")
        _state.services = build_services(get_config())
    return _state.services


def set_services(services: Services | None) -> None:
    _state.services = services
