"""Global test fixtures for reviewpanel."""

from __future__ import annotations

import pytest

from reviewpanel import github_api
from reviewpanel.config import Config, set_config
from reviewpanel.reviewers import apply_config
from reviewpanel.services import set_services
from reviewpanel.store import MemoryStore


@pytest.fixture(autouse=True)
def _default_config():
    """Reset config, reviewer adapters, services and the token cache before every test.

    A developer's own .reviewpanel.toml or a previous test's set_config() must
    not leak into the next test.
    """
    set_config(Config())
    apply_config(Config())
    set_services(None)
    github_api.reset_token()
    yield
    set_config(Config())
    apply_config(Config())
    set_services(None)
    github_api.reset_token()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore(bot_usernames=["coderabbitai[bot]", "github-actions[bot]"])
