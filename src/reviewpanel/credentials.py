"""Write credentials and the authenticated username."""

from __future__ import annotations

import asyncio
import os
from typing import override

from reviewpanel import github_api
from reviewpanel.config import get_config
from reviewpanel.ports import CredentialStore

USERNAME_ENV_VAR = "REVIEWPANEL_GITHUB_USERNAME"


class EnvCredentialStore(CredentialStore):
    """Token from the environment or ``gh``; username from env or ``[github] username``.

    The token is looked up again on every call so a token added or revoked
    while the server runs takes effect on the next write.
    """

    @override
    async def get_token(self) -> str | None:
        return await asyncio.to_thread(github_api.resolve_token_sync)

    @override
    def get_username(self) -> str:
        return os.environ.get(USERNAME_ENV_VAR, "").strip() or get_config().github.username.strip()


class StaticCredentialStore(CredentialStore):
    """Fixed credentials, for embedding and tests."""

    def __init__(self, token: str | None = None, username: str = "") -> None:
        self._token = token
        self._username = username

    @override
    async def get_token(self) -> str | None:
        return self._token

    @override
    def get_username(self) -> str:
        return self._username
