"""Collaborator contracts consumed by the aggregation and write paths.

Read-side ports are synchronous: they serve already-synced local data.
The write port talks to GitHub and is async.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from reviewpanel.models import (
        CheckRun,
        DraftLineComment,
        GlobalSettings,
        PullRequest,
        RepoThreshold,
        ReviewData,
    )


class PullRequestReader(ABC):
    @abstractmethod
    def get_by_number(self, repo_full_name: str, number: int) -> PullRequest | None:
        """Return the PR, or None if it is not tracked."""

    @abstractmethod
    def list_all(self) -> list[PullRequest]:
        """Return every tracked PR."""


class ReviewReader(ABC):
    @abstractmethod
    def get_review_data(self, pr_id: int, head_sha: str) -> ReviewData:
        """Return reviews, review comments, issue comments and bot accounts for a PR."""


class HealthReader(ABC):
    @abstractmethod
    def get_check_runs(self, pr_id: int) -> list[CheckRun]:
        """Return the check runs recorded for a PR's head commit."""


class ThresholdStore(ABC):
    @abstractmethod
    def get_global_settings(self) -> GlobalSettings: ...

    @abstractmethod
    def set_global_settings(self, settings: GlobalSettings) -> None: ...

    @abstractmethod
    def get_repo_threshold(self, repo_full_name: str) -> RepoThreshold | None: ...

    @abstractmethod
    def set_repo_threshold(self, threshold: RepoThreshold) -> None: ...

    @abstractmethod
    def delete_repo_threshold(self, repo_full_name: str) -> None: ...

    @abstractmethod
    def list_repo_thresholds(self) -> list[RepoThreshold]: ...


class CredentialStore(ABC):
    @abstractmethod
    async def get_token(self) -> str | None:
        """Return the configured write token, or None."""

    @abstractmethod
    def get_username(self) -> str:
        """Return the authenticated GitHub username, or an empty string."""


class WriteError(Exception):
    """Raised by a write port; the message is shown to the user as-is."""

    def __init__(self, message: str, status_code: int = 0) -> None:
        super().__init__(message)
        self.status_code = status_code


class PullRequestWriter(ABC):
    """Authenticated GitHub write operations. Failures raise :exc:`WriteError`."""

    @abstractmethod
    async def submit_review(
        self,
        repo_full_name: str,
        number: int,
        *,
        commit_sha: str,
        event: str,
        body: str,
        comments: list[DraftLineComment],
    ) -> None: ...

    @abstractmethod
    async def create_issue_comment(self, repo_full_name: str, number: int, body: str) -> None: ...

    @abstractmethod
    async def create_reply_comment(
        self,
        repo_full_name: str,
        number: int,
        *,
        in_reply_to: int,
        body: str,
    ) -> None: ...

    @abstractmethod
    async def convert_to_draft(self, repo_full_name: str, number: int, node_id: str) -> None: ...

    @abstractmethod
    async def mark_ready_for_review(self, repo_full_name: str, number: int, node_id: str) -> None: ...


class Reconciler(ABC):
    """Re-fetches authoritative state from GitHub into local storage."""

    @abstractmethod
    async def refresh_pull_request(self, repo_full_name: str, number: int) -> None: ...

    @abstractmethod
    async def refresh_repository(self, repo_full_name: str) -> None: ...
