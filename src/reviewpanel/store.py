"""In-memory storage for synced PR data and dashboard settings.

One :class:`MemoryStore` backs every read port, the threshold store, the
watched-repository list and the ignore list. Writes come from
:mod:`reviewpanel.sync` and from the settings tools; reads from the
dashboard. A lock guards the maps because sync runs in background tasks.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

from reviewpanel.models import GlobalSettings, ReviewData
from reviewpanel.ports import HealthReader, PullRequestReader, ReviewReader, ThresholdStore

if TYPE_CHECKING:
    from collections.abc import Iterable

    from reviewpanel.models import CheckRun, IssueComment, PullRequest, RepoThreshold, Review, ReviewComment


class MemoryStore(PullRequestReader, ReviewReader, HealthReader, ThresholdStore):
    """Thread-safe in-process store."""

    def __init__(
        self,
        *,
        bot_usernames: Iterable[str] = (),
        global_settings: GlobalSettings | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self._prs: dict[tuple[str, int], PullRequest] = {}
        self._reviews: dict[int, list[Review]] = {}
        self._review_comments: dict[int, list[ReviewComment]] = {}
        self._issue_comments: dict[int, list[IssueComment]] = {}
        self._check_runs: dict[int, list[CheckRun]] = {}
        self._bot_usernames: list[str] = list(dict.fromkeys(bot_usernames))
        self._global_settings = global_settings or GlobalSettings()
        self._repo_thresholds: dict[str, RepoThreshold] = {}
        self._repositories: list[str] = []
        self._ignored: set[tuple[str, int]] = set()

    # -- Pull requests ------------------------------------------------------

    def get_by_number(self, repo_full_name: str, number: int) -> PullRequest | None:
        with self._lock:
            return self._prs.get((repo_full_name, number))

    def list_all(self) -> list[PullRequest]:
        with self._lock:
            return list(self._prs.values())

    def upsert_pull_request(self, pr: PullRequest) -> None:
        with self._lock:
            self._prs[pr.repo_full_name, pr.number] = pr

    def delete_pull_request(self, repo_full_name: str, number: int) -> None:
        with self._lock:
            pr = self._prs.pop((repo_full_name, number), None)
            if pr is not None:
                for table in (self._reviews, self._review_comments, self._issue_comments, self._check_runs):
                    table.pop(pr.id, None)

    # -- Review data --------------------------------------------------------

    def get_review_data(self, pr_id: int, head_sha: str) -> ReviewData:  # noqa: ARG002
        with self._lock:
            reviews = list(self._reviews.get(pr_id, []))
            review_comments = list(self._review_comments.get(pr_id, []))
            issue_comments = list(self._issue_comments.get(pr_id, []))
            bots = list(self._bot_usernames)

        # Accounts GitHub flags as bots on this PR join the configured list.
        upstream_bots = [r.reviewer_login for r in reviews if r.is_bot]
        upstream_bots += [c.author for c in (*review_comments, *issue_comments) if c.is_bot]
        return ReviewData(
            reviews=reviews,
            review_comments=review_comments,
            issue_comments=issue_comments,
            bot_usernames=list(dict.fromkeys([*bots, *upstream_bots])),
        )

    def replace_review_data(
        self,
        pr_id: int,
        *,
        reviews: list[Review],
        review_comments: list[ReviewComment],
        issue_comments: list[IssueComment],
    ) -> None:
        with self._lock:
            self._reviews[pr_id] = list(reviews)
            self._review_comments[pr_id] = list(review_comments)
            self._issue_comments[pr_id] = list(issue_comments)

    # -- Check runs ---------------------------------------------------------

    def get_check_runs(self, pr_id: int) -> list[CheckRun]:
        with self._lock:
            return list(self._check_runs.get(pr_id, []))

    def replace_check_runs(self, pr_id: int, check_runs: list[CheckRun]) -> None:
        with self._lock:
            self._check_runs[pr_id] = list(check_runs)

    # -- Bot accounts -------------------------------------------------------

    def set_bot_usernames(self, usernames: Iterable[str]) -> None:
        with self._lock:
            self._bot_usernames = list(dict.fromkeys(usernames))

    # -- Thresholds ---------------------------------------------------------

    def get_global_settings(self) -> GlobalSettings:
        with self._lock:
            return self._global_settings

    def set_global_settings(self, settings: GlobalSettings) -> None:
        with self._lock:
            self._global_settings = settings

    def get_repo_threshold(self, repo_full_name: str) -> RepoThreshold | None:
        with self._lock:
            return self._repo_thresholds.get(repo_full_name)

    def set_repo_threshold(self, threshold: RepoThreshold) -> None:
        with self._lock:
            self._repo_thresholds[threshold.repo_full_name] = threshold

    def delete_repo_threshold(self, repo_full_name: str) -> None:
        with self._lock:
            self._repo_thresholds.pop(repo_full_name, None)

    def list_repo_thresholds(self) -> list[RepoThreshold]:
        with self._lock:
            return sorted(self._repo_thresholds.values(), key=lambda t: t.repo_full_name)

    # -- Watched repositories -----------------------------------------------

    def add_repository(self, repo_full_name: str) -> bool:
        """Watch a repository. Returns False if it was already watched."""
        with self._lock:
            if repo_full_name in self._repositories:
                return False
            self._repositories.append(repo_full_name)
            return True

    def remove_repository(self, repo_full_name: str) -> None:
        """Stop watching a repository and forget its pull requests."""
        with self._lock:
            if repo_full_name in self._repositories:
                self._repositories.remove(repo_full_name)
            numbers = [number for repo, number in self._prs if repo == repo_full_name]
        for number in numbers:
            self.delete_pull_request(repo_full_name, number)

    def list_repositories(self) -> list[str]:
        with self._lock:
            return list(self._repositories)

    # -- Ignore list --------------------------------------------------------

    def ignore(self, repo_full_name: str, number: int) -> None:
        with self._lock:
            self._ignored.add((repo_full_name, number))

    def unignore(self, repo_full_name: str, number: int) -> None:
        with self._lock:
            self._ignored.discard((repo_full_name, number))

    def is_ignored(self, repo_full_name: str, number: int) -> bool:
        with self._lock:
            return (repo_full_name, number) in self._ignored
