"""Sync pull request state from GitHub into local storage.

Used for detached reconciliation after writes, for repository registration
and for the synchronous refresh after review, comment and reply mutations.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, override

from reviewpanel import github_api
from reviewpanel.models import (
    CheckRun,
    IssueComment,
    MergeableStatus,
    PRStatus,
    PullRequest,
    Review,
    ReviewComment,
    ReviewState,
)
from reviewpanel.ports import Reconciler
from reviewpanel.tools.health import combined_ci_status, mark_required_checks

if TYPE_CHECKING:
    from datetime import datetime

    from reviewpanel.store import MemoryStore

logger = logging.getLogger(__name__)

_RESOLVED_THREADS_QUERY = """
query($owner: String!, $repo: String!, $pr: Int!, $cursor: String) {
  repository(owner: $owner, name: $repo) {
    pullRequest(number: $pr) {
      reviewThreads(first: 100, after: $cursor) {
        pageInfo { hasNextPage endCursor }
        nodes {
          isResolved
          comments(first: 1) { nodes { databaseId } }
        }
      }
    }
  }
}
"""


# ---------------------------------------------------------------------------
# Payload mapping
# ---------------------------------------------------------------------------


def is_bot_user(user: dict[str, Any] | None) -> bool:
    """GitHub marks app accounts with type 'Bot' and a ``[bot]`` login suffix."""
    if not user:
        return False
    return user.get("type") == "Bot" or user.get("login", "").endswith("[bot]")


def _login(user: dict[str, Any] | None) -> str:
    return (user or {}).get("login", "")


def pull_request_from_api(repo_full_name: str, raw: dict[str, Any]) -> PullRequest:
    if raw.get("merged_at"):
        status = PRStatus.MERGED
    elif raw.get("state") == "closed":
        status = PRStatus.CLOSED
    else:
        status = PRStatus.OPEN

    mergeable = raw.get("mergeable")
    if mergeable is True:
        mergeable_status = MergeableStatus.MERGEABLE
    elif mergeable is False or raw.get("mergeable_state") == "dirty":
        mergeable_status = MergeableStatus.CONFLICTED
    else:
        mergeable_status = MergeableStatus.UNKNOWN

    head = raw.get("head") or {}
    base = raw.get("base") or {}
    return PullRequest(
        id=raw["id"],
        number=raw["number"],
        repo_full_name=repo_full_name,
        node_id=raw.get("node_id", ""),
        title=raw.get("title", ""),
        author=_login(raw.get("user")),
        status=status,
        is_draft=bool(raw.get("draft")),
        url=raw.get("html_url", ""),
        branch=head.get("ref", ""),
        base_branch=base.get("ref", ""),
        head_sha=head.get("sha", ""),
        additions=raw.get("additions", 0),
        deletions=raw.get("deletions", 0),
        changed_files=raw.get("changed_files", 0),
        mergeable_status=mergeable_status,
        labels=[label["name"] for label in raw.get("labels", []) if "name" in label],
        opened_at=raw.get("created_at"),
        updated_at=raw.get("updated_at"),
        last_activity_at=raw.get("updated_at"),
    )


def review_from_api(raw: dict[str, Any]) -> Review:
    try:
        state = ReviewState((raw.get("state") or "").lower())
    except ValueError:
        state = ReviewState.COMMENTED
    return Review(
        id=raw["id"],
        reviewer_login=_login(raw.get("user")),
        state=state,
        body=raw.get("body") or "",
        commit_id=raw.get("commit_id") or "",
        submitted_at=raw.get("submitted_at"),
        is_bot=is_bot_user(raw.get("user")),
    )


def review_comment_from_api(raw: dict[str, Any], resolved_root_ids: set[int]) -> ReviewComment:
    comment_id = raw["id"]
    return ReviewComment(
        id=comment_id,
        review_id=raw.get("pull_request_review_id"),
        in_reply_to_id=raw.get("in_reply_to_id"),
        author=_login(raw.get("user")),
        body=raw.get("body") or "",
        path=raw.get("path") or "",
        line=raw.get("line") if raw.get("line") is not None else raw.get("original_line"),
        start_line=raw.get("start_line"),
        side=raw.get("side") or "",
        diff_hunk=raw.get("diff_hunk") or "",
        commit_id=raw.get("commit_id") or "",
        is_resolved=comment_id in resolved_root_ids,
        is_bot=is_bot_user(raw.get("user")),
        created_at=raw.get("created_at"),
        updated_at=raw.get("updated_at"),
    )


def issue_comment_from_api(raw: dict[str, Any]) -> IssueComment:
    return IssueComment(
        id=raw["id"],
        author=_login(raw.get("user")),
        body=raw.get("body") or "",
        is_bot=is_bot_user(raw.get("user")),
        created_at=raw.get("created_at"),
        updated_at=raw.get("updated_at"),
    )


def check_run_from_api(raw: dict[str, Any]) -> CheckRun:
    return CheckRun(
        id=raw["id"],
        name=raw.get("name", ""),
        status=raw.get("status") or "",
        conclusion=raw.get("conclusion") or "",
        details_url=raw.get("details_url") or raw.get("html_url") or "",
    )


def _latest(*timestamps: datetime | None) -> datetime | None:
    present = [t for t in timestamps if t is not None]
    return max(present) if present else None


# ---------------------------------------------------------------------------
# Sync
# ---------------------------------------------------------------------------


class GitHubSync(Reconciler):
    """Fetches PRs and their review/CI data and replaces them in the store."""

    def __init__(self, store: MemoryStore, *, token: str | None = None) -> None:
        self._store = store
        self._token = token

    @override
    async def refresh_repository(self, repo_full_name: str) -> None:
        github_api.parse_repo(repo_full_name)
        watched = self._is_watched(repo_full_name)
        pulls = await github_api.rest(
            f"/repos/{repo_full_name}/pulls",
            token=self._token,
            paginate=True,
            state="open",
            per_page=100,
        )
        open_numbers = set()
        for raw in pulls:
            open_numbers.add(raw["number"])
            await self._sync_pull(repo_full_name, raw, watched=watched)

        for pr in self._store.list_all():
            if pr.repo_full_name == repo_full_name and pr.number not in open_numbers:
                self._store.delete_pull_request(repo_full_name, pr.number)
        logger.info("Synced %d open PR(s) for %s", len(open_numbers), repo_full_name)

    @override
    async def refresh_pull_request(self, repo_full_name: str, number: int) -> None:
        github_api.parse_repo(repo_full_name)
        watched = self._is_watched(repo_full_name)
        raw = await github_api.rest(f"/repos/{repo_full_name}/pulls/{number}", token=self._token)
        await self._sync_pull(repo_full_name, raw, watched=watched)

    def _is_watched(self, repo_full_name: str) -> bool:
        return repo_full_name in self._store.list_repositories()

    async def _sync_pull(self, repo_full_name: str, raw: dict[str, Any], *, watched: bool) -> None:
        """Fetch one PR's review and CI data and store it.

        *watched* records whether the repository was watched when the sync began;
        if it has been unwatched since, the fetched data is discarded.
        """
        pr = pull_request_from_api(repo_full_name, raw)
        base = f"/repos/{repo_full_name}"
        reviews_raw, comments_raw, issue_raw, resolved_ids, runs_raw, required = await asyncio.gather(
            github_api.rest(f"{base}/pulls/{pr.number}/reviews", token=self._token, paginate=True, per_page=100),
            github_api.rest(f"{base}/pulls/{pr.number}/comments", token=self._token, paginate=True, per_page=100),
            github_api.rest(f"{base}/issues/{pr.number}/comments", token=self._token, paginate=True, per_page=100),
            self._resolved_root_ids(repo_full_name, pr.number),
            self._check_runs(repo_full_name, pr.head_sha),
            self._required_contexts(repo_full_name, pr.base_branch),
        )

        reviews = [review_from_api(r) for r in reviews_raw]
        comments = [review_comment_from_api(c, resolved_ids) for c in comments_raw]
        issue_comments = [issue_comment_from_api(c) for c in issue_raw]
        check_runs = mark_required_checks(runs_raw, required)

        last_activity = _latest(
            pr.updated_at,
            *(r.submitted_at for r in reviews),
            *(c.created_at for c in comments),
            *(c.created_at for c in issue_comments),
        )
        pr = pr.model_copy(update={"ci_status": combined_ci_status(check_runs), "last_activity_at": last_activity})

        if watched and not self._is_watched(repo_full_name):
            logger.info("Discarding sync of %s#%s: repository is no longer watched", repo_full_name, pr.number)
            return
        self._store.upsert_pull_request(pr)
        self._store.replace_review_data(
            pr.id,
            reviews=reviews,
            review_comments=comments,
            issue_comments=issue_comments,
        )
        self._store.replace_check_runs(pr.id, check_runs)
        logger.debug("Synced %s#%s (%d reviews, %d comments)", repo_full_name, pr.number, len(reviews), len(comments))

    async def _resolved_root_ids(self, repo_full_name: str, number: int) -> set[int]:
        """Database ids of root comments whose thread is resolved."""
        owner, name = github_api.parse_repo(repo_full_name)
        resolved: set[int] = set()
        cursor: str | None = None
        try:
            while True:
                result = await github_api.graphql(
                    _RESOLVED_THREADS_QUERY,
                    {"owner": owner, "repo": name, "pr": number, "cursor": cursor},
                    token=self._token,
                )
                threads = result["data"]["repository"]["pullRequest"]["reviewThreads"]
                for node in threads["nodes"]:
                    first = node["comments"]["nodes"]
                    if node["isResolved"] and first:
                        resolved.add(first[0]["databaseId"])
                if not threads["pageInfo"]["hasNextPage"]:
                    break
                cursor = threads["pageInfo"]["endCursor"]
        except (github_api.GitHubError, KeyError, TypeError) as exc:
            logger.warning("Could not read thread resolution for %s#%s: %s", repo_full_name, number, exc)
        return resolved

    async def _check_runs(self, repo_full_name: str, head_sha: str) -> list[CheckRun]:
        if not head_sha:
            return []
        try:
            pages = await github_api.rest(
                f"/repos/{repo_full_name}/commits/{head_sha}/check-runs",
                token=self._token,
                paginate=True,
                per_page=100,
            )
        except github_api.GitHubError as exc:
            logger.warning("Could not read check runs for %s@%s: %s", repo_full_name, head_sha[:7], exc)
            return []
        return [check_run_from_api(run) for page in pages for run in page.get("check_runs", [])]

    async def _required_contexts(self, repo_full_name: str, base_branch: str) -> list[str]:
        """Required status check names; empty when the branch is unprotected or unreadable."""
        if not base_branch:
            return []
        try:
            protection = await github_api.rest(
                f"/repos/{repo_full_name}/branches/{base_branch}/protection/required_status_checks",
                token=self._token,
            )
        except github_api.GitHubError as exc:
            logger.debug("No required checks for %s:%s (%s)", repo_full_name, base_branch, exc)
            return []
        contexts = list(protection.get("contexts") or [])
        contexts += [c["context"] for c in protection.get("checks") or [] if c.get("context")]
        return contexts
