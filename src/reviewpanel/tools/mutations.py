"""Write-mutation coordinator.

Every write (review, issue comment, thread reply, draft toggle) goes through
the same pipeline, each step short-circuiting with its own outcome:

1. repository / PR number format            -> ``invalid``
2. anti-forgery token                       -> ``forbidden``
3. write credential configured              -> ``not_configured``
4. PR is tracked                            -> ``not_found``
5. draft toggles: caller is the PR author   -> ``forbidden``
6. payload (review event, non-empty bodies) -> ``invalid``

Then the write port is called; its errors are passed through verbatim as
``upstream_error`` and nothing is retried.

After a draft toggle the returned view flips ``is_draft`` on a local copy
(``optimistic=True``) and a detached reconciliation is scheduled. Until it
lands, other fields (checks, timestamps) may still show pre-toggle state.
Reviews, comments and replies instead refresh the PR from GitHub before the
view is built, since their effect cannot be guessed locally.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from reviewpanel.csrf import validate_token
from reviewpanel.github_api import GitHubError, parse_repo
from reviewpanel.models import (
    AddIssueComment,
    MutationResult,
    MutationStatus,
    ReplyToThread,
    ReviewEvent,
    SubmitReview,
    ToggleDraft,
)
from reviewpanel.ports import WriteError

if TYPE_CHECKING:
    from collections.abc import Callable

    from reviewpanel.models import Mutation, PRDetail, PullRequest
    from reviewpanel.ports import CredentialStore, PullRequestWriter, Reconciler
    from reviewpanel.reconcile import ReconciliationScheduler
    from reviewpanel.tools.dashboard import Dashboard

logger = logging.getLogger(__name__)

NOT_CONFIGURED_MESSAGE = (
    "Configure a GitHub token to enable write actions "
    "(set REVIEWPANEL_GITHUB_TOKEN, GH_TOKEN or GITHUB_TOKEN, or run 'gh auth login')."
)

_STATUS_CODES = {
    MutationStatus.OK: 200,
    MutationStatus.INVALID: 422,
    MutationStatus.FORBIDDEN: 403,
    MutationStatus.NOT_CONFIGURED: 422,
    MutationStatus.NOT_FOUND: 404,
    MutationStatus.UPSTREAM_ERROR: 422,
}


def _result(status: MutationStatus, message: str = "", detail: PRDetail | None = None) -> MutationResult:
    return MutationResult(status=status, status_code=_STATUS_CODES[status], message=message, detail=detail)


def validate_target(repo_full_name: str, number: int) -> str | None:
    """Return an error message if the repository or PR number is malformed."""
    try:
        parse_repo(repo_full_name)
    except GitHubError as exc:
        return str(exc)
    if isinstance(number, bool) or not isinstance(number, int) or number <= 0:
        return f"Invalid pull request number {number!r}"
    return None


def validate_payload(mutation: Mutation) -> str | None:
    """Return an error message if the mutation payload is not acceptable."""
    if isinstance(mutation, SubmitReview):
        allowed = [e.value for e in ReviewEvent]
        if mutation.event not in allowed:
            return f"Invalid review event {mutation.event!r}; expected one of {', '.join(allowed)}"
        for comment in mutation.comments:
            if not comment.body.strip():
                return f"Inline comment on {comment.path}:{comment.line} has an empty body"
            if not comment.path or comment.line <= 0:
                return "Inline comments need a file path and a positive line number"
        return None
    if isinstance(mutation, AddIssueComment | ReplyToThread):
        if not mutation.body.strip():
            return "Comment body cannot be empty"
        if isinstance(mutation, ReplyToThread) and mutation.root_comment_id <= 0:
            return f"Invalid root comment id {mutation.root_comment_id!r}"
    return None


class MutationCoordinator:
    """Runs mutations against the write port and renders the resulting PR view."""

    def __init__(  # noqa: PLR0913
        self,
        dashboard: Dashboard,
        prs: Callable[[str, int], PullRequest | None],
        credentials: CredentialStore,
        writer_factory: Callable[[str], PullRequestWriter],
        *,
        reconciler: Reconciler | None = None,
        scheduler: ReconciliationScheduler | None = None,
    ) -> None:
        self._dashboard = dashboard
        self._get_pr = prs
        self._credentials = credentials
        self._writer_factory = writer_factory
        self._reconciler = reconciler
        self._scheduler = scheduler

    async def execute(
        self,
        repo_full_name: str,
        number: int,
        mutation: Mutation,
        *,
        csrf_token: str | None,
        session_token: str | None,
    ) -> MutationResult:
        label = f"{repo_full_name}#{number}"

        problem = validate_target(repo_full_name, number)
        if problem:
            return _result(MutationStatus.INVALID, problem)

        if not validate_token(csrf_token, session_token):
            logger.warning("Rejected %s on %s: bad CSRF token", mutation.kind, label)
            return _result(MutationStatus.FORBIDDEN, "Invalid or missing CSRF token")

        token = await self._credentials.get_token()
        if not token:
            return _result(MutationStatus.NOT_CONFIGURED, NOT_CONFIGURED_MESSAGE)

        pr = self._get_pr(repo_full_name, number)
        if pr is None:
            return _result(MutationStatus.NOT_FOUND, f"Pull request {label} is not tracked")

        if isinstance(mutation, ToggleDraft):
            username = self._credentials.get_username()
            if not username or username != pr.author:
                logger.warning("Rejected draft toggle on %s by %r: not the author", label, username)
                return _result(MutationStatus.FORBIDDEN, "Only the pull request author can change its draft status")

        problem = validate_payload(mutation)
        if problem:
            return _result(MutationStatus.INVALID, problem)

        writer = self._writer_factory(token)
        try:
            message = await self._dispatch(writer, pr, mutation)
        except WriteError as exc:
            logger.warning("%s on %s failed: %s", mutation.kind, label, exc)
            return _result(MutationStatus.UPSTREAM_ERROR, str(exc))

        if isinstance(mutation, ToggleDraft):
            scheduled = self._scheduler.schedule_pull_request(repo_full_name, number) if self._scheduler else False
            flipped = pr.model_copy(update={"is_draft": not pr.is_draft})
            detail = self._dashboard.detail(flipped, optimistic=True, reconciliation_scheduled=scheduled)
            return _result(MutationStatus.OK, message, detail)

        await self._refresh(repo_full_name, number)
        refreshed = self._get_pr(repo_full_name, number) or pr
        return _result(MutationStatus.OK, message, self._dashboard.detail(refreshed))

    @staticmethod
    async def _dispatch(writer: PullRequestWriter, pr: PullRequest, mutation: Mutation) -> str:
        repo, number = pr.repo_full_name, pr.number
        if isinstance(mutation, SubmitReview):
            await writer.submit_review(
                repo,
                number,
                commit_sha=mutation.commit_sha or pr.head_sha,
                event=mutation.event,
                body=mutation.body,
                comments=mutation.comments,
            )
            return "Review submitted"
        if isinstance(mutation, AddIssueComment):
            await writer.create_issue_comment(repo, number, mutation.body.strip())
            return "Comment posted"
        if isinstance(mutation, ReplyToThread):
            await writer.create_reply_comment(repo, number, in_reply_to=mutation.root_comment_id, body=mutation.body.strip())
            return "Reply posted"
        if pr.is_draft:
            await writer.mark_ready_for_review(repo, number, pr.node_id)
            return "Marked ready for review"
        await writer.convert_to_draft(repo, number, pr.node_id)
        return "Converted to draft"

    async def _refresh(self, repo_full_name: str, number: int) -> None:
        if self._reconciler is None:
            return
        try:
            await self._reconciler.refresh_pull_request(repo_full_name, number)
        except Exception:
            logger.warning("Could not refresh %s#%s after write, showing stored data", repo_full_name, number, exc_info=True)
