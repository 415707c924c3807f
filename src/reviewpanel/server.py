"""FastMCP server for reviewpanel.

Exposes the review dashboard as tools: a prioritized worklist of open pull
requests with attention signals, enriched PR detail, review/comment/draft
write actions, and the local settings that drive the signals.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import TYPE_CHECKING, Annotated, Literal

from fastmcp import FastMCP
from fastmcp.server.dependencies import get_context
from fastmcp.server.lifespan import lifespan
from fastmcp.server.middleware.error_handling import ErrorHandlingMiddleware
from fastmcp.server.middleware.logging import LoggingMiddleware
from fastmcp.server.middleware.ping import PingMiddleware
from fastmcp.server.middleware.timing import TimingMiddleware
from pydantic import Field

from reviewpanel import github_api
from reviewpanel.config import get_config, get_config_path, load_config, set_config
from reviewpanel.credentials import USERNAME_ENV_VAR
from reviewpanel.middleware import WriteOperationMiddleware
from reviewpanel.models import (
    AddIssueComment,
    ConfigInfo,
    DraftLineComment,
    MutationResult,
    MutationStatus,
    PRDetailResult,
    PRStatus,
    ReplyToThread,
    RepositoriesResult,
    SubmitReview,
    ThresholdsInfo,
    ToggleDraft,
    WorklistResult,
)
from reviewpanel.reviewers import apply_config
from reviewpanel.services import build_services, get_services, set_services
from reviewpanel.tools import settings

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from reviewpanel.models import Mutation

logger = logging.getLogger(__name__)
write_operation_middleware = WriteOperationMiddleware()

_SHUTDOWN_DRAIN_SECONDS = 10.0


@lifespan
async def startup(server: FastMCP) -> AsyncIterator[dict[str, object] | None]:  # noqa: ARG001
    """Load config, wire services and start syncing watched repositories."""
    config, path = load_config()
    set_config(config, config_path=path)
    apply_config(config)
    write_operation_middleware.configure(enabled=config.diagnostics.tool_call_log)

    services = build_services(config)
    set_services(services)
    for repo in config.repositories.watch:
        try:
            github_api.parse_repo(repo)
        except github_api.GitHubError as exc:
            logger.warning("Skipping watched repository from config: %s", exc)
            continue
        services.store.add_repository(repo)
        services.scheduler.schedule_repository(repo)

    try:
        yield {}
    finally:
        await services.scheduler.drain(timeout=_SHUTDOWN_DRAIN_SECONDS)


mcp = FastMCP(
    "reviewpanel",
    lifespan=startup,
    instructions="""\
Pull request review dashboard: which open PRs need your attention, and why.

## Reading

- `list_pull_requests` returns the worklist: open, non-ignored PRs ordered by how
  many attention signals they raise, then by most recent activity.
- `get_pull_request` returns one PR with its review threads (root comment + replies),
  issue comments, suggested changes, aggregate review status and CI health.
- `sync_repository` re-fetches a watched repository from GitHub right away.

## Attention signals

- `needs_more_reviews`: fewer non-bot approvals than the required review count.
- `is_stale`: no activity for at least the urgency day count.
- `has_stale_review`: your latest review is on an older commit than the head.
- `has_ci_failure`: one of your own PRs has failing CI.
- `is_age_urgent`: the PR has been open at least the urgency day count.

Thresholds come from a per-repository override, else the global settings, else
2 reviews / 7 days. Inspect them with `get_thresholds`.

## Writing

Every write tool needs `csrf_token`: call `session_token` once and pass the value
back. Results carry a `status` (`ok`, `invalid`, `forbidden`, `not_configured`,
`not_found`, `upstream_error`); do NOT retry `forbidden` or `invalid` results
unchanged. Only the PR author may toggle draft status. After a draft toggle the
returned view is `optimistic`: the draft flag is flipped locally while the real
state is re-fetched in the background.
""",
)


def _recovery_error(
    exc: Exception,
    *,
    tool_name: str,
    pr_number: int | None = None,
    repo: str | None = None,
) -> str:
    """Build an actionable error message with recovery hints."""
    msg = str(exc)
    low = msg.lower()

    if isinstance(exc, github_api.GitHubAuthError):
        return f"{tool_name} failed: GitHub authentication failed. Set REVIEWPANEL_GITHUB_TOKEN or run: gh auth login"

    if "rate limit" in low:
        return f"{tool_name} failed: GitHub API rate limit hit. Wait 60 seconds and retry."

    if "not found" in low or "404" in msg:
        hints = [f"{tool_name} failed: resource not found ({msg})."]
        if pr_number:
            hints.append(f"Verify PR #{pr_number} exists and is open.")
        if repo:
            hints.append(f"Verify repo '{repo}' is correct and watched (list_repositories).")
        return " ".join(hints)

    if "graphql" in low:
        return f"{tool_name} failed: GitHub GraphQL error ({msg}). This may be a transient issue; retry once."

    parts = [f"{tool_name} failed: {msg}."]
    if pr_number:
        parts.append(f"Verify PR #{pr_number} exists.")
    return " ".join(parts)


mcp.add_middleware(ErrorHandlingMiddleware(include_traceback=True, transform_errors=True))
mcp.add_middleware(TimingMiddleware())
mcp.add_middleware(LoggingMiddleware(include_payloads=True, max_payload_length=500))
mcp.add_middleware(PingMiddleware(interval_ms=30_000))
mcp.add_middleware(write_operation_middleware)


# ---------------------------------------------------------------------------
# Reading
# ---------------------------------------------------------------------------


@mcp.tool(tags={"discovery"})
def session_token() -> str:
    """Return the anti-forgery token that every write tool expects as `csrf_token`."""
    return get_services().session_token


@mcp.tool(tags={"query"})
def list_pull_requests(
    repo: str | None = None,
    query: str | None = None,
    status: Literal["open", "closed", "merged", "all"] = "open",
) -> WorklistResult:
    """List pull requests that may need attention, most urgent first.

    Args:
        repo: Only show PRs of this repository ("owner/repo"). All watched repositories if omitted.
        query: Case-insensitive text to look for in the title, author, repository or branch.
        status: Which PRs to list: "open" (default), "closed", "merged" or "all".

    Returns:
        PR cards with attention signals, days open and days inactive.
    """
    try:
        wanted = None if status == "all" else PRStatus(status)
        cards = get_services().dashboard().worklist(repo=repo, query=query or "", status=wanted)
        return WorklistResult(cards=cards)
    except Exception as exc:
        logger.exception("list_pull_requests failed")
        return WorklistResult(error=_recovery_error(exc, tool_name="list_pull_requests", repo=repo))


@mcp.tool(tags={"query"})
def get_pull_request(repo: str, pr_number: int) -> PRDetailResult:
    """Show one pull request with threads, suggestions, review status and CI health.

    Args:
        repo: Repository in "owner/repo" format.
        pr_number: The PR number.
    """
    try:
        detail = get_services().dashboard().get_detail(repo, pr_number)
    except Exception as exc:
        logger.exception("get_pull_request failed for %s#%s", repo, pr_number)
        return PRDetailResult(error=_recovery_error(exc, tool_name="get_pull_request", pr_number=pr_number, repo=repo))
    if detail is None:
        return PRDetailResult(not_found=True, error=f"Pull request {repo}#{pr_number} is not tracked")
    return PRDetailResult(detail=detail)


@mcp.tool(tags={"query"})
async def sync_repository(repo: str) -> WorklistResult:
    """Re-fetch a watched repository's open pull requests from GitHub now.

    Args:
        repo: Repository in "owner/repo" format.
    """
    try:
        services = get_services()
        ctx = get_context()
        await ctx.info(f"Syncing {repo}")
        await services.reconciler.refresh_repository(repo)
        return WorklistResult(cards=services.dashboard().worklist(repo=repo))
    except Exception as exc:
        logger.exception("sync_repository failed for %s", repo)
        return WorklistResult(error=_recovery_error(exc, tool_name="sync_repository", repo=repo))
    except asyncio.CancelledError:
        logger.warning("sync_repository cancelled for %s", repo)
        return WorklistResult(error="Cancelled")


# ---------------------------------------------------------------------------
# PR write actions
# ---------------------------------------------------------------------------


async def _run_mutation(tool_name: str, repo: str, pr_number: int, mutation: Mutation, csrf_token: str) -> MutationResult:
    try:
        services = get_services()
        return await services.coordinator().execute(
            repo,
            pr_number,
            mutation,
            csrf_token=csrf_token,
            session_token=services.session_token,
        )
    except Exception as exc:
        logger.exception("%s failed for %s#%s", tool_name, repo, pr_number)
        return MutationResult(
            status=MutationStatus.UPSTREAM_ERROR,
            status_code=422,
            message=_recovery_error(exc, tool_name=tool_name, pr_number=pr_number, repo=repo),
        )
    except asyncio.CancelledError:
        logger.warning("%s cancelled for %s#%s", tool_name, repo, pr_number)
        return MutationResult(status=MutationStatus.UPSTREAM_ERROR, status_code=422, message="Cancelled")


@mcp.tool(tags={"command"})
async def submit_review(  # noqa: PLR0913
    repo: str,
    pr_number: int,
    event: str,
    csrf_token: str,
    body: str = "",
    commit_sha: str = "",
    comments: list[DraftLineComment] | None = None,
) -> MutationResult:
    """Submit a review on a pull request.

    Args:
        repo: Repository in "owner/repo" format.
        pr_number: The PR number.
        event: APPROVE, REQUEST_CHANGES or COMMENT.
        csrf_token: Value returned by `session_token`.
        body: Review summary.
        commit_sha: Commit to review. Defaults to the PR head.
        comments: Inline comments to attach (path, line, body, optional start_line for ranges).
    """
    mutation = SubmitReview(event=event, body=body, commit_sha=commit_sha, comments=comments or [])
    return await _run_mutation("submit_review", repo, pr_number, mutation, csrf_token)


@mcp.tool(tags={"command"})
async def add_comment(repo: str, pr_number: int, body: str, csrf_token: str) -> MutationResult:
    """Post a top-level comment on a pull request's conversation.

    Args:
        repo: Repository in "owner/repo" format.
        pr_number: The PR number.
        body: Comment text (markdown). Must not be blank.
        csrf_token: Value returned by `session_token`.
    """
    return await _run_mutation("add_comment", repo, pr_number, AddIssueComment(body=body), csrf_token)


@mcp.tool(tags={"command"})
async def reply_to_thread(
    repo: str,
    pr_number: int,
    root_comment_id: int,
    body: str,
    csrf_token: str,
) -> MutationResult:
    """Reply to an inline review thread.

    Args:
        repo: Repository in "owner/repo" format.
        pr_number: The PR number.
        root_comment_id: Id of the thread's root comment (`threads[].root.id`).
        body: Reply text (markdown). Must not be blank.
        csrf_token: Value returned by `session_token`.
    """
    mutation = ReplyToThread(root_comment_id=root_comment_id, body=body)
    return await _run_mutation("reply_to_thread", repo, pr_number, mutation, csrf_token)


@mcp.tool(tags={"command"})
async def toggle_draft(repo: str, pr_number: int, csrf_token: str) -> MutationResult:
    """Convert your own PR to draft, or mark it ready for review.

    The returned view is optimistic: GitHub's state is re-fetched in the background.

    Args:
        repo: Repository in "owner/repo" format.
        pr_number: The PR number.
        csrf_token: Value returned by `session_token`.
    """
    return await _run_mutation("toggle_draft", repo, pr_number, ToggleDraft(), csrf_token)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@mcp.tool(tags={"query"})
def get_thresholds() -> ThresholdsInfo:
    """Show the global attention settings and per-repository overrides."""
    try:
        return settings.get_thresholds(get_services().store)
    except Exception as exc:
        logger.exception("get_thresholds failed")
        return ThresholdsInfo(error=_recovery_error(exc, tool_name="get_thresholds"))


@mcp.tool(tags={"command"})
def save_global_thresholds(
    csrf_token: str,
    review_count: int | None = None,
    age_urgency_days: int | None = None,
    stale_review_enabled: bool = True,
    ci_failure_enabled: bool = True,
) -> ThresholdsInfo:
    """Save the global attention settings. Negative numbers are stored as 0.

    Args:
        csrf_token: Value returned by `session_token`.
        review_count: Approvals required per PR. Omit to use the default (2).
        age_urgency_days: Days before a PR counts as stale/urgent. Omit to use the default (7).
        stale_review_enabled: Show the staleness signals.
        ci_failure_enabled: Show the CI-failure signal on your own PRs.
    """
    services = get_services()
    return settings.save_global_thresholds(
        services.store,
        review_count=review_count,
        age_urgency_days=age_urgency_days,
        stale_review_enabled=stale_review_enabled,
        ci_failure_enabled=ci_failure_enabled,
        csrf_token=csrf_token,
        session_token=services.session_token,
    )


@mcp.tool(tags={"command"})
def save_repo_threshold(
    repo: str,
    csrf_token: str,
    review_count: int | None = None,
    age_urgency_days: int | None = None,
    stale_review_enabled: bool | None = None,
    ci_failure_enabled: bool | None = None,
) -> ThresholdsInfo:
    """Override the thresholds for one repository. Omitted values inherit the global settings.

    Args:
        repo: Repository in "owner/repo" format.
        csrf_token: Value returned by `session_token`.
        review_count: Approvals required for this repository's PRs.
        age_urgency_days: Urgency day count for this repository's PRs.
        stale_review_enabled: Turn the stale-review signal on or off for this repository.
        ci_failure_enabled: Turn the CI-failure signal on or off for this repository.
    """
    services = get_services()
    return settings.save_repo_threshold(
        services.store,
        repo,
        review_count=review_count,
        age_urgency_days=age_urgency_days,
        stale_review_enabled=stale_review_enabled,
        ci_failure_enabled=ci_failure_enabled,
        csrf_token=csrf_token,
        session_token=services.session_token,
    )


@mcp.tool(tags={"command"})
def delete_repo_threshold(repo: str, csrf_token: str) -> ThresholdsInfo:
    """Remove a repository's threshold override."""
    services = get_services()
    return settings.delete_repo_threshold(
        services.store,
        repo,
        csrf_token=csrf_token,
        session_token=services.session_token,
    )


@mcp.tool(tags={"query"})
def list_repositories() -> RepositoriesResult:
    """List the watched repositories."""
    return RepositoriesResult(repositories=get_services().store.list_repositories())


@mcp.tool(tags={"command"})
async def watch_repository(repo: str, csrf_token: str) -> RepositoriesResult:
    """Start watching a repository; its open PRs are fetched in the background.

    Args:
        repo: Repository in "owner/repo" format.
        csrf_token: Value returned by `session_token`.
    """
    services = get_services()
    return settings.watch_repository(
        services.store,
        services.scheduler,
        repo,
        csrf_token=csrf_token,
        session_token=services.session_token,
    )


@mcp.tool(tags={"command"})
def unwatch_repository(repo: str, csrf_token: str) -> RepositoriesResult:
    """Stop watching a repository and drop its PRs from the worklist."""
    services = get_services()
    return settings.unwatch_repository(
        services.store,
        repo,
        csrf_token=csrf_token,
        session_token=services.session_token,
    )


@mcp.tool(tags={"command"})
def ignore_pull_request(
    repo: str,
    pr_number: Annotated[int, Field(ge=1)],
    csrf_token: str,
) -> MutationResult:
    """Hide a pull request from the worklist."""
    services = get_services()
    return settings.set_ignored(
        services.store,
        repo,
        pr_number,
        ignored=True,
        csrf_token=csrf_token,
        session_token=services.session_token,
    )


@mcp.tool(tags={"command"})
def unignore_pull_request(
    repo: str,
    pr_number: Annotated[int, Field(ge=1)],
    csrf_token: str,
) -> MutationResult:
    """Show a previously hidden pull request on the worklist again."""
    services = get_services()
    return settings.set_ignored(
        services.store,
        repo,
        pr_number,
        ignored=False,
        csrf_token=csrf_token,
        session_token=services.session_token,
    )


@mcp.tool(tags={"discovery"})
def show_config() -> ConfigInfo:
    """Show the active reviewpanel configuration and where it was loaded from."""
    config = get_config()
    path = get_config_path()

    parts: list[str] = []
    enabled = [name for name, rc in config.reviewers.items() if rc.enabled]
    disabled = [name for name, rc in config.reviewers.items() if not rc.enabled]
    parts.append(f"{len(config.bots.usernames)} bot account(s): {', '.join(config.bots.usernames) or 'none'}.")
    if disabled:
        parts.append(f"Reviewer adapters disabled: {', '.join(sorted(disabled))}.")
    elif enabled:
        parts.append(f"Reviewer adapters configured: {', '.join(sorted(enabled))}.")
    parts.append(f"{len(config.nitpicks.markers)} nitpick marker(s).")
    parts.append(f"Watching at startup: {', '.join(config.repositories.watch) or 'nothing'}.")
    parts.append(f"Background reconciliation: {'enabled' if config.reconcile.enabled else 'disabled'}.")

    return ConfigInfo(
        config=config.model_dump(mode="json"),
        source=str(path) if path else "defaults",
        explanation=" ".join(parts),
    )


def check_prerequisites() -> None:
    """Log whether write actions and author-only features are available."""
    if github_api.resolve_token_sync():
        logger.info("GitHub token found, write actions enabled")
    else:
        logger.warning("No GitHub token found: write actions are disabled. Set REVIEWPANEL_GITHUB_TOKEN or run: gh auth login")
    config, _ = load_config()
    if not (config.github.username or _username_from_env()):
        logger.warning("No GitHub username configured: draft toggles and own-PR signals are disabled. Set %s", USERNAME_ENV_VAR)


def _username_from_env() -> str:
    return os.environ.get(USERNAME_ENV_VAR, "").strip()
