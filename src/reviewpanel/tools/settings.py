"""Local dashboard settings: attention thresholds, watched repositories, ignore list.

These writes never touch GitHub, but they are still CSRF-gated like the PR
mutations. Negative numbers are clamped to 0 rather than rejected; ``None``
clears a value so it falls back to the default (global) or inherits the
global value (per-repository).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from reviewpanel.csrf import validate_token
from reviewpanel.github_api import GitHubError, parse_repo
from reviewpanel.models import (
    GlobalSettings,
    MutationResult,
    MutationStatus,
    RepositoriesResult,
    RepoThreshold,
    ThresholdsInfo,
)

if TYPE_CHECKING:
    from reviewpanel.reconcile import ReconciliationScheduler
    from reviewpanel.store import MemoryStore

logger = logging.getLogger(__name__)

CSRF_ERROR = "Invalid or missing CSRF token"


def clamp(value: int | None) -> int | None:
    """Clamp negative counts to 0; None passes through."""
    if value is None:
        return None
    return max(value, 0)


def _repo_error(repo_full_name: str) -> str | None:
    try:
        parse_repo(repo_full_name)
    except GitHubError as exc:
        return str(exc)
    return None


# ---------------------------------------------------------------------------
# Thresholds
# ---------------------------------------------------------------------------


def get_thresholds(store: MemoryStore, *, error: str | None = None) -> ThresholdsInfo:
    return ThresholdsInfo(
        global_settings=store.get_global_settings(),
        repo_thresholds=store.list_repo_thresholds(),
        error=error,
    )


def save_global_thresholds(  # noqa: PLR0913
    store: MemoryStore,
    *,
    review_count: int | None,
    age_urgency_days: int | None,
    stale_review_enabled: bool = True,
    ci_failure_enabled: bool = True,
    csrf_token: str | None,
    session_token: str | None,
) -> ThresholdsInfo:
    if not validate_token(csrf_token, session_token):
        return get_thresholds(store, error=CSRF_ERROR)
    settings = GlobalSettings(
        review_count_threshold=clamp(review_count),
        age_urgency_days=clamp(age_urgency_days),
        stale_review_enabled=stale_review_enabled,
        ci_failure_enabled=ci_failure_enabled,
    )
    store.set_global_settings(settings)
    logger.info("Saved global thresholds: %s", settings.model_dump())
    return get_thresholds(store)


def save_repo_threshold(
    store: MemoryStore,
    repo_full_name: str,
    *,
    review_count: int | None,
    age_urgency_days: int | None,
    stale_review_enabled: bool | None = None,
    ci_failure_enabled: bool | None = None,
    csrf_token: str | None,
    session_token: str | None,
) -> ThresholdsInfo:
    if not validate_token(csrf_token, session_token):
        return get_thresholds(store, error=CSRF_ERROR)
    if problem := _repo_error(repo_full_name):
        return get_thresholds(store, error=problem)
    threshold = RepoThreshold(
        repo_full_name=repo_full_name,
        review_count=clamp(review_count),
        age_urgency_days=clamp(age_urgency_days),
        stale_review_enabled=stale_review_enabled,
        ci_failure_enabled=ci_failure_enabled,
    )
    store.set_repo_threshold(threshold)
    logger.info("Saved threshold override for %s", repo_full_name)
    return get_thresholds(store)


def delete_repo_threshold(
    store: MemoryStore,
    repo_full_name: str,
    *,
    csrf_token: str | None,
    session_token: str | None,
) -> ThresholdsInfo:
    if not validate_token(csrf_token, session_token):
        return get_thresholds(store, error=CSRF_ERROR)
    store.delete_repo_threshold(repo_full_name)
    return get_thresholds(store)


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


def watch_repository(
    store: MemoryStore,
    scheduler: ReconciliationScheduler,
    repo_full_name: str,
    *,
    csrf_token: str | None,
    session_token: str | None,
) -> RepositoriesResult:
    """Register a repository and schedule a sync of its open PRs."""
    if not validate_token(csrf_token, session_token):
        return RepositoriesResult(repositories=store.list_repositories(), error=CSRF_ERROR)
    if problem := _repo_error(repo_full_name):
        return RepositoriesResult(repositories=store.list_repositories(), error=problem)
    if store.add_repository(repo_full_name):
        logger.info("Watching %s", repo_full_name)
    scheduled = scheduler.schedule_repository(repo_full_name)
    return RepositoriesResult(repositories=store.list_repositories(), reconciliation_scheduled=scheduled)


def unwatch_repository(
    store: MemoryStore,
    repo_full_name: str,
    *,
    csrf_token: str | None,
    session_token: str | None,
) -> RepositoriesResult:
    """Stop watching a repository and drop its PRs from the dashboard."""
    if not validate_token(csrf_token, session_token):
        return RepositoriesResult(repositories=store.list_repositories(), error=CSRF_ERROR)
    store.remove_repository(repo_full_name)
    return RepositoriesResult(repositories=store.list_repositories())


# ---------------------------------------------------------------------------
# Ignore list
# ---------------------------------------------------------------------------


def set_ignored(
    store: MemoryStore,
    repo_full_name: str,
    number: int,
    *,
    ignored: bool,
    csrf_token: str | None,
    session_token: str | None,
) -> MutationResult:
    """Hide (or show again) a PR on the worklist."""
    if not validate_token(csrf_token, session_token):
        return MutationResult(status=MutationStatus.FORBIDDEN, status_code=403, message=CSRF_ERROR)
    if store.get_by_number(repo_full_name, number) is None:
        return MutationResult(
            status=MutationStatus.NOT_FOUND,
            status_code=404,
            message=f"Pull request {repo_full_name}#{number} is not tracked",
        )
    if ignored:
        store.ignore(repo_full_name, number)
        return MutationResult(status=MutationStatus.OK, status_code=200, message="Pull request hidden from the worklist")
    store.unignore(repo_full_name, number)
    return MutationResult(status=MutationStatus.OK, status_code=200, message="Pull request restored to the worklist")
