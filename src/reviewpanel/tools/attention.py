"""Attention signals: does a pull request need a human to look at it?"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from reviewpanel.models import AttentionSignals, CIStatus, ReviewState

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime

    from reviewpanel.models import EffectiveThresholds, PullRequest, Review, ReviewData
    from reviewpanel.ports import ReviewReader
    from reviewpanel.tools.thresholds import ThresholdScope

logger = logging.getLogger(__name__)


def count_approvals(reviews: Iterable[Review], bot_usernames: Iterable[str] = ()) -> int:
    """Count APPROVED reviews from non-bot reviewers.

    Every review in the approved state counts. GitHub already reports one
    active review per reviewer, so no per-reviewer deduplication is done here.
    """
    bots = frozenset(bot_usernames)
    return sum(
        1
        for review in reviews
        if review.state == ReviewState.APPROVED and not review.is_bot and review.reviewer_login not in bots
    )


def latest_review_sha(reviews: Iterable[Review], username: str) -> str:
    """Commit SHA of *username*'s most recent review, or an empty string."""
    if not username:
        return ""
    own = [r for r in reviews if r.reviewer_login == username]
    if not own:
        return ""
    dated = [r for r in own if r.submitted_at is not None]
    latest = max(dated, key=lambda r: r.submitted_at) if dated else own[-1]  # type: ignore[arg-type,return-value]
    return latest.commit_id


def compute_attention_signals(
    pr: PullRequest,
    approval_count: int,
    thresholds: EffectiveThresholds,
    *,
    user_review_sha: str = "",
    authenticated_user: str = "",
    now: datetime | None = None,
) -> AttentionSignals:
    """Evaluate *pr* against *thresholds*.

    Disabled signals are forced off, but the raw approval and inactivity
    numbers are always reported.
    """
    days_inactive = pr.days_since_last_activity(now)
    return AttentionSignals(
        needs_more_reviews=approval_count < thresholds.required_review_count,
        is_stale=thresholds.stale_review_enabled and days_inactive >= thresholds.urgency_days,
        is_age_urgent=pr.days_since_opened(now) >= thresholds.urgency_days,
        has_stale_review=(
            thresholds.stale_review_enabled and bool(user_review_sha) and user_review_sha != pr.head_sha
        ),
        has_ci_failure=(
            thresholds.ci_failure_enabled
            and bool(authenticated_user)
            and pr.author == authenticated_user
            and pr.ci_status == CIStatus.FAILING
        ),
        approval_count=approval_count,
        required_review_count=thresholds.required_review_count,
        days_inactive=days_inactive,
    )


class AttentionEvaluator:
    """Computes signals for PRs from stored review data.

    Any failure yields an empty :class:`AttentionSignals` and a log line;
    signals never break the surrounding view.
    """

    def __init__(self, reviews: ReviewReader, username: str = "") -> None:
        self._reviews = reviews
        self._username = username

    def signals_for(
        self,
        pr: PullRequest,
        scope: ThresholdScope,
        *,
        now: datetime | None = None,
        data: ReviewData | None = None,
    ) -> AttentionSignals:
        """Signals for *pr*. Reads its review data unless *data* is passed in."""
        try:
            if data is None:
                data = self._reviews.get_review_data(pr.id, pr.head_sha)
            thresholds = scope.resolve(pr.repo_full_name)
            return compute_attention_signals(
                pr,
                count_approvals(data.reviews, data.bot_usernames),
                thresholds,
                user_review_sha=latest_review_sha(data.reviews, self._username),
                authenticated_user=self._username,
                now=now,
            )
        except Exception:
            logger.warning("Could not compute attention signals for %s#%s", pr.repo_full_name, pr.number, exc_info=True)
            return AttentionSignals()
