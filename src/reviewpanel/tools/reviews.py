"""Review summary enrichment.

Turns the raw review data of one pull request into the view the dashboard
renders: classified reviews and comments, threads with resolution counts,
suggestions, the aggregate review state and bot-review flags.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from reviewpanel.models import PRReviewSummary, ReviewState, ReviewStatus
from reviewpanel.reviewers import identify_reviewer
from reviewpanel.tools.attention import count_approvals
from reviewpanel.tools.classify import CommentClassifier
from reviewpanel.tools.threads import build_threads, count_resolution, extract_suggestions

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from reviewpanel.models import Review, ReviewData
    from reviewpanel.ports import ReviewReader

logger = logging.getLogger(__name__)


def aggregate_review_status(reviews: Sequence[Review], bot_usernames: Iterable[str] = ()) -> ReviewStatus:
    """Aggregate the latest review of each human reviewer.

    Any outstanding change request wins; otherwise all-approved is approved,
    no human review is pending, and anything else is commented.
    """
    bots = frozenset(bot_usernames)
    latest: dict[str, Review] = {}
    for review in reviews:
        if review.is_bot or review.reviewer_login in bots:
            continue
        if review.state in {ReviewState.PENDING, ReviewState.DISMISSED}:
            continue
        current = latest.get(review.reviewer_login)
        if current is None or _is_newer(review, current):
            latest[review.reviewer_login] = review

    if not latest:
        return ReviewStatus.PENDING
    states = {r.state for r in latest.values()}
    if ReviewState.CHANGES_REQUESTED in states:
        return ReviewStatus.CHANGES_REQUESTED
    if states == {ReviewState.APPROVED}:
        return ReviewStatus.APPROVED
    return ReviewStatus.COMMENTED


def _is_newer(candidate: Review, current: Review) -> bool:
    if candidate.submitted_at is None or current.submitted_at is None:
        # Fall back to fetch order.
        return True
    return candidate.submitted_at >= current.submitted_at


def bot_flags(reviews: Sequence[Review], bot_usernames: Iterable[str]) -> tuple[bool, bool, bool]:
    """Return ``(has_bot_review, has_coderabbit_review, awaiting_coderabbit)``.

    CodeRabbit is awaited when one of the PR's bot accounts belongs to it
    but it has not submitted a review yet.
    """
    bots = list(bot_usernames)
    has_bot_review = any(r.is_bot for r in reviews)
    has_coderabbit_review = any(r.is_bot and identify_reviewer(r.reviewer_login) == "coderabbit" for r in reviews)
    coderabbit_configured = any(identify_reviewer(name) == "coderabbit" for name in bots)
    return has_bot_review, has_coderabbit_review, coderabbit_configured and not has_coderabbit_review


def summarize_reviews(
    data: ReviewData,
    head_sha: str,
    markers: Iterable[str] | None = None,
) -> PRReviewSummary:
    """Build the enriched review summary for one PR."""
    classifier = CommentClassifier(head_sha, data.bot_usernames, markers)
    reviews = [classifier.classify_review(r) for r in data.reviews]
    comments = [classifier.classify_comment(c) for c in data.review_comments]
    issue_comments = [classifier.classify_issue_comment(c) for c in data.issue_comments]

    threads = build_threads(comments)
    resolved, unresolved = count_resolution(threads)
    has_bot_review, has_coderabbit_review, awaiting_coderabbit = bot_flags(reviews, data.bot_usernames)

    return PRReviewSummary(
        reviews=reviews,
        threads=threads,
        issue_comments=issue_comments,
        suggestions=extract_suggestions(comments),
        review_status=aggregate_review_status(reviews, data.bot_usernames),
        approval_count=count_approvals(reviews, data.bot_usernames),
        resolved_thread_count=resolved,
        unresolved_thread_count=unresolved,
        has_bot_review=has_bot_review,
        has_coderabbit_review=has_coderabbit_review,
        awaiting_coderabbit=awaiting_coderabbit,
        bot_usernames=sorted(set(data.bot_usernames)),
    )


def read_review_data(reviews: ReviewReader, pr_id: int, head_sha: str) -> ReviewData | None:
    """Read one PR's review data. Returns None (and logs) if it cannot be read."""
    try:
        return reviews.get_review_data(pr_id, head_sha)
    except Exception:
        logger.warning("Could not read review data for PR id %s", pr_id, exc_info=True)
        return None


def review_summary(
    reviews: ReviewReader,
    pr_id: int,
    head_sha: str,
    markers: Iterable[str] | None = None,
) -> PRReviewSummary | None:
    """Read and summarize review data. Returns None if it cannot be read."""
    data = read_review_data(reviews, pr_id, head_sha)
    return summarize_reviews(data, head_sha, markers) if data is not None else None
