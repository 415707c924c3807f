"""Worklist and detail views.

The worklist is the list of open, non-ignored pull requests with their
attention signals, most urgent first. The detail view adds the enriched
review summary and CI health. Review and CI failures degrade to ``None``
sections; only the lookup of the pull request itself can fail a view.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from reviewpanel.models import PRCard, PRDetail, PRStatus
from reviewpanel.tools.attention import AttentionEvaluator
from reviewpanel.tools.health import health_summary
from reviewpanel.tools.reviews import read_review_data, summarize_reviews
from reviewpanel.tools.thresholds import ThresholdScope

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from datetime import datetime

    from reviewpanel.models import PullRequest, ReviewData
    from reviewpanel.ports import HealthReader, PullRequestReader, ReviewReader, ThresholdStore

logger = logging.getLogger(__name__)


def _never_ignored(repo_full_name: str, number: int) -> bool:  # noqa: ARG001
    return False


def matches_query(pr: PullRequest, query: str) -> bool:
    """Case-insensitive substring match on title, author, repository and branch."""
    needle = query.strip().lower()
    if not needle:
        return True
    return any(needle in field.lower() for field in (pr.title, pr.author, pr.repo_full_name, pr.branch))


def _priority(card: PRCard) -> tuple[int, float]:
    activity = card.pr.last_activity_at
    return -card.signals.severity(), -(activity.timestamp() if activity else 0.0)


class Dashboard:
    """Builds PR views from the read ports."""

    def __init__(  # noqa: PLR0913
        self,
        prs: PullRequestReader,
        reviews: ReviewReader,
        health: HealthReader,
        thresholds: ThresholdStore | None,
        *,
        username: str = "",
        markers: Iterable[str] | None = None,
        is_ignored: Callable[[str, int], bool] | None = None,
    ) -> None:
        self._prs = prs
        self._reviews = reviews
        self._health = health
        self._thresholds = thresholds
        self._username = username
        self._markers = list(markers) if markers is not None else None
        self._is_ignored = is_ignored or _never_ignored
        self._evaluator = AttentionEvaluator(reviews, username)

    def open_scope(self) -> ThresholdScope:
        return ThresholdScope.open(self._thresholds)

    def worklist(
        self,
        *,
        repo: str | None = None,
        query: str = "",
        status: PRStatus | None = PRStatus.OPEN,
        now: datetime | None = None,
    ) -> list[PRCard]:
        """Non-ignored PRs ordered by signal count, then most recent activity.

        Only open PRs by default; pass ``status=None`` for every status.
        *query* filters by :func:`matches_query`.
        """
        scope = self.open_scope()
        cards = [
            self.card(pr, scope, now=now)
            for pr in self._prs.list_all()
            if (status is None or pr.status == status)
            and (repo is None or pr.repo_full_name == repo)
            and matches_query(pr, query)
            and not self._is_ignored(pr.repo_full_name, pr.number)
        ]
        cards.sort(key=_priority)
        return cards

    def card(
        self,
        pr: PullRequest,
        scope: ThresholdScope,
        *,
        now: datetime | None = None,
        review_data: ReviewData | None = None,
    ) -> PRCard:
        signals = self._evaluator.signals_for(pr, scope, now=now, data=review_data)
        return PRCard(
            pr=pr,
            signals=signals,
            days_open=pr.days_since_opened(now),
            days_inactive=pr.days_since_last_activity(now),
            is_own_pr=bool(self._username) and pr.author == self._username,
        )

    def detail(
        self,
        pr: PullRequest,
        *,
        scope: ThresholdScope | None = None,
        now: datetime | None = None,
        optimistic: bool = False,
        reconciliation_scheduled: bool = False,
    ) -> PRDetail:
        data = read_review_data(self._reviews, pr.id, pr.head_sha)
        card = self.card(pr, scope or self.open_scope(), now=now, review_data=data)
        return PRDetail(
            **dict(card),
            review_summary=summarize_reviews(data, pr.head_sha, self._markers) if data is not None else None,
            health=health_summary(self._health, pr.id),
            optimistic=optimistic,
            reconciliation_scheduled=reconciliation_scheduled,
        )

    def get_detail(self, repo_full_name: str, number: int, *, now: datetime | None = None) -> PRDetail | None:
        """Detail view for a tracked PR, or None if it is not tracked."""
        pr = self._prs.get_by_number(repo_full_name, number)
        if pr is None:
            return None
        return self.detail(pr, now=now)
