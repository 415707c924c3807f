"""Comment classification.

Labels reviews and comments with three independent flags:

- **outdated**: made against a commit other than the PR's current head.
- **bot**: authored by a known bot account (case-sensitive) or flagged as a
  bot by GitHub.
- **nitpick**: a bot comment whose body carries a nitpick marker. Markers are
  matched case-insensitively and come from ``[nitpicks] markers`` plus the
  conventions of the reviewer adapter that owns the account.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from reviewpanel.config import DEFAULT_NITPICK_MARKERS
from reviewpanel.models import Classification, IssueComment, Review, ReviewComment
from reviewpanel.reviewers import nitpick_markers_for

if TYPE_CHECKING:
    from collections.abc import Iterable


def is_outdated(commit_sha: str, head_sha: str) -> bool:
    """True iff *commit_sha* is set and differs from *head_sha*."""
    return bool(commit_sha) and commit_sha != head_sha


def is_bot_author(author: str, bot_usernames: Iterable[str], *, upstream_bot: bool = False) -> bool:
    """True if *author* is listed exactly in *bot_usernames* or GitHub says it is a bot."""
    return upstream_bot or author in bot_usernames


def has_nitpick_marker(body: str, markers: Iterable[str]) -> bool:
    lowered = body.lower()
    return any(marker.lower() in lowered for marker in markers)


class CommentClassifier:
    """Classifier bound to one pull request's head SHA and bot accounts."""

    def __init__(
        self,
        head_sha: str,
        bot_usernames: Iterable[str],
        markers: Iterable[str] | None = None,
    ) -> None:
        self.head_sha = head_sha
        self.bot_usernames = frozenset(bot_usernames)
        self.markers = tuple(m.lower() for m in (DEFAULT_NITPICK_MARKERS if markers is None else markers))

    def classify(
        self,
        author: str,
        body: str,
        commit_sha: str = "",
        *,
        upstream_bot: bool = False,
    ) -> Classification:
        is_bot = is_bot_author(author, self.bot_usernames, upstream_bot=upstream_bot)
        is_nitpick = False
        if is_bot and body.strip():
            is_nitpick = has_nitpick_marker(body, self.markers + nitpick_markers_for(author))
        return Classification(
            is_outdated=is_outdated(commit_sha, self.head_sha),
            is_bot=is_bot,
            is_nitpick=is_nitpick,
        )

    def classify_review(self, review: Review) -> Review:
        labels = self.classify(review.reviewer_login, review.body, review.commit_id, upstream_bot=review.is_bot)
        return review.model_copy(update=labels.model_dump())

    def classify_comment(self, comment: ReviewComment) -> ReviewComment:
        labels = self.classify(comment.author, comment.body, comment.commit_id, upstream_bot=comment.is_bot)
        return comment.model_copy(update=labels.model_dump())

    def classify_issue_comment(self, comment: IssueComment) -> IssueComment:
        # Issue comments are not tied to a commit, so they are never outdated.
        labels = self.classify(comment.author, comment.body, upstream_bot=comment.is_bot)
        return comment.model_copy(update={"is_bot": labels.is_bot, "is_nitpick": labels.is_nitpick})
