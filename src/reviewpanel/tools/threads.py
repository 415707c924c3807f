"""Thread reconstruction for inline review comments.

GitHub returns review comments as a flat list where each reply points at the
root comment of its conversation (``in_reply_to_id``). Replies never carry
replies of their own, so a thread is exactly one root plus its replies.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from reviewpanel.models import CommentThread, Suggestion

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from reviewpanel.models import ReviewComment

logger = logging.getLogger(__name__)

_SUGGESTION_RE = re.compile(r"`{3,}suggestion[^\n]*\n(.*?)\n`{3,}", re.DOTALL)


def build_threads(comments: Sequence[ReviewComment]) -> list[CommentThread]:
    """Group *comments* into threads.

    Threads follow the order in which roots appear; replies keep their input
    order. A reply whose parent is not a root in *comments* is dropped with a
    warning.
    """
    roots: list[ReviewComment] = []
    replies: dict[int, list[ReviewComment]] = {}
    for comment in comments:
        if comment.in_reply_to_id is None:
            roots.append(comment)
            replies.setdefault(comment.id, [])

    root_ids = {root.id for root in roots}
    for comment in comments:
        parent = comment.in_reply_to_id
        if parent is None:
            continue
        if parent not in root_ids:
            logger.warning("Dropping orphan reply %s: parent %s is not a root comment", comment.id, parent)
            continue
        replies[parent].append(comment)

    return [
        CommentThread(
            root=root,
            replies=replies[root.id],
            is_resolved=root.is_resolved,
            comment_count=1 + len(replies[root.id]),
        )
        for root in roots
    ]


def count_resolution(threads: Iterable[CommentThread]) -> tuple[int, int]:
    """Return ``(resolved, unresolved)`` thread counts."""
    resolved = unresolved = 0
    for thread in threads:
        if thread.is_resolved:
            resolved += 1
        else:
            unresolved += 1
    return resolved, unresolved


def extract_suggestions(comments: Iterable[ReviewComment]) -> list[Suggestion]:
    """Pull ```` ```suggestion ```` blocks out of review comment bodies."""
    suggestions: list[Suggestion] = []
    for comment in comments:
        for match in _SUGGESTION_RE.finditer(comment.body):
            start_line = comment.start_line if comment.start_line is not None else comment.line
            suggestions.append(
                Suggestion(
                    comment_id=comment.id,
                    author=comment.author,
                    path=comment.path,
                    start_line=start_line,
                    end_line=comment.line,
                    proposed_code=match.group(1),
                )
            )
    return suggestions
