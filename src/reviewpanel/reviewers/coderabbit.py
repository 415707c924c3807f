"""CodeRabbit reviewer adapter."""

from __future__ import annotations

from typing import override

from reviewpanel.reviewers.base import ReviewerAdapter


class CodeRabbitAdapter(ReviewerAdapter):
    """Adapter for the CodeRabbit AI reviewer.

    - Comments are posted by 'coderabbitai' or 'coderabbitai[bot]'.
    - Nitpicks are labelled with a broom emoji heading or a collapsed
      "Nitpick comments" section in the review body.
    """

    @property
    def name(self) -> str:
        return "coderabbit"

    @property
    @override
    def builtin_nitpick_markers(self) -> tuple[str, ...]:
        return ("🧹 nitpick", "nitpick comments")

    @override
    def identify(self, author: str) -> bool:
        return "coderabbit" in author.lower().strip()
