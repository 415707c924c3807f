"""Devin reviewer adapter."""

from __future__ import annotations

from typing import override

from reviewpanel.reviewers.base import ReviewerAdapter


class DevinAdapter(ReviewerAdapter):
    """Adapter for the Devin AI reviewer.

    Devin tags findings with emoji; informational findings (📝) carry no
    required change and are treated as nitpicks.
    """

    @property
    def name(self) -> str:
        return "devin"

    @property
    @override
    def builtin_nitpick_markers(self) -> tuple[str, ...]:
        return ("📝",)

    @override
    def identify(self, author: str) -> bool:
        return "devin" in author.lower().strip()
