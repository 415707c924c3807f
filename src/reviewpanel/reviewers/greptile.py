"""Greptile reviewer adapter."""

from __future__ import annotations

from typing import override

from reviewpanel.reviewers.base import ReviewerAdapter


class GreptileAdapter(ReviewerAdapter):
    """Adapter for the Greptile AI reviewer.

    Greptile prefixes comments with a category; ``style:`` comments are nitpicks.
    """

    @property
    def name(self) -> str:
        return "greptile"

    @property
    @override
    def builtin_nitpick_markers(self) -> tuple[str, ...]:
        return ("style:",)

    @override
    def identify(self, author: str) -> bool:
        return "greptile" in author.lower().strip()
