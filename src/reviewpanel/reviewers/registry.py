"""Reviewer registry: lookup and identification helpers."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from reviewpanel.config import Config
    from reviewpanel.reviewers.base import ReviewerAdapter


def _build_registry() -> list[ReviewerAdapter]:
    """Instantiate all known reviewer adapters."""
    from reviewpanel.reviewers.coderabbit import CodeRabbitAdapter  # noqa: PLC0415
    from reviewpanel.reviewers.devin import DevinAdapter  # noqa: PLC0415
    from reviewpanel.reviewers.greptile import GreptileAdapter  # noqa: PLC0415

    return [
        CodeRabbitAdapter(),
        DevinAdapter(),
        GreptileAdapter(),
    ]


REVIEWERS: list[ReviewerAdapter] = _build_registry()


def apply_config(config: Config) -> None:
    """Push ``[reviewers.*]`` sections into the adapters."""
    for reviewer in REVIEWERS:
        reviewer.configure(config.get_reviewer(reviewer.name))


def identify_reviewer(author: str) -> str:
    """Identify which automated reviewer an account belongs to.

    Returns:
        Reviewer name (e.g. "coderabbit", "devin") or "unknown".
    """
    for reviewer in REVIEWERS:
        if reviewer.identify(author):
            return reviewer.name
    return "unknown"


def get_reviewer(name: str) -> ReviewerAdapter | None:
    """Get a reviewer adapter by name."""
    for reviewer in REVIEWERS:
        if reviewer.name == name:
            return reviewer
    return None


def nitpick_markers_for(author: str) -> tuple[str, ...]:
    """Markers of the enabled reviewer that owns *author*, if any."""
    for reviewer in REVIEWERS:
        if reviewer.enabled and reviewer.identify(author):
            return reviewer.nitpick_markers
    return ()
