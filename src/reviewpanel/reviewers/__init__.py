"""Adapters for automated code review bots."""

from __future__ import annotations

from reviewpanel.reviewers.base import ReviewerAdapter
from reviewpanel.reviewers.coderabbit import CodeRabbitAdapter
from reviewpanel.reviewers.devin import DevinAdapter
from reviewpanel.reviewers.greptile import GreptileAdapter
from reviewpanel.reviewers.registry import (
    REVIEWERS,
    apply_config,
    get_reviewer,
    identify_reviewer,
    nitpick_markers_for,
)

__all__ = [
    "REVIEWERS",
    "CodeRabbitAdapter",
    "DevinAdapter",
    "GreptileAdapter",
    "ReviewerAdapter",
    "apply_config",
    "get_reviewer",
    "identify_reviewer",
    "nitpick_markers_for",
]
