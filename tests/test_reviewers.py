"""Tests for reviewer adapters."""

from __future__ import annotations

import pytest

from reviewpanel.config import Config, ReviewerConfig
from reviewpanel.reviewers import (
    REVIEWERS,
    CodeRabbitAdapter,
    DevinAdapter,
    GreptileAdapter,
    apply_config,
    get_reviewer,
    identify_reviewer,
    nitpick_markers_for,
)


class TestIdentifyReviewer:
    @pytest.mark.parametrize(
        ("author", "expected"),
        [
            ("devin-ai-integration[bot]", "devin"),
            ("Devin", "devin"),
            ("coderabbitai[bot]", "coderabbit"),
            ("CodeRabbit", "coderabbit"),
            ("greptile-apps[bot]", "greptile"),
            ("randomuser", "unknown"),
            ("github-actions[bot]", "unknown"),
        ],
    )
    def test_identify(self, author: str, expected: str):
        assert identify_reviewer(author) == expected


class TestGetReviewer:
    def test_known_reviewer(self):
        adapter = get_reviewer("greptile")
        assert isinstance(adapter, GreptileAdapter)

    def test_unknown_reviewer(self):
        assert get_reviewer("nonexistent") is None

    def test_registry_names_unique(self):
        names = [r.name for r in REVIEWERS]
        assert len(names) == len(set(names))


class TestNitpickMarkers:
    def test_builtin_markers(self):
        assert CodeRabbitAdapter().nitpick_markers == ("🧹 nitpick", "nitpick comments")
        assert DevinAdapter().nitpick_markers == ("📝",)

    def test_configured_extras_are_lowercased(self):
        adapter = GreptileAdapter()
        adapter.configure(ReviewerConfig(nitpick_markers=["Minor:"]))
        assert adapter.nitpick_markers == ("style:", "minor:")

    def test_markers_for_author(self):
        assert nitpick_markers_for("coderabbitai[bot]") == ("🧹 nitpick", "nitpick comments")
        assert nitpick_markers_for("github-actions[bot]") == ()

    def test_disabled_reviewer_has_no_markers(self):
        config = Config.model_validate({"reviewers": {"coderabbit": {"enabled": False}}})
        apply_config(config)
        assert get_reviewer("coderabbit").enabled is False  # type: ignore[union-attr]
        assert nitpick_markers_for("coderabbitai[bot]") == ()

    def test_apply_config_resets_to_defaults(self):
        apply_config(Config.model_validate({"reviewers": {"devin": {"nitpick_markers": ["fyi"]}}}))
        assert nitpick_markers_for("devin-ai-integration[bot]") == ("📝", "fyi")
        apply_config(Config())
        assert nitpick_markers_for("devin-ai-integration[bot]") == ("📝",)
