"""Threshold resolution.

Effective thresholds for a repository are resolved field by field:
per-repository override, then global settings, then the built-in default.

A :class:`ThresholdScope` is created for one listing or detail pass. It holds
the global settings loaded at the start of the pass and memoizes lookups per
repository, then is thrown away with the pass.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from reviewpanel.models import EffectiveThresholds, GlobalSettings

if TYPE_CHECKING:
    from reviewpanel.models import RepoThreshold
    from reviewpanel.ports import ThresholdStore

logger = logging.getLogger(__name__)

DEFAULT_REQUIRED_REVIEW_COUNT = 2
DEFAULT_URGENCY_DAYS = 7


def default_thresholds() -> EffectiveThresholds:
    return EffectiveThresholds(
        required_review_count=DEFAULT_REQUIRED_REVIEW_COUNT,
        urgency_days=DEFAULT_URGENCY_DAYS,
    )


def resolve_thresholds(settings: GlobalSettings | None, override: RepoThreshold | None) -> EffectiveThresholds:
    """Merge *override* over *settings* over the built-in defaults, per field."""
    settings = settings or GlobalSettings()

    review_count = settings.review_count_threshold
    urgency_days = settings.age_urgency_days
    stale_review_enabled = settings.stale_review_enabled
    ci_failure_enabled = settings.ci_failure_enabled
    if override is not None:
        if override.review_count is not None:
            review_count = override.review_count
        if override.age_urgency_days is not None:
            urgency_days = override.age_urgency_days
        if override.stale_review_enabled is not None:
            stale_review_enabled = override.stale_review_enabled
        if override.ci_failure_enabled is not None:
            ci_failure_enabled = override.ci_failure_enabled

    return EffectiveThresholds(
        required_review_count=DEFAULT_REQUIRED_REVIEW_COUNT if review_count is None else review_count,
        urgency_days=DEFAULT_URGENCY_DAYS if urgency_days is None else urgency_days,
        stale_review_enabled=stale_review_enabled,
        ci_failure_enabled=ci_failure_enabled,
    )


def load_global_settings(store: ThresholdStore | None) -> GlobalSettings | None:
    """Read global settings, returning None (defaults) if the store is missing or failing."""
    if store is None:
        return None
    try:
        return store.get_global_settings()
    except Exception:
        logger.warning("Could not read global settings, using defaults", exc_info=True)
        return None


class ThresholdScope:
    """Per-pass threshold resolver with a repository-keyed memo."""

    def __init__(self, store: ThresholdStore | None, settings: GlobalSettings | None) -> None:
        self._store = store
        self._settings = settings
        self._resolved: dict[str, EffectiveThresholds] = {}

    @classmethod
    def open(cls, store: ThresholdStore | None) -> ThresholdScope:
        """Start a pass: load global settings once."""
        return cls(store, load_global_settings(store))

    @property
    def settings(self) -> GlobalSettings | None:
        return self._settings

    def resolve(self, repo_full_name: str) -> EffectiveThresholds:
        cached = self._resolved.get(repo_full_name)
        if cached is not None:
            return cached

        override = None
        if self._store is not None:
            try:
                override = self._store.get_repo_threshold(repo_full_name)
            except Exception:
                logger.warning("Could not read thresholds for %s, using global values", repo_full_name, exc_info=True)

        resolved = resolve_thresholds(self._settings, override)
        self._resolved[repo_full_name] = resolved
        return resolved
