"""CI health: combine check runs into one status and flag required checks."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from reviewpanel.models import CheckRun, CIStatus, PRHealthSummary

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from reviewpanel.ports import HealthReader

logger = logging.getLogger(__name__)

FAILING_CONCLUSIONS = frozenset({"failure", "cancelled", "canceled", "timed_out", "action_required"})


def combined_ci_status(check_runs: Iterable[CheckRun]) -> CIStatus:
    """Reduce check runs to one status: failing > pending > passing > unknown."""
    seen_any = False
    pending = False
    for run in check_runs:
        seen_any = True
        if run.status.lower() != "completed":
            pending = True
            continue
        if run.conclusion.lower() in FAILING_CONCLUSIONS:
            return CIStatus.FAILING
    if not seen_any:
        return CIStatus.UNKNOWN
    return CIStatus.PENDING if pending else CIStatus.PASSING


def mark_required_checks(check_runs: Sequence[CheckRun], required_contexts: Iterable[str]) -> list[CheckRun]:
    """Set ``is_required`` on runs whose name matches a required context (case-insensitive)."""
    required = {name.lower() for name in required_contexts}
    return [run.model_copy(update={"is_required": run.name.lower() in required}) for run in check_runs]


def health_summary(health: HealthReader, pr_id: int) -> PRHealthSummary | None:
    """Load check runs for a PR. Returns None (and logs) if they cannot be read."""
    try:
        runs = health.get_check_runs(pr_id)
    except Exception:
        logger.warning("Could not read check runs for PR id %s", pr_id, exc_info=True)
        return None
    return PRHealthSummary(check_runs=runs, ci_status=combined_ci_status(runs))
