"""CLI for reviewpanel, built on cyclopts."""

from __future__ import annotations

import asyncio
import os
import sys
from typing import TYPE_CHECKING

import cyclopts

if TYPE_CHECKING:
    from reviewpanel.models import AttentionSignals, PRCard
    from reviewpanel.services import Services

app = cyclopts.App(
    name="reviewpanel",
    help="reviewpanel: pull request review dashboard and MCP server.",
)


@app.default
def serve() -> None:
    """Run the reviewpanel MCP server (default command)."""
    from reviewpanel.server import check_prerequisites, mcp  # noqa: PLC0415

    check_prerequisites()
    mcp.run()


@app.command(name="check-env")
def check_env() -> None:
    """Validate REVIEWPANEL_* environment variables and print a diagnostic summary.

    Lists recognized variables (masking secrets), warns about unrecognized
    REVIEWPANEL_* variables (typo detection), validates the config file and
    reports whether write credentials are available.
    """
    print("reviewpanel check-env")
    print("=" * 40)

    panel_vars = {k: v for k, v in sorted(os.environ.items()) if k.startswith(_ENV_PREFIX)}

    if not panel_vars:
        print(f"\nNo {_ENV_PREFIX}* environment variables set.")
    else:
        print(f"\nFound {len(panel_vars)} {_ENV_PREFIX}* variable(s):\n")
        for key, value in panel_vars.items():
            marker = "" if _is_known_var(key) else "  ⚠️  UNRECOGNIZED"
            print(f"  {key} = {_mask_value(key, value)}{marker}")

    unknown = [k for k in panel_vars if not _is_known_var(k)]
    if unknown:
        print(f"\n⚠️  {len(unknown)} unrecognized variable(s) (possible typos):")
        for k in unknown:
            print(f"  - {k}")

    print("\n" + "-" * 40)
    print("Validating configuration...\n")
    try:
        from reviewpanel.config import load_config  # noqa: PLC0415

        config, path = load_config()
    except Exception as exc:
        print(f"❌ Configuration error: {exc}")
        sys.exit(1)

    print(f"  Config file: {path or 'none (defaults)'}")
    _print_config_summary(config)

    print("-" * 40)
    print("Checking GitHub credentials...\n")
    from reviewpanel import github_api  # noqa: PLC0415
    from reviewpanel.credentials import USERNAME_ENV_VAR  # noqa: PLC0415

    if github_api.resolve_token_sync():
        print("  ✅ GitHub token found, write actions enabled")
    else:
        print("  ❌ No GitHub token: set REVIEWPANEL_GITHUB_TOKEN, GH_TOKEN or GITHUB_TOKEN, or run gh auth login")
    username = os.environ.get(USERNAME_ENV_VAR, "").strip() or config.github.username
    if username:
        print(f"  ✅ Acting as: {username}")
    else:
        print(f"  ⚠️  No username: set {USERNAME_ENV_VAR} or [github] username to enable draft toggles")
    print()


@app.command(name="config")
def config_cmd(*, init: bool = False, update: bool = False, clean: bool = False) -> None:
    """Create or maintain .reviewpanel.toml in the current directory.

    Args:
        init: Create a new config file from the template.
        update: Add missing sections and comment out deprecated keys.
        clean: Remove deprecated keys.
    """
    from reviewpanel.config import clean_config, init_config, update_config  # noqa: PLC0415

    chosen = [flag for flag in (init, update, clean) if flag]
    if len(chosen) != 1:
        print("Error: pass exactly one of --init, --update, --clean")
        sys.exit(1)
    if init:
        init_config()
    elif update:
        update_config()
    else:
        clean_config()


@app.command
def worklist(repo: str | None = None, *, sync: bool = True) -> None:
    """Print the prioritized worklist for the watched repositories.

    Args:
        repo: Only this repository ("owner/repo"). Defaults to [repositories] watch.
        sync: Fetch fresh state from GitHub first.
    """
    from reviewpanel import github_api  # noqa: PLC0415
    from reviewpanel.config import load_config, set_config  # noqa: PLC0415
    from reviewpanel.reviewers import apply_config  # noqa: PLC0415
    from reviewpanel.services import build_services  # noqa: PLC0415

    config, path = load_config()
    set_config(config, config_path=path)
    apply_config(config)
    services = build_services(config)

    repos = [repo] if repo else list(config.repositories.watch)
    if not repos:
        print("No repositories to show. Pass --repo owner/name or set [repositories] watch in .reviewpanel.toml")
        sys.exit(1)

    if sync:
        try:
            asyncio.run(_sync_all(services, repos))
        except github_api.GitHubError as exc:
            print(f"❌ Sync failed: {exc}")
            sys.exit(1)

    dashboard = services.dashboard()
    cards = dashboard.worklist(repo=repo) if repo else dashboard.worklist()
    _print_worklist(cards)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_ENV_PREFIX = "REVIEWPANEL_"
_MASK_MIN_LENGTH = 4
_TRUNCATE_LENGTH = 80

_KNOWN_ENV_VARS = frozenset({
    "REVIEWPANEL_GITHUB_TOKEN",
    "REVIEWPANEL_GITHUB_USERNAME",
})


def _is_known_var(key: str) -> bool:
    return key in _KNOWN_ENV_VARS


def _mask_value(key: str, value: str) -> str:
    """Mask sensitive values."""
    sensitive_keywords = ("token", "secret", "key", "password")
    if any(kw in key.lower() for kw in sensitive_keywords):
        if len(value) > _MASK_MIN_LENGTH:
            return value[:2] + "*" * (len(value) - _MASK_MIN_LENGTH) + value[-2:]
        return "****"
    if len(value) > _TRUNCATE_LENGTH:
        return value[: _TRUNCATE_LENGTH - 3] + "..."
    return value


def _print_config_summary(config: object) -> None:
    from reviewpanel.config import Config  # noqa: PLC0415

    if not isinstance(config, Config):  # pragma: no cover
        return

    t = config.thresholds
    print(f"  Review count: {t.review_count if t.review_count is not None else 'default (2)'}")
    print(f"  Urgency days: {t.age_urgency_days if t.age_urgency_days is not None else 'default (7)'}")
    print(f"  Stale-review signal: {'on' if t.stale_review_enabled else 'off'}")
    print(f"  CI-failure signal: {'on' if t.ci_failure_enabled else 'off'}")
    print(f"  Bots: {', '.join(config.bots.usernames) or 'none'}")
    print(f"  Watched repositories: {', '.join(config.repositories.watch) or 'none'}")
    for name, rc in sorted(config.reviewers.items()):
        print(f"  Reviewer {name}: {'enabled' if rc.enabled else 'DISABLED'}")
    print()


async def _sync_all(services: Services, repos: list[str]) -> None:
    for repo in repos:
        services.store.add_repository(repo)
        await services.reconciler.refresh_repository(repo)


def _signal_labels(signals: AttentionSignals) -> list[str]:
    labels = []
    if signals.needs_more_reviews:
        labels.append(f"reviews {signals.approval_count}/{signals.required_review_count}")
    if signals.is_stale:
        labels.append("stale")
    if signals.has_stale_review:
        labels.append("re-review")
    if signals.has_ci_failure:
        labels.append("ci failing")
    if signals.is_age_urgent:
        labels.append("old")
    return labels


def _print_worklist(cards: list[PRCard]) -> None:
    from rich.console import Console  # noqa: PLC0415
    from rich.table import Table  # noqa: PLC0415

    console = Console()
    if not cards:
        console.print("Nothing needs attention.")
        return

    table = Table(title="Review worklist")
    table.add_column("PR", no_wrap=True)
    table.add_column("Title")
    table.add_column("Author")
    table.add_column("Open", justify="right")
    table.add_column("Idle", justify="right")
    table.add_column("Signals", style="bold red")
    for card in cards:
        pr = card.pr
        title = f"[dim](draft)[/dim] {pr.title}" if pr.is_draft else pr.title
        table.add_row(
            f"{pr.repo_full_name}#{pr.number}",
            title,
            pr.author,
            f"{card.days_open}d",
            f"{card.days_inactive}d",
            ", ".join(_signal_labels(card.signals)),
        )
    console.print(table)
