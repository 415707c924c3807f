"""Dashboard configuration.

Loads ``.reviewpanel.toml`` from the project root (walking up to ``.git``),
validates with Pydantic, and provides sensible defaults so zero-config still works.
"""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from reviewpanel.models import GlobalSettings

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".reviewpanel.toml"

DEFAULT_BOT_USERNAMES = ["coderabbitai", "coderabbitai[bot]", "github-actions[bot]", "copilot[bot]"]
DEFAULT_NITPICK_MARKERS = ["**nitpick", "[nitpick]", "(nitpick)", "nitpick:", "nitpick (non-blocking)"]


class GitHubConfig(BaseModel):
    """GitHub account settings."""

    model_config = ConfigDict(extra="ignore")

    username: str = Field(default="", description="Your GitHub username (REVIEWPANEL_GITHUB_USERNAME wins if set)")


class ThresholdConfig(BaseModel):
    """Initial values for the global attention settings."""

    model_config = ConfigDict(extra="ignore")

    review_count: int | None = Field(default=None, ge=0, description="Approvals required per PR")
    age_urgency_days: int | None = Field(default=None, ge=0, description="Inactivity days before a PR is stale")
    stale_review_enabled: bool = Field(default=True, description="Show staleness signals")
    ci_failure_enabled: bool = Field(default=True, description="Show the CI-failure signal on your own PRs")

    def to_global_settings(self) -> GlobalSettings:
        return GlobalSettings(
            review_count_threshold=self.review_count,
            age_urgency_days=self.age_urgency_days,
            stale_review_enabled=self.stale_review_enabled,
            ci_failure_enabled=self.ci_failure_enabled,
        )


class BotConfig(BaseModel):
    """Known bot accounts."""

    model_config = ConfigDict(extra="ignore")

    usernames: list[str] = Field(
        default_factory=lambda: list(DEFAULT_BOT_USERNAMES),
        description="Bot usernames, matched case-sensitively",
    )


class NitpickConfig(BaseModel):
    """Markers that flag a bot comment as a nitpick."""

    model_config = ConfigDict(extra="ignore")

    markers: list[str] = Field(
        default_factory=lambda: list(DEFAULT_NITPICK_MARKERS),
        description="Case-insensitive substrings that mark a nitpick",
    )

    @field_validator("markers")
    @classmethod
    def _drop_blank_markers(cls, value: list[str]) -> list[str]:
        return [m for m in value if m.strip()]


class ReviewerConfig(BaseModel):
    """Configuration for a single automated reviewer."""

    model_config = ConfigDict(extra="ignore")

    enabled: bool = Field(default=True, description="Whether this reviewer integration is active")
    nitpick_markers: list[str] = Field(
        default_factory=list,
        description="Extra nitpick markers used by this reviewer, on top of its built-in ones",
    )


class RepositoriesConfig(BaseModel):
    """Repositories watched at startup."""

    model_config = ConfigDict(extra="ignore")

    watch: list[str] = Field(default_factory=list, description="Repositories in 'owner/repo' format")


class ReconcileConfig(BaseModel):
    """Background reconciliation settings."""

    model_config = ConfigDict(extra="ignore")

    enabled: bool = Field(default=True, description="Re-fetch PRs from GitHub after draft toggles and repo registration")


class DiagnosticsConfig(BaseModel):
    """Configuration for diagnostic and debugging features."""

    model_config = ConfigDict(extra="ignore")

    tool_call_log: bool = Field(default=True, description="Append tool calls to ~/.reviewpanel/tool_calls.jsonl")


class Config(BaseModel):
    """Top-level reviewpanel configuration."""

    model_config = ConfigDict(extra="ignore")

    github: GitHubConfig = Field(default_factory=GitHubConfig, description="GitHub account settings")
    thresholds: ThresholdConfig = Field(default_factory=ThresholdConfig, description="Initial attention settings")
    bots: BotConfig = Field(default_factory=BotConfig, description="Known bot accounts")
    nitpicks: NitpickConfig = Field(default_factory=NitpickConfig, description="Nitpick marker heuristic")
    reviewers: dict[str, ReviewerConfig] = Field(default_factory=dict, description="Per-reviewer configuration sections")
    repositories: RepositoriesConfig = Field(default_factory=RepositoriesConfig, description="Watched repositories")
    reconcile: ReconcileConfig = Field(default_factory=ReconcileConfig, description="Background reconciliation")
    diagnostics: DiagnosticsConfig = Field(default_factory=DiagnosticsConfig, description="Diagnostic settings")

    def get_reviewer(self, name: str) -> ReviewerConfig:
        """Get config for a reviewer, falling back to defaults for unconfigured ones."""
        return self.reviewers.get(name) or ReviewerConfig()


def _get_dict_value_model(annotation: Any) -> type[BaseModel] | None:
    """Return the value model of a ``dict[str, SomeModel]`` annotation, else ``None``."""
    import typing  # noqa: PLC0415

    args = typing.get_args(annotation)
    if len(args) == 2 and isinstance(args[1], type) and issubclass(args[1], BaseModel):  # noqa: PLR2004
        return args[1]
    return None


def _collect_unknown_keys(
    data: dict[str, Any],
    model_cls: type[BaseModel],
    prefix: str = "",
) -> list[str]:
    """Recursively find keys in *data* that don't match any field in *model_cls*.

    Reviewer names under ``[reviewers.*]`` are free-form; only unknown keys
    inside each reviewer section are flagged.

    Returns dotted key paths like ``nitpicks.marker``.
    """
    known = set(model_cls.model_fields)
    unknown: list[str] = []

    for key, value in data.items():
        dotted = f"{prefix}{key}"
        if key not in known:
            unknown.append(dotted)
            continue
        annotation = model_cls.model_fields[key].annotation
        if isinstance(annotation, type) and issubclass(annotation, BaseModel) and isinstance(value, dict):
            unknown.extend(_collect_unknown_keys(value, annotation, prefix=f"{dotted}."))
            continue
        value_model = _get_dict_value_model(annotation)
        if value_model is not None and isinstance(value, dict):
            for sub_key, sub_value in value.items():
                if isinstance(sub_value, dict):
                    unknown.extend(_collect_unknown_keys(sub_value, value_model, prefix=f"{dotted}.{sub_key}."))

    return unknown


def _find_config_file(start: Path) -> Path | None:
    """Walk up from *start* looking for ``.reviewpanel.toml``, stopping at the ``.git`` root."""
    current = start.resolve()
    while True:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        if current.parent == current:
            return None
        if (current / ".git").exists():
            return None
        current = current.parent


def load_config(cwd: str | Path | None = None) -> tuple[Config, Path | None]:
    """Load configuration from ``.reviewpanel.toml``.

    Returns:
        (config, config_path). The path is None when no file was found and
        defaults are in use.

    Raises ``ValueError`` on invalid TOML or validation errors so the server
    refuses to start with a broken config.
    """
    start = Path(cwd) if cwd else Path.cwd()
    config_path = _find_config_file(start)

    if config_path is None:
        logger.info("No %s found, using defaults", CONFIG_FILENAME)
        return Config(), None

    logger.info("Loading config from %s", config_path)
    try:
        data = tomllib.loads(config_path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        msg = f"Invalid TOML in {config_path}: {exc}"
        raise ValueError(msg) from exc

    try:
        config = Config.model_validate(data)
    except Exception as exc:
        msg = f"Invalid config in {config_path}: {exc}"
        raise ValueError(msg) from exc

    for key in _collect_unknown_keys(data, Config):
        logger.warning(
            "Unknown config key '%s' in %s, run 'reviewpanel config --update' to clean up",
            key,
            config_path,
        )

    return config, config_path


# -- Hot-reloading config with mtime cache ------------------------------------


class _ConfigState:
    """Tracks the active config, its file path, and mtime for hot-reload."""

    __slots__ = ("config", "mtime", "path")

    def __init__(self) -> None:
        self.config: Config = Config()
        self.path: Path | None = None
        self.mtime: float | None = None


_state = _ConfigState()


def get_config() -> Config:
    """Return the active configuration, hot-reloading if the file changed.

    If the file was deleted, falls back to defaults. If the new contents are
    invalid, logs a warning and keeps the last good config.
    """
    path = _state.path
    if path is None:
        return _state.config

    try:
        current_mtime = path.stat().st_mtime
    except OSError:
        if _state.mtime is not None:
            logger.warning("%s deleted, falling back to defaults", path.name)
            _state.config = Config()
            _state.mtime = None
        return _state.config

    if current_mtime == _state.mtime:
        return _state.config

    logger.info("Config file changed, reloading %s", path)
    try:
        new_config = Config.model_validate(tomllib.loads(path.read_text(encoding="utf-8")))
    except Exception as exc:
        logger.warning("Invalid config after edit, keeping last good config: %s", exc)
        _state.mtime = current_mtime
        return _state.config

    _state.config = new_config
    _state.mtime = current_mtime
    return new_config


def set_config(config: Config, *, config_path: Path | None = None) -> None:
    """Set the active configuration (called during server startup).

    Passing *config_path* enables hot-reload on subsequent ``get_config()`` calls.
    """
    _state.config = config
    _state.path = config_path
    try:
        _state.mtime = config_path.stat().st_mtime if config_path else None
    except OSError:
        _state.mtime = None


def get_config_path() -> Path | None:
    """Return the path to the active config file, or None if using defaults."""
    return _state.path


# -- Template sections for ``reviewpanel config`` ------------------------------

_TEMPLATE_HEADER = """\
# .reviewpanel.toml - configuration for the reviewpanel dashboard
# All settings are optional. Omitted values use sensible defaults.
# Place this file in your project root (next to .git/).
#
# The GitHub token is never stored here: set REVIEWPANEL_GITHUB_TOKEN,
# GH_TOKEN or GITHUB_TOKEN, or log in with 'gh auth login'.
"""

_TEMPLATE_SECTIONS: list[tuple[str, str]] = [
    (
        "[github]",
        """\
[github]
username = ""                     # Your login; enables own-PR signals and draft toggling
""",
    ),
    (
        "[thresholds]",
        """\
[thresholds]
review_count = 2                  # Approvals required before a PR stops needing reviews
age_urgency_days = 7              # Days without activity before a PR is stale
stale_review_enabled = true
ci_failure_enabled = true
""",
    ),
    (
        "[bots]",
        """\
[bots]
usernames = ["coderabbitai", "coderabbitai[bot]", "github-actions[bot]", "copilot[bot]"]
""",
    ),
    (
        "[nitpicks]",
        """\
[nitpicks]
markers = ["**nitpick", "[nitpick]", "(nitpick)", "nitpick:", "nitpick (non-blocking)"]
""",
    ),
    (
        "[reviewers.coderabbit]",
        """\
[reviewers.coderabbit]
enabled = true
nitpick_markers = []              # Extra markers on top of the built-in ones
""",
    ),
    (
        "[repositories]",
        """\
[repositories]
watch = []                        # e.g. ["acme/widgets"]
""",
    ),
    (
        "[reconcile]",
        """\
[reconcile]
enabled = true                    # Re-fetch from GitHub after draft toggles and repo registration
""",
    ),
    (
        "[diagnostics]",
        """\
[diagnostics]
tool_call_log = true              # Log tool calls to ~/.reviewpanel/tool_calls.jsonl
""",
    ),
]

DEFAULT_CONFIG_TEMPLATE = _TEMPLATE_HEADER + "\n".join(block for _, block in _TEMPLATE_SECTIONS)


def init_config(cwd: Path | None = None) -> Path:
    """Create a new ``.reviewpanel.toml`` in the given directory.

    Raises ``SystemExit(1)`` if the file already exists.
    """
    target = (cwd or Path.cwd()) / CONFIG_FILENAME
    if target.exists():
        print(f"Error: {CONFIG_FILENAME} already exists in {target.parent}")  # noqa: T201
        print("Hint: use 'reviewpanel config --update' to add new sections")  # noqa: T201
        raise SystemExit(1)
    target.write_text(DEFAULT_CONFIG_TEMPLATE, encoding="utf-8")
    print(f"Created {target}")  # noqa: T201
    return target


def _unknown_key_containers(raw: str) -> tuple[Any, list[tuple[str, Any, str]]]:
    """Parse *raw* with tomlkit and locate every unknown key.

    Returns the tomlkit document and ``(dotted, container, key)`` triples.
    """
    import tomlkit  # noqa: PLC0415

    unknown = _collect_unknown_keys(tomllib.loads(raw), Config)
    doc = tomlkit.loads(raw)
    located: list[tuple[str, Any, str]] = []
    for dotted in unknown:
        *parents, key = dotted.split(".")
        container: Any = doc
        for part in parents:
            container = container[part]
        located.append((dotted, container, key))
    return doc, located


def _comment_out_unknown_keys(target: Path) -> list[str]:
    """Replace unknown keys with ``# DEPRECATED:`` comments, preserving style.

    Returns the commented-out keys.
    """
    import tomlkit  # noqa: PLC0415

    doc, located = _unknown_key_containers(target.read_text(encoding="utf-8"))
    if not located:
        return []

    for _, container, key in located:
        value = container[key]
        del container[key]
        try:
            value_str = tomlkit.dumps({"_": value}).split("= ", 1)[1].strip()
        except (IndexError, TypeError, ValueError):
            value_str = repr(value)
        if "\n" in value_str:
            value_str = repr(value)
        container.add(tomlkit.comment(f"DEPRECATED: {key} = {value_str}"))

    target.write_text(tomlkit.dumps(doc), encoding="utf-8")
    return [dotted for dotted, _, _ in located]


def _remove_unknown_keys(target: Path) -> list[str]:
    """Delete unknown keys, preserving style. Returns the removed keys."""
    import tomlkit  # noqa: PLC0415

    doc, located = _unknown_key_containers(target.read_text(encoding="utf-8"))
    if not located:
        return []

    for _, container, key in located:
        del container[key]

    target.write_text(tomlkit.dumps(doc), encoding="utf-8")
    return [dotted for dotted, _, _ in located]


def _require_existing(cwd: Path | None) -> Path:
    target = (cwd or Path.cwd()) / CONFIG_FILENAME
    if not target.exists():
        print(f"Error: {CONFIG_FILENAME} not found in {target.parent}")  # noqa: T201
        print("Hint: use 'reviewpanel config --init' to create one")  # noqa: T201
        raise SystemExit(1)
    return target


def update_config(cwd: Path | None = None) -> tuple[Path, list[str], list[str]]:
    """Append missing sections and comment out deprecated keys.

    Raises ``SystemExit(1)`` if the config file doesn't exist.

    Returns:
        (config path, added section headers, deprecated keys commented out).
    """
    target = _require_existing(cwd)

    deprecated = _comment_out_unknown_keys(target)
    if deprecated:
        print(f"Commented out {len(deprecated)} deprecated key(s):")  # noqa: T201
        for d in deprecated:
            print(f"  # {d}")  # noqa: T201

    existing = target.read_text(encoding="utf-8")
    added = [header for header, _ in _TEMPLATE_SECTIONS if header not in existing]

    if added:
        appendix = "" if existing.endswith("\n") else "\n"
        appendix += "\n# --- New sections added by 'reviewpanel config --update' ---\n\n"
        appendix += "\n".join(block for header, block in _TEMPLATE_SECTIONS if header in added)
        target.write_text(existing + appendix, encoding="utf-8")
        print(f"Added {len(added)} section(s):")  # noqa: T201
        for h in added:
            print(f"  + {h}")  # noqa: T201

    if not added and not deprecated:
        print(f"{CONFIG_FILENAME} is up to date, nothing to change")  # noqa: T201

    return target, added, deprecated


def clean_config(cwd: Path | None = None) -> tuple[Path, list[str]]:
    """Remove deprecated keys from an existing ``.reviewpanel.toml``.

    Raises ``SystemExit(1)`` if the config file doesn't exist.
    """
    target = _require_existing(cwd)

    removed = _remove_unknown_keys(target)
    if removed:
        print(f"Removed {len(removed)} deprecated key(s) from {target}:")  # noqa: T201
        for r in removed:
            print(f"  - {r}")  # noqa: T201
    else:
        print(f"{CONFIG_FILENAME} is clean, no deprecated keys found")  # noqa: T201

    return target, removed
