"""Abstract base for automated reviewer adapters."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from reviewpanel.config import ReviewerConfig


class ReviewerAdapter(ABC):
    """Base class for automated reviewer adapters.

    Each adapter encodes the conventions of one review bot: how to recognise
    its account and which markers it uses to flag non-blocking nitpicks.

    Call :meth:`configure` to apply a ``[reviewers.<name>]`` section from
    ``.reviewpanel.toml``. Without configuration, adapters use their
    built-in defaults.
    """

    _config: ReviewerConfig | None = None

    def configure(self, config: ReviewerConfig) -> None:
        """Apply per-reviewer configuration overrides."""
        self._config = config

    @property
    def enabled(self) -> bool:
        """Whether this reviewer integration is active."""
        if self._config is not None:
            return self._config.enabled
        return True

    @property
    @abstractmethod
    def name(self) -> str:
        """Short identifier for this reviewer (e.g. 'coderabbit')."""

    @property
    def builtin_nitpick_markers(self) -> tuple[str, ...]:
        """Lowercase markers this reviewer puts on nitpick comments."""
        return ()

    @property
    def nitpick_markers(self) -> tuple[str, ...]:
        """Built-in markers plus any configured extras, lowercased."""
        extra = tuple(m.lower() for m in self._config.nitpick_markers) if self._config is not None else ()
        return self.builtin_nitpick_markers + extra

    @abstractmethod
    def identify(self, author: str) -> bool:
        """Return True if the given GitHub username belongs to this reviewer."""
