"""Tool-call log middleware.

Logs every tool call to ~/.reviewpanel/tool_calls.jsonl and warns about
rapid or slow write sequences, so a misbehaving client that hammers GitHub
with reviews or comments leaves a trace.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import sys
import time
from collections import deque
from pathlib import Path
from typing import Any

from fastmcp.server.middleware.middleware import CallNext, Middleware, MiddlewareContext

logger = logging.getLogger(__name__)

WRITE_TOOLS = frozenset({
    "submit_review",
    "add_comment",
    "reply_to_thread",
    "toggle_draft",
    "save_global_thresholds",
    "save_repo_threshold",
    "delete_repo_threshold",
    "watch_repository",
    "unwatch_repository",
    "ignore_pull_request",
    "unignore_pull_request",
})

RAPID_WRITE_THRESHOLD = 4
RAPID_WRITE_WINDOW_SECONDS = 2.0

LOG_DIR = Path.home() / ".reviewpanel"
LOG_FILE = LOG_DIR / "tool_calls.jsonl"
MAX_LOG_LINES = 1000


class WriteOperationMiddleware(Middleware):
    """Two-phase (started/completed) JSONL log of tool calls.

    - A "started" entry with no matching "completed" entry is a hung call
    - 4+ writes in 2s emit a rapid-write warning
    - Writes slower than 30s emit a slow-write warning
    """

    def __init__(
        self,
        *,
        log_dir: Path | None = None,
        enabled: bool = True,
        rapid_threshold: int = RAPID_WRITE_THRESHOLD,
        rapid_window: float = RAPID_WRITE_WINDOW_SECONDS,
        slow_threshold: float = 30.0,
    ) -> None:
        self._log_dir = log_dir or LOG_DIR
        self._log_file = self._log_dir / "tool_calls.jsonl"
        self._enabled = enabled
        self._rapid_threshold = rapid_threshold
        self._rapid_window = rapid_window
        self._slow_threshold = slow_threshold
        self._recent_writes: deque[float] = deque()
        self._log_count = 0
        self._call_id = 0
        self._dir_ready = False

    @property
    def log_file(self) -> Path:
        return self._log_file

    def configure(self, *, enabled: bool) -> None:
        """Turn the JSONL log on or off (``[diagnostics] tool_call_log``)."""
        self._enabled = enabled

    def _ensure_log_dir(self) -> bool:
        if not self._dir_ready:
            try:
                self._log_dir.mkdir(parents=True, exist_ok=True)
                self._dir_ready = True
            except OSError:
                logger.warning("Could not create log directory: %s", self._log_dir)
        return self._dir_ready

    def _append_log(self, entry: dict[str, Any]) -> None:
        if not self._enabled or not self._ensure_log_dir():
            return
        try:
            with self._log_file.open("a", encoding="utf-8") as f:
                f.write(json.dumps(entry, default=str) + "\n")
        except OSError:
            logger.warning("Could not write to log file: %s", self._log_file)

    def _truncate_log_if_needed(self) -> None:
        """Keep only the last MAX_LOG_LINES entries."""
        try:
            if not self._log_file.exists():
                return
            lines = self._log_file.read_text(encoding="utf-8").splitlines()
            if len(lines) > MAX_LOG_LINES:
                self._log_file.write_text("\n".join(lines[-MAX_LOG_LINES:]) + "\n", encoding="utf-8")
        except OSError:
            logger.warning("Could not truncate log file: %s", self._log_file)

    def _check_rapid_writes(self, now: float) -> str | None:
        """Record a write; return a warning if the recent window is too busy."""
        self._recent_writes.append(now)

        cutoff = now - self._rapid_window
        while self._recent_writes and self._recent_writes[0] < cutoff:
            self._recent_writes.popleft()

        if len(self._recent_writes) >= self._rapid_threshold:
            window = now - self._recent_writes[0]
            return f"Rapid write sequence detected ({len(self._recent_writes)} writes in {window:.1f}s)"
        return None

    @staticmethod
    def _fingerprint(arguments: Any) -> tuple[int, str] | None:
        """Size and sha256 of the arguments; CSRF tokens are left out."""
        if arguments is None:
            return None
        if isinstance(arguments, dict):
            arguments = {k: v for k, v in arguments.items() if k != "csrf_token"}
        payload = json.dumps(arguments, sort_keys=True, separators=(",", ":"), default=str).encode("utf-8")
        return len(payload), hashlib.sha256(payload).hexdigest()

    async def on_call_tool(
        self,
        context: MiddlewareContext,
        call_next: CallNext,
    ) -> Any:
        tool_name = getattr(context.message, "name", "unknown")
        is_write = tool_name in WRITE_TOOLS
        start = time.perf_counter()
        warning = None

        if is_write:
            warning = self._check_rapid_writes(time.time())
            if warning:
                logger.warning(warning)

        self._call_id += 1
        call_id = self._call_id
        started_entry: dict[str, Any] = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%S%z"),
            "call_id": call_id,
            "phase": "started",
            "tool": tool_name,
            "write": is_write,
            "warning": warning,
        }
        fingerprint = self._fingerprint(getattr(context.message, "arguments", None))
        if fingerprint is not None:
            started_entry["args_size_bytes"], started_entry["args_fingerprint"] = fingerprint
        self._append_log(started_entry)

        error = False
        cancelled = False
        try:
            result = await call_next(context)
        except BaseException:
            error = True
            cancelled = isinstance(sys.exc_info()[1], asyncio.CancelledError)
            raise
        else:
            duration_ms = (time.perf_counter() - start) * 1000
            if is_write and duration_ms > self._slow_threshold * 1000:
                slow_warning = (
                    f"Slow write operation: {tool_name} took {duration_ms:.0f}ms (threshold: {self._slow_threshold * 1000:.0f}ms)"
                )
                logger.warning(slow_warning)
                warning = f"{warning}; {slow_warning}" if warning else slow_warning
            return result
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            entry: dict[str, Any] = {
                "ts": time.strftime("%Y-%m-%dT%H:%M:%S%z"),
                "call_id": call_id,
                "phase": "completed",
                "tool": tool_name,
                "write": is_write,
                "duration_ms": round(duration_ms),
                "warning": warning,
            }
            if error:
                entry["error"] = True
            if cancelled:
                entry["cancelled"] = True
            self._append_log(entry)
            self._log_count += 1
            if self._log_count % 100 == 0:
                self._truncate_log_if_needed()
