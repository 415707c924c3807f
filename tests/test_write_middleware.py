"""Tests for WriteOperationMiddleware."""

from __future__ import annotations

import asyncio
import json
import time
from typing import TYPE_CHECKING, Any
from unittest.mock import MagicMock

import pytest

if TYPE_CHECKING:
    from pathlib import Path

from reviewpanel.middleware import WRITE_TOOLS, WriteOperationMiddleware


@pytest.fixture
def tmp_log_dir(tmp_path: Path) -> Path:
    """Provide a temporary log directory."""
    log_dir = tmp_path / ".reviewpanel"
    log_dir.mkdir()
    return log_dir


@pytest.fixture
def middleware(tmp_log_dir: Path) -> WriteOperationMiddleware:
    return WriteOperationMiddleware(log_dir=tmp_log_dir)


def _make_context(tool_name: str, arguments: dict[str, Any] | None = None) -> MagicMock:
    """Create a mock MiddlewareContext with the given tool name."""
    ctx = MagicMock()
    ctx.message = MagicMock()
    ctx.message.name = tool_name
    ctx.message.arguments = arguments
    return ctx


def _entries(log_dir: Path) -> list[dict[str, Any]]:
    return [json.loads(line) for line in (log_dir / "tool_calls.jsonl").read_text(encoding="utf-8").splitlines()]


class TestWriteToolClassification:
    def test_mutations_are_writes(self):
        assert {"submit_review", "add_comment", "reply_to_thread", "toggle_draft"} <= WRITE_TOOLS

    def test_settings_are_writes(self):
        assert {"save_global_thresholds", "watch_repository", "ignore_pull_request"} <= WRITE_TOOLS

    def test_read_tools_not_in_write_set(self):
        read_tools = {"list_pull_requests", "get_pull_request", "get_thresholds", "show_config", "session_token"}
        assert not read_tools & WRITE_TOOLS


class TestLogFile:
    def test_append_log_creates_file(self, middleware: WriteOperationMiddleware, tmp_log_dir: Path):
        middleware._append_log({"tool": "test", "write": False})
        entries = _entries(tmp_log_dir)
        assert entries == [{"tool": "test", "write": False}]

    def test_disabled_writes_nothing(self, tmp_log_dir: Path):
        mw = WriteOperationMiddleware(log_dir=tmp_log_dir)
        mw.configure(enabled=False)
        mw._append_log({"tool": "test"})
        assert not mw.log_file.exists()

    def test_truncate_keeps_last_n_lines(self, middleware: WriteOperationMiddleware, tmp_log_dir: Path):
        log_file = tmp_log_dir / "tool_calls.jsonl"
        with log_file.open("w", encoding="utf-8") as f:
            for i in range(1100):
                f.write(json.dumps({"i": i}) + "\n")
        middleware._truncate_log_if_needed()
        lines = log_file.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 1000
        assert json.loads(lines[0])["i"] == 100
        assert json.loads(lines[-1])["i"] == 1099

    def test_log_dir_created_lazily(self, tmp_path: Path):
        log_dir = tmp_path / "nested" / "logs"
        mw = WriteOperationMiddleware(log_dir=log_dir)
        assert not log_dir.exists()
        mw._append_log({"tool": "test"})
        assert (log_dir / "tool_calls.jsonl").exists()

    def test_append_log_survives_unwritable_dir(self, tmp_path: Path):
        blocker = tmp_path / "file"
        blocker.write_text("", encoding="utf-8")
        mw = WriteOperationMiddleware(log_dir=blocker / "logs")
        mw._append_log({"tool": "test"})


class TestFingerprint:
    def test_csrf_token_excluded(self):
        with_token = WriteOperationMiddleware._fingerprint({"body": "hi", "csrf_token": "secret"})
        without = WriteOperationMiddleware._fingerprint({"body": "hi"})
        assert with_token == without

    def test_none(self):
        assert WriteOperationMiddleware._fingerprint(None) is None


class TestRapidWriteDetection:
    def test_no_warning_below_threshold(self, middleware: WriteOperationMiddleware):
        now = time.time()
        results = [middleware._check_rapid_writes(now + i * 0.1) for i in range(3)]
        assert results == [None, None, None]

    def test_warning_at_threshold(self, middleware: WriteOperationMiddleware):
        now = time.time()
        for i in range(3):
            middleware._check_rapid_writes(now + i * 0.1)
        result = middleware._check_rapid_writes(now + 0.3)
        assert result is not None
        assert "4 writes" in result

    def test_old_entries_expire(self, middleware: WriteOperationMiddleware):
        now = time.time()
        for i in range(3):
            middleware._check_rapid_writes(now + i * 0.1)
        assert middleware._check_rapid_writes(now + 3.0) is None

    def test_custom_threshold(self, tmp_log_dir: Path):
        mw = WriteOperationMiddleware(log_dir=tmp_log_dir, rapid_threshold=2, rapid_window=1.0)
        now = time.time()
        mw._check_rapid_writes(now)
        result = mw._check_rapid_writes(now + 0.1)
        assert result is not None
        assert "2 writes" in result


class TestTwoPhaseLogging:
    async def test_started_entry_written_before_call_next(self, middleware: WriteOperationMiddleware, tmp_log_dir: Path):
        during: list[dict[str, Any]] = []

        async def call_next(_ctx: Any) -> list[Any]:
            during.extend(_entries(tmp_log_dir))
            await asyncio.sleep(0)
            return []

        ctx = _make_context("add_comment", {"repo": "acme/widgets", "body": "hi", "csrf_token": "secret"})
        await middleware.on_call_tool(ctx, call_next)  # type: ignore[arg-type]

        assert [e["phase"] for e in during] == ["started"]
        assert during[0]["write"] is True
        assert during[0]["args_size_bytes"] > 0
        assert "secret" not in json.dumps(during[0])

        entries = _entries(tmp_log_dir)
        assert [e["phase"] for e in entries] == ["started", "completed"]
        assert entries[0]["call_id"] == entries[1]["call_id"]

    async def test_hung_call_leaves_only_started_entry(self, middleware: WriteOperationMiddleware, tmp_log_dir: Path):
        in_flight = asyncio.Event()

        async def call_next_hangs(_ctx: Any) -> list[Any]:
            in_flight.set()
            await asyncio.sleep(999)
            return []

        task = asyncio.create_task(middleware.on_call_tool(_make_context("list_pull_requests"), call_next_hangs))  # type: ignore[arg-type]
        await asyncio.wait_for(in_flight.wait(), timeout=2.0)

        entries = _entries(tmp_log_dir)
        assert [e["phase"] for e in entries] == ["started"]

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        completed = _entries(tmp_log_dir)[-1]
        assert completed["phase"] == "completed"
        assert completed["cancelled"] is True

    async def test_error_logged_with_both_phases(self, middleware: WriteOperationMiddleware, tmp_log_dir: Path):
        async def call_next_raises(_ctx: Any) -> list[Any]:
            await asyncio.sleep(0)
            msg = "boom"
            raise RuntimeError(msg)

        with pytest.raises(RuntimeError):
            await middleware.on_call_tool(_make_context("toggle_draft"), call_next_raises)  # type: ignore[arg-type]

        entries = _entries(tmp_log_dir)
        assert len(entries) == 2
        assert entries[1]["error"] is True
        assert "cancelled" not in entries[1]

    async def test_slow_write_warning(self, tmp_log_dir: Path):
        mw = WriteOperationMiddleware(log_dir=tmp_log_dir, slow_threshold=0.001)

        async def call_next(_ctx: Any) -> list[Any]:
            await asyncio.sleep(0.01)
            return []

        await mw.on_call_tool(_make_context("submit_review"), call_next)  # type: ignore[arg-type]

        completed = _entries(tmp_log_dir)[-1]
        assert completed["duration_ms"] >= 10
        assert "Slow write operation: submit_review" in completed["warning"]
