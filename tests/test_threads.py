"""Tests for thread reconstruction and suggestion extraction."""

from __future__ import annotations

import logging

from helpers.factories import make_comment

from reviewpanel.tools.threads import build_threads, count_resolution, extract_suggestions


class TestBuildThreads:
    def test_groups_replies_under_roots(self):
        comments = [
            make_comment(1),
            make_comment(2, in_reply_to_id=1, author="alice"),
            make_comment(3, path="README.md"),
            make_comment(4, in_reply_to_id=1, author="carol"),
            make_comment(5, in_reply_to_id=3),
        ]
        threads = build_threads(comments)

        assert [t.root.id for t in threads] == [1, 3]
        assert [r.id for r in threads[0].replies] == [2, 4]
        assert [r.id for r in threads[1].replies] == [5]
        assert threads[0].comment_count == 3
        assert threads[1].comment_count == 2

    def test_reply_before_root_in_input(self):
        threads = build_threads([make_comment(2, in_reply_to_id=1), make_comment(1)])
        assert len(threads) == 1
        assert [r.id for r in threads[0].replies] == [2]

    def test_replies_only_reference_their_root(self):
        comments = [make_comment(i) for i in (1, 2)] + [make_comment(10 + i, in_reply_to_id=1 + i % 2) for i in range(6)]
        for thread in build_threads(comments):
            assert all(reply.in_reply_to_id == thread.root.id for reply in thread.replies)

    def test_orphan_reply_dropped_with_warning(self, caplog):
        comments = [make_comment(1), make_comment(2, in_reply_to_id=999)]
        with caplog.at_level(logging.WARNING, logger="reviewpanel.tools.threads"):
            threads = build_threads(comments)

        assert len(threads) == 1
        assert threads[0].replies == []
        assert "orphan reply 2" in caplog.text

    def test_reply_to_reply_is_orphan(self):
        comments = [make_comment(1), make_comment(2, in_reply_to_id=1), make_comment(3, in_reply_to_id=2)]
        threads = build_threads(comments)
        assert [r.id for r in threads[0].replies] == [2]

    def test_resolution_copied_from_root(self):
        threads = build_threads([make_comment(1, is_resolved=True), make_comment(2, in_reply_to_id=1)])
        assert threads[0].is_resolved

    def test_empty(self):
        assert build_threads([]) == []


class TestCountResolution:
    def test_counts_add_up(self):
        threads = build_threads([
            make_comment(1, is_resolved=True),
            make_comment(2),
            make_comment(3),
            make_comment(4, in_reply_to_id=2),
        ])
        resolved, unresolved = count_resolution(threads)
        assert (resolved, unresolved) == (1, 2)
        assert resolved + unresolved == len(threads)


class TestExtractSuggestions:
    def test_single_line(self):
        body = "Use a constant.\n```suggestion\nMAX_WIDGETS = 10\n```"
        suggestions = extract_suggestions([make_comment(7, body=body, line=12)])
        assert len(suggestions) == 1
        s = suggestions[0]
        assert (s.comment_id, s.path, s.start_line, s.end_line) == (7, "src/widgets.py", 12, 12)
        assert s.proposed_code == "MAX_WIDGETS = 10"

    def test_multi_line_range(self):
        body = "```suggestion\na = 1\nb = 2\n```"
        suggestions = extract_suggestions([make_comment(8, body=body, start_line=20, line=22)])
        assert suggestions[0].start_line == 20
        assert suggestions[0].end_line == 22
        assert suggestions[0].proposed_code == "a = 1\nb = 2"

    def test_no_suggestion(self):
        assert extract_suggestions([make_comment(9, body="```python\nx = 1\n```")]) == []
