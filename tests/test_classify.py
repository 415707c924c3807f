"""Tests for comment classification."""

from __future__ import annotations

from helpers.factories import make_comment, make_review

from reviewpanel.config import Config, ReviewerConfig
from reviewpanel.models import IssueComment
from reviewpanel.reviewers import apply_config
from reviewpanel.tools.classify import CommentClassifier, has_nitpick_marker, is_bot_author, is_outdated

BOTS = ["coderabbitai[bot]", "github-actions[bot]"]


class TestIsOutdated:
    def test_same_commit(self):
        assert not is_outdated("abcd123", "abcd123")

    def test_different_commit(self):
        assert is_outdated("ffff999", "abcd123")

    def test_empty_commit_is_never_outdated(self):
        assert not is_outdated("", "abcd123")


class TestIsBotAuthor:
    def test_listed(self):
        assert is_bot_author("coderabbitai[bot]", BOTS)

    def test_case_sensitive(self):
        assert not is_bot_author("CodeRabbitAI[bot]", BOTS)

    def test_upstream_flag(self):
        assert is_bot_author("renovate[bot]", BOTS, upstream_bot=True)

    def test_human(self):
        assert not is_bot_author("alice", BOTS)


class TestHasNitpickMarker:
    def test_case_insensitive(self):
        assert has_nitpick_marker("NITPICK: rename this", ["nitpick:"])

    def test_no_marker(self):
        assert not has_nitpick_marker("This will crash on None", ["nitpick:"])


class TestCommentClassifier:
    def test_bot_nitpick(self):
        labels = CommentClassifier("abcd123", BOTS).classify("coderabbitai[bot]", "**Nitpick** prefer f-strings", "abcd123")
        assert labels.is_bot
        assert labels.is_nitpick
        assert not labels.is_outdated

    def test_human_never_nitpick(self):
        labels = CommentClassifier("abcd123", BOTS).classify("alice", "nitpick: trailing space", "abcd123")
        assert not labels.is_bot
        assert not labels.is_nitpick

    def test_empty_body_is_not_nitpick(self):
        labels = CommentClassifier("abcd123", BOTS).classify("coderabbitai[bot]", "   ", "abcd123")
        assert labels.is_bot
        assert not labels.is_nitpick

    def test_custom_markers(self):
        classifier = CommentClassifier("abcd123", BOTS, markers=["[minor]"])
        assert classifier.classify("github-actions[bot]", "[MINOR] spacing").is_nitpick
        assert not classifier.classify("github-actions[bot]", "nitpick: spacing").is_nitpick

    def test_adapter_markers_apply_to_owned_accounts(self):
        classifier = CommentClassifier("abcd123", BOTS, markers=[])
        assert classifier.classify("coderabbitai[bot]", "🧹 Nitpick comments (2)").is_nitpick
        assert not classifier.classify("github-actions[bot]", "🧹 Nitpick comments (2)").is_nitpick

    def test_disabled_adapter_markers_ignored(self):
        apply_config(Config(reviewers={"coderabbit": ReviewerConfig(enabled=False)}))
        classifier = CommentClassifier("abcd123", BOTS, markers=[])
        assert not classifier.classify("coderabbitai[bot]", "🧹 Nitpick comments (2)").is_nitpick

    def test_classify_review_copies(self):
        review = make_review(1, "bob", commit_id="ffff999")
        labelled = CommentClassifier("abcd123", BOTS).classify_review(review)
        assert labelled.is_outdated
        assert not review.is_outdated

    def test_classify_comment_uses_upstream_bot_flag(self):
        comment = make_comment(1, author="renovate[bot]", body="nitpick: pin this", is_bot=True)
        labelled = CommentClassifier("abcd123", BOTS).classify_comment(comment)
        assert labelled.is_bot
        assert labelled.is_nitpick

    def test_issue_comments_never_outdated(self):
        comment = IssueComment(id=5, author="coderabbitai[bot]", body="[nitpick] typo")
        labelled = CommentClassifier("abcd123", BOTS).classify_issue_comment(comment)
        assert labelled.is_bot
        assert labelled.is_nitpick
