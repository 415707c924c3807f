"""Pydantic models for reviewpanel."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, Field


class PRStatus(StrEnum):
    """Lifecycle state of a pull request."""

    OPEN = "open"
    CLOSED = "closed"
    MERGED = "merged"


class ReviewState(StrEnum):
    """State of a single submitted review."""

    APPROVED = "approved"
    CHANGES_REQUESTED = "changes_requested"
    COMMENTED = "commented"
    PENDING = "pending"
    DISMISSED = "dismissed"


class ReviewStatus(StrEnum):
    """Aggregate review state of a pull request across reviewers."""

    APPROVED = "approved"
    CHANGES_REQUESTED = "changes_requested"
    COMMENTED = "commented"
    PENDING = "pending"


class CIStatus(StrEnum):
    """Combined CI status of a pull request."""

    PASSING = "passing"
    FAILING = "failing"
    PENDING = "pending"
    UNKNOWN = "unknown"


class MergeableStatus(StrEnum):
    """Whether GitHub can merge the pull request cleanly."""

    MERGEABLE = "mergeable"
    CONFLICTED = "conflicted"
    UNKNOWN = "unknown"


class ReviewEvent(StrEnum):
    """Events accepted when submitting a review."""

    APPROVE = "APPROVE"
    REQUEST_CHANGES = "REQUEST_CHANGES"
    COMMENT = "COMMENT"


class MutationStatus(StrEnum):
    """Outcome of a write mutation."""

    OK = "ok"
    INVALID = "invalid"
    FORBIDDEN = "forbidden"
    NOT_CONFIGURED = "not_configured"
    NOT_FOUND = "not_found"
    UPSTREAM_ERROR = "upstream_error"


def whole_days_since(timestamp: datetime | None, now: datetime | None = None) -> int:
    """Return the number of whole days elapsed since *timestamp*.

    Missing timestamps and timestamps in the future count as zero days.
    Naive datetimes are treated as UTC.
    """
    if timestamp is None:
        return 0
    now = now or datetime.now(UTC)
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=UTC)
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    delta = now - timestamp
    if delta.total_seconds() <= 0:
        return 0
    return delta.days


# ---------------------------------------------------------------------------
# Upstream records
# ---------------------------------------------------------------------------


class PullRequest(BaseModel):
    """A GitHub pull request mirrored into local storage."""

    id: int = Field(description="Stable internal identifier (GitHub database id)")
    number: int = Field(description="PR number within the repository")
    repo_full_name: str = Field(description="Repository in 'owner/repo' format")
    node_id: str = Field(default="", description="GraphQL node id, needed for draft toggling")
    title: str = Field(default="", description="PR title")
    author: str = Field(default="", description="GitHub username of the PR author")
    status: PRStatus = Field(default=PRStatus.OPEN, description="open, closed or merged")
    is_draft: bool = Field(default=False, description="Whether the PR is a draft")
    url: str = Field(default="", description="PR URL")
    branch: str = Field(default="", description="Head branch name")
    base_branch: str = Field(default="", description="Base branch name")
    head_sha: str = Field(default="", description="Commit SHA of the head branch at last sync")
    additions: int = Field(default=0, description="Lines added")
    deletions: int = Field(default=0, description="Lines deleted")
    changed_files: int = Field(default=0, description="Number of files changed")
    mergeable_status: MergeableStatus = Field(default=MergeableStatus.UNKNOWN, description="Mergeability")
    ci_status: CIStatus = Field(default=CIStatus.UNKNOWN, description="Combined CI status")
    labels: list[str] = Field(default_factory=list, description="Label names")
    opened_at: datetime | None = Field(default=None, description="When the PR was opened")
    updated_at: datetime | None = Field(default=None, description="When GitHub last updated the PR")
    last_activity_at: datetime | None = Field(default=None, description="Most recent activity on the PR")

    def days_since_opened(self, now: datetime | None = None) -> int:
        return whole_days_since(self.opened_at, now)

    def days_since_last_activity(self, now: datetime | None = None) -> int:
        return whole_days_since(self.last_activity_at, now)


class Review(BaseModel):
    """A submitted review on a pull request."""

    id: int = Field(description="GitHub review id")
    reviewer_login: str = Field(description="GitHub username of the reviewer")
    state: ReviewState = Field(description="Review state")
    body: str = Field(default="", description="Review body text")
    commit_id: str = Field(default="", description="Commit SHA the review was submitted against")
    submitted_at: datetime | None = Field(default=None, description="When the review was submitted")
    is_bot: bool = Field(default=False, description="Whether the reviewer is a bot")
    is_outdated: bool = Field(default=False, description="Derived: reviewed commit differs from head")
    is_nitpick: bool = Field(default=False, description="Derived: bot review carrying a nitpick marker")


class ReviewComment(BaseModel):
    """A single inline code comment."""

    id: int = Field(description="GitHub comment id")
    review_id: int | None = Field(default=None, description="Review this comment belongs to")
    in_reply_to_id: int | None = Field(default=None, description="Root comment id for replies, None for roots")
    author: str = Field(description="GitHub username of the comment author")
    body: str = Field(default="", description="Comment body text")
    path: str = Field(default="", description="File path the comment is on")
    line: int | None = Field(default=None, description="Line number in the file")
    start_line: int | None = Field(default=None, description="First line of a multi-line comment")
    side: str = Field(default="", description="Diff side (LEFT or RIGHT)")
    diff_hunk: str = Field(default="", description="Diff hunk the comment is anchored to")
    commit_id: str = Field(default="", description="Commit SHA the comment was made on")
    is_resolved: bool = Field(default=False, description="Resolution state as reported by GitHub")
    is_bot: bool = Field(default=False, description="Upstream bot flag for the author")
    created_at: datetime | None = Field(default=None, description="When the comment was posted")
    updated_at: datetime | None = Field(default=None, description="When the comment was last edited")
    is_outdated: bool = Field(default=False, description="Derived: comment commit differs from head")
    is_nitpick: bool = Field(default=False, description="Derived: bot comment carrying a nitpick marker")


class IssueComment(BaseModel):
    """A PR-level (non-inline) comment."""

    id: int = Field(description="GitHub comment id")
    author: str = Field(description="GitHub username of the comment author")
    body: str = Field(default="", description="Comment body text")
    is_bot: bool = Field(default=False, description="Whether the author is a bot")
    created_at: datetime | None = Field(default=None, description="When the comment was posted")
    updated_at: datetime | None = Field(default=None, description="When the comment was last edited")
    is_nitpick: bool = Field(default=False, description="Derived: bot comment carrying a nitpick marker")


class CheckRun(BaseModel):
    """A CI/CD check run reported against the PR head commit."""

    id: int = Field(description="GitHub check run id")
    name: str = Field(description="Check name")
    status: str = Field(default="", description="queued, in_progress or completed")
    conclusion: str = Field(default="", description="Conclusion once completed (success, failure, ...)")
    is_required: bool = Field(default=False, description="Whether branch protection requires this check")
    details_url: str = Field(default="", description="Link to the check details")


class ReviewData(BaseModel):
    """Everything the review read port returns for one pull request."""

    reviews: list[Review] = Field(default_factory=list)
    review_comments: list[ReviewComment] = Field(default_factory=list)
    issue_comments: list[IssueComment] = Field(default_factory=list)
    bot_usernames: list[str] = Field(default_factory=list, description="Known bot accounts for this PR")


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class GlobalSettings(BaseModel):
    """Dashboard-wide attention settings."""

    review_count_threshold: int | None = Field(default=None, ge=0, description="Approvals required before a PR stops needing reviews")
    age_urgency_days: int | None = Field(default=None, ge=0, description="Days of inactivity before a PR is stale")
    stale_review_enabled: bool = Field(default=True, description="Whether staleness signals are shown")
    ci_failure_enabled: bool = Field(default=True, description="Whether the CI-failure signal is shown")


class RepoThreshold(BaseModel):
    """Per-repository override; a None field inherits the global value."""

    repo_full_name: str = Field(description="Repository in 'owner/repo' format")
    review_count: int | None = Field(default=None, ge=0, description="Override for the required approval count")
    age_urgency_days: int | None = Field(default=None, ge=0, description="Override for the urgency day count")
    stale_review_enabled: bool | None = Field(default=None, description="Override for the stale-review signal switch")
    ci_failure_enabled: bool | None = Field(default=None, description="Override for the CI-failure signal switch")


class EffectiveThresholds(BaseModel):
    """Thresholds resolved for one repository."""

    required_review_count: int
    urgency_days: int
    stale_review_enabled: bool = True
    ci_failure_enabled: bool = True


class AttentionSignals(BaseModel):
    """Per-PR attention signals. Recomputed on every read."""

    needs_more_reviews: bool = Field(default=False, description="Fewer approvals than required")
    is_stale: bool = Field(default=False, description="No activity for at least the urgency day count")
    is_age_urgent: bool = Field(default=False, description="Open for at least the urgency day count")
    has_stale_review: bool = Field(default=False, description="Your latest review is on an outdated commit")
    has_ci_failure: bool = Field(default=False, description="Your own PR has failing CI")
    approval_count: int = Field(default=0, description="Approvals from non-bot reviewers")
    required_review_count: int = Field(default=0, description="Approvals required for this repository")
    days_inactive: int = Field(default=0, description="Whole days since the last activity")

    def has_any(self) -> bool:
        return self.severity() > 0

    def severity(self) -> int:
        """Number of active boolean signals."""
        return sum((
            self.needs_more_reviews,
            self.is_stale,
            self.is_age_urgent,
            self.has_stale_review,
            self.has_ci_failure,
        ))


# ---------------------------------------------------------------------------
# Derived views
# ---------------------------------------------------------------------------


class Classification(BaseModel):
    """Independent labels for a review or comment."""

    is_outdated: bool = False
    is_bot: bool = False
    is_nitpick: bool = False


class CommentThread(BaseModel):
    """A root review comment and its replies."""

    root: ReviewComment = Field(description="The comment that started the thread")
    replies: list[ReviewComment] = Field(default_factory=list, description="Replies in fetch order")
    is_resolved: bool = Field(default=False, description="Copied from the root comment")
    comment_count: int = Field(default=1, description="1 + number of replies")


class Suggestion(BaseModel):
    """A code suggestion block proposed in a review comment."""

    comment_id: int = Field(description="Comment the suggestion came from")
    author: str = Field(default="", description="Who proposed it")
    path: str = Field(default="", description="File path")
    start_line: int | None = Field(default=None, description="First line the suggestion replaces")
    end_line: int | None = Field(default=None, description="Last line the suggestion replaces")
    proposed_code: str = Field(default="", description="Replacement code")


class PRReviewSummary(BaseModel):
    """Enriched review state of one pull request."""

    reviews: list[Review] = Field(default_factory=list)
    threads: list[CommentThread] = Field(default_factory=list)
    issue_comments: list[IssueComment] = Field(default_factory=list)
    suggestions: list[Suggestion] = Field(default_factory=list)
    review_status: ReviewStatus = Field(default=ReviewStatus.PENDING, description="Aggregate state across human reviewers")
    approval_count: int = Field(default=0, description="APPROVED reviews from non-bot reviewers")
    resolved_thread_count: int = Field(default=0)
    unresolved_thread_count: int = Field(default=0)
    has_bot_review: bool = Field(default=False)
    has_coderabbit_review: bool = Field(default=False)
    awaiting_coderabbit: bool = Field(default=False, description="CodeRabbit is configured but has not reviewed yet")
    bot_usernames: list[str] = Field(default_factory=list)


class PRHealthSummary(BaseModel):
    """CI checks for one pull request."""

    check_runs: list[CheckRun] = Field(default_factory=list)
    ci_status: CIStatus = Field(default=CIStatus.UNKNOWN)


class PRCard(BaseModel):
    """Card-level view of a pull request for the worklist."""

    pr: PullRequest
    signals: AttentionSignals = Field(default_factory=AttentionSignals)
    days_open: int = Field(default=0)
    days_inactive: int = Field(default=0)
    is_own_pr: bool = Field(default=False, description="Authored by the authenticated user")


class PRDetail(PRCard):
    """Full detail view of a pull request."""

    review_summary: PRReviewSummary | None = Field(default=None, description="None when review data could not be read")
    health: PRHealthSummary | None = Field(default=None, description="None when check runs could not be read")
    optimistic: bool = Field(
        default=False,
        description="True when some fields are a local guess not yet confirmed by GitHub",
    )
    reconciliation_scheduled: bool = Field(default=False, description="A background refresh of this PR was scheduled")


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


class DraftLineComment(BaseModel):
    """An inline comment attached to a review submission."""

    path: str
    line: int
    body: str
    side: str = "RIGHT"
    start_line: int | None = None
    start_side: str | None = None


class SubmitReview(BaseModel):
    kind: Literal["submit_review"] = "submit_review"
    event: str = Field(description="APPROVE, REQUEST_CHANGES or COMMENT")
    body: str = ""
    commit_sha: str = Field(default="", description="Commit to review; defaults to the PR head")
    comments: list[DraftLineComment] = Field(default_factory=list)


class AddIssueComment(BaseModel):
    kind: Literal["issue_comment"] = "issue_comment"
    body: str


class ReplyToThread(BaseModel):
    kind: Literal["reply"] = "reply"
    root_comment_id: int = Field(description="Id of the thread's root comment")
    body: str


class ToggleDraft(BaseModel):
    kind: Literal["toggle_draft"] = "toggle_draft"


Mutation = Annotated[SubmitReview | AddIssueComment | ReplyToThread | ToggleDraft, Field(discriminator="kind")]


class MutationResult(BaseModel):
    """Result of a write mutation."""

    status: MutationStatus = Field(description="Outcome category")
    status_code: int = Field(description="HTTP-equivalent status code")
    message: str = Field(default="", description="Human-readable detail; upstream errors are passed through verbatim")
    detail: PRDetail | None = Field(default=None, description="Refreshed PR view on success")

    @property
    def ok(self) -> bool:
        return self.status == MutationStatus.OK


# ---------------------------------------------------------------------------
# Tool results
# ---------------------------------------------------------------------------


class WorklistResult(BaseModel):
    """Prioritized worklist of open pull requests."""

    cards: list[PRCard] = Field(default_factory=list, description="PR cards, most urgent first")
    error: str | None = Field(default=None, description="Error message if the request failed")


class PRDetailResult(BaseModel):
    """Detail lookup for one pull request."""

    detail: PRDetail | None = Field(default=None)
    not_found: bool = Field(default=False, description="True when the PR is not tracked")
    error: str | None = Field(default=None, description="Error message if the request failed")


class ThresholdsInfo(BaseModel):
    """Current attention settings."""

    global_settings: GlobalSettings = Field(default_factory=GlobalSettings)
    repo_thresholds: list[RepoThreshold] = Field(default_factory=list)
    error: str | None = Field(default=None, description="Error message if the request failed")


class RepositoriesResult(BaseModel):
    """Watched repositories."""

    repositories: list[str] = Field(default_factory=list)
    reconciliation_scheduled: bool = Field(default=False)
    error: str | None = Field(default=None, description="Error message if the request failed")


class ConfigInfo(BaseModel):
    """Active configuration, for the show_config tool."""

    config: dict = Field(description="Full configuration as JSON")
    source: str = Field(description="Config file path, or 'defaults'")
    explanation: str = Field(description="Human-readable summary")
