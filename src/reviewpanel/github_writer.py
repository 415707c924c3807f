"""Write port backed by the GitHub REST and GraphQL APIs."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, override

from reviewpanel import github_api
from reviewpanel.ports import PullRequestWriter, WriteError

if TYPE_CHECKING:
    from reviewpanel.models import DraftLineComment

logger = logging.getLogger(__name__)

_CONVERT_TO_DRAFT = """
mutation($id: ID!) {
  convertPullRequestToDraft(input: {pullRequestId: $id}) {
    pullRequest { isDraft }
  }
}
"""

_MARK_READY = """
mutation($id: ID!) {
  markPullRequestReadyForReview(input: {pullRequestId: $id}) {
    pullRequest { isDraft }
  }
}
"""


def _draft_comment_payload(comment: DraftLineComment) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "path": comment.path,
        "line": comment.line,
        "side": comment.side,
        "body": comment.body,
    }
    if comment.start_line is not None:
        payload["start_line"] = comment.start_line
        payload["start_side"] = comment.start_side or comment.side
    return payload


class GitHubWriter(PullRequestWriter):
    """Performs writes with one user's token. :exc:`GitHubError` becomes :exc:`WriteError`."""

    def __init__(self, token: str) -> None:
        self._token = token

    async def _rest(self, endpoint: str, method: str, **body: Any) -> Any:
        try:
            return await github_api.rest(endpoint, method, token=self._token, **body)
        except github_api.GitHubError as exc:
            raise WriteError(str(exc), status_code=exc.status_code) from exc

    async def _graphql(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        try:
            return await github_api.graphql(query, variables, token=self._token)
        except github_api.GitHubError as exc:
            raise WriteError(str(exc), status_code=exc.status_code) from exc

    async def _node_id(self, repo_full_name: str, number: int, node_id: str) -> str:
        if node_id:
            return node_id
        pr = await self._rest(f"/repos/{repo_full_name}/pulls/{number}", "GET")
        return pr["node_id"]

    @override
    async def submit_review(
        self,
        repo_full_name: str,
        number: int,
        *,
        commit_sha: str,
        event: str,
        body: str,
        comments: list[DraftLineComment],
    ) -> None:
        payload: dict[str, Any] = {"event": event, "body": body}
        if commit_sha:
            payload["commit_id"] = commit_sha
        if comments:
            payload["comments"] = [_draft_comment_payload(c) for c in comments]
        await self._rest(f"/repos/{repo_full_name}/pulls/{number}/reviews", "POST", **payload)
        logger.info("Submitted %s review on %s#%s", event, repo_full_name, number)

    @override
    async def create_issue_comment(self, repo_full_name: str, number: int, body: str) -> None:
        await self._rest(f"/repos/{repo_full_name}/issues/{number}/comments", "POST", body=body)
        logger.info("Commented on %s#%s", repo_full_name, number)

    @override
    async def create_reply_comment(
        self,
        repo_full_name: str,
        number: int,
        *,
        in_reply_to: int,
        body: str,
    ) -> None:
        await self._rest(f"/repos/{repo_full_name}/pulls/{number}/comments/{in_reply_to}/replies", "POST", body=body)
        logger.info("Replied to comment %s on %s#%s", in_reply_to, repo_full_name, number)

    @override
    async def convert_to_draft(self, repo_full_name: str, number: int, node_id: str) -> None:
        await self._graphql(_CONVERT_TO_DRAFT, {"id": await self._node_id(repo_full_name, number, node_id)})
        logger.info("Converted %s#%s to draft", repo_full_name, number)

    @override
    async def mark_ready_for_review(self, repo_full_name: str, number: int, node_id: str) -> None:
        await self._graphql(_MARK_READY, {"id": await self._node_id(repo_full_name, number, node_id)})
        logger.info("Marked %s#%s ready for review", repo_full_name, number)
