"""Direct GitHub API client using httpx with token authentication.

Token resolution (first hit wins, resolved once then cached):
1. ``REVIEWPANEL_GITHUB_TOKEN`` env var
2. ``GH_TOKEN`` env var
3. ``GITHUB_TOKEN`` env var
4. ``gh auth token`` subprocess, which reads local ``gh`` config without network
5. Raises :exc:`GitHubAuthError` with a setup URL

Every call accepts an explicit ``token`` that bypasses the lookup; the write
path always passes the token it checked.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import subprocess  # noqa: S404
from typing import Any

import httpx

logger = logging.getLogger(__name__)

_GITHUB_API_URL = "https://api.github.com"
_GITHUB_GRAPHQL_URL = "https://api.github.com/graphql"
TOKEN_CREATE_URL = "https://github.com/settings/tokens/new?scopes=repo&description=reviewpanel"  # noqa: S105
TOKEN_ENV_VARS = ("REVIEWPANEL_GITHUB_TOKEN", "GH_TOKEN", "GITHUB_TOKEN")

_TIMEOUT = httpx.Timeout(30.0)

_token: str | None = None
_token_resolved: bool = False


# ---------------------------------------------------------------------------
# Error types
# ---------------------------------------------------------------------------


class GitHubError(Exception):
    """Raised when a GitHub API call fails."""

    def __init__(self, message: str, status_code: int = 0) -> None:
        super().__init__(message)
        self.status_code = status_code


class GitHubAuthError(GitHubError):
    """Raised when GitHub authentication fails or no token is available."""

    def __init__(self, detail: str = "") -> None:
        msg = (
            "GitHub token not found. "
            "Set REVIEWPANEL_GITHUB_TOKEN, GH_TOKEN or GITHUB_TOKEN, or run 'gh auth login'.\n"
            f"Create a token (permissions pre-filled): {TOKEN_CREATE_URL}"
        )
        if detail:
            msg = f"{detail}\n{msg}"
        super().__init__(msg, status_code=401)


# ---------------------------------------------------------------------------
# Repo parsing
# ---------------------------------------------------------------------------


def parse_repo(repo: str) -> tuple[str, str]:
    """Parse an ``owner/repo`` string into a ``(owner, repo_name)`` tuple.

    Raises:
        GitHubError: If the string is not in ``owner/repo`` format.
    """
    owner, _, repo_name = repo.strip().partition("/")
    if not owner or not repo_name or "/" in repo_name:
        msg = f"Invalid repo format {repo!r}. Expected 'owner/repo'."
        raise GitHubError(msg)
    return owner, repo_name


# ---------------------------------------------------------------------------
# Token resolution
# ---------------------------------------------------------------------------


def resolve_token_sync() -> str | None:
    """Resolve a GitHub token synchronously. Safe to run in a thread."""
    for var in TOKEN_ENV_VARS:
        token = os.environ.get(var)
        if token:
            logger.debug("GitHub token resolved from %s", var)
            return token

    try:
        result = subprocess.run(
            ["gh", "auth", "token"],  # noqa: S607
            capture_output=True,
            text=True,
            check=False,
            timeout=5,
        )
        if result.returncode == 0 and result.stdout.strip():
            logger.debug("GitHub token resolved from gh auth token")
            return result.stdout.strip()
    except (FileNotFoundError, subprocess.TimeoutExpired, OSError):
        pass

    return None


async def find_token() -> str | None:
    """Return the GitHub token, or None if none is configured. Resolved lazily once."""
    global _token, _token_resolved  # noqa: PLW0603
    if not _token_resolved:
        _token = await asyncio.to_thread(resolve_token_sync)
        _token_resolved = True
    return _token


async def get_token() -> str:
    """Return the GitHub token.

    Raises:
        GitHubAuthError: If no token can be found.
    """
    token = await find_token()
    if token is None:
        raise GitHubAuthError
    return token


def reset_token() -> None:
    """Reset cached token (for testing)."""
    global _token, _token_resolved  # noqa: PLW0603
    _token = None
    _token_resolved = False


# ---------------------------------------------------------------------------
# HTTP helpers
# ---------------------------------------------------------------------------


async def _get_headers(token: str | None = None) -> dict[str, str]:
    """Build GitHub API request headers."""
    token = token or await get_token()
    return {
        "Authorization": f"Bearer {token}",
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": "2022-11-28",
    }


_HTTP_UNAUTHORIZED = 401
_HTTP_FORBIDDEN = 403
_HTTP_NOT_FOUND = 404


def _raise_for_status(response: httpx.Response) -> None:
    """Raise the appropriate :exc:`GitHubError` for non-2xx responses."""
    if response.is_success:
        return

    if response.status_code == _HTTP_UNAUTHORIZED:
        raise GitHubAuthError

    try:
        body = response.json()
        msg = body.get("message", response.text)
        details = [e.get("message", "") for e in body.get("errors", []) if isinstance(e, dict)]
        details = [d for d in details if d]
        if details:
            msg = f"{msg}: {'; '.join(details)}"
    except Exception:
        msg = response.text

    if response.status_code == _HTTP_FORBIDDEN:
        if "rate limit" in msg.lower():
            msg = f"GitHub API rate limit exceeded: {msg}"
            raise GitHubError(msg, status_code=_HTTP_FORBIDDEN)
        msg = f"GitHub API access forbidden: {msg}"
        raise GitHubAuthError(msg)

    msg = f"GitHub API error {response.status_code}: {msg}"
    raise GitHubError(msg, status_code=response.status_code)


def _parse_next_link(link_header: str) -> str | None:
    """Parse a ``Link:`` header and return the ``next`` URL if present."""
    if not link_header:
        return None
    match = re.search(r'<([^>]+)>;\s*rel="next"', link_header)
    return match.group(1) if match else None


# ---------------------------------------------------------------------------
# GraphQL
# ---------------------------------------------------------------------------


async def graphql(
    query: str,
    variables: dict[str, Any] | None = None,
    *,
    token: str | None = None,
) -> dict[str, Any]:
    """Execute a GitHub GraphQL query or mutation.

    Returns:
        Parsed JSON response dict (full envelope including ``data``).

    Raises:
        GitHubError: On GraphQL errors or HTTP failure.
        GitHubAuthError: On authentication failure.
    """
    headers = await _get_headers(token)
    payload: dict[str, Any] = {"query": query}
    if variables:
        payload["variables"] = variables

    logger.debug("GraphQL %s", "mutation" if query.strip().lower().startswith("mutation") else "query")
    async with httpx.AsyncClient(timeout=_TIMEOUT) as client:
        response = await client.post(_GITHUB_GRAPHQL_URL, headers=headers, json=payload)

    _raise_for_status(response)
    result: dict[str, Any] = response.json()

    errors = result.get("errors")
    if errors:
        messages = "; ".join(e.get("message", str(e)) for e in errors)
        msg = f"GraphQL error: {messages}"
        raise GitHubError(msg)

    return result


# ---------------------------------------------------------------------------
# REST
# ---------------------------------------------------------------------------


async def rest(
    endpoint: str,
    method: str = "GET",
    *,
    token: str | None = None,
    paginate: bool = False,
    **kwargs: Any,
) -> Any:
    """Execute a GitHub REST API call.

    Args:
        endpoint: REST API endpoint path (e.g. ``/repos/owner/repo/pulls``).
        method: HTTP method (default ``GET``).
        token: Token to use instead of the resolved one.
        paginate: If ``True``, follow ``Link:`` headers and return a flat list.
        **kwargs: Query parameters (GET) or JSON body fields (non-GET).

    Raises:
        GitHubError: On HTTP failure.
        GitHubAuthError: On authentication failure.
    """
    url = f"{_GITHUB_API_URL}{endpoint}"
    headers = await _get_headers(token)

    if paginate:
        return await _paginate_rest(url, headers, **kwargs)
    return await _single_rest(url, method, headers, **kwargs)


async def _single_rest(url: str, method: str, headers: dict[str, str], **kwargs: Any) -> Any:
    """Make a single REST request and return parsed JSON."""
    upper = method.upper()
    params = dict(kwargs) if upper == "GET" and kwargs else None
    json_body = dict(kwargs) if upper != "GET" and kwargs else None

    async with httpx.AsyncClient(timeout=_TIMEOUT) as client:
        response = await client.request(upper, url, headers=headers, params=params, json=json_body)

    _raise_for_status(response)
    if not response.content:
        return None
    return response.json()


async def _paginate_rest(url: str, headers: dict[str, str], **kwargs: Any) -> list[Any]:
    """Follow ``Link:`` headers to collect all pages into a flat list."""
    results: list[Any] = []
    next_url: str | None = url
    first = True

    async with httpx.AsyncClient(timeout=_TIMEOUT) as client:
        while next_url:
            params = dict(kwargs) if first and kwargs else None
            response = await client.get(next_url, headers=headers, params=params)
            _raise_for_status(response)
            page = response.json()
            if isinstance(page, list):
                results.extend(page)
            elif page is not None:
                results.append(page)
            next_url = _parse_next_link(response.headers.get("link", ""))
            first = False

    return results
