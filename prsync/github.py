from __future__ import annotations

import asyncio
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any

import httpx

from .models import Account

# Set up logging
logger = logging.getLogger(__name__)

GITHUB_API = "https://api.github.com"


# Rate limiting constants
RATE_LIMIT_RESET_HEADER = "X-RateLimit-Reset"
RATE_LIMIT_REMAINING_HEADER = "X-RateLimit-Remaining"
FORBIDDEN_STATUS_CODE = 403

PAGE_SIZE = 100


@dataclass(frozen=True)
class APIRepository:
    """Repository payload embedded in a pull request ref."""

    owner: str
    name: str
    clone_url: str | None = None
    html_url: str | None = None

    @staticmethod
    def from_json(data: dict[str, Any]) -> APIRepository:
        return APIRepository(
            owner=data["owner"]["login"],
            name=data["name"],
            clone_url=data.get("clone_url"),
            html_url=data.get("html_url"),
        )


@dataclass(frozen=True)
class APIPullRequestRef:
    """Head or base of an upstream pull request.

    `repo` is None when the repository was deleted or is no longer visible.
    """

    ref: str
    sha: str
    repo: APIRepository | None

    @staticmethod
    def from_json(data: dict[str, Any]) -> APIPullRequestRef:
        repo = data.get("repo")
        return APIPullRequestRef(
            ref=data["ref"],
            sha=data["sha"],
            repo=APIRepository.from_json(repo) if repo else None,
        )


@dataclass(frozen=True)
class APIPullRequest:
    """Upstream pull request as returned by the pulls endpoint."""

    number: int
    title: str
    created_at: str
    user: str
    head: APIPullRequestRef
    base: APIPullRequestRef

    @staticmethod
    def from_json(data: dict[str, Any]) -> APIPullRequest:
        return APIPullRequest(
            number=data["number"],
            title=data["title"],
            created_at=data["created_at"],
            user=data["user"]["login"],
            head=APIPullRequestRef.from_json(data["head"]),
            base=APIPullRequestRef.from_json(data["base"]),
        )


@dataclass(frozen=True)
class APIRefStatusItem:
    """One status context reported for a commit."""

    id: int
    state: str
    context: str | None = None
    description: str | None = None
    target_url: str | None = None


@dataclass(frozen=True)
class APIRefStatus:
    """Combined status for a commit: overall state plus each context."""

    state: str
    total_count: int
    statuses: list[APIRefStatusItem] = field(default_factory=list)

    @staticmethod
    def from_json(data: dict[str, Any]) -> APIRefStatus:
        return APIRefStatus(
            state=data["state"],
            total_count=int(data.get("total_count", 0)),
            statuses=[
                APIRefStatusItem(
                    id=s["id"],
                    state=s["state"],
                    context=s.get("context"),
                    description=s.get("description"),
                    target_url=s.get("target_url"),
                )
                for s in data.get("statuses", [])
            ],
        )


class GitHubClient:
    """Async GitHub API client for pull requests and commit statuses."""

    def __init__(self, token: str | None, endpoint: str = GITHUB_API, max_retries: int = 3) -> None:
        """Initialize the client.

        Args:
            token: A GitHub access token. If provided, it is used for
                authenticated requests; otherwise, unauthenticated requests are
                made with stricter rate limits.
            endpoint: API base URL; differs from the default for GitHub Enterprise.
            max_retries: Maximum number of retries for failed requests.
        """
        self._endpoint = endpoint.rstrip("/")
        self._headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": "prsync",
        }
        if token:
            self._headers["Authorization"] = f"Bearer {token}"
        self._max_retries = max_retries
        self._rate_limit_remaining = 999  # Initial value, will be updated after first request
        self._rate_limit_reset_time = 0

    @classmethod
    def from_account(cls, account: Account) -> GitHubClient:
        """Build a client authenticated as `account` against its endpoint."""
        return cls(account.token, endpoint=account.endpoint)

    async def _request(self, url: str, params: dict[str, Any] | None = None) -> httpx.Response:
        """Perform a GET request, retrying on rate limits and network errors.

        Args:
            url: Absolute endpoint URL.
            params: Optional query parameters.

        Returns:
            The successful response.

        Raises:
            httpx.HTTPStatusError: If the response indicates an HTTP error.
            httpx.RequestError: On network or timeout errors.
        """
        # Check if we're rate limited and need to wait
        if self._rate_limit_remaining <= 1 and time.time() < self._rate_limit_reset_time:
            sleep_time = self._rate_limit_reset_time - time.time() + 1  # Add 1 second buffer
            logger.warning(f"Rate limited. Sleeping for {sleep_time} seconds.")
            await asyncio.sleep(sleep_time)

        for attempt in range(self._max_retries + 1):
            try:
                logger.debug(f"GET {url} params={params}")
                async with httpx.AsyncClient(timeout=20) as client:
                    r = await client.get(url, headers=self._headers, params=params)
                    self._update_rate_limit_info(r)
                    r.raise_for_status()
                    return r
            except httpx.HTTPStatusError as e:
                status_code = getattr(e.response, "status_code", None)
                if (
                    status_code == FORBIDDEN_STATUS_CODE
                    and self._rate_limit_remaining <= 1
                    and attempt < self._max_retries
                ):
                    # Wait for rate limit reset before retrying
                    if time.time() < self._rate_limit_reset_time:
                        sleep_time = self._rate_limit_reset_time - time.time() + 1
                        logger.warning(f"Hit rate limit. Waiting {sleep_time} seconds before retry.")
                        await asyncio.sleep(sleep_time)
                    continue
                logger.error(f"HTTP error {status_code or 'unknown'} for URL {url}: {e}")
                raise
            except httpx.RequestError as e:
                if attempt < self._max_retries:
                    logger.warning(f"Network error (attempt {attempt + 1}/{self._max_retries + 1}): {e}")
                    await asyncio.sleep(2**attempt)  # Exponential backoff
                    continue
                logger.error(f"Network error after {self._max_retries + 1} attempts: {e}")
                raise

        raise httpx.RequestError("Max retries exceeded")

    async def _get(self, url: str, params: dict[str, Any] | None = None) -> Any:
        """Perform a GET request and return parsed JSON."""
        r = await self._request(url, params=params)
        return r.json()

    async def _get_all(self, url: str, params: dict[str, Any] | None = None) -> list[Any]:
        """Fetch every page of a list endpoint by following `rel="next"` links.

        Args:
            url: Absolute URL of the first page.
            params: Query parameters for the first page; later pages carry
                their own in the link URL.

        Returns:
            The concatenated items of all pages.
        """
        items: list[Any] = []
        next_url: str | None = url
        next_params = params
        while next_url:
            r = await self._request(next_url, params=next_params)
            items.extend(r.json())
            next_url = r.links.get("next", {}).get("url")
            next_params = None
        return items

    def _update_rate_limit_info(self, response: httpx.Response) -> None:
        """Update rate limit information from response headers.

        Args:
            response: The HTTP response to extract rate limit info from.
        """
        remaining = response.headers.get(RATE_LIMIT_REMAINING_HEADER)
        reset = response.headers.get(RATE_LIMIT_RESET_HEADER)
        try:
            if remaining is not None:
                self._rate_limit_remaining = int(remaining)
            if reset is not None:
                self._rate_limit_reset_time = int(reset)
        except ValueError:
            logger.debug(f"Ignoring malformed rate limit headers: {remaining!r}, {reset!r}")

    async def fetch_pull_requests(self, owner: str, name: str, state: str = "open") -> list[APIPullRequest]:
        """List pull requests for a repository across all pages.

        Args:
            owner: Repository owner/org login.
            name: Repository name.
            state: PR state to filter by ("open", "closed", "all").

        Returns:
            A list of `APIPullRequest` records in upstream order.

        Raises:
            httpx.HTTPStatusError: If the API responds with an error status.
            httpx.RequestError: On network or timeout errors.
        """
        url = f"{self._endpoint}/repos/{owner}/{name}/pulls"
        data = await self._get_all(url, params={"state": state, "per_page": PAGE_SIZE})
        return [APIPullRequest.from_json(pr) for pr in data]

    async def fetch_combined_ref_status(self, owner: str, name: str, ref: str) -> APIRefStatus:
        """Get the combined status for a ref (branch or commit SHA).

        Args:
            owner: Repository owner/org login.
            name: Repository name.
            ref: The ref to get the combined status for.

        Returns:
            The `APIRefStatus` for the ref.

        Raises:
            httpx.HTTPStatusError: If the API responds with an error status.
            httpx.RequestError: On network or timeout errors.
        """
        url = f"{self._endpoint}/repos/{owner}/{name}/commits/{ref}/status"
        data = await self._get(url)
        return APIRefStatus.from_json(data)


def parse_github_url(url: str) -> tuple[str, str] | None:
    """Extract (owner, repo) from a GitHub remote URL.

    Handles:
      - https://github.com/owner/repo
      - https://github.com/owner/repo.git
      - git@github.com:owner/repo.git
    """
    match = re.match(r"https://github\.com/([^/]+)/([^/]+?)(?:\.git)?/?$", url)
    if match:
        return match.group(1), match.group(2)

    match = re.match(r"git@github\.com:([^/]+)/([^/]+?)(?:\.git)?$", url)
    if match:
        return match.group(1), match.group(2)

    return None
