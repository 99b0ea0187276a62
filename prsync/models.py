from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path


@dataclass(frozen=True)
class Account:
    """A signed-in GitHub (or GitHub Enterprise) account.

    Attributes:
        login: The account's user login.
        endpoint: API base URL, e.g. "https://api.github.com".
        token: OAuth or personal access token, if any.
    """

    login: str
    endpoint: str
    token: str | None = None


@dataclass(frozen=True)
class GitHubRepository:
    """A GitHub repository as recorded in the local repository registry.

    Attributes:
        db_id: Local database identifier, None until the record is persisted.
        endpoint: API base URL the repository was resolved against.
        owner: Login of the owning user or organization.
        name: Repository name.
        clone_url: HTTPS clone URL, used to match fork remotes.
        html_url: Web URL of the repository.
    """

    db_id: int | None
    endpoint: str
    owner: str
    name: str
    clone_url: str | None = None
    html_url: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


@dataclass(frozen=True)
class Repository:
    """A local checkout, optionally associated with a GitHub repository."""

    name: str
    path: Path
    github_repository: GitHubRepository | None = None


@dataclass(frozen=True)
class Remote:
    """A git remote configured in a checkout."""

    name: str
    url: str


@dataclass(frozen=True)
class CombinedRefStatus:
    """A single CI check result inside a combined status."""

    id: int
    state: str


@dataclass
class PullRequestStatus:
    """Cached combined CI status of a pull request's head commit.

    Attributes:
        pull_request_id: Local database ID of the pull request.
        state: Aggregate state ("success", "failure", "pending", ...).
        total_count: Number of individual checks reported upstream.
        sha: Head commit the status was computed for.
        statuses: Individual check results, in upstream order.
    """

    pull_request_id: int
    state: str
    total_count: int
    sha: str
    statuses: list[CombinedRefStatus] = field(default_factory=list)


@dataclass(frozen=True)
class PullRequestRef:
    """A branch reference at a specific commit.

    `github_repository` is None when the source repository of a pull
    request has been deleted or made private upstream.
    """

    ref: str
    sha: str
    github_repository: GitHubRepository | None


@dataclass
class PullRequest:
    """A fully hydrated pull request loaded from the cache."""

    id: int
    created_at: datetime
    status: PullRequestStatus | None
    title: str
    number: int
    head: PullRequestRef
    base: PullRequestRef
    author: str
