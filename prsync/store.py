from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import datetime

from .database import PullRequestDatabase, PullRequestRecord, PullRequestRefRecord
from .errors import force_unwrap
from .events import Disposable, Emitter
from .fetch_counter import ActiveFetchCounter
from .forks import prune_forked_remotes
from .github import APIPullRequest, GitHubClient
from .models import Account, GitHubRepository, PullRequest, PullRequestRef, Repository
from .registry import RepositoryRegistry
from .status import StatusRefresher

logger = logging.getLogger(__name__)


def _parse_timestamp(value: str) -> datetime:
    # The API uses a trailing "Z" which older fromisoformat rejects
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class PullRequestStore:
    """Keeps cached pull requests and their CI status in sync with GitHub."""

    def __init__(
        self,
        db: PullRequestDatabase,
        repositories_store: RepositoryRegistry,
        api_factory: Callable[[Account], GitHubClient] | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            db: Cache of pull requests and statuses.
            repositories_store: Registry resolving repositories to local records.
            api_factory: Builds an API client for an account; defaults to
                `GitHubClient.from_account`.
        """
        self._emitter = Emitter()
        self._db = db
        self._repositories_store = repositories_store
        self._api_factory = api_factory or GitHubClient.from_account
        self._fetch_counter = ActiveFetchCounter(self._emit_update)
        self._status_refresher = StatusRefresher(db, self._api_factory, self._emit_update)

    async def fetch_pull_requests(self, repository: Repository, account: Account) -> None:
        """Refresh the open pull requests of a repository and everything derived from them.

        Replaces the cached list, reloads it, refreshes CI status and prunes
        stale fork remotes. Failures after the precondition check are logged
        and reported through `on_did_error`, never raised.

        Args:
            repository: A local checkout associated with a stored GitHub repository.
            account: Account used to query the API.

        Raises:
            FatalError: If the repository has no GitHub repository or it was
                never stored locally.
        """
        github_repo = force_unwrap(
            "Can only refresh pull requests for GitHub repositories", repository.github_repository
        )
        force_unwrap("Cannot fetch PRs for a repository which is not in the database", github_repo.db_id)
        api = self._api_factory(account)

        try:
            # Paired with the decrement in `finally`
            self._fetch_counter.change(github_repo, lambda c: c + 1)

            api_result = await api.fetch_pull_requests(github_repo.owner, github_repo.name, "open")

            await self._write_pull_requests(api_result, github_repo)

            prs = await self.load_pull_requests_from_cache(github_repo)

            await self._status_refresher.refresh(prs, github_repo, account)
            await prune_forked_remotes(repository, prs)
        except Exception as e:
            logger.warning(f"Error refreshing pull requests for '{repository.name}': {e!r}")
            self._emit_error(e)
        finally:
            self._fetch_counter.change(github_repo, lambda c: c - 1)

    def is_fetching_pull_requests(self, repository: GitHubRepository) -> bool:
        """Is the store currently fetching the list of open pull requests?"""
        return self._fetch_counter.is_active(repository)

    async def refresh_single_pull_request_status(
        self,
        repository: GitHubRepository,
        account: Account,
        pull_request: PullRequest,
    ) -> None:
        """Loads the status for the given pull request."""
        await self._status_refresher.refresh([pull_request], repository, account)

    async def fetch_pull_request_statuses(self, repository: GitHubRepository, account: Account) -> None:
        """Loads the status for all cached pull requests against a repository."""
        prs = await self.load_pull_requests_from_cache(repository)
        await self._status_refresher.refresh(prs, repository, account)

    async def _write_pull_requests(
        self,
        pull_requests: Sequence[APIPullRequest],
        repository: GitHubRepository,
    ) -> None:
        """Resolve each pull request's repositories and replace the cached list.

        Args:
            pull_requests: Upstream pull requests for `repository`.
            repository: The stored repository they were fetched from.
        """
        force_unwrap(
            "Cannot store pull requests for a repository that hasn't been inserted into the database!",
            repository.db_id,
        )

        records: list[PullRequestRecord] = []
        for pr in pull_requests:
            head_repo: GitHubRepository | None = None
            if pr.head.repo is not None:
                head_repo = await self._repositories_store.find_or_put_github_repository(
                    repository.endpoint, pr.head.repo
                )

            # The base repo is the one we fetched the PR from
            base_repo = await self._repositories_store.find_or_put_github_repository(
                repository.endpoint, force_unwrap("PR cannot have a null base repo", pr.base.repo)
            )

            records.append(
                PullRequestRecord(
                    number=pr.number,
                    title=pr.title,
                    created_at=pr.created_at,
                    author=pr.user,
                    head=PullRequestRefRecord(
                        ref=pr.head.ref,
                        sha=pr.head.sha,
                        repo_id=head_repo.db_id if head_repo else None,
                    ),
                    base=PullRequestRefRecord(
                        ref=pr.base.ref,
                        sha=pr.base.sha,
                        repo_id=force_unwrap("PR cannot have a null base repo", base_repo.db_id),
                    ),
                )
            )

        self._db.replace_pull_requests(records)

    async def load_pull_requests_from_cache(self, repository: GitHubRepository) -> list[PullRequest]:
        """Gets the cached pull requests against a repository, newest first.

        Makes no network calls.

        Args:
            repository: A stored GitHub repository.

        Returns:
            Hydrated pull requests ordered by descending number. `status` is
            None for pull requests whose head commit has no cached status.

        Raises:
            FatalError: If the repository was never stored, or a cached row
                references a base repository missing from the registry.
        """
        repo_id = force_unwrap(
            "Cannot get pull requests for a repository that hasn't been inserted into the database!",
            repository.db_id,
        )

        result: list[PullRequest] = []
        for record in self._db.pull_requests_for_repository(repo_id):
            head_repo: GitHubRepository | None = None
            if record.head.repo_id is not None:
                head_repo = await self._repositories_store.find_github_repository_by_id(record.head.repo_id)

            base_repo_id = force_unwrap("PR cannot have a null base repo id", record.base.repo_id)
            base_repo = force_unwrap(
                "PR cannot have a null base repo",
                await self._repositories_store.find_github_repository_by_id(base_repo_id),
            )

            pr_id = force_unwrap("PR cannot have a null ID after being retrieved from the database", record.id)

            result.append(
                PullRequest(
                    id=pr_id,
                    created_at=_parse_timestamp(record.created_at),
                    status=self._status_refresher.find_status(record.head.sha, pr_id),
                    title=record.title,
                    number=record.number,
                    head=PullRequestRef(record.head.ref, record.head.sha, head_repo),
                    base=PullRequestRef(record.base.ref, record.base.sha, base_repo),
                    author=record.author,
                )
            )

        return result

    def _emit_update(self, repository: GitHubRepository) -> None:
        self._emitter.emit("did-update", repository)

    def _emit_error(self, error: Exception) -> None:
        self._emitter.emit("did-error", error)

    def on_did_update(self, fn: Callable[[GitHubRepository], None]) -> Disposable:
        """Register a function to be called when the store updates."""
        return self._emitter.on("did-update", fn)

    def on_did_error(self, fn: Callable[[Exception], None]) -> Disposable:
        """Register a function to be called when an error occurs."""
        return self._emitter.on("did-error", fn)
