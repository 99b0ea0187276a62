from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

from .database import PullRequestDatabase, PullRequestStatusRecord
from .github import GitHubClient
from .models import Account, CombinedRefStatus, GitHubRepository, PullRequest, PullRequestStatus

logger = logging.getLogger(__name__)


class StatusRefresher:
    """Fetches combined CI status for pull requests and caches it."""

    def __init__(
        self,
        db: PullRequestDatabase,
        api_factory: Callable[[Account], GitHubClient],
        on_update: Callable[[GitHubRepository], None],
    ) -> None:
        self._db = db
        self._api_factory = api_factory
        self._on_update = on_update

    async def refresh(
        self,
        pull_requests: Sequence[PullRequest],
        repository: GitHubRepository,
        account: Account,
    ) -> None:
        """Fetch the head commit status of each pull request and upsert it.

        Statuses are written in one transaction after all fetches succeed,
        followed by a single update notification for `repository`.

        Args:
            pull_requests: Pull requests to refresh; each must have an `id`.
            repository: The repository the pull requests target.
            account: Account used to query the API.

        Raises:
            httpx.HTTPStatusError: If the API responds with an error status.
            httpx.RequestError: On network or timeout errors.
        """
        api = self._api_factory(account)
        records: list[PullRequestStatusRecord] = []

        for pr in pull_requests:
            combined = await api.fetch_combined_ref_status(repository.owner, repository.name, pr.head.sha)
            records.append(
                PullRequestStatusRecord(
                    pull_request_id=pr.id,
                    state=combined.state,
                    total_count=combined.total_count,
                    sha=pr.head.sha,
                    statuses=[{"id": s.id, "state": s.state} for s in combined.statuses],
                )
            )

        logger.debug(f"Caching {len(records)} statuses for {repository.full_name}")
        self._db.upsert_pull_request_statuses(records)
        self._on_update(repository)

    def find_status(self, sha: str, pull_request_id: int) -> PullRequestStatus | None:
        """Load the cached status for a head commit, or None if never fetched."""
        record = self._db.find_pull_request_status(sha, pull_request_id)
        if record is None:
            return None
        return PullRequestStatus(
            pull_request_id=record.pull_request_id,
            state=record.state,
            total_count=record.total_count,
            sha=record.sha,
            statuses=[CombinedRefStatus(id=s["id"], state=s["state"]) for s in record.statuses],
        )
