from __future__ import annotations

from collections.abc import Callable

from .errors import force_unwrap
from .models import GitHubRepository


class ActiveFetchCounter:
    """Counts in-flight pull request fetches per repository.

    Overlapping fetches for the same repository stack; the repository reads
    as busy until every one of them has finished.
    """

    def __init__(self, on_change: Callable[[GitHubRepository], None]) -> None:
        """Initialize with a callback fired after every count change.

        Args:
            on_change: Called with the repository whose count was changed.
        """
        self._counts: dict[int, int] = {}
        self._on_change = on_change

    def change(self, repository: GitHubRepository, fn: Callable[[int], int]) -> None:
        """Apply `fn` to the repository's current count, then notify.

        Args:
            repository: Repository whose count to change; must have a `db_id`.
            fn: Maps the current count (0 when absent) to the new count.

        Raises:
            FatalError: If the repository has not been stored locally.
        """
        key = force_unwrap("Cannot fetch PRs for a repository which is not in the database", repository.db_id)
        self._counts[key] = fn(self._counts.get(key, 0))
        self._on_change(repository)

    def count(self, repository: GitHubRepository) -> int:
        key = force_unwrap("Cannot fetch PRs for a repository which is not in the database", repository.db_id)
        return self._counts.get(key, 0)

    def is_active(self, repository: GitHubRepository) -> bool:
        return self.count(repository) > 0
