from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Protocol

from .database import connect
from .github import APIRepository
from .models import GitHubRepository

_SCHEMA = """
PRAGMA journal_mode=WAL;
CREATE TABLE IF NOT EXISTS github_repositories (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    endpoint TEXT NOT NULL,
    owner TEXT NOT NULL,
    name TEXT NOT NULL,
    clone_url TEXT,
    html_url TEXT,
    UNIQUE (endpoint, owner, name)
);
"""


class RepositoryRegistry(Protocol):
    """Resolves upstream repositories to locally persisted records."""

    async def find_or_put_github_repository(self, endpoint: str, api_repository: APIRepository) -> GitHubRepository:
        """Return the record for `api_repository`, creating it if needed."""
        ...

    async def find_github_repository_by_id(self, db_id: int) -> GitHubRepository | None:
        """Return the record with local ID `db_id`, or None."""
        ...


class RepositoriesStore:
    """sqlite-backed `RepositoryRegistry`."""

    def __init__(self, path: Path | str) -> None:
        self._conn = connect(path, _SCHEMA)

    def close(self) -> None:
        self._conn.close()

    async def find_or_put_github_repository(self, endpoint: str, api_repository: APIRepository) -> GitHubRepository:
        """Find or insert a repository keyed by (endpoint, owner, name).

        Existing rows get their clone and web URLs refreshed when the API data has them.

        Args:
            endpoint: API base URL the repository was seen on.
            api_repository: Repository payload from the API.

        Returns:
            The persisted `GitHubRepository`, with `db_id` set.
        """
        with self._conn:
            self._conn.execute(
                """
                INSERT INTO github_repositories(endpoint, owner, name, clone_url, html_url)
                VALUES(?,?,?,?,?)
                ON CONFLICT(endpoint, owner, name) DO UPDATE SET
                  clone_url=COALESCE(excluded.clone_url, clone_url),
                  html_url=COALESCE(excluded.html_url, html_url)
                """,
                (endpoint, api_repository.owner, api_repository.name, api_repository.clone_url, api_repository.html_url),
            )
        cur = self._conn.execute(
            "SELECT * FROM github_repositories WHERE endpoint = ? AND owner = ? AND name = ?",
            (endpoint, api_repository.owner, api_repository.name),
        )
        return _row_to_repository(cur.fetchone())

    async def find_github_repository_by_id(self, db_id: int) -> GitHubRepository | None:
        cur = self._conn.execute("SELECT * FROM github_repositories WHERE id = ?", (db_id,))
        row = cur.fetchone()
        return _row_to_repository(row) if row else None


def _row_to_repository(row: sqlite3.Row) -> GitHubRepository:
    return GitHubRepository(
        db_id=int(row["id"]),
        endpoint=row["endpoint"],
        owner=row["owner"],
        name=row["name"],
        clone_url=row["clone_url"],
        html_url=row["html_url"],
    )
