from __future__ import annotations

import contextlib
import json
import os
import sqlite3
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

_SCHEMA = """
PRAGMA journal_mode=WAL;
CREATE TABLE IF NOT EXISTS pull_requests (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    number INTEGER NOT NULL,
    title TEXT NOT NULL,
    created_at TEXT NOT NULL, -- ISO 8601 from the API
    author TEXT NOT NULL,
    head_ref TEXT NOT NULL,
    head_sha TEXT NOT NULL,
    head_repo_id INTEGER, -- NULL when the head repository is gone
    base_ref TEXT NOT NULL,
    base_sha TEXT NOT NULL,
    base_repo_id INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS pull_requests_base_repo_id ON pull_requests(base_repo_id);
CREATE TABLE IF NOT EXISTS pull_request_status (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    sha TEXT NOT NULL,
    pull_request_id INTEGER NOT NULL,
    state TEXT NOT NULL,
    total_count INTEGER NOT NULL,
    statuses TEXT NOT NULL -- JSON array
);
CREATE UNIQUE INDEX IF NOT EXISTS pull_request_status_sha_pull_request_id
    ON pull_request_status(sha, pull_request_id);
"""


def connect(path: Path | str, schema: str) -> sqlite3.Connection:
    """Open a sqlite connection, creating parent dirs and the schema if needed.

    Args:
        path: Database file path, or ":memory:".
        schema: SQL script run on every open; must be idempotent.

    Returns:
        A sqlite3 connection with row factory set to `sqlite3.Row`.
    """
    if str(path) != ":memory:":
        os.makedirs(Path(path).parent, exist_ok=True)
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    conn.executescript(schema)
    return conn


@dataclass(frozen=True)
class PullRequestRefRecord:
    ref: str
    sha: str
    repo_id: int | None


@dataclass(frozen=True)
class PullRequestRecord:
    """A cached pull request row. `id` is None until inserted."""

    number: int
    title: str
    created_at: str
    author: str
    head: PullRequestRefRecord
    base: PullRequestRefRecord
    id: int | None = None


@dataclass(frozen=True)
class PullRequestStatusRecord:
    """A cached combined status row, unique on (sha, pull_request_id)."""

    pull_request_id: int
    state: str
    total_count: int
    sha: str
    statuses: list[dict[str, Any]] = field(default_factory=list)
    id: int | None = None


class PullRequestDatabase:
    """Typed access to the pull request and pull request status tables."""

    def __init__(self, path: Path | str) -> None:
        self.path = path
        self._conn = connect(path, _SCHEMA)
        self._depth = 0

    def close(self) -> None:
        self._conn.close()

    @contextlib.contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Group writes into one transaction.

        Nested uses join the outermost transaction, which commits on success
        and rolls back if the block raises.
        """
        outermost = self._depth == 0
        self._depth += 1
        try:
            yield self._conn
        except BaseException:
            if outermost:
                self._conn.rollback()
            raise
        else:
            if outermost:
                self._conn.commit()
        finally:
            self._depth -= 1

    # ---------------- Pull requests ----------------

    def clear_pull_requests(self) -> None:
        with self.transaction() as conn:
            conn.execute("DELETE FROM pull_requests")

    def bulk_add_pull_requests(self, records: Iterable[PullRequestRecord]) -> None:
        rows = [
            (
                r.number,
                r.title,
                r.created_at,
                r.author,
                r.head.ref,
                r.head.sha,
                r.head.repo_id,
                r.base.ref,
                r.base.sha,
                r.base.repo_id,
            )
            for r in records
        ]
        if not rows:
            return
        with self.transaction() as conn:
            conn.executemany(
                """
                INSERT INTO pull_requests(
                    number, title, created_at, author,
                    head_ref, head_sha, head_repo_id,
                    base_ref, base_sha, base_repo_id
                )
                VALUES(?,?,?,?,?,?,?,?,?,?)
                """,
                rows,
            )

    def replace_pull_requests(self, records: Iterable[PullRequestRecord]) -> None:
        """Clear the pull request table and insert `records` atomically.

        Inserted rows get fresh ids, so statuses keyed to the previous rows
        are dropped along with them.
        """
        with self.transaction() as conn:
            self.clear_pull_requests()
            self.bulk_add_pull_requests(records)
            conn.execute(
                "DELETE FROM pull_request_status WHERE pull_request_id NOT IN (SELECT id FROM pull_requests)"
            )

    def pull_requests_for_repository(self, base_repo_id: int) -> list[PullRequestRecord]:
        """Return cached PRs targeting a repository, newest first by number."""
        cur = self._conn.execute(
            "SELECT * FROM pull_requests WHERE base_repo_id = ? ORDER BY number DESC",
            (base_repo_id,),
        )
        return [_row_to_pull_request(r) for r in cur.fetchall()]

    # ---------------- Statuses ----------------

    def find_pull_request_status(self, sha: str, pull_request_id: int) -> PullRequestStatusRecord | None:
        cur = self._conn.execute(
            "SELECT * FROM pull_request_status WHERE sha = ? AND pull_request_id = ? LIMIT 1",
            (sha, pull_request_id),
        )
        row = cur.fetchone()
        return _row_to_status(row) if row else None

    def upsert_pull_request_statuses(self, statuses: Iterable[PullRequestStatusRecord]) -> None:
        """Insert statuses, overwriting rows with the same (sha, pull_request_id) in place.

        Overwritten rows keep their row id.
        """
        with self.transaction() as conn:
            for status in statuses:
                existing = self.find_pull_request_status(status.sha, status.pull_request_id)
                if existing is None:
                    conn.execute(
                        """
                        INSERT INTO pull_request_status(sha, pull_request_id, state, total_count, statuses)
                        VALUES(?,?,?,?,?)
                        """,
                        (
                            status.sha,
                            status.pull_request_id,
                            status.state,
                            status.total_count,
                            json.dumps(status.statuses),
                        ),
                    )
                else:
                    conn.execute(
                        "UPDATE pull_request_status SET state = ?, total_count = ?, statuses = ? WHERE id = ?",
                        (status.state, status.total_count, json.dumps(status.statuses), existing.id),
                    )

    def all_pull_request_statuses(self) -> list[PullRequestStatusRecord]:
        cur = self._conn.execute("SELECT * FROM pull_request_status ORDER BY id")
        return [_row_to_status(r) for r in cur.fetchall()]


def _row_to_pull_request(row: sqlite3.Row) -> PullRequestRecord:
    return PullRequestRecord(
        id=int(row["id"]),
        number=int(row["number"]),
        title=row["title"],
        created_at=row["created_at"],
        author=row["author"],
        head=PullRequestRefRecord(row["head_ref"], row["head_sha"], row["head_repo_id"]),
        base=PullRequestRefRecord(row["base_ref"], row["base_sha"], row["base_repo_id"]),
    )


def _row_to_status(row: sqlite3.Row) -> PullRequestStatusRecord:
    return PullRequestStatusRecord(
        id=int(row["id"]),
        pull_request_id=int(row["pull_request_id"]),
        state=row["state"],
        total_count=int(row["total_count"]),
        sha=row["sha"],
        statuses=list(json.loads(row["statuses"]) or []),
    )
