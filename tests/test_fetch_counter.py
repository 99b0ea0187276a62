from __future__ import annotations

import pytest

from prsync.errors import FatalError
from prsync.fetch_counter import ActiveFetchCounter
from prsync.models import GitHubRepository


def _repo(db_id: int | None) -> GitHubRepository:
    return GitHubRepository(db_id=db_id, endpoint="https://api.github.com", owner="o", name="r")


def test_overlapping_fetches_stay_active_until_all_finish() -> None:
    notified: list[GitHubRepository] = []
    counter = ActiveFetchCounter(notified.append)
    repo = _repo(1)

    assert counter.is_active(repo) is False
    counter.change(repo, lambda c: c + 1)
    counter.change(repo, lambda c: c + 1)
    assert counter.count(repo) == 2

    counter.change(repo, lambda c: c - 1)
    assert counter.is_active(repo) is True
    counter.change(repo, lambda c: c - 1)
    assert counter.is_active(repo) is False

    assert notified == [repo] * 4


def test_notifies_even_when_count_is_unchanged() -> None:
    notified: list[GitHubRepository] = []
    counter = ActiveFetchCounter(notified.append)

    counter.change(_repo(1), lambda c: c)
    assert len(notified) == 1


def test_counts_are_per_repository() -> None:
    counter = ActiveFetchCounter(lambda _repo: None)
    counter.change(_repo(1), lambda c: c + 1)

    assert counter.is_active(_repo(1)) is True
    assert counter.is_active(_repo(2)) is False


def test_repository_without_db_id_is_a_fatal_error() -> None:
    notified: list[GitHubRepository] = []
    counter = ActiveFetchCounter(notified.append)

    with pytest.raises(FatalError):
        counter.change(_repo(None), lambda c: c + 1)
    with pytest.raises(FatalError):
        counter.is_active(_repo(None))
    assert notified == []
