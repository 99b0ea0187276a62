from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from . import git
from .models import PullRequest, Remote, Repository

logger = logging.getLogger(__name__)

# Remotes added on the user's behalf to fetch a fork's branch are named with this prefix
FORKED_REMOTE_PREFIX = "github-desktop-"


def forked_remotes_to_delete(remotes: Iterable[Remote], open_pull_requests: Iterable[PullRequest]) -> list[Remote]:
    """Select fork remotes that no open pull request's head points at.

    Only remotes named with `FORKED_REMOTE_PREFIX` are candidates, and only
    head repository clone URLs keep a candidate alive.

    Args:
        remotes: Remotes configured in the checkout.
        open_pull_requests: The currently open pull requests.

    Returns:
        The fork remotes to remove, in their original order.
    """
    head_clone_urls: set[str] = set()
    for pr in open_pull_requests:
        head_repo = pr.head.github_repository
        if head_repo is not None and head_repo.clone_url is not None:
            head_clone_urls.add(head_repo.clone_url)
    return [r for r in remotes if r.name.startswith(FORKED_REMOTE_PREFIX) and r.url not in head_clone_urls]


async def delete_forked_remotes(repository: Repository, remotes: Iterable[Remote]) -> None:
    for remote in remotes:
        logger.info(f"Removing stale fork remote '{remote.name}' ({remote.url}) from '{repository.name}'")
        await git.remove_remote(repository, remote.name)


async def prune_forked_remotes(repository: Repository, pull_requests: Sequence[PullRequest]) -> None:
    """Remove fork remotes from the checkout whose pull requests are no longer open."""
    remotes = await git.get_remotes(repository)
    await delete_forked_remotes(repository, forked_remotes_to_delete(remotes, pull_requests))
