"""Async wrappers around the git remote commands."""

from __future__ import annotations

import asyncio
import logging

from .models import Remote, Repository

logger = logging.getLogger(__name__)


class GitError(Exception):
    """A git command exited with a non-zero status."""

    def __init__(self, command: tuple[str, ...], returncode: int, stderr: str) -> None:
        super().__init__(f"git {' '.join(command)} failed with exit code {returncode}: {stderr.strip()}")
        self.returncode = returncode
        self.stderr = stderr


async def _run_git(repository: Repository, *args: str) -> str:
    """Run a git command in the repository's checkout and return stdout.

    Raises:
        GitError: If git exits with a non-zero status.
    """
    cmd = ["git", *args]
    logger.debug(f"Running git command in {repository.path}: {' '.join(cmd)}")
    process = await asyncio.create_subprocess_exec(
        *cmd,
        cwd=repository.path,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout_bytes, stderr_bytes = await process.communicate()
    returncode = process.returncode or 0
    if returncode != 0:
        raise GitError(args, returncode, stderr_bytes.decode("utf-8", errors="replace"))
    return stdout_bytes.decode("utf-8", errors="replace")


def parse_remotes(output: str) -> list[Remote]:
    """Parse `git remote -v` output into fetch remotes.

    Each remote appears once per direction; only the "(fetch)" line is kept.
    """
    remotes: list[Remote] = []
    for line in output.splitlines():
        parts = line.split()
        if len(parts) == 3 and parts[2] == "(fetch)":
            remotes.append(Remote(name=parts[0], url=parts[1]))
    return remotes


async def get_remotes(repository: Repository) -> list[Remote]:
    """List the remotes configured in the repository's checkout."""
    output = await _run_git(repository, "remote", "-v")
    return parse_remotes(output)


async def remove_remote(repository: Repository, name: str) -> None:
    """Remove the remote `name` from the repository's checkout."""
    await _run_git(repository, "remote", "remove", name)
