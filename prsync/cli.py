from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

from . import __version__, git
from .config import AppConfig, load_config
from .database import PullRequestDatabase
from .errors import force_unwrap
from .github import APIRepository, parse_github_url
from .models import GitHubRepository, PullRequest, Repository
from .registry import RepositoriesStore
from .store import PullRequestStore

logger = logging.getLogger(__name__)


def main() -> None:
    """Entry point for the `prsync` console script.

    Returns:
        None
    """
    args = sys.argv[1:]
    verbose = "--verbose" in args
    args = [a for a in args if a != "--verbose"]

    if not args or args[0] in ("--help", "-h"):
        print_help()
        return
    command = args[0]
    if command in ("--version", "-v"):
        print(f"prsync {__version__}")
        return
    if command not in ("sync", "list"):
        print(f"Unknown command: {command}", file=sys.stderr)
        print_help()
        sys.exit(2)

    cfg = load_config()
    logging.basicConfig(
        level=logging.DEBUG if verbose else cfg.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    path = Path(args[1] if len(args) > 1 else ".").resolve()
    sys.exit(asyncio.run(run(command, path, cfg)))


async def run(command: str, path: Path, cfg: AppConfig) -> int:
    """Run `sync` or `list` against the checkout at `path`.

    Returns:
        The process exit code.
    """
    repository = await resolve_repository(path, cfg)
    if repository is None:
        print(f"{path} has no GitHub origin remote", file=sys.stderr)
        return 1
    github_repo = force_unwrap("Resolved repository has no GitHub repository", repository.github_repository)

    db_path = cfg.resolved_database_path()
    db = PullRequestDatabase(db_path)
    registry = RepositoriesStore(db_path)
    try:
        store = PullRequestStore(db, registry)
        errors: list[Exception] = []
        if command == "sync":
            with store.on_did_error(errors.append):
                await store.fetch_pull_requests(repository, cfg.account())
            for error in errors:
                print(f"Sync failed: {error}", file=sys.stderr)
        for pr in await store.load_pull_requests_from_cache(github_repo):
            print(format_pull_request(pr))
        return 1 if errors else 0
    finally:
        db.close()
        registry.close()


async def resolve_repository(path: Path, cfg: AppConfig) -> Repository | None:
    """Resolve a checkout's `origin` remote to a stored GitHub repository.

    Returns:
        The `Repository`, or None if `path` is not a git checkout or its
        `origin` is missing or not on GitHub.
    """
    checkout = Repository(name=path.name, path=path)
    try:
        remotes = await git.get_remotes(checkout)
    except (git.GitError, OSError) as e:
        logger.debug(f"Could not list remotes of {path}: {e}")
        return None
    origin = next((r for r in remotes if r.name == "origin"), None)
    parsed = parse_github_url(origin.url) if origin else None
    if parsed is None:
        return None
    owner, name = parsed
    registry = RepositoriesStore(cfg.resolved_database_path())
    try:
        github_repo: GitHubRepository = await registry.find_or_put_github_repository(
            cfg.endpoint, APIRepository(owner=owner, name=name)
        )
    finally:
        registry.close()
    return Repository(name=checkout.name, path=path, github_repository=github_repo)


def format_pull_request(pr: PullRequest) -> str:
    state = pr.status.state if pr.status else "-"
    return f"#{pr.number}\t{state}\t{pr.author}\t{pr.title}"


def print_help() -> None:
    """Print help message for prsync CLI commands.

    Returns:
        None
    """
    help_text = """prsync - Keep a local cache of GitHub pull requests in sync

Usage:
  prsync sync [PATH]   Refresh open PRs and CI status for the checkout at PATH
  prsync list [PATH]   Print cached PRs for the checkout at PATH (no network)
  prsync --version     Show version information
  prsync --help        Show this help message

Options:
  --verbose            Log debug output to stderr
  -h, --help           Show this help message
  -v, --version        Show version information

PATH defaults to the current directory. Its "origin" remote must point at GitHub.
"""
    print(help_text)
