from __future__ import annotations

from pathlib import Path

import pytest

from prsync import git
from prsync.models import Remote, Repository

REMOTE_OUTPUT = """\
origin\thttps://github.com/o/r.git (fetch)
origin\thttps://github.com/o/r.git (push)
github-desktop-fork\thttps://github.com/fork/r.git (fetch)
github-desktop-fork\thttps://github.com/fork/r.git (push)
"""


class FakeProcess:
    def __init__(self, returncode: int, stdout: str = "", stderr: str = "") -> None:
        self.returncode = returncode
        self._stdout = stdout.encode()
        self._stderr = stderr.encode()

    async def communicate(self) -> tuple[bytes, bytes]:
        return self._stdout, self._stderr


def test_parse_remotes_keeps_fetch_lines() -> None:
    assert git.parse_remotes(REMOTE_OUTPUT) == [
        Remote("origin", "https://github.com/o/r.git"),
        Remote("github-desktop-fork", "https://github.com/fork/r.git"),
    ]
    assert git.parse_remotes("") == []


@pytest.mark.asyncio
async def test_get_remotes_runs_git_in_checkout(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    seen: list[tuple[tuple[str, ...], Path]] = []

    async def fake_exec(*cmd: str, cwd: Path, stdout, stderr) -> FakeProcess:
        seen.append((cmd, cwd))
        return FakeProcess(0, REMOTE_OUTPUT)

    monkeypatch.setattr(git.asyncio, "create_subprocess_exec", fake_exec)

    remotes = await git.get_remotes(Repository("r", tmp_path))
    assert [r.name for r in remotes] == ["origin", "github-desktop-fork"]
    assert seen == [(("git", "remote", "-v"), tmp_path)]


@pytest.mark.asyncio
async def test_remove_remote_raises_git_error_on_failure(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    async def fake_exec(*cmd: str, cwd: Path, stdout, stderr) -> FakeProcess:
        return FakeProcess(2, stderr="error: No such remote: 'nope'\n")

    monkeypatch.setattr(git.asyncio, "create_subprocess_exec", fake_exec)

    with pytest.raises(git.GitError) as excinfo:
        await git.remove_remote(Repository("r", tmp_path), "nope")
    assert excinfo.value.returncode == 2
    assert "No such remote" in str(excinfo.value)
    assert "git remote remove nope" in str(excinfo.value)
