from __future__ import annotations

from typing import Any

import httpx
import pytest

import prsync.github as gh
from prsync.models import Account


class FakeResponse:
    def __init__(self, json_data: Any, next_url: str | None = None) -> None:
        self._json = json_data
        self.headers: dict[str, str] = {}
        self.links: dict[str, dict[str, str]] = {"next": {"url": next_url}} if next_url else {}

    def raise_for_status(self) -> None:  # no-op
        return None

    def json(self) -> Any:
        return self._json


class FakeAsyncClient:
    def __init__(self, responses: list[FakeResponse]) -> None:
        self._responses = responses
        self.seen_headers: list[dict[str, str]] = []
        self.seen_urls: list[str] = []
        self.seen_params: list[dict[str, Any] | None] = []

    async def __aenter__(self) -> FakeAsyncClient:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        return None

    async def get(
        self, url: str, headers: dict[str, str] | None = None, params: dict[str, Any] | None = None
    ) -> FakeResponse:
        self.seen_urls.append(url)
        self.seen_headers.append(headers or {})
        self.seen_params.append(params)
        if not self._responses:
            raise AssertionError("No more fake responses queued")
        return self._responses.pop(0)


def _repo_json(owner: str, name: str) -> dict[str, Any]:
    return {
        "owner": {"login": owner},
        "name": name,
        "clone_url": f"https://github.com/{owner}/{name}.git",
        "html_url": f"https://github.com/{owner}/{name}",
    }


def _pull_json(number: int, head_repo: dict[str, Any] | None) -> dict[str, Any]:
    return {
        "number": number,
        "title": f"PR {number}",
        "created_at": "2024-05-01T12:00:00Z",
        "user": {"login": "alice"},
        "head": {"ref": f"feature-{number}", "sha": f"sha{number}", "repo": head_repo},
        "base": {"ref": "main", "sha": "basesha", "repo": _repo_json("o", "r")},
    }


@pytest.mark.asyncio
async def test_fetch_pull_requests_follows_pagination(monkeypatch: pytest.MonkeyPatch) -> None:
    page1 = FakeResponse(
        [_pull_json(10, _repo_json("fork", "r"))],
        next_url="https://api.github.com/repositories/1/pulls?page=2",
    )
    page2 = FakeResponse([_pull_json(5, None)])
    fake_client = FakeAsyncClient([page1, page2])
    monkeypatch.setattr(gh.httpx, "AsyncClient", lambda timeout: fake_client)

    client = gh.GitHubClient(token="tok")
    prs = await client.fetch_pull_requests("o", "r")

    assert [p.number for p in prs] == [10, 5]
    assert prs[0].head.repo == gh.APIRepository(
        owner="fork", name="r", clone_url="https://github.com/fork/r.git", html_url="https://github.com/fork/r"
    )
    # Head repository of a deleted fork is absent
    assert prs[1].head.repo is None
    assert prs[1].base.repo is not None and prs[1].base.repo.owner == "o"
    assert prs[0].user == "alice"

    assert fake_client.seen_urls[0] == "https://api.github.com/repos/o/r/pulls"
    assert fake_client.seen_params[0] == {"state": "open", "per_page": 100}
    # Later pages carry their own query string
    assert fake_client.seen_urls[1].endswith("pulls?page=2")
    assert fake_client.seen_params[1] is None
    assert all(h["Authorization"] == "Bearer tok" for h in fake_client.seen_headers)


@pytest.mark.asyncio
async def test_fetch_combined_ref_status(monkeypatch: pytest.MonkeyPatch) -> None:
    payload = {
        "state": "failure",
        "total_count": 2,
        "statuses": [
            {"id": 1, "state": "success", "context": "ci/lint"},
            {"id": 2, "state": "failure", "context": "ci/test", "description": "3 failed"},
        ],
    }
    fake_client = FakeAsyncClient([FakeResponse(payload)])
    monkeypatch.setattr(gh.httpx, "AsyncClient", lambda timeout: fake_client)

    client = gh.GitHubClient(token=None)
    status = await client.fetch_combined_ref_status("o", "r", "abc123")

    assert status.state == "failure"
    assert status.total_count == 2
    assert [(s.id, s.state) for s in status.statuses] == [(1, "success"), (2, "failure")]
    assert status.statuses[1].description == "3 failed"
    assert fake_client.seen_urls == ["https://api.github.com/repos/o/r/commits/abc123/status"]
    assert all("Authorization" not in h for h in fake_client.seen_headers)


@pytest.mark.asyncio
async def test_client_from_account_uses_enterprise_endpoint(monkeypatch: pytest.MonkeyPatch) -> None:
    fake_client = FakeAsyncClient([FakeResponse([])])
    monkeypatch.setattr(gh.httpx, "AsyncClient", lambda timeout: fake_client)

    account = Account(login="bob", endpoint="https://ghe.example.com/api/v3/", token="t")
    client = gh.GitHubClient.from_account(account)
    assert await client.fetch_pull_requests("o", "r") == []
    assert fake_client.seen_urls == ["https://ghe.example.com/api/v3/repos/o/r/pulls"]


@pytest.mark.asyncio
async def test_github_client_handles_http_error(monkeypatch: pytest.MonkeyPatch) -> None:
    class FakeAsyncClientError:
        async def __aenter__(self) -> FakeAsyncClientError:
            return self

        async def __aexit__(self, exc_type, exc, tb) -> None:
            return None

        async def get(self, url: str, headers=None, params=None):
            raise httpx.HTTPStatusError("Not Found", request=None, response=None)

    monkeypatch.setattr(gh.httpx, "AsyncClient", lambda timeout: FakeAsyncClientError())

    client = gh.GitHubClient(token="tok")
    with pytest.raises(httpx.HTTPStatusError):
        await client.fetch_pull_requests("o", "r")


@pytest.mark.asyncio
async def test_network_errors_are_retried_then_raised(monkeypatch: pytest.MonkeyPatch) -> None:
    attempts: list[str] = []

    class FlakyClient:
        async def __aenter__(self) -> FlakyClient:
            return self

        async def __aexit__(self, exc_type, exc, tb) -> None:
            return None

        async def get(self, url: str, headers=None, params=None):
            attempts.append(url)
            raise httpx.ConnectError("connection refused")

    async def no_sleep(_seconds: float) -> None:
        return None

    monkeypatch.setattr(gh.httpx, "AsyncClient", lambda timeout: FlakyClient())
    monkeypatch.setattr(gh.asyncio, "sleep", no_sleep)

    client = gh.GitHubClient(token="tok", max_retries=2)
    with pytest.raises(httpx.ConnectError):
        await client.fetch_combined_ref_status("o", "r", "sha")
    assert len(attempts) == 3


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("https://github.com/octo/app", ("octo", "app")),
        ("https://github.com/octo/app.git", ("octo", "app")),
        ("git@github.com:octo/app.git", ("octo", "app")),
        ("https://github.com/octo/my.dotted.repo.git", ("octo", "my.dotted.repo")),
        ("https://gitlab.com/octo/app.git", None),
    ],
)
def test_parse_github_url(url: str, expected: tuple[str, str] | None) -> None:
    assert gh.parse_github_url(url) == expected
