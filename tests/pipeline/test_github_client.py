from __future__ import annotations

import base64

import httpx
import pytest

from app.crawlers.contracts import FetchState
from app.crawlers.github_client import GitHubClient
from app.services.metadata_fetcher import MetadataFetcher
from app.services.pipeline_exceptions import InvalidIdentifier, RateLimitError, RepositoryNotFound

README_TEXT = "# Widget\n\nTurns logs into events.\n"


def _routes(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path == "/repos/acme/widget":
        return httpx.Response(
            200,
            json={
                "full_name": "acme/widget",
                "description": "Log watcher",
                "stargazers_count": 1200,
                "forks_count": 30,
                "subscribers_count": 12,
                "watchers_count": 1200,
                "open_issues_count": 4,
                "network_count": 30,
                "default_branch": "develop",
                "homepage": "https://widget.dev",
                "topics": ["logging", "cli"],
                "license": {"spdx_id": "MIT", "name": "MIT License"},
                "archived": False,
            },
        )
    if path == "/repos/acme/widget/readme":
        encoded = base64.b64encode(README_TEXT.encode()).decode()
        return httpx.Response(200, json={"content": encoded, "encoding": "base64"})
    if path == "/repos/acme/widget/languages":
        return httpx.Response(200, json={"Shell": 200, "Python": 9000, "Dockerfile": 50})
    if path == "/repos/acme/bare":
        return httpx.Response(200, json={"full_name": "acme/bare", "stargazers_count": 3})
    if path == "/repos/acme/bare/languages":
        return httpx.Response(200, json={})
    if path == "/repos/acme/limited":
        return httpx.Response(429, headers={"retry-after": "0"})
    if path == "/repos/acme/forbidden":
        return httpx.Response(403, json={"message": "Forbidden"})
    return httpx.Response(404, json={"message": "Not Found"})


def _client(**kwargs) -> GitHubClient:
    return GitHubClient(token="ghp_test", transport=httpx.MockTransport(_routes), **kwargs)


@pytest.mark.asyncio
async def test_client_decodes_readme_and_orders_languages() -> None:
    async with _client() as client:
        readme = await client.get_readme("acme", "widget")
        languages = await client.get_languages("acme", "widget")
        empty_languages = await client.get_languages("acme", "bare")

    assert readme.state == FetchState.OK
    assert readme.data == README_TEXT
    assert languages.data == ["Python", "Shell", "Dockerfile"]
    assert empty_languages.is_empty
    assert empty_languages.data == []


@pytest.mark.asyncio
async def test_client_reports_not_found_rate_limit_and_failures_without_raising() -> None:
    async with _client(max_retries=1, backoff_base_seconds=0.001, backoff_max_seconds=0.001) as client:
        missing = await client.get_repo("acme", "ghost")
        limited = await client.get_repo("acme", "limited")
        forbidden = await client.get_repo("acme", "forbidden")
        missing_readme = await client.get_readme("acme", "bare")

    assert missing.is_not_found
    assert limited.is_rate_limited
    assert forbidden.is_failed and forbidden.status_code == 403
    assert not forbidden.is_rate_limited
    assert missing_readme.is_not_found


@pytest.mark.asyncio
async def test_metadata_fetcher_builds_record_values() -> None:
    async with _client() as client:
        metadata = await MetadataFetcher(client).fetch("https://github.com/acme/widget")

    values = metadata.to_record_values()

    assert metadata.default_branch == "develop"
    assert metadata.readme == README_TEXT
    assert values["stars"] == 1200
    assert values["watchers"] == 12
    assert values["license"] == "MIT"
    assert values["languages"] == "Python,Shell,Dockerfile"
    assert values["tags"] == ["logging", "cli"]
    assert values["description"] == "Log watcher"
    assert values["archived"] is False


@pytest.mark.asyncio
async def test_metadata_fetcher_tolerates_missing_readme_and_languages() -> None:
    async with _client() as client:
        metadata = await MetadataFetcher(client).fetch("acme/bare")

    values = metadata.to_record_values()
    assert metadata.readme is None
    assert metadata.languages == []
    assert values["languages"] is None
    assert values["forks"] is None
    assert metadata.default_branch == "main"


@pytest.mark.asyncio
async def test_metadata_fetcher_raises_typed_errors() -> None:
    async with _client(max_retries=1, backoff_base_seconds=0.001, backoff_max_seconds=0.001) as client:
        fetcher = MetadataFetcher(client)

        with pytest.raises(RepositoryNotFound):
            await fetcher.fetch("acme/ghost")
        with pytest.raises(InvalidIdentifier):
            await fetcher.fetch("not-an-identifier")
        with pytest.raises(RateLimitError):
            await fetcher.fetch_counters("acme/limited")
