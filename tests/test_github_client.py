"""Unit tests for GitHubClient against a mocked GraphQL endpoint."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import httpx
import pytest

from release_digest.application.retry_executor import is_gateway_error, is_retryable_error
from release_digest.domain.errors import (
    AuthenticationError,
    GraphQLQueryError,
    MalformedResponseError,
    OrganizationNotFoundError,
    UpstreamError,
)
from release_digest.infrastructure.github_client import (
    GITHUB_API_URL,
    REPOSITORIES_QUERY,
    SINGLE_REPOSITORY_QUERY,
    GitHubClient,
)

UTC = timezone.utc


def _repo_node(name: str, updated_at: str, releases=()) -> dict:
    return {"name": name, "updatedAt": updated_at, "releases": {"nodes": list(releases)}}


def _release_node(tag: str, published_at: str | None, **overrides) -> dict:
    node = {
        "tagName": tag,
        "name": None,
        "publishedAt": published_at,
        "description": None,
        "url": f"https://github.com/acme/api/releases/tag/{tag}",
        "author": {"login": "octocat"},
        "isPrerelease": False,
    }
    node.update(overrides)
    return node


def _page_body(nodes, has_next=False, cursor=None) -> dict:
    return {
        "data": {
            "organization": {
                "repositories": {
                    "pageInfo": {"hasNextPage": has_next, "endCursor": cursor},
                    "nodes": nodes,
                }
            }
        }
    }


@pytest.fixture
def github():
    """Factory: GitHubClient whose transport answers with `responder(payload)`."""
    requests: list[dict] = []

    def _make(responder) -> GitHubClient:
        def handler(request: httpx.Request) -> httpx.Response:
            payload = json.loads(request.content)
            requests.append({"url": str(request.url), "headers": request.headers, "payload": payload})
            return responder(payload)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return GitHubClient(token="ghp_test", client=client)

    _make.requests = requests
    return _make


@pytest.mark.asyncio
async def test_fetch_page_parses_repositories(github):
    body = _page_body(
        [
            _repo_node("api", "2026-10-17T11:00:00Z", [
                _release_node("v2.0.0", "2026-10-17T10:00:00Z", name="Two", description="notes"),
                _release_node("v2.1.0-draft", None),
            ]),
            _repo_node("web", "2026-10-16T08:00:00Z"),
        ],
        has_next=True,
        cursor="Y3Vyc29y",
    )
    client = github(lambda payload: httpx.Response(200, json=body))

    page = await client.fetch_page("acme", 100, None)

    assert [r.name for r in page.items] == ["api", "web"]
    assert page.has_next_page is True
    assert page.end_cursor == "Y3Vyc29y"

    api = page.items[0]
    assert api.updated_at == datetime(2026, 10, 17, 11, 0, tzinfo=UTC)
    assert [r.tag_name for r in api.releases] == ["v2.0.0"]
    release = api.releases[0]
    assert release.name == "Two"
    assert release.description == "notes"
    assert release.author_login == "octocat"
    assert release.published_at == datetime(2026, 10, 17, 10, 0, tzinfo=UTC)

    sent = github.requests[0]
    assert sent["url"] == GITHUB_API_URL
    assert sent["headers"]["Authorization"] == "Bearer ghp_test"
    assert sent["payload"]["query"] == REPOSITORIES_QUERY
    assert sent["payload"]["variables"] == {"orgName": "acme", "first": 100, "after": None}


def test_repositories_query_orders_by_recency():
    assert "orderBy: {field: UPDATED_AT, direction: DESC}" in REPOSITORIES_QUERY
    assert "releases(first: 10, orderBy: {field: CREATED_AT, direction: DESC})" in REPOSITORIES_QUERY


@pytest.mark.asyncio
async def test_fetch_page_passes_cursor(github):
    client = github(lambda payload: httpx.Response(200, json=_page_body([])))

    page = await client.fetch_page("acme", 50, "abc")

    assert page.items == []
    assert page.has_next_page is False
    assert github.requests[0]["payload"]["variables"]["after"] == "abc"


@pytest.mark.asyncio
async def test_missing_author_becomes_empty_login(github):
    body = _page_body([_repo_node("api", "2026-10-17T11:00:00Z", [
        _release_node("v1", "2026-10-17T10:00:00Z", author=None),
    ])])
    client = github(lambda payload: httpx.Response(200, json=body))

    page = await client.fetch_page("acme", 100)

    assert page.items[0].releases[0].author_login == ""


@pytest.mark.asyncio
async def test_unauthorized_raises_authentication_error(github):
    client = github(lambda payload: httpx.Response(401, json={"message": "Bad credentials"}))

    with pytest.raises(AuthenticationError) as excinfo:
        await client.fetch_page("acme", 100)

    assert excinfo.value.status_code == 401
    assert not is_retryable_error(excinfo.value)


@pytest.mark.asyncio
async def test_bad_gateway_raises_retryable_upstream_error(github):
    client = github(lambda payload: httpx.Response(502, text="<html>Bad Gateway</html>"))

    with pytest.raises(UpstreamError) as excinfo:
        await client.fetch_page("acme", 100)

    assert excinfo.value.status_code == 502
    assert isinstance(excinfo.value.__cause__, httpx.HTTPStatusError)
    assert is_retryable_error(excinfo.value)
    assert is_gateway_error(excinfo.value)


@pytest.mark.asyncio
async def test_graphql_errors_are_not_retryable(github):
    body = {"errors": [{"message": "Field 'bogus' doesn't exist on type 'Repository'"}]}
    client = github(lambda payload: httpx.Response(200, json=body))

    with pytest.raises(GraphQLQueryError) as excinfo:
        await client.fetch_page("acme", 100)

    assert "bogus" in str(excinfo.value)
    assert excinfo.value.errors == body["errors"]
    assert not is_retryable_error(excinfo.value)


@pytest.mark.asyncio
async def test_unknown_organization(github):
    body = {
        "data": {"organization": None},
        "errors": [{
            "type": "NOT_FOUND",
            "path": ["organization"],
            "message": "Could not resolve to an Organization with the login of 'nope'.",
        }],
    }
    client = github(lambda payload: httpx.Response(200, json=body))

    with pytest.raises(OrganizationNotFoundError):
        await client.fetch_page("nope", 100)


@pytest.mark.asyncio
async def test_missing_organization_field_is_malformed(github):
    client = github(lambda payload: httpx.Response(200, json={"data": {}}))

    with pytest.raises(MalformedResponseError):
        await client.fetch_page("acme", 100)


@pytest.mark.asyncio
async def test_fetch_repository(github):
    body = {"data": {"organization": {"repository": _repo_node("api", "2026-10-17T11:00:00Z", [
        _release_node("v1.0.0", "2026-10-17T09:00:00Z", isPrerelease=True),
    ])}}}
    client = github(lambda payload: httpx.Response(200, json=body))

    repo = await client.fetch_repository("acme", "api")

    assert repo.name == "api"
    assert repo.releases[0].is_prerelease is True
    sent = github.requests[0]["payload"]
    assert sent["query"] == SINGLE_REPOSITORY_QUERY
    assert sent["variables"] == {"orgName": "acme", "repoName": "api"}


@pytest.mark.asyncio
async def test_fetch_repository_not_found_returns_none(github):
    body = {
        "data": {"organization": {"repository": None}},
        "errors": [{
            "type": "NOT_FOUND",
            "path": ["organization", "repository"],
            "message": "Could not resolve to a Repository with the name 'acme/ghost'.",
        }],
    }
    client = github(lambda payload: httpx.Response(200, json=body))

    assert await client.fetch_repository("acme", "ghost") is None


@pytest.mark.asyncio
async def test_transport_errors_propagate_untouched(github):
    def responder(payload):
        raise httpx.ConnectError("connection refused")

    client = github(responder)

    with pytest.raises(httpx.ConnectError) as excinfo:
        await client.fetch_page("acme", 100)

    assert is_retryable_error(excinfo.value)
