from __future__ import annotations

import logging
from datetime import datetime

import httpx

from release_digest.domain.entities import ReleaseRecord, RepositoryPage, RepositorySummary
from release_digest.domain.errors import (
    AuthenticationError,
    GraphQLQueryError,
    MalformedResponseError,
    OrganizationNotFoundError,
    UpstreamError,
)
from release_digest.domain.interfaces import IRepoFetcher

log = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com/graphql"
RELEASES_PER_REPO = 10
REQUEST_TIMEOUT = 30.0

_REPOSITORY_FIELDS = """
        name
        updatedAt
        releases(first: %d, orderBy: {field: CREATED_AT, direction: DESC}) {
          nodes {
            tagName
            name
            publishedAt
            description
            url
            author { login }
            isPrerelease
          }
        }
""" % RELEASES_PER_REPO

# Ordered by updatedAt DESC; the fetcher's early stop depends on it.
REPOSITORIES_QUERY = """
query OrgRepositories($orgName: String!, $first: Int!, $after: String) {
  organization(login: $orgName) {
    repositories(first: $first, after: $after, orderBy: {field: UPDATED_AT, direction: DESC}) {
      pageInfo {
        hasNextPage
        endCursor
      }
      nodes {%s      }
    }
  }
}
""" % _REPOSITORY_FIELDS

SINGLE_REPOSITORY_QUERY = """
query OrgRepository($orgName: String!, $repoName: String!) {
  organization(login: $orgName) {
    repository(name: $repoName) {%s    }
  }
}
""" % _REPOSITORY_FIELDS


class GitHubClient(IRepoFetcher):
    """
    Concrete implementation of IRepoFetcher for GitHub's GraphQL API.

    The httpx.AsyncClient is injected so callers control its lifecycle and
    tests can hand in one backed by httpx.MockTransport.

    Retrying is NOT done here; every failure is raised as a typed error and
    the RetryExecutor decides what to do with it.
    """

    def __init__(self, token: str, client: httpx.AsyncClient) -> None:
        self._client = client
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type":  "application/json",
        }

    # Anti-Corruption Layer
    @staticmethod
    def _parse_datetime(value: str | None) -> datetime | None:
        """Convert GitHub's ISO datetime string to Python datetime."""
        if not value:
            return None
        return datetime.fromisoformat(value.replace("Z", "+00:00"))

    def _parse_release(self, node: dict) -> ReleaseRecord | None:
        # drafts have no publishedAt
        published_at = self._parse_datetime(node.get("publishedAt"))
        if published_at is None:
            return None
        try:
            return ReleaseRecord(
                tag_name      = node["tagName"],
                name          = node.get("name"),
                published_at  = published_at,
                description   = node.get("description"),
                url           = node["url"],
                author_login  = (node.get("author") or {}).get("login") or "",
                is_prerelease = bool(node.get("isPrerelease", False)),
            )
        except (KeyError, TypeError) as exc:
            log.debug("Skipping malformed release node %s: %s", node.get("tagName"), exc)
            return None

    def _parse_repository(self, node: dict) -> RepositorySummary | None:
        """
        Translate a raw repository node into a RepositorySummary.

        GitHub sends:            We store as:
          "updatedAt"        →   updated_at (aware datetime)
          "releases.nodes"   →   releases (ReleaseRecord list)
        """
        try:
            updated_at = self._parse_datetime(node["updatedAt"])
            if updated_at is None:
                raise KeyError("updatedAt")
            release_nodes = (node.get("releases") or {}).get("nodes") or []
            return RepositorySummary(
                name       = node["name"],
                updated_at = updated_at,
                releases   = [r for n in release_nodes if (r := self._parse_release(n)) is not None],
            )
        except (KeyError, TypeError, ValueError) as exc:
            log.debug("Skipping malformed repository node %s: %s", node.get("name"), exc)
            return None

    async def _post(self, query: str, variables: dict) -> dict:
        """
        POST one GraphQL document and return the decoded body.

        HTTP failures become UpstreamError carrying the status; transport
        failures (httpx.RequestError) propagate untouched.
        """
        response = await self._client.post(
            GITHUB_API_URL,
            headers=self._headers,
            json={"query": query, "variables": variables},
            timeout=REQUEST_TIMEOUT,
        )

        if response.status_code == 401:
            raise AuthenticationError(
                "GitHub authentication failed. Check the GITHUB_TOKEN environment variable.",
                status_code=401,
            )

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise UpstreamError(
                f"GitHub GraphQL request failed with {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            ) from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise MalformedResponseError("GitHub GraphQL response is not valid JSON") from exc

        if not isinstance(body, dict) or not body:
            raise MalformedResponseError("GitHub GraphQL response is empty")

        if "Bad credentials" in str(body.get("message", "")):
            raise AuthenticationError(
                "GitHub authentication failed. Check the GITHUB_TOKEN environment variable.",
                status_code=401,
            )
        return body

    @staticmethod
    def _is_not_found(error: dict, path_head: list[str]) -> bool:
        return error.get("type") == "NOT_FOUND" and (error.get("path") or [])[: len(path_head)] == path_head

    def _raise_for_errors(self, body: dict, org: str) -> None:
        errors = body.get("errors") or []
        if not errors:
            return

        organization = (body.get("data") or {}).get("organization")
        if organization is None and any(self._is_not_found(e, ["organization"]) for e in errors):
            raise OrganizationNotFoundError(
                f"Organization '{org}' not found or access denied. "
                "Check ORG_NAME and the token's permissions."
            )

        messages = ", ".join(str(e.get("message")) for e in errors)
        raise GraphQLQueryError(f"GraphQL errors: {messages}", errors=errors)

    # IRepoFetcher implementation
    async def fetch_page(self, org: str, page_size: int, after: str | None = None) -> RepositoryPage:
        variables = {"orgName": org, "first": page_size, "after": after}
        body = await self._post(REPOSITORIES_QUERY, variables)
        self._raise_for_errors(body, org)

        organization = (body.get("data") or {}).get("organization")
        if organization is None:
            raise MalformedResponseError(
                f"GraphQL response missing 'organization' field. Available keys: {', '.join(body)}"
            )

        try:
            connection = organization["repositories"]
            page_info = connection["pageInfo"]
            nodes = connection["nodes"] or []
        except (KeyError, TypeError) as exc:
            raise MalformedResponseError(f"Unexpected repositories payload for {org}") from exc

        items = [repo for node in nodes if node and (repo := self._parse_repository(node)) is not None]
        return RepositoryPage(
            items         = items,
            has_next_page = bool(page_info.get("hasNextPage")),
            end_cursor    = page_info.get("endCursor"),
        )

    async def fetch_repository(self, org: str, name: str) -> RepositorySummary | None:
        body = await self._post(SINGLE_REPOSITORY_QUERY, {"orgName": org, "repoName": name})

        errors = body.get("errors") or []
        if errors and all(self._is_not_found(e, ["organization", "repository"]) for e in errors):
            return None
        self._raise_for_errors(body, org)

        organization = (body.get("data") or {}).get("organization")
        if organization is None:
            raise MalformedResponseError("GraphQL response missing 'organization' field")

        node = organization.get("repository")
        if node is None:
            return None

        repo = self._parse_repository(node)
        if repo is None:
            raise MalformedResponseError(f"Unexpected repository payload for {org}/{name}")
        return repo
