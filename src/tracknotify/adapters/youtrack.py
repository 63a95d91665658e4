"""YouTrack client for listing changed issues and their change history.

Talks to the YouTrack REST API:
    - GET /rest/issue/byproject/{project}?updatedAfter=&max=&with=
    - GET /rest/issue/{id}/changes

The client only returns decoded JSON; normalization and filtering happen in
the fetcher. Authentication is delegated to a TokenProvider, which may be
shared by several clients.

Example:
    client = YouTrackClient(config.tracker)
    raw_issues = await client.list_issues(project, "1700000000000", 100, ["summary"])
    history = await client.issue_history("PRJ-12")
    await client.close()
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

import httpx

from tracknotify.adapters.base import TrackerClient
from tracknotify.constants import (
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    YOUTRACK_HEALTH_PATH,
    YOUTRACK_ISSUE_PATH,
    YOUTRACK_ISSUES_BY_PROJECT_PATH,
)
from tracknotify.credentials import TokenProvider
from tracknotify.exceptions import TransportError
from tracknotify.logging import get_logger

if TYPE_CHECKING:
    from tracknotify.models import Project, TrackerConfig

logger = get_logger(__name__)


class YouTrackClient(TrackerClient):
    """TrackerClient for the YouTrack REST API."""

    def __init__(
        self,
        config: TrackerConfig,
        token_provider: TokenProvider | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Tracker configuration with base_url and credentials.
            token_provider: Shared credential cache; one is created if omitted.
        """
        self._config = config
        self._tokens = token_provider or TokenProvider(config)
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client.

        Returns:
            An httpx AsyncClient configured for YouTrack API calls.
        """
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._config.base_url.rstrip("/"),
                headers={"Accept": "application/json"},
                timeout=DEFAULT_HTTP_TIMEOUT_SECONDS,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> httpx.Response:
        client = self._get_client()
        headers = await self._tokens.auth_headers(client)

        try:
            response = await client.get(path, params=params, headers=headers)
        except httpx.RequestError as e:
            raise TransportError(
                "Network error calling YouTrack",
                details={"path": path, "error": str(e)},
            ) from e

        if response.status_code == 401:
            # The next request asks for a fresh token.
            self._tokens.invalidate()

        return response

    async def list_issues(
        self,
        project: Project,
        updated_after: str,
        max_issues: int,
        fields: Sequence[str],
    ) -> list[dict[str, Any]]:
        """List issues of a project updated after a timestamp.

        Args:
            project: The project to query.
            updated_after: Lower bound as an epoch-millisecond string.
            max_issues: Maximum number of issues to return.
            fields: Field names to include for each issue.

        Returns:
            Raw issues, each with an `id` and a `field` list.

        Raises:
            TransportError: On HTTP errors, network errors or a non-list body.
        """
        start_time = time.monotonic()
        path = f"{YOUTRACK_ISSUES_BY_PROJECT_PATH}/{project.name}"
        params: dict[str, Any] = {"updatedAfter": updated_after, "max": max_issues}
        if fields:
            params["with"] = list(fields)

        response = await self._get(path, params)
        duration_ms = int((time.monotonic() - start_time) * 1000)

        if response.is_error:
            logger.error(
                "YouTrack API error listing issues",
                extra={
                    "project": project.name,
                    "status_code": response.status_code,
                    "duration_ms": duration_ms,
                },
            )
            raise TransportError(
                "Failed to list issues",
                status_code=response.status_code,
                details={"project": project.name},
            )

        data = _decode(response)
        if isinstance(data, dict):
            data = data.get("issue", [])

        if not isinstance(data, list):
            raise TransportError(
                "Unexpected issue list payload",
                details={"project": project.name, "type": type(data).__name__},
            )

        logger.info(
            "Listed changed issues",
            extra={"project": project.name, "count": len(data), "duration_ms": duration_ms},
        )

        return data

    async def issue_history(self, issue_id: str) -> dict[str, Any] | None:
        """Fetch the change history of one issue.

        Args:
            issue_id: Issue id (e.g., 'PRJ-12').

        Returns:
            The decoded history, or None if YouTrack answers 404.

        Raises:
            TransportError: On any other HTTP or network error.
        """
        start_time = time.monotonic()
        response = await self._get(f"{YOUTRACK_ISSUE_PATH}/{issue_id}/changes")
        duration_ms = int((time.monotonic() - start_time) * 1000)

        if response.status_code == 404:
            logger.warning(
                "Issue history not found",
                extra={"issue_id": issue_id, "duration_ms": duration_ms},
            )
            return None

        if response.is_error:
            raise TransportError(
                "Failed to fetch issue history",
                status_code=response.status_code,
                details={"issue_id": issue_id},
            )

        data = _decode(response)
        if not isinstance(data, dict):
            raise TransportError(
                "Unexpected issue history payload",
                details={"issue_id": issue_id, "type": type(data).__name__},
            )

        logger.debug(
            "Fetched issue history",
            extra={
                "issue_id": issue_id,
                "changes": len(data.get("change") or []),
                "duration_ms": duration_ms,
            },
        )

        return data

    async def health_check(self) -> bool:
        """Check that YouTrack is reachable with the configured credentials.

        Returns:
            True if the current-user endpoint answers 200, False otherwise.
        """
        if not self._config.base_url:
            logger.warning("YouTrack client missing base_url")
            return False

        try:
            response = await self._get(YOUTRACK_HEALTH_PATH)
        except TransportError as e:
            logger.warning("YouTrack health check error", extra={"error": str(e)})
            return False

        healthy = response.status_code == 200
        if healthy:
            logger.info("YouTrack health check passed")
        else:
            logger.warning(
                "YouTrack health check failed",
                extra={"status_code": response.status_code},
            )
        return healthy


def _decode(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError as e:
        raise TransportError(
            "Response is not valid JSON",
            status_code=response.status_code,
        ) from e
