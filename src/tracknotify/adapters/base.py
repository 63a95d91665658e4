"""Interfaces for the tracker and messaging collaborators.

The notification pipeline only talks to these abstract classes; concrete
adapters (YouTrack, Telegram) live next to this module.

Example:
    class MyTracker(TrackerClient):
        async def list_issues(self, project, updated_after, max_issues, fields):
            ...

        async def issue_history(self, issue_id):
            ...

        async def health_check(self) -> bool:
            ...
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from tracknotify.constants import MESSAGE_FORMAT_HTML

if TYPE_CHECKING:
    from tracknotify.models import Project

__all__ = ["Messenger", "TrackerClient"]


class TrackerClient(ABC):
    """Abstract read-only client of an issue tracker.

    Implementations return already-decoded JSON structures and signal
    failures with TransportError. Authentication is their own concern.
    """

    @abstractmethod
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
            TransportError: If the tracker cannot be queried.
        """
        ...

    @abstractmethod
    async def issue_history(self, issue_id: str) -> dict[str, Any] | None:
        """Fetch the change history of one issue.

        Args:
            issue_id: Issue id (e.g., 'PRJ-12').

        Returns:
            `{"issue": {...}, "change": [...]}`, or None if the issue has no
            accessible history (not found).

        Raises:
            TransportError: For any failure other than not found.
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Check that the tracker is reachable with the configured credentials."""
        ...

    async def close(self) -> None:  # noqa: B027 - optional hook
        """Release network resources."""


class Messenger(ABC):
    """Abstract chat delivery primitive."""

    @abstractmethod
    async def send(
        self,
        target: str,
        text: str,
        *,
        token: str | None = None,
        format: str = MESSAGE_FORMAT_HTML,
    ) -> None:
        """Deliver one message.

        Args:
            target: Chat identifier.
            text: Message text.
            token: Credential of the sending bot, if it differs per project.
            format: Markup of `text`.

        Raises:
            DeliveryError: If the message was not accepted.
        """
        ...

    @abstractmethod
    async def health_check(self, token: str | None = None) -> bool:
        """Check that the messenger accepts the given credential."""
        ...

    async def close(self) -> None:  # noqa: B027 - optional hook
        """Release network resources."""
