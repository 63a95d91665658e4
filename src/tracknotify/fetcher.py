"""Issue fetching for the notification pipeline.

Lists the issues of a project changed since a checkpoint, then loads each
issue's change history, normalizes it, and keeps only changes at or after
the checkpoint. History fetches run concurrently with a bounded fan-out;
one issue's failure never aborts the others.

Example:
    fetcher = IssueFetcher(tracker, concurrency=4)
    issues = await fetcher.fetch_issues_with_changes(project, checkpoint, max_issues=100)
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from tracknotify.constants import DEFAULT_FETCH_CONCURRENCY, YOUTRACK_LIST_FIELDS
from tracknotify.exceptions import MalformedPayloadError, TransportError
from tracknotify.logging import get_logger
from tracknotify.models import Attachment, ChangeRecord, Issue, IssueStub
from tracknotify.normalizer import extract_attachments, normalize_fields, to_change_record
from tracknotify.utils import parse_timestamp_ms

if TYPE_CHECKING:
    from tracknotify.adapters.base import TrackerClient
    from tracknotify.models import Checkpoint, Project

logger = get_logger(__name__)


class IssueFetcher:
    """Builds Issues with their recent change records from the tracker."""

    def __init__(
        self,
        tracker: TrackerClient,
        *,
        concurrency: int = DEFAULT_FETCH_CONCURRENCY,
        fields: Sequence[str] = YOUTRACK_LIST_FIELDS,
    ) -> None:
        """Initialize the fetcher.

        Args:
            tracker: Client used for all tracker calls.
            concurrency: Maximum history fetches in flight.
            fields: Fields requested when listing issues.
        """
        self._tracker = tracker
        self._concurrency = max(concurrency, 1)
        self._fields = list(fields)

    async def list_changed_issues(
        self,
        project: Project,
        checkpoint: Checkpoint,
        max_issues: int,
    ) -> list[IssueStub]:
        """List issues of a project changed since the checkpoint.

        Issues whose id does not start with the project name are dropped,
        as are issues whose fields cannot be normalized.

        Args:
            project: The project to query.
            checkpoint: Lower bound for the update time.
            max_issues: Maximum number of issues requested.

        Returns:
            Issue stubs in tracker order, at most `max_issues`.

        Raises:
            TransportError: If the listing itself fails.
        """
        raw_issues = await self._tracker.list_issues(
            project,
            str(checkpoint.timestamp_ms),
            max_issues,
            self._fields,
        )

        stubs: list[IssueStub] = []
        for raw in raw_issues[:max_issues]:
            issue_id = raw.get("id") if isinstance(raw, dict) else None

            if not isinstance(issue_id, str) or not issue_id.startswith(project.name):
                logger.debug(
                    "Ignoring issue outside project",
                    extra={"project": project.name, "issue_id": issue_id},
                )
                continue

            try:
                raw_fields = raw.get("field")
                normalized = normalize_fields(raw_fields)
                stubs.append(
                    IssueStub(
                        id=issue_id,
                        fields=normalized.values,
                        attachments=extract_attachments(raw_fields),
                    )
                )
            except MalformedPayloadError as e:
                logger.error(
                    "Skipping issue with malformed fields",
                    extra={"issue_id": issue_id, "error": str(e)},
                )

        return stubs

    async def fetch_history(self, issue_id: str, checkpoint: Checkpoint) -> Issue:
        """Load an issue with its change records since the checkpoint.

        Args:
            issue_id: Issue id (e.g., 'PRJ-12').
            checkpoint: Changes updated before this watermark are dropped.

        Returns:
            The issue. If the tracker has no history for it, an issue with
            only its id and no changes.

        Raises:
            TransportError: If the history request fails for another reason.
            MalformedPayloadError: If the history cannot be normalized.
        """
        response = await self._tracker.issue_history(issue_id)
        if response is None:
            return Issue(id=issue_id)

        raw_issue = response.get("issue") or {}
        raw_changes = response.get("change") or []
        if not isinstance(raw_issue, dict) or not isinstance(raw_changes, list):
            raise MalformedPayloadError(
                "Issue history has an unexpected shape",
                details={"issue_id": issue_id},
            )

        raw_fields = raw_issue.get("field")
        attributes = normalize_fields(raw_fields).values

        changes: list[ChangeRecord] = []
        for raw_change in raw_changes:
            if not isinstance(raw_change, dict):
                raise MalformedPayloadError(
                    "Change entry is not an object",
                    details={"issue_id": issue_id},
                )
            record = to_change_record(normalize_fields(raw_change.get("field")))
            if record is None:
                logger.debug("Dropping change without timestamp", extra={"issue_id": issue_id})
                continue
            changes.append(record)

        return _build_issue(
            issue_id,
            attributes,
            extract_attachments(raw_fields),
            changes_since(changes, checkpoint),
        )

    async def fetch_issues_with_changes(
        self,
        project: Project,
        checkpoint: Checkpoint,
        max_issues: int,
    ) -> list[Issue]:
        """List changed issues and load their histories.

        Issues whose history fails to load or normalize are logged and
        excluded; the others are returned in listing order.

        Args:
            project: The project to query.
            checkpoint: The project's current watermark.
            max_issues: Maximum number of issues requested.

        Returns:
            Issues fetched without a per-issue error.

        Raises:
            TransportError: If the listing itself fails.
        """
        start_time = time.monotonic()
        stubs = await self.list_changed_issues(project, checkpoint, max_issues)
        semaphore = asyncio.Semaphore(self._concurrency)

        async def fetch_one(stub: IssueStub) -> Issue:
            async with semaphore:
                issue = await self.fetch_history(stub.id, checkpoint)
            if not issue.fields:
                # History carried no issue attributes: describe it from the listing.
                return _build_issue(stub.id, stub.fields, stub.attachments, issue.changes)
            return issue

        results = await asyncio.gather(
            *(fetch_one(stub) for stub in stubs),
            return_exceptions=True,
        )

        issues: list[Issue] = []
        for stub, result in zip(stubs, results, strict=True):
            if isinstance(result, (TransportError, MalformedPayloadError)):
                logger.error(
                    "Excluding issue after fetch failure",
                    extra={"issue_id": stub.id, "error": str(result)},
                )
                continue
            if isinstance(result, BaseException):
                raise result
            issues.append(result)

        logger.info(
            "Fetched issues with changes",
            extra={
                "project": project.name,
                "listed": len(stubs),
                "fetched": len(issues),
                "changes": sum(len(issue.changes) for issue in issues),
                "duration_ms": int((time.monotonic() - start_time) * 1000),
            },
        )

        return issues


def changes_since(changes: Sequence[ChangeRecord], checkpoint: Checkpoint) -> list[ChangeRecord]:
    """Keep change records updated at or after the checkpoint, in order."""
    return [change for change in changes if change.updated >= checkpoint.timestamp_ms]


def _build_issue(
    issue_id: str,
    attributes: dict[str, Any],
    attachments: list[Attachment],
    changes: list[ChangeRecord],
) -> Issue:
    updater = attributes.get("updaterName")
    summary = attributes.get("summary")
    description = attributes.get("description")

    return Issue(
        id=issue_id,
        summary=str(summary) if summary is not None else None,
        description=str(description) if description is not None else None,
        updater=str(updater) if updater is not None else None,
        created=parse_timestamp_ms(attributes.get("created")),
        attachments=attachments,
        changes=changes,
        fields=attributes,
    )
