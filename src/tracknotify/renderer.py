"""Rendering of fetched issues into chat messages.

An issue without change records renders as one `created` message; an issue
with change records renders one `updated` message per record, each listing
only the fields touched by that edit.

Message layout (Telegram HTML subset, empty segments omitted):

    <b>alice</b> 14.11.2023 22:13:20 updated <a href="https://yt/issue/PRJ-1">PRJ-1</a> Crash
    <pre>Steps to reproduce...</pre>
    <i>State: Open -&gt; Fixed</i>
    <i>Attachments:</i>
    <a href="https://yt/_persistent/log.txt">log.txt</a>

Example:
    renderer = NotificationRenderer(project.base_url, ZoneInfo("UTC"))
    notifications = renderer.render_all(issues)
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import UTC, tzinfo
from typing import Any

from tracknotify.constants import (
    OPERATION_CREATED,
    OPERATION_UPDATED,
    TELEGRAM_MAX_MESSAGE_LENGTH,
    YOUTRACK_ISSUE_URL_PATH,
)
from tracknotify.logging import get_logger
from tracknotify.models import ChangeRecord, FieldChange, Issue, Notification
from tracknotify.utils import escape_html, format_timestamp, is_empty_value, truncate_text

logger = get_logger(__name__)

RESOLVED_FIELD = "resolved"
LINKS_FIELD = "links"


class NotificationRenderer:
    """Turns Issues into Notifications."""

    def __init__(self, base_url: str, tz: tzinfo = UTC) -> None:
        """Initialize the renderer.

        Args:
            base_url: Tracker base URL used for issue links.
            tz: Timezone in which timestamps are shown.
        """
        self._base_url = base_url.rstrip("/")
        self._tz = tz

    def render_all(self, issues: Iterable[Issue]) -> list[Notification]:
        """Render every issue, preserving issue and change order."""
        notifications: list[Notification] = []
        for issue in issues:
            notifications.extend(self.render(issue))
        return notifications

    def render(self, issue: Issue) -> list[Notification]:
        """Render the messages for one issue.

        Args:
            issue: A fetched issue.

        Returns:
            One `created` notification if the issue has no changes,
            otherwise one `updated` notification per change record.
        """
        if not issue.changes:
            return [
                Notification(
                    issue_id=issue.id,
                    operation=OPERATION_CREATED,
                    timestamp_ms=issue.created,
                    text=self._message(issue, OPERATION_CREATED, issue.updater, issue.created, ""),
                )
            ]

        return [
            Notification(
                issue_id=issue.id,
                operation=OPERATION_UPDATED,
                timestamp_ms=change.updated,
                text=self._message(
                    issue,
                    OPERATION_UPDATED,
                    change.updater or issue.updater,
                    change.updated,
                    self.changed_fields(change),
                ),
            )
            for change in issue.changes
        ]

    def issue_url(self, issue_id: str) -> str:
        """Link to an issue in the tracker UI."""
        return f"{self._base_url}{YOUTRACK_ISSUE_URL_PATH}/{issue_id}"

    def _message(
        self,
        issue: Issue,
        operation: str,
        actor: str | None,
        timestamp: Any,
        changed_fields: str,
    ) -> str:
        header = " ".join(
            part
            for part in (
                f"<b>{escape_html(actor)}</b>" if actor else "",
                format_timestamp(timestamp, self._tz),
                operation,
                f'<a href="{escape_html(self.issue_url(issue.id))}">{escape_html(issue.id)}</a>',
                escape_html(issue.summary),
            )
            if part
        )

        attachments = self.attachments(issue)
        # Every other non-empty segment costs its length plus one joining newline.
        used = sum(len(segment) + 1 for segment in (header, changed_fields, attachments) if segment)
        description = self.description(issue, TELEGRAM_MAX_MESSAGE_LENGTH - used)

        segments = [header, description, changed_fields, attachments]
        return "\n".join(segment for segment in segments if segment)

    def description(self, issue: Issue, max_chars: int = TELEGRAM_MAX_MESSAGE_LENGTH) -> str:
        """Preformatted description block of at most max_chars, or empty.

        The raw text is cut before escaping so no entity is split; the cut
        is repeated until the escaped form fits.
        """
        if not issue.description:
            return ""

        room = max_chars - len("<pre></pre>")
        raw_limit = room
        while raw_limit > 0:
            escaped = escape_html(truncate_text(issue.description, raw_limit))
            if len(escaped) <= room:
                if raw_limit < len(issue.description):
                    logger.debug(
                        "Description truncated",
                        extra={"issue_id": issue.id, "chars": len(issue.description)},
                    )
                return f"<pre>{escaped}</pre>"
            raw_limit -= len(escaped) - room

        return ""

    def attachments(self, issue: Issue) -> str:
        """Attachment link block, or empty if the issue has none."""
        if not issue.attachments:
            return ""

        lines = ["<i>Attachments:</i>"]
        for attachment in issue.attachments:
            url = escape_html(attachment.url).replace('"', "&quot;")
            lines.append(f'<a href="{url}">{escape_html(attachment.label)}</a>')
        return "\n".join(lines)

    def changed_fields(self, change: ChangeRecord) -> str:
        """One line per changed field of a single edit.

        Fields whose old and new values are both empty are left out.
        """
        lines: list[str] = []

        for name in change.changed_fields:
            field_change = change.changes.get(name)
            if field_change is None:
                continue

            old_value, new_value = self._display_values(name, field_change)
            if is_empty_value(old_value) and is_empty_value(new_value):
                continue

            # A bare ">" outside a tag is rejected by Telegram's HTML parser.
            lines.append(
                f"<i>{escape_html(name)}: {escape_html(_text(old_value))}"
                f" -&gt; {escape_html(_text(new_value))}</i>"
            )

        return "\n".join(lines)

    def _display_values(self, name: str, field_change: FieldChange) -> tuple[Any, Any]:
        old_value = field_change.old_value
        new_value = field_change.new_value

        if name == RESOLVED_FIELD and not is_empty_value(new_value):
            new_value = format_timestamp(new_value, self._tz) or new_value

        if name == LINKS_FIELD and isinstance(new_value, Mapping):
            new_value = _format_link(new_value)

        return old_value, new_value


def _format_link(link: Mapping[str, Any]) -> str:
    if "type" in link and "role" in link:
        return f"{link['role']} {link.get('value', '')}".rstrip()
    return "\n".join(f"{key} = {value}" for key, value in link.items())


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)
