"""Pydantic models for tracknotify.

All models use Pydantic BaseModel with Field() descriptions for
documentation and validation.

Models are organized by domain:
- Config models (TrackerConfig, TelegramConfig, ProjectConfig, NotifierConfig)
- Project, the immutable per-run value handed to every component
- Tracker data models (FieldChange, ChangeRecord, Attachment, IssueStub, Issue)
- Pipeline models (Checkpoint, Notification, DeliveryOutcome, DispatchReport)

Timestamps coming from the tracker are epoch milliseconds.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tracknotify.constants import (
    CHECKPOINT_BACKEND_JSON,
    DEFAULT_CHECKPOINT_DIR,
    DEFAULT_FETCH_CONCURRENCY,
    DEFAULT_MAX_ISSUES,
    DEFAULT_POLL_INTERVAL_MINUTES,
    DEFAULT_TIMEZONE,
    YOUTRACK_LIST_FIELDS,
)

# =============================================================================
# CONFIG MODELS
# =============================================================================


class OAuthConfig(BaseModel):
    """OAuth2 client-credentials settings for the tracker's auth service."""

    url: str = Field(..., description="Token endpoint URL")
    client_id: str = Field(..., description="Client service ID (from env)")
    client_secret: str = Field(..., description="Client service secret (from env)")
    scope: str = Field(default="", description="Requested scope")


class TrackerConfig(BaseModel):
    """YouTrack connection configuration."""

    base_url: str = Field(..., description="YouTrack instance URL")
    token: str | None = Field(default=None, description="Permanent token (from env)")
    oauth: OAuthConfig | None = Field(default=None, description="OAuth2 client credentials")
    fields: list[str] = Field(
        default_factory=lambda: list(YOUTRACK_LIST_FIELDS),
        description="Fields requested when listing changed issues",
    )


class TelegramConfig(BaseModel):
    """Telegram delivery configuration."""

    default_token: str = Field(default="", description="Bot token used when a project has none")
    max: int = Field(
        default=DEFAULT_MAX_ISSUES,
        ge=1,
        description="Maximum issues fetched per project and cycle",
    )


class ProjectConfig(BaseModel):
    """A watched tracker project and its notification target."""

    name: str = Field(..., min_length=1, description="Project short name, the issue id prefix")
    chat_id: str = Field(..., description="Telegram chat receiving the notifications")
    token: str | None = Field(default=None, description="Per-project bot token")
    checkpoint_key: str | None = Field(default=None, description="Checkpoint key (default: name)")

    @field_validator("chat_id", mode="before")
    @classmethod
    def _chat_id_as_str(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class CheckpointConfig(BaseModel):
    """Where checkpoints are persisted."""

    backend: Literal["json", "sqlite"] = Field(
        default=CHECKPOINT_BACKEND_JSON,
        description="Storage backend for checkpoints",
    )
    path: str = Field(
        default=DEFAULT_CHECKPOINT_DIR,
        description="Directory (json) or database file (sqlite)",
    )


class NotifierConfig(BaseModel):
    """Root configuration for tracknotify."""

    tracker: TrackerConfig
    telegram: TelegramConfig = Field(default_factory=TelegramConfig)
    projects: list[ProjectConfig] = Field(default_factory=list)
    checkpoints: CheckpointConfig = Field(default_factory=CheckpointConfig)
    timezone: str = Field(default=DEFAULT_TIMEZONE, description="Timezone for rendered times")
    concurrency: int = Field(
        default=DEFAULT_FETCH_CONCURRENCY,
        ge=1,
        description="Parallel history fetches per cycle",
    )
    poll_interval_minutes: int = Field(
        default=DEFAULT_POLL_INTERVAL_MINUTES,
        ge=1,
        description="Interval between cycles in watch mode",
    )

    def resolve_projects(self) -> list[Project]:
        """Build the immutable per-project values used by a run.

        Returns:
            One Project per configured project, with defaults applied.
        """
        base_url = self.tracker.base_url.rstrip("/")
        return [
            Project(
                name=project.name,
                base_url=base_url,
                target=project.chat_id,
                token=project.token or self.telegram.default_token,
                checkpoint_key=project.checkpoint_key or project.name,
            )
            for project in self.projects
        ]


# =============================================================================
# PROJECT
# =============================================================================


class Project(BaseModel):
    """Immutable configuration of one watched project."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Project short name, the issue id prefix")
    base_url: str = Field(..., description="Tracker base URL without trailing slash")
    target: str = Field(..., description="Notification target (chat id)")
    token: str = Field(default="", description="Messenger token for this project")
    checkpoint_key: str = Field(..., description="Key of this project's checkpoint")


# =============================================================================
# TRACKER DATA MODELS
# =============================================================================


class FieldChange(BaseModel):
    """Old and new value of one field in one historical edit."""

    old_value: Any = Field(default=None, description="Value before the edit")
    new_value: Any = Field(default=None, description="Value after the edit")


class NormalizedFields(BaseModel):
    """Flat attribute mapping produced from a raw field list."""

    values: dict[str, Any] = Field(default_factory=dict, description="Field name to value")
    changed_fields: list[str] = Field(
        default_factory=list,
        description="Names of change fields, in payload order without duplicates",
    )


class Attachment(BaseModel):
    """A file attached to an issue."""

    label: str = Field(..., description="File name shown to readers")
    url: str = Field(..., description="Download URL")


class ChangeRecord(BaseModel):
    """One historical edit event on an issue."""

    updated: int = Field(..., description="When the edit happened (epoch ms)")
    updater: str | None = Field(default=None, description="Login of the editor")
    changed_fields: list[str] = Field(default_factory=list, description="Edited field names")
    changes: dict[str, FieldChange] = Field(
        default_factory=dict,
        description="Old/new values per edited field",
    )


class IssueStub(BaseModel):
    """An issue as returned by the changed-issues listing."""

    id: str = Field(..., description="Issue id (e.g., 'PRJ-12')")
    fields: dict[str, Any] = Field(default_factory=dict, description="Normalized attributes")
    attachments: list[Attachment] = Field(default_factory=list, description="Attachments")


class Issue(BaseModel):
    """An issue with the change records newer than the checkpoint."""

    id: str = Field(..., description="Issue id (e.g., 'PRJ-12')")
    summary: str | None = Field(default=None, description="Issue summary")
    description: str | None = Field(default=None, description="Issue description")
    updater: str | None = Field(default=None, description="Last updater login")
    created: int | None = Field(default=None, description="Creation time (epoch ms)")
    attachments: list[Attachment] = Field(default_factory=list, description="Attachments")
    changes: list[ChangeRecord] = Field(default_factory=list, description="Change records")
    fields: dict[str, Any] = Field(default_factory=dict, description="All normalized attributes")


# =============================================================================
# PIPELINE MODELS
# =============================================================================


class Checkpoint(BaseModel):
    """The "changed after" watermark of a project."""

    timestamp_ms: int = Field(..., ge=0, description="Watermark (epoch ms)")
    human: str = Field(default="", description="Watermark as DD.MM.YYYY HH:mm:ss")


class Notification(BaseModel):
    """A rendered message ready to send."""

    issue_id: str = Field(..., description="Issue the message is about")
    operation: Literal["created", "updated"] = Field(..., description="Operation verb")
    timestamp_ms: int | None = Field(default=None, description="Time of the event (epoch ms)")
    text: str = Field(..., description="Message text in the HTML subset")


class DeliveryOutcome(BaseModel):
    """Settled result of sending one notification."""

    notification: Notification
    success: bool = Field(..., description="Whether the send succeeded")
    error: str | None = Field(default=None, description="Failure description")


class DispatchReport(BaseModel):
    """Result of dispatching one batch of notifications."""

    outcomes: list[DeliveryOutcome] = Field(default_factory=list, description="Per-message results")
    checkpoint: Checkpoint = Field(..., description="Checkpoint written after quiescence")

    @property
    def sent(self) -> int:
        """Number of messages delivered."""
        return sum(1 for outcome in self.outcomes if outcome.success)

    @property
    def failed(self) -> int:
        """Number of messages that could not be delivered."""
        return sum(1 for outcome in self.outcomes if not outcome.success)


class CycleResult(BaseModel):
    """Summary of one project's notification cycle."""

    project: str = Field(..., description="Project name")
    issues: int = Field(default=0, ge=0, description="Issues fetched")
    messages: int = Field(default=0, ge=0, description="Messages rendered")
    report: DispatchReport = Field(..., description="Dispatch outcome")
