"""Custom exceptions for tracknotify.

Everything raised on purpose derives from TrackNotifyError and carries a
message plus a `details` mapping that ends up in the log line.

Exception Hierarchy:
    TrackNotifyError (base)
    ├── ConfigError - Configuration loading/validation failures
    ├── TransportError - Tracker or messaging call failed
    │   └── DeliveryError - Messaging call failed
    ├── MalformedPayloadError - Tracker payload has an unexpected shape
    └── PersistenceError - Checkpoint read/write failures
"""

from typing import Any


class TrackNotifyError(Exception):
    """Root of the tracknotify error hierarchy.

    Args:
        message: What went wrong, in one line.
        details: Extra context such as ids, paths or counts.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigError(TrackNotifyError):
    """Raised when configuration loading or validation fails.

    Examples:
        - Config file not found
        - Invalid YAML syntax
        - Missing tracker URL or project chat id
    """


class TransportError(TrackNotifyError):
    """Raised when a call to the tracker or the messenger fails.

    A failed history fetch or send only drops that issue or message.
    A failed issue listing aborts the cycle of its project.

    Args:
        message: Human-readable error message.
        status_code: HTTP status code, if the failure had one.
        details: Optional dictionary with additional error context.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.status_code = status_code

    def __str__(self) -> str:
        base = self.message
        if self.status_code is not None:
            base = f"{base} (HTTP {self.status_code})"
        if self.details:
            return f"{base} | Details: {self.details}"
        return base


class DeliveryError(TransportError):
    """Raised when a notification could not be delivered.

    Examples:
        - Chat not found (400)
        - Bot blocked or token revoked (401/403)
        - Network errors
    """


class MalformedPayloadError(TrackNotifyError):
    """Raised when a tracker field violates the normalizer's assumptions.

    Fatal for the single issue being normalized; never retried and never
    coerced into a best-effort value.
    """


class PersistenceError(TrackNotifyError):
    """Raised when a checkpoint cannot be read or written.

    Read failures are absorbed by the checkpoint store (default watermark);
    write failures abort the cycle before the checkpoint is advanced.
    """
