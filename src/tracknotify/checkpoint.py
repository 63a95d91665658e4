"""Checkpoint persistence.

A checkpoint is the "changed after" watermark of a project. The store reads
it at the start of a cycle (falling back to ten days ago) and writes the
wall-clock time once the cycle's messages have settled.

Two backends are provided:
    - JsonFileCheckpointBackend: one `<key>_last_request.json` file per project
    - SqliteCheckpointBackend: a `checkpoints` table, via aiosqlite

Example:
    backend = JsonFileCheckpointBackend("last")
    store = CheckpointStore(backend)
    checkpoint = await store.load(project)
    ...
    await store.advance(project, checkpoint)
"""

from __future__ import annotations

import json
import os
import tempfile
from abc import ABC, abstractmethod
from datetime import UTC, datetime, timedelta, tzinfo
from pathlib import Path
from typing import TYPE_CHECKING, Any

import aiosqlite
from pydantic import ValidationError

from tracknotify.constants import (
    CHECKPOINT_BACKEND_SQLITE,
    CHECKPOINT_FILE_SUFFIX,
    DEFAULT_CHECKPOINT_LOOKBACK_DAYS,
)
from tracknotify.exceptions import PersistenceError
from tracknotify.logging import get_logger
from tracknotify.models import Checkpoint
from tracknotify.utils import format_timestamp, now_ms, parse_timestamp_ms

if TYPE_CHECKING:
    from collections.abc import Callable

    from tracknotify.models import CheckpointConfig, Project

logger = get_logger(__name__)


def stored_checkpoint(raw_ts: Any, human: Any, details: dict[str, Any]) -> Checkpoint:
    """Build a Checkpoint from stored values, rejecting anything not a real date.

    Raises:
        PersistenceError: If the timestamp is missing, negative or outside
            the range a datetime can represent.
    """
    timestamp_ms = parse_timestamp_ms(raw_ts)
    if timestamp_ms is None or not format_timestamp(timestamp_ms, UTC):
        raise PersistenceError(
            "Stored checkpoint has no valid timestamp",
            details={**details, "ts": str(raw_ts)},
        )

    try:
        return Checkpoint(timestamp_ms=timestamp_ms, human=str(human or ""))
    except ValidationError as e:
        raise PersistenceError(
            "Stored checkpoint has no valid timestamp",
            details={**details, "ts": str(raw_ts), "error": str(e)},
        ) from e


class CheckpointBackend(ABC):
    """Keyed storage for checkpoints."""

    @abstractmethod
    async def get(self, key: str) -> Checkpoint | None:
        """Return the stored checkpoint, or None if there is none.

        Raises:
            PersistenceError: If stored data cannot be read or parsed.
        """
        ...

    @abstractmethod
    async def set(self, key: str, checkpoint: Checkpoint) -> None:
        """Store a checkpoint, replacing any previous one.

        Raises:
            PersistenceError: If the checkpoint cannot be written.
        """
        ...

    async def close(self) -> None:  # noqa: B027 - optional hook
        """Release resources."""


class JsonFileCheckpointBackend(CheckpointBackend):
    """Stores each checkpoint as `{"ts": "<ms>", "s": "<human>"}` in its own file."""

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)

    def path_for(self, key: str) -> Path:
        """File holding the checkpoint for a key."""
        return self._directory / f"{key}{CHECKPOINT_FILE_SUFFIX}"

    async def get(self, key: str) -> Checkpoint | None:
        path = self.path_for(key)
        if not path.exists():
            return None

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise PersistenceError(
                "Could not read checkpoint file",
                details={"path": str(path), "error": str(e)},
            ) from e

        if not isinstance(data, dict):
            raise PersistenceError("Checkpoint file is not an object", details={"path": str(path)})

        return stored_checkpoint(data.get("ts"), data.get("s"), details={"path": str(path)})

    async def set(self, key: str, checkpoint: Checkpoint) -> None:
        path = self.path_for(key)
        payload = json.dumps({"ts": str(checkpoint.timestamp_ms), "s": checkpoint.human})

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            # Write next to the target and rename so readers never see a partial file.
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{key}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise PersistenceError(
                "Could not write checkpoint file",
                details={"path": str(path), "error": str(e)},
            ) from e


class SqliteCheckpointBackend(CheckpointBackend):
    """Stores checkpoints in a SQLite table.

    Schema:
        - key: TEXT PRIMARY KEY
        - timestamp_ms: INTEGER
        - human: TEXT
        - updated_at: TEXT (ISO timestamp of the write)
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path)
        self._conn: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Create the database and table if needed."""
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = await aiosqlite.connect(self._db_path)
            await self._conn.execute("""
                CREATE TABLE IF NOT EXISTS checkpoints (
                    key TEXT PRIMARY KEY,
                    timestamp_ms INTEGER NOT NULL,
                    human TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            await self._conn.commit()
        except (OSError, aiosqlite.Error) as e:
            raise PersistenceError(
                "Could not open checkpoint database",
                details={"db_path": str(self._db_path), "error": str(e)},
            ) from e

        logger.debug("Checkpoint database ready", extra={"db_path": str(self._db_path)})

    def _require_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise PersistenceError("Checkpoint database not initialized. Call initialize() first.")
        return self._conn

    async def get(self, key: str) -> Checkpoint | None:
        conn = self._require_conn()
        try:
            cursor = await conn.execute(
                "SELECT timestamp_ms, human FROM checkpoints WHERE key = ?",
                (key,),
            )
            row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise PersistenceError(
                "Could not read checkpoint",
                details={"key": key, "error": str(e)},
            ) from e

        if row is None:
            return None

        return stored_checkpoint(row[0], row[1], details={"key": key})

    async def set(self, key: str, checkpoint: Checkpoint) -> None:
        conn = self._require_conn()
        try:
            await conn.execute(
                """
                INSERT OR REPLACE INTO checkpoints (key, timestamp_ms, human, updated_at)
                VALUES (?, ?, ?, ?)
                """,
                (key, checkpoint.timestamp_ms, checkpoint.human, datetime.now(UTC).isoformat()),
            )
            await conn.commit()
        except aiosqlite.Error as e:
            raise PersistenceError(
                "Could not write checkpoint",
                details={"key": key, "error": str(e)},
            ) from e

    async def close(self) -> None:
        """Close database connection."""
        if self._conn is not None:
            await self._conn.close()
            self._conn = None


class CheckpointStore:
    """Loads and advances per-project checkpoints over a backend."""

    def __init__(
        self,
        backend: CheckpointBackend,
        tz: tzinfo = UTC,
        *,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        """Initialize the store.

        Args:
            backend: Where checkpoints are kept.
            tz: Timezone of the human-readable form.
            clock: Source of wall-clock epoch milliseconds.
        """
        self._backend = backend
        self._tz = tz
        self._clock = clock

    @property
    def backend(self) -> CheckpointBackend:
        """The underlying backend."""
        return self._backend

    def make(self, timestamp_ms: int) -> Checkpoint:
        """Build a checkpoint with its human-readable form."""
        return Checkpoint(timestamp_ms=timestamp_ms, human=format_timestamp(timestamp_ms, self._tz))

    def default(self) -> Checkpoint:
        """The first-run watermark: now minus the lookback window."""
        lookback = timedelta(days=DEFAULT_CHECKPOINT_LOOKBACK_DAYS)
        return self.make(self._clock() - int(lookback.total_seconds() * 1000))

    async def load(self, project: Project) -> Checkpoint:
        """Return the project's checkpoint.

        Absent or unreadable state yields the default watermark.
        """
        try:
            checkpoint = await self._backend.get(project.checkpoint_key)
        except PersistenceError as e:
            checkpoint = None
            logger.warning(
                "Unreadable checkpoint, falling back to default",
                extra={"project": project.name, "error": str(e)},
            )

        if checkpoint is None:
            checkpoint = self.default()
            logger.info(
                "Using default checkpoint",
                extra={"project": project.name, "checkpoint": checkpoint.human},
            )

        return checkpoint

    async def save(self, project: Project, checkpoint: Checkpoint) -> None:
        """Persist a checkpoint for the project.

        Raises:
            PersistenceError: If the backend cannot write it.
        """
        await self._backend.set(project.checkpoint_key, checkpoint)
        logger.info(
            "Checkpoint saved",
            extra={"project": project.name, "checkpoint": checkpoint.human},
        )

    async def advance(self, project: Project, previous: Checkpoint) -> Checkpoint:
        """Write the wall-clock time as the project's new checkpoint.

        The new value never goes below `previous`. Changes made between the
        issue fetch and this write may be missed by the next cycle.

        Returns:
            The checkpoint written.

        Raises:
            PersistenceError: If the backend cannot write it.
        """
        checkpoint = self.make(max(self._clock(), previous.timestamp_ms))
        await self.save(project, checkpoint)
        return checkpoint


async def open_backend(config: CheckpointConfig) -> CheckpointBackend:
    """Create (and initialize) the backend described by the configuration."""
    if config.backend == CHECKPOINT_BACKEND_SQLITE:
        backend = SqliteCheckpointBackend(config.path)
        await backend.initialize()
        return backend
    return JsonFileCheckpointBackend(config.path)
