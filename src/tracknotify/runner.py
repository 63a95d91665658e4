"""Notification cycles for configured projects.

A cycle loads the project's checkpoint, fetches issues changed since then,
renders them, and hands the messages to the delivery coordinator, which
advances the checkpoint once every send has settled.

NotifierRunner runs one cycle per project, either once (cron friendly) or in
a polling loop until stopped.

Example:
    runner = await NotifierRunner.from_config(config)
    try:
        results = await runner.run_once()
    finally:
        await runner.close()
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

from tracknotify.adapters.telegram import TelegramMessenger
from tracknotify.adapters.youtrack import YouTrackClient
from tracknotify.checkpoint import CheckpointStore, open_backend
from tracknotify.coordinator import DeliveryCoordinator
from tracknotify.credentials import TokenProvider
from tracknotify.fetcher import IssueFetcher
from tracknotify.logging import LogContext, get_logger
from tracknotify.models import CycleResult
from tracknotify.renderer import NotificationRenderer
from tracknotify.utils import resolve_timezone

if TYPE_CHECKING:
    from tracknotify.adapters.base import Messenger, TrackerClient
    from tracknotify.models import NotifierConfig, Project

logger = get_logger(__name__)


class NotificationCycle:
    """One checkpoint-to-checkpoint pass over a single project."""

    def __init__(
        self,
        project: Project,
        fetcher: IssueFetcher,
        renderer: NotificationRenderer,
        coordinator: DeliveryCoordinator,
        store: CheckpointStore,
        *,
        max_issues: int,
    ) -> None:
        self._project = project
        self._fetcher = fetcher
        self._renderer = renderer
        self._coordinator = coordinator
        self._store = store
        self._max_issues = max_issues

    @property
    def project(self) -> Project:
        return self._project

    async def run(self) -> CycleResult:
        """Run the cycle.

        Returns:
            Counts of fetched issues and rendered messages, and the dispatch report.

        Raises:
            TransportError: If the changed-issue listing fails.
            PersistenceError: If the new checkpoint cannot be written.
        """
        start_time = time.monotonic()

        with LogContext(project=self._project.name):
            checkpoint = await self._store.load(self._project)
            logger.info("Cycle started", extra={"checkpoint": checkpoint.human})

            issues = await self._fetcher.fetch_issues_with_changes(
                self._project,
                checkpoint,
                self._max_issues,
            )
            notifications = self._renderer.render_all(issues)
            report = await self._coordinator.dispatch(notifications, checkpoint)

            logger.info(
                "Cycle finished",
                extra={
                    "issues": len(issues),
                    "messages": len(notifications),
                    "duration_ms": int((time.monotonic() - start_time) * 1000),
                },
            )

        return CycleResult(
            project=self._project.name,
            issues=len(issues),
            messages=len(notifications),
            report=report,
        )


class NotifierRunner:
    """Runs notification cycles for every configured project."""

    def __init__(
        self,
        config: NotifierConfig,
        tracker: TrackerClient,
        messenger: Messenger,
        store: CheckpointStore,
    ) -> None:
        """Initialize the runner.

        Args:
            config: Notifier configuration.
            tracker: Tracker client shared by all projects.
            messenger: Messenger shared by all projects.
            store: Checkpoint store shared by all projects.
        """
        self._config = config
        self._tracker = tracker
        self._messenger = messenger
        self._store = store
        self._tz = resolve_timezone(config.timezone)
        self._running = False
        self._wakeup = asyncio.Event()

    @classmethod
    async def from_config(cls, config: NotifierConfig) -> NotifierRunner:
        """Build a runner with the YouTrack, Telegram and checkpoint backends from config."""
        tracker = YouTrackClient(config.tracker, TokenProvider(config.tracker))
        messenger = TelegramMessenger(default_token=config.telegram.default_token)
        backend = await open_backend(config.checkpoints)
        store = CheckpointStore(backend, resolve_timezone(config.timezone))
        return cls(config, tracker, messenger, store)

    @property
    def store(self) -> CheckpointStore:
        return self._store

    def projects(self, names: list[str] | None = None) -> list[Project]:
        """Configured projects, optionally restricted to the given names."""
        projects = self._config.resolve_projects()
        if names:
            projects = [project for project in projects if project.name in names]
        return projects

    def cycle_for(self, project: Project) -> NotificationCycle:
        """Assemble the pipeline for one project."""
        return NotificationCycle(
            project,
            IssueFetcher(
                self._tracker,
                concurrency=self._config.concurrency,
                fields=self._config.tracker.fields,
            ),
            NotificationRenderer(project.base_url, self._tz),
            DeliveryCoordinator(self._messenger, project, self._store),
            self._store,
            max_issues=self._config.telegram.max,
        )

    async def run_project(self, project: Project) -> CycleResult | None:
        """Run one project's cycle, logging instead of raising on failure.

        Returns:
            The cycle result, or None if the cycle failed.
        """
        try:
            return await self.cycle_for(project).run()
        except Exception as e:
            logger.exception(
                "Cycle failed",
                extra={"project": project.name, "error": str(e)},
            )
            return None

    async def run_once(
        self,
        names: list[str] | None = None,
        *,
        concurrent: bool = False,
    ) -> dict[str, CycleResult | None]:
        """Run a single cycle for each project.

        Args:
            names: Restrict to these project names.
            concurrent: Run the projects' cycles at the same time.

        Returns:
            Cycle result per project name, None for projects whose cycle failed.
        """
        projects = self.projects(names)

        if concurrent:
            results = await asyncio.gather(*(self.run_project(p) for p in projects))
        else:
            results = []
            for project in projects:
                results.append(await self.run_project(project))

        return {project.name: result for project, result in zip(projects, results, strict=True)}

    async def run(self, names: list[str] | None = None, *, concurrent: bool = False) -> None:
        """Run cycles every poll interval until stop() is called."""
        self._running = True
        self._wakeup.clear()
        poll_interval = self._config.poll_interval_minutes * 60

        logger.info(
            "Starting notifier",
            extra={
                "poll_interval_minutes": self._config.poll_interval_minutes,
                "projects": [project.name for project in self.projects(names)],
            },
        )

        while self._running:
            await self.run_once(names, concurrent=concurrent)

            if self._running:
                logger.debug("Waiting for next poll", extra={"interval_seconds": poll_interval})
                try:
                    await asyncio.wait_for(self._wakeup.wait(), timeout=poll_interval)
                except TimeoutError:
                    pass

        logger.info("Notifier stopped")

    def stop(self) -> None:
        """Signal the polling loop to exit after the current iteration."""
        logger.info("Stopping notifier")
        self._running = False
        self._wakeup.set()

    async def health_check(self) -> dict[str, bool]:
        """Check the tracker and each project's bot token."""
        results = {"youtrack": await self._tracker.health_check()}
        for project in self.projects():
            results[f"telegram:{project.name}"] = await self._messenger.health_check(
                project.token or None
            )
        return results

    async def close(self) -> None:
        """Close clients and the checkpoint backend."""
        await self._tracker.close()
        await self._messenger.close()
        await self._store.backend.close()
