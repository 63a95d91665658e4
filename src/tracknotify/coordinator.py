"""Delivery of rendered notifications and checkpoint advancement.

All sends of a batch are started at once; the coordinator counts them down
as they settle and, once none are outstanding, advances the project's
checkpoint. Failed sends are logged and reported but do not hold the
checkpoint back, so an undeliverable message is not retried next cycle.

Example:
    coordinator = DeliveryCoordinator(messenger, project, store)
    report = await coordinator.dispatch(notifications, checkpoint)
    print(report.sent, report.failed)
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import TYPE_CHECKING

from tracknotify.logging import get_logger
from tracknotify.models import DeliveryOutcome, DispatchReport

if TYPE_CHECKING:
    from tracknotify.adapters.base import Messenger
    from tracknotify.checkpoint import CheckpointStore
    from tracknotify.models import Checkpoint, Notification, Project

logger = get_logger(__name__)


class DeliveryCoordinator:
    """Sends a cycle's notifications and gates checkpoint advancement on them."""

    def __init__(
        self,
        messenger: Messenger,
        project: Project,
        store: CheckpointStore,
    ) -> None:
        """Initialize the coordinator.

        Args:
            messenger: Delivery primitive.
            project: The project whose target and checkpoint are used.
            store: Checkpoint store advanced after each batch.
        """
        self._messenger = messenger
        self._project = project
        self._store = store

    async def dispatch(
        self,
        notifications: Sequence[Notification],
        previous: Checkpoint,
    ) -> DispatchReport:
        """Send every notification, wait for all to settle, then advance the checkpoint.

        Args:
            notifications: Messages of the cycle, in send order.
            previous: The checkpoint the cycle started from.

        Returns:
            Per-message outcomes and the checkpoint written.

        Raises:
            PersistenceError: If the new checkpoint cannot be written.
        """
        outcomes: list[DeliveryOutcome | None] = [None] * len(notifications)
        outstanding = len(notifications)
        settled = asyncio.Event()

        if outstanding == 0:
            settled.set()

        async def send(index: int) -> None:
            nonlocal outstanding
            notification = notifications[index]
            try:
                await self._messenger.send(
                    self._project.target,
                    notification.text,
                    token=self._project.token or None,
                )
                outcomes[index] = DeliveryOutcome(notification=notification, success=True)
            except Exception as e:
                logger.error(
                    "Failed to deliver notification",
                    extra={
                        "project": self._project.name,
                        "issue_id": notification.issue_id,
                        "operation": notification.operation,
                        "error": str(e),
                    },
                )
                outcomes[index] = DeliveryOutcome(
                    notification=notification,
                    success=False,
                    error=str(e),
                )
            finally:
                outstanding -= 1
                if outstanding == 0:
                    settled.set()

        tasks = [asyncio.create_task(send(index)) for index in range(len(notifications))]

        await settled.wait()
        # Every task has finished its finally block; collect them so none is left pending.
        await asyncio.gather(*tasks)

        checkpoint = await self._store.advance(self._project, previous)

        report = DispatchReport(
            outcomes=[outcome for outcome in outcomes if outcome is not None],
            checkpoint=checkpoint,
        )

        logger.info(
            "Dispatch settled",
            extra={
                "project": self._project.name,
                "sent": report.sent,
                "failed": report.failed,
                "checkpoint": checkpoint.human,
            },
        )

        return report
