"""Per-page wiring: runtime, built-in features, settings sync, navigation.

One ``ContentScript`` lives in each page.  It keeps the page's runtime in
step with the settings broadcast by the background process and re-runs the
features when the page navigates without a reload.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from talfred.api import Runtime
from talfred.config import get_settings
from talfred.features import register_builtin_features
from talfred.messages import EventName, Message
from talfred.scheduler import IntervalManager

if TYPE_CHECKING:
    from talfred.background import MessageBus
    from talfred.config import Settings
    from talfred.dom.page import Page
    from talfred.scheduler import IntervalInstance

logger = logging.getLogger(__name__)

LOCATION_TASK_NAME = "location change listener"


class ContentScript:
    """Connects one page's runtime to the settings channel.

    Attributes:
        runtime: The page's feature runtime, with built-in features registered.
        manager: Scheduler for the location-change poll.
        current_location: URL the features last ran against.
    """

    def __init__(
        self,
        page: Page,
        bus: MessageBus,
        config: Settings | None = None,
        manager: IntervalManager | None = None,
    ) -> None:
        self.config = config if config is not None else get_settings()
        self.page = page
        self.bus = bus
        self.runtime = Runtime(page, self.config)
        register_builtin_features(self.runtime)
        self.manager = manager or IntervalManager(
            tick_seconds=self.config.scheduler.tick_seconds,
            default_interval=self.config.scheduler.default_interval_seconds,
        )
        self.current_location = page.url
        self.location_task: IntervalInstance | None = None

    async def start(self) -> None:
        """Subscribe, request the current settings and watch for navigation."""
        self.bus.subscribe(self.on_message)
        await self.bus.send(Message(event_name=EventName.SYNC_SETTINGS_REQUEST))
        self.location_task = self.manager.add(
            LOCATION_TASK_NAME,
            self.check_location,
            interval=self.config.scheduler.location_poll_seconds,
        )

    def stop(self) -> None:
        self.bus.unsubscribe(self.on_message)
        if self.location_task is not None:
            self.location_task.stop()
            self.location_task = None

    async def on_message(self, message: Message) -> None:
        if message.event_name is not EventName.SYNC_SETTINGS_RESPONSE:
            return
        if self.runtime.skip_sync:
            logger.debug("Skipping settings sync: local change in effect")
            return
        await self.runtime.reconcile(message.settings or {})

    async def check_location(self) -> None:
        """Re-run every feature if the URL changed since the last check."""
        if self.page.url == self.current_location:
            return
        logger.info(
            "Location changed: %s -> %s", self.current_location, self.page.url
        )
        self.current_location = self.page.url
        await self.runtime.run()
