"""Settings owner shared by every page.

The background process keeps the canonical settings mapping in a
``SettingsStore`` and talks to pages over a ``MessageBus``: pages ask for a
sync, editors send updates or a reset, and every change is broadcast back to
all listeners as a ``sync_settings_response``.
"""

from __future__ import annotations

import inspect
import json
import logging
from typing import TYPE_CHECKING, Any

from talfred.config import get_settings
from talfred.messages import EventName, Message, coerce_snapshot

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from talfred.config import Settings

logger = logging.getLogger(__name__)


class MessageBus:
    """In-process message channel between the background and its pages.

    Every subscriber sees every message.  A failing subscriber is logged and
    skipped; delivery to the others continues.
    """

    def __init__(self) -> None:
        self._listeners: list[Callable[[Message], Any]] = []
        self.sent: list[Message] = []

    def subscribe(self, listener: Callable[[Message], Any]) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Callable[[Message], Any]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def send(self, message: Message) -> None:
        """Deliver *message* to every subscriber, in subscription order."""
        self.sent.append(message)
        logger.debug(
            "Message %s to %d listener(s)", message.event_name, self.listener_count
        )
        for listener in list(self._listeners):
            try:
                result = listener(message)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    "Listener %r failed on %s", listener, message.event_name
                )


class SettingsStore:
    """Key-value storage for the settings mapping.

    Kept in memory, or in a JSON file when *path* is given.
    """

    def __init__(self, path: Path | None = None) -> None:
        self.path = path
        self._data: dict[str, dict[str, Any]] = {}
        if path is not None and path.is_file():
            self._data = json.loads(path.read_text(encoding="utf-8"))
            logger.info(
                "Loaded settings for %d feature(s) from %s", len(self._data), path
            )

    def load(self) -> dict[str, dict[str, Any]]:
        return {name: dict(entry) for name, entry in self._data.items()}

    def save(self, data: dict[str, dict[str, Any]]) -> None:
        self._data = {name: dict(entry) for name, entry in data.items()}
        self._flush()

    def clear(self) -> None:
        self._data = {}
        self._flush()

    def _flush(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(self._data, indent=2), encoding="utf-8")


class SettingsBackground:
    """Answers settings requests from pages and editors.

    Without an explicit *store*, settings live in ``app.settings_file`` when
    one is configured and in memory otherwise.
    """

    def __init__(
        self,
        bus: MessageBus,
        store: SettingsStore | None = None,
        config: Settings | None = None,
    ) -> None:
        self.bus = bus
        if store is None:
            config = config if config is not None else get_settings()
            store = SettingsStore(config.app.settings_file)
        self.store = store

    def start(self) -> None:
        self.bus.subscribe(self.handle)

    def stop(self) -> None:
        self.bus.unsubscribe(self.handle)

    async def handle(self, message: Message) -> None:
        match message.event_name:
            case EventName.SYNC_SETTINGS_REQUEST:
                await self._notify_all(self.store.load())
            case EventName.UPDATE_SETTINGS_REQUEST:
                if not message.settings:
                    return
                stored = self.store.load()
                for name, update in message.settings.items():
                    stored[name] = {
                        **stored.get(name, {}),
                        **update.model_dump(exclude_unset=True),
                    }
                self.store.save(stored)
                logger.info("Updated settings for %s", sorted(message.settings))
                await self._notify_all(stored)
            case EventName.RESET_SETTINGS_REQUEST:
                self.store.clear()
                logger.info("Settings reset")
                await self._notify_all({})
            case _:
                logger.debug("Ignoring %s", message.event_name)

    async def _notify_all(self, settings: dict[str, dict[str, Any]]) -> None:
        await self.bus.send(
            Message(
                event_name=EventName.SYNC_SETTINGS_RESPONSE,
                settings=coerce_snapshot(settings),
            )
        )
