"""Settings editor controller.

Backs an options page: loads the stored settings into a runtime without
running anything, tracks edits, and sends validated updates (or a reset) to
the background process.  Rendering the form is left to the caller.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from talfred.errors import ConfigurationError
from talfred.messages import EventName, FeatureSetting, Message

if TYPE_CHECKING:
    from talfred.api import Feature, Runtime
    from talfred.background import MessageBus

logger = logging.getLogger(__name__)


class OptionsController:
    """Edits feature settings on behalf of the user.

    Attributes:
        loading: True until the first settings response arrives.
        modified: True when there are unsaved edits.
    """

    def __init__(self, runtime: Runtime, bus: MessageBus) -> None:
        self.runtime = runtime
        self.bus = bus
        self.loading = True
        self.modified = False

    async def load(self) -> None:
        """Subscribe to settings responses and request the current settings."""
        self.bus.subscribe(self.on_message)
        await self.bus.send(Message(event_name=EventName.SYNC_SETTINGS_REQUEST))

    def close(self) -> None:
        self.bus.unsubscribe(self.on_message)

    async def on_message(self, message: Message) -> None:
        if message.event_name is not EventName.SYNC_SETTINGS_RESPONSE:
            return
        await self.runtime.reconcile(message.settings or {}, suppress_run=True)
        self.loading = False

    def set_enabled(self, feature_name: str, enabled: bool) -> None:
        self._feature(feature_name).enabled = enabled
        self.mark_modified()

    def set_value(self, feature_name: str, value: str) -> None:
        feature = self._feature(feature_name)
        if not feature.configurable:
            msg = f"Feature '{feature_name}' does not take a value"
            raise ValueError(msg)
        feature.value = value
        self.mark_modified()

    def mark_modified(self) -> None:
        self.modified = True

    async def save(self) -> bool:
        """Send the edited settings to the background process.

        Returns:
            False if there was nothing to save.

        Raises:
            ConfigurationError: If any feature's value fails validation.
                Nothing is sent in that case.
        """
        if not self.modified:
            return False

        updates: dict[str, FeatureSetting] = {}
        for feature in self.runtime.features:
            if not await feature.validate(feature.value):
                raise ConfigurationError(feature.name, feature.value)
            if feature.configurable:
                updates[feature.name] = FeatureSetting(
                    value=feature.format(feature.value), enabled=feature.enabled
                )
            else:
                updates[feature.name] = FeatureSetting(enabled=feature.enabled)

        await self.bus.send(
            Message(event_name=EventName.UPDATE_SETTINGS_REQUEST, settings=updates)
        )
        self.modified = False
        logger.info("Saved settings for %d feature(s)", len(updates))
        return True

    async def reset(self) -> None:
        await self.bus.send(Message(event_name=EventName.RESET_SETTINGS_REQUEST))

    def _feature(self, name: str) -> Feature:
        feature = self.runtime.get_feature(name)
        if feature is None:
            msg = f"Unknown feature: {name}"
            raise KeyError(msg)
        return feature
