"""Feature contract and the runtime that drives features.

Every feature is a :class:`Feature` subclass registered on a :class:`Runtime`
instance.  The runtime reconciles settings snapshots into the set of
features that need (re)running and then runs them one at a time in priority
order: bounded cleanup first, then ``should_run``/``run`` for enabled
features.  Failures are recorded on the feature's stats and never stop the
rest of the registry.
"""

from __future__ import annotations

import asyncio
import enum
import inspect
import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar

from talfred.config import get_settings
from talfred.errors import DeactivationTimeoutError, FeatureRuntimeError
from talfred.messages import FeatureSetting, coerce_snapshot

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from talfred.config import Settings
    from talfred.dom.page import Page
    from talfred.messages import SettingsSnapshot

logger = logging.getLogger(__name__)


class FeatureKind(enum.Enum):
    """Whether a feature carries a free-form configuration value."""

    BOOLEAN = "boolean"
    CONFIGURABLE = "configurable"


@dataclass
class FeatureStats:
    """Run statistics for one feature."""

    last_run_time: float | None = None
    run_times: int = 0
    failures: list[FeatureRuntimeError] = field(default_factory=list)


class Feature(ABC):
    """Base class for every feature.

    Subclasses set ``name`` and ``description`` and implement
    ``should_run()`` and ``run()``.  Anything ``run()`` attaches to the page
    (listeners, injected nodes) must be undone by a teardown action
    registered with ``on_teardown()``.

    Attributes:
        enabled: Current on/off state, updated from settings.
        value: Current configuration (JSON text) for configurable features,
            always None for boolean ones.
        priority: Lower runs first.
        stats: Run statistics and captured failures.
    """

    name: ClassVar[str]
    description: ClassVar[str]
    kind: ClassVar[FeatureKind] = FeatureKind.BOOLEAN
    default_enabled: ClassVar[bool] = False
    default_value: ClassVar[str | None] = None
    priority: int = 0

    def __init__(self, runtime: Runtime) -> None:
        self.runtime = runtime
        self.enabled = self.default_enabled
        self.value: str | None = (
            self.default_value if self.kind is FeatureKind.CONFIGURABLE else None
        )
        self.stats = FeatureStats()
        self._teardown_queue: list[Callable[[], Any]] = []

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r} enabled={self.enabled}>"

    @property
    def page(self) -> Page:
        return self.runtime.page

    @property
    def configurable(self) -> bool:
        return self.kind is FeatureKind.CONFIGURABLE

    @abstractmethod
    async def should_run(self) -> bool:
        """Return True if the feature applies to the current page."""

    @abstractmethod
    async def run(self) -> None:
        """Activate the feature."""

    def on_teardown(self, action: Callable[[], Any]) -> None:
        """Register an action for the next ``cleanup()``."""
        self._teardown_queue.append(action)

    async def cleanup(self) -> None:
        """Run and drop every registered teardown action.

        Safe to call when ``run()`` never ran.  Every action is attempted;
        the first failure is re-raised afterwards.
        """
        actions, self._teardown_queue = self._teardown_queue, []
        first_error: Exception | None = None
        for action in actions:
            try:
                result = action()
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                logger.warning("Teardown action for %s raised: %r", self.name, exc)
                if first_error is None:
                    first_error = exc
        if first_error is not None:
            raise first_error

    async def validate(self, value: str | None) -> bool:
        """Return True if *value* is acceptable configuration (JSON text)."""
        if value is None:
            return True
        try:
            json.loads(value)
        except (TypeError, json.JSONDecodeError):
            return False
        return True

    def format(self, value: str | None) -> str:
        """Canonicalise *value* before it is stored (always as text)."""
        if value is None:
            return ""
        return json.dumps(json.loads(value), indent=2)


class Runtime:
    """Registry and lifecycle driver for the features of one page.

    Attributes:
        page: The page every feature runs against.
        config: Runtime configuration.
        deactivation_timeout: Seconds a feature's cleanup may take.
        skip_sync: Set when this runtime authored a local settings change,
            so remote snapshots are not applied over it.
        settings: The last snapshot passed to ``reconcile()``.
    """

    def __init__(
        self,
        page: Page,
        config: Settings | None = None,
        deactivation_timeout: float | None = None,
    ) -> None:
        self.page = page
        self.config = config if config is not None else get_settings()
        self.deactivation_timeout = (
            deactivation_timeout
            if deactivation_timeout is not None
            else self.config.runtime.deactivation_timeout_seconds
        )
        self.skip_sync = False
        self.settings: SettingsSnapshot = {}
        self._features: dict[str, Feature] = {}
        self._abandoned: set[asyncio.Future[None]] = set()

    # -- registry ----------------------------------------------------------

    def register_feature(self, feature_cls: type[Feature]) -> Feature | None:
        """Instantiate *feature_cls* with this runtime and register it.

        A duplicate name is logged and the new instance is dropped.
        """
        feature = feature_cls(self)
        if feature.name in self._features:
            logger.error("Feature with same name exists: %s", feature.name)
            return None
        self._features[feature.name] = feature
        return feature

    @property
    def features(self) -> list[Feature]:
        """Registered features by ascending priority (stable)."""
        return sorted(self._features.values(), key=lambda f: f.priority)

    def get_feature(self, name: str) -> Feature | None:
        return self._features.get(name)

    # -- reconciliation ----------------------------------------------------

    @staticmethod
    def needs_run(feature: Feature, setting: FeatureSetting | None) -> bool:
        """Decide whether *setting* requires *feature* to be (re)run."""
        if feature.stats.last_run_time is None:
            return True
        if setting is None:
            return True
        if feature.enabled != setting.enabled:
            return True
        return (
            feature.configurable
            and setting.value is not None
            and feature.value != setting.value
        )

    def features_to_run(
        self, snapshot: Mapping[str, FeatureSetting]
    ) -> list[Feature]:
        """The features ``reconcile(snapshot)`` would run, without applying it."""
        return [f for f in self.features if self.needs_run(f, snapshot.get(f.name))]

    async def reconcile(
        self,
        snapshot: Mapping[str, FeatureSetting] | Mapping[str, dict[str, Any]],
        *,
        suppress_run: bool = False,
    ) -> list[Feature]:
        """Apply a settings snapshot and re-run the features it affects.

        Args:
            snapshot: Feature name -> ``{value?, enabled}``.
            suppress_run: Apply the state only (e.g. the change originated
                here, or the caller is an editor rather than a page).

        Returns:
            The features selected for running, in run order.
        """
        settings = coerce_snapshot(dict(snapshot))
        self.settings = settings
        selected = self.features_to_run(settings)

        for feature in self.features:
            setting = settings.get(feature.name)
            if setting is None:
                continue
            feature.enabled = setting.enabled
            if feature.configurable and setting.value is not None:
                feature.value = setting.value

        logger.debug(
            "Reconciled settings; %d feature(s) to run: %s",
            len(selected),
            [f.name for f in selected],
        )
        if selected and not suppress_run:
            await self.run(selected)
        return selected

    # -- lifecycle ---------------------------------------------------------

    async def run(self, features: Iterable[Feature] | None = None) -> None:
        """Clean up and (re)run *features* one at a time, by priority."""
        targets = (
            self.features
            if features is None
            else sorted(features, key=lambda f: f.priority)
        )
        for feature in targets:
            await self._deactivate(feature)
            if not feature.enabled:
                continue
            logger.debug("running enabled feature: %s %s", feature.name, feature.stats)
            phase = "should_run"
            try:
                if await feature.should_run():
                    phase = "run"
                    feature.stats.last_run_time = time.time()
                    feature.stats.run_times += 1
                    await feature.run()
            except Exception as exc:
                self._record_failure(
                    feature, FeatureRuntimeError(feature.name, phase, exc)
                )

    async def _deactivate(self, feature: Feature) -> None:
        """Run ``feature.cleanup()`` bounded by the deactivation timeout.

        A cleanup that does not settle in time is abandoned, not cancelled:
        it may still finish later, but nothing waits for it.
        """
        cleanup = asyncio.ensure_future(feature.cleanup())
        try:
            await asyncio.wait_for(asyncio.shield(cleanup), self.deactivation_timeout)
        except TimeoutError:
            self._record_failure(
                feature,
                DeactivationTimeoutError(feature.name, self.deactivation_timeout),
            )
            self._abandoned.add(cleanup)
            cleanup.add_done_callback(self._on_abandoned_done)
        except Exception as exc:
            self._record_failure(
                feature, FeatureRuntimeError(feature.name, "cleanup", exc)
            )

    def _on_abandoned_done(self, task: asyncio.Future[None]) -> None:
        self._abandoned.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Abandoned cleanup finished with error: %r", exc)
        else:
            logger.debug("Abandoned cleanup finished late")

    def _record_failure(self, feature: Feature, error: FeatureRuntimeError) -> None:
        feature.stats.failures.append(error)
        logger.warning("%s", error, exc_info=error.__cause__)

    # -- diagnostics -------------------------------------------------------

    def stats_report(self) -> list[dict[str, Any]]:
        """Per-feature stats for diagnostic retrieval."""
        return [
            {
                "name": f.name,
                "enabled": f.enabled,
                "priority": f.priority,
                "kind": f.kind.value,
                "last_run_time": f.stats.last_run_time,
                "run_times": f.stats.run_times,
                "failures": [str(e) for e in f.stats.failures],
            }
            for f in self.features
        ]
