"""Error taxonomy for the feature runtime.

Only ``ConfigurationError`` is meant to reach callers. The others are
recorded at their own boundary (feature stats, scheduler instances) and
kept for diagnostics.
"""

from __future__ import annotations


class TalfredError(Exception):
    """Base class for all talfred errors."""


class ConfigurationError(TalfredError):
    """A feature value failed validation and was not applied."""

    def __init__(self, feature_name: str, value: str | None = None) -> None:
        self.feature_name = feature_name
        self.value = value
        super().__init__(f"Invalid configuration for feature '{feature_name}'")


class FeatureRuntimeError(TalfredError):
    """A feature's should_run/run/cleanup raised.

    The original exception is kept on ``__cause__``.
    """

    def __init__(
        self,
        feature_name: str,
        phase: str,
        cause: BaseException | None = None,
        message: str | None = None,
    ) -> None:
        self.feature_name = feature_name
        self.phase = phase
        if message is None:
            message = f"Feature '{feature_name}' failed during {phase}"
            if cause is not None:
                message = f"{message}: {cause!r}"
        super().__init__(message)
        self.__cause__ = cause


class DeactivationTimeoutError(FeatureRuntimeError):
    """A feature's cleanup did not settle within the deactivation timeout."""

    def __init__(self, feature_name: str, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(
            feature_name,
            "cleanup",
            message=f"Feature '{feature_name}' cleanup timed out after {timeout:g}s",
        )


class SchedulerTaskError(TalfredError):
    """A scheduled task's work raised."""

    def __init__(self, task_name: str, cause: BaseException) -> None:
        self.task_name = task_name
        super().__init__(f"Scheduled task '{task_name}' failed: {cause!r}")
        self.__cause__ = cause
