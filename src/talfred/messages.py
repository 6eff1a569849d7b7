"""Settings sync protocol between content scripts and the background process."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, TypeAdapter


class EventName(StrEnum):
    """All supported event names."""

    SYNC_SETTINGS_REQUEST = "sync_settings_request"
    SYNC_SETTINGS_RESPONSE = "sync_settings_response"
    UPDATE_SETTINGS_REQUEST = "update_settings_request"
    RESET_SETTINGS_REQUEST = "reset_settings_request"


class FeatureSetting(BaseModel):
    """Stored setting for one feature."""

    model_config = ConfigDict(extra="ignore")

    value: str | None = None
    enabled: bool


# Feature name -> setting.
SettingsSnapshot = dict[str, FeatureSetting]

snapshot_adapter: TypeAdapter[SettingsSnapshot] = TypeAdapter(SettingsSnapshot)


class Message(BaseModel):
    """A message on the settings channel."""

    event_name: EventName
    settings: SettingsSnapshot | None = None


def coerce_snapshot(
    snapshot: dict[str, FeatureSetting] | dict[str, dict[str, object]],
) -> SettingsSnapshot:
    """Validate a plain mapping (e.g. decoded JSON) into a snapshot."""
    return snapshot_adapter.validate_python(snapshot)
