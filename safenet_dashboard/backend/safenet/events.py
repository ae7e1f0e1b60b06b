# backend/safenet/events.py
"""
Tagged payloads pushed to UI clients over /ws.

Every message is a JSON object with a `type` discriminator; clients ignore
types they do not know.
"""

from enum import Enum

from . import models


class EventType(str, Enum):
    DEVICE_ADDED = "device_added"
    DEVICE_UPDATED = "device_updated"
    DEVICE_DELETED = "device_deleted"
    SECURITY_EVENT = "security_event"
    SETTINGS_UPDATED = "settings_updated"
    STATS_UPDATED = "stats_updated"


def device_added(device: models.Device) -> dict:
    return {"type": EventType.DEVICE_ADDED.value, "device": device.to_wire()}


def device_updated(device: models.Device) -> dict:
    return {"type": EventType.DEVICE_UPDATED.value, "device": device.to_wire()}


def device_deleted(device_id: str) -> dict:
    return {"type": EventType.DEVICE_DELETED.value, "id": device_id}


def security_event(event: models.SecurityEvent) -> dict:
    return {"type": EventType.SECURITY_EVENT.value, "event": event.to_wire()}


def settings_updated(settings: models.NetworkSettings) -> dict:
    return {"type": EventType.SETTINGS_UPDATED.value, "settings": settings.to_wire()}


def stats_updated(stats: models.NetworkStats) -> dict:
    return {"type": EventType.STATS_UPDATED.value, "stats": stats.to_wire()}
