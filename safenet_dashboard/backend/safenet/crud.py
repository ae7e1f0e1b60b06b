# backend/safenet/crud.py
import copy

from . import models
from .database import InMemoryDatabase


def _merge(record, updates: dict):
    """Overlay the given fields on a copy of record; id and unknown keys are ignored."""
    fields = type(record).model_fields
    changes = {k: copy.deepcopy(v) for k, v in updates.items() if k in fields and k != "id"}
    return record.model_copy(update=changes, deep=True)


def _snapshot(record):
    return record.model_copy(deep=True) if record is not None else None


def _or_default(data: dict, key: str, default):
    value = data.get(key)
    return default if value is None else value


# --- DEVICE OPERATIONS ---
async def get_devices(db: InMemoryDatabase) -> list[models.Device]:
    return [_snapshot(d) for d in db.devices.values()]


async def get_device(db: InMemoryDatabase, device_id: str) -> models.Device | None:
    return _snapshot(db.devices.get(device_id))


async def create_device(db: InMemoryDatabase, device_data: dict) -> models.Device:
    device_id = db.new_id(db.devices)
    device = models.Device(
        id=device_id,
        name=device_data["name"],
        ip=device_data["ip"],
        mac=device_data["mac"],
        device_type=device_data["device_type"],
        status=_or_default(device_data, "status", models.DeviceStatus.ACTIVE.value),
        bandwidth=_or_default(device_data, "bandwidth", "0 Mbps"),
        is_blocked=_or_default(device_data, "is_blocked", False),
        profile=device_data.get("profile"),
    )
    db.devices[device_id] = device
    db.sync_device_count()
    return _snapshot(device)


async def update_device(db: InMemoryDatabase, device_id: str, updates: dict) -> models.Device | None:
    device = db.devices.get(device_id)
    if not device:
        return None

    updated = _merge(device, updates)
    db.devices[device_id] = updated
    return _snapshot(updated)


async def delete_device(db: InMemoryDatabase, device_id: str) -> bool:
    if db.devices.pop(device_id, None) is None:
        return False
    db.sync_device_count()
    return True


# --- SECURITY EVENT OPERATIONS ---
async def get_security_events(db: InMemoryDatabase) -> list[models.SecurityEvent]:
    # newest first; among equal timestamps the later insert wins
    newest_inserted_first = reversed(list(db.security_events.values()))
    events = sorted(newest_inserted_first, key=lambda e: e.timestamp, reverse=True)
    return [_snapshot(e) for e in events]


async def get_security_event(db: InMemoryDatabase, event_id: str) -> models.SecurityEvent | None:
    return _snapshot(db.security_events.get(event_id))


async def create_security_event(db: InMemoryDatabase, event_data: dict) -> models.SecurityEvent:
    event_id = db.new_id(db.security_events)
    event = models.SecurityEvent(
        id=event_id,
        type=event_data["type"],
        severity=event_data["severity"],
        title=event_data["title"],
        description=event_data["description"],
        is_read=_or_default(event_data, "is_read", False),
        device_id=event_data.get("device_id"),
    )
    db.security_events[event_id] = event
    return _snapshot(event)


async def mark_event_as_read(db: InMemoryDatabase, event_id: str) -> models.SecurityEvent | None:
    event = db.security_events.get(event_id)
    if not event:
        return None

    updated = _merge(event, {"is_read": True})
    db.security_events[event_id] = updated
    return _snapshot(updated)


# --- PARENTAL PROFILE OPERATIONS ---
async def get_parental_profiles(db: InMemoryDatabase) -> list[models.ParentalProfile]:
    return [_snapshot(p) for p in db.parental_profiles.values()]


async def get_parental_profile(db: InMemoryDatabase, profile_id: str) -> models.ParentalProfile | None:
    return _snapshot(db.parental_profiles.get(profile_id))


async def create_parental_profile(db: InMemoryDatabase, profile_data: dict) -> models.ParentalProfile:
    profile_id = db.new_id(db.parental_profiles)
    profile = models.ParentalProfile(
        id=profile_id,
        name=profile_data["name"],
        is_active=_or_default(profile_data, "is_active", True),
        bedtime=profile_data.get("bedtime"),
        daily_time_limit=profile_data.get("daily_time_limit"),
        blocked_categories=list(_or_default(profile_data, "blocked_categories", [])),
        allowed_sites=list(_or_default(profile_data, "allowed_sites", [])),
        blocked_sites=list(_or_default(profile_data, "blocked_sites", [])),
    )
    db.parental_profiles[profile_id] = profile
    return _snapshot(profile)


async def update_parental_profile(
    db: InMemoryDatabase, profile_id: str, updates: dict
) -> models.ParentalProfile | None:
    profile = db.parental_profiles.get(profile_id)
    if not profile:
        return None

    updated = _merge(profile, updates)
    db.parental_profiles[profile_id] = updated
    return _snapshot(updated)


async def delete_parental_profile(db: InMemoryDatabase, profile_id: str) -> bool:
    return db.parental_profiles.pop(profile_id, None) is not None


# --- NETWORK SETTINGS / STATS ---
async def get_network_settings(db: InMemoryDatabase) -> models.NetworkSettings:
    return _snapshot(db.network_settings)


async def update_network_settings(db: InMemoryDatabase, updates: dict) -> models.NetworkSettings:
    db.network_settings = _merge(db.network_settings, updates)
    return _snapshot(db.network_settings)


async def get_network_stats(db: InMemoryDatabase) -> models.NetworkStats:
    return _snapshot(db.network_stats)


async def update_network_stats(db: InMemoryDatabase, updates: dict) -> models.NetworkStats:
    """Merge updates and stamp last_updated; the stamp never moves backwards."""
    previous = db.network_stats.last_updated
    stamped = max(models.utcnow(), previous)
    db.network_stats = _merge(db.network_stats, {**updates, "last_updated": stamped})
    return _snapshot(db.network_stats)


# --- PORT FORWARD RULE OPERATIONS ---
async def get_port_forward_rules(db: InMemoryDatabase) -> list[models.PortForwardRule]:
    return [_snapshot(r) for r in db.port_forward_rules.values()]


async def get_port_forward_rule(db: InMemoryDatabase, rule_id: str) -> models.PortForwardRule | None:
    return _snapshot(db.port_forward_rules.get(rule_id))


async def create_port_forward_rule(db: InMemoryDatabase, rule_data: dict) -> models.PortForwardRule:
    rule_id = db.new_id(db.port_forward_rules)
    rule = models.PortForwardRule(
        id=rule_id,
        name=rule_data["name"],
        external_port=rule_data["external_port"],
        internal_ip=rule_data["internal_ip"],
        internal_port=rule_data["internal_port"],
        protocol=_or_default(rule_data, "protocol", models.Protocol.TCP.value),
        is_enabled=_or_default(rule_data, "is_enabled", True),
    )
    db.port_forward_rules[rule_id] = rule
    return _snapshot(rule)


async def delete_port_forward_rule(db: InMemoryDatabase, rule_id: str) -> bool:
    return db.port_forward_rules.pop(rule_id, None) is not None
