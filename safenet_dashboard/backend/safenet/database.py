# ==============================================================================
# == backend/safenet/database.py - In-memory state for the dashboard         ==
# ==============================================================================

import logging
import uuid

from . import models

logger = logging.getLogger(__name__)


class InMemoryDatabase:
    """
    Keyed collections for every entity kind plus the two singleton records.

    The database is the only owner of these objects; crud hands out copies.
    Nothing here awaits, so every operation built on top of it runs to
    completion before another coroutine can observe the state.
    """

    def __init__(self):
        self.devices: dict[str, models.Device] = {}
        self.security_events: dict[str, models.SecurityEvent] = {}
        self.parental_profiles: dict[str, models.ParentalProfile] = {}
        self.port_forward_rules: dict[str, models.PortForwardRule] = {}
        self.network_settings = models.NetworkSettings()
        self.network_stats = models.NetworkStats()
        self.is_open = True

    def new_id(self, table: dict) -> str:
        while True:
            candidate = str(uuid.uuid4())
            if candidate not in table:
                return candidate

    def sync_device_count(self) -> None:
        self.network_stats = self.network_stats.model_copy(
            update={"total_devices": len(self.devices)}
        )

    def shutdown(self) -> None:
        self.devices.clear()
        self.security_events.clear()
        self.parental_profiles.clear()
        self.port_forward_rules.clear()
        self.is_open = False
        logger.info("In-memory database released")


DEFAULT_DEVICES = [
    {"name": "MacBook Pro", "ip": "192.168.1.101", "mac": "00:1B:44:11:3A:B7",
     "device_type": "laptop", "bandwidth": "45.2 Mbps"},
    {"name": "iPhone 14", "ip": "192.168.1.102", "mac": "00:1B:44:11:3A:B8",
     "device_type": "phone", "bandwidth": "12.8 Mbps"},
    {"name": "Security Camera", "ip": "192.168.1.150", "mac": "00:1B:44:11:3A:B9",
     "device_type": "camera", "bandwidth": "8.5 Mbps"},
]

DEFAULT_EVENTS = [
    {"type": "system_status", "severity": "low", "title": "All systems secure",
     "description": "Last scan completed successfully"},
    {"type": "firmware_update", "severity": "medium", "title": "Firmware update available",
     "description": "Version 2.1.3 includes security patches"},
]

DEFAULT_PROFILES = [
    {"name": "Kids Profile", "is_active": True, "bedtime": "21:00", "daily_time_limit": 120,
     "blocked_categories": ["adult", "social_media"],
     "allowed_sites": ["education.com", "khan-academy.org"]},
    {"name": "Guest Profile", "is_active": False, "blocked_categories": ["adult"]},
]


def seed_default_data(db: InMemoryDatabase) -> None:
    for data in DEFAULT_DEVICES:
        device_id = db.new_id(db.devices)
        db.devices[device_id] = models.Device(id=device_id, **data)

    for data in DEFAULT_EVENTS:
        event_id = db.new_id(db.security_events)
        db.security_events[event_id] = models.SecurityEvent(id=event_id, **data)

    for data in DEFAULT_PROFILES:
        profile_id = db.new_id(db.parental_profiles)
        db.parental_profiles[profile_id] = models.ParentalProfile(id=profile_id, **data)

    db.sync_device_count()
    logger.info(
        f"Seeded {len(db.devices)} devices, {len(db.security_events)} events, "
        f"{len(db.parental_profiles)} profiles"
    )


def create_database(seed: bool = True) -> InMemoryDatabase:
    db = InMemoryDatabase()
    if seed:
        seed_default_data(db)
    return db
