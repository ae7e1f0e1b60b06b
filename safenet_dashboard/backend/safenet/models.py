# ==============================================================================
# == backend/safenet/models.py - Entity records held by the in-memory store  ==
# ==============================================================================

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

SETTINGS_ID = "main"
STATS_ID = "current"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeviceStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    BLOCKED = "blocked"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Protocol(str, Enum):
    TCP = "TCP"
    UDP = "UDP"
    BOTH = "Both"


class Record(BaseModel):
    """Base for every entity: snake_case in Python, camelCase on the wire."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        use_enum_values = True

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class Device(Record):
    id: str
    name: str
    ip: str
    mac: str
    device_type: str
    status: DeviceStatus = DeviceStatus.ACTIVE
    bandwidth: str = "0 Mbps"
    connection_time: datetime = Field(default_factory=utcnow)
    is_blocked: bool = False
    # weak reference to a ParentalProfile id, never checked
    profile: str | None = None


class SecurityEvent(Record):
    id: str
    type: str
    severity: Severity
    title: str
    description: str
    timestamp: datetime = Field(default_factory=utcnow)
    is_read: bool = False
    device_id: str | None = None


class ParentalProfile(Record):
    id: str
    name: str
    is_active: bool = True
    bedtime: str | None = None
    daily_time_limit: int | None = None
    blocked_categories: list[str] = Field(default_factory=list)
    allowed_sites: list[str] = Field(default_factory=list)
    blocked_sites: list[str] = Field(default_factory=list)


class NetworkSettings(Record):
    id: str = SETTINGS_ID
    ssid: str = "MyHomeNetwork"
    password: str = "SecurePassword123"
    security: str = "WPA3"
    channel: str = "Auto"
    guest_enabled: bool = False
    guest_ssid: str = "MyHomeNetwork_Guest"
    guest_password: str = "Welcome123"
    firewall_enabled: bool = True
    ddos_protection: bool = True
    vpn_enabled: bool = False


class NetworkStats(Record):
    id: str = STATS_ID
    upload_speed: str = "23.4 Mbps"
    download_speed: str = "156.8 Mbps"
    total_devices: int = 0
    data_usage: str = "2.3 GB"
    last_updated: datetime = Field(default_factory=utcnow)


class PortForwardRule(Record):
    id: str
    name: str
    external_port: int
    internal_ip: str
    internal_port: int
    protocol: Protocol = Protocol.TCP
    is_enabled: bool = True
