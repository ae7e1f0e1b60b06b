# backend/safenet/schemas.py
import re

from pydantic import BaseModel, Field, StrictBool, StrictInt, field_validator
from pydantic.alias_generators import to_camel

from .models import DeviceStatus, Protocol, Severity

BEDTIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


# Booleans and integers use the Strict types: "yes" or "8080" is a 400, not a coercion.
class Payload(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        use_enum_values = True

    def changes(self) -> dict:
        """Fields the client actually sent, keyed by attribute name."""
        return self.model_dump(exclude_unset=True)


def check_bedtime(v):
    if v is not None and not BEDTIME_PATTERN.match(v):
        raise ValueError('bedtime must be formatted as HH:MM')
    return v


def reject_null(v):
    if v is None:
        raise ValueError('may not be null')
    return v


# --- DEVICE SCHEMAS ---
class DeviceCreate(Payload):
    name: str
    ip: str
    mac: str
    device_type: str
    status: DeviceStatus | None = None
    bandwidth: str | None = None
    is_blocked: StrictBool | None = None
    profile: str | None = None


class DeviceUpdate(Payload):
    """Partial device; `profile` is the only field that accepts null."""
    name: str | None = None
    ip: str | None = None
    mac: str | None = None
    device_type: str | None = None
    status: DeviceStatus | None = None
    bandwidth: str | None = None
    is_blocked: StrictBool | None = None
    profile: str | None = None

    @field_validator('name', 'ip', 'mac', 'device_type', 'status', 'bandwidth', 'is_blocked')
    @classmethod
    def not_null(cls, v):
        return reject_null(v)


# --- SECURITY EVENT SCHEMAS ---
class SecurityEventCreate(Payload):
    type: str
    severity: Severity
    title: str
    description: str
    is_read: StrictBool | None = None
    device_id: str | None = None


# --- PARENTAL PROFILE SCHEMAS ---
class ParentalProfileCreate(Payload):
    name: str
    is_active: StrictBool | None = None
    bedtime: str | None = None
    daily_time_limit: StrictInt | None = Field(None, ge=0)
    blocked_categories: list[str] | None = None
    allowed_sites: list[str] | None = None
    blocked_sites: list[str] | None = None

    @field_validator('bedtime')
    @classmethod
    def validate_bedtime(cls, v):
        return check_bedtime(v)


class ParentalProfileUpdate(Payload):
    name: str | None = None
    is_active: StrictBool | None = None
    bedtime: str | None = None
    daily_time_limit: StrictInt | None = Field(None, ge=0)
    blocked_categories: list[str] | None = None
    allowed_sites: list[str] | None = None
    blocked_sites: list[str] | None = None

    @field_validator('bedtime')
    @classmethod
    def validate_bedtime(cls, v):
        return check_bedtime(v)

    @field_validator('name', 'is_active', 'blocked_categories', 'allowed_sites', 'blocked_sites')
    @classmethod
    def not_null(cls, v):
        return reject_null(v)


# --- NETWORK SCHEMAS ---
class NetworkSettingsUpdate(Payload):
    ssid: str | None = None
    password: str | None = None
    security: str | None = None
    channel: str | None = None
    guest_enabled: StrictBool | None = None
    guest_ssid: str | None = None
    guest_password: str | None = None
    firewall_enabled: StrictBool | None = None
    ddos_protection: StrictBool | None = None
    vpn_enabled: StrictBool | None = None

    @field_validator('*')
    @classmethod
    def not_null(cls, v):
        return reject_null(v)


class PortForwardRuleCreate(Payload):
    name: str
    external_port: StrictInt = Field(..., ge=1, le=65535)
    internal_ip: str
    internal_port: StrictInt = Field(..., ge=1, le=65535)
    protocol: Protocol | None = None
    is_enabled: StrictBool | None = None


# --- RESPONSE SCHEMAS ---
class DeleteResponse(BaseModel):
    success: bool


class FieldError(BaseModel):
    field: str
    message: str
    type: str


class ValidationErrorResponse(BaseModel):
    message: str
    errors: list[FieldError]
