import pytest

from safenet import crud
from safenet.database import create_database
from safenet.models import SETTINGS_ID, STATS_ID


def _device(name="Laptop", **extra):
    data = {"name": name, "ip": "192.168.1.20", "mac": "00:11:22:33:44:55", "device_type": "laptop"}
    data.update(extra)
    return data


@pytest.mark.asyncio
async def test_create_device_fills_defaults(db):
    device = await crud.create_device(db, _device())

    assert device.id
    assert device.status == "active"
    assert device.bandwidth == "0 Mbps"
    assert device.is_blocked is False
    assert device.profile is None
    assert device.connection_time is not None


@pytest.mark.asyncio
async def test_created_ids_are_unique(db):
    ids = {(await crud.create_device(db, _device(f"d{i}"))).id for i in range(50)}
    assert len(ids) == 50
    assert "" not in ids


@pytest.mark.asyncio
async def test_get_missing_returns_none(db):
    assert await crud.get_device(db, "nope") is None
    assert await crud.get_parental_profile(db, "nope") is None
    assert await crud.get_security_event(db, "nope") is None


@pytest.mark.asyncio
async def test_update_device_keeps_untouched_fields(db):
    device = await crud.create_device(db, _device(bandwidth="12.8 Mbps", profile="kids"))

    updated = await crud.update_device(db, device.id, {"name": "Work Laptop"})

    assert updated.name == "Work Laptop"
    assert updated.bandwidth == "12.8 Mbps"
    assert updated.profile == "kids"
    assert updated.connection_time == device.connection_time
    assert updated.id == device.id


@pytest.mark.asyncio
async def test_status_and_is_blocked_are_independent(db):
    device = await crud.create_device(db, _device())

    updated = await crud.update_device(db, device.id, {"status": "blocked"})

    assert updated.status == "blocked"
    assert updated.is_blocked is False


@pytest.mark.asyncio
async def test_update_ignores_id_in_payload(db):
    device = await crud.create_device(db, _device())

    updated = await crud.update_device(db, device.id, {"id": "hijack", "bandwidth": "1 Mbps"})

    assert updated.id == device.id
    assert await crud.get_device(db, "hijack") is None


@pytest.mark.asyncio
async def test_update_and_delete_missing_leave_state_unchanged(db):
    await crud.create_device(db, _device())
    before = await crud.get_devices(db)

    assert await crud.update_device(db, "missing", {"name": "x"}) is None
    assert await crud.delete_device(db, "missing") is False
    assert await crud.update_parental_profile(db, "missing", {"name": "x"}) is None
    assert await crud.delete_parental_profile(db, "missing") is False
    assert await crud.delete_port_forward_rule(db, "missing") is False
    assert await crud.mark_event_as_read(db, "missing") is None

    assert await crud.get_devices(db) == before
    assert (await crud.get_network_stats(db)).total_devices == 1


@pytest.mark.asyncio
async def test_total_devices_tracks_creates_and_deletes(db):
    created = []
    for i in range(4):
        created.append(await crud.create_device(db, _device(f"d{i}")))
        assert (await crud.get_network_stats(db)).total_devices == i + 1

    assert await crud.delete_device(db, created[1].id) is True
    assert await crud.delete_device(db, created[1].id) is False
    stats = await crud.get_network_stats(db)
    assert stats.total_devices == len(await crud.get_devices(db)) == 3


@pytest.mark.asyncio
async def test_returned_records_are_copies(db):
    profile = await crud.create_parental_profile(db, {"name": "Kids", "blocked_sites": ["a.com"]})

    profile.blocked_sites.append("b.com")
    profile.name = "changed"

    stored = await crud.get_parental_profile(db, profile.id)
    assert stored.blocked_sites == ["a.com"]
    assert stored.name == "Kids"


@pytest.mark.asyncio
async def test_profile_defaults_and_partial_update_keeps_lists(db):
    profile = await crud.create_parental_profile(db, {
        "name": "Kids Profile",
        "blocked_categories": ["adult"],
        "blocked_sites": ["games.example"],
    })
    assert profile.is_active is True
    assert profile.bedtime is None
    assert profile.daily_time_limit is None
    assert profile.allowed_sites == []

    updated = await crud.update_parental_profile(db, profile.id, {"is_active": False})

    assert updated.is_active is False
    assert updated.blocked_sites == ["games.example"]
    assert updated.blocked_categories == ["adult"]


@pytest.mark.asyncio
async def test_profile_is_active_false_is_kept_on_create(db):
    profile = await crud.create_parental_profile(db, {"name": "Guest", "is_active": False})
    assert profile.is_active is False


@pytest.mark.asyncio
async def test_profile_zero_time_limit_is_kept(db):
    profile = await crud.create_parental_profile(db, {"name": "Grounded", "daily_time_limit": 0})
    assert profile.daily_time_limit == 0

    updated = await crud.update_parental_profile(db, profile.id, {"daily_time_limit": None})
    assert updated.daily_time_limit is None


@pytest.mark.asyncio
async def test_security_events_newest_first(db):
    for i in range(5):
        await crud.create_security_event(db, {
            "type": "intrusion", "severity": "high", "title": f"e{i}", "description": "x",
        })

    listed = await crud.get_security_events(db)

    timestamps = [e.timestamp for e in listed]
    assert timestamps == sorted(timestamps, reverse=True)
    assert listed[0].title == "e4"


@pytest.mark.asyncio
async def test_mark_event_as_read(db):
    event = await crud.create_security_event(db, {
        "type": "new_device", "severity": "low", "title": "New device", "description": "joined",
    })
    assert event.is_read is False
    assert event.device_id is None

    read = await crud.mark_event_as_read(db, event.id)

    assert read.is_read is True
    assert read.title == "New device"


@pytest.mark.asyncio
async def test_settings_singleton_partial_merge(db):
    settings = await crud.get_network_settings(db)
    assert settings.id == SETTINGS_ID
    assert settings.ssid == "MyHomeNetwork"

    updated = await crud.update_network_settings(db, {"vpn_enabled": True})

    assert updated.vpn_enabled is True
    assert updated.ssid == "MyHomeNetwork"
    assert updated.firewall_enabled is True
    assert updated.id == SETTINGS_ID


@pytest.mark.asyncio
async def test_update_stats_stamps_last_updated(db):
    before = await crud.get_network_stats(db)
    assert before.id == STATS_ID

    first = await crud.update_network_stats(db, {"upload_speed": "11.0 Mbps"})
    second = await crud.update_network_stats(db, {})

    assert first.last_updated >= before.last_updated
    assert second.last_updated >= first.last_updated
    assert second.upload_speed == "11.0 Mbps"
    assert second.download_speed == before.download_speed


@pytest.mark.asyncio
async def test_port_forward_rule_defaults(db):
    rule = await crud.create_port_forward_rule(db, {
        "name": "Minecraft", "external_port": 25565, "internal_ip": "192.168.1.50",
        "internal_port": 25565,
    })

    assert rule.protocol == "TCP"
    assert rule.is_enabled is True
    assert [r.id for r in await crud.get_port_forward_rules(db)] == [rule.id]
    assert (await crud.get_port_forward_rule(db, rule.id)).internal_port == 25565
    assert await crud.delete_port_forward_rule(db, rule.id) is True
    assert await crud.get_port_forward_rule(db, rule.id) is None
    assert await crud.get_port_forward_rules(db) == []


def test_seeded_database_matches_device_count():
    db = create_database(seed=True)

    assert len(db.devices) == 3
    assert len(db.security_events) == 2
    assert len(db.parental_profiles) == 2
    assert db.network_stats.total_devices == 3


def test_shutdown_releases_collections():
    db = create_database(seed=True)
    db.shutdown()

    assert db.devices == {}
    assert db.is_open is False
