# tests/test_events.py
"""Tests for registry notifications and the event log."""

import tempfile
from pathlib import Path

import pytest

from avatarreg import Registry
from avatarreg.events import CreatedEvent, Event, EventLog, TransferredEvent, UpdatedEvent


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


class TestEventTypes:
    """Tests for event constructors."""

    def test_created(self):
        event = CreatedEvent.for_avatar(1, "0xalice", "Hero")
        assert event.event_type == "Created"
        assert event.avatar_id == 1
        assert event.payload == {"owner": "0xalice", "name": "Hero"}
        assert event.signature is None

    def test_updated(self):
        event = UpdatedEvent.for_avatar(1, "Hero", 4)
        assert event.event_type == "Updated"
        assert event.payload == {"name": "Hero", "level": 4}

    def test_transferred(self):
        event = TransferredEvent.for_avatar(1, "0xalice", "0xbob")
        assert event.event_type == "Transferred"
        assert event.payload == {"from": "0xalice", "to": "0xbob"}

    def test_unique_ids(self):
        a = CreatedEvent.for_avatar(1, "0xalice", "Hero")
        b = CreatedEvent.for_avatar(1, "0xalice", "Hero")
        assert a.event_id != b.event_id

    def test_serialization(self):
        event = TransferredEvent.for_avatar(3, "0xalice", "0xbob")
        restored = Event.from_dict(event.to_dict())
        assert restored.event_id == event.event_id
        assert restored.event_type == "Transferred"
        assert restored.payload == event.payload
        assert restored.emitted_at == event.emitted_at


class TestEventLog:
    """Tests for EventLog."""

    def test_in_memory(self):
        log = EventLog()
        log.append(CreatedEvent.for_avatar(1, "0xalice", "Hero"))
        log.append(UpdatedEvent.for_avatar(1, "Hero", 2))
        log.append(CreatedEvent.for_avatar(2, "0xbob", "Other"))

        assert len(log) == 3
        assert [e.avatar_id for e in log.find_by_avatar(1)] == [1, 1]
        assert len(log.find_by_type("Created")) == 2

    def test_listeners_receive_events(self):
        log = EventLog()
        received = []
        log.subscribe(received.append)

        event = CreatedEvent.for_avatar(1, "0xalice", "Hero")
        log.append(event)
        assert received == [event]

        assert log.unsubscribe(received.append)
        log.append(UpdatedEvent.for_avatar(1, "Hero", 2))
        assert len(received) == 1
        assert not log.unsubscribe(received.append)

    def test_failing_listener_does_not_break_log(self):
        log = EventLog()
        received = []

        def broken(event):
            raise RuntimeError("observer down")

        log.subscribe(broken)
        log.subscribe(received.append)
        log.append(CreatedEvent.for_avatar(1, "0xalice", "Hero"))

        assert len(log) == 1
        assert len(received) == 1

    def test_persistence(self, temp_dir):
        log = EventLog(temp_dir)
        log.append(CreatedEvent.for_avatar(1, "0xalice", "Hero"))

        reloaded = EventLog(temp_dir)
        assert len(reloaded) == 1
        assert reloaded.list()[0].payload["name"] == "Hero"

    def test_corrupt_file_ignored(self, temp_dir):
        (temp_dir / "events.json").write_text("{not json")
        log = EventLog(temp_dir)
        assert len(log) == 0

    def test_failed_write_leaves_log_unchanged(self, temp_dir, monkeypatch):
        log = EventLog(temp_dir)
        log.append(CreatedEvent.for_avatar(1, "0xalice", "Hero"))
        received = []
        log.subscribe(received.append)

        def disk_full(events):
            raise OSError("disk full")

        monkeypatch.setattr(log, "_save", disk_full)
        with pytest.raises(OSError):
            log.append(UpdatedEvent.for_avatar(1, "Hero", 2))

        assert len(log) == 1
        assert received == []
        monkeypatch.undo()
        assert len(EventLog(temp_dir)) == 1

    def test_refresh_picks_up_other_writer(self, temp_dir):
        first = EventLog(temp_dir)
        first.append(CreatedEvent.for_avatar(1, "0xalice", "Hero"))

        second = EventLog(temp_dir)
        second.append(CreatedEvent.for_avatar(2, "0xbob", "Other"))

        assert [e.avatar_id for e in first.list()] == [1, 2]
        first.append(UpdatedEvent.for_avatar(1, "Hero", 2))
        assert len(EventLog(temp_dir)) == 3


class TestRegistryEmission:
    """Tests for event emission order from the registry."""

    def test_emission_order(self):
        registry = Registry(admin="0xadmin")
        seen = []
        registry.events.subscribe(lambda e: seen.append(e.event_type))

        avatar_id = registry.create("Hero", "Qm123", caller="0xalice")
        registry.update(avatar_id, level_increase=1, caller="0xalice")
        registry.deactivate(avatar_id, caller="0xalice")
        registry.reactivate(avatar_id, caller="0xalice")
        registry.transfer(avatar_id, "0xbob", caller="0xalice")

        assert seen == ["Created", "Updated", "Transferred"]

    def test_listener_sees_committed_state(self):
        registry = Registry(admin="0xadmin")
        levels = []
        registry.events.subscribe(
            lambda e: levels.append(registry.get_avatar(e.avatar_id).level)
        )

        avatar_id = registry.create("Hero", "Qm123", caller="0xalice")
        registry.update(avatar_id, level_increase=2, caller="0xalice")
        assert levels == [1, 3]

    def test_shared_event_log(self):
        log = EventLog()
        registry = Registry(admin="0xadmin", event_log=log)
        registry.create("Hero", "Qm123", caller="0xalice")
        assert registry.events is log
        assert len(log) == 1
