# avatarreg/events.py
"""
Registry notifications.

Events are emitted after each successful mutation for external observers.
Event types:
- Created: an avatar was minted
- Updated: an avatar's name, content, level or attributes changed
- Transferred: an avatar changed owner

Deactivate and Reactivate emit nothing.
"""

import json
import logging
import os
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

Listener = Callable[["Event"], None]


def _generate_id() -> str:
    """Generate unique event ID."""
    return str(uuid.uuid4())


@dataclass
class Event:
    """
    Base registry event.

    Attributes:
        event_id: Unique identifier
        event_type: Created, Updated or Transferred
        avatar_id: The avatar the event is about
        payload: Event-specific fields
        emitted_at: Timestamp of emission
        signature: Signature block (added when the registry has a signer)
    """
    event_id: str
    event_type: str
    avatar_id: int
    payload: Dict[str, Any]
    emitted_at: float = field(default_factory=time.time)
    signature: Optional[Dict[str, Any]] = None

    def signable(self) -> Dict[str, Any]:
        """The event fields covered by a signature."""
        return {
            "id": self.event_id,
            "type": self.event_type,
            "avatarId": self.avatar_id,
            "payload": self.payload,
            "emittedAt": self.emitted_at,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for storage."""
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "avatar_id": self.avatar_id,
            "payload": self.payload,
            "emitted_at": self.emitted_at,
            "signature": self.signature,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Event":
        """Deserialize from storage."""
        return cls(
            event_id=data["event_id"],
            event_type=data["event_type"],
            avatar_id=data["avatar_id"],
            payload=data["payload"],
            emitted_at=data.get("emitted_at", 0.0),
            signature=data.get("signature"),
        )


@dataclass
class CreatedEvent(Event):
    """Created(id, owner, name)."""
    event_type: str = field(default="Created", init=False)

    @classmethod
    def for_avatar(cls, avatar_id: int, owner: str, name: str) -> "CreatedEvent":
        return cls(
            event_id=_generate_id(),
            avatar_id=avatar_id,
            payload={"owner": owner, "name": name},
        )


@dataclass
class UpdatedEvent(Event):
    """Updated(id, name, level), carrying the values after the update."""
    event_type: str = field(default="Updated", init=False)

    @classmethod
    def for_avatar(cls, avatar_id: int, name: str, level: int) -> "UpdatedEvent":
        return cls(
            event_id=_generate_id(),
            avatar_id=avatar_id,
            payload={"name": name, "level": level},
        )


@dataclass
class TransferredEvent(Event):
    """Transferred(id, from, to)."""
    event_type: str = field(default="Transferred", init=False)

    @classmethod
    def for_avatar(cls, avatar_id: int, from_owner: str, to_owner: str) -> "TransferredEvent":
        return cls(
            event_id=_generate_id(),
            avatar_id=avatar_id,
            payload={"from": from_owner, "to": to_owner},
        )


class EventLog:
    """
    Ordered log of emitted events with listener fan-out.

    When given a directory, the log is persisted to events.json, reloaded
    on startup, and reloaded again whenever the file changes on disk.
    """

    def __init__(self, store_dir: Path | str = None):
        self.store_dir = Path(store_dir) if store_dir else None
        self._events: List[Event] = []
        self._listeners: List[Listener] = []
        self._stamp: Optional[Tuple[int, int]] = None
        if self.store_dir:
            self.store_dir.mkdir(parents=True, exist_ok=True)
            self._load()

    def _index_path(self) -> Path:
        return self.store_dir / "events.json"

    def _current_stamp(self) -> Optional[Tuple[int, int]]:
        try:
            stat = self._index_path().stat()
        except FileNotFoundError:
            return None
        return stat.st_mtime_ns, stat.st_size

    def _load(self):
        """Load events from disk."""
        index_path = self._index_path()
        if index_path.exists():
            try:
                with open(index_path) as f:
                    data = json.load(f)
                self._events = [Event.from_dict(e) for e in data.get("events", [])]
            except (json.JSONDecodeError, KeyError) as e:
                logger.warning(f"Failed to load events: {e}")
                self._events = []
        self._stamp = self._current_stamp()

    def _save(self, events: List[Event]):
        """Save events to disk."""
        data = {
            "version": "1.0",
            "events": [e.to_dict() for e in events],
        }
        tmp_path = self._index_path().with_suffix(".tmp")
        with open(tmp_path, "w") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, self._index_path())
        self._stamp = self._current_stamp()

    def refresh(self) -> None:
        """Reload if another writer changed events.json."""
        if self.store_dir and self._current_stamp() != self._stamp:
            self._load()

    def subscribe(self, listener: Listener) -> None:
        """Register a callback invoked with every appended event."""
        self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> bool:
        if listener not in self._listeners:
            return False
        self._listeners.remove(listener)
        return True

    def append(self, event: Event) -> None:
        """
        Record an event and deliver it to listeners.

        The event only joins the log once it is written; a failed write
        raises and leaves the log as it was.
        """
        events = self._events + [event]
        if self.store_dir:
            self._save(events)
        self._events = events

        # The mutation is already committed; a failing observer must not undo it
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(f"Event listener failed on {event.event_type} {event.event_id}")

    def list(self) -> List[Event]:
        """List all events in emission order."""
        self.refresh()
        return list(self._events)

    def find_by_avatar(self, avatar_id: int) -> List[Event]:
        """Find all events about an avatar."""
        return [e for e in self._events if e.avatar_id == avatar_id]

    def find_by_type(self, event_type: str) -> List[Event]:
        return [e for e in self._events if e.event_type == event_type]

    def __len__(self) -> int:
        return len(self._events)
