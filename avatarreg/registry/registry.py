# avatarreg/registry/registry.py
"""
Avatar registry.

The registry records ownership and mutable metadata for avatars:
- Sequential, never-reused ids
- Per-owner index of held avatars
- Owner-gated update, transfer, deactivate and reactivate
- Append-only attributes and monotonically growing level

Avatars are never deleted. Deactivation only blocks owner-gated mutation.
"""

import json
import logging
import os
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from ..errors import Inactive, InvalidArgument, NotFound, Unauthorized
from ..events import CreatedEvent, Event, EventLog, TransferredEvent, UpdatedEvent
from ..identity import Identity
from ..signatures import sign_event

logger = logging.getLogger(__name__)


def _require_text(value: Any, what: str) -> str:
    if not isinstance(value, str):
        raise InvalidArgument(f"{what} must be a string")
    if not value:
        raise InvalidArgument(f"{what} cannot be empty")
    return value


def _optional_text(value: Any, what: str) -> Optional[str]:
    """None or "" mean "leave unchanged"; anything else must be a string."""
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise InvalidArgument(f"{what} must be a string")
    return value


def _attribute_list(values: Any) -> List[str]:
    """Copy an iterable of attribute strings, rejecting a bare string."""
    if values is None:
        return []
    if isinstance(values, (str, bytes)):
        raise InvalidArgument("Attributes must be a sequence of strings, not a single string")
    try:
        attributes = list(values)
    except TypeError:
        raise InvalidArgument("Attributes must be a sequence of strings")
    for attribute in attributes:
        if not isinstance(attribute, str):
            raise InvalidArgument(f"Attribute {attribute!r} is not a string")
    return attributes


def _file_stamp(path: Path) -> Optional[Tuple[int, int]]:
    try:
        stat = path.stat()
    except FileNotFoundError:
        return None
    return stat.st_mtime_ns, stat.st_size


@dataclass
class Avatar:
    """
    A registered avatar.

    The content_hash references the avatar's image/metadata in an external
    content-addressed store. The registry never resolves or validates it.

    Attributes:
        avatar_id: Sequential id, unique, never reused
        name: Display name
        content_hash: Opaque content-addressed reference (e.g. an IPFS CID)
        owner: Address of the current owner
        created_at: Timestamp of creation
        is_active: Inactive avatars reject owner-gated mutation
        level: Starts at 1, only ever increases
        attributes: Append-only list of attribute strings
    """
    avatar_id: int
    name: str
    content_hash: str
    owner: str
    created_at: float = field(default_factory=time.time)
    is_active: bool = True
    level: int = 1
    attributes: List[str] = field(default_factory=list)

    def copy(self) -> "Avatar":
        """Detached snapshot; mutating it does not touch the registry."""
        return Avatar(
            avatar_id=self.avatar_id,
            name=self.name,
            content_hash=self.content_hash,
            owner=self.owner,
            created_at=self.created_at,
            is_active=self.is_active,
            level=self.level,
            attributes=list(self.attributes),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "avatar_id": self.avatar_id,
            "name": self.name,
            "content_hash": self.content_hash,
            "owner": self.owner,
            "created_at": self.created_at,
            "is_active": self.is_active,
            "level": self.level,
            "attributes": self.attributes,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Avatar":
        return cls(
            avatar_id=data["avatar_id"],
            name=data["name"],
            content_hash=data["content_hash"],
            owner=data["owner"],
            created_at=data.get("created_at", time.time()),
            is_active=data.get("is_active", True),
            level=data.get("level", 1),
            attributes=list(data.get("attributes", [])),
        )


class Registry:
    """
    The avatar registry.

    All public operations are serialized under one lock. Every precondition
    is checked before any state changes, and a mutation whose write or
    event delivery fails is rolled back.

    Structure (when persisted):
        registry_dir/
            registry.json     # Avatars, owner index, counters
            events.json       # Emitted notifications

    A directory is reloaded whenever registry.json changes on disk, so a
    CLI and a running server can take turns on it. Writes from separate
    processes are not locked against each other; run one writer at a time.
    """

    def __init__(
        self,
        registry_dir: Path | str = None,
        admin: str = None,
        signer: Identity = None,
        event_log: EventLog = None,
    ):
        """
        Initialize the registry.

        Args:
            registry_dir: Directory to persist state in (in-memory if None)
            admin: Privileged identity for administrative operations.
                Set once; a persisted registry keeps its stored admin.
            signer: Identity whose key signs emitted events
            event_log: Event sink (defaults to one stored beside the registry)
        """
        self.registry_dir = Path(registry_dir) if registry_dir else None
        self.signer = signer
        self._lock = threading.RLock()

        self._avatars: Dict[int, Avatar] = {}
        self._owner_index: Dict[str, List[int]] = {}
        self._registered: Set[str] = set()
        self._next_id = 1
        self._total_records = 0
        self._admin: Optional[str] = None
        self._stamp: Optional[Tuple[int, int]] = None

        if self.registry_dir:
            self.registry_dir.mkdir(parents=True, exist_ok=True)
            self._load()

        if self._admin is None:
            if not admin:
                raise InvalidArgument("registry admin must be set")
            self._admin = admin
            if self.registry_dir:
                self._save()
        elif admin and admin != self._admin:
            raise InvalidArgument(f"registry admin is already set to {self._admin}")

        if event_log is None:
            event_log = EventLog(self.registry_dir)
        self.events = event_log

    def _index_path(self) -> Path:
        return self.registry_dir / "registry.json"

    def _load(self):
        """Load registry state from disk."""
        index_path = self._index_path()
        if not index_path.exists():
            return
        with open(index_path) as f:
            data = json.load(f)
        self._admin = data.get("admin")
        self._next_id = data.get("next_id", 1)
        self._total_records = data.get("total_records", 0)
        self._avatars = {
            int(avatar_id): Avatar.from_dict(avatar_data)
            for avatar_id, avatar_data in data.get("avatars", {}).items()
        }
        self._owner_index = {
            owner: list(ids) for owner, ids in data.get("owner_index", {}).items()
        }
        self._registered = set(data.get("registered", []))
        self._stamp = _file_stamp(index_path)
        logger.debug(f"Loaded {len(self._avatars)} avatars from {index_path}")

    def _save(self):
        """Save registry state to disk."""
        data = {
            "version": "1.0",
            "admin": self._admin,
            "next_id": self._next_id,
            "total_records": self._total_records,
            "avatars": {str(i): a.to_dict() for i, a in self._avatars.items()},
            "owner_index": self._owner_index,
            "registered": sorted(self._registered),
        }
        tmp_path = self._index_path().with_suffix(".tmp")
        with open(tmp_path, "w") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, self._index_path())
        self._stamp = _file_stamp(self._index_path())

    def _refresh(self):
        """Pick up state written to the directory by another Registry."""
        if not self.registry_dir:
            return
        if _file_stamp(self._index_path()) != self._stamp:
            logger.debug(f"{self._index_path()} changed on disk, reloading")
            self._load()
        self.events.refresh()

    def _snapshot(self) -> Dict[str, Any]:
        return {
            "avatars": {i: a.copy() for i, a in self._avatars.items()},
            "owner_index": {owner: list(ids) for owner, ids in self._owner_index.items()},
            "registered": set(self._registered),
            "next_id": self._next_id,
            "total_records": self._total_records,
        }

    def _restore(self, snapshot: Dict[str, Any]):
        self._avatars = snapshot["avatars"]
        self._owner_index = snapshot["owner_index"]
        self._registered = snapshot["registered"]
        self._next_id = snapshot["next_id"]
        self._total_records = snapshot["total_records"]

    @contextmanager
    def _transaction(self):
        """
        Apply a mutation all-or-nothing.

        The body mutates in-memory state and queues its event on the
        yielded list. Events are signed, state is written, then events are
        logged and delivered. A failure at any step restores the state
        captured on entry, on disk as well as in memory.
        """
        snapshot = self._snapshot()
        pending: List[Event] = []
        written = False
        try:
            yield pending
            if self.signer is not None:
                for event in pending:
                    sign_event(event, self.signer)
            if self.registry_dir:
                self._save()
                written = True
            for event in pending:
                self.events.append(event)
        except BaseException:
            self._restore(snapshot)
            if written:
                self._save()
            raise

    def _get(self, avatar_id: int) -> Avatar:
        if isinstance(avatar_id, bool) or not isinstance(avatar_id, int) or not 0 < avatar_id < self._next_id:
            raise NotFound(f"Avatar {avatar_id} does not exist")
        return self._avatars[avatar_id]

    def _get_owned(self, avatar_id: int, caller: str, require_active: bool = True) -> Avatar:
        """Range, ownership and (optionally) activity gate shared by mutators."""
        avatar = self._get(avatar_id)
        if avatar.owner != caller:
            raise Unauthorized(f"{caller} does not own avatar {avatar_id}")
        if require_active and not avatar.is_active:
            raise Inactive(f"Avatar {avatar_id} is inactive")
        return avatar

    def _remove_from_index(self, owner: str, avatar_id: int):
        """
        Swap-remove every occurrence of avatar_id from owner's index.

        A matching slot is overwritten with the last element and the list
        shrinks; the same slot is then examined again, so duplicates
        swapped in from the tail are purged too.
        """
        ids = self._owner_index.get(owner, [])
        i = 0
        while i < len(ids):
            if ids[i] == avatar_id:
                ids[i] = ids[-1]
                ids.pop()
            else:
                i += 1

    def create(
        self,
        name: str,
        content_hash: str,
        initial_attributes: Iterable[str] = None,
        caller: str = None,
    ) -> int:
        """
        Create an avatar owned by the caller.

        Args:
            name: Non-empty display name
            content_hash: Non-empty content-addressed reference
            initial_attributes: Attribute strings copied as given, duplicates kept
            caller: Verified identity of the creator

        Returns:
            The new avatar id
        """
        _require_text(name, "Name")
        _require_text(content_hash, "Content hash")
        _require_text(caller, "Caller")
        attributes = _attribute_list(initial_attributes)

        with self._lock:
            self._refresh()
            with self._transaction() as events:
                avatar_id = self._next_id
                self._avatars[avatar_id] = Avatar(
                    avatar_id=avatar_id,
                    name=name,
                    content_hash=content_hash,
                    owner=caller,
                    attributes=attributes,
                )
                self._owner_index.setdefault(caller, []).append(avatar_id)
                self._registered.add(caller)
                self._next_id += 1
                self._total_records += 1
                events.append(CreatedEvent.for_avatar(avatar_id, caller, name))

            logger.debug(f"Created avatar {avatar_id} '{name}' for {caller}")
            return avatar_id

    def update(
        self,
        avatar_id: int,
        new_name: Optional[str] = "",
        new_content_hash: Optional[str] = "",
        level_increase: int = 0,
        new_attributes: Iterable[str] = None,
        caller: str = None,
    ) -> Avatar:
        """
        Update an avatar owned by the caller.

        An empty (or None) new_name / new_content_hash leaves the field
        unchanged, so neither can be cleared once set. A level_increase of
        zero leaves the level as is. new_attributes are appended in order.

        Returns:
            Snapshot of the avatar after the update
        """
        with self._lock:
            self._refresh()
            self._get_owned(avatar_id, caller)
            new_name = _optional_text(new_name, "Name")
            new_content_hash = _optional_text(new_content_hash, "Content hash")
            if isinstance(level_increase, bool) or not isinstance(level_increase, int):
                raise InvalidArgument("Level increase must be an integer")
            if level_increase < 0:
                raise InvalidArgument("Level increase cannot be negative")
            attributes = _attribute_list(new_attributes)

            with self._transaction() as events:
                avatar = self._avatars[avatar_id]
                if new_name:
                    avatar.name = new_name
                if new_content_hash:
                    avatar.content_hash = new_content_hash
                if level_increase > 0:
                    avatar.level += level_increase
                avatar.attributes.extend(attributes)
                events.append(UpdatedEvent.for_avatar(avatar_id, avatar.name, avatar.level))

            avatar = self._avatars[avatar_id]
            logger.debug(f"Updated avatar {avatar_id}: level={avatar.level}, attributes={len(avatar.attributes)}")
            return avatar.copy()

    def transfer(self, avatar_id: int, new_owner: str, caller: str = None) -> None:
        """
        Transfer an avatar from the caller to new_owner.
        """
        with self._lock:
            self._refresh()
            self._get_owned(avatar_id, caller)
            if not isinstance(new_owner, str) or not new_owner:
                raise InvalidArgument("Invalid recipient")
            if new_owner == caller:
                raise InvalidArgument("Cannot transfer to self")

            with self._transaction() as events:
                avatar = self._avatars[avatar_id]
                avatar.owner = new_owner
                self._remove_from_index(caller, avatar_id)
                self._owner_index.setdefault(new_owner, []).append(avatar_id)
                self._registered.add(new_owner)
                events.append(TransferredEvent.for_avatar(avatar_id, caller, new_owner))

            logger.debug(f"Transferred avatar {avatar_id}: {caller} -> {new_owner}")

    def deactivate(self, avatar_id: int, caller: str = None) -> None:
        """Deactivate an active avatar owned by the caller. Emits nothing."""
        with self._lock:
            self._refresh()
            self._get_owned(avatar_id, caller)
            with self._transaction():
                self._avatars[avatar_id].is_active = False
            logger.debug(f"Deactivated avatar {avatar_id}")

    def reactivate(self, avatar_id: int, caller: str = None) -> None:
        """
        Reactivate an avatar owned by the caller. Emits nothing.

        Gated on ownership only: requiring the avatar to be active would
        make an inactive avatar impossible to bring back.
        """
        with self._lock:
            self._refresh()
            self._get_owned(avatar_id, caller, require_active=False)
            with self._transaction():
                self._avatars[avatar_id].is_active = True
            logger.debug(f"Reactivated avatar {avatar_id}")

    def get_avatar(self, avatar_id: int) -> Avatar:
        """Get a snapshot of an avatar. Inactive avatars are still returned."""
        with self._lock:
            self._refresh()
            return self._get(avatar_id).copy()

    def get_owned_ids(self, identity: str) -> List[int]:
        """Ids currently owned by identity (empty for unknown identities)."""
        with self._lock:
            self._refresh()
            return list(self._owner_index.get(identity, []))

    def get_total_records(self) -> int:
        with self._lock:
            self._refresh()
            return self._total_records

    def emergency_pause(self, caller: str = None) -> None:
        """
        Admin-only placeholder, reserved for a future pause mechanism.

        Enforces the admin check and otherwise changes nothing.
        """
        with self._lock:
            if caller != self._admin:
                raise Unauthorized(f"{caller} is not the registry admin")
            logger.info(f"Emergency pause requested by {caller} (no-op)")

    @property
    def admin(self) -> str:
        return self._admin

    @property
    def next_id(self) -> int:
        with self._lock:
            self._refresh()
            return self._next_id

    def is_registered(self, identity: str) -> bool:
        """True once identity has created or received an avatar."""
        with self._lock:
            self._refresh()
            return identity in self._registered

    def registered_users(self) -> List[str]:
        with self._lock:
            self._refresh()
            return sorted(self._registered)

    def list(self) -> List[Avatar]:
        """Snapshots of all avatars in id order."""
        with self._lock:
            self._refresh()
            return [self._avatars[i].copy() for i in sorted(self._avatars)]

    def __contains__(self, avatar_id: int) -> bool:
        with self._lock:
            self._refresh()
            return isinstance(avatar_id, int) and 0 < avatar_id < self._next_id

    def __len__(self) -> int:
        return self.get_total_records()
