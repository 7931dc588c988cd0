# avatarreg - Avatar ownership registry
#
# Records ownership and mutable metadata for uniquely identified avatars,
# each referencing external content by a content hash.
#
# Core concepts:
# - Avatar: An owned record with a name, content hash, level and attributes
# - Registry: Allocates ids, indexes avatars per owner, gates mutation
# - Event: Notification emitted after each mutation (Created/Updated/Transferred)
# - Identity: A named key pair whose address acts as a caller identity

from .errors import RegistryError, InvalidArgument, NotFound, Unauthorized, Inactive
from .events import Event, CreatedEvent, UpdatedEvent, TransferredEvent, EventLog
from .identity import Identity, IdentityStore
from .signatures import sign_event, verify_event, verify_event_signer
from .registry import Registry, Avatar
from .config import RegistryConfig, open_registry

__all__ = [
    # Registry
    "Registry",
    "Avatar",
    # Errors
    "RegistryError",
    "InvalidArgument",
    "NotFound",
    "Unauthorized",
    "Inactive",
    # Events
    "Event",
    "CreatedEvent",
    "UpdatedEvent",
    "TransferredEvent",
    "EventLog",
    # Identities
    "Identity",
    "IdentityStore",
    "sign_event",
    "verify_event",
    "verify_event_signer",
    # Configuration
    "RegistryConfig",
    "open_registry",
]

__version__ = "0.1.0"
