# avatarreg/errors.py
"""
Registry error kinds.

Every error is raised before any state is touched, so a failing call
leaves the registry exactly as it was.
"""


class RegistryError(Exception):
    """Base class for all registry errors."""


class InvalidArgument(RegistryError, ValueError):
    """Empty required string, self-transfer, null target, negative level."""


class NotFound(RegistryError, LookupError):
    """Avatar id outside the issued range [1, next_id)."""


class Unauthorized(RegistryError):
    """Caller is not the avatar owner, or not the registry admin."""


class Inactive(RegistryError):
    """Avatar is deactivated and rejects owner-gated mutation."""
