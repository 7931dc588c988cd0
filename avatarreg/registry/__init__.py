# avatarreg/registry/__init__.py
"""
Avatar Registry.

The registry is the foundational data structure that records who owns
each avatar and the avatar's mutable metadata. Content lives in an
external content-addressed store and is referenced by hash.

Example:
    registry = Registry(admin="0xadmin")
    avatar_id = registry.create("Hero", "Qm123", ["Str:10"], caller="0xalice")
    registry.transfer(avatar_id, "0xbob", caller="0xalice")
"""

from .registry import Registry, Avatar

__all__ = ["Registry", "Avatar"]
