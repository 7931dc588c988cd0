# avatarreg/config.py
"""
Registry configuration.

Loaded from a YAML file:

    registry_dir: ./avatars
    identities_dir: ./avatars/identities
    admin: operator            # identity name or raw address
    signer: operator           # identity that signs notifications (optional)
    log_level: INFO
    host: 127.0.0.1
    port: 8080
"""

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .errors import InvalidArgument
from .identity import IdentityStore
from .registry import Registry

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "AVATARREG_CONFIG"
DEFAULT_CONFIG_FILE = "avatarreg.yaml"


@dataclass
class RegistryConfig:
    """Settings for opening a registry and serving it."""
    registry_dir: str = "./avatars"
    identities_dir: Optional[str] = None
    admin: Optional[str] = None
    signer: Optional[str] = None
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 8080

    @property
    def identities_path(self) -> Path:
        if self.identities_dir:
            return Path(self.identities_dir)
        return Path(self.registry_dir) / "identities"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RegistryConfig":
        known = {f.name for f in fields(cls)}
        for key in data:
            if key not in known:
                logger.warning(f"Ignoring unknown config key: {key}")
        config = cls(**{k: v for k, v in data.items() if k in known})
        config.port = int(config.port)
        return config

    @classmethod
    def from_yaml(cls, yaml_content: str) -> "RegistryConfig":
        """Parse config from YAML string."""
        data = yaml.safe_load(yaml_content) or {}
        if not isinstance(data, dict):
            raise InvalidArgument("Config must be a YAML mapping")
        return cls.from_dict(data)

    @classmethod
    def from_file(cls, path: Path | str) -> "RegistryConfig":
        """Load config from YAML file."""
        with open(path, "r") as f:
            return cls.from_yaml(f.read())

    @classmethod
    def discover(cls, path: Path | str = None) -> "RegistryConfig":
        """
        Locate and load configuration.

        Order: explicit path, $AVATARREG_CONFIG, ./avatarreg.yaml, defaults.
        """
        path = path or os.getenv(CONFIG_ENV_VAR)
        if path:
            return cls.from_file(path)
        if Path(DEFAULT_CONFIG_FILE).exists():
            return cls.from_file(DEFAULT_CONFIG_FILE)
        return cls()


def resolve_identity(identities: IdentityStore, value: Optional[str]) -> Optional[str]:
    """Map an identity name to its address; anything else passes through."""
    if not value:
        return value
    identity = identities.get(value)
    if identity:
        return identity.address
    return value


def open_registry(config: RegistryConfig) -> Registry:
    """Open (or create) the registry described by config."""
    identities = IdentityStore(config.identities_path)

    signer = None
    if config.signer:
        signer = identities.get(config.signer)
        if signer is None:
            raise InvalidArgument(f"Signer identity not found: {config.signer}")

    return Registry(
        registry_dir=config.registry_dir,
        admin=resolve_identity(identities, config.admin),
        signer=signer,
    )
