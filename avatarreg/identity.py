# avatarreg/identity.py
"""
Caller identities.

An Identity is a named key pair with:
- An RSA key pair for signing registry notifications
- A stable account address derived from the public key at creation

The registry itself only ever sees the address string; the key pair is
used by the operator identity that signs emitted events.
"""

import hashlib
import json
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

KEY_SIZE = 2048


def _address_from_der(public_der: bytes) -> str:
    return "0x" + hashlib.sha3_256(public_der).hexdigest()[-40:]


def address_from_public_key(public_pem: bytes) -> str:
    """
    Derive an account address from a PEM public key.

    The address is "0x" followed by the last 40 hex characters of the
    SHA3-256 digest of the DER-encoded key.
    """
    public_key = serialization.load_pem_public_key(public_pem)
    return _address_from_der(public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ))


@dataclass
class Identity:
    """
    A named caller identity.

    Attributes:
        name: Unique local name (e.g., "alice")
        address: Account address, fixed when the key pair is generated
        public_key: PEM-encoded public key
        private_key: PEM-encoded private key (kept secret)
        created_at: Timestamp of creation
    """
    name: str
    address: str
    public_key: bytes
    private_key: bytes
    created_at: float = field(default_factory=time.time)

    @property
    def key_id(self) -> str:
        """Key ID placed in signature blocks."""
        return f"{self.address}#main-key"

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for storage."""
        return {
            "name": self.name,
            "address": self.address,
            "public_key": self.public_key.decode("utf-8"),
            "private_key": self.private_key.decode("utf-8"),
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Identity":
        """Deserialize from storage; an address that does not match the key is rejected."""
        public_key = data["public_key"].encode("utf-8")
        address = address_from_public_key(public_key)
        if data.get("address", address) != address:
            raise ValueError(f"Stored address for {data['name']} does not match its key")
        return cls(
            name=data["name"],
            address=address,
            public_key=public_key,
            private_key=data["private_key"].encode("utf-8"),
            created_at=data.get("created_at", time.time()),
        )

    @classmethod
    def create(cls, name: str) -> "Identity":
        """Generate a key pair and derive the identity's address from it."""
        private_key = rsa.generate_private_key(public_exponent=65537, key_size=KEY_SIZE)
        public_key = private_key.public_key()
        return cls(
            name=name,
            address=_address_from_der(public_key.public_bytes(
                encoding=serialization.Encoding.DER,
                format=serialization.PublicFormat.SubjectPublicKeyInfo,
            )),
            public_key=public_key.public_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PublicFormat.SubjectPublicKeyInfo,
            ),
            private_key=private_key.private_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PrivateFormat.PKCS8,
                encryption_algorithm=serialization.NoEncryption(),
            ),
        )


class IdentityStore:
    """
    Local identities, looked up by name or by address.

    Stored as a list in store_dir/identities.json.
    """

    def __init__(self, store_dir: Path | str):
        self.store_dir = Path(store_dir)
        self.store_dir.mkdir(parents=True, exist_ok=True)
        self._by_name: Dict[str, Identity] = {}
        self._by_address: Dict[str, Identity] = {}

        index_path = self.store_dir / "identities.json"
        if index_path.exists():
            with open(index_path) as f:
                data = json.load(f)
            for identity_data in data.get("identities", []):
                self._index(Identity.from_dict(identity_data))

    def _index(self, identity: Identity):
        self._by_name[identity.name] = identity
        self._by_address[identity.address] = identity

    def create(self, name: str) -> Identity:
        """Generate, index and persist a new identity."""
        if name in self._by_name:
            raise ValueError(f"Identity {name} already exists")

        identity = Identity.create(name)
        self._index(identity)
        with open(self.store_dir / "identities.json", "w") as f:
            json.dump({
                "version": "1.0",
                "identities": [i.to_dict() for i in self._by_name.values()],
            }, f, indent=2)
        return identity

    def get(self, name: str) -> Optional[Identity]:
        return self._by_name.get(name)

    def find_by_address(self, address: str) -> Optional[Identity]:
        return self._by_address.get(address)

    def list(self) -> List[Identity]:
        return list(self._by_name.values())

    def __contains__(self, name: str) -> bool:
        return name in self._by_name

    def __len__(self) -> int:
        return len(self._by_name)
