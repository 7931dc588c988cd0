# avatarreg/signatures.py
"""
Signatures for registry notifications.

Events are signed with RSA-SHA256 (PKCS#1 v1.5) over a hash of the
signature options concatenated with a hash of the canonical event JSON.
"""

import base64
import hashlib
import json
import time
from typing import Any, Dict

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding

from .events import Event
from .identity import Identity

SIGNATURE_TYPE = "RsaSignature2017"


def _canonicalize(data: Dict[str, Any]) -> str:
    """
    Canonicalize JSON for signing.

    Sorted keys, no whitespace.
    """
    return json.dumps(data, sort_keys=True, separators=(",", ":"))


def _hash_sha256(data: str) -> bytes:
    """Hash string with SHA-256."""
    return hashlib.sha256(data.encode()).digest()


def _signed_bytes(event: Event, options: Dict[str, Any]) -> bytes:
    return _hash_sha256(_canonicalize(options)) + _hash_sha256(_canonicalize(event.signable()))


def sign_event(event: Event, identity: Identity) -> Event:
    """
    Sign an event with the identity's private key.

    Args:
        event: The event to sign
        identity: The identity whose key signs the event

    Returns:
        Event with signature attached
    """
    private_key = serialization.load_pem_private_key(
        identity.private_key,
        password=None,
    )

    options = {
        "type": SIGNATURE_TYPE,
        "creator": identity.key_id,
        "created": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
    }

    signature_bytes = private_key.sign(
        _signed_bytes(event, options),
        padding.PKCS1v15(),
        hashes.SHA256(),
    )

    event.signature = dict(options, signatureValue=base64.b64encode(signature_bytes).decode("utf-8"))
    return event


def verify_event(event: Event, public_key_pem: bytes) -> bool:
    """
    Verify an event's signature.

    Args:
        event: The event with signature
        public_key_pem: PEM-encoded public key

    Returns:
        True if signature is valid
    """
    if not event.signature:
        return False

    try:
        public_key = serialization.load_pem_public_key(public_key_pem)

        options = {
            "type": event.signature["type"],
            "creator": event.signature["creator"],
            "created": event.signature["created"],
        }

        signature_bytes = base64.b64decode(event.signature["signatureValue"])
        public_key.verify(
            signature_bytes,
            _signed_bytes(event, options),
            padding.PKCS1v15(),
            hashes.SHA256(),
        )
        return True

    except (InvalidSignature, KeyError, ValueError):
        return False


def verify_event_signer(event: Event, identity: Identity) -> bool:
    """
    Verify that an event was signed by the claimed identity.
    """
    if not event.signature:
        return False

    if event.signature.get("creator") != identity.key_id:
        return False

    return verify_event(event, identity.public_key)
