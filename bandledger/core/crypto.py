"""
bandledger/core/crypto.py

Registry signing key.

The registry signs every journal entry it writes, so a journal copied
off disk can be checked for tampering without trusting whoever holds it.
Callers of the registry are never asked for keys; identities stay opaque.

Signatures are raw 64-byte Ed25519 signatures, base64url encoded with the
trailing '=' removed. Public keys travel as 64-char lowercase hex.
"""

import base64
from pathlib import Path

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
    load_pem_private_key,
)


_SIGNATURE_LENGTH = 64


class Ed25519KeyManager:
    """Journal signing key: generate / from_file / save, sign / verify_detached."""

    def __init__(self, private_key: Ed25519PrivateKey) -> None:
        self._private_key = private_key
        self._public_hex  = private_key.public_key().public_bytes(
            Encoding.Raw, PublicFormat.Raw
        ).hex()

    @classmethod
    def generate(cls) -> "Ed25519KeyManager":
        return cls(Ed25519PrivateKey.generate())

    @classmethod
    def from_file(cls, path: Path) -> "Ed25519KeyManager":
        """
        Load an unencrypted PKCS8 PEM key.
        Raises ValueError if the file is unreadable as a PEM key or holds
        some other key type.
        """
        path = Path(path)
        try:
            loaded = load_pem_private_key(path.read_bytes(), password=None)
        except (ValueError, TypeError) as exc:
            raise ValueError(f"{path} is not a PEM private key: {exc}") from exc
        if not isinstance(loaded, Ed25519PrivateKey):
            raise ValueError(f"{path} holds a {type(loaded).__name__}, not an Ed25519 key")
        return cls(loaded)

    def save(self, path: Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self._private_key.private_bytes(
            encoding=             Encoding.PEM,
            format=               PrivateFormat.PKCS8,
            encryption_algorithm= NoEncryption(),
        ))

    @property
    def public_key_hex(self) -> str:
        return self._public_hex

    def sign(self, data: bytes) -> str:
        """Sign already-canonical bytes."""
        return base64.urlsafe_b64encode(self._private_key.sign(data)).decode("ascii").rstrip("=")

    @staticmethod
    def verify_detached(data: bytes, signature_b64: str, public_key_hex: str) -> bool:
        """
        True only if signature_b64 is a valid signature over data by the key
        public_key_hex. Malformed keys or signatures give False, never raise.
        """
        try:
            public_key = Ed25519PublicKey.from_public_bytes(bytes.fromhex(public_key_hex))
            raw = base64.urlsafe_b64decode(signature_b64 + "=" * (-len(signature_b64) % 4))
            if len(raw) != _SIGNATURE_LENGTH:
                return False
            public_key.verify(raw, data)
        except (InvalidSignature, ValueError, TypeError):
            return False
        return True
