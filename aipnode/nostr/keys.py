"""secp256k1 Nostr identity with NIP-19 ``npub``/``nsec`` encoding.

Kept separate from the Ed25519 inbox identity: relays only accept BIP-340
Schnorr signatures over x-only secp256k1 keys.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import bech32
from coincurve import PrivateKey

from ..errors import IdentityError

KEY_NOTE = "Nostr identity for AIP agent discovery. Keep secretKey/nsec private."


def bech32_encode(hrp: str, raw: bytes) -> str:
    return bech32.bech32_encode(hrp, bech32.convertbits(raw, 8, 5))


def bech32_decode(value: str, expected_hrp: str) -> bytes:
    hrp, data = bech32.bech32_decode(value)
    if hrp != expected_hrp or data is None:
        raise IdentityError(f"Not a valid {expected_hrp}: {value[:16]}...")
    raw = bech32.convertbits(data, 5, 8, False)
    if raw is None or len(raw) != 32:
        raise IdentityError(f"Not a valid {expected_hrp}: bad payload")
    return bytes(raw)


def npub_to_hex(npub: str) -> str:
    return bech32_decode(npub, "npub").hex()


def hex_to_npub(pubkey_hex: str) -> str:
    return bech32_encode("npub", bytes.fromhex(pubkey_hex))


class NostrKeys:
    """A Schnorr signing key and its x-only public key."""

    def __init__(self, private_key: PrivateKey):
        self._private_key = private_key

    @classmethod
    def generate(cls) -> "NostrKeys":
        return cls(PrivateKey())

    @classmethod
    def from_hex(cls, secret_hex: str) -> "NostrKeys":
        try:
            return cls(PrivateKey(bytes.fromhex(secret_hex)))
        except ValueError as e:
            raise IdentityError(f"Invalid Nostr secret key: {e}") from e

    @classmethod
    def from_nsec(cls, nsec: str) -> "NostrKeys":
        return cls(PrivateKey(bech32_decode(nsec, "nsec")))

    @classmethod
    def load(cls, path: str | Path) -> "NostrKeys":
        p = Path(path)
        if not p.exists():
            raise IdentityError(f"Nostr key file not found: {path}")
        try:
            doc = json.loads(p.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise IdentityError(f"Invalid Nostr key file {path}: {e}") from e
        if doc.get("secretKey"):
            return cls.from_hex(doc["secretKey"])
        if doc.get("nsec"):
            return cls.from_nsec(doc["nsec"])
        raise IdentityError(f"Invalid Nostr key file {path}: no secretKey or nsec")

    @classmethod
    def load_or_create(cls, path: str | Path) -> "NostrKeys":
        if Path(path).exists():
            return cls.load(path)
        keys = cls.generate()
        keys.save(path)
        return keys

    def save(self, path: str | Path) -> None:
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        doc = {
            "secretKey": self.secret_hex,
            "publicKey": self.public_key_hex,
            "nsec": self.nsec,
            "npub": self.npub,
            "created": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "note": KEY_NOTE,
        }
        p.write_text(json.dumps(doc, indent=2), encoding="utf-8")

    @property
    def secret_hex(self) -> str:
        return self._private_key.secret.hex()

    @property
    def public_key_hex(self) -> str:
        return self._private_key.public_key_xonly.format().hex()

    @property
    def npub(self) -> str:
        return hex_to_npub(self.public_key_hex)

    @property
    def nsec(self) -> str:
        return bech32_encode("nsec", self._private_key.secret)

    def sign_schnorr(self, digest: bytes) -> bytes:
        """BIP-340 signature over a 32-byte digest."""
        return self._private_key.sign_schnorr(digest)
