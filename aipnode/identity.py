"""Ed25519 agent identity: key generation, load, save, sign, verify.

The keypair document is JSON::

    {
      "publicKey": "<base64, 32 bytes>",
      "secretKey": "<base64, 64 bytes: seed || public key>",
      "created": "<ISO-8601>",
      "note": "..."
    }

The 64-byte secret form is what NaCl-style libraries call the expanded
signing key; a bare 32-byte seed is accepted on load as well.
"""

import base64
import binascii
import json
from datetime import datetime, timezone
from pathlib import Path

from nacl.signing import SigningKey, VerifyKey
from nacl.exceptions import BadSignatureError

from .errors import IdentityError, SignatureError

KEY_NOTE = "AIP agent identity keypair (Ed25519). Keep secretKey private."


class Identity:
    """An ed25519 signing identity backed by a private key."""

    def __init__(self, signing_key: SigningKey):
        self._signing_key = signing_key

    @classmethod
    def generate(cls) -> "Identity":
        """Generate a new random ed25519 keypair (in-memory only)."""
        return cls(SigningKey.generate())

    @classmethod
    def create(cls, path: str) -> "Identity":
        """Generate a new keypair and save it to *path*. Creates parent dirs.

        Raises:
            IdentityError: If *path* already exists (will not overwrite).
        """
        p = Path(path)
        if p.exists():
            raise IdentityError(f"Identity file already exists: {path}")
        identity = cls.generate()
        identity.save(path)
        return identity

    @classmethod
    def from_secret_key(cls, secret_key_b64: str) -> "Identity":
        """Build an identity from a base64 seed (32 bytes) or secret key (64)."""
        try:
            raw = base64.b64decode(secret_key_b64, validate=True)
        except (binascii.Error, ValueError, TypeError) as e:
            raise IdentityError(f"secretKey is not valid base64: {e}") from e
        if len(raw) not in (32, 64):
            raise IdentityError(
                f"Invalid secretKey: expected 32 or 64 bytes, got {len(raw)}"
            )
        identity = cls(SigningKey(raw[:32]))
        if len(raw) == 64 and raw[32:] != identity.public_key_bytes:
            raise IdentityError("secretKey does not match its embedded public key")
        return identity

    @classmethod
    def load(cls, path: str) -> "Identity":
        """Load a keypair document from *path*."""
        p = Path(path)
        if not p.exists():
            raise IdentityError(f"Identity file not found: {path}")
        try:
            doc = json.loads(p.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise IdentityError(f"Invalid key file {path}: {e}") from e
        if not isinstance(doc, dict) or "secretKey" not in doc:
            raise IdentityError(f"Invalid key file {path}: missing secretKey")

        identity = cls.from_secret_key(doc["secretKey"])
        public = doc.get("publicKey")
        if public is not None and public != identity.public_key_base64:
            raise IdentityError(f"Invalid key file {path}: publicKey mismatch")
        return identity

    def to_document(self) -> dict:
        return {
            "publicKey": self.public_key_base64,
            "secretKey": self.secret_key_base64,
            "created": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "note": KEY_NOTE,
        }

    def save(self, path: str) -> None:
        """Write the keypair document to disk. Creates parent dirs."""
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(json.dumps(self.to_document(), indent=2), encoding="utf-8")

    @property
    def public_key_bytes(self) -> bytes:
        """Raw 32-byte ed25519 public key."""
        return bytes(self._signing_key.verify_key)

    @property
    def public_key_base64(self) -> str:
        """Base64 public key; this string is the agent identifier."""
        return base64.b64encode(self.public_key_bytes).decode("ascii")

    @property
    def secret_key_base64(self) -> str:
        """Base64 of the 64-byte seed || public key form."""
        raw = bytes(self._signing_key) + self.public_key_bytes
        return base64.b64encode(raw).decode("ascii")

    def sign(self, message: bytes) -> bytes:
        """Sign message bytes, returning 64-byte ed25519 signature."""
        signed = self._signing_key.sign(message)
        return signed.signature

    @staticmethod
    def verify(pubkey_bytes: bytes, signature: bytes, message: bytes) -> None:
        """Verify an ed25519 signature over message bytes.

        Raises:
            SignatureError: If verification fails.
        """
        try:
            vk = VerifyKey(pubkey_bytes)
            vk.verify(message, signature)
        except BadSignatureError as e:
            raise SignatureError(f"Signature verification failed: {e}") from e
        except Exception as e:
            raise SignatureError(f"Verification error: {e}") from e
