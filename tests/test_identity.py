"""Tests for ed25519 identity management."""

import base64
import json

import pytest

from aipnode.identity import Identity
from aipnode.errors import IdentityError, SignatureError


class TestIdentityGenerate:
    def test_generate_produces_valid_key(self):
        ident = Identity.generate()
        assert len(ident.public_key_bytes) == 32

    def test_public_key_base64_is_standard(self):
        pk = Identity.generate().public_key_base64
        assert "-" not in pk
        assert "_" not in pk
        assert len(base64.b64decode(pk)) == 32

    def test_secret_key_is_seed_plus_public(self):
        ident = Identity.generate()
        raw = base64.b64decode(ident.secret_key_base64)
        assert len(raw) == 64
        assert raw[32:] == ident.public_key_bytes

    def test_two_identities_differ(self):
        assert Identity.generate().public_key_bytes != Identity.generate().public_key_bytes


class TestIdentitySaveLoad:
    def test_round_trip(self, tmp_path):
        path = str(tmp_path / "agent-keys.json")
        orig = Identity.generate()
        orig.save(path)
        loaded = Identity.load(path)
        assert loaded.public_key_bytes == orig.public_key_bytes

    def test_document_fields(self, tmp_path):
        path = tmp_path / "agent-keys.json"
        ident = Identity.generate()
        ident.save(str(path))
        doc = json.loads(path.read_text())
        assert set(doc) == {"publicKey", "secretKey", "created", "note"}
        assert doc["publicKey"] == ident.public_key_base64

    def test_save_creates_parent_dirs(self, tmp_path):
        path = str(tmp_path / "a" / "b" / "keys.json")
        ident = Identity.generate()
        ident.save(path)
        assert Identity.load(path).public_key_bytes == ident.public_key_bytes

    def test_load_missing_file_raises(self):
        with pytest.raises(IdentityError, match="not found"):
            Identity.load("/nonexistent/path/agent-keys.json")

    def test_load_corrupt_file_raises(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("not json")
        with pytest.raises(IdentityError, match="Invalid key file"):
            Identity.load(str(path))

    def test_load_accepts_bare_seed(self, tmp_path):
        ident = Identity.generate()
        seed = base64.b64decode(ident.secret_key_base64)[:32]
        path = tmp_path / "seed.json"
        path.write_text(json.dumps({"secretKey": base64.b64encode(seed).decode()}))
        assert Identity.load(str(path)).public_key_base64 == ident.public_key_base64

    def test_load_wrong_length_raises(self, tmp_path):
        path = tmp_path / "short.json"
        path.write_text(json.dumps({"secretKey": base64.b64encode(b"too short").decode()}))
        with pytest.raises(IdentityError, match="expected 32 or 64 bytes"):
            Identity.load(str(path))

    def test_load_public_key_mismatch_raises(self, tmp_path):
        doc = Identity.generate().to_document()
        doc["publicKey"] = Identity.generate().public_key_base64
        path = tmp_path / "mismatch.json"
        path.write_text(json.dumps(doc))
        with pytest.raises(IdentityError, match="mismatch"):
            Identity.load(str(path))


class TestIdentityCreate:
    def test_create_generates_and_saves(self, tmp_path):
        path = str(tmp_path / "new.json")
        ident = Identity.create(path)
        assert Identity.load(path).public_key_bytes == ident.public_key_bytes

    def test_create_refuses_overwrite(self, tmp_path):
        path = str(tmp_path / "existing.json")
        Identity.create(path)
        with pytest.raises(IdentityError, match="already exists"):
            Identity.create(path)


class TestIdentitySignVerify:
    def test_sign_and_verify(self):
        ident = Identity.generate()
        sig = ident.sign(b"hello world")
        assert len(sig) == 64
        Identity.verify(ident.public_key_bytes, sig, b"hello world")

    def test_verify_wrong_message_fails(self):
        ident = Identity.generate()
        sig = ident.sign(b"correct message")
        with pytest.raises(SignatureError):
            Identity.verify(ident.public_key_bytes, sig, b"wrong message")

    def test_verify_wrong_key_fails(self):
        a = Identity.generate()
        b = Identity.generate()
        with pytest.raises(SignatureError):
            Identity.verify(b.public_key_bytes, a.sign(b"message"), b"message")

    def test_verify_tampered_signature_fails(self):
        ident = Identity.generate()
        sig = bytearray(ident.sign(b"message"))
        sig[0] ^= 0xFF
        with pytest.raises(SignatureError):
            Identity.verify(ident.public_key_bytes, bytes(sig), b"message")
