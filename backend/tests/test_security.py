"""
Envelope encryption, record-level field encryption and the password guard.
"""

import base64
import json

import pytest

from core.exceptions import CredentialMissingError, DecryptionError, InvalidEnvelopeError
from core.security import (
    SALT_LENGTH,
    Decrypted,
    StillEncrypted,
    decrypt,
    decrypt_artifact,
    decrypt_record,
    decrypt_record_detailed,
    derive_key,
    encrypt,
    encrypt_artifact,
    encrypt_record,
    hash_password,
    validate,
)


def _flip_last_byte(envelope: str) -> str:
    salt, iv, ct = envelope.split(":")
    raw = bytearray(base64.b64decode(ct))
    raw[-1] ^= 0x01
    return ":".join([salt, iv, base64.b64encode(bytes(raw)).decode("ascii")])


class TestEnvelope:
    @pytest.mark.parametrize("plaintext", ["p@ss", "", "ünïcødé ✓", "a:b:c", "x" * 5000])
    def test_round_trip(self, plaintext, password):
        assert decrypt(encrypt(plaintext, password), password) == plaintext

    def test_envelope_shape(self, password):
        salt, iv, ct = encrypt("secret", password).split(":")
        assert len(bytes.fromhex(salt)) == SALT_LENGTH
        assert len(bytes.fromhex(iv)) == 12
        # 6 bytes of ciphertext + 16-byte GCM tag
        assert len(base64.b64decode(ct)) == 6 + 16

    def test_fresh_envelope_per_call(self, password):
        first = encrypt("same value", password)
        second = encrypt("same value", password)
        assert first != second
        assert decrypt(first, password) == decrypt(second, password) == "same value"

    def test_wrong_password_fails(self, password):
        envelope = encrypt("p@ss", password)
        with pytest.raises(DecryptionError):
            decrypt(envelope, "not-the-password")

    def test_tampered_ciphertext_looks_like_wrong_password(self, password):
        with pytest.raises(DecryptionError) as tampered:
            decrypt(_flip_last_byte(encrypt("p@ss", password)), password)
        with pytest.raises(DecryptionError) as wrong:
            decrypt(encrypt("p@ss", password), "other")
        assert tampered.value.code == wrong.value.code
        assert tampered.value.message == wrong.value.message

    @pytest.mark.parametrize(
        "envelope",
        ["", "onlyonepart", "a:b", "a:b:c:d", "zz:00:AAAA", "00:zz:AAAA", "00:00:***"],
    )
    def test_malformed_envelope(self, envelope, password):
        with pytest.raises(InvalidEnvelopeError):
            decrypt(envelope, password)

    def test_missing_password(self):
        with pytest.raises(CredentialMissingError):
            encrypt("value", "")

    def test_derive_key_deterministic(self, password):
        salt = b"\x01" * SALT_LENGTH
        assert derive_key(password, salt) == derive_key(password, salt)
        assert derive_key(password, salt) != derive_key(password, b"\x02" * SALT_LENGTH)
        assert len(derive_key(password, salt)) == 32


class TestArtifact:
    def test_round_trip(self, password):
        artifact = encrypt_artifact(json.dumps({"a": 1}), password)
        assert set(artifact) == {"encrypted", "salt", "iv"}
        assert json.loads(decrypt_artifact(artifact, password)) == {"a": 1}

    def test_missing_key(self, password):
        artifact = encrypt_artifact("x", password)
        del artifact["iv"]
        with pytest.raises(InvalidEnvelopeError):
            decrypt_artifact(artifact, password)


class TestPasswordHelpers:
    def test_hash_password(self):
        digest = hash_password("Tr0ub4dor&3")
        assert digest == hash_password("Tr0ub4dor&3")
        assert len(digest) == 64
        assert digest != hash_password("Tr0ub4dor&4")

    def test_validate_round_trip(self, password):
        assert validate(password) is True
        assert validate("") is False

    def test_validate_against_stored_envelope(self, password):
        stored = encrypt("test_validation_string", password)
        assert validate(password, stored) is True
        assert validate("wrong", stored) is False


class TestRecordEncryption:
    def test_only_sensitive_fields_encrypted(self, password):
        record = {
            "name": "Gmail",
            "category": "password-entry",
            "username": "me@x.com",
            "password": "p@ss",
            "url": None,
        }
        sealed = encrypt_record(record, password)
        assert sealed["name"] == "Gmail"
        assert sealed["category"] == "password-entry"
        assert sealed["username"].count(":") == 2
        assert sealed["password"].count(":") == 2
        assert sealed["url"] is None
        assert "description" not in sealed
        assert decrypt_record(sealed, password) == record

    def test_partial_field_resilience(self, password):
        sealed = encrypt_record(
            {"name": "Bank", "username": "alice", "password": "hunter2", "description": "main"},
            password,
        )
        corrupted = _flip_last_byte(sealed["password"])
        sealed["password"] = corrupted

        record, results = decrypt_record_detailed(sealed, password)

        assert record["username"] == "alice"
        assert record["description"] == "main"
        assert record["password"] == corrupted
        assert results["username"] == Decrypted("alice")
        assert results["password"] == StillEncrypted(corrupted)

    def test_plain_values_are_left_alone(self, password):
        record, results = decrypt_record_detailed({"username": "plain", "name": "x"}, password)
        assert record == {"username": "plain", "name": "x"}
        assert results == {}
