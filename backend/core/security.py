# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Central security module.  All cryptographic primitives and auth guards live
here.  No other module should touch raw crypto directly.

Responsibilities
----------------
1. Master-password digest for verification      (SHA-256)
2. Per-envelope key derivation                  (PBKDF2-HMAC-SHA256)
3. Envelope encryption / decryption             (AES-256-GCM)
4. Field-level record encryption / decryption
5. FastAPI dependency guard                     (X-Master-Password header)

Envelope formats
----------------
Client field string : ``hex(salt):hex(iv):base64(ciphertext || tag)``
Server artifact     : ``{"encrypted": base64(ct || tag), "salt": hex, "iv": hex}``

No key is ever cached.  Every call re-derives the key from the password and
the envelope's own salt, so two envelopes never share a key even under the
same password.
"""

import base64
import binascii
import hashlib
import secrets
from dataclasses import dataclass
from typing import Iterable, Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from fastapi import Header

from core.config import settings
from core.exceptions import CredentialMissingError, DecryptionError, InvalidEnvelopeError

SALT_LENGTH = 32
IV_LENGTH = 12          # 96-bit nonce per NIST SP 800-38D
KEY_LENGTH = 32         # AES-256
DELIMITER = ":"

# Fields of a vault item that are individually encrypted.  Everything else
# (name, category, timestamps, ordering, favourite flag) stays in clear so it
# can be queried and sorted.
SENSITIVE_FIELDS = ("password", "username", "description", "url", "link_url")

_VALIDATION_TEXT = "test_validation_string"


# ---------------------------------------------------------------------------
# 1.  SHA-256 – password verification digest
# ---------------------------------------------------------------------------


def hash_password(password: str) -> str:
    """
    One-way, deterministic digest of the master password.

    Used only to check a typed password against a stored digest – never as
    key material.
    """
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# 2.  PBKDF2 – key derivation
# ---------------------------------------------------------------------------


def derive_key(password: str, salt: bytes, iterations: Optional[int] = None) -> bytes:
    """
    Derive a 256-bit key from *password* and *salt*.

    Deterministic: the same (password, salt) always yields the same key.
    The iteration count is fixed per deployment (``KDF_ITERATIONS``).
    """
    if not password:
        raise CredentialMissingError()
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=iterations or settings.kdf_iterations,
    )
    return kdf.derive(password.encode("utf-8"))


# ---------------------------------------------------------------------------
# 3.  AES-256-GCM – envelopes
# ---------------------------------------------------------------------------


def _seal(plaintext: str, password: str) -> tuple[str, str, str]:
    """Encrypt under a fresh salt + nonce.  Returns (salt_hex, iv_hex, ct_b64)."""
    salt = secrets.token_bytes(SALT_LENGTH)
    iv = secrets.token_bytes(IV_LENGTH)
    key = derive_key(password, salt)
    ct_and_tag = AESGCM(key).encrypt(iv, plaintext.encode("utf-8"), None)
    return salt.hex(), iv.hex(), base64.b64encode(ct_and_tag).decode("ascii")


def _open(salt_hex: str, iv_hex: str, ct_b64: str, password: str) -> str:
    """
    Inverse of :func:`_seal`.

    Raises ``InvalidEnvelopeError`` if a part cannot be decoded at all and
    ``DecryptionError`` if authentication fails or the recovered bytes are
    not valid UTF-8.  The caller cannot tell a wrong password from a
    tampered ciphertext.
    """
    try:
        salt = bytes.fromhex(salt_hex)
        iv = bytes.fromhex(iv_hex)
        ct_and_tag = base64.b64decode(ct_b64, validate=True)
    except (ValueError, binascii.Error) as exc:
        raise InvalidEnvelopeError() from exc
    if len(salt) != SALT_LENGTH or len(iv) != IV_LENGTH:
        raise InvalidEnvelopeError()

    key = derive_key(password, salt)
    try:
        plaintext_bytes = AESGCM(key).decrypt(iv, ct_and_tag, None)
    except (InvalidTag, ValueError) as exc:
        raise DecryptionError() from exc
    try:
        return plaintext_bytes.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecryptionError() from exc


def encrypt(plaintext: str, password: str) -> str:
    """
    Encrypt *plaintext* into a ``salt:iv:ciphertext`` envelope.

    Every call draws a new salt and nonce, so encrypting the same value twice
    yields two different envelopes – re-saving a field never leaks that it
    is unchanged.
    """
    return DELIMITER.join(_seal(plaintext, password))


def decrypt(envelope: str, password: str) -> str:
    """Decrypt an envelope produced by :func:`encrypt`."""
    if not isinstance(envelope, str):
        raise InvalidEnvelopeError()
    parts = envelope.split(DELIMITER)
    if len(parts) != 3:
        raise InvalidEnvelopeError()
    return _open(parts[0], parts[1], parts[2], password)


def encrypt_artifact(plaintext: str, password: str) -> dict:
    """Encrypt into the JSON object form used for server-side files."""
    salt_hex, iv_hex, ct_b64 = _seal(plaintext, password)
    return {"encrypted": ct_b64, "salt": salt_hex, "iv": iv_hex}


def decrypt_artifact(artifact: dict, password: str) -> str:
    """Decrypt an object produced by :func:`encrypt_artifact`."""
    try:
        return _open(artifact["salt"], artifact["iv"], artifact["encrypted"], password)
    except (KeyError, TypeError) as exc:
        raise InvalidEnvelopeError() from exc


def validate(password: str, test_envelope: Optional[str] = None) -> bool:
    """
    Check *password*.

    With a previously stored *test_envelope* the check is whether it
    decrypts; without one, a self-contained encrypt/decrypt round trip.
    """
    try:
        if test_envelope is None:
            return decrypt(encrypt(_VALIDATION_TEXT, password), password) == _VALIDATION_TEXT
        decrypt(test_envelope, password)
        return True
    except (DecryptionError, CredentialMissingError):
        return False


# ---------------------------------------------------------------------------
# 4.  Field-level record encryption
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Decrypted:
    value: str


@dataclass(frozen=True)
class StillEncrypted:
    """A field that looked like an envelope but could not be opened."""

    raw: str


FieldResult = Union[Decrypted, StillEncrypted]


def looks_like_envelope(value) -> bool:
    return isinstance(value, str) and DELIMITER in value


def decrypt_field(value: str, password: str) -> FieldResult:
    try:
        return Decrypted(decrypt(value, password))
    except DecryptionError:
        return StillEncrypted(value)


def encrypt_record(
    record: dict,
    password: str,
    sensitive_fields: Iterable[str] = SENSITIVE_FIELDS,
) -> dict:
    """
    Return a copy of *record* with each present, non-empty sensitive field
    replaced by its envelope.  Absent fields stay absent.
    """
    out = dict(record)
    for field in sensitive_fields:
        value = out.get(field)
        if value:
            out[field] = encrypt(value, password)
    return out


def decrypt_record_detailed(
    record: dict,
    password: str,
    sensitive_fields: Iterable[str] = SENSITIVE_FIELDS,
) -> tuple[dict, dict[str, FieldResult]]:
    """
    Decrypt every sensitive field that looks like an envelope.

    A field that fails keeps its stored value; the rest of the record is
    still decrypted.  The second return value says, per attempted field,
    whether it was ``Decrypted`` or is ``StillEncrypted``.
    """
    out = dict(record)
    results: dict[str, FieldResult] = {}
    for field in sensitive_fields:
        value = out.get(field)
        if not looks_like_envelope(value):
            continue
        result = decrypt_field(value, password)
        results[field] = result
        if isinstance(result, Decrypted):
            out[field] = result.value
    return out, results


def decrypt_record(
    record: dict,
    password: str,
    sensitive_fields: Iterable[str] = SENSITIVE_FIELDS,
) -> dict:
    return decrypt_record_detailed(record, password, sensitive_fields)[0]


# ---------------------------------------------------------------------------
# 5.  FastAPI dependency guard
# ---------------------------------------------------------------------------


def get_master_password(
    x_master_password: Optional[str] = Header(default=None, alias="X-Master-Password"),
) -> str:
    """
    Dependency: every request must carry the plaintext master password in
    ``X-Master-Password`` (TLS protects it in flight).  It is used for this
    request only and is never written anywhere.
    """
    if not x_master_password:
        raise CredentialMissingError()
    return x_master_password
