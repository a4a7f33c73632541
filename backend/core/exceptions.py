# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Error taxonomy shared by the server and the client sync engine.

Each exception carries the HTTP status and machine-readable ``code`` used on
the wire.  The server turns a raised ``VaultError`` into
``{"error": ..., "code": ...}`` (see main.py); the client gateway maps such a
response back onto the same class, so callers handle one set of types on
either side of the network.
"""


class VaultError(Exception):
    """Base class – anything the engine raises deliberately."""

    status_code = 500
    code = "VAULT_ERROR"

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = message or (self.__class__.__doc__ or self.code).strip()


class CredentialMissingError(VaultError):
    """Master password required"""

    status_code = 401
    code = "NO_MASTER_PASSWORD"


class DecryptionError(VaultError):
    """Decryption failed"""

    # Wrong password and corrupted ciphertext are deliberately reported with
    # the same message and code.
    status_code = 401
    code = "DECRYPTION_ERROR"


class InvalidEnvelopeError(DecryptionError):
    """Invalid encrypted data format"""

    code = "INVALID_ENVELOPE"


class IntegrityMismatchError(VaultError):
    """File integrity check failed"""

    status_code = 500
    code = "INTEGRITY_ERROR"


class NotFoundError(VaultError):
    """Not found"""

    status_code = 404
    code = "NOT_FOUND"


class UnavailableError(VaultError):
    """Server not available"""

    status_code = 503
    code = "UNAVAILABLE"


class SaveVerificationError(VaultError):
    """Failed to save vault items"""

    status_code = 500
    code = "SAVE_ERROR"


class FileTooLargeError(VaultError):
    """File too large"""

    status_code = 413
    code = "FILE_TOO_LARGE"


class InvalidRequestError(VaultError):
    """Invalid request"""

    status_code = 400
    code = "INVALID_REQUEST"


class StorageError(VaultError):
    """Storage operation failed"""

    status_code = 500
    code = "STORAGE_ERROR"


class RateLimitedError(VaultError):
    """Too many requests, try again later"""

    status_code = 429
    code = "RATE_LIMITED"


class RemoteError(VaultError):
    """Remote request failed"""

    code = "REMOTE_ERROR"

    def __init__(self, message: str = "", status_code: int = 500):
        super().__init__(message)
        self.status_code = status_code


# Lookup used by the client gateway to rebuild typed errors from a response
ERRORS_BY_CODE = {
    cls.code: cls
    for cls in (
        CredentialMissingError,
        DecryptionError,
        InvalidEnvelopeError,
        IntegrityMismatchError,
        NotFoundError,
        UnavailableError,
        SaveVerificationError,
        FileTooLargeError,
        InvalidRequestError,
        StorageError,
        RateLimitedError,
    )
}
