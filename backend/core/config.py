"""
Application configuration.
Every tunable is loaded from environment variables (via etc/app.conf).
The master password is never part of the configuration – it only lives in a
client session or in the header of a single request.
"""

from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings

# Project root is two levels up from this file  (backend/core/config.py → project/)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    # -- Server: encryption at rest -------------------------------------
    # Root directory holding files/, metadata/ and vault-items/
    storage_dir: Path = _PROJECT_ROOT / "vault-storage"

    # Uploads above this ceiling are rejected before encryption begins
    max_upload_bytes: int = 100 * 1024 * 1024

    # Bounded retry for artifact reads/writes; the delay grows linearly
    # (delay * attempt number).
    io_retry_attempts: int = 3
    io_retry_delay: float = 1.0

    # Snapshot backups kept after each successful save
    backup_keep: int = 5

    # Metadata records decrypted concurrently when listing files
    list_batch_size: int = 10

    cors_origins: list[str] = ["http://localhost:8000"]

    # Per-client-IP request ceiling per window; over it answers 429.
    # rate_limit_block > 0 also shuts the client out for that many seconds.
    rate_limit_enabled: bool = True
    rate_limit_requests: int = 1000
    rate_limit_window: float = 60.0
    rate_limit_block: float = 0.0

    # Bind address when started with ``python backend/main.py``
    host: str = "127.0.0.1"
    port: int = 8000

    # -- Crypto ---------------------------------------------------------
    # PBKDF2 rounds.  Envelopes do not record this value, so changing it
    # makes every existing envelope undecryptable.
    kdf_iterations: int = 100_000

    # -- Client ---------------------------------------------------------
    local_database_url: str = f"sqlite+aiosqlite:///{_PROJECT_ROOT / 'vault.db'}"
    server_url: str = "http://localhost:8000"

    # Upper bound for the availability probe; a slower answer counts as
    # "unavailable".
    probe_timeout: float = 5.0
    request_timeout: float = 30.0

    # "single-flight" or "overlap" – see client/push_queue.py
    push_policy: str = "single-flight"
    push_debounce: float = 0.0

    # -- Logging --------------------------------------------------------
    log_config: Path = _PROJECT_ROOT / "etc" / "logging.conf"
    log_dir: Path = _PROJECT_ROOT / "log"
    # Overrides the level of the "vaultsync" logger, e.g. DEBUG
    log_level: Optional[str] = None

    # app.conf lives in etc/ – resolved relative to the project root so that
    # the file is found regardless of the working directory.
    model_config = {"env_file": str(_PROJECT_ROOT / "etc" / "app.conf")}


# Module-level singleton – import this everywhere: from core.config import settings
settings = Settings()
