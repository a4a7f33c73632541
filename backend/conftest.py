"""
pytest entry point.

Sets the test environment before any application module is imported:
``core.config.settings`` is built at import time.
"""

import os
import tempfile

os.environ.setdefault("KDF_ITERATIONS", "1000")
os.environ.setdefault("IO_RETRY_DELAY", "0.01")
os.environ.setdefault("STORAGE_DIR", tempfile.mkdtemp(prefix="vault-storage-"))
os.environ.setdefault("LOCAL_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SERVER_URL", "http://test")
os.environ.setdefault("PROBE_TIMEOUT", "2")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="vault-log-"))
