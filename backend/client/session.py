# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
VaultSession – one unlocked vault.

The session owns a single ``Credentials`` object and hands the same
instance to the LocalStore and the RemoteGateway, so locking the session
clears the password for both at once.  Nothing here is global: two sessions
in one process are fully independent.

Usage::

    session = await VaultSession.open("Tr0ub4dor&3")
    await session.store.add({"name": "Gmail", "category": "password-entry"})
    await session.sync.auto_sync()
    await session.close()
"""

from dataclasses import dataclass
from typing import Optional

import httpx

from client.gateway import RemoteGateway
from client.local_store import LocalStore
from client.push_queue import PushPolicy
from client.sync import SyncCoordinator
from core.config import settings
from core.exceptions import CredentialMissingError
from core.logger import logger
from database import init_models, make_engine, make_session_factory


@dataclass
class Credentials:
    password: Optional[str] = None

    def __repr__(self) -> str:
        return f"Credentials(password={'***' if self.password else None})"

    def clear(self) -> None:
        self.password = None


class VaultSession:
    def __init__(self, credentials: Credentials, engine, store: LocalStore,
                 gateway: RemoteGateway, sync: SyncCoordinator):
        self.credentials = credentials
        self.engine = engine
        self.store = store
        self.gateway = gateway
        self.sync = sync

    @classmethod
    async def open(
        cls,
        password: str,
        database_url: Optional[str] = None,
        server_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        policy: Optional[PushPolicy] = None,
        debounce: Optional[float] = None,
    ) -> "VaultSession":
        """Unlock with *password*, creating the local tables on first use."""
        if not password:
            raise CredentialMissingError()
        credentials = Credentials(password)

        engine = make_engine(database_url or settings.local_database_url)
        await init_models(engine)

        store = LocalStore(make_session_factory(engine), credentials=credentials)
        gateway = RemoteGateway(server_url, credentials=credentials, transport=transport)
        sync = SyncCoordinator(store, gateway, policy=policy, debounce=debounce)

        logger.info("Session opened (server=%s)", gateway.base_url)
        return cls(credentials, engine, store, gateway, sync)

    @property
    def locked(self) -> bool:
        return not self.credentials.password

    def unlock(self, password: str) -> None:
        if not password:
            raise CredentialMissingError()
        self.credentials.password = password

    def lock(self) -> None:
        """Forget the password.  Reads return stored envelopes until unlocked."""
        self.credentials.clear()
        logger.info("Session locked")

    async def close(self) -> None:
        """Wait for pending pushes, then release the HTTP client and the engine."""
        await self.sync.flush()
        self.lock()
        await self.gateway.aclose()
        await self.engine.dispose()
