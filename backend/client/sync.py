# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
SyncCoordinator – the only component that talks to both the LocalStore and
the RemoteGateway.

Sync model
----------
* ``auto_sync`` pulls the server snapshot and lets it replace the local
  collection outright (whoever synced last wins; nothing is merged).
* Every local mutation schedules ``push_snapshot`` through a PushQueue,
  which overwrites the server snapshot with the full local collection.
* Remote failures come back as result objects.  Only a missing credential
  and the explicit attachment upload raise.

Ordering caveat: ``auto_sync`` pulls before anything pending is pushed, so a
stale server snapshot can replace local edits whose background push has not
landed yet.  Call ``flush()`` first to avoid that window.
"""

from typing import Any, List, Mapping, Optional, Union

from pydantic import ValidationError

from client.gateway import RemoteGateway
from client.local_store import LocalStore
from client.push_queue import PushPolicy, PushQueue
from client.schemas import (
    FileAttachment,
    FileSyncResult,
    PushResult,
    StorageType,
    SyncResult,
    SyncStatus,
    VaultItem,
    utcnow,
)
from core.config import settings
from core.exceptions import (
    CredentialMissingError,
    InvalidRequestError,
    NotFoundError,
    UnavailableError,
    VaultError,
)
from core.logger import logger


class SyncCoordinator:
    def __init__(
        self,
        store: LocalStore,
        gateway: RemoteGateway,
        policy: Union[PushPolicy, str, None] = None,
        debounce: Optional[float] = None,
    ):
        self.store = store
        self.gateway = gateway
        self.queue = PushQueue(
            self.push_snapshot,
            policy=PushPolicy(policy or settings.push_policy),
            debounce=settings.push_debounce if debounce is None else debounce,
        )
        self.last_push: Optional[PushResult] = None
        store.listener = self

    @property
    def _has_credentials(self) -> bool:
        return bool(getattr(self.store.credentials, "password", None))

    # -----------------------------------------------------------------------
    # LocalStore listener
    # -----------------------------------------------------------------------

    def store_changed(self) -> None:
        self.queue.request()

    async def item_deleted(self, item: VaultItem) -> None:
        """Best-effort removal of the item's server-side artifacts."""
        if not self._has_credentials:
            return
        for file_id in item.server_file_ids:
            try:
                await self.gateway.delete_file(file_id)
            except VaultError as exc:
                logger.warning("Sync: could not delete server file %s: %s", file_id, exc)
        try:
            await self.gateway.delete_item(str(item.id))
        except NotFoundError:
            pass
        except VaultError as exc:
            logger.warning("Sync: could not delete server item %s: %s", item.id, exc)

    # -----------------------------------------------------------------------
    # Snapshot sync
    # -----------------------------------------------------------------------

    async def pull(self) -> SyncResult:
        """
        Replace the local collection with the server snapshot, then dedupe.
        Gateway errors propagate to the caller.
        """
        items = await self.gateway.load_items()
        await self.store.replace_all(items)
        result = await self.store.dedupe()
        logger.info(
            "Sync: loaded %d item(s) from server (%d duplicate(s) dropped)",
            result.remaining,
            result.removed,
        )
        return SyncResult(success=True, action="loaded", count=result.remaining)

    async def auto_sync(self) -> SyncResult:
        if not self._has_credentials:
            return SyncResult(success=False, action="none", error=CredentialMissingError().message)

        if not await self.gateway.is_available():
            logger.info("Sync: server unavailable, staying on local data")
            return SyncResult(success=True, action="none")

        try:
            return await self.pull()
        except VaultError as exc:
            logger.error("Sync: pull failed: %s", exc.message)
            return SyncResult(success=False, action="none", error=exc.message)
        except ValidationError as exc:
            # Snapshot rejected as a whole; local data stays as it was.
            logger.error("Sync: server snapshot is malformed: %s", exc)
            return SyncResult(success=False, action="none", error="Server snapshot is malformed")

    async def push_snapshot(self) -> PushResult:
        """Overwrite the server snapshot with the whole local collection."""
        if not self._has_credentials:
            result = PushResult(success=False, error=CredentialMissingError().message)
        else:
            items = await self.store.get_all()
            payload = []
            for item in items:
                record = item.model_dump(mode="json", by_alias=True)
                record["id"] = str(item.id)
                payload.append(record)
            try:
                response = await self.gateway.save_items(payload)
                result = PushResult(success=True, count=response.get("itemCount", len(payload)))
                logger.info("Sync: pushed %d item(s) to server", result.count)
            except VaultError as exc:
                logger.warning("Sync: push failed: %s", exc.message)
                result = PushResult(success=False, error=exc.message)
        self.last_push = result
        return result

    async def flush(self) -> None:
        """Wait for every scheduled push to finish."""
        await self.queue.flush()

    # -----------------------------------------------------------------------
    # Attachment tiering
    # -----------------------------------------------------------------------

    async def upload_attachment(self, item_id: int, index: int) -> FileAttachment:
        """
        Upload the local bytes of attachment *index* and switch it to the
        hybrid tier.  On failure the item is marked ``error`` and the
        original exception is re-raised.
        """
        if not self._has_credentials:
            raise CredentialMissingError()

        item = await self.store.get_by_id(item_id)
        if item is None:
            raise NotFoundError(f"Vault item {item_id} not found")
        if not 0 <= index < len(item.file_data):
            raise NotFoundError("File not found")

        attachment = item.file_data[index]
        try:
            if attachment.data is None:
                raise InvalidRequestError("Attachment has no local data")
            if not await self.gateway.is_available():
                raise UnavailableError("File server not available")

            response = await self.gateway.upload(
                attachment.data,
                attachment.name,
                attachment.type,
                description=item.description or "",
                category=item.category,
            )
            server_id = response["fileId"]
            uploaded = attachment.model_copy(
                update={
                    "server_id": server_id,
                    "storage_type": StorageType.HYBRID.value,
                    "server_url": self.gateway.base_url,
                    "last_synced": utcnow(),
                }
            )
            file_data = list(item.file_data)
            file_data[index] = uploaded
            server_file_ids = list(item.server_file_ids)
            if server_id not in server_file_ids:
                server_file_ids.append(server_id)

            await self.store.update(
                item_id,
                {
                    "file_data": file_data,
                    "use_server_storage": True,
                    "server_file_ids": server_file_ids,
                    "sync_status": SyncStatus.SYNCED,
                },
            )
        except Exception:
            logger.error("Sync: upload of %s (item %s) failed", attachment.name, item_id)
            await self._mark_error(item_id)
            raise

        logger.info("Sync: file uploaded to server: %s (%s)", attachment.name, server_id)
        return uploaded

    async def _mark_error(self, item_id: int) -> None:
        try:
            await self.store.update(item_id, {"sync_status": SyncStatus.ERROR})
        except VaultError as exc:
            logger.warning("Sync: could not mark item %s as failed: %s", item_id, exc)

    async def download_attachment(self, server_id: str) -> FileAttachment:
        """Fetch a server file as a server-tier attachment.  LocalStore is not touched."""
        content = await self.gateway.download(server_id)
        metadata = await self.gateway.metadata(server_id)
        return FileAttachment(
            name=metadata["name"],
            type=metadata["type"],
            size=metadata["size"],
            data=content,
            server_id=server_id,
            storage_type=StorageType.SERVER,
            server_url=self.gateway.base_url,
            last_synced=utcnow(),
        )

    async def _upload_pending(self, item_id: int, attachments: List[FileAttachment]) -> None:
        try:
            for index, attachment in enumerate(attachments):
                if not attachment.server_id:
                    await self.upload_attachment(item_id, index)
        except VaultError as exc:
            # upload_attachment has already marked the item.
            logger.warning("Sync: attachments of item %s stay local: %s", item_id, exc.message)

    async def add_with_server_storage(
        self,
        item: Union[VaultItem, Mapping[str, Any]],
        upload: bool = True,
    ) -> int:
        """Add locally, then try to upload every attachment.  Never fails on upload."""
        if not isinstance(item, VaultItem):
            item = VaultItem.model_validate(item)
        item_id = await self.store.add(item)
        if upload and item.file_data:
            await self._upload_pending(item_id, item.file_data)
        return item_id

    async def update_with_server_storage(
        self,
        item_id: int,
        changes: Mapping[str, Any],
        upload: bool = True,
    ) -> None:
        """Update locally, then upload attachments that have no server id yet."""
        await self.store.update(item_id, changes)
        attachments = changes.get("file_data", changes.get("fileData"))
        if upload and attachments:
            item = await self.store.get_by_id(item_id)
            if item is not None:
                await self._upload_pending(item_id, item.file_data)

    async def sync_all_files(self) -> FileSyncResult:
        """Upload every attachment that has local bytes but no server id."""
        result = FileSyncResult()
        for item in await self.store.get_all():
            for index, attachment in enumerate(item.file_data):
                if attachment.server_id or attachment.data is None:
                    continue
                try:
                    await self.upload_attachment(item.id, index)
                    result.success += 1
                except VaultError as exc:
                    logger.warning("Sync: failed to sync file %s: %s", attachment.name, exc.message)
                    result.failed += 1
        return result

    async def list_server_files(self) -> List[dict]:
        response = await self.gateway.list_files()
        return response.get("files", [])

    async def is_server_available(self) -> bool:
        if not self._has_credentials:
            return False
        return await self.gateway.is_available()
