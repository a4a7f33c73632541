# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
LocalStore – the durable client-side collection of vault items.

Security invariants
-------------------
* Sensitive fields (see ``core.security.SENSITIVE_FIELDS``) are encrypted
  one by one before they reach SQLite, whenever credentials are set.
* The master password lives only in the ``Credentials`` object handed in by
  the session; it is never written to the database.
* Without credentials every read returns the stored records unchanged –
  envelopes included – and never raises.

The store knows nothing about the server.  After each mutation it notifies
an optional listener (the SyncCoordinator), which decides what to push.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Iterable, List, Mapping, Optional, Protocol, Union

from pydantic import BaseModel
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from client.schemas import (
    Category,
    DedupeResult,
    FileAttachment,
    StorageType,
    SyncStatus,
    VaultItem,
    as_utc,
    utcnow,
)
from core.exceptions import InvalidRequestError, NotFoundError
from core.logger import logger
from core.security import StillEncrypted, decrypt_record_detailed, encrypt_record
from models.file_attachment import FileAttachmentRow
from models.vault_item import VaultItemRow

# Columns written straight from a VaultItem (everything except id,
# timestamps and the attachment list)
_ITEM_COLUMNS = (
    "name",
    "category",
    "description",
    "platform",
    "username",
    "password",
    "url",
    "link_url",
    "links",
    "filepath",
    "is_favorite",
    "order_index",
    "use_server_storage",
    "server_file_ids",
    "sync_status",
)

# camelCase alias → field name, so partial updates may use either spelling
_FIELD_BY_ALIAS = {
    field.alias or name: name for name, field in VaultItem.model_fields.items()
}


class StoreListener(Protocol):
    def store_changed(self) -> None:
        """Called after every local mutation.  Must not block."""

    async def item_deleted(self, item: VaultItem) -> None:
        """Called after an item was removed locally."""


def _db_time(value):
    value = as_utc(value)
    return value.replace(tzinfo=None) if value is not None else None


def _attachment_row(att: FileAttachment, position: int) -> FileAttachmentRow:
    storage_type = StorageType(att.storage_type)
    # The server-only tier never keeps bytes locally.
    keep_bytes = storage_type != StorageType.SERVER
    return FileAttachmentRow(
        position=position,
        name=att.name,
        mime_type=att.type,
        size=att.size,
        data=att.data if keep_bytes else None,
        server_id=att.server_id,
        storage_type=storage_type.value,
        server_url=att.server_url,
        last_synced=_db_time(att.last_synced),
    )


def _attachment_record(row: FileAttachmentRow) -> dict:
    return {
        "name": row.name,
        "type": row.mime_type,
        "size": row.size,
        "data": row.data,
        "server_id": row.server_id,
        "storage_type": row.storage_type,
        "server_url": row.server_url,
        "last_synced": as_utc(row.last_synced),
    }


def _row_record(row: VaultItemRow) -> dict:
    record = {column: getattr(row, column) for column in _ITEM_COLUMNS}
    record["id"] = row.id
    record["server_file_ids"] = list(row.server_file_ids or [])
    record["created_at"] = as_utc(row.created_at)
    record["updated_at"] = as_utc(row.updated_at)
    record["file_data"] = [_attachment_record(a) for a in row.attachments]
    return record


def _coerce_attachments(values: Iterable[Any]) -> List[FileAttachment]:
    return [
        v if isinstance(v, FileAttachment) else FileAttachment.model_validate(v)
        for v in values or []
    ]


class LocalStore:
    """Encrypted, id-keyed collection of vault items backed by SQLite."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        credentials=None,
        listener: Optional[StoreListener] = None,
    ):
        self._session_factory = session_factory
        # One session at a time: the in-memory engine shares a single
        # connection, so a background push's rollback would otherwise undo a
        # concurrent commit.
        self._lock = asyncio.Lock()
        self.credentials = credentials
        self.listener = listener

    @asynccontextmanager
    async def _session(self):
        async with self._lock:
            async with self._session_factory() as session:
                yield session

    # -- Credentials ---------------------------------------------------------

    @property
    def _password(self) -> Optional[str]:
        if self.credentials is None:
            return None
        return self.credentials.password or None

    def set_credentials(self, credentials) -> None:
        self.credentials = credentials

    def clear_credentials(self) -> None:
        self.credentials = None

    # -- Encryption helpers --------------------------------------------------

    def _encrypt(self, record: dict) -> dict:
        password = self._password
        if not password:
            return record
        return encrypt_record(record, password)

    def _decrypt(self, record: dict) -> VaultItem:
        password = self._password
        if password:
            record, results = decrypt_record_detailed(record, password)
            for field, result in results.items():
                if isinstance(result, StillEncrypted):
                    logger.warning(
                        "LocalStore: field %s of item %s could not be decrypted, left as stored",
                        field,
                        record.get("id"),
                    )
        return VaultItem.model_validate(record)

    # -- Notifications -------------------------------------------------------

    def _notify_changed(self) -> None:
        if self.listener is None:
            return
        try:
            self.listener.store_changed()
        except Exception as exc:
            # A push that cannot even be scheduled must not fail the write.
            logger.warning("LocalStore: change notification failed: %s", exc)

    # -- Writes --------------------------------------------------------------

    def _new_row(self, item: VaultItem, created_at, updated_at) -> VaultItemRow:
        record = self._encrypt(item.model_dump(include=set(_ITEM_COLUMNS)))
        row = VaultItemRow(
            **record,
            created_at=_db_time(created_at),
            updated_at=_db_time(updated_at),
        )
        row.attachments = [
            _attachment_row(att, pos) for pos, att in enumerate(item.file_data)
        ]
        return row

    async def add(self, item: Union[VaultItem, Mapping[str, Any]]) -> int:
        """
        Persist a new item and return its id.

        createdAt/updatedAt are always set here; any id or timestamps on the
        input are ignored.
        """
        if not isinstance(item, VaultItem):
            item = VaultItem.model_validate(item)
        now = utcnow()
        async with self._session() as session:
            row = self._new_row(item, now, now)
            session.add(row)
            await session.commit()
            item_id = row.id

        logger.info("LocalStore: added item %s (%s)", item_id, item.category)
        self._notify_changed()
        return item_id

    def _normalize_changes(self, changes: Union[VaultItem, Mapping[str, Any]]) -> dict:
        if isinstance(changes, BaseModel):
            changes = changes.model_dump()
        out = {}
        for key, value in changes.items():
            name = _FIELD_BY_ALIAS.get(key, key)
            if name in ("id", "created_at", "updated_at"):
                continue
            if name not in VaultItem.model_fields:
                raise InvalidRequestError(f"Unknown vault item field: {key}")
            out[name] = value
        if "category" in out:
            out["category"] = Category(out["category"]).value
        if out.get("sync_status") is not None:
            out["sync_status"] = SyncStatus(out["sync_status"]).value
        return out

    async def update(self, item_id: int, changes: Union[VaultItem, Mapping[str, Any]]) -> None:
        """
        Apply a partial update.  Sensitive fields present in *changes* are
        re-encrypted (with fresh envelopes); updatedAt is refreshed.
        A ``file_data`` entry replaces the whole attachment list.
        """
        changes = self._normalize_changes(changes)
        attachments = changes.pop("file_data", None)
        changes = self._encrypt(changes)

        async with self._session() as session:
            row = await session.get(VaultItemRow, item_id)
            if row is None:
                raise NotFoundError(f"Vault item {item_id} not found")
            for column, value in changes.items():
                if column == "server_file_ids":
                    value = list(value or [])
                setattr(row, column, value)
            if attachments is not None:
                row.attachments = [
                    _attachment_row(att, pos)
                    for pos, att in enumerate(_coerce_attachments(attachments))
                ]
            row.updated_at = _db_time(utcnow())
            await session.commit()

        logger.info("LocalStore: updated item %s (%d field(s))", item_id, len(changes))
        self._notify_changed()

    async def delete(self, item_id: int) -> None:
        """
        Remove an item.  The item is read first so the listener learns which
        remote artifacts (vault item, server file ids) to clean up; the push
        notification follows whatever that cleanup did.
        """
        item = await self.get_by_id(item_id)

        async with self._session() as session:
            row = await session.get(VaultItemRow, item_id)
            if row is not None:
                await session.delete(row)
                await session.commit()
        logger.info("LocalStore: deleted item %s", item_id)

        if item is not None and self.listener is not None:
            try:
                await self.listener.item_deleted(item)
            except Exception as exc:
                logger.warning("LocalStore: remote cleanup for item %s failed: %s", item_id, exc)
        self._notify_changed()

    async def replace_all(self, items: Iterable[Mapping[str, Any]]) -> int:
        """
        Clear the whole collection and insert *items* as new records.

        Incoming ids are dropped – every record gets a freshly minted local
        id.  createdAt/updatedAt are kept from the input.  Runs in one
        transaction and does not notify the listener.
        """
        rows = []
        for raw in items:
            data = {k: v for k, v in dict(raw).items() if k != "id"}
            item = VaultItem.model_validate(data)
            created = item.created_at or utcnow()
            rows.append(self._new_row(item, created, item.updated_at or created))

        async with self._session() as session:
            await session.execute(delete(FileAttachmentRow))
            await session.execute(delete(VaultItemRow))
            session.add_all(rows)
            await session.commit()

        logger.info("LocalStore: replaced local collection with %d item(s)", len(rows))
        return len(rows)

    async def clear(self) -> None:
        async with self._session() as session:
            await session.execute(delete(FileAttachmentRow))
            await session.execute(delete(VaultItemRow))
            await session.commit()

    # -- Reads ---------------------------------------------------------------

    async def dedupe(self) -> DedupeResult:
        """
        Drop duplicates by (name, category, createdAt), keeping the first
        (lowest id) occurrence.  Idempotent.
        """
        async with self._session() as session:
            result = await session.execute(
                select(VaultItemRow.id, VaultItemRow.name, VaultItemRow.category, VaultItemRow.created_at)
                .order_by(VaultItemRow.id.asc())
            )
            seen = set()
            duplicates = []
            for item_id, name, category, created_at in result.all():
                key = (name, category, created_at)
                if key in seen:
                    duplicates.append(item_id)
                else:
                    seen.add(key)

            if duplicates:
                await session.execute(
                    delete(FileAttachmentRow).where(FileAttachmentRow.item_id.in_(duplicates))
                )
                await session.execute(delete(VaultItemRow).where(VaultItemRow.id.in_(duplicates)))
                await session.commit()
                logger.info("LocalStore: removed %d duplicate item(s)", len(duplicates))

            remaining = await session.scalar(select(func.count()).select_from(VaultItemRow))
        return DedupeResult(removed=len(duplicates), remaining=remaining or 0)

    async def _select(self, stmt) -> List[VaultItem]:
        async with self._session() as session:
            rows = (await session.scalars(stmt)).all()
            records = [_row_record(row) for row in rows]
        return [self._decrypt(record) for record in records]

    async def get_all(self) -> List[VaultItem]:
        """All items, newest first, decrypted.  Runs dedupe beforehand."""
        await self.dedupe()
        return await self._select(
            select(VaultItemRow).order_by(VaultItemRow.created_at.desc(), VaultItemRow.id.desc())
        )

    async def get_by_id(self, item_id: int) -> Optional[VaultItem]:
        async with self._session() as session:
            row = await session.get(VaultItemRow, item_id)
            if row is None:
                return None
            record = _row_record(row)
        return self._decrypt(record)

    async def get_by_category(self, category: Union[Category, str]) -> List[VaultItem]:
        category = Category(category).value
        return await self._select(
            select(VaultItemRow)
            .where(VaultItemRow.category == category)
            .order_by(VaultItemRow.created_at.desc(), VaultItemRow.id.desc())
        )

    async def search(self, query: str) -> List[VaultItem]:
        """Case-insensitive match on name or (decrypted) description."""
        needle = query.lower()
        return [
            item
            for item in await self.get_all()
            if needle in item.name.lower()
            or (item.description and needle in item.description.lower())
        ]

    async def count(self) -> int:
        async with self._session() as session:
            return await session.scalar(select(func.count()).select_from(VaultItemRow)) or 0
