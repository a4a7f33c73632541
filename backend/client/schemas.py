# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Client-side domain models.

``VaultItem`` and ``FileAttachment`` are what callers of the sync engine
see.  They serialise with camelCase keys (``createdAt``, ``fileData`` …),
which is also the shape of a vault item inside the server snapshot.
Attachment bytes travel as base64 in JSON.
"""

import base64
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic.alias_generators import to_camel


class Category(str, Enum):
    PASSWORD = "password-entry"
    NOTE = "note"
    LINK = "link"
    FILE = "file"


class StorageType(str, Enum):
    LOCAL = "local"     # bytes only on this device, upload pending
    SERVER = "server"   # bytes fetched on demand, never persisted locally
    HYBRID = "hybrid"   # cached locally and uploaded


class SyncStatus(str, Enum):
    SYNCED = "synced"
    PENDING = "pending"
    ERROR = "error"
    LOCAL_ONLY = "local-only"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
    )


class FileAttachment(_CamelModel):
    name: str
    type: str = "application/octet-stream"
    size: int = 0
    data: Optional[bytes] = None
    server_id: Optional[str] = None
    storage_type: StorageType = StorageType.LOCAL
    server_url: Optional[str] = None
    last_synced: Optional[datetime] = None

    @field_validator("data", mode="before")
    @classmethod
    def _decode_data(cls, value):
        if isinstance(value, str):
            return base64.b64decode(value)
        return value

    @field_serializer("data", when_used="json")
    def _encode_data(self, value: Optional[bytes]):
        if value is None:
            return None
        return base64.b64encode(value).decode("ascii")


class VaultItem(_CamelModel):
    id: Optional[int] = None
    name: str
    category: Category

    description: Optional[str] = None
    platform: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    url: Optional[str] = None
    link_url: Optional[str] = None
    links: Optional[str] = None
    filepath: Optional[str] = None

    file_data: List[FileAttachment] = Field(default_factory=list)

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    is_favorite: bool = False
    order_index: Optional[int] = None
    use_server_storage: bool = False
    server_file_ids: List[str] = Field(default_factory=list)
    sync_status: Optional[SyncStatus] = None

    @field_validator("is_favorite", mode="before")
    @classmethod
    def _coerce_favorite(cls, value):
        # Older forms posted the flag as the strings "true"/"false"
        if isinstance(value, str):
            return value.lower() == "true"
        return bool(value)


# -- Result objects -----------------------------------------------------------
# SyncCoordinator reports remote failures through these instead of raising.


class SyncResult(BaseModel):
    success: bool
    action: str = "none"  # "loaded" | "none"
    count: Optional[int] = None
    error: Optional[str] = None


class PushResult(BaseModel):
    success: bool
    count: Optional[int] = None
    error: Optional[str] = None


class DedupeResult(BaseModel):
    removed: int
    remaining: int


class FileSyncResult(BaseModel):
    success: int = 0
    failed: int = 0
