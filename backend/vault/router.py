# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Vault-item endpoints – the encrypted snapshot of a client's whole vault.

POST replaces the snapshot wholesale (no merge).  PUT and DELETE touch a
single entry inside it.  Requests are independent: concurrent writers race
and the last completed write wins.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from core.security import get_master_password
from vault.schemas import (
    DeleteItemResponse,
    ItemsResponse,
    SaveItemsRequest,
    SaveItemsResponse,
    UpdateItemRequest,
    UpdateItemResponse,
)
from vault.service import VaultFileService, get_file_service

router = APIRouter(prefix="/vault-items", tags=["vault-items"])


# ---------------------------------------------------------------------------
# POST /vault-items  – overwrite the snapshot
# ---------------------------------------------------------------------------


@router.post("", response_model=SaveItemsResponse)
def save_items(
    body: SaveItemsRequest,
    password: str = Depends(get_master_password),
    service: VaultFileService = Depends(get_file_service),
):
    """Backed up, written, read back and verified before answering."""
    result = service.save_items(body.items, password)
    return SaveItemsResponse(item_count=result["itemCount"], saved_at=result["savedAt"])


# ---------------------------------------------------------------------------
# GET /vault-items
# ---------------------------------------------------------------------------


@router.get("", response_model=ItemsResponse, response_model_exclude_none=True)
def load_items(
    password: str = Depends(get_master_password),
    service: VaultFileService = Depends(get_file_service),
):
    """An account that never saved gets an empty list, not a 404."""
    items, invalid_count = service.load_items(password)
    return ItemsResponse(
        items=items,
        total_count=len(items),
        invalid_count=invalid_count or None,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


# ---------------------------------------------------------------------------
# PUT /vault-items/{id}  – upsert one entry
# ---------------------------------------------------------------------------


@router.put("/{item_id}", response_model=UpdateItemResponse)
def update_item(
    item_id: str,
    body: UpdateItemRequest,
    password: str = Depends(get_master_password),
    service: VaultFileService = Depends(get_file_service),
):
    updated_at = service.upsert_item(item_id, body.item, password)
    return UpdateItemResponse(item_id=item_id, updated_at=updated_at)


# ---------------------------------------------------------------------------
# DELETE /vault-items/{id}
# ---------------------------------------------------------------------------


@router.delete("/{item_id}", response_model=DeleteItemResponse)
def delete_item(
    item_id: str,
    password: str = Depends(get_master_password),
    service: VaultFileService = Depends(get_file_service),
):
    """404 when the entry (or the whole snapshot) does not exist."""
    deleted_at = service.delete_item(item_id, password)
    return DeleteItemResponse(item_id=item_id, deleted_at=deleted_at)
