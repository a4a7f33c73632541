# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""Pydantic request / response models for the vault-item snapshot endpoints."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel
from pydantic.alias_generators import to_camel

_CAMEL = {"alias_generator": to_camel, "populate_by_name": True}


# -- Requests --------------------------------------------------------------
# Items are opaque to the server: it stores whatever JSON objects the client
# sends, as one encrypted snapshot.  Only ``id`` (a string) is required.


class SaveItemsRequest(BaseModel):
    items: List[Dict[str, Any]]


class UpdateItemRequest(BaseModel):
    item: Dict[str, Any]


# -- Responses -------------------------------------------------------------


class SaveItemsResponse(BaseModel):
    success: bool = True
    item_count: int
    saved_at: str
    verified: bool = True

    model_config = _CAMEL


class ItemsResponse(BaseModel):
    items: List[Dict[str, Any]]
    total_count: int
    invalid_count: Optional[int] = None
    timestamp: Optional[str] = None

    model_config = _CAMEL


class UpdateItemResponse(BaseModel):
    success: bool = True
    item_id: str
    updated_at: str

    model_config = _CAMEL


class DeleteItemResponse(BaseModel):
    success: bool = True
    item_id: str
    deleted_at: str

    model_config = _CAMEL
