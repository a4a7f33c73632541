# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""Pydantic request / response models for the file endpoints."""

from typing import List, Optional

from pydantic import BaseModel
from pydantic.alias_generators import to_camel

# Field names are snake_case in Python and camelCase on the wire.
_CAMEL = {"alias_generator": to_camel, "populate_by_name": True}


class UploadResponse(BaseModel):
    success: bool = True
    file_id: str
    name: str
    size: int
    type: str
    uploaded_at: Optional[str] = None

    model_config = _CAMEL


# -- Metadata --------------------------------------------------------------
# Decrypted metadata record.  ``checksum`` is the SHA-256 of the original
# bytes; ``has_file`` is only filled in by the listing.


class FileMetadata(BaseModel):
    id: str
    name: str
    type: str
    size: int
    description: str = ""
    category: str = "file"
    uploaded_at: Optional[str] = None
    checksum: Optional[str] = None
    encrypted: Optional[bool] = None
    has_file: Optional[bool] = None

    model_config = _CAMEL


class ListError(BaseModel):
    file: str
    error: str


class FileListResponse(BaseModel):
    files: List[FileMetadata]
    total_count: int
    errors: Optional[List[ListError]] = None
    timestamp: Optional[str] = None

    model_config = _CAMEL


class DeleteResponse(BaseModel):
    success: bool = True
