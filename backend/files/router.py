# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
File endpoints – encrypted upload, download, listing, metadata, delete.

Security invariants enforced by every handler
---------------------------------------------
* ``X-Master-Password`` is required on every endpoint (via
  ``get_master_password``); it keys the encryption of this request only.
* File bytes and metadata are written to disk only in encrypted form.
* A wrong password surfaces as 401 ``DECRYPTION_ERROR``, a damaged file as
  500 ``INTEGRITY_ERROR``, an unknown id as 404.
"""

from datetime import datetime, timezone
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import Response

from core.exceptions import FileTooLargeError
from core.security import get_master_password
from files.schemas import DeleteResponse, FileListResponse, FileMetadata, UploadResponse
from vault.service import VaultFileService, get_file_service

router = APIRouter(prefix="/files", tags=["files"])


# ---------------------------------------------------------------------------
# POST /files/upload  – encrypt and store one file
# ---------------------------------------------------------------------------


@router.post("/upload", response_model=UploadResponse)
def upload_file(
    file: UploadFile = File(...),
    description: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    password: str = Depends(get_master_password),
    service: VaultFileService = Depends(get_file_service),
):
    """Multipart upload.  Oversized files are refused before being read."""
    declared = getattr(file, "size", None)
    if declared is not None and declared > service.max_upload_bytes:
        raise FileTooLargeError()

    content = file.file.read()
    metadata = service.upload(
        content,
        name=file.filename or "file",
        mime_type=file.content_type or "application/octet-stream",
        password=password,
        description=description or "",
        category=category or "file",
    )
    return UploadResponse(
        file_id=metadata["id"],
        name=metadata["name"],
        size=metadata["size"],
        type=metadata["type"],
        uploaded_at=metadata["uploadedAt"],
    )


# ---------------------------------------------------------------------------
# GET /files  – list the decryptable files
# ---------------------------------------------------------------------------


@router.get("", response_model=FileListResponse, response_model_exclude_none=True)
def list_files(
    password: str = Depends(get_master_password),
    service: VaultFileService = Depends(get_file_service),
):
    """
    Records that cannot be decrypted with this password are reported under
    ``errors`` instead of failing the whole listing.
    """
    files, errors = service.list_files(password)
    return FileListResponse(
        files=files,
        total_count=len(files),
        errors=errors or None,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


# ---------------------------------------------------------------------------
# GET /files/{id}  – raw bytes
# ---------------------------------------------------------------------------


@router.get("/{file_id}")
def download_file(
    file_id: str,
    password: str = Depends(get_master_password),
    service: VaultFileService = Depends(get_file_service),
):
    content, metadata = service.download(file_id, password)
    return Response(
        content=content,
        media_type=metadata.get("type") or "application/octet-stream",
        headers={
            "Content-Disposition": f"attachment; filename*=UTF-8''{quote(metadata.get('name') or file_id)}",
            "X-File-ID": file_id,
            "X-Upload-Date": metadata.get("uploadedAt") or "",
        },
    )


# ---------------------------------------------------------------------------
# GET /files/{id}/metadata
# ---------------------------------------------------------------------------


@router.get("/{file_id}/metadata", response_model=FileMetadata, response_model_exclude_none=True)
def file_metadata(
    file_id: str,
    password: str = Depends(get_master_password),
    service: VaultFileService = Depends(get_file_service),
):
    return service.load_metadata(file_id, password)


# ---------------------------------------------------------------------------
# DELETE /files/{id}
# ---------------------------------------------------------------------------


@router.delete("/{file_id}", response_model=DeleteResponse)
def delete_file(
    file_id: str,
    password: str = Depends(get_master_password),
    service: VaultFileService = Depends(get_file_service),
):
    service.delete(file_id)
    return DeleteResponse()
