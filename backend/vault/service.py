# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
VaultFileService – server-side encryption at rest.

Layout under ``storage_dir``
----------------------------
files/<id>.enc                         encrypted file body (base64 of the bytes)
metadata/<id>.meta                     encrypted metadata record
vault-items/vault-items.enc            encrypted vault-item snapshot
vault-items/vault-items-backup-<ns>.enc  pre-save snapshot copies

Every artifact is a JSON object ``{"encrypted", "salt", "iv"}`` produced by
``core.security.encrypt_artifact`` with the password of the request.

Guarantees
----------
* A failed upload leaves neither a body nor a metadata file behind.
* Metadata is decrypted before the body: failure there means "wrong
  password", which is distinct from "file not found".
* A body that no longer opens or no longer matches its checksum after the
  metadata did is reported as an integrity failure.
* A snapshot save is backed up, read back and verified; on a mismatch the
  backup is restored and the save fails.

There is no cross-request locking.  Two concurrent snapshot saves race and
the last write wins; the backup/verify step prevents a corrupt snapshot, not
a lost one.
"""

import base64
import binascii
import hashlib
import json
import os
import shutil
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional

from core.config import settings
from core.exceptions import (
    DecryptionError,
    FileTooLargeError,
    IntegrityMismatchError,
    InvalidEnvelopeError,
    InvalidRequestError,
    NotFoundError,
    SaveVerificationError,
    StorageError,
    VaultError,
)
from core.logger import logger
from core.security import decrypt_artifact, encrypt_artifact

SNAPSHOT_NAME = "vault-items.enc"
BACKUP_PREFIX = "vault-items-backup-"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _checksum(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class VaultFileService:
    def __init__(
        self,
        storage_dir: Path,
        *,
        retry_attempts: Optional[int] = None,
        retry_delay: Optional[float] = None,
        backup_keep: Optional[int] = None,
        batch_size: Optional[int] = None,
        max_upload_bytes: Optional[int] = None,
    ):
        self.storage_dir = Path(storage_dir)
        self.files_dir = self.storage_dir / "files"
        self.metadata_dir = self.storage_dir / "metadata"
        self.items_dir = self.storage_dir / "vault-items"
        self.snapshot_path = self.items_dir / SNAPSHOT_NAME

        self.retry_attempts = retry_attempts or settings.io_retry_attempts
        self.retry_delay = settings.io_retry_delay if retry_delay is None else retry_delay
        self.backup_keep = settings.backup_keep if backup_keep is None else backup_keep
        self.batch_size = batch_size or settings.list_batch_size
        self.max_upload_bytes = max_upload_bytes or settings.max_upload_bytes

        for directory in (self.files_dir, self.metadata_dir, self.items_dir):
            directory.mkdir(parents=True, exist_ok=True)

    # -----------------------------------------------------------------------
    # Low-level I/O
    # -----------------------------------------------------------------------

    def _retry(self, operation: Callable[[], Any], description: str) -> Any:
        """Run *operation*, retrying OSErrors with a linearly growing delay."""
        for attempt in range(1, self.retry_attempts + 1):
            try:
                return operation()
            except OSError as exc:
                logger.warning(
                    "%s failed (attempt %d/%d): %s",
                    description, attempt, self.retry_attempts, exc,
                )
                if attempt == self.retry_attempts:
                    raise StorageError(f"{description} failed") from exc
                time.sleep(self.retry_delay * attempt)

    def _write_artifact(self, path: Path, artifact: dict) -> None:
        def write():
            tmp = path.with_suffix(path.suffix + ".tmp")
            tmp.write_text(json.dumps(artifact), encoding="utf-8")
            os.replace(tmp, path)

        self._retry(write, f"write {path.name}")

    def _read_artifact(self, path: Path) -> dict:
        raw = self._retry(path.read_bytes, f"read {path.name}")
        try:
            artifact = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise InvalidEnvelopeError() from exc
        if not isinstance(artifact, dict):
            raise InvalidEnvelopeError()
        return artifact

    def _open_json(self, path: Path, password: str, expected: type):
        """Decrypt *path* and parse it; plaintext that is not JSON of type *expected* is malformed."""
        try:
            value = json.loads(decrypt_artifact(self._read_artifact(path), password))
        except json.JSONDecodeError as exc:
            raise InvalidEnvelopeError() from exc
        if not isinstance(value, expected):
            raise InvalidEnvelopeError()
        return value

    def _open_metadata(self, path: Path, password: str) -> dict:
        return self._open_json(path, password, dict)

    def _paths(self, file_id: str) -> tuple[Path, Path]:
        # Ids are minted as UUIDs; anything else could escape the storage dir.
        try:
            uuid.UUID(file_id)
        except (ValueError, TypeError) as exc:
            raise InvalidRequestError("Invalid file ID") from exc
        return self.files_dir / f"{file_id}.enc", self.metadata_dir / f"{file_id}.meta"

    @staticmethod
    def _remove_quietly(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.error("Cleanup of %s failed: %s", path, exc)

    # -----------------------------------------------------------------------
    # Files
    # -----------------------------------------------------------------------

    def upload(
        self,
        content: bytes,
        name: str,
        mime_type: str,
        password: str,
        description: str = "",
        category: str = "file",
    ) -> dict:
        """
        Encrypt and store one file.  Returns its (plaintext) metadata.

        Oversized content is rejected before any encryption work starts.
        """
        size = len(content)
        if size > self.max_upload_bytes:
            raise FileTooLargeError(
                f"File too large (max {self.max_upload_bytes // (1024 * 1024)}MB)"
            )

        file_id = str(uuid.uuid4())
        file_path, metadata_path = self._paths(file_id)
        logger.info("Starting upload: %s (%d bytes) as %s", name, size, file_id)

        try:
            body = encrypt_artifact(base64.b64encode(content).decode("ascii"), password)
            metadata = {
                "id": file_id,
                "name": name,
                "type": mime_type,
                "size": size,
                "description": description or "",
                "category": category or "file",
                "uploadedAt": _now_iso(),
                "encrypted": True,
                "checksum": _checksum(content),
            }
            encrypted_metadata = encrypt_artifact(json.dumps(metadata), password)

            self._write_artifact(file_path, body)
            self._write_artifact(metadata_path, encrypted_metadata)
        except Exception as exc:
            self._remove_quietly(file_path)
            self._remove_quietly(metadata_path)
            logger.error("Upload of %s failed, partial artifacts removed: %s", file_id, exc)
            if isinstance(exc, VaultError):
                raise
            raise StorageError("Upload failed") from exc

        logger.info("File uploaded: %s", file_id)
        return metadata

    def load_metadata(self, file_id: str, password: str) -> dict:
        _, metadata_path = self._paths(file_id)
        if not metadata_path.exists():
            raise NotFoundError("File not found")
        return self._open_metadata(metadata_path, password)

    def download(self, file_id: str, password: str) -> tuple[bytes, dict]:
        """Return the original bytes and the metadata of *file_id*."""
        file_path, metadata_path = self._paths(file_id)
        if not file_path.exists() or not metadata_path.exists():
            logger.warning(
                "File not found: %s (file: %s, metadata: %s)",
                file_id, file_path.exists(), metadata_path.exists(),
            )
            raise NotFoundError("File not found")

        # Raises DecryptionError on a wrong password.
        metadata = self._open_metadata(metadata_path, password)

        # The metadata opened, so the password is right: a body that fails
        # now has been damaged.
        try:
            encoded = decrypt_artifact(self._read_artifact(file_path), password)
            content = base64.b64decode(encoded, validate=True)
        except (DecryptionError, binascii.Error) as exc:
            logger.error("File body of %s could not be opened", file_id)
            raise IntegrityMismatchError() from exc

        expected = metadata.get("checksum")
        if expected and _checksum(content) != expected:
            logger.error("File integrity check failed for %s", file_id)
            raise IntegrityMismatchError()

        logger.info("File downloaded: %s", file_id)
        return content, metadata

    def _list_one(self, meta_name: str, password: str) -> tuple[Optional[dict], Optional[dict]]:
        try:
            metadata = self._open_metadata(self.metadata_dir / meta_name, password)
            file_path = self.files_dir / f"{metadata['id']}.enc"
            return {
                "id": metadata["id"],
                "name": metadata.get("name"),
                "type": metadata.get("type"),
                "size": metadata.get("size"),
                "description": metadata.get("description", ""),
                "category": metadata.get("category", "file"),
                "uploadedAt": metadata.get("uploadedAt"),
                "checksum": metadata.get("checksum"),
                "hasFile": file_path.exists(),
            }, None
        except (VaultError, ValueError, KeyError, TypeError) as exc:
            logger.warning("Could not process metadata for %s: %s", meta_name, exc)
            return None, {"file": meta_name, "error": str(exc)}

    def list_files(self, password: str) -> tuple[list[dict], list[dict]]:
        """
        Decrypt every metadata record, ``batch_size`` at a time.

        Records that fail are reported in the second list and left out of
        the first; they never abort the listing.
        """
        names = sorted(
            n for n in self._retry(lambda: os.listdir(self.metadata_dir), "list metadata")
            if n.endswith(".meta")
        )
        files: list[dict] = []
        errors: list[dict] = []
        with ThreadPoolExecutor(max_workers=self.batch_size) as pool:
            for start in range(0, len(names), self.batch_size):
                batch = names[start:start + self.batch_size]
                for entry, error in pool.map(lambda n: self._list_one(n, password), batch):
                    if entry is not None:
                        files.append(entry)
                    if error is not None:
                        errors.append(error)

        files.sort(key=lambda f: f["uploadedAt"] if isinstance(f["uploadedAt"], str) else "", reverse=True)
        logger.info("File list retrieved: %d files, %d errors", len(files), len(errors))
        return files, errors

    def delete(self, file_id: str) -> None:
        """Remove both artifacts of *file_id*.  Missing ones are ignored."""
        file_path, metadata_path = self._paths(file_id)
        for path in (file_path, metadata_path):
            self._retry(lambda p=path: p.unlink(missing_ok=True), f"delete {path.name}")
        logger.info("File deleted: %s", file_id)

    # -----------------------------------------------------------------------
    # Vault-item snapshot
    # -----------------------------------------------------------------------

    def _read_snapshot(self, password: str) -> list:
        return self._open_json(self.snapshot_path, password, list)

    def _write_snapshot(self, items: list, password: str) -> None:
        self._write_artifact(self.snapshot_path, encrypt_artifact(json.dumps(items), password))

    def _backups(self) -> list[Path]:
        return sorted(
            (p for p in self.items_dir.iterdir() if p.name.startswith(BACKUP_PREFIX)),
            key=lambda p: p.name,
            reverse=True,
        )

    def _prune_backups(self) -> None:
        try:
            for old in self._backups()[self.backup_keep:]:
                old.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Backup cleanup failed: %s", exc)

    def save_items(self, items: list, password: str) -> dict:
        """
        Replace the stored snapshot with *items* (full overwrite, no merge).
        """
        invalid = [i for i in items if not isinstance(i, dict) or not isinstance(i.get("id"), str) or not i["id"]]
        if invalid:
            raise InvalidRequestError(f"All items must have valid ID ({len(invalid)} invalid)")

        logger.info("Saving vault items: %d items", len(items))
        backup_path: Optional[Path] = None
        if self.snapshot_path.exists():
            backup_path = self.items_dir / f"{BACKUP_PREFIX}{time.time_ns()}.enc"
            self._retry(lambda: shutil.copy2(self.snapshot_path, backup_path), "snapshot backup")

        try:
            self._write_snapshot(items, password)
            verified = self._read_snapshot(password)
            if len(verified) != len(items):
                raise SaveVerificationError("Verification failed: item count mismatch")
        except Exception as exc:
            self._restore(backup_path)
            logger.error("Save vault items failed: %s", exc)
            if isinstance(exc, (SaveVerificationError, StorageError)):
                raise
            raise SaveVerificationError("Verification failed: snapshot could not be read back") from exc

        self._prune_backups()
        logger.info("Vault items saved: %d items", len(items))
        return {"itemCount": len(items), "savedAt": _now_iso()}

    def _restore(self, backup_path: Optional[Path]) -> None:
        try:
            if backup_path is not None and backup_path.exists():
                shutil.copy2(backup_path, self.snapshot_path)
                logger.info("Restored vault items from backup after save failure")
            else:
                # There was no snapshot before this save; go back to none.
                self.snapshot_path.unlink(missing_ok=True)
        except OSError as exc:
            logger.error("Failed to restore from backup: %s", exc)

    def load_items(self, password: str) -> tuple[list, int]:
        """Return (valid items, number of records dropped for lacking an id)."""
        if not self.snapshot_path.exists():
            logger.info("No vault items file found, returning empty list")
            return [], 0
        items = self._read_snapshot(password)
        valid = [i for i in items if isinstance(i, dict) and i.get("id")]
        invalid_count = len(items) - len(valid)
        if invalid_count:
            logger.warning("Found %d invalid items, filtering them out", invalid_count)
        return valid, invalid_count

    def upsert_item(self, item_id: str, item: dict, password: str) -> str:
        """Merge *item* into the snapshot entry *item_id*, inserting if absent."""
        items = self._read_snapshot(password) if self.snapshot_path.exists() else []
        for index, existing in enumerate(items):
            if isinstance(existing, dict) and existing.get("id") == item_id:
                items[index] = {**existing, **item, "id": item_id}
                break
        else:
            items.append({**item, "id": item_id})
        self._write_snapshot(items, password)
        logger.info("Vault item updated: %s", item_id)
        return _now_iso()

    def delete_item(self, item_id: str, password: str) -> str:
        if not self.snapshot_path.exists():
            raise NotFoundError("No vault items found")
        items = self._read_snapshot(password)
        remaining = [i for i in items if not (isinstance(i, dict) and i.get("id") == item_id)]
        if len(remaining) == len(items):
            raise NotFoundError("Item not found")
        self._write_snapshot(remaining, password)
        logger.info("Vault item deleted: %s", item_id)
        return _now_iso()

    # -----------------------------------------------------------------------
    # Health
    # -----------------------------------------------------------------------

    def storage_status(self) -> dict:
        return {
            "files": self.files_dir.is_dir(),
            "metadata": self.metadata_dir.is_dir(),
            "vaultItems": self.items_dir.is_dir(),
        }


def get_file_service() -> VaultFileService:
    """FastAPI dependency – a service bound to the configured storage root."""
    return VaultFileService(settings.storage_dir)
