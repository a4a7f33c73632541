"""
VaultFileService: encrypted files, integrity checks and the verified
vault-item snapshot.
"""

import base64
import json
import os

import pytest

from core.exceptions import (
    DecryptionError,
    FileTooLargeError,
    IntegrityMismatchError,
    InvalidEnvelopeError,
    InvalidRequestError,
    NotFoundError,
    SaveVerificationError,
    StorageError,
)
from core.security import encrypt_artifact
from vault.service import BACKUP_PREFIX, VaultFileService

HELLO = b"hello, vault"  # 12 bytes


def _upload(service, password, content=HELLO, name="hello.txt"):
    return service.upload(content, name=name, mime_type="text/plain", password=password)


class TestFiles:
    def test_upload_and_download(self, service, password):
        meta = _upload(service, password)

        assert meta["size"] == 12
        assert meta["type"] == "text/plain"
        content, stored = service.download(meta["id"], password)
        assert content == HELLO
        assert stored["checksum"] == meta["checksum"]

    def test_artifacts_are_encrypted(self, service, password):
        meta = _upload(service, password)
        body = (service.files_dir / f"{meta['id']}.enc").read_text()
        record = (service.metadata_dir / f"{meta['id']}.meta").read_text()

        assert set(json.loads(body)) == {"encrypted", "salt", "iv"}
        assert "hello.txt" not in record
        assert base64.b64encode(HELLO).decode() not in body

    def test_wrong_password_is_not_not_found(self, service, password):
        meta = _upload(service, password)
        with pytest.raises(DecryptionError):
            service.download(meta["id"], "wrong")
        with pytest.raises(NotFoundError):
            service.download("00000000-0000-4000-8000-000000000000", password)

    def test_corrupted_body_is_integrity_error(self, service, password):
        meta = _upload(service, password)
        path = service.files_dir / f"{meta['id']}.enc"
        artifact = json.loads(path.read_text())
        raw = bytearray(base64.b64decode(artifact["encrypted"]))
        raw[0] ^= 0xFF
        artifact["encrypted"] = base64.b64encode(bytes(raw)).decode()
        path.write_text(json.dumps(artifact))

        with pytest.raises(IntegrityMismatchError):
            service.download(meta["id"], password)

    def test_undecodable_body_file_is_integrity_error(self, service, password):
        meta = _upload(service, password)
        path = service.files_dir / f"{meta['id']}.enc"
        raw = bytearray(path.read_bytes())
        raw[20] = 0xFF
        path.write_bytes(bytes(raw))

        with pytest.raises(IntegrityMismatchError):
            service.download(meta["id"], password)

    def test_undecodable_metadata_file_is_invalid_envelope(self, service, password):
        meta = _upload(service, password)
        path = service.metadata_dir / f"{meta['id']}.meta"
        path.write_bytes(b"\xff\xfe" + path.read_bytes())

        with pytest.raises(InvalidEnvelopeError):
            service.load_metadata(meta["id"], password)

    def test_metadata_that_is_not_json_is_invalid_envelope(self, service, password):
        meta = _upload(service, password)
        path = service.metadata_dir / f"{meta['id']}.meta"
        path.write_text(json.dumps(encrypt_artifact("not json", password)))

        with pytest.raises(InvalidEnvelopeError):
            service.load_metadata(meta["id"], password)
        with pytest.raises(InvalidEnvelopeError):
            service.download(meta["id"], password)

    def test_checksum_mismatch_is_integrity_error(self, service, password):
        meta = _upload(service, password)
        # A well-formed body, but not the one the metadata describes.
        path = service.files_dir / f"{meta['id']}.enc"
        path.write_text(json.dumps(encrypt_artifact(base64.b64encode(b"other bytes!").decode(), password)))

        with pytest.raises(IntegrityMismatchError):
            service.download(meta["id"], password)

    def test_failed_upload_leaves_nothing_behind(self, service, password, monkeypatch):
        original = service._write_artifact

        def fail_on_metadata(path, artifact):
            if path.suffix == ".meta":
                raise StorageError("disk full")
            original(path, artifact)

        monkeypatch.setattr(service, "_write_artifact", fail_on_metadata)

        with pytest.raises(StorageError):
            _upload(service, password)
        assert os.listdir(service.files_dir) == []
        assert os.listdir(service.metadata_dir) == []

    def test_oversized_upload_rejected(self, tmp_path, password):
        service = VaultFileService(tmp_path / "small", max_upload_bytes=8, retry_delay=0)
        with pytest.raises(FileTooLargeError):
            _upload(service, password)
        assert os.listdir(service.files_dir) == []

    def test_non_uuid_id_rejected(self, service, password):
        with pytest.raises(InvalidRequestError):
            service.download("../../etc/passwd", password)

    def test_list_reports_undecryptable_records(self, service, password):
        first = _upload(service, password, name="a.txt")
        second = _upload(service, password, name="b.txt")
        _upload(service, "someone-else", name="c.txt")

        files, errors = service.list_files(password)

        assert {f["id"] for f in files} == {first["id"], second["id"]}
        assert all(f["hasFile"] for f in files)
        assert len(errors) == 1
        assert files[0]["uploadedAt"] >= files[1]["uploadedAt"]

    def test_list_reports_malformed_records(self, service, password):
        good = _upload(service, password, name="a.txt")
        odd = _upload(service, password, name="b.txt")
        (service.metadata_dir / f"{odd['id']}.meta").write_text(
            json.dumps(encrypt_artifact(json.dumps([1, 2]), password))
        )
        stray = _upload(service, password, name="c.txt")
        (service.metadata_dir / f"{stray['id']}.meta").write_text(
            json.dumps(encrypt_artifact(json.dumps({"id": stray["id"], "uploadedAt": 5}), password))
        )

        files, errors = service.list_files(password)

        assert {f["id"] for f in files} == {good["id"], stray["id"]}
        assert [e["file"] for e in errors] == [f"{odd['id']}.meta"]

    def test_snapshot_that_is_not_json_is_invalid_envelope(self, service, password):
        service.save_items([{"id": "1", "name": "x"}], password)
        service.snapshot_path.write_text(json.dumps(encrypt_artifact("{oops", password)))

        with pytest.raises(InvalidEnvelopeError):
            service.load_items(password)

    def test_delete(self, service, password):
        meta = _upload(service, password)
        service.delete(meta["id"])
        with pytest.raises(NotFoundError):
            service.load_metadata(meta["id"], password)
        # Deleting again is harmless.
        service.delete(meta["id"])

    def test_io_is_retried(self, service, password, monkeypatch):
        meta = _upload(service, password)
        calls = {"n": 0}
        real_read = type(service.metadata_dir).read_bytes

        def flaky(path, *args, **kwargs):
            calls["n"] += 1
            if calls["n"] == 1:
                raise OSError("transient")
            return real_read(path, *args, **kwargs)

        monkeypatch.setattr(type(service.metadata_dir), "read_bytes", flaky)
        assert service.load_metadata(meta["id"], password)["name"] == "hello.txt"
        assert calls["n"] == 2


class TestSnapshot:
    ITEMS = [
        {"id": "1", "name": "Gmail", "category": "password-entry"},
        {"id": "2", "name": "Notes", "category": "note"},
        {"id": "3", "name": "Docs", "category": "link"},
    ]

    def test_fresh_account_loads_empty(self, service, password):
        assert service.load_items(password) == ([], 0)

    def test_save_and_load(self, service, password):
        result = service.save_items(self.ITEMS, password)
        assert result["itemCount"] == 3
        items, invalid = service.load_items(password)
        assert items == self.ITEMS
        assert invalid == 0

    def test_save_is_full_overwrite(self, service, password):
        service.save_items(self.ITEMS, password)
        service.save_items(self.ITEMS[:1], password)
        assert service.load_items(password)[0] == self.ITEMS[:1]

    def test_items_need_string_ids(self, service, password):
        with pytest.raises(InvalidRequestError):
            service.save_items([{"id": 1, "name": "x"}], password)
        with pytest.raises(InvalidRequestError):
            service.save_items([{"name": "x"}], password)

    def test_verification_mismatch_restores_backup(self, service, password, monkeypatch):
        service.save_items(self.ITEMS, password)
        assert len(service.load_items(password)[0]) == 3

        monkeypatch.setattr(service, "_read_snapshot", lambda pw: [])
        with pytest.raises(SaveVerificationError):
            service.save_items(self.ITEMS[:2], password)
        monkeypatch.undo()

        assert service.load_items(password)[0] == self.ITEMS

    def test_first_save_failure_leaves_no_snapshot(self, service, password, monkeypatch):
        monkeypatch.setattr(service, "_read_snapshot", lambda pw: [])
        with pytest.raises(SaveVerificationError):
            service.save_items(self.ITEMS, password)
        assert not service.snapshot_path.exists()

    def test_backups_are_pruned(self, service, password):
        for _ in range(8):
            service.save_items(self.ITEMS, password)
        backups = [p for p in os.listdir(service.items_dir) if p.startswith(BACKUP_PREFIX)]
        assert len(backups) == 5

    def test_invalid_records_are_filtered(self, service, password):
        service._write_snapshot([{"id": "1", "name": "ok"}, {"name": "no id"}], password)
        items, invalid = service.load_items(password)
        assert items == [{"id": "1", "name": "ok"}]
        assert invalid == 1

    def test_upsert_and_delete(self, service, password):
        service.save_items(self.ITEMS, password)

        service.upsert_item("2", {"name": "Renamed"}, password)
        service.upsert_item("9", {"name": "New", "category": "note"}, password)
        items = {i["id"]: i for i in service.load_items(password)[0]}
        assert items["2"] == {"id": "2", "name": "Renamed", "category": "note"}
        assert items["9"]["name"] == "New"

        service.delete_item("9", password)
        assert "9" not in {i["id"] for i in service.load_items(password)[0]}
        with pytest.raises(NotFoundError):
            service.delete_item("9", password)

    def test_delete_without_snapshot(self, service, password):
        with pytest.raises(NotFoundError):
            service.delete_item("1", password)

    def test_wrong_password(self, service, password):
        service.save_items(self.ITEMS, password)
        with pytest.raises(DecryptionError):
            service.load_items("wrong")
