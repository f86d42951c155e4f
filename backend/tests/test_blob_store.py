"""
test_blob_store.py — Filesystem BlobStore with signed URLs.

Tests cover:
  - Upload path layout and upsert semantics
  - Listing newest first, limit, empty prefix
  - Idempotent remove, path-traversal guard, unknown bucket
  - Public vs. signed URLs, signature expiry and tampering
  - ProjectService file wrappers
"""

import os
import time

import pytest

from projectdesk.services.blob_store import BlobStoreError, project_prefix


class TestUploadAndList:

    def test_upload_path_layout(self, blob_store):
        path = blob_store.upload("files", "p1", "Aufmaß.pdf", b"%PDF-1.4")
        assert path == "projects/p1/Aufmaß.pdf"
        assert blob_store.read("files", path) == b"%PDF-1.4"

    def test_upload_overwrites_same_name(self, blob_store):
        blob_store.upload("files", "p1", "plan.txt", b"v1")
        path = blob_store.upload("files", "p1", "plan.txt", b"version two")
        assert blob_store.read("files", path) == b"version two"
        assert len(blob_store.list("files", "p1")) == 1

    def test_list_newest_first(self, blob_store, tmp_path):
        now = time.time()
        for offset, name in ((300, "old.jpg"), (0, "new.jpg"), (100, "mid.jpg")):
            path = blob_store.upload("photos", "p2", name, b"x" * 3)
            full = os.path.join(blob_store.root, "photos", path)
            os.utime(full, (now - offset, now - offset))
        entries = blob_store.list("photos", "p2")
        assert [e.name for e in entries] == ["new.jpg", "mid.jpg", "old.jpg"]
        assert entries[0].size == 3
        assert entries[0].path == "projects/p2/new.jpg"

    def test_list_limit(self, blob_store):
        for i in range(5):
            blob_store.upload("files", "p3", f"f{i}.txt", b"")
        assert len(blob_store.list("files", "p3", limit=2)) == 2

    def test_list_is_scoped_to_project(self, blob_store):
        blob_store.upload("files", "a", "one.txt", b"1")
        blob_store.upload("files", "b", "two.txt", b"2")
        assert [e.name for e in blob_store.list("files", "a")] == ["one.txt"]

    def test_list_unknown_project_is_empty(self, blob_store):
        assert blob_store.list("files", "nothing-here") == []


class TestRemoveAndGuards:

    def test_remove(self, blob_store):
        path = blob_store.upload("files", "p1", "x.txt", b"x")
        blob_store.remove("files", path)
        assert blob_store.list("files", "p1") == []

    def test_remove_missing_is_noop(self, blob_store):
        blob_store.remove("files", "projects/p1/never.txt")

    def test_filename_cannot_escape_prefix(self, blob_store):
        path = blob_store.upload("files", "p1", "../../etc/passwd", b"x")
        assert path.startswith(project_prefix("p1"))
        assert "/" not in path[len(project_prefix("p1")):]

    def test_traversal_path_rejected(self, blob_store):
        with pytest.raises(BlobStoreError):
            blob_store.read("files", "../photos/projects/p1/a.jpg")

    def test_unknown_bucket(self, blob_store):
        with pytest.raises(BlobStoreError):
            blob_store.upload("invoices", "p1", "a.pdf", b"")


class TestUrls:

    def test_public_bucket_gets_permanent_url(self, blob_store):
        path = blob_store.upload("photos", "p1", "Foto 1.jpg", b"jpg")
        url = blob_store.url_for("photos", path)
        assert url == "https://files.example.test/storage/public/photos/projects/p1/Foto%201.jpg"
        assert "token=" not in url

    def test_signed_url_round_trip(self, blob_store):
        path = blob_store.upload("files", "p1", "Angebot.pdf", b"pdf")
        url = blob_store.url_for("files", path, expires_in=60)
        assert url.startswith("https://files.example.test/storage/sign/files/projects/p1/Angebot.pdf?token=")
        assert blob_store.verify_signed_url(url) == ("files", path)

    def test_bare_token_accepted(self, blob_store):
        url = blob_store.url_for("files", "projects/p1/a.pdf")
        token = url.split("token=", 1)[1]
        assert blob_store.verify_signed_url(token) == ("files", "projects/p1/a.pdf")

    def test_expired_signature_rejected(self, blob_store):
        issued = time.time() - 7200
        url = blob_store.url_for("files", "projects/p1/a.pdf", expires_in=3600, now=issued)
        with pytest.raises(BlobStoreError):
            blob_store.verify_signed_url(url)

    def test_foreign_key_rejected(self, blob_store, tmp_path):
        from projectdesk.services.blob_store import BlobStore
        other = BlobStore(root=str(tmp_path / "other"), signing_key="another-key")
        url = other.url_for("files", "projects/p1/a.pdf")
        with pytest.raises(BlobStoreError):
            blob_store.verify_signed_url(url)

    def test_url_without_token(self, blob_store):
        with pytest.raises(BlobStoreError):
            blob_store.verify_signed_url("https://files.example.test/storage/sign/files/x?foo=1")


class TestServiceFileWrappers:

    def test_upload_list_url_remove(self, service):
        path = service.upload_file("photos", "p9", "baustelle.jpg", b"img")
        assert [e.name for e in service.list_files("photos", "p9")] == ["baustelle.jpg"]
        assert service.file_url("photos", path).endswith("/public/photos/projects/p9/baustelle.jpg")
        service.remove_file("photos", path)
        assert service.list_files("photos", "p9") == []
