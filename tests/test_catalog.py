"""
Tests for the file catalog service.
"""
import io

import pytest

from auth.roles import Role
from core.exceptions import (
    ForbiddenError, NotFoundError, StoreError, ValidationError,
)
from core.models import File
from documents.catalog import FileCatalog, FileMetadata, UploadSource


def metadata(name="doc.pdf"):
    return FileMetadata(
        filename=f"stored-{name}",
        original_name=name,
        mime_type="application/pdf",
        size=3,
        path=f"blobs/{name}",
    )


def pdf(name="doc.pdf", content=b"%PDF"):
    return UploadSource(original_name=name, mime_type="application/pdf", stream=io.BytesIO(content))


class TestRecords:

    def test_create_file(self, db, make_user):
        owner = make_user(Role.CLIENT)
        file = FileCatalog.create_file(db, owner.id, metadata())
        assert file.id is not None
        assert file.owner_id == owner.id
        assert file.is_deleted is False
        assert file.created_at is not None

    def test_create_for_unknown_owner(self, db):
        with pytest.raises(NotFoundError):
            FileCatalog.create_file(db, 404, metadata())

    def test_list_owned_by_newest_first_without_deleted(self, db, make_user, principal):
        owner = make_user(Role.CLIENT)
        first = FileCatalog.create_file(db, owner.id, metadata("a.pdf"))
        second = FileCatalog.create_file(db, owner.id, metadata("b.pdf"))
        third = FileCatalog.create_file(db, owner.id, metadata("c.pdf"))

        FileCatalog.soft_delete(db, second.id, principal(owner))

        assert [f.id for f in FileCatalog.list_owned_by(db, owner.id)] == [third.id, first.id]


class TestSoftDelete:

    def test_admin_deletes_editor_cannot(self, db, make_user, principal):
        owner = make_user(Role.CLIENT)
        admin = make_user(Role.ADMIN)
        editor = make_user(Role.EDITOR)
        file = FileCatalog.create_file(db, owner.id, metadata())

        with pytest.raises(ForbiddenError):
            FileCatalog.soft_delete(db, file.id, principal(editor))

        FileCatalog.soft_delete(db, file.id, principal(admin))
        with pytest.raises(NotFoundError):
            FileCatalog.get_file_for_read(db, principal(owner), file.id)

    def test_second_delete_is_not_found(self, db, make_user, principal):
        owner = make_user(Role.CLIENT)
        file = FileCatalog.create_file(db, owner.id, metadata())

        FileCatalog.soft_delete(db, file.id, principal(owner))
        with pytest.raises(NotFoundError):
            FileCatalog.soft_delete(db, file.id, principal(owner))

        # Row is kept, only hidden
        assert db.get(File, file.id).is_deleted is True

    def test_manager_cannot_delete_client_file(self, db, make_user, principal):
        manager = make_user(Role.MANAGER)
        owner = make_user(Role.CLIENT, manager_id=manager.id)
        file = FileCatalog.create_file(db, owner.id, metadata())
        with pytest.raises(ForbiddenError):
            FileCatalog.soft_delete(db, file.id, principal(manager))


class TestUpdateDescription:

    def test_owner_updates_and_clears(self, db, make_user, principal):
        owner = make_user(Role.CLIENT)
        file = FileCatalog.create_file(db, owner.id, metadata())

        assert FileCatalog.update_description(db, file.id, principal(owner), "Q3").description == "Q3"
        assert FileCatalog.update_description(db, file.id, principal(owner), "").description is None

    def test_admin_does_not_bypass(self, db, make_user, principal):
        owner = make_user(Role.CLIENT)
        admin = make_user(Role.ADMIN)
        file = FileCatalog.create_file(db, owner.id, metadata())
        with pytest.raises(ForbiddenError):
            FileCatalog.update_description(db, file.id, principal(admin), "mine now")

    def test_deleted_file(self, db, make_user, principal):
        owner = make_user(Role.CLIENT)
        file = FileCatalog.create_file(db, owner.id, metadata())
        FileCatalog.soft_delete(db, file.id, principal(owner))
        with pytest.raises(NotFoundError):
            FileCatalog.update_description(db, file.id, principal(owner), "late")


class TestReads:

    def test_manager_scenario(self, db, make_user, principal):
        """Manager 10 reads client 20's file; manager 5 does not."""
        assigned = make_user(Role.MANAGER)
        other = make_user(Role.MANAGER)
        owner = make_user(Role.CLIENT, manager_id=assigned.id)
        file = FileCatalog.create_file(db, owner.id, metadata())

        assert FileCatalog.get_file_for_read(db, principal(assigned), file.id).id == file.id
        with pytest.raises(ForbiddenError):
            FileCatalog.get_file_for_read(db, principal(other), file.id)

    def test_client_cannot_read_other_client(self, db, make_user, principal):
        owner = make_user(Role.CLIENT)
        stranger = make_user(Role.CLIENT)
        file = FileCatalog.create_file(db, owner.id, metadata())
        with pytest.raises(ForbiddenError):
            FileCatalog.get_file_for_read(db, principal(stranger), file.id)

    def test_list_user_files(self, db, make_user, principal):
        editor = make_user(Role.EDITOR)
        owner = make_user(Role.CLIENT)
        FileCatalog.create_file(db, owner.id, metadata())

        user, files = FileCatalog.list_user_files(db, principal(editor), owner.id)
        assert user.id == owner.id
        assert len(files) == 1

        with pytest.raises(NotFoundError):
            FileCatalog.list_user_files(db, principal(editor), 999)

    def test_clients_overview(self, db, make_user, principal):
        manager = make_user(Role.MANAGER)
        admin = make_user(Role.ADMIN)
        mine = make_user(Role.CLIENT, name="Mine", manager_id=manager.id)
        make_user(Role.CLIENT, name="Other")
        kept = FileCatalog.create_file(db, mine.id, metadata("a.pdf"))
        gone = FileCatalog.create_file(db, mine.id, metadata("b.pdf"))
        FileCatalog.soft_delete(db, gone.id, principal(mine))

        everyone = FileCatalog.list_clients_overview(db, principal(admin))
        assert [row["name"] for row in everyone] == ["Mine", "Other"]
        assert everyone[0]["file_count"] == 1
        assert everyone[0]["last_upload"] == kept.created_at.isoformat()
        assert everyone[1]["file_count"] == 0
        assert everyone[1]["last_upload"] is None

        assigned = FileCatalog.list_clients_overview(db, principal(manager))
        assert [row["id"] for row in assigned] == [mine.id]


class TestUploads:

    def test_store_upload(self, db, make_user, blob_store):
        owner = make_user(Role.CLIENT)
        file = FileCatalog.store_upload(db, blob_store, owner.id, pdf(), description="scan")

        assert file.size == 4
        assert file.description == "scan"
        assert blob_store.exists(file.path)

    def test_rejects_mime_type(self, db, make_user, blob_store):
        owner = make_user(Role.CLIENT)
        upload = UploadSource("run.exe", "application/x-msdownload", io.BytesIO(b"MZ"))
        with pytest.raises(ValidationError):
            FileCatalog.store_upload(db, blob_store, owner.id, upload)

    def test_record_failure_removes_blob(self, db, make_user, blob_store, monkeypatch):
        owner = make_user(Role.CLIENT)
        saved = []
        original_save = blob_store.save

        def tracking_save(*args, **kwargs):
            blob = original_save(*args, **kwargs)
            saved.append(blob.key)
            return blob

        def failing_create(*args, **kwargs):
            raise StoreError("create_file")

        monkeypatch.setattr(blob_store, "save", tracking_save)
        monkeypatch.setattr(FileCatalog, "create_file", staticmethod(failing_create))

        with pytest.raises(StoreError):
            FileCatalog.store_upload(db, blob_store, owner.id, pdf())

        assert len(saved) == 1
        assert not blob_store.exists(saved[0])
        assert db.query(File).count() == 0

    def test_store_uploads_reports_failures(self, db, make_user, blob_store):
        owner = make_user(Role.CLIENT)
        bad = UploadSource("evil.sh", "application/x-sh", io.BytesIO(b"#!"))

        stored, failed = FileCatalog.store_uploads(
            db, blob_store, owner.id, [pdf("a.pdf"), bad, pdf("b.pdf")]
        )
        assert [f.original_name for f in stored] == ["a.pdf", "b.pdf"]
        assert failed == [{"name": "evil.sh", "error": "File type application/x-sh is not allowed"}]

    def test_store_uploads_limits(self, db, make_user, blob_store):
        owner = make_user(Role.CLIENT)
        with pytest.raises(ValidationError):
            FileCatalog.store_uploads(db, blob_store, owner.id, [])
        with pytest.raises(ValidationError):
            FileCatalog.store_uploads(db, blob_store, owner.id, [pdf() for _ in range(11)])
