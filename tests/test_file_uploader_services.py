"""End-to-end tests for FileUploader."""

import re

import pytest

from file_uploader.errors import (
    DatabaseError,
    ErrorKind,
    FileTooLargeError,
    InvalidExtensionError,
    InvalidFileStructureError,
    MimeTypeMismatchError,
    RecordNotFoundError,
    StorageError,
    TransportError,
)
from file_uploader.schemas.uploads import UploadStatus
from file_uploader.services import file_uploader as file_uploader_module
from file_uploader.services import upload_validation
from file_uploader.services.record_update import RecordUpdater
from tests import samples
from tests.models import Member


def _stored_files(uploader):
    return sorted(p.name for p in uploader.upload_root.iterdir())


def _picture(db_session, member_id=42):
    db_session.expire_all()
    return db_session.get(Member, member_id).picture


# =============================================================================
# Successful uploads
# =============================================================================


class TestUploadSuccess:
    def test_png_avatar_scenario(self, make_uploader, make_incoming, db_session, member):
        """Valid 2MB PNG with prefix avatar123 for identifier 42."""
        uploader = make_uploader()
        incoming = make_incoming("me.png", samples.png_bytes(), size=2 * 1024 * 1024)

        filename = uploader.upload(incoming, "42", prefix="avatar123")

        assert re.fullmatch(r"avatar123_[0-9a-f]+\.png", filename)
        assert _stored_files(uploader) == [filename]
        assert _picture(db_session) == filename
        assert not incoming.temp_path.exists()

    def test_prefix_defaults_to_identifier(self, make_uploader, make_incoming, member):
        uploader = make_uploader()
        filename = uploader.upload(make_incoming("me.jpg", samples.jpeg_bytes()), 42)
        assert filename.startswith("42_")
        assert filename.endswith(".jpg")

    def test_pdf_upload(self, make_uploader, make_incoming, db_session, member):
        uploader = make_uploader()
        filename = uploader.upload(make_incoming("Report.PDF", samples.pdf_bytes()), 42)
        assert filename.endswith(".pdf")
        assert (uploader.upload_root / filename).read_bytes() == samples.pdf_bytes()
        assert _picture(db_session) == filename

    def test_round_trip_disk_and_database(self, make_uploader, make_incoming, db_session, member):
        uploader = make_uploader()
        first = uploader.upload(make_incoming("a.png", samples.png_bytes()), 42)
        second = uploader.upload(make_incoming("b.png", samples.png_bytes()), 42)

        assert first != second
        assert _stored_files(uploader) == sorted([first, second])
        # Last write wins on the record.
        assert _picture(db_session) == second

    def test_uploads_with_same_prefix_never_collide(self, make_uploader, make_incoming, member):
        uploader = make_uploader()
        names = {
            uploader.upload(make_incoming("a.png", samples.png_bytes()), 42, prefix="same")
            for _ in range(25)
        }
        assert len(names) == 25
        assert len(_stored_files(uploader)) == 25

    def test_hostile_prefix_stays_in_upload_root(self, make_uploader, make_incoming, member):
        uploader = make_uploader()
        filename = uploader.upload(
            make_incoming("a.png", samples.png_bytes()), 42, prefix="../../outside"
        )
        assert "/" not in filename
        assert _stored_files(uploader) == [filename]

    def test_default_max_size_from_settings(self, make_uploader, monkeypatch):
        monkeypatch.setattr(
            file_uploader_module,
            "settings",
            file_uploader_module.settings.model_copy(update={"upload_max_size_mb": 3}),
        )
        uploader = make_uploader(max_file_size_mb=None)
        assert uploader.policy.max_file_size_bytes == 3 * 1024 * 1024


# =============================================================================
# Rejections leave no side effects
# =============================================================================


class TestUploadRejections:
    def test_too_large_writes_nothing(self, make_uploader, make_incoming, db_session, member, monkeypatch):
        executed = []
        monkeypatch.setattr(
            RecordUpdater, "update", lambda self, *a: executed.append(a)
        )
        uploader = make_uploader(max_file_size_mb=1)
        incoming = make_incoming("big.png", samples.png_bytes(), size=1024 * 1024 + 1)

        with pytest.raises(FileTooLargeError, match="Maximum size is 1MB"):
            uploader.upload(incoming, 42)

        assert _stored_files(uploader) == []
        assert executed == []
        assert incoming.temp_path.exists()

    def test_text_renamed_to_jpg(self, make_uploader, make_incoming, db_session, member):
        uploader = make_uploader()
        with pytest.raises(MimeTypeMismatchError, match="text/plain"):
            uploader.upload(make_incoming("photo.jpg", samples.text_bytes()), 42)
        assert _stored_files(uploader) == []
        assert _picture(db_session) is None

    def test_pdf_without_header(self, make_uploader, make_incoming, member, monkeypatch):
        monkeypatch.setattr(
            upload_validation, "sniff_mime_type", lambda path: "application/pdf"
        )
        uploader = make_uploader()
        with pytest.raises(InvalidFileStructureError, match="PDF header"):
            uploader.upload(make_incoming("doc.pdf", b"%PS-Adobe" + b"\x00" * 20), 42)
        assert _stored_files(uploader) == []

    def test_extension_not_allowed(self, make_uploader, make_incoming, member, monkeypatch):
        def _fail(path):
            raise AssertionError("MIME sniffing must not run")

        monkeypatch.setattr(upload_validation, "sniff_mime_type", _fail)
        uploader = make_uploader(allowed_extensions=["jpg", "png"])
        with pytest.raises(InvalidExtensionError, match="Allowed types: jpg, png"):
            uploader.upload(make_incoming("doc.pdf", samples.pdf_bytes()), 42)

    def test_transport_error_short_circuits(self, make_uploader, make_incoming, member):
        uploader = make_uploader(max_file_size_mb=1)
        incoming = make_incoming(
            "big.exe", b"", size=10 * 1024 * 1024, status=UploadStatus.ini_size
        )
        with pytest.raises(TransportError) as exc_info:
            uploader.upload(incoming, 42)
        assert str(exc_info.value) == (
            "File exceeds the maximum upload size allowed by the server."
        )

    def test_move_failure(self, make_uploader, make_incoming, db_session, member, monkeypatch):
        def _fail(source, upload_root, filename):
            raise StorageError("Failed to upload file.")

        monkeypatch.setattr(file_uploader_module, "move_into", _fail)
        uploader = make_uploader()
        with pytest.raises(StorageError, match="Failed to upload file"):
            uploader.upload(make_incoming("a.png", samples.png_bytes()), 42)
        assert _picture(db_session) is None


# =============================================================================
# Database failures roll back the stored file
# =============================================================================


class TestDatabaseFailure:
    def test_unknown_record_removes_file(self, make_uploader, make_incoming, member):
        uploader = make_uploader()
        with pytest.raises(RecordNotFoundError):
            uploader.upload(make_incoming("a.png", samples.png_bytes()), 999)
        assert _stored_files(uploader) == []

    def test_execution_error_removes_file(self, make_uploader, make_incoming, db_session, member):
        uploader = make_uploader(table="no_such_table")
        with pytest.raises(DatabaseError, match="Failed to update database"):
            uploader.upload(make_incoming("a.png", samples.png_bytes()), 42)
        assert _stored_files(uploader) == []

    def test_cleanup_failure_keeps_database_error(self, make_uploader, make_incoming, member, monkeypatch):
        def _fail(path):
            raise PermissionError("read-only")

        monkeypatch.setattr(file_uploader_module, "remove_stored", _fail)
        uploader = make_uploader()
        with pytest.raises(RecordNotFoundError):
            uploader.upload(make_incoming("a.png", samples.png_bytes()), 999)


# =============================================================================
# Result-style API
# =============================================================================


class TestTryUpload:
    def test_success(self, make_uploader, make_incoming, member):
        outcome = make_uploader().try_upload(make_incoming("a.png", samples.png_bytes()), 42)
        assert outcome.ok
        assert outcome.kind is None
        assert outcome.filename.endswith(".png")

    @pytest.mark.parametrize(
        "name,data,status,kind",
        [
            ("a.png", samples.png_bytes(), UploadStatus.partial, ErrorKind.transport),
            ("a.gif", samples.gif_bytes(), UploadStatus.ok, ErrorKind.validation),
            ("a.jpg", samples.text_bytes(), UploadStatus.ok, ErrorKind.validation),
        ],
    )
    def test_failure_kinds(self, make_uploader, make_incoming, member, name, data, status, kind):
        outcome = make_uploader().try_upload(make_incoming(name, data, status=status), 42)
        assert not outcome.ok
        assert outcome.filename is None
        assert outcome.kind is kind

    def test_database_kind(self, make_uploader, make_incoming, member):
        outcome = make_uploader().try_upload(make_incoming("a.png", samples.png_bytes()), 999)
        assert outcome.kind is ErrorKind.database
