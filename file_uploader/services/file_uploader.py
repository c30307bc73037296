"""
Record-bound file uploader.

Validates one uploaded file against an UploadPolicy, moves it into the
managed upload directory under a generated name, and stores that name on a
database row. Configuration is read-only after construction, so a single
instance can serve concurrent requests.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy.orm import Session

from file_uploader.config import settings
from file_uploader.errors import (
    ConfigurationError,
    DatabaseError,
    ErrorKind,
    FileUploaderError,
)
from file_uploader.schemas.uploads import IncomingFile
from file_uploader.services.record_update import RecordUpdater
from file_uploader.services.upload_directories import provision_upload_root
from file_uploader.services.upload_policy import UploadPolicy, build_upload_policy
from file_uploader.services.upload_storage import (
    generate_filename,
    move_into,
    remove_stored,
)
from file_uploader.services.upload_validation import UploadValidator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadOutcome:
    """Result of FileUploader.try_upload: a filename or the failure."""

    filename: str | None = None
    error: FileUploaderError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def kind(self) -> ErrorKind | None:
        return self.error.kind if self.error else None


class FileUploader:
    """Uploads files and records their generated names against a table row."""

    def __init__(
        self,
        db: Session | None,
        uploads_dir: str,
        allowed_extensions: Iterable[str],
        table: str,
        column: str,
        identifier_column: str,
        max_file_size_mb: int | None = None,
        *,
        storage_root: str | Path | None = None,
        dir_mode: int | None = None,
    ) -> None:
        if db is None:
            raise ConfigurationError("Database connection cannot be empty")
        self.db = db
        self.policy: UploadPolicy = build_upload_policy(
            uploads_dir=uploads_dir,
            allowed_extensions=allowed_extensions,
            table=table,
            column=column,
            identifier_column=identifier_column,
            max_file_size_mb=(
                settings.upload_max_size_mb
                if max_file_size_mb is None
                else max_file_size_mb
            ),
            storage_root=storage_root if storage_root is not None else settings.storage_root,
        )
        self.dir_mode = settings.upload_dir_mode if dir_mode is None else dir_mode
        self.validator = UploadValidator(self.policy)
        self.record_updater = RecordUpdater(
            self.policy.table, self.policy.column, self.policy.identifier_column
        )
        self.provision_directories()

    @property
    def upload_root(self) -> Path:
        return self.policy.upload_root

    def provision_directories(self) -> None:
        """(Re)create the storage directories with the configured mode."""
        provision_upload_root(self.policy.storage_root, self.policy.upload_root, self.dir_mode)

    def upload(
        self,
        incoming: IncomingFile,
        identifier_value: str | int,
        prefix: str | None = None,
    ) -> str:
        """
        Validate, store and record one uploaded file.

        Args:
            incoming: Descriptor of the uploaded temporary file.
            identifier_value: Value of the identifier column for the row to update.
            prefix: Filename prefix, defaults to the identifier value.

        Returns:
            The generated filename.

        Raises:
            FileUploaderError subclass on the first failing step. If the
            record update fails the stored file is removed again.
        """
        if prefix is None:
            prefix = str(identifier_value)

        validated = self.validator.validate(incoming)
        filename = generate_filename(prefix, validated.extension)
        stored_path = move_into(incoming.temp_path, self.policy.upload_root, filename)

        try:
            self.record_updater.update(self.db, filename, identifier_value)
        except DatabaseError:
            self._discard(stored_path)
            raise

        logger.info(
            "file_upload_success table=%s identifier=%s filename=%s type=%s",
            self.policy.table,
            identifier_value,
            filename,
            validated.mime_type,
        )
        return filename

    def try_upload(
        self,
        incoming: IncomingFile,
        identifier_value: str | int,
        prefix: str | None = None,
    ) -> UploadOutcome:
        """Same as upload() but returns an UploadOutcome instead of raising."""
        try:
            return UploadOutcome(filename=self.upload(incoming, identifier_value, prefix))
        except FileUploaderError as exc:
            return UploadOutcome(error=exc)

    def _discard(self, stored_path: Path) -> None:
        try:
            removed = remove_stored(stored_path)
        except OSError as exc:
            logger.warning("file_upload_orphaned path=%s error=%s", stored_path, exc)
            return
        logger.warning(
            "file_upload_rolled_back path=%s removed=%s", stored_path, removed
        )
