"""
Error taxonomy for the uploader.

Every failure raised by the uploader derives from FileUploaderError and
carries an ErrorKind, so callers can either catch a specific subclass or
branch on ``exc.kind`` (see FileUploader.try_upload).
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    configuration = "configuration"
    directory_provisioning = "directory_provisioning"
    transport = "transport"
    validation = "validation"
    storage = "storage"
    database = "database"


class FileUploaderError(Exception):
    """Base exception for uploader errors."""

    kind: ErrorKind

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(FileUploaderError):
    """Invalid construction-time arguments."""

    kind = ErrorKind.configuration


class DirectoryProvisioningError(FileUploaderError):
    """Storage directories could not be created or chmod-ed."""

    kind = ErrorKind.directory_provisioning


class TransportError(FileUploaderError):
    """The upstream upload mechanism reported a problem."""

    kind = ErrorKind.transport

    def __init__(self, message: str, status: int) -> None:
        super().__init__(message)
        self.status = status


class ValidationError(FileUploaderError):
    """The uploaded file violates the upload policy."""

    kind = ErrorKind.validation


class FileTooLargeError(ValidationError):
    """File exceeds size limit."""


class InvalidExtensionError(ValidationError):
    """File extension is not allowed."""


class MimeTypeMismatchError(ValidationError):
    """Sniffed content type is not permitted by the allowed extensions."""

    def __init__(self, message: str, detected_type: str) -> None:
        super().__init__(message)
        self.detected_type = detected_type


class InvalidFileStructureError(ValidationError):
    """File content does not look like its claimed format."""


class StorageError(FileUploaderError):
    """Moving the file into the upload directory failed."""

    kind = ErrorKind.storage


class DatabaseError(FileUploaderError):
    """The record update could not be executed."""

    kind = ErrorKind.database


class RecordNotFoundError(DatabaseError):
    """The update matched no row for the identifier."""
