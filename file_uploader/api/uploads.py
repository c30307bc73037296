"""HTTP adapter: turns a multipart upload into an IncomingFile."""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from sqlalchemy.orm import Session

from file_uploader.config import settings
from file_uploader.db import get_db
from file_uploader.errors import (
    FileUploaderError,
    RecordNotFoundError,
    TransportError,
    ValidationError,
)
from file_uploader.schemas.uploads import IncomingFile, UploadResponse, UploadStatus
from file_uploader.services.file_uploader import FileUploader

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/uploads", tags=["uploads"])


def get_file_uploader(db: Session = Depends(get_db)) -> FileUploader:
    return FileUploader(
        db,
        settings.upload_dir,
        settings.allowed_extensions_list(),
        settings.upload_table,
        settings.upload_column,
        settings.upload_identifier_column,
        settings.upload_max_size_mb,
        storage_root=settings.storage_root,
        dir_mode=settings.upload_dir_mode,
    )


def _spool_to_temp(file: UploadFile) -> tuple[Path, int]:
    handle = tempfile.NamedTemporaryFile(
        delete=False, dir=settings.upload_tmp_dir, prefix="upload_"
    )
    path = Path(handle.name)
    try:
        with handle:
            shutil.copyfileobj(file.file, handle)
            size = handle.tell()
    except OSError:
        path.unlink(missing_ok=True)
        raise
    return path, size


def _status_code_for(exc: FileUploaderError) -> int:
    if isinstance(exc, (TransportError, ValidationError)):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, RecordNotFoundError):
        return status.HTTP_404_NOT_FOUND
    # StorageError, DatabaseError, ConfigurationError, DirectoryProvisioningError
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@router.post(
    "/{identifier}",
    response_model=UploadResponse,
    status_code=status.HTTP_201_CREATED,
)
def upload_file(
    identifier: str,
    file: UploadFile | None = File(None),
    prefix: str | None = Form(None),
    uploader: FileUploader = Depends(get_file_uploader),
):
    temp_path: Path | None = None
    try:
        if file is None or not file.filename:
            incoming = IncomingFile(
                temp_path=Path(os.devnull),
                original_name="",
                size=0,
                status=UploadStatus.no_file,
            )
        else:
            try:
                temp_path, size = _spool_to_temp(file)
            except OSError as exc:
                logger.warning("upload_spool_failed error=%s", exc)
                incoming = IncomingFile(
                    temp_path=Path(os.devnull),
                    original_name=file.filename,
                    size=0,
                    status=UploadStatus.cant_write,
                )
            else:
                incoming = IncomingFile(
                    temp_path=temp_path, original_name=file.filename, size=size
                )
        filename = uploader.upload(incoming, identifier, prefix or None)
    except FileUploaderError as exc:
        raise HTTPException(status_code=_status_code_for(exc), detail=exc.message) from exc
    finally:
        if temp_path is not None:
            temp_path.unlink(missing_ok=True)

    return UploadResponse(filename=filename, identifier=identifier)
