"""Filename generation and moving validated files into the upload directory."""

from __future__ import annotations

import errno
import logging
import os
import re
import secrets
import shutil
import time
from pathlib import Path

from file_uploader.errors import StorageError

logger = logging.getLogger(__name__)

SAFE_PREFIX_RE = re.compile(r"[^A-Za-z0-9._-]+")
TOKEN_ENTROPY_BYTES = 6


def sanitize_prefix(prefix: str) -> str:
    cleaned = SAFE_PREFIX_RE.sub("_", prefix).lstrip(".")
    return cleaned[:100] or "file"


def generate_token() -> str:
    """Time-ordered uniqueness token: nanosecond clock plus random bytes."""
    return f"{time.time_ns():x}{secrets.token_hex(TOKEN_ENTROPY_BYTES)}"


def generate_filename(prefix: str, extension: str) -> str:
    """Generate ``<prefix>_<token>.<extension>``."""
    name = f"{sanitize_prefix(prefix)}_{generate_token()}"
    if extension:
        return f"{name}.{extension}"
    return name


def _target_path(upload_root: Path, filename: str) -> Path:
    base = upload_root.resolve()
    target = (base / filename).resolve()
    if target.parent != base:
        raise StorageError("Failed to upload file. Target is outside upload directory.")
    return target


def _copy_across_devices(source: Path, target: Path) -> None:
    partial = target.with_name(f".{target.name}.part")
    try:
        shutil.copyfile(source, partial)
        os.replace(partial, target)
    except OSError:
        partial.unlink(missing_ok=True)
        raise
    # Target is complete at this point; a leftover source must not fail the move.
    try:
        source.unlink()
    except OSError as exc:
        logger.warning("file_source_cleanup_failed path=%s error=%s", source, exc)


def move_into(source: Path, upload_root: Path, filename: str) -> Path:
    """
    Move ``source`` to ``upload_root/filename``.

    A plain rename is used when possible; across filesystems the file is
    copied to a hidden partial file and renamed into place, so the final path
    either holds the complete file or does not exist.

    Raises StorageError on any failure.
    """
    target = _target_path(upload_root, filename)
    if target.exists():
        raise StorageError("Failed to upload file. Target file already exists.")
    try:
        try:
            os.replace(source, target)
        except OSError as exc:
            if exc.errno != errno.EXDEV:
                raise
            _copy_across_devices(source, target)
    except OSError as exc:
        raise StorageError("Failed to upload file.") from exc

    logger.info("file_stored path=%s", target)
    return target


def remove_stored(path: Path) -> bool:
    """Delete a stored file. Returns True if it existed."""
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    logger.info("file_deleted path=%s", path)
    return True
