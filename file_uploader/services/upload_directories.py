"""Provisioning of the storage namespace and upload directories."""

from __future__ import annotations

import logging
import os
import stat
from pathlib import Path

from file_uploader.errors import DirectoryProvisioningError

logger = logging.getLogger(__name__)


def ensure_directory(path: Path, mode: int) -> None:
    """Create ``path`` if missing and make sure its permission bits equal ``mode``.

    Safe to call repeatedly. makedirs is subject to the process umask, so the
    permission bits are compared and fixed after creation as well.
    """
    try:
        if not path.is_dir():
            path.mkdir(mode=mode, parents=True, exist_ok=True)
            logger.info("upload_dir_created path=%s", path)
        current = stat.S_IMODE(path.stat().st_mode)
        if current != mode:
            os.chmod(path, mode)
            logger.info(
                "upload_dir_chmod path=%s from=%o to=%o", path, current, mode
            )
    except OSError as exc:
        raise DirectoryProvisioningError(
            f"Error setting permissions for the directory {path}."
        ) from exc


def provision_upload_root(storage_root: Path, upload_root: Path, mode: int) -> None:
    """Provision the storage namespace first, then the upload subdirectory."""
    ensure_directory(storage_root, mode)
    ensure_directory(upload_root, mode)
