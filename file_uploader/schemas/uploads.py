from __future__ import annotations

import enum
from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel, Field


class UploadStatus(enum.IntEnum):
    """Transport status codes reported by the web server for an upload."""

    ok = 0
    ini_size = 1
    form_size = 2
    partial = 3
    no_file = 4
    no_tmp_dir = 6
    cant_write = 7
    extension = 8


@dataclass(frozen=True)
class IncomingFile:
    """Uploaded file as handed over by the HTTP layer.

    ``status`` is an int rather than UploadStatus so unrecognised codes from
    the transport can still be reported.
    """

    temp_path: Path
    original_name: str
    size: int
    status: int = UploadStatus.ok


class UploadResponse(BaseModel):
    filename: str = Field(min_length=1)
    identifier: str
