"""
Upload policy: the immutable per-uploader configuration.

Holds the destination directory, extension allow-list, size limit and the
trusted table/column names the record update targets. Everything here is
decided once at construction time and never mutated afterwards.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path, PurePath
from types import MappingProxyType

from file_uploader.errors import ConfigurationError

# ---------------------------------------------------------------------------
# Canonical content type for every supported extension
# ---------------------------------------------------------------------------
EXTENSION_MIME_MAP: Mapping[str, str] = MappingProxyType(
    {
        # Images
        "jpg": "image/jpeg",
        "jpeg": "image/jpeg",
        "jfif": "image/jpeg",
        "png": "image/png",
        "gif": "image/gif",
        "bmp": "image/bmp",
        "webp": "image/webp",
        "ico": "image/vnd.microsoft.icon",
        "svg": "image/svg+xml",
        # Office documents
        "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
        # Documents
        "pdf": "application/pdf",
        "txt": "text/plain",
        # Audio
        "mp3": "audio/mpeg",
        "mp4": "audio/mp4",
        "wav": "audio/wav",
        # Archives
        "zip": "application/zip",
        "rar": "application/x-rar-compressed",
        "7z": "application/x-7z-compressed",
    }
)

SQL_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_COLLECTION_TYPES = (list, tuple, set, frozenset)


def normalize_extension(ext: str) -> str:
    return ext.strip().lstrip(".").lower()


@dataclass(frozen=True)
class UploadPolicy:
    """Policy object defining upload constraints for one uploader."""

    storage_root: Path
    upload_root: Path
    allowed_extensions: tuple[str, ...]
    max_file_size_bytes: int
    table: str
    column: str
    identifier_column: str
    extension_mime_map: Mapping[str, str] = field(default_factory=lambda: EXTENSION_MIME_MAP)

    @property
    def max_file_size_mb(self) -> float:
        return self.max_file_size_bytes / (1024 * 1024)

    @property
    def allowed_mime_types(self) -> frozenset[str]:
        return frozenset(
            self.extension_mime_map[ext]
            for ext in self.allowed_extensions
            if ext in self.extension_mime_map
        )

    def allows_extension(self, ext: str) -> bool:
        return ext in self.allowed_extensions


def _require(value: object, message: str, *, types: tuple[type, ...] = (str,)) -> None:
    if not isinstance(value, types) or not str(value).strip():
        raise ConfigurationError(message)


def _check_identifier(value: str, label: str, *, allow_schema: bool = False) -> str:
    parts = value.split(".") if allow_schema else [value]
    if len(parts) > 2 or not all(SQL_IDENTIFIER_RE.match(part) for part in parts):
        raise ConfigurationError(f"{label} '{value}' is not a valid SQL identifier")
    return value


def _normalize_extensions(allowed_extensions: Iterable[str]) -> tuple[str, ...]:
    # Keep caller order for error messages, drop duplicates.
    seen: dict[str, None] = {}
    for ext in allowed_extensions:
        if not isinstance(ext, str) or not normalize_extension(ext):
            raise ConfigurationError(f"Invalid allowed extension: {ext!r}")
        seen.setdefault(normalize_extension(ext), None)
    return tuple(seen)


def resolve_upload_root(storage_root: Path, uploads_dir: str) -> Path:
    """Resolve ``uploads_dir`` under ``storage_root``, refusing escapes."""
    base = storage_root.resolve()
    full_path = (base / uploads_dir).resolve()
    if base == full_path or base not in full_path.parents:
        raise ConfigurationError(
            f"Upload directory '{uploads_dir}' must be a subdirectory of {storage_root}"
        )
    return full_path


def build_upload_policy(
    *,
    uploads_dir: str | PurePath | None,
    allowed_extensions: object,
    table: str | None,
    column: str | None,
    identifier_column: str | None,
    max_file_size_mb: int,
    storage_root: str | Path,
) -> UploadPolicy:
    """
    Validate constructor arguments and build the immutable policy.

    Checks run in a fixed order and the first failure raises
    ConfigurationError.
    """
    _require(uploads_dir, "Upload directory cannot be empty", types=(str, PurePath))
    _require(table, "Table name cannot be empty")
    _require(column, "Column name cannot be empty")
    _require(identifier_column, "Identifier column cannot be empty")
    if not isinstance(allowed_extensions, _COLLECTION_TYPES):
        raise ConfigurationError("Allowed extensions must be a list or set")
    if len(allowed_extensions) == 0:
        raise ConfigurationError("Allowed extensions cannot be empty")

    extensions = _normalize_extensions(allowed_extensions)
    unmapped = [ext for ext in extensions if ext not in EXTENSION_MIME_MAP]
    if unmapped:
        raise ConfigurationError(
            "Allowed extensions have no known MIME type: " + ", ".join(unmapped)
        )

    if isinstance(max_file_size_mb, bool) or not isinstance(max_file_size_mb, int):
        raise ConfigurationError("Maximum file size must be an integer number of MB")
    if max_file_size_mb <= 0:
        raise ConfigurationError("Maximum file size must be positive")

    root = Path(storage_root)
    return UploadPolicy(
        storage_root=root.resolve(),
        upload_root=resolve_upload_root(root, str(uploads_dir).strip()),
        allowed_extensions=extensions,
        max_file_size_bytes=max_file_size_mb * 1024 * 1024,
        table=_check_identifier(table.strip(), "Table name", allow_schema=True),
        column=_check_identifier(column.strip(), "Column name"),
        identifier_column=_check_identifier(
            identifier_column.strip(), "Identifier column"
        ),
    )
