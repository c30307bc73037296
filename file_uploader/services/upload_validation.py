"""
Upload validation pipeline.

Checks run in a fixed order and the first failure raises:

1. transport status reported by the web server
2. declared size against the policy limit
3. extension against the allow-list
4. content-sniffed MIME type against the MIME types of the allowed extensions
5. a lightweight structural check chosen by file family

Validation only reads the temporary file; it never moves or modifies it.
"""

from __future__ import annotations

import enum
import logging
import zipfile
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from xml.etree import ElementTree as ET

import magic
from PIL import Image, UnidentifiedImageError

from file_uploader.errors import (
    FileTooLargeError,
    InvalidExtensionError,
    InvalidFileStructureError,
    MimeTypeMismatchError,
    TransportError,
)
from file_uploader.schemas.uploads import IncomingFile, UploadStatus
from file_uploader.services.upload_policy import UploadPolicy

logger = logging.getLogger(__name__)

UPLOAD_STATUS_MESSAGES: dict[int, str] = {
    UploadStatus.ini_size: "File exceeds the maximum upload size allowed by the server.",
    UploadStatus.form_size: "File exceeds the maximum upload size allowed by the form.",
    UploadStatus.partial: "File was only partially uploaded.",
    UploadStatus.no_file: "No file was uploaded.",
    UploadStatus.no_tmp_dir: "Missing a temporary folder.",
    UploadStatus.cant_write: "Failed to write file to disk.",
    UploadStatus.extension: "A server extension stopped the file upload.",
}
UNKNOWN_UPLOAD_ERROR = "Unknown upload error."

# libmagic reports some formats under legacy or alternate names
MIME_ALIASES: dict[str, str] = {
    "image/jpg": "image/jpeg",
    "image/pjpeg": "image/jpeg",
    "image/x-ms-bmp": "image/bmp",
    "image/x-bmp": "image/bmp",
    "image/x-icon": "image/vnd.microsoft.icon",
    "image/svg": "image/svg+xml",
    "audio/x-wav": "audio/wav",
    "audio/wave": "audio/wav",
    "audio/vnd.wave": "audio/wav",
    "audio/x-mp3": "audio/mpeg",
    "audio/mp3": "audio/mpeg",
    "video/mp4": "audio/mp4",
    "audio/x-m4a": "audio/mp4",
    "application/x-zip-compressed": "application/zip",
    "application/x-rar": "application/x-rar-compressed",
    "application/vnd.rar": "application/x-rar-compressed",
}

HEADER_READ_BYTES = 12
SVG_ROOT_SEARCH_BYTES = 64 * 1024


class FileKind(enum.Enum):
    image = "image"
    svg = "svg"
    pdf = "pdf"
    office = "office"
    zip = "zip"
    audio = "audio"
    other = "other"


_EXTENSION_KINDS: dict[str, FileKind] = {
    **dict.fromkeys(
        ("jpg", "jpeg", "jfif", "png", "gif", "bmp", "webp", "ico"), FileKind.image
    ),
    "svg": FileKind.svg,
    "pdf": FileKind.pdf,
    **dict.fromkeys(("docx", "xlsx", "pptx"), FileKind.office),
    "zip": FileKind.zip,
    **dict.fromkeys(("mp3", "mp4", "wav"), FileKind.audio),
}


def file_kind_for(extension: str) -> FileKind:
    return _EXTENSION_KINDS.get(extension, FileKind.other)


def extract_extension(filename: str) -> str:
    """Text after the last dot of the base name, lowercased ('' if none)."""
    name = Path(filename.replace("\\", "/")).name
    if "." not in name:
        return ""
    return name.rsplit(".", 1)[1].lower()


def normalize_mime_type(mime_type: str) -> str:
    base = mime_type.split(";", 1)[0].strip().lower()
    return MIME_ALIASES.get(base, base)


def sniff_mime_type(path: Path) -> str:
    """Detect the content type from the file bytes using libmagic."""
    return normalize_mime_type(magic.from_file(str(path), mime=True))


def _read_header(path: Path, size: int = HEADER_READ_BYTES) -> bytes:
    with open(path, "rb") as handle:
        return handle.read(size)


@dataclass(frozen=True)
class ValidatedUpload:
    """What validation learned about an accepted file."""

    extension: str
    mime_type: str
    kind: FileKind


# ---------------------------------------------------------------------------
# Structural checks, one per FileKind
# ---------------------------------------------------------------------------


def _check_image(path: Path, extension: str) -> None:
    try:
        with Image.open(path) as image:
            width, height = image.size
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise InvalidFileStructureError(
            "Invalid image file. Could not read image dimensions."
        ) from exc
    if width <= 0 or height <= 0:
        raise InvalidFileStructureError(
            "Invalid image file. Could not read image dimensions."
        )


def _check_svg(path: Path, extension: str) -> None:
    try:
        head = _read_header(path, SVG_ROOT_SEARCH_BYTES)
    except OSError as exc:
        raise InvalidFileStructureError(
            "Invalid image file. Could not read image dimensions."
        ) from exc
    # DTDs carry entity declarations; they are never handed to the parser.
    lowered = head.lower()
    if b"<!doctype" in lowered or b"<!entity" in lowered:
        raise InvalidFileStructureError(
            "Invalid SVG file. Document type declarations are not allowed."
        )

    # Only the root element matters.
    parser = ET.XMLPullParser(events=("start",))
    try:
        parser.feed(head)
        root = next((elem for _, elem in parser.read_events()), None)
    except ET.ParseError as exc:
        raise InvalidFileStructureError(
            "Invalid image file. Could not read image dimensions."
        ) from exc
    if root is None or root.tag.rsplit("}", 1)[-1] != "svg":
        raise InvalidFileStructureError(
            "Invalid image file. Could not read image dimensions."
        )


def _check_pdf(path: Path, extension: str) -> None:
    try:
        header = _read_header(path, 4)
    except OSError as exc:
        logger.warning("pdf_header_unreadable path=%s error=%s", path, exc)
        return
    if header != b"%PDF":
        raise InvalidFileStructureError("Invalid PDF file. Missing PDF header signature.")


def _open_zip(path: Path, message: str) -> None:
    try:
        with zipfile.ZipFile(path) as archive:
            archive.namelist()
    except (zipfile.BadZipFile, OSError) as exc:
        raise InvalidFileStructureError(message) from exc


def _check_office(path: Path, extension: str) -> None:
    _open_zip(path, "Invalid Office document. File is not properly formatted.")


def _check_zip(path: Path, extension: str) -> None:
    _open_zip(path, "Invalid ZIP archive.")


def _is_mp3(header: bytes) -> bool:
    if header.startswith(b"ID3"):
        return True
    # Bare MPEG audio frame sync: 11 set bits.
    return len(header) >= 2 and header[0] == 0xFF and header[1] & 0xE0 == 0xE0


def _is_mp4(header: bytes) -> bool:
    return header[4:8] == b"ftyp" or header.startswith(b"ftyp")


def _is_wav(header: bytes) -> bool:
    return header.startswith(b"RIFF") and header[8:12] == b"WAVE"


_AUDIO_SIGNATURES: dict[str, tuple[Callable[[bytes], bool], str]] = {
    "mp3": (_is_mp3, "ID3 or MPEG frame"),
    "mp4": (_is_mp4, "ftyp"),
    "wav": (_is_wav, "RIFF/WAVE"),
}


def _check_audio(path: Path, extension: str) -> None:
    matcher, label = _AUDIO_SIGNATURES[extension]
    try:
        header = _read_header(path)
    except OSError as exc:
        raise InvalidFileStructureError("Invalid audio file. File could not be read.") from exc
    if not matcher(header):
        raise InvalidFileStructureError(
            f"Invalid audio file. Missing {label} header signature."
        )


def _no_check(path: Path, extension: str) -> None:
    return None


STRUCTURE_CHECKS: dict[FileKind, Callable[[Path, str], None]] = {
    FileKind.image: _check_image,
    FileKind.svg: _check_svg,
    FileKind.pdf: _check_pdf,
    FileKind.office: _check_office,
    FileKind.zip: _check_zip,
    FileKind.audio: _check_audio,
    FileKind.other: _no_check,
}


class UploadValidator:
    """Runs the validation pipeline for one policy."""

    def __init__(self, policy: UploadPolicy) -> None:
        self.policy = policy

    def check_transport(self, incoming: IncomingFile) -> None:
        if incoming.status != UploadStatus.ok:
            message = UPLOAD_STATUS_MESSAGES.get(incoming.status, UNKNOWN_UPLOAD_ERROR)
            raise TransportError(message, int(incoming.status))

    def check_size(self, incoming: IncomingFile) -> None:
        if incoming.size > self.policy.max_file_size_bytes:
            raise FileTooLargeError(
                f"File is too large. Maximum size is {self.policy.max_file_size_mb:g}MB."
            )

    def check_extension(self, incoming: IncomingFile) -> str:
        extension = extract_extension(incoming.original_name)
        if not self.policy.allows_extension(extension):
            allowed = ", ".join(self.policy.allowed_extensions)
            raise InvalidExtensionError(f"Invalid file type. Allowed types: {allowed}")
        return extension

    def check_mime_type(self, incoming: IncomingFile) -> str:
        try:
            detected = sniff_mime_type(incoming.temp_path)
        except (OSError, magic.MagicException) as exc:
            raise MimeTypeMismatchError(
                "Invalid file type. File content could not be inspected.",
                detected_type="unknown",
            ) from exc
        if detected not in self.policy.allowed_mime_types:
            raise MimeTypeMismatchError(
                f"Invalid file type. File appears to be {detected}",
                detected_type=detected,
            )
        return detected

    def check_structure(self, incoming: IncomingFile, extension: str) -> FileKind:
        kind = file_kind_for(extension)
        STRUCTURE_CHECKS[kind](incoming.temp_path, extension)
        return kind

    def validate(self, incoming: IncomingFile) -> ValidatedUpload:
        """
        Run all checks in order.

        Raises TransportError or a ValidationError subclass on the first
        failing step.
        """
        self.check_transport(incoming)
        self.check_size(incoming)
        extension = self.check_extension(incoming)
        mime_type = self.check_mime_type(incoming)
        kind = self.check_structure(incoming, extension)
        return ValidatedUpload(extension=extension, mime_type=mime_type, kind=kind)
