"""Service package exports."""

from __future__ import annotations

import importlib
from typing import Any

__all__ = ["FileUploader", "UploadOutcome"]


def __getattr__(name: str) -> Any:
    if name in __all__:
        module = importlib.import_module("file_uploader.services.file_uploader")
        return getattr(module, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
