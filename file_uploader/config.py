import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

load_dotenv()


class Settings(BaseModel):
    database_url: str = Field(
        default=os.getenv("DATABASE_URL", "sqlite:///./uploads.db")
    )

    # Storage namespace every upload directory lives under
    storage_root: str = Field(default=os.getenv("STORAGE_ROOT", "assets"))
    upload_max_size_mb: int = Field(default=int(os.getenv("UPLOAD_MAX_SIZE_MB", "8")))
    upload_dir_mode: int = Field(
        default=os.getenv("UPLOAD_DIR_MODE", "777"), validate_default=True
    )
    upload_tmp_dir: Optional[str] = Field(default=os.getenv("UPLOAD_TMP_DIR"))

    # Default uploader used by the HTTP adapter
    upload_dir: str = Field(default=os.getenv("UPLOAD_DIR", "uploads"))
    upload_allowed_extensions: str = Field(
        default=os.getenv("UPLOAD_ALLOWED_EXTENSIONS", "jpg,jpeg,png,gif,webp,pdf")
    )
    upload_table: str = Field(default=os.getenv("UPLOAD_TABLE", "members"))
    upload_column: str = Field(default=os.getenv("UPLOAD_COLUMN", "picture"))
    upload_identifier_column: str = Field(
        default=os.getenv("UPLOAD_IDENTIFIER_COLUMN", "id")
    )

    log_level: str = Field(default=os.getenv("LOG_LEVEL", "INFO"))

    @field_validator("upload_dir_mode", mode="before")
    @classmethod
    def parse_octal_mode(cls, v):
        # Environment values are octal strings ("750"); ints pass through.
        if isinstance(v, str):
            try:
                v = int(v.strip(), 8)
            except ValueError as exc:
                raise ValueError("UPLOAD_DIR_MODE must be an octal string") from exc
        if not 0 <= v <= 0o777:
            raise ValueError("UPLOAD_DIR_MODE must be between 000 and 777")
        return v

    @field_validator("upload_max_size_mb", mode="after")
    @classmethod
    def validate_max_size(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("UPLOAD_MAX_SIZE_MB must be positive")
        return v

    def allowed_extensions_list(self) -> list[str]:
        return [
            ext.strip().lower().lstrip(".")
            for ext in self.upload_allowed_extensions.split(",")
            if ext.strip()
        ]

    class Config:
        frozen = True


settings = Settings()
