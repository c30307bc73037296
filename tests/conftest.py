import uuid
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from file_uploader.db import Base
from file_uploader.schemas.uploads import IncomingFile, UploadStatus
from file_uploader.services.file_uploader import FileUploader
from tests.models import Member


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def db_session(engine):
    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def member(db_session):
    record = Member(id=42, name="Ada")
    db_session.add(record)
    db_session.commit()
    return record


@pytest.fixture()
def storage_root(tmp_path) -> Path:
    return tmp_path / "assets"


@pytest.fixture()
def make_incoming(tmp_path):
    """Write bytes to a temp upload file and describe it like the HTTP layer would."""
    incoming_dir = tmp_path / "incoming"
    incoming_dir.mkdir()

    def _make(
        name: str,
        data: bytes,
        size: int | None = None,
        status: int = UploadStatus.ok,
    ) -> IncomingFile:
        temp_path = incoming_dir / f"upload_{uuid.uuid4().hex[:8]}.tmp"
        temp_path.write_bytes(data)
        return IncomingFile(
            temp_path=temp_path,
            original_name=name,
            size=len(data) if size is None else size,
            status=status,
        )

    return _make


@pytest.fixture()
def make_uploader(db_session, storage_root):
    def _make(**overrides) -> FileUploader:
        kwargs = {
            "uploads_dir": "avatars",
            "allowed_extensions": ["jpg", "png", "pdf"],
            "table": "members",
            "column": "picture",
            "identifier_column": "id",
            "max_file_size_mb": 8,
            "storage_root": storage_root,
            "dir_mode": 0o777,
        }
        kwargs.update(overrides)
        db = kwargs.pop("db", db_session)
        return FileUploader(db, **kwargs)

    return _make
