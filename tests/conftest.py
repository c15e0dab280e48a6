"""
Pytest configuration and shared fixtures for FileVault tests.
"""
import hashlib
import uuid
from datetime import datetime, timedelta, timezone
from typing import Generator
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from filevault.core.clock import ManualClock
from filevault.core.config import Settings
from filevault.models import Base, File, MigrationStatus, StorageTier
from filevault.storage.local import LocalStorageProvider
from filevault.storage.minio_provider import MinioStorageProvider


# Test Database Configuration
TEST_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

EPOCH = datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    db_session = TestingSessionLocal()
    try:
        yield db_session
    finally:
        db_session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def clock() -> ManualClock:
    """Clock frozen at a fixed instant; tests move it explicitly."""
    return ManualClock(EPOCH)


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        DATABASE_URL=TEST_DATABASE_URL,
        STORAGE_PROVIDER="local",
        STORAGE_HOT_PATH=str(tmp_path / "hot"),
        STORAGE_COLD_PATH=str(tmp_path / "cold"),
        WORKER_BATCH_SIZE=10,
    )


@pytest.fixture
def local_storage(tmp_path) -> LocalStorageProvider:
    provider = LocalStorageProvider(
        hot_path=str(tmp_path / "hot"),
        cold_path=str(tmp_path / "cold"),
    )
    provider.initialize()
    return provider


@pytest.fixture
def mock_minio() -> MagicMock:
    """Mock MinIO client."""
    client = MagicMock()
    client.bucket_exists.return_value = True
    client.stat_object.return_value = MagicMock(size=1024)
    return client


@pytest.fixture
def minio_storage(mock_minio) -> MinioStorageProvider:
    return MinioStorageProvider(mock_minio, hot_bucket="files-hot", cold_bucket="files-cold")


@pytest.fixture
def make_file(db: Session, clock: ManualClock):
    """
    Factory for File records.

    Usage:
        file = make_file(owner_id="alice", expires_in=timedelta(days=5))
    """
    def _make_file(
        owner_id: str = "owner-1",
        content: bytes = b"hello world",
        size: int = None,
        storage_tier: StorageTier = StorageTier.HOT,
        expires_in: timedelta = None,
        created_at: datetime = None,
        last_access_at: datetime = None,
        last_download_at: datetime = None,
        downloads: int = 0,
        migration_status: MigrationStatus = MigrationStatus.NONE,
        is_deleted: bool = False,
        **kwargs
    ) -> File:
        now = clock()
        file = File(
            owner_id=owner_id,
            storage_key=uuid.uuid4().hex,
            original_name=kwargs.pop("original_name", "document.txt"),
            mime_type=kwargs.pop("mime_type", "text/plain"),
            size=size if size is not None else len(content),
            content_hash=kwargs.pop("content_hash", hashlib.sha256(content).hexdigest()),
            storage_tier=storage_tier,
            downloads=downloads,
            unique_download_ips=kwargs.pop("unique_download_ips", []),
            last_download_at=last_download_at,
            last_access_at=last_access_at or now,
            expires_at=now + expires_in if expires_in is not None else None,
            migration_status=migration_status,
            is_deleted=is_deleted,
            deleted_at=now if is_deleted else None,
            created_at=created_at or now,
            updated_at=now,
            **kwargs
        )
        db.add(file)
        db.commit()
        db.refresh(file)
        return file

    return _make_file
