"""
Unit tests for storage providers.
Tests filevault/storage/local.py, minio_provider.py and factory.py
"""
import io
from unittest.mock import MagicMock

import pytest
from minio.error import S3Error

from filevault.core.config import Settings
from filevault.core.errors import ErrorCode, StorageError
from filevault.core.minio_client import get_minio_client
from filevault.models.file import StorageTier
from filevault.storage.factory import get_storage_provider
from filevault.storage.local import LocalStorageProvider
from filevault.storage.minio_provider import MinioStorageProvider


def s3_error(code: str) -> S3Error:
    return S3Error(
        code=code,
        message=f"{code} message",
        resource="resource",
        request_id="request-id",
        host_id="host-id",
        response=MagicMock(),
    )


@pytest.mark.unit
class TestLocalStorageProvider:
    """Test LocalStorageProvider"""

    def test_write_and_read(self, local_storage):
        size = local_storage.write("abc123", b"payload")

        assert size == 7
        assert local_storage.read("abc123") == b"payload"
        assert local_storage.exists("abc123", StorageTier.HOT)
        assert not local_storage.exists("abc123", StorageTier.COLD)

    def test_write_stream(self, local_storage):
        size = local_storage.write("stream", io.BytesIO(b"x" * 5000), StorageTier.COLD)

        assert size == 5000
        assert local_storage.read("stream", StorageTier.COLD) == b"x" * 5000

    def test_no_temp_file_left(self, local_storage, tmp_path):
        local_storage.write("abc123", b"payload")

        assert [p.name for p in (tmp_path / "hot" / "files").iterdir()] == ["abc123"]

    def test_key_traversal_sanitized(self, local_storage, tmp_path):
        local_storage.write("../../etc/passwd", b"nope")

        assert (tmp_path / "hot" / "files" / "__etc_passwd").is_file()
        assert not (tmp_path / "etc").exists()

    def test_empty_key_rejected(self):
        with pytest.raises(StorageError):
            LocalStorageProvider.sanitize_key("$%&")

    def test_read_missing(self, local_storage):
        with pytest.raises(StorageError) as exc_info:
            local_storage.read("missing")

        assert exc_info.value.code == ErrorCode.STORAGE_IO_FAILURE
        assert exc_info.value.operation == "read"

    def test_delete(self, local_storage):
        local_storage.write("abc123", b"payload")

        assert local_storage.delete("abc123") is True
        assert local_storage.delete("abc123") is False

    def test_copy(self, local_storage):
        local_storage.write("original", b"payload", StorageTier.COLD)

        local_storage.copy("original", StorageTier.COLD, "duplicate", StorageTier.HOT)

        assert local_storage.read("duplicate") == b"payload"
        assert local_storage.exists("original", StorageTier.COLD)

    def test_copy_missing_source(self, local_storage):
        with pytest.raises(StorageError):
            local_storage.copy("missing", StorageTier.HOT, "duplicate", StorageTier.HOT)

    def test_migrate(self, local_storage):
        local_storage.write("abc123", b"payload")

        local_storage.migrate("abc123", StorageTier.HOT, StorageTier.COLD)

        assert not local_storage.exists("abc123", StorageTier.HOT)
        assert local_storage.read("abc123", StorageTier.COLD) == b"payload"

    def test_migrate_missing_source(self, local_storage):
        with pytest.raises(StorageError) as exc_info:
            local_storage.migrate("missing", StorageTier.HOT, StorageTier.COLD)

        assert exc_info.value.operation == "migrate"

    def test_tier_profiles(self, local_storage):
        hot = local_storage.tier_profile(StorageTier.HOT)
        cold = local_storage.tier_profile(StorageTier.COLD)

        assert hot.latency_hint_ms < cold.latency_hint_ms
        assert hot.cost_per_gb_month > cold.cost_per_gb_month

    def test_health_check(self, local_storage):
        assert local_storage.health_check() is True


@pytest.mark.unit
class TestMinioStorageProvider:
    """Test MinioStorageProvider with a mocked client"""

    def test_initialize_creates_missing_buckets(self, minio_storage, mock_minio):
        mock_minio.bucket_exists.return_value = False

        minio_storage.initialize()

        assert mock_minio.make_bucket.call_count == 2

    def test_write_bytes(self, minio_storage, mock_minio):
        size = minio_storage.write("abc123", b"payload", StorageTier.COLD)

        assert size == 7
        bucket, key, _, length = mock_minio.put_object.call_args[0]
        assert (bucket, key, length) == ("files-cold", "abc123", 7)

    def test_write_stream_uses_multipart(self, minio_storage, mock_minio):
        size = minio_storage.write("abc123", io.BytesIO(b"x" * 10))

        assert size == 1024
        assert mock_minio.put_object.call_args[0][3] == -1
        assert "part_size" in mock_minio.put_object.call_args[1]

    def test_write_failure(self, minio_storage, mock_minio):
        mock_minio.put_object.side_effect = s3_error("InternalError")

        with pytest.raises(StorageError):
            minio_storage.write("abc123", b"payload")

    def test_read_releases_connection(self, minio_storage, mock_minio):
        response = MagicMock()
        response.read.return_value = b"payload"
        mock_minio.get_object.return_value = response

        assert minio_storage.read("abc123") == b"payload"
        response.close.assert_called_once()
        response.release_conn.assert_called_once()

    def test_exists_missing(self, minio_storage, mock_minio):
        mock_minio.stat_object.side_effect = s3_error("NoSuchKey")

        assert minio_storage.exists("abc123") is False

    def test_delete_missing(self, minio_storage, mock_minio):
        mock_minio.stat_object.side_effect = s3_error("NoSuchKey")

        assert minio_storage.delete("abc123") is False
        mock_minio.remove_object.assert_not_called()

    def test_copy(self, minio_storage, mock_minio):
        minio_storage.copy("original", StorageTier.COLD, "duplicate", StorageTier.HOT)

        bucket, key, source = mock_minio.copy_object.call_args[0]
        assert (bucket, key) == ("files-hot", "duplicate")
        assert source.bucket_name == "files-cold"
        assert source.object_name == "original"

    def test_migrate(self, minio_storage, mock_minio):
        minio_storage.migrate("abc123", StorageTier.HOT, StorageTier.COLD)

        assert mock_minio.copy_object.call_args[0][0] == "files-cold"
        mock_minio.remove_object.assert_called_once_with("files-hot", "abc123")

    def test_migrate_size_mismatch(self, minio_storage, mock_minio):
        mock_minio.stat_object.side_effect = [MagicMock(size=1024), MagicMock(size=10)]

        with pytest.raises(StorageError):
            minio_storage.migrate("abc123", StorageTier.HOT, StorageTier.COLD)

        mock_minio.remove_object.assert_called_once_with("files-cold", "abc123")

    def test_migrate_failure(self, minio_storage, mock_minio):
        mock_minio.copy_object.side_effect = s3_error("InternalError")

        with pytest.raises(StorageError) as exc_info:
            minio_storage.migrate("abc123", StorageTier.HOT, StorageTier.COLD)

        assert exc_info.value.operation == "migrate"
        mock_minio.remove_object.assert_not_called()

    def test_health_check(self, minio_storage, mock_minio):
        assert minio_storage.health_check() is True

        mock_minio.bucket_exists.side_effect = s3_error("AccessDenied")
        assert minio_storage.health_check() is False


@pytest.mark.unit
class TestStorageFactory:
    """Test get_storage_provider"""

    def test_local(self, test_settings):
        assert isinstance(get_storage_provider(test_settings), LocalStorageProvider)

    def test_minio(self, monkeypatch):
        monkeypatch.setattr("filevault.core.minio_client.get_minio_client", lambda settings: MagicMock())

        provider = get_storage_provider(Settings(STORAGE_PROVIDER="minio"))

        assert isinstance(provider, MinioStorageProvider)
        assert provider.buckets[StorageTier.HOT] == "files-hot"

    def test_unknown_provider_rejected(self):
        with pytest.raises(ValueError):
            Settings(STORAGE_PROVIDER="ftp")


@pytest.mark.unit
class TestMinioClient:
    """Test get_minio_client"""

    def test_builds_client_from_settings(self, monkeypatch):
        client_class = MagicMock()
        monkeypatch.setattr("filevault.core.minio_client.Minio", client_class)
        settings = Settings(MINIO_HOST="objects.internal", MINIO_PORT=9100, MINIO_SECURE=True)

        get_minio_client(settings)

        client_class.assert_called_once_with(
            "objects.internal:9100",
            access_key=settings.MINIO_ACCESS_KEY,
            secret_key=settings.MINIO_SECRET_KEY,
            secure=True,
        )
