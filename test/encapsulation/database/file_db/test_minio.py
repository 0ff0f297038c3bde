"""
Tests for the MinIO file storage, against a mocked client
"""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from minio.error import S3Error

from config.encapsulation.database.file_db.minio_config import MinIOConfig
from encapsulation.data_model.schema import DownloadRequest, FileLocation, StoreRequest
from encapsulation.database.file_db.base import StorageOperationError


def _s3_error(code):
    return S3Error(code, f"{code} message", "resource", "request-id", "host-id", response=MagicMock())


@pytest.fixture
def client(monkeypatch):
    client = MagicMock()
    client.bucket_exists.return_value = False
    monkeypatch.setattr("encapsulation.database.file_db.minio.Minio", MagicMock(return_value=client))
    return client


@pytest.fixture
def minio_store(client):
    return MinIOConfig(endpoint="localhost:9000", bucket_name="files").build()


def test_creates_bucket(minio_store, client):
    client.make_bucket.assert_called_once_with("files")


def test_store(minio_store, client, make_file):
    source = make_file("1.log", b"data")

    minio_store.store(StoreRequest(FileLocation("logs", "1.log"), source))

    kwargs = client.fput_object.call_args.kwargs
    assert kwargs["bucket_name"] == "files"
    assert kwargs["object_name"] == "logs/1.log"
    assert kwargs["file_path"] == str(source)
    assert str(source.absolute()) in kwargs["metadata"]["dfs-meta"]


def test_store_failure_is_wrapped(minio_store, client, make_file):
    client.fput_object.side_effect = _s3_error("InternalError")

    with pytest.raises(StorageOperationError):
        minio_store.store(StoreRequest(FileLocation("logs", "1.log"), make_file("1.log", b"data")))


def test_download_missing_object(minio_store, client, tmp_path):
    client.fget_object.side_effect = _s3_error("NoSuchKey")

    minio_store.download(DownloadRequest(FileLocation("logs", "1.log"), tmp_path / "out" / "1.log"))

    assert (tmp_path / "out").is_dir()


def test_fetch_file_meta(minio_store, client):
    modified = datetime(2024, 1, 1, tzinfo=timezone.utc)
    client.stat_object.return_value = SimpleNamespace(
        size=11,
        last_modified=modified,
        metadata={"x-amz-meta-dfs-meta": '{"_server_": "10.0.0.1", "_local_file_path_": "/tmp/1.log"}'},
    )

    meta = minio_store.fetch_file_meta(FileLocation("logs", "1.log"))

    assert meta.length == 11
    assert meta.last_modified_time == modified
    assert meta.meta_info.server == "10.0.0.1"
    assert meta.meta_info.local_file_path == "/tmp/1.log"


def test_fetch_file_meta_missing(minio_store, client):
    client.stat_object.side_effect = _s3_error("NoSuchKey")

    assert minio_store.fetch_file_meta(FileLocation("logs", "1.log")) is None


def test_clean_expired_files(minio_store, client):
    now = datetime.now(timezone.utc)
    client.list_objects.return_value = [
        SimpleNamespace(object_name="logs/old.log", last_modified=now - timedelta(days=40)),
        SimpleNamespace(object_name="logs/new.log", last_modified=now - timedelta(days=10)),
    ]

    minio_store.clean_expired_files("logs", 30)

    client.list_objects.assert_called_once_with(bucket_name="files", prefix="logs/", recursive=True)
    client.remove_object.assert_called_once_with("files", "logs/old.log")


def test_huge_retention_is_ignored(minio_store, client):
    minio_store.clean_expired_files("logs", 1_000_000)

    client.list_objects.assert_not_called()
    client.remove_object.assert_not_called()
