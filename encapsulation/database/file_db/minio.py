from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Optional
import logging

from minio import Minio
from minio.error import S3Error

from .base import FileDB, StorageOperationError
from encapsulation.data_model.schema import (
    DownloadRequest,
    FileLocation,
    FileMeta,
    FileMetaInfo,
    StoreRequest,
)

if TYPE_CHECKING:
    from config.encapsulation.database.file_db.minio_config import MinIOConfig

logger = logging.getLogger(__name__)

# User metadata key holding the JSON provenance map
META_KEY = "dfs-meta"
_META_HEADER = f"x-amz-meta-{META_KEY}"

_NOT_FOUND_CODES = ("NoSuchKey", "NoSuchObject", "ResourceNotFound")


class MinIODB(FileDB):
    """
    MinIO S3-compatible implementation of the file storage contract.

    Storage architecture:
    - One configured MinIO bucket holds every file, created on startup if missing
    - A FileLocation maps to the object key "<bucket>/<name>"
    - Provenance is stored as JSON in the object's user metadata
    - Expiry compares the object's last_modified time

    Object writes are atomic on the server side, so an overwrite simply puts
    the new object over the old one.

    Typical usage:
        >>> config = MinIOConfig(endpoint="localhost:9000", bucket_name="powerjob")
        >>> storage = MinIODB(config)
        >>> storage.store(StoreRequest(FileLocation("logs", "1.log"), "/tmp/1.log"))

    Attributes:
        config: Configuration object with MinIO connection parameters
        client: MinIO client instance (initialized in __init__)
    """

    def __init__(self, config: "MinIOConfig"):
        super().__init__(config)
        logger.info("Initializing MinIODB")

        self.client = Minio(
            endpoint=self.config.endpoint,
            access_key=self.config.username,
            secret_key=self.config.password,
            secure=self.config.secure,
            region=self.config.region,
        )

        self._ensure_bucket_exists()
        logger.info(f"MinIODB initialized with bucket: {self.config.bucket_name}")

    def _ensure_bucket_exists(self) -> None:
        """Create bucket if it doesn't exist"""
        bucket_name = self.config.bucket_name
        try:
            if not self.client.bucket_exists(bucket_name):
                self.client.make_bucket(bucket_name)
                logger.info(f"Created bucket: {bucket_name}")
        except S3Error as e:
            logger.error(f"Error ensuring bucket exists: {e}")
            raise

    @staticmethod
    def _object_name(file_location: FileLocation) -> str:
        return f"{file_location.bucket}/{file_location.name}"

    def store(self, store_request: StoreRequest) -> None:
        file_location = store_request.file_location
        local_file = Path(store_request.local_file)
        try:
            self.client.fput_object(
                bucket_name=self.config.bucket_name,
                object_name=self._object_name(file_location),
                file_path=str(local_file),
                metadata={META_KEY: FileMetaInfo.for_local_file(local_file).to_json()},
            )
            logger.debug(f"Stored file [{file_location}]")
        except (S3Error, OSError) as e:
            logger.error(f"Error storing file [{file_location}]: {e}")
            raise StorageOperationError(f"Failed to store {file_location}") from e

    def download(self, download_request: DownloadRequest) -> None:
        file_location = download_request.file_location
        target = Path(download_request.target)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            self.client.fget_object(
                bucket_name=self.config.bucket_name,
                object_name=self._object_name(file_location),
                file_path=str(target),
            )
            logger.debug(f"Downloaded file [{file_location}] to {target}")
        except S3Error as e:
            if e.code in _NOT_FOUND_CODES:
                logger.warning(f"Download file [{file_location}] failed due to not exists!")
                return
            logger.error(f"Error downloading file [{file_location}]: {e}")
            raise StorageOperationError(f"Failed to download {file_location}") from e
        except OSError as e:
            logger.error(f"Error downloading file [{file_location}]: {e}")
            raise StorageOperationError(f"Failed to download {file_location}") from e

    def fetch_file_meta(self, file_location: FileLocation) -> Optional[FileMeta]:
        try:
            stat = self.client.stat_object(
                bucket_name=self.config.bucket_name,
                object_name=self._object_name(file_location),
            )
        except S3Error as e:
            if e.code in _NOT_FOUND_CODES:
                return None
            logger.error(f"Error fetching meta of file [{file_location}]: {e}")
            raise StorageOperationError(f"Failed to fetch meta of {file_location}") from e

        raw_meta = stat.metadata.get(_META_HEADER) if stat.metadata else None
        return FileMeta(
            length=stat.size,
            last_modified_time=stat.last_modified,
            meta_info=FileMetaInfo.from_json(raw_meta),
        )

    def clean_expired_files(self, bucket: str, days: int) -> None:
        if days < 0:
            logger.warning(f"Ignoring clean expired files of bucket {bucket} with negative days: {days}")
            return

        try:
            cutoff = datetime.now(timezone.utc) - timedelta(days=days)
        except OverflowError:
            logger.warning(f"Nothing in bucket {bucket} can be older than {days} days, skip cleaning")
            return

        deleted = 0
        try:
            objects = self.client.list_objects(
                bucket_name=self.config.bucket_name,
                prefix=f"{bucket}/",
                recursive=True,
            )
            for obj in objects:
                if obj.last_modified is None or obj.last_modified >= cutoff:
                    continue
                self.client.remove_object(self.config.bucket_name, obj.object_name)
                deleted += 1
            logger.info(f"Cleaned {deleted} expired files of bucket {bucket}")
        except S3Error as e:
            logger.error(f"Failed to clean expired files of bucket {bucket}: {e}")
