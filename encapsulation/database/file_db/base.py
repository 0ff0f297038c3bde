from __future__ import annotations

from abc import abstractmethod
from typing import (
    Optional,
    TypeVar,
)

from encapsulation.data_model.schema import (
    DownloadRequest,
    FileLocation,
    FileMeta,
    StoreRequest,
)
from framework.module import AbstractModule

BST = TypeVar("BST", bound="FileDB")


class StorageError(Exception):
    """Base class for all file storage errors"""
    pass


class ConfigurationError(StorageError):
    """Raised when storage settings are missing or invalid, or the backend cannot be reached at startup"""
    pass


class SchemaProvisioningError(StorageError):
    """Raised when the backing table cannot be created"""
    pass


class StorageOperationError(StorageError):
    """Raised when a store, download or metadata request fails"""
    pass


class FileDB(AbstractModule):
    """File storage base class - the contract shared by every storage backend

    A stored file is identified by its FileLocation. Storing at a location that
    already holds a file replaces it. Absent files are not errors: download
    leaves the target untouched and fetch_file_meta returns None.
    """

    @abstractmethod
    def store(self, store_request: StoreRequest) -> None:
        """Store the content of a local file, replacing any previous content

        Args:
            store_request: Location to store at and the local source file

        Raises:
            StorageOperationError: If the file could not be stored. The previous
                content, if any, may or may not still be available.
        """
        pass

    @abstractmethod
    def download(self, download_request: DownloadRequest) -> None:
        """Write the stored content to the target path

        Parent directories of the target are created. When nothing is stored at
        the location a warning is logged and the target is left untouched.

        Args:
            download_request: Location to read and the local target path

        Raises:
            StorageOperationError: If the backend or the target path fails
        """
        pass

    @abstractmethod
    def fetch_file_meta(self, file_location: FileLocation) -> Optional[FileMeta]:
        """Fetch length, modification time and provenance of a stored file

        Args:
            file_location: Location to inspect

        Returns:
            FileMeta if a file is stored at the location, None otherwise

        Raises:
            StorageOperationError: If the backend fails
        """
        pass

    @abstractmethod
    def clean_expired_files(self, bucket: str, days: int) -> None:
        """Delete every file in the bucket last modified more than `days` days ago

        Best-effort maintenance: failures are logged, never raised.

        Args:
            bucket: Bucket to clean
            days: Retention period in days
        """
        pass

    def close(self) -> None:
        """Release resources held by the backend"""
        pass
