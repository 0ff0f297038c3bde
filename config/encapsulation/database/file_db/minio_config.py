"""Configuration for MinIO S3-compatible file storage"""

import os
from typing import ClassVar, Literal, Optional

from config.encapsulation.database.file_db.base_config import FileDBConfig, LOWEST_PRECEDENCE
from encapsulation.database.file_db.minio import MinIODB


class MinIOConfig(FileDBConfig):
    """Configuration for MinIO S3-compatible file storage

    Credentials fall back to the MINIO_USERNAME/MINIO_PASSWORD environment
    variables, then to defaults.

    Properties:
        DFS_MINIO_ENDPOINT: host:port of the server, activates this backend
        DFS_MINIO_USERNAME / DFS_MINIO_PASSWORD: access and secret key
        DFS_MINIO_BUCKET_NAME: bucket holding every stored file
        DFS_MINIO_SECURE: use HTTPS
        DFS_MINIO_REGION: region for S3 compatibility
    """
    type: Literal["minio_file_store"] = "minio_file_store"

    backend_type: ClassVar[str] = "minio"
    priority: ClassVar[int] = LOWEST_PRECEDENCE - 5
    condition_keys: ClassVar[tuple] = ("endpoint",)
    property_keys: ClassVar[dict] = {
        "endpoint": "endpoint",
        "username": "username",
        "password": "password",
        "bucket_name": "bucket_name",
        "secure": "secure",
        "region": "region",
    }
    boolean_fields: ClassVar[tuple] = ("secure",)

    endpoint: str = "localhost:9000"
    username: str = os.getenv("MINIO_USERNAME", "ROOTNAME")
    password: str = os.getenv("MINIO_PASSWORD", "CHANGEME123")
    bucket_name: str = "powerjob"
    secure: bool = False
    region: Optional[str] = "us-east-1"

    def build(self) -> MinIODB:
        return MinIODB(self)
