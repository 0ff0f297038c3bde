import logging
import os
from typing import Annotated, Optional, Union

from dotenv import load_dotenv
from pydantic import Field

from config.encapsulation.database.file_db.local_config import LocalDBConfig
from config.encapsulation.database.file_db.minio_config import MinIOConfig
from config.encapsulation.database.file_db.relational_config import RelationalDBConfig
from core.file_management.storage.backend_registry import load_properties, storage_registry
from encapsulation.database.file_db.base import FileDB
from framework.register import Register

load_dotenv()

# Set up logging with environment variable support
log_level = os.getenv('LOG_LEVEL', 'INFO').upper()
logging.basicConfig(level=getattr(logging, log_level, logging.INFO), format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

FILE_STORAGE = "file_storage"

FileDBConfigType = Annotated[
    Union[RelationalDBConfig, LocalDBConfig, MinIOConfig],
    Field(discriminator="type"),
]

registrator = Register()


def initialize(config_path: Optional[str] = None) -> FileDB:
    """Start the file storage backend of the process

    A JSON config file (argument or DFS_CONFIG_PATH) wins over DFS_* properties.
    """
    if storage_registry.active is not None:
        return storage_registry.active

    config_path = config_path or os.getenv("DFS_CONFIG_PATH")
    try:
        if config_path:
            backend = registrator.register(config_path=config_path, app_name=FILE_STORAGE, config_type=FileDBConfigType)
            return storage_registry.bind(backend)
        backend = storage_registry.resolve(load_properties())
        registrator.registrations[FILE_STORAGE] = backend
        return backend
    except Exception as e:
        logger.error(f"Failed to initialize file storage: {e}")
        raise


def get_file_storage() -> FileDB:
    backend = storage_registry.active
    if backend is None:
        raise RuntimeError("File storage is not initialized, call initialize() first")
    return backend


def shutdown() -> None:
    """Close the file storage backend and its connections"""
    logger.info("Shutting down file storage")
    registrator.unregister(FILE_STORAGE)
    storage_registry.close()
