"""
Selection of the single file storage backend of the process.

Backend configs register themselves with the registry. At startup the
registry looks at the process properties (environment variables, including
those loaded from a .env file), keeps the backends whose distinguishing
settings are present, and builds the one with the lowest priority number.
Only one backend is ever active: later resolutions return it unchanged.
"""

from typing import Dict, List, Mapping, Optional, Type
import logging
import os
import threading

from dotenv import load_dotenv

from config.encapsulation.database.file_db.base_config import FileDBConfig
from config.encapsulation.database.file_db.local_config import LocalDBConfig
from config.encapsulation.database.file_db.minio_config import MinIOConfig
from config.encapsulation.database.file_db.relational_config import RelationalDBConfig
from encapsulation.database.file_db.base import ConfigurationError, FileDB

logger = logging.getLogger(__name__)


def load_properties(dotenv_path: Optional[str] = None) -> Dict[str, str]:
    """Snapshot of the process properties, after loading .env without overriding real variables"""
    load_dotenv(dotenv_path=dotenv_path, override=False)
    return dict(os.environ)


class StorageBackendRegistry:
    """
    Ordered set of backend config types plus the backend currently bound.

    Usage:
        >>> registry = StorageBackendRegistry([RelationalDBConfig, LocalDBConfig])
        >>> storage = registry.resolve({"DFS_RELATIONAL_URL": "sqlite:///files.db"})
        >>> registry.close()
    """

    def __init__(self, config_types: Optional[List[Type[FileDBConfig]]] = None):
        self._config_types: List[Type[FileDBConfig]] = []
        self._active: Optional[FileDB] = None
        self._lock = threading.RLock()
        for config_type in config_types or []:
            self.register(config_type)

    def register(self, config_type: Type[FileDBConfig]) -> Type[FileDBConfig]:
        """Add a backend config type; returns it so it can be used as a class decorator"""
        with self._lock:
            if config_type not in self._config_types:
                self._config_types.append(config_type)
        return config_type

    @property
    def config_types(self) -> List[Type[FileDBConfig]]:
        return list(self._config_types)

    @property
    def active(self) -> Optional[FileDB]:
        return self._active

    def candidates(self, properties: Mapping[str, str]) -> List[Type[FileDBConfig]]:
        """Configured backends, best first"""
        configured = [t for t in self._config_types if t.is_configured(properties)]
        return sorted(configured, key=lambda t: t.priority)

    def resolve(self, properties: Optional[Mapping[str, str]] = None) -> FileDB:
        """Return the active backend, building the best configured one if none is bound yet

        Raises:
            ConfigurationError: If no backend is configured
            StorageError: If the chosen backend fails to start
        """
        with self._lock:
            if self._active is not None:
                logger.info(f"File storage backend {type(self._active).__name__} already active, skip resolving")
                return self._active

            if properties is None:
                properties = load_properties()

            candidates = self.candidates(properties)
            if not candidates:
                expected = [t.property_name(k) for t in self._config_types for k in t.condition_keys]
                raise ConfigurationError(f"No file storage backend configured, set one of {expected}")

            chosen = candidates[0]
            if len(candidates) > 1:
                skipped = [t.backend_type for t in candidates[1:]]
                logger.info(f"Several file storage backends configured, using {chosen.backend_type}, skipping {skipped}")

            config = chosen.from_properties(properties)
            try:
                backend = config.build()
            except Exception as e:
                logger.error(f"Failed to start {chosen.backend_type} file storage backend: {e}")
                raise

            self._active = backend
            logger.info(f"File storage backend {chosen.backend_type} is active")
            return backend

    def bind(self, backend: FileDB) -> FileDB:
        """Bind a backend built elsewhere, e.g. from a JSON config file"""
        with self._lock:
            if self._active is not None and self._active is not backend:
                raise ConfigurationError(
                    f"File storage backend {type(self._active).__name__} is already active"
                )
            self._active = backend
            return backend

    def close(self) -> None:
        """Close and unbind the active backend"""
        with self._lock:
            if self._active is None:
                return
            try:
                self._active.close()
            finally:
                self._active = None


storage_registry = StorageBackendRegistry([MinIOConfig, RelationalDBConfig, LocalDBConfig])
