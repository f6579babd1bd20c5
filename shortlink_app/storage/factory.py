"""
Factory for creating click storage instances.
Simple factory with singleton caching.
"""

from enum import Enum

import structlog

from .strategies import ClickStorageStrategy, SQLiteClickStorage, ClickHouseClickStorage
from shortlink_app.config import settings

logger = structlog.get_logger(__name__)


class ClickStorageBackend(Enum):
    """Available click storage backends"""
    SQLITE = "sqlite"
    CLICKHOUSE = "clickhouse"


class ClickStorageFactory:
    """
    Simple factory for creating click storage instances.

    Gets configuration from settings (not passed as parameters).
    """

    _instance: ClickStorageStrategy = None  # Single cached instance

    @classmethod
    def create(cls, backend: ClickStorageBackend) -> ClickStorageStrategy:
        """
        Create or return cached click storage instance.

        Args:
            backend: Type of storage backend (from enum)

        Returns:
            Singleton click storage instance
        """
        if cls._instance is not None:
            return cls._instance

        if backend == ClickStorageBackend.SQLITE:
            cls._instance = SQLiteClickStorage(db_path=settings.click_storage_sqlite_path)

        elif backend == ClickStorageBackend.CLICKHOUSE:
            cls._instance = ClickHouseClickStorage(
                url=settings.click_storage_clickhouse_url,
                buffer_size=settings.click_storage_buffer_size
            )

        else:
            raise ValueError(f"Unknown storage backend: {backend}")

        logger.info("click_storage_selected", backend=backend.value)
        return cls._instance

    @classmethod
    def clear_instance(cls):
        """Clear cached instance (for testing)"""
        cls._instance = None
