"""
Factory for creating sequence allocation strategies.
Uses caching to avoid creating multiple instances.
"""

from enum import Enum
from shortlink_app.services.sequence_strategies import (
    SequenceStrategy,
    DatabaseSequenceStrategy,
    RedisSequenceStrategy
)
from shortlink_app.config import settings


class SequenceBackend(Enum):
    """Available sequence backends"""
    DATABASE = "database"
    REDIS = "redis"


class SequenceFactory:
    """Factory for creating sequence strategies with caching"""

    _instances = {}  # Cache for strategy instances

    @classmethod
    def create_strategy(
        cls,
        backend: SequenceBackend = None
    ) -> SequenceStrategy:
        """
        Create or return cached sequence strategy.

        Args:
            backend: Type of strategy to create.
                     If None, uses value from settings.

        Returns:
            A cached instance of a SequenceStrategy

        Raises:
            ValueError: If backend is unknown
        """
        # Use default from settings if not specified
        if backend is None:
            backend = SequenceBackend(settings.sequence_backend)

        # Return cached instance if exists
        if backend in cls._instances:
            return cls._instances[backend]

        if backend == SequenceBackend.DATABASE:
            from shortlink_app.database.connection import SessionLocal
            instance = DatabaseSequenceStrategy(
                session_factory=SessionLocal,
                floor=settings.sequence_floor
            )
        elif backend == SequenceBackend.REDIS:
            import redis

            # No fallback here: an unreachable counter must fail allocation
            redis_client = redis.from_url(
                settings.redis_url,
                socket_connect_timeout=2,
                socket_timeout=2,
            )
            instance = RedisSequenceStrategy(redis_client, floor=settings.sequence_floor)
        else:
            raise ValueError(f"Unknown sequence backend: {backend}")

        cls._instances[backend] = instance
        return instance

    @classmethod
    def clear_instances(cls):
        """Clear cached instances (for testing)"""
        cls._instances = {}
