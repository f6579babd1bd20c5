"""
Queue strategies using Strategy Pattern.
Allows switching between different queue backends (Redis Streams, In-Memory).
"""

from abc import ABC, abstractmethod
from typing import List, Dict, Optional
from collections import deque
import json
import socket

import redis
import structlog
from pydantic import ValidationError

from .models import ClickEvent

logger = structlog.get_logger(__name__)


class QueueStrategy(ABC):
    """
    Abstract base class for queue strategies.

    Decouples the redirect path (producer) from the click worker
    (consumer) so storing analytics never delays a redirect.
    """

    @abstractmethod
    async def publish(self, queue_name: str, message: ClickEvent) -> bool:
        """
        Publish a message to the queue.

        Args:
            queue_name: Name of the queue
            message: ClickEvent to publish

        Returns:
            True if successful, False otherwise
        """
        pass

    @abstractmethod
    async def consume(
        self,
        queue_name: str,
        batch_size: int = 1,
        block_time: Optional[int] = 1000
    ) -> List[ClickEvent]:
        """
        Consume messages from the queue.

        Args:
            queue_name: Name of the queue
            batch_size: Maximum number of messages to retrieve
            block_time: Time to wait for messages (milliseconds), None to return at once

        Returns:
            List of ClickEvent messages
        """
        pass

    @abstractmethod
    async def ack(self, queue_name: str, message_ids: List[str]) -> bool:
        """
        Acknowledge messages (mark as processed).

        Returns:
            True if successful
        """
        pass

    @abstractmethod
    async def get_queue_length(self, queue_name: str) -> int:
        """Number of messages waiting in the queue"""
        pass

    async def consume_batch(self, queue_name: str, batch_size: int = 100, block_time: Optional[int] = 1000) -> List[ClickEvent]:
        """Consume with a larger default batch size"""
        return await self.consume(queue_name, batch_size, block_time)


class RedisStreamQueue(QueueStrategy):
    """
    Redis Streams implementation for message queue.

    How it works:
    1. Producer publishes messages using XADD
    2. Consumer reads messages using XREADGROUP
    3. Consumer acknowledges messages using XACK

    Each message carries one JSON-encoded ClickEvent under the ``data`` field.
    """

    def __init__(self, redis_client, consumer_group: str = "click_workers"):
        """
        Args:
            redis_client: Redis client instance (decode_responses=False)
            consumer_group: Name of consumer group for workers
        """
        self.redis = redis_client
        self.consumer_group = consumer_group
        self.consumer_name = f"worker-{socket.gethostname()}-{id(self)}"
        self._initialized_streams = set()

    def _ensure_stream_exists(self, queue_name: str):
        """Create stream and consumer group on first use"""
        if queue_name in self._initialized_streams:
            return

        try:
            self.redis.xgroup_create(
                name=queue_name,
                groupname=self.consumer_group,
                id='0',
                mkstream=True
            )
            logger.info("redis_stream_created", stream=queue_name, group=self.consumer_group)
        except redis.ResponseError as e:
            # Group already exists
            if "BUSYGROUP" not in str(e):
                raise

        self._initialized_streams.add(queue_name)

    async def publish(self, queue_name: str, message: ClickEvent) -> bool:
        try:
            self._ensure_stream_exists(queue_name)
            self.redis.xadd(queue_name, {'data': message.model_dump_json()})
            return True

        except redis.RedisError as e:
            logger.error("redis_publish_failed", stream=queue_name, error=str(e))
            return False

    async def consume(
        self,
        queue_name: str,
        batch_size: int = 1,
        block_time: Optional[int] = 1000
    ) -> List[ClickEvent]:
        """
        Read messages never delivered to this group ('>').

        Messages stay pending until acknowledged. Unparseable messages are
        acknowledged straight away so they are not redelivered forever.
        """
        try:
            self._ensure_stream_exists(queue_name)
            messages = self.redis.xreadgroup(
                groupname=self.consumer_group,
                consumername=self.consumer_name,
                streams={queue_name: '>'},
                count=batch_size,
                block=block_time
            )
        except redis.RedisError as e:
            logger.error("redis_consume_failed", stream=queue_name, error=str(e))
            return []

        if not messages:
            return []

        events = []
        broken = []
        for _stream_name, stream_messages in messages:
            for message_id, message_data in stream_messages:
                message_id = message_id.decode('utf-8')
                try:
                    data = json.loads(message_data[b'data'].decode('utf-8'))
                    event = ClickEvent(**data)
                except (KeyError, ValueError, ValidationError) as e:
                    logger.warning("redis_message_unparseable", message_id=message_id, error=str(e))
                    broken.append(message_id)
                    continue

                event.message_id = message_id
                events.append(event)

        if broken:
            await self.ack(queue_name, broken)

        return events

    async def ack(self, queue_name: str, message_ids: List[str]) -> bool:
        if not message_ids:
            return True

        try:
            self.redis.xack(queue_name, self.consumer_group, *message_ids)
            return True
        except redis.RedisError as e:
            logger.error("redis_ack_failed", stream=queue_name, error=str(e))
            return False

    async def get_queue_length(self, queue_name: str) -> int:
        try:
            info = self.redis.xinfo_stream(queue_name)
            return info['length']
        except redis.RedisError:
            return 0


class InMemoryQueue(QueueStrategy):
    """
    In-memory queue implementation using Python deque.

    Pros:
    - Simple (no external dependencies)
    - Good for development and testing

    Cons:
    - Not persistent (lost on restart)
    - Not distributed (each process has its own queue)

    Messages are removed on consume, so ``ack`` is a no-op.
    """

    def __init__(self):
        self._queues: Dict[str, deque] = {}

    def _get_queue(self, queue_name: str) -> deque:
        if queue_name not in self._queues:
            self._queues[queue_name] = deque()
        return self._queues[queue_name]

    async def publish(self, queue_name: str, message: ClickEvent) -> bool:
        self._get_queue(queue_name).append(message)
        return True

    async def consume(
        self,
        queue_name: str,
        batch_size: int = 1,
        block_time: Optional[int] = 1000
    ) -> List[ClickEvent]:
        """block_time is ignored"""
        queue = self._get_queue(queue_name)
        messages = []
        while queue and len(messages) < batch_size:
            messages.append(queue.popleft())
        return messages

    async def ack(self, queue_name: str, message_ids: List[str]) -> bool:
        return True

    async def get_queue_length(self, queue_name: str) -> int:
        return len(self._get_queue(queue_name))
