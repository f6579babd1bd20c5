"""
Click Worker

Moves click events from the queue into the click storage in batches.

Delivery is at-most-once: a batch is acknowledged whatever the storage
outcome, and anything that could not be stored is written to the click
sink logger instead of being retried.

Run standalone with:
    python -m shortlink_app.hit_processor.click_worker
"""

import asyncio
import signal
from typing import List, Optional

import structlog

from shortlink_app.config import settings
from shortlink_app.log_config import configure_logging, get_click_sink
from shortlink_app.queue.models import ClickEvent
from shortlink_app.queue.strategies import QueueStrategy
from shortlink_app.storage.strategies import ClickStorageStrategy

logger = structlog.get_logger(__name__)


async def publish_click(queue: QueueStrategy, event: ClickEvent, queue_name: Optional[str] = None) -> bool:
    """
    Hand a click event to the queue.

    Runs after the redirect response has been sent, so a failure here is
    only ever reported to the click sink.
    """
    published = await queue.publish(queue_name or settings.queue_name, event)
    if not published:
        get_click_sink().warning("click_dropped", stage="publish", click=event.model_dump(mode="json"))
    return published


class ClickWorker:
    """
    Batch consumer: queue -> click storage.

    The same worker runs embedded in the API process (started from the
    FastAPI lifespan) or on its own through ``main()``.
    """

    def __init__(
        self,
        queue: QueueStrategy,
        storage: ClickStorageStrategy,
        queue_name: Optional[str] = None,
        batch_size: Optional[int] = None,
        poll_interval: Optional[float] = None,
    ):
        self.queue = queue
        self.storage = storage
        self.queue_name = queue_name or settings.queue_name
        self.batch_size = batch_size or settings.queue_batch_size
        self.poll_interval = settings.queue_worker_interval if poll_interval is None else poll_interval
        self.running = False
        self.processed_count = 0
        self.dropped_count = 0

    async def run_once(self) -> int:
        """
        Process at most one batch.

        Returns:
            Number of messages taken off the queue
        """
        messages = await self.queue.consume_batch(
            queue_name=self.queue_name,
            batch_size=self.batch_size,
            block_time=None,
        )
        if not messages:
            return 0

        try:
            stored = await self.storage.store_clicks(messages)
        except Exception:
            logger.exception("click_storage_error", count=len(messages))
            stored = False

        try:
            if not stored:
                self._drop(messages)
        finally:
            message_ids = [msg.message_id for msg in messages if msg.message_id]
            if message_ids:
                await self.queue.ack(self.queue_name, message_ids)

        self.processed_count += len(messages)
        logger.debug("click_batch_processed", count=len(messages), stored=stored)
        return len(messages)

    def _drop(self, messages: List[ClickEvent]):
        sink = get_click_sink()
        for message in messages:
            sink.warning("click_dropped", stage="store", click=message.model_dump(mode="json"))
        self.dropped_count += len(messages)

    async def start(self):
        """Poll until stopped; flush buffered storage on the way out"""
        self.running = True
        logger.info("click_worker_started", queue=self.queue_name, batch_size=self.batch_size)

        try:
            while self.running:
                try:
                    processed = await self.run_once()
                except Exception:
                    logger.exception("click_worker_iteration_failed")
                    processed = 0

                if not processed:
                    await asyncio.sleep(self.poll_interval)
        finally:
            await self.storage.flush()
            logger.info(
                "click_worker_stopped",
                processed=self.processed_count,
                dropped=self.dropped_count,
            )

    def stop(self):
        self.running = False


async def main():
    """Standalone entry point"""
    configure_logging()

    from shortlink_app.queue.factory import QueueFactory, QueueBackend
    from shortlink_app.storage.factory import ClickStorageFactory, ClickStorageBackend

    queue = QueueFactory.create(QueueBackend(settings.queue_backend))
    storage = ClickStorageFactory.create(ClickStorageBackend(settings.click_storage_backend))
    worker = ClickWorker(queue=queue, storage=storage)

    logger.info(
        "click_worker_configured",
        environment=settings.environment,
        queue_backend=settings.queue_backend,
        storage_backend=settings.click_storage_backend,
    )

    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, worker.stop)

    await worker.start()


if __name__ == "__main__":
    asyncio.run(main())
