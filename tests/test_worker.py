"""
Tests for the click worker and the queue hand-off.
"""
import asyncio
from datetime import timedelta

from shortlink_app.hit_processor.click_worker import ClickWorker, publish_click
from shortlink_app.log_config import CLICK_SINK_LOGGER
from shortlink_app.queue.models import ClickEvent
from shortlink_app.queue.strategies import InMemoryQueue
from shortlink_app.storage.strategies import ClickStorageStrategy
from shortlink_app.timeutils import utcnow


class FailingStorage(ClickStorageStrategy):
    """Storage whose writes always fail"""

    def __init__(self, raises=False):
        self.raises = raises
        self.attempts = 0

    async def store_click(self, event):
        return await self.store_clicks([event])

    async def store_clicks(self, events):
        self.attempts += 1
        if self.raises:
            raise RuntimeError("analytics database is down")
        return False

    async def summary(self, short_code, since):
        return {"total_clicks": 0, "unique_visitors": 0}

    async def timeseries(self, short_code, since):
        return []

    async def devices(self, short_code, since):
        return []

    async def utm_breakdown(self, short_code, since, column):
        return []

    async def locations(self, short_code, since):
        return []

    async def referrers(self, short_code, since):
        return []


class BrokenQueue(InMemoryQueue):
    async def publish(self, queue_name, message):
        return False


class AckRecordingQueue(InMemoryQueue):
    def __init__(self):
        super().__init__()
        self.acked = []

    async def consume(self, queue_name, batch_size=1, block_time=1000):
        messages = await super().consume(queue_name, batch_size, block_time)
        for index, message in enumerate(messages):
            message.message_id = f"1-{index}"
        return messages

    async def ack(self, queue_name, message_ids):
        self.acked.extend(message_ids)
        return True


def make_event(**fields):
    return ClickEvent(short_code="abc", link_id=1, **fields)


class TestClickWorker:
    """Test batch processing"""

    def test_run_once_moves_events_to_storage(self, queue, click_storage, worker):
        for _ in range(3):
            asyncio.run(publish_click(queue, make_event(is_unique=True)))

        assert asyncio.run(worker.run_once()) == 3
        assert asyncio.run(queue.get_queue_length(worker.queue_name)) == 0

        summary = asyncio.run(click_storage.summary("abc", utcnow() - timedelta(days=1)))
        assert summary == {"total_clicks": 3, "unique_visitors": 3}

    def test_run_once_on_empty_queue(self, worker):
        assert asyncio.run(worker.run_once()) == 0

    def test_batch_size_is_respected(self, queue, click_storage):
        worker = ClickWorker(queue=queue, storage=click_storage, batch_size=2, poll_interval=0)
        for _ in range(5):
            asyncio.run(publish_click(queue, make_event()))

        assert asyncio.run(worker.run_once()) == 2
        assert asyncio.run(worker.run_once()) == 2
        assert asyncio.run(worker.run_once()) == 1

    def test_failed_store_is_acked_and_sunk(self, caplog):
        queue = AckRecordingQueue()
        storage = FailingStorage()
        worker = ClickWorker(queue=queue, storage=storage, poll_interval=0)
        asyncio.run(queue.publish(worker.queue_name, make_event()))
        asyncio.run(queue.publish(worker.queue_name, make_event()))

        with caplog.at_level("WARNING", logger=CLICK_SINK_LOGGER):
            processed = asyncio.run(worker.run_once())

        assert processed == 2
        assert queue.acked == ["1-0", "1-1"]
        assert worker.dropped_count == 2
        assert storage.attempts == 1
        assert len([r for r in caplog.records if r.name == CLICK_SINK_LOGGER]) == 2

    def test_storage_exception_does_not_escape(self):
        queue = AckRecordingQueue()
        worker = ClickWorker(queue=queue, storage=FailingStorage(raises=True), poll_interval=0)
        asyncio.run(queue.publish(worker.queue_name, make_event()))

        assert asyncio.run(worker.run_once()) == 1
        assert queue.acked == ["1-0"]
        assert worker.dropped_count == 1

    def test_start_and_stop(self, queue, click_storage):
        worker = ClickWorker(queue=queue, storage=click_storage, poll_interval=0)

        async def scenario():
            await publish_click(queue, make_event())
            task = asyncio.create_task(worker.start())
            while worker.processed_count == 0:
                await asyncio.sleep(0)
            worker.stop()
            await task

        asyncio.run(scenario())

        assert worker.processed_count == 1
        assert worker.running is False


class TestPublishClick:
    """Test the background hand-off"""

    def test_publish_failure_goes_to_sink(self, caplog):
        with caplog.at_level("WARNING", logger=CLICK_SINK_LOGGER):
            published = asyncio.run(publish_click(BrokenQueue(), make_event()))

        assert published is False
        sunk = [r for r in caplog.records if r.name == CLICK_SINK_LOGGER]
        assert len(sunk) == 1
        assert sunk[0].msg["event"] == "click_dropped"
        assert sunk[0].msg["stage"] == "publish"
        assert sunk[0].msg["click"]["short_code"] == "abc"
