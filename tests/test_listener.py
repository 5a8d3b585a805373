"""Tests for the realtime order change listener."""

import asyncio
import uuid
import pytest

from orders.models import Order, OrderChange, OrderStatus
from orders.notifications import OrderNotificationDispatcher
from realtime import OrderChangeListener


def change(status: OrderStatus) -> OrderChange:
    order = Order(
        id=uuid.uuid4(),
        buyer_id=uuid.uuid4(),
        seller_id=uuid.uuid4(),
        gig_id=uuid.uuid4(),
        status=status,
        amount=5
    )
    return OrderChange(op='INSERT', new=order)


class QueueFeed:
    """Feed that yields whatever is put on its queue until closed."""

    def __init__(self):
        self.queue = asyncio.Queue()
        self.closed = False

    async def subscribe(self, party_id=None):
        while True:
            item = await self.queue.get()
            if item is None:
                return
            yield item

    async def close(self):
        self.closed = True
        self.queue.put_nowait(None)


class ExplodingDispatcher:
    def __init__(self):
        self.calls = 0

    async def handle_change(self, change):
        self.calls += 1
        if self.calls == 1:
            raise RuntimeError("boom")
        return 1


@pytest.mark.asyncio
async def test_listener_dispatches_until_stopped(notifier):
    feed = QueueFeed()
    listener = OrderChangeListener(feed, OrderNotificationDispatcher(notifier))
    listener.start()
    assert listener.running

    event = change(OrderStatus.PENDING)
    feed.queue.put_nowait(event)
    while listener.processed < 1:
        await asyncio.sleep(0)

    await listener.stop()

    assert feed.closed
    assert not listener.running
    assert notifier.titles_for(event.new.seller_id) == ['New order received!']


@pytest.mark.asyncio
async def test_listener_survives_handler_errors():
    feed = QueueFeed()
    dispatcher = ExplodingDispatcher()
    listener = OrderChangeListener(feed, dispatcher)
    listener.start()

    feed.queue.put_nowait(change(OrderStatus.PENDING))
    feed.queue.put_nowait(change(OrderStatus.PENDING))
    while dispatcher.calls < 2:
        await asyncio.sleep(0)

    assert listener.running
    assert listener.processed == 1
    await listener.stop()


@pytest.mark.asyncio
async def test_stop_without_start():
    feed = QueueFeed()
    listener = OrderChangeListener(feed, ExplodingDispatcher())
    await listener.stop()
    assert feed.closed


class FlakyFeed(QueueFeed):
    """Feed whose first subscription fails as if the database stayed down."""

    def __init__(self, failures: int = 1):
        super().__init__()
        self.failures = failures
        self.attempts = 0

    async def subscribe(self, party_id=None):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise OSError("connection refused")
        async for item in super().subscribe(party_id):
            yield item


@pytest.mark.asyncio
async def test_listener_resubscribes_after_feed_failure(notifier):
    feed = FlakyFeed(failures=2)
    listener = OrderChangeListener(feed, OrderNotificationDispatcher(notifier), retry_delay=0)
    listener.start()

    event = change(OrderStatus.PENDING)
    feed.queue.put_nowait(event)
    while listener.processed < 1:
        await asyncio.sleep(0)

    assert listener.running
    assert feed.attempts == 3
    assert listener.restarts == 2
    assert notifier.titles_for(event.new.seller_id) == ['New order received!']
    await listener.stop()
    assert not listener.running


@pytest.mark.asyncio
async def test_stop_interrupts_retry_wait():
    feed = FlakyFeed(failures=1)
    listener = OrderChangeListener(feed, ExplodingDispatcher(), retry_delay=60)
    listener.start()
    while feed.attempts < 1:
        await asyncio.sleep(0)

    await asyncio.wait_for(listener.stop(), timeout=1)

    assert not listener.running
    assert feed.attempts == 1
