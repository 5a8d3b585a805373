"""Tests for the order change feed."""

import asyncio
import json
import uuid
import pytest

from database.changes import ORDER_CHANGE_CHANNEL, OrderChangeFeed, parse_change
from orders.models import OrderStatus

BUYER = uuid.uuid4()
SELLER = uuid.uuid4()


def order_row(status='paid', buyer=BUYER, seller=SELLER, order_id=None):
    return {
        "id": str(order_id or uuid.uuid4()),
        "buyer_id": str(buyer),
        "seller_id": str(seller),
        "gig_id": str(uuid.uuid4()),
        "status": status,
        "amount": 20,
        "created_at": "2024-01-01T00:00:00+00:00",
        "updated_at": "2024-01-01T00:00:05+00:00",
    }


def payload(old=None, new=None, op='UPDATE'):
    return json.dumps({"op": op, "old": old, "new": new or order_row()})


class FakeConnection:
    def __init__(self):
        self.listeners = {}
        self.termination_listeners = []
        self.closed = False

    async def add_listener(self, channel, callback):
        self.listeners[channel] = callback

    async def remove_listener(self, channel, callback):
        self.listeners.pop(channel, None)

    def add_termination_listener(self, callback):
        self.termination_listeners.append(callback)

    def is_closed(self):
        return self.closed

    async def close(self):
        self.closed = True

    def notify(self, body):
        self.listeners[ORDER_CHANGE_CHANNEL](self, 1, ORDER_CHANGE_CHANNEL, body)

    def drop(self):
        self.closed = True
        for callback in self.termination_listeners:
            callback(self)


class FakeConnector:
    def __init__(self):
        self.connections = []

    async def __call__(self, dsn, **kwargs):
        conn = FakeConnection()
        self.connections.append(conn)
        return conn


def test_parse_update():
    change = parse_change(payload(old=order_row('pending'), new=order_row('paid')))
    assert change.op == 'UPDATE'
    assert change.old.status == OrderStatus.PENDING
    assert change.new.status == OrderStatus.PAID


def test_parse_insert():
    change = parse_change(payload(new=order_row('pending'), op='INSERT'))
    assert change.old is None


@pytest.mark.parametrize("body", ["not json", "[]", json.dumps({"op": "UPDATE", "new": {"id": "x"}})])
def test_parse_rejects_bad_payloads(body):
    with pytest.raises(ValueError):
        parse_change(body)


async def next_change(iterator):
    return await asyncio.wait_for(iterator.__anext__(), timeout=1)


@pytest.mark.asyncio
async def test_feed_yields_changes_and_closes():
    connector = FakeConnector()
    feed = OrderChangeFeed("postgresql://localhost/gigs", connect=connector)
    changes = feed.subscribe()

    first = asyncio.create_task(next_change(changes))
    await asyncio.sleep(0)
    while not connector.connections:
        await asyncio.sleep(0)

    conn = connector.connections[0]
    conn.notify("garbage")
    conn.notify(payload(new=order_row('delivered')))

    change = await first
    assert change.new.status == OrderStatus.DELIVERED

    await feed.close()
    assert conn.closed
    assert feed.closed
    with pytest.raises(StopAsyncIteration):
        await next_change(changes)


@pytest.mark.asyncio
async def test_feed_filters_by_party():
    connector = FakeConnector()
    feed = OrderChangeFeed("postgresql://localhost/gigs", connect=connector)
    mine = uuid.uuid4()
    changes = feed.subscribe(party_id=mine)

    task = asyncio.create_task(next_change(changes))
    while not connector.connections:
        await asyncio.sleep(0)

    conn = connector.connections[0]
    conn.notify(payload(new=order_row('paid')))
    conn.notify(payload(new=order_row('paid', seller=mine)))

    change = await task
    assert change.new.seller_id == mine
    await feed.close()


@pytest.mark.asyncio
async def test_feed_reconnects_and_signals():
    connector = FakeConnector()
    reconnects = []
    feed = OrderChangeFeed(
        "postgresql://localhost/gigs",
        connect=connector,
        on_reconnect=lambda: reconnects.append(1)
    )
    changes = feed.subscribe()

    task = asyncio.create_task(next_change(changes))
    while not connector.connections:
        await asyncio.sleep(0)

    connector.connections[0].drop()
    while len(connector.connections) < 2:
        await asyncio.sleep(0)

    connector.connections[1].notify(payload(new=order_row('cancelled')))
    change = await task

    assert change.new.status == OrderStatus.CANCELLED
    assert reconnects == [1]
    await feed.close()


@pytest.mark.asyncio
async def test_close_is_idempotent():
    feed = OrderChangeFeed("postgresql://localhost/gigs", connect=FakeConnector())
    await feed.close()
    await feed.close()
    assert feed.closed


class GatedConnector(FakeConnector):
    """Connector that holds each connection attempt until released."""

    def __init__(self):
        super().__init__()
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def __call__(self, dsn, **kwargs):
        self.started.set()
        await self.release.wait()
        return await super().__call__(dsn, **kwargs)


@pytest.mark.asyncio
async def test_close_during_connect_closes_new_connection():
    connector = GatedConnector()
    feed = OrderChangeFeed("postgresql://localhost/gigs", connect=connector)
    changes = feed.subscribe()

    task = asyncio.create_task(next_change(changes))
    await asyncio.wait_for(connector.started.wait(), timeout=1)

    await feed.close()
    connector.release.set()

    with pytest.raises(StopAsyncIteration):
        await task
    conn = connector.connections[0]
    assert conn.closed
    assert conn.listeners == {}
