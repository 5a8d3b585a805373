"""Order change feed over PostgreSQL LISTEN/NOTIFY.

The ``notify_order_change`` trigger publishes every INSERT and UPDATE on
``orders`` as ``{"op", "old", "new"}`` JSON. ``OrderChangeFeed`` keeps a
dedicated connection listening on that channel and exposes the events as an
async iterator. If the connection drops the feed reconnects with exponential
backoff; notifications sent while disconnected are not replayed, so
consumers are told through ``on_reconnect`` to refresh what they hold.
"""
import asyncio
import json
import logging
from typing import AsyncIterator, Callable, Optional
from uuid import UUID

import asyncpg
import backoff
from pydantic import ValidationError

from orders.models import OrderChange

from . import get_connection_kwargs

logger = logging.getLogger(__name__)

ORDER_CHANGE_CHANNEL = 'order_changes'

_CLOSED = object()
_RECONNECT = object()


def parse_change(payload: str) -> OrderChange:
    """Parse a NOTIFY payload into an OrderChange.

    Raises:
        ValueError: If the payload is not a valid change document
    """
    try:
        return OrderChange(**json.loads(payload))
    except (json.JSONDecodeError, TypeError, ValidationError) as e:
        raise ValueError(f"Invalid order change payload: {e}")


class OrderChangeFeed:
    """Lazy, restartable, at-least-once stream of order row changes.

    A feed serves one subscriber at a time.
    """

    def __init__(
        self,
        db_url: str,
        channel: str = ORDER_CHANGE_CHANNEL,
        max_tries: int = 5,
        on_reconnect: Optional[Callable[[], None]] = None,
        connect=asyncpg.connect
    ) -> None:
        self.db_url = db_url
        self.channel = channel
        self.max_tries = max_tries
        self.on_reconnect = on_reconnect
        self._connect_fn = connect
        self._conn = None
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self._connected_once = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _on_notify(self, conn, pid, channel, payload) -> None:
        self._queue.put_nowait(payload)

    def _on_terminate(self, conn) -> None:
        if not self._closed:
            logger.warning(f"Lost connection listening on {self.channel}")
            self._queue.put_nowait(_RECONNECT)

    async def _open(self) -> None:
        conn = await self._connect_fn(self.db_url, **get_connection_kwargs(self.db_url))
        if self._closed:
            # close() ran while we were connecting
            await conn.close()
            return
        await conn.add_listener(self.channel, self._on_notify)
        conn.add_termination_listener(self._on_terminate)
        if self._closed:
            await conn.close()
            return
        self._conn = conn

    async def _ensure_connected(self) -> None:
        if self._conn is not None and not self._conn.is_closed():
            return

        connect = backoff.on_exception(
            backoff.expo,
            (OSError, asyncpg.exceptions.PostgresConnectionError, asyncpg.exceptions.CannotConnectNowError),
            max_tries=self.max_tries
        )(self._open)
        await connect()
        if self._closed:
            return
        logger.info(f"Listening for order changes on {self.channel}")

        if self._connected_once and self.on_reconnect is not None:
            self.on_reconnect()
        self._connected_once = True

    async def subscribe(self, party_id: Optional[UUID] = None) -> AsyncIterator[OrderChange]:
        """Yield order changes until the feed is closed.

        Args:
            party_id: Only yield changes where this user is buyer or seller
        """
        while not self._closed:
            await self._ensure_connected()

            item = await self._queue.get()
            if item is _CLOSED:
                return
            if item is _RECONNECT:
                self._conn = None
                continue

            try:
                change = parse_change(item)
            except ValueError as e:
                logger.error(f"Dropping order change: {e}")
                continue

            if party_id is not None and party_id not in (change.new.buyer_id, change.new.seller_id):
                continue

            yield change

    async def close(self) -> None:
        """Stop listening and end any running subscription."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)

        conn, self._conn = self._conn, None
        if conn is not None and not conn.is_closed():
            await conn.remove_listener(self.channel, self._on_notify)
            await conn.close()
        logger.info(f"Stopped listening on {self.channel}")


__all__ = ['OrderChangeFeed', 'parse_change', 'ORDER_CHANGE_CHANNEL']
