"""Realtime listener that feeds order changes to the notification dispatcher.

Runs as one background task per process, started with the API and closed
deterministically on shutdown.
"""
import asyncio
import logging
from typing import Optional

from orders.notifications import OrderNotificationDispatcher

logger = logging.getLogger(__name__)


class OrderChangeListener:
    """Consume an order change feed and dispatch each event.

    The subscription is restarted whenever it fails, so a database outage
    longer than the feed's own reconnect attempts only pauses notifications.
    """

    def __init__(self, feed, dispatcher: OrderNotificationDispatcher, retry_delay: float = 10) -> None:
        """Initialize the listener.

        Args:
            feed: Object with ``subscribe()`` async iterator and async ``close()``
            dispatcher: Handles each observed change
            retry_delay: Seconds to wait before resubscribing after a failure
        """
        self.feed = feed
        self.dispatcher = dispatcher
        self.retry_delay = retry_delay
        self.processed = 0
        self.restarts = 0
        self._task: Optional[asyncio.Task] = None
        self._stopping = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _finished(self) -> bool:
        return self._stopping.is_set() or getattr(self.feed, 'closed', False)

    async def _consume(self) -> None:
        async for change in self.feed.subscribe():
            try:
                await self.dispatcher.handle_change(change)
                self.processed += 1
            except Exception as e:
                logger.error(f"Error handling change for order {change.new.id}: {e}")

    async def run(self) -> None:
        """Dispatch changes until the listener is stopped or the feed closed."""
        logger.info("Order change listener started")
        try:
            while not self._finished():
                try:
                    await self._consume()
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.error(f"Order change subscription failed: {e}")
                if self._finished():
                    break

                self.restarts += 1
                logger.info(f"Resubscribing to order changes in {self.retry_delay}s")
                try:
                    await asyncio.wait_for(self._stopping.wait(), timeout=self.retry_delay)
                except asyncio.TimeoutError:
                    pass
        finally:
            logger.info(f"Order change listener finished after {self.processed} change(s)")

    def start(self) -> asyncio.Task:
        """Start the listener as a background task."""
        if self.running:
            return self._task
        self._stopping.clear()
        self._task = asyncio.create_task(self.run(), name="order-change-listener")
        return self._task

    async def stop(self) -> None:
        """Close the feed and wait for the task to finish."""
        self._stopping.set()
        await self.feed.close()
        task, self._task = self._task, None
        if task is None:
            return
        try:
            # wait_for cancels the task if it does not finish in time
            await asyncio.wait_for(task, timeout=5)
        except asyncio.TimeoutError:
            logger.warning("Order change listener did not stop in time; cancelled")
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error(f"Order change listener had failed: {e}")


__all__ = ['OrderChangeListener']
