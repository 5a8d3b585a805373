"""Fan-out of observed order changes to buyer and seller toasts.

The change feed delivers at-least-once, so a reconnect can replay a change
that was already shown. Each ``(order id, status)`` pair is announced at most
once per observation window.
"""
import logging
import time
from typing import Callable, Dict, List, Optional, Tuple

from .cache import QueryCache, order_keys
from .models import OrderChange, OrderStatus, Severity

logger = logging.getLogger(__name__)

DEFAULT_DEDUPE_SECONDS = 30.0

# (old status, new status) -> [(party, severity, title, detail)]
ORDER_EVENTS: Dict[Tuple[Optional[OrderStatus], OrderStatus], List[Tuple[str, Severity, str, str]]] = {
    (None, OrderStatus.PENDING): [
        ('seller', Severity.SUCCESS, 'New order received!', 'Someone just ordered your gig!'),
    ],
    (OrderStatus.PENDING, OrderStatus.PAID): [
        ('buyer', Severity.INFO, 'Payment confirmed!', 'Your payment has been processed.'),
        ('seller', Severity.SUCCESS, 'Payment received!', 'A buyer has paid for your gig!'),
    ],
    (OrderStatus.PAID, OrderStatus.DELIVERED): [
        ('buyer', Severity.SUCCESS, 'Order delivered!', 'Your order has been marked as delivered.'),
    ],
}

CANCELLED_EVENT = [
    ('buyer', Severity.WARNING, 'Order cancelled', 'Your order has been cancelled.'),
    ('seller', Severity.WARNING, 'Order cancelled', 'An order for your gig has been cancelled.'),
]

# Status an update must have come from when the feed omits the old row
PREVIOUS_STATUS = {
    OrderStatus.PAID: OrderStatus.PENDING,
    OrderStatus.DELIVERED: OrderStatus.PAID,
}


def classify_change(change: OrderChange) -> List[Tuple[str, Severity, str, str]]:
    """Map an order row change to the messages each party should see.

    Unrelated field updates (same status before and after) map to nothing.
    """
    new_status = change.new.status

    if change.old is not None:
        old_status = change.old.status
        if old_status == new_status:
            return []
    elif change.op.upper() == 'INSERT':
        old_status = None
    else:
        old_status = PREVIOUS_STATUS.get(new_status)

    if new_status == OrderStatus.CANCELLED:
        return list(CANCELLED_EVENT)

    return list(ORDER_EVENTS.get((old_status, new_status), []))


class OrderNotificationDispatcher:
    """Turns order change events into cache invalidation and user toasts."""

    def __init__(
        self,
        surface,
        cache: Optional[QueryCache] = None,
        dedupe_seconds: float = DEFAULT_DEDUPE_SECONDS,
        clock: Callable[[], float] = time.monotonic
    ) -> None:
        """Initialize the dispatcher.

        Args:
            surface: Object with an async ``notify_user(user_id, severity, title, detail)``
            cache: Query cache to invalidate on every observed change
            dedupe_seconds: Observation window for repeated (order id, status) pairs
            clock: Monotonic time source
        """
        self.surface = surface
        self.cache = cache
        self.dedupe_seconds = dedupe_seconds
        self._clock = clock
        self._seen: Dict[Tuple[str, str], float] = {}

    def _prune(self, now: float) -> None:
        expired = [key for key, seen_at in self._seen.items() if now - seen_at >= self.dedupe_seconds]
        for key in expired:
            del self._seen[key]

    async def handle_change(self, change: OrderChange) -> int:
        """Process one observed change.

        Returns:
            Number of notifications sent
        """
        order = change.new

        if self.cache is not None:
            self.cache.invalidate(order_keys(order))

        messages = classify_change(change)
        if not messages:
            return 0

        now = self._clock()
        self._prune(now)
        key = (str(order.id), order.status.value)
        if key in self._seen:
            logger.debug(f"Skipping replayed change for order {order.id} ({order.status.value})")
            return 0
        self._seen[key] = now

        sent = 0
        for party, severity, title, detail in messages:
            user_id = order.buyer_id if party == 'buyer' else order.seller_id
            try:
                await self.surface.notify_user(user_id, severity, title, detail)
                sent += 1
            except Exception as e:
                logger.error(f"Failed to notify {party} {user_id} about order {order.id}: {e}")

        logger.info(f"Order {order.id} is now {order.status.value}; sent {sent} notification(s)")
        return sent
