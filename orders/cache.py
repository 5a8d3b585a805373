"""Query result cache keyed by logical query identity.

Keys are tuples such as ``('orders', 'buyer', user_id)``. Invalidating a key
drops every entry whose key starts with it, so ``('gigs',)`` clears all gig
list variants. Invalidation is broadcast rather than a precise diff: dropping
too much only costs a refetch, keeping too much shows stale data.
"""
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Set, Tuple

logger = logging.getLogger(__name__)

QueryKey = Tuple[Any, ...]


def _normalize(key: Iterable[Any]) -> QueryKey:
    return tuple(str(part) if part is not None else None for part in key)


class QueryCache:
    """In-process store of query results."""

    def __init__(self) -> None:
        self._entries: Dict[QueryKey, Any] = {}

    def get(self, key: QueryKey) -> Optional[Any]:
        return self._entries.get(_normalize(key))

    def set(self, key: QueryKey, value: Any) -> None:
        self._entries[_normalize(key)] = value

    def __contains__(self, key: QueryKey) -> bool:
        return _normalize(key) in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    async def get_or_load(self, key: QueryKey, loader: Callable[[], Awaitable[Any]]) -> Any:
        """Return the cached result for ``key``, loading and storing it on a miss."""
        key = _normalize(key)
        if key in self._entries:
            return self._entries[key]
        value = await loader()
        self._entries[key] = value
        return value

    def invalidate(self, keys: Iterable[QueryKey]) -> int:
        """Drop every entry matching any of ``keys`` by prefix.

        Returns:
            Number of entries removed
        """
        prefixes = [_normalize(k) for k in keys]
        stale = [
            entry for entry in self._entries
            if any(entry[:len(prefix)] == prefix for prefix in prefixes)
        ]
        for entry in stale:
            del self._entries[entry]
        if stale:
            logger.debug(f"Invalidated {len(stale)} cached queries for {prefixes}")
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()


def order_keys(order, gig_owner_id=None) -> Set[QueryKey]:
    """Every cached query an order mutation could affect."""
    keys = {
        ('orders', 'buyer', order.buyer_id),
        ('orders', 'seller', order.seller_id),
        ('gigs',),
        ('gig', order.gig_id),
        ('ratings', order.gig_id),
        ('my-gigs', gig_owner_id or order.seller_id),
    }
    return {_normalize(k) for k in keys}


def gig_keys(gig) -> Set[QueryKey]:
    """Every cached query a gig mutation could affect."""
    keys = {
        ('gigs',),
        ('gig', gig.id),
        ('my-gigs', gig.user_id),
        ('ratings', gig.id),
    }
    return {_normalize(k) for k in keys}
