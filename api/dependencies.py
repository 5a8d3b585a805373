"""Service wiring shared by the API routers."""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request, status

from gigs import GigManager
from orders import OrderManager
from orders.cache import QueryCache
from profiles import ProfileManager


@dataclass
class Services:
    """Everything a request handler needs, built once at startup."""
    orders: OrderManager
    gigs: GigManager
    profiles: ProfileManager
    cache: QueryCache
    hub: Any
    settings: Dict[str, Any] = field(default_factory=dict)
    listener: Optional[Any] = None


def build_services(store, hub, settings: Optional[Dict[str, Any]] = None) -> Services:
    """Create managers sharing one cache and one notification hub."""
    cache = QueryCache()
    return Services(
        orders=OrderManager(store, cache, hub),
        gigs=GigManager(store, cache, hub),
        profiles=ProfileManager(store, cache, hub),
        cache=cache,
        hub=hub,
        settings=dict(settings or {})
    )


def get_services(request: Request) -> Services:
    """FastAPI dependency returning the app's services."""
    services = getattr(request.app.state, 'services', None)
    if services is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is starting up"
        )
    return services
