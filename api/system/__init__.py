"""System health endpoints."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from database.exceptions import DatabaseError
from ..dependencies import Services, get_services

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(
    prefix="/system",
    tags=["System"]
)


class SystemHealth(BaseModel):
    """Model for system health data."""
    status: str
    database_status: str
    listener_status: str
    changes_processed: int
    websocket_connections: int
    cached_queries: int
    timestamp: datetime


@router.get("/health", response_model=SystemHealth)
async def get_system_health(services: Services = Depends(get_services)) -> SystemHealth:
    """Get system health status.

    The service is ``degraded`` when the database is unreachable or the
    order change listener is not running.
    """
    try:
        database_ok = await services.orders.store.ping()
    except (DatabaseError, OSError) as e:
        logger.warning(f"Health check could not reach the database: {e}")
        database_ok = False

    listener = services.listener
    listener_ok = listener is not None and listener.running

    return SystemHealth(
        status="healthy" if database_ok and listener_ok else "degraded",
        database_status="connected" if database_ok else "unreachable",
        listener_status="running" if listener_ok else "stopped",
        changes_processed=listener.processed if listener is not None else 0,
        websocket_connections=services.hub.connection_count(),
        cached_queries=len(services.cache),
        timestamp=datetime.now(timezone.utc)
    )
