"""REST API module for the campus gig marketplace.

This module provides HTTP endpoints for:
- Browsing, creating and managing gigs
- Placing orders and moving them through their lifecycle
- Rating delivered orders
- Reading and editing profiles
- Real-time toasts via WebSocket
- Health checks
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import get_settings
from database import init_db, close as db_close
from database.changes import OrderChangeFeed
from database.store import Store
from orders.notifications import OrderNotificationDispatcher
from realtime import OrderChangeListener
from .dependencies import build_services
from .notifications import NotificationHub

logger = logging.getLogger(__name__)


# Lifecycle management
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown events."""
    # Startup
    logger.info("Initializing API...")
    settings = get_settings()
    pool = await init_db(settings['db_url'])

    services = build_services(Store(pool), NotificationHub(), settings)
    dispatcher = OrderNotificationDispatcher(
        services.hub,
        services.cache,
        dedupe_seconds=settings['notification_dedupe_seconds']
    )
    # Changes missed while disconnected are never replayed, so drop every
    # cached query once the feed comes back
    feed = OrderChangeFeed(
        settings['db_url'],
        max_tries=settings['listener_max_tries'],
        on_reconnect=services.cache.clear
    )
    services.listener = OrderChangeListener(
        feed,
        dispatcher,
        retry_delay=settings['listener_retry_seconds']
    )
    services.listener.start()
    app.state.services = services

    yield

    # Shutdown
    logger.info("Shutting down API...")
    await services.listener.stop()
    await db_close()


# Create FastAPI app
app = FastAPI(
    title="Campus Gigs API",
    description="REST API for the campus gig marketplace",
    version="1.0.0",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, replace with specific origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Import and include all routers
from .gigs import router as gigs_router
from .orders import router as orders_router
from .profile import router as profile_router
from .notifications import router as notifications_router
from .system import router as system_router

app.include_router(gigs_router)
app.include_router(orders_router)
app.include_router(profile_router)
app.include_router(notifications_router)
app.include_router(system_router)
