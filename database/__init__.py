"""Database module for managing connections to PostgreSQL.

This module handles:
- Database connection pool initialization
- Schema management
- Connection lifecycle
"""

import logging
import ssl
from typing import Optional, Dict, Any
from urllib.parse import urlparse, parse_qs

import backoff
import asyncpg

from .exceptions import (
    DatabaseError,
    DatabaseSchemaError,
    DuplicateRecordError,
    ReferentialViolationError
)
from .lib.schema_manager import SchemaManager

logger = logging.getLogger(__name__)

_pool: Optional[asyncpg.Pool] = None
_schema_manager: Optional[SchemaManager] = None

# sslmode values that require an encrypted connection
SSL_MODES = ('require', 'verify-ca', 'verify-full')


def _get_ssl_context() -> ssl.SSLContext:
    """Create SSL context for hosted database connections."""
    ssl_context = ssl.create_default_context()
    ssl_context.verify_mode = ssl.CERT_REQUIRED
    ssl_context.check_hostname = True
    return ssl_context


def get_connection_kwargs(db_url: str) -> Dict[str, Any]:
    """Get connection kwargs from database URL.

    Args:
        db_url: Database connection URL

    Returns:
        Dict of connection parameters for asyncpg
    """
    params = parse_qs(urlparse(db_url).query)

    kwargs: Dict[str, Any] = {
        'server_settings': {
            'statement_timeout': '60000',  # 1 minute
            'application_name': 'campus-gigs',
        }
    }

    sslmode = params.get('sslmode', ['disable'])[0]
    if sslmode in SSL_MODES:
        kwargs['ssl'] = _get_ssl_context()

    return kwargs


@backoff.on_exception(
    backoff.expo,
    (asyncpg.exceptions.PostgresConnectionError, asyncpg.exceptions.CannotConnectNowError, OSError),
    max_tries=5
)
async def init_db(db_url: Optional[str] = None) -> asyncpg.Pool:
    """Initialize the database connection pool and schema.

    Args:
        db_url: Optional database URL. If not provided, will use settings.

    Returns:
        The initialized connection pool

    Raises:
        ValueError: If database URL is not provided
        DatabaseSchemaError: If schema initialization fails
    """
    global _pool, _schema_manager

    if _pool:
        return _pool

    if not db_url:
        # Import here to avoid loading settings for pure library use
        from config import get_settings
        db_url = get_settings().get('db_url')
    if not db_url:
        raise ValueError("Database URL not provided")

    try:
        _pool = await asyncpg.create_pool(
            db_url,
            min_size=2,
            max_size=20,
            max_inactive_connection_lifetime=300.0,
            command_timeout=60.0,
            **get_connection_kwargs(db_url)
        )

        _schema_manager = SchemaManager(_pool)
        await _schema_manager.initialize()

    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        if _pool:
            await _pool.close()
            _pool = None
        raise

    logger.info("Database pool initialized")
    return _pool


async def get_pool() -> asyncpg.Pool:
    """Get the database connection pool.

    Raises:
        RuntimeError: If pool hasn't been initialized
    """
    if not _pool:
        await init_db()
    if not _pool:
        raise RuntimeError("Failed to initialize database pool")
    return _pool


async def close() -> None:
    """Close the database connection pool."""
    global _pool, _schema_manager

    if _pool:
        await _pool.close()
        _pool = None
        _schema_manager = None
        logger.info("Database pool closed")


__all__ = [
    'init_db',
    'get_pool',
    'close',
    'get_connection_kwargs',
    'DatabaseError',
    'DatabaseSchemaError',
    'DuplicateRecordError',
    'ReferentialViolationError'
]
