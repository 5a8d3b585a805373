"""Tests for the database layer that need no running PostgreSQL."""

import uuid
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock

import pytest
from asyncpg.exceptions import ForeignKeyViolationError, PostgresError, UniqueViolationError

from database import get_connection_kwargs
from database.exceptions import DatabaseError, DuplicateRecordError, ReferentialViolationError
from database.lib.schema_manager import SchemaManager
from database.store import Store, translate_errors
from orders.models import OrderStatus


def test_connection_kwargs_plain():
    kwargs = get_connection_kwargs("postgresql://u:p@localhost/gigs")
    assert 'ssl' not in kwargs
    assert kwargs['server_settings']['application_name'] == 'campus-gigs'


def test_connection_kwargs_ssl():
    kwargs = get_connection_kwargs("postgresql://u:p@db.example.com/gigs?sslmode=require")
    assert kwargs['ssl'] is not None


def test_schema_v1_loads():
    schemas = SchemaManager(pool=None).load_schema_files()

    assert 1 in schemas
    tables = {t['name'] for t in schemas[1]['tables']}
    assert tables == {'profiles', 'gigs', 'orders', 'ratings'}
    triggers = {t['name'] for t in schemas[1]['triggers']}
    assert 'notify_order_change' in triggers


def postgres_error(cls, constraint):
    error = cls("violation")
    error.constraint_name = constraint
    return error


@pytest.mark.asyncio
@pytest.mark.parametrize("raised,expected", [
    (postgres_error(UniqueViolationError, 'ratings_order_id_key'), DuplicateRecordError),
    (postgres_error(ForeignKeyViolationError, 'fk_orders_gig_id'), ReferentialViolationError),
    (PostgresError("boom"), DatabaseError),
])
async def test_translate_errors(raised, expected):
    @translate_errors
    async def failing():
        raise raised

    with pytest.raises(expected):
        await failing()


def fake_pool(conn):
    pool = MagicMock()

    @asynccontextmanager
    async def acquire():
        yield conn

    pool.acquire = acquire
    return pool


@pytest.mark.asyncio
async def test_conditional_status_update_miss():
    conn = MagicMock()
    conn.fetchrow = AsyncMock(return_value=None)
    store = Store(fake_pool(conn))
    order_id = uuid.uuid4()

    result = await store.update_order_status(order_id, OrderStatus.DELIVERED, OrderStatus.PAID)

    assert result is None
    query, *args = conn.fetchrow.call_args.args
    assert 'status = $3' in query
    assert args == [order_id, 'delivered', 'paid']


@pytest.mark.asyncio
async def test_update_gig_ignores_unknown_fields():
    conn = MagicMock()
    conn.fetchrow = AsyncMock(return_value=None)
    store = Store(fake_pool(conn))

    await store.update_gig(uuid.uuid4(), {'price': 10, 'average_rating': 5.0})

    query = conn.fetchrow.call_args.args[0]
    assert 'price = $2' in query
    assert 'average_rating' not in query


def transactional_conn(**returns):
    conn = MagicMock()
    conn.events = []

    @asynccontextmanager
    async def transaction():
        conn.events.append('begin')
        try:
            yield
        except Exception:
            conn.events.append('rollback')
            raise
        conn.events.append('commit')

    conn.transaction = transaction
    for name, value in returns.items():
        setattr(conn, name, AsyncMock(return_value=value))
    return conn


def rating_row(order_id, gig_id, reviewer_id):
    return {
        'id': uuid.uuid4(),
        'order_id': order_id,
        'gig_id': gig_id,
        'reviewer_id': reviewer_id,
        'rating': 5,
        'comment': None,
        'created_at': None
    }


@pytest.mark.asyncio
async def test_create_rating_folds_aggregate_in_one_transaction():
    order_id, gig_id, reviewer_id = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
    conn = transactional_conn(fetchrow=rating_row(order_id, gig_id, reviewer_id), fetchval=4)
    store = Store(fake_pool(conn))

    rating = await store.create_rating(order_id, gig_id, reviewer_id, 5)

    assert rating.order_id == order_id
    assert conn.events == ['begin', 'commit']
    assert 'INSERT INTO ratings' in conn.fetchrow.call_args.args[0]
    update, *args = conn.fetchval.call_args.args
    assert 'total_reviews = total_reviews + 1' in update
    assert '(average_rating * total_reviews + $2) / (total_reviews + 1)' in update
    assert args == [gig_id, 5]


@pytest.mark.asyncio
async def test_create_rating_rolls_back_without_gig():
    order_id, gig_id, reviewer_id = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
    conn = transactional_conn(fetchrow=rating_row(order_id, gig_id, reviewer_id), fetchval=None)
    store = Store(fake_pool(conn))

    with pytest.raises(ReferentialViolationError):
        await store.create_rating(order_id, gig_id, reviewer_id, 5)
    assert conn.events == ['begin', 'rollback']
