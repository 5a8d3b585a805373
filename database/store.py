"""PostgreSQL-backed persistence service for gigs, orders, ratings and profiles.

Every mutating query uses ``RETURNING *`` so callers always get the committed
row back instead of a locally guessed value.
"""
import functools
import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from asyncpg.exceptions import (
    ForeignKeyViolationError,
    PostgresError,
    UniqueViolationError
)

from orders.models import Gig, GigCreate, Order, OrderStatus, Profile, Rating

from . import get_pool
from .exceptions import DatabaseError, DuplicateRecordError, ReferentialViolationError

logger = logging.getLogger(__name__)

GIG_UPDATABLE = ('title', 'description', 'price', 'delivery_days', 'category', 'image_url', 'is_active')
PROFILE_UPDATABLE = ('username', 'bio', 'avatar_url')


def translate_errors(func):
    """Wrap asyncpg errors in the persistence layer's exception types."""
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except UniqueViolationError as e:
            raise DuplicateRecordError(e.constraint_name or 'unique constraint', str(e))
        except ForeignKeyViolationError as e:
            raise ReferentialViolationError(e.constraint_name or 'foreign key', str(e))
        except PostgresError as e:
            logger.error(f"Database error in {func.__name__}: {e}")
            raise DatabaseError(f"{func.__name__} failed: {e}")
    return wrapper


def _escape_like(term: str) -> str:
    return term.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')


class Store:
    """Persistence service on an asyncpg pool."""

    def __init__(self, pool=None) -> None:
        """Initialize the store.

        Args:
            pool: Optional database connection pool. If not provided, will get from database module.
        """
        self.pool = pool

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    @translate_errors
    async def ping(self) -> bool:
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            return await conn.fetchval('SELECT 1') == 1

    # Gigs

    @translate_errors
    async def get_gig(self, gig_id: UUID) -> Optional[Gig]:
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow('SELECT * FROM gigs WHERE id = $1', gig_id)
            return Gig(**dict(row)) if row else None

    @translate_errors
    async def list_gigs(
        self,
        category: Optional[str] = None,
        search: Optional[str] = None,
        owner_id: Optional[UUID] = None,
        active_only: bool = True
    ) -> List[Gig]:
        """List gigs, newest first.

        Args:
            category: Optional category to filter by
            search: Optional case-insensitive term matched against title and description
            owner_id: Optional owner to filter by
            active_only: Only return active gigs
        """
        await self.ensure_pool()

        query = 'SELECT * FROM gigs WHERE true'
        params: List[Any] = []

        if active_only:
            query += ' AND is_active'
        if owner_id is not None:
            params.append(owner_id)
            query += f' AND user_id = ${len(params)}'
        if category:
            params.append(category)
            query += f' AND category = ${len(params)}'
        if search:
            params.append(f'%{_escape_like(search)}%')
            query += f' AND (title ILIKE ${len(params)} OR description ILIKE ${len(params)})'

        query += ' ORDER BY created_at DESC'

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query, *params)
            return [Gig(**dict(row)) for row in rows]

    @translate_errors
    async def create_gig(self, owner_id: UUID, data: GigCreate) -> Gig:
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                '''
                INSERT INTO gigs (
                    user_id, title, description, price,
                    delivery_days, category, image_url
                ) VALUES ($1, $2, $3, $4, $5, $6, $7)
                RETURNING *
                ''',
                owner_id,
                data.title,
                data.description,
                data.price,
                data.delivery_days,
                data.category.value,
                data.image_url
            )
            return Gig(**dict(row))

    @translate_errors
    async def update_gig(self, gig_id: UUID, changes: Dict[str, Any]) -> Optional[Gig]:
        """Update owner-editable gig fields. Unknown fields are ignored."""
        await self.ensure_pool()

        fields = {k: v for k, v in changes.items() if k in GIG_UPDATABLE}
        if not fields:
            return await self.get_gig(gig_id)

        params: List[Any] = [gig_id]
        assignments = []
        for name, value in fields.items():
            params.append(getattr(value, 'value', value))
            assignments.append(f'{name} = ${len(params)}')

        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"UPDATE gigs SET {', '.join(assignments)} WHERE id = $1 RETURNING *",
                *params
            )
            return Gig(**dict(row)) if row else None

    @translate_errors
    async def delete_gig(self, gig_id: UUID) -> bool:
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            deleted = await conn.fetchval('DELETE FROM gigs WHERE id = $1 RETURNING id', gig_id)
            return deleted is not None

    # Orders

    @translate_errors
    async def create_order(self, buyer_id: UUID, gig_id: UUID, seller_id: UUID, amount: int) -> Order:
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                '''
                INSERT INTO orders (buyer_id, gig_id, seller_id, amount, status)
                VALUES ($1, $2, $3, $4, $5)
                RETURNING *
                ''',
                buyer_id,
                gig_id,
                seller_id,
                amount,
                OrderStatus.PENDING.value
            )
            return Order(**dict(row))

    @translate_errors
    async def get_order(self, order_id: UUID) -> Optional[Order]:
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow('SELECT * FROM orders WHERE id = $1', order_id)
            return Order(**dict(row)) if row else None

    @translate_errors
    async def list_orders(self, role: str, user_id: UUID) -> List[Order]:
        """List orders where the user is the buyer or the seller, newest first."""
        column = 'buyer_id' if role == 'buyer' else 'seller_id'
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f'SELECT * FROM orders WHERE {column} = $1 ORDER BY created_at DESC',
                user_id
            )
            return [Order(**dict(row)) for row in rows]

    @translate_errors
    async def update_order_status(
        self,
        order_id: UUID,
        new_status: OrderStatus,
        expected_status: OrderStatus
    ) -> Optional[Order]:
        """Change status only if the row still holds ``expected_status``.

        Returns:
            The committed row, or None if no row matched
        """
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                '''
                UPDATE orders
                SET status = $2
                WHERE id = $1 AND status = $3
                RETURNING *
                ''',
                order_id,
                OrderStatus(new_status).value,
                OrderStatus(expected_status).value
            )
            return Order(**dict(row)) if row else None

    # Ratings

    @translate_errors
    async def create_rating(
        self,
        order_id: UUID,
        gig_id: UUID,
        reviewer_id: UUID,
        rating: int,
        comment: Optional[str] = None
    ) -> Rating:
        """Insert a rating and fold it into the gig's running mean.

        Both writes share one transaction, so either the rating and the new
        aggregate are committed together or neither is.

        Raises:
            DuplicateRecordError: If the order already has a rating
            ReferentialViolationError: If the gig no longer exists
        """
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    '''
                    INSERT INTO ratings (order_id, gig_id, reviewer_id, rating, comment)
                    VALUES ($1, $2, $3, $4, $5)
                    RETURNING *
                    ''',
                    order_id,
                    gig_id,
                    reviewer_id,
                    rating,
                    comment
                )

                # Row lock on the gig serializes concurrent folds
                folded = await conn.fetchval(
                    '''
                    UPDATE gigs
                    SET average_rating = (average_rating * total_reviews + $2) / (total_reviews + 1),
                        total_reviews = total_reviews + 1
                    WHERE id = $1
                    RETURNING total_reviews
                    ''',
                    gig_id,
                    rating
                )
                if folded is None:
                    raise ReferentialViolationError('ratings_gig_id_fkey', f"Gig {gig_id} not found")

            return Rating(**dict(row))

    @translate_errors
    async def get_rating_for_order(self, order_id: UUID) -> Optional[Rating]:
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow('SELECT * FROM ratings WHERE order_id = $1', order_id)
            return Rating(**dict(row)) if row else None

    @translate_errors
    async def list_ratings(self, gig_id: UUID) -> List[Rating]:
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                'SELECT * FROM ratings WHERE gig_id = $1 ORDER BY created_at DESC',
                gig_id
            )
            return [Rating(**dict(row)) for row in rows]

    # Profiles

    @translate_errors
    async def get_profile(self, user_id: UUID) -> Optional[Profile]:
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow('SELECT * FROM profiles WHERE id = $1', user_id)
            return Profile(**dict(row)) if row else None

    @translate_errors
    async def update_profile(self, user_id: UUID, changes: Dict[str, Any]) -> Optional[Profile]:
        await self.ensure_pool()

        fields = {k: v for k, v in changes.items() if k in PROFILE_UPDATABLE}
        if not fields:
            return await self.get_profile(user_id)

        params: List[Any] = [user_id]
        assignments = []
        for name, value in fields.items():
            params.append(value)
            assignments.append(f'{name} = ${len(params)}')

        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f'''
                UPDATE profiles
                SET {', '.join(assignments)}, updated_at = now()
                WHERE id = $1
                RETURNING *
                ''',
                *params
            )
            return Profile(**dict(row)) if row else None


__all__ = ['Store', 'translate_errors', 'GIG_UPDATABLE', 'PROFILE_UPDATABLE']
