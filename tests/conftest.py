"""Shared fixtures: an in-memory store and a notifier that records toasts."""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio

from database.exceptions import DuplicateRecordError, ReferentialViolationError
from database.store import GIG_UPDATABLE, PROFILE_UPDATABLE
from gigs import GigManager
from orders import OrderManager
from orders.cache import QueryCache
from orders.models import Gig, GigCategory, Order, OrderStatus, Profile, Rating
from profiles import ProfileManager


class MemoryStore:
    """Dict-backed stand-in for ``database.store.Store``.

    Mirrors the constraints the schema enforces: gig owners and order
    parties must have profiles, a gig with orders cannot be deleted, one
    rating per order, unique usernames.

    ``before_status_update`` is an optional async hook run just before the
    conditional status update, used to simulate a concurrent writer.
    ``create_rating`` writes the rating and the gig aggregate together;
    setting ``fail_rating_aggregate`` makes it raise before either lands.
    """

    def __init__(self):
        self.profiles: Dict[uuid.UUID, Profile] = {}
        self.gigs: Dict[uuid.UUID, Gig] = {}
        self.orders: Dict[uuid.UUID, Order] = {}
        self.ratings: Dict[uuid.UUID, Rating] = {}
        self.before_status_update = None
        self.fail_rating_aggregate: Optional[Exception] = None
        self.calls: List[str] = []
        self._tick = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def _now(self) -> datetime:
        self._tick += timedelta(seconds=1)
        return self._tick

    async def ping(self) -> bool:
        return True

    # Profiles

    def add_profile(self, username: str) -> Profile:
        profile = Profile(id=uuid.uuid4(), username=username, created_at=self._now())
        self.profiles[profile.id] = profile
        return profile

    async def get_profile(self, user_id):
        self.calls.append('get_profile')
        return self.profiles.get(user_id)

    async def update_profile(self, user_id, changes: Dict[str, Any]) -> Optional[Profile]:
        profile = self.profiles.get(user_id)
        if profile is None:
            return None
        fields = {k: v for k, v in changes.items() if k in PROFILE_UPDATABLE}
        username = fields.get('username')
        if username and any(p.username == username and p.id != user_id for p in self.profiles.values()):
            raise DuplicateRecordError('profiles_username_key', f"duplicate username {username}")
        updated = profile.model_copy(update={**fields, 'updated_at': self._now()})
        self.profiles[user_id] = updated
        return updated

    # Gigs

    async def get_gig(self, gig_id):
        self.calls.append('get_gig')
        return self.gigs.get(gig_id)

    async def list_gigs(self, category=None, search=None, owner_id=None, active_only=True) -> List[Gig]:
        self.calls.append('list_gigs')
        gigs = list(self.gigs.values())
        if active_only:
            gigs = [g for g in gigs if g.is_active]
        if owner_id is not None:
            gigs = [g for g in gigs if g.user_id == owner_id]
        if category:
            gigs = [g for g in gigs if g.category.value == category]
        if search:
            term = search.lower()
            gigs = [g for g in gigs if term in g.title.lower() or term in g.description.lower()]
        return sorted(gigs, key=lambda g: g.created_at, reverse=True)

    async def create_gig(self, owner_id, data) -> Gig:
        if owner_id not in self.profiles:
            raise ReferentialViolationError('gigs_user_id_fkey', 'owner has no profile')
        gig = Gig(id=uuid.uuid4(), user_id=owner_id, created_at=self._now(), **data.model_dump())
        self.gigs[gig.id] = gig
        return gig

    async def update_gig(self, gig_id, changes: Dict[str, Any]) -> Optional[Gig]:
        gig = self.gigs.get(gig_id)
        if gig is None:
            return None
        fields = {k: v for k, v in changes.items() if k in GIG_UPDATABLE}
        updated = Gig(**{**gig.model_dump(), **fields, 'updated_at': self._now()})
        self.gigs[gig_id] = updated
        return updated

    async def delete_gig(self, gig_id) -> bool:
        if any(o.gig_id == gig_id for o in self.orders.values()):
            raise ReferentialViolationError('orders_gig_id_fkey', 'gig has orders')
        return self.gigs.pop(gig_id, None) is not None

    # Orders

    async def create_order(self, buyer_id, gig_id, seller_id, amount) -> Order:
        if buyer_id not in self.profiles or gig_id not in self.gigs:
            raise ReferentialViolationError('orders_buyer_id_fkey', 'missing buyer or gig')
        now = self._now()
        order = Order(
            id=uuid.uuid4(),
            buyer_id=buyer_id,
            seller_id=seller_id,
            gig_id=gig_id,
            status=OrderStatus.PENDING,
            amount=amount,
            created_at=now,
            updated_at=now
        )
        self.orders[order.id] = order
        return order

    async def get_order(self, order_id):
        self.calls.append('get_order')
        return self.orders.get(order_id)

    async def list_orders(self, role, user_id) -> List[Order]:
        self.calls.append('list_orders')
        column = 'buyer_id' if role == 'buyer' else 'seller_id'
        orders = [o for o in self.orders.values() if getattr(o, column) == user_id]
        return sorted(orders, key=lambda o: o.created_at, reverse=True)

    async def update_order_status(self, order_id, new_status, expected_status) -> Optional[Order]:
        self.calls.append('update_order_status')
        if self.before_status_update is not None:
            hook, self.before_status_update = self.before_status_update, None
            await hook()
        order = self.orders.get(order_id)
        if order is None or order.status != OrderStatus(expected_status):
            return None
        updated = order.model_copy(update={'status': OrderStatus(new_status), 'updated_at': self._now()})
        self.orders[order_id] = updated
        return updated

    def set_status(self, order_id, status: OrderStatus) -> Order:
        """Write a status directly, as another process would."""
        order = self.orders[order_id].model_copy(update={'status': status})
        self.orders[order_id] = order
        return order

    # Ratings

    async def create_rating(self, order_id, gig_id, reviewer_id, rating, comment=None) -> Rating:
        if any(r.order_id == order_id for r in self.ratings.values()):
            raise DuplicateRecordError('ratings_order_id_key', 'order already rated')
        if self.fail_rating_aggregate is not None:
            raise self.fail_rating_aggregate
        gig = self.gigs.get(gig_id)
        if gig is None:
            raise ReferentialViolationError('ratings_gig_id_fkey', 'gig not found')
        created = Rating(
            id=uuid.uuid4(),
            order_id=order_id,
            gig_id=gig_id,
            reviewer_id=reviewer_id,
            rating=rating,
            comment=comment,
            created_at=self._now()
        )
        total = gig.total_reviews + 1
        average = (gig.average_rating * gig.total_reviews + rating) / total
        self.gigs[gig_id] = gig.model_copy(update={'average_rating': average, 'total_reviews': total})
        self.ratings[created.id] = created
        return created

    async def get_rating_for_order(self, order_id):
        return next((r for r in self.ratings.values() if r.order_id == order_id), None)

    async def list_ratings(self, gig_id) -> List[Rating]:
        self.calls.append('list_ratings')
        ratings = [r for r in self.ratings.values() if r.gig_id == gig_id]
        return sorted(ratings, key=lambda r: r.created_at, reverse=True)


class RecordingNotifier:
    """Collects toasts as (user_id, severity, title, detail) tuples."""

    def __init__(self, fail: bool = False):
        self.sent: List[tuple] = []
        self.fail = fail

    async def notify_user(self, user_id, severity, title, detail):
        if self.fail:
            raise ConnectionError("notification surface unavailable")
        self.sent.append((user_id, severity, title, detail))

    def titles_for(self, user_id) -> List[str]:
        return [title for uid, _, title, _ in self.sent if uid == user_id]


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def failing_notifier():
    return RecordingNotifier(fail=True)


@pytest.fixture
def cache():
    return QueryCache()


@pytest.fixture
def buyer(store):
    return store.add_profile("buyer_one")


@pytest.fixture
def seller(store):
    return store.add_profile("seller_one")


@pytest.fixture
def outsider(store):
    return store.add_profile("someone_else")


@pytest.fixture
def order_manager(store, cache, notifier):
    return OrderManager(store, cache, notifier)


@pytest.fixture
def gig_manager(store, cache, notifier):
    return GigManager(store, cache, notifier)


@pytest.fixture
def profile_manager(store, cache, notifier):
    return ProfileManager(store, cache, notifier)


@pytest_asyncio.fixture
async def gig(store, seller) -> Gig:
    """An active gig owned by the seller."""
    created = Gig(
        id=uuid.uuid4(),
        user_id=seller.id,
        title="Resume polish",
        description="I will proofread and format your resume",
        price=25,
        delivery_days=3,
        category=GigCategory.RESUME_DESIGN,
        average_rating=4.0,
        total_reviews=3,
        created_at=store._now()
    )
    store.gigs[created.id] = created
    return created


@pytest_asyncio.fixture
async def pending_order(order_manager, buyer, gig) -> Order:
    return await order_manager.create_order(buyer.id, gig.id)


@pytest_asyncio.fixture
async def paid_order(order_manager, pending_order) -> Order:
    return await order_manager.mark_paid(pending_order.id)


@pytest_asyncio.fixture
async def delivered_order(order_manager, paid_order, seller) -> Order:
    return await order_manager.mark_delivered(paid_order.id, seller.id)
