"""Orders module for managing the marketplace order lifecycle.

This module owns the order state machine:

    pending -> paid -> delivered
    pending | paid -> cancelled

It decides which party may cause each transition, guards rating submission,
and fires the side effects every mutation needs (cache invalidation and a
toast for the acting user). Buyer and seller notifications for transitions
observed on the change feed live in ``orders.notifications``.
"""
import logging
from typing import Dict, List, Optional, Set, Union
from uuid import UUID

from database.exceptions import DuplicateRecordError, ReferentialViolationError

from .actions import as_uuid, notify, user_action
from .cache import QueryCache, order_keys
from .errors import (
    MarketError,
    UnauthenticatedError,
    ForbiddenError,
    ForbiddenSelfOrder,
    InvalidTransitionError,
    InvalidRatingTransition,
    RatingForbiddenError,
    DuplicateRatingError,
    NotFoundError,
    ConflictError,
    ValidationFailedError
)
from .models import Order, OrderStatus, Rating, Role, Severity

logger = logging.getLogger(__name__)

TRANSITIONS: Dict[OrderStatus, Set[OrderStatus]] = {
    OrderStatus.PENDING: {OrderStatus.PAID, OrderStatus.CANCELLED},
    OrderStatus.PAID: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}

TERMINAL_STATES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})

# Target status -> roles allowed to cause it
TRANSITION_ROLES: Dict[OrderStatus, Set[Role]] = {
    OrderStatus.PAID: {Role.SYSTEM},
    OrderStatus.DELIVERED: {Role.SELLER},
    OrderStatus.CANCELLED: {Role.BUYER, Role.SELLER, Role.SYSTEM},
}

MIN_RATING = 1
MAX_RATING = 5
MAX_COMMENT_LENGTH = 1000

IdLike = Union[UUID, str]


def can_transition(from_status: OrderStatus, to_status: OrderStatus) -> bool:
    """Check if the state machine allows moving between two statuses."""
    return OrderStatus(to_status) in TRANSITIONS.get(OrderStatus(from_status), set())


class OrderManager:
    """Manages order creation, status transitions and ratings."""

    def __init__(self, store, cache: Optional[QueryCache] = None, notifier=None) -> None:
        """Initialize order manager.

        Args:
            store: Persistence service (see ``database.store.Store``)
            cache: Query cache invalidated after every mutation
            notifier: Object with an async ``notify_user(user_id, severity, title, detail)``
        """
        self.store = store
        self.cache = cache if cache is not None else QueryCache()
        self.notifier = notifier

    async def _notify(self, user_id: Optional[UUID], severity: Severity, title: str, detail: str) -> None:
        await notify(self.notifier, user_id, severity, title, detail)

    def _user_action(self, actor_id: Optional[UUID], action: str):
        return user_action(self.notifier, actor_id, action)

    def _invalidate(self, order: Order) -> None:
        self.cache.invalidate(order_keys(order))

    async def _require_order(self, order_id: IdLike) -> Order:
        order = await self.store.get_order(as_uuid(order_id))
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    @staticmethod
    def role_for(order: Order, actor_id: Optional[UUID]) -> Role:
        """Resolve the acting party for an order.

        A missing actor is the system (payment collaborator or timeout job).

        Raises:
            ForbiddenError: If the actor is neither buyer nor seller
        """
        if actor_id is None:
            return Role.SYSTEM
        if actor_id == order.buyer_id:
            return Role.BUYER
        if actor_id == order.seller_id:
            return Role.SELLER
        raise ForbiddenError("You are not a party to this order")

    async def create_order(self, buyer_id: Optional[IdLike], gig_id: IdLike) -> Order:
        """Place an order for a gig.

        The order starts ``pending`` and snapshots the gig's current price.

        Raises:
            UnauthenticatedError: If there is no buyer
            NotFoundError: If the gig does not exist
            ForbiddenSelfOrder: If the buyer owns the gig
            ForbiddenError: If the gig is inactive
        """
        buyer_id = as_uuid(buyer_id)
        async with self._user_action(buyer_id, 'Order creation'):
            if buyer_id is None:
                raise UnauthenticatedError("Not authenticated")

            gig = await self.store.get_gig(as_uuid(gig_id))
            if gig is None:
                raise NotFoundError(f"Gig {gig_id} not found")
            if gig.user_id == buyer_id:
                raise ForbiddenSelfOrder(gig.id)
            if not gig.is_active:
                raise ForbiddenError("This gig is not accepting orders")

            try:
                order = await self.store.create_order(buyer_id, gig.id, gig.user_id, gig.price)
            except ReferentialViolationError as e:
                raise NotFoundError(f"Cannot create order: {e}")

            self._invalidate(order)
            logger.info(f"Order {order.id} created by {buyer_id} for gig {gig.id} ({order.amount})")
            await self._notify(buyer_id, Severity.SUCCESS, 'Order placed!', 'Complete payment to start your order.')
            return order

    async def get_order(self, order_id: IdLike, actor_id: Optional[IdLike]) -> Order:
        """Get one order. Only its buyer or seller may read it."""
        actor_id = as_uuid(actor_id)
        if actor_id is None:
            raise UnauthenticatedError("Not authenticated")
        order = await self._require_order(order_id)
        self.role_for(order, actor_id)
        return order

    async def list_orders(self, user_id: Optional[IdLike], role: Union[Role, str]) -> List[Order]:
        """List a user's orders as buyer or as seller, newest first."""
        user_id = as_uuid(user_id)
        if user_id is None:
            raise UnauthenticatedError("Not authenticated")
        try:
            role = Role(role)
        except ValueError:
            raise ValidationFailedError(f"Unknown role: {role}")
        if role == Role.SYSTEM:
            raise ValidationFailedError("Role must be buyer or seller")

        return await self.cache.get_or_load(
            ('orders', role.value, user_id),
            lambda: self.store.list_orders(role.value, user_id)
        )

    async def transition(
        self,
        order_id: IdLike,
        to_status: Union[OrderStatus, str],
        actor_id: Optional[IdLike] = None
    ) -> Order:
        """Move an order to a new status.

        Moving an order into the status it already holds is a successful
        no-op, so retries and duplicate clicks are safe.

        Args:
            order_id: Order to change
            to_status: Target status
            actor_id: Acting user, or None for the system

        Returns:
            The committed order row

        Raises:
            NotFoundError: If the order does not exist
            ForbiddenError: If the actor may not cause this transition
            InvalidTransitionError: If the state machine forbids it
            ConflictError: If a concurrent write moved the order elsewhere
        """
        actor_id = as_uuid(actor_id)
        async with self._user_action(actor_id, 'Order status update'):
            try:
                to_status = OrderStatus(to_status)
            except ValueError:
                raise ValidationFailedError(f"Unknown order status: {to_status}")

            order = await self._require_order(order_id)
            role = self.role_for(order, actor_id)

            if to_status not in TRANSITION_ROLES:
                raise InvalidTransitionError(order.status, to_status)
            if role not in TRANSITION_ROLES[to_status]:
                raise ForbiddenError(f"The {role.value} cannot mark an order {to_status.value}")

            if order.status == to_status:
                logger.info(f"Order {order.id} already {to_status.value}; nothing to do")
                self._invalidate(order)
                return order

            if not can_transition(order.status, to_status):
                raise InvalidTransitionError(order.status, to_status)

            updated = await self.store.update_order_status(order.id, to_status, order.status)
            if updated is None:
                # Lost a race: see what the row holds now
                current = await self.store.get_order(order.id)
                if current is None:
                    raise NotFoundError(f"Order {order.id} not found")
                if current.status != to_status:
                    raise ConflictError(
                        f"Order {order.id} changed to {current.status.value} while updating"
                    )
                updated = current

            self._invalidate(updated)
            logger.info(
                f"Order {order.id}: {order.status.value} -> {updated.status.value} "
                f"by {role.value}"
            )
            await self._notify(actor_id, Severity.SUCCESS, 'Success!', 'Order status updated.')
            return updated

    async def mark_paid(self, order_id: IdLike) -> Order:
        """Record payment confirmed by the payment collaborator."""
        return await self.transition(order_id, OrderStatus.PAID)

    async def mark_delivered(self, order_id: IdLike, seller_id: Optional[IdLike]) -> Order:
        """Record delivery by the seller of a paid order."""
        seller_id = as_uuid(seller_id)
        async with self._user_action(seller_id, 'Order status update'):
            # No actor would mean the system, which never delivers
            if seller_id is None:
                raise UnauthenticatedError("Not authenticated")
        return await self.transition(order_id, OrderStatus.DELIVERED, seller_id)

    async def cancel_order(self, order_id: IdLike, actor_id: Optional[IdLike] = None) -> Order:
        """Cancel a pending or paid order. No actor means a system timeout."""
        return await self.transition(order_id, OrderStatus.CANCELLED, actor_id)

    async def submit_rating(
        self,
        order_id: IdLike,
        reviewer_id: Optional[IdLike],
        rating: int,
        comment: Optional[str] = None
    ) -> Rating:
        """Attach the buyer's rating to a delivered order.

        The gig's average rating is updated as a running mean in the same
        write as the rating itself.

        Raises:
            UnauthenticatedError: If there is no reviewer
            ValidationFailedError: If the score is outside 1..5
            RatingForbiddenError: If the reviewer is not the buyer
            InvalidRatingTransition: If the order is not delivered
            DuplicateRatingError: If the order already has a rating
        """
        reviewer_id = as_uuid(reviewer_id)
        async with self._user_action(reviewer_id, 'Rating'):
            if reviewer_id is None:
                raise UnauthenticatedError("Not authenticated")
            if isinstance(rating, bool) or not isinstance(rating, int) or not MIN_RATING <= rating <= MAX_RATING:
                raise ValidationFailedError(f"Rating must be a whole number from {MIN_RATING} to {MAX_RATING}")
            comment = (comment or '').strip() or None
            if comment and len(comment) > MAX_COMMENT_LENGTH:
                raise ValidationFailedError(f"Comment must be at most {MAX_COMMENT_LENGTH} characters")

            order = await self._require_order(order_id)
            if order.buyer_id != reviewer_id:
                raise RatingForbiddenError(order.status)
            if order.status != OrderStatus.DELIVERED:
                raise InvalidRatingTransition(order.status)
            if await self.store.get_rating_for_order(order.id) is not None:
                raise DuplicateRatingError(order.id)

            try:
                created = await self.store.create_rating(
                    order.id, order.gig_id, reviewer_id, rating, comment
                )
            except DuplicateRecordError:
                raise DuplicateRatingError(order.id)
            except ReferentialViolationError:
                raise NotFoundError(f"Gig {order.gig_id} not found")

            self._invalidate(order)
            logger.info(f"Order {order.id} rated {rating} by {reviewer_id}")
            await self._notify(reviewer_id, Severity.SUCCESS, 'Thanks!', 'Your rating has been submitted.')
            return created


__all__ = [
    'OrderManager',
    'TRANSITIONS',
    'TERMINAL_STATES',
    'TRANSITION_ROLES',
    'can_transition',
    'MarketError',
    'UnauthenticatedError',
    'ForbiddenError',
    'ForbiddenSelfOrder',
    'InvalidTransitionError',
    'InvalidRatingTransition',
    'RatingForbiddenError',
    'DuplicateRatingError',
    'NotFoundError',
    'ConflictError',
    'ValidationFailedError'
]
