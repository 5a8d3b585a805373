"""Gigs module for managing service listings.

Handles gig creation, owner edits and deletion, browsing and search, and the
ratings list shown on a gig page. Reads go through the query cache; every
write invalidates the queries it could affect.
"""
import logging
from typing import Any, Dict, List, Optional, Union
from uuid import UUID

from database.exceptions import ReferentialViolationError
from orders.actions import as_uuid, notify, reject_cleared, user_action
from orders.cache import QueryCache, gig_keys
from orders.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    UnauthenticatedError,
    ValidationFailedError
)
from orders.models import (
    DELIVERY_DAYS_OPTIONS,
    GIG_REQUIRED_FIELDS,
    Gig,
    GigCategory,
    GigCreate,
    GigUpdate,
    Rating,
    Severity
)

logger = logging.getLogger(__name__)

ALL_CATEGORIES = 'all'


def _check_delivery_days(days: Optional[int]) -> None:
    if days is not None and days not in DELIVERY_DAYS_OPTIONS:
        options = ', '.join(str(d) for d in DELIVERY_DAYS_OPTIONS)
        raise ValidationFailedError(f"Delivery time must be one of {options} days")


class GigManager:
    """Manages gig operations."""

    def __init__(self, store, cache: Optional[QueryCache] = None, notifier=None) -> None:
        self.store = store
        self.cache = cache if cache is not None else QueryCache()
        self.notifier = notifier

    async def _require_owned_gig(self, gig_id, actor_id: UUID) -> Gig:
        gig = await self.store.get_gig(as_uuid(gig_id))
        if gig is None:
            raise NotFoundError(f"Gig {gig_id} not found")
        if gig.user_id != actor_id:
            raise ForbiddenError("Only the owner can change this gig")
        return gig

    async def create_gig(self, owner_id, data: GigCreate) -> Gig:
        """Create a gig owned by ``owner_id``."""
        owner_id = as_uuid(owner_id)
        async with user_action(self.notifier, owner_id, 'Gig creation'):
            if owner_id is None:
                raise UnauthenticatedError("Not authenticated")
            _check_delivery_days(data.delivery_days)

            try:
                gig = await self.store.create_gig(owner_id, data)
            except ReferentialViolationError:
                raise NotFoundError("Create your profile before listing a gig")

            self.cache.invalidate(gig_keys(gig))
            logger.info(f"Gig {gig.id} created by {owner_id}")
            await notify(self.notifier, owner_id, Severity.SUCCESS, 'Success!', 'Your gig has been created.')
            return gig

    async def update_gig(self, gig_id, actor_id, changes: GigUpdate) -> Gig:
        """Apply owner edits to a gig."""
        actor_id = as_uuid(actor_id)
        async with user_action(self.notifier, actor_id, 'Gig update'):
            if actor_id is None:
                raise UnauthenticatedError("Not authenticated")
            fields: Dict[str, Any] = changes.model_dump(exclude_unset=True)
            reject_cleared(fields, GIG_REQUIRED_FIELDS)
            _check_delivery_days(changes.delivery_days)

            gig = await self._require_owned_gig(gig_id, actor_id)
            updated = await self.store.update_gig(gig.id, fields)
            if updated is None:
                raise NotFoundError(f"Gig {gig_id} not found")

            self.cache.invalidate(gig_keys(updated))
            logger.info(f"Gig {gig.id} updated: {sorted(fields)}")
            await notify(self.notifier, actor_id, Severity.SUCCESS, 'Success!', 'Your gig has been updated.')
            return updated

    async def delete_gig(self, gig_id, actor_id) -> None:
        """Delete a gig. Gigs that have orders cannot be deleted."""
        actor_id = as_uuid(actor_id)
        async with user_action(self.notifier, actor_id, 'Gig deletion'):
            if actor_id is None:
                raise UnauthenticatedError("Not authenticated")

            gig = await self._require_owned_gig(gig_id, actor_id)
            try:
                deleted = await self.store.delete_gig(gig.id)
            except ReferentialViolationError:
                raise ConflictError("This gig has orders and cannot be deleted; deactivate it instead")
            if not deleted:
                raise NotFoundError(f"Gig {gig_id} not found")

            self.cache.invalidate(gig_keys(gig))
            logger.info(f"Gig {gig.id} deleted by {actor_id}")
            await notify(self.notifier, actor_id, Severity.SUCCESS, 'Success!', 'Your gig has been deleted.')

    async def list_gigs(self, category: Optional[Union[GigCategory, str]] = None, search: Optional[str] = None) -> List[Gig]:
        """List active gigs, newest first.

        Args:
            category: Category to filter by; ``"all"`` or None means every category
            search: Case-insensitive term matched against title and description
        """
        if category == ALL_CATEGORIES or category == '':
            category = None
        if category is not None:
            try:
                category = GigCategory(category).value
            except ValueError:
                raise ValidationFailedError(f"Unknown category: {category}")
        search = (search or '').strip() or None

        return await self.cache.get_or_load(
            ('gigs', category, search),
            lambda: self.store.list_gigs(category=category, search=search)
        )

    async def get_gig(self, gig_id) -> Gig:
        gig_id = as_uuid(gig_id)

        async def load():
            gig = await self.store.get_gig(gig_id)
            if gig is None:
                raise NotFoundError(f"Gig {gig_id} not found")
            return gig

        return await self.cache.get_or_load(('gig', gig_id), load)

    async def list_my_gigs(self, owner_id) -> List[Gig]:
        """List every gig the user owns, active or not."""
        owner_id = as_uuid(owner_id)
        if owner_id is None:
            raise UnauthenticatedError("Not authenticated")
        return await self.cache.get_or_load(
            ('my-gigs', owner_id),
            lambda: self.store.list_gigs(owner_id=owner_id, active_only=False)
        )

    async def list_ratings(self, gig_id) -> List[Rating]:
        gig_id = as_uuid(gig_id)
        return await self.cache.get_or_load(
            ('ratings', gig_id),
            lambda: self.store.list_ratings(gig_id)
        )


__all__ = ['GigManager', 'ALL_CATEGORIES']
