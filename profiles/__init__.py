"""Profile self-service.

A profile is created by the auth provider when the account signs up. Users
can only read others' profiles; edits are limited to their own.
"""
import logging

from database.exceptions import DuplicateRecordError
from orders.actions import as_uuid, notify, reject_cleared, user_action
from orders.cache import QueryCache
from orders.errors import ConflictError, NotFoundError, UnauthenticatedError
from orders.models import PROFILE_REQUIRED_FIELDS, Profile, ProfileUpdate, Severity

logger = logging.getLogger(__name__)


class ProfileManager:
    """Manages profile reads and owner updates."""

    def __init__(self, store, cache: QueryCache = None, notifier=None) -> None:
        self.store = store
        self.cache = cache if cache is not None else QueryCache()
        self.notifier = notifier

    async def get_profile(self, user_id) -> Profile:
        user_id = as_uuid(user_id)

        async def load():
            profile = await self.store.get_profile(user_id)
            if profile is None:
                raise NotFoundError(f"Profile {user_id} not found")
            return profile

        return await self.cache.get_or_load(('profile', user_id), load)

    async def update_profile(self, user_id, changes: ProfileUpdate) -> Profile:
        """Update the acting user's own profile."""
        user_id = as_uuid(user_id)
        async with user_action(self.notifier, user_id, 'Profile update'):
            if user_id is None:
                raise UnauthenticatedError("Not authenticated")

            fields = changes.model_dump(exclude_unset=True)
            reject_cleared(fields, PROFILE_REQUIRED_FIELDS)
            try:
                profile = await self.store.update_profile(user_id, fields)
            except DuplicateRecordError:
                raise ConflictError(f"Username {changes.username} is already taken")
            if profile is None:
                raise NotFoundError(f"Profile {user_id} not found")

            self.cache.invalidate([('profile', user_id)])
            logger.info(f"Profile {user_id} updated: {sorted(fields)}")
            await notify(self.notifier, user_id, Severity.SUCCESS, 'Profile updated successfully!', '')
            return profile


__all__ = ['ProfileManager']
