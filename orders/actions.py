"""Acting-user feedback and input checks shared by the order, gig and profile managers."""
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional
from uuid import UUID

from database.exceptions import DatabaseError

from .errors import MarketError, NotFoundError, ValidationFailedError
from .models import Severity

logger = logging.getLogger(__name__)

GENERIC_FAILURE = 'Something went wrong. Please try again.'


def as_uuid(value) -> Optional[UUID]:
    """Coerce an identifier to UUID. Malformed ids cannot name any record."""
    if value is None or isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise NotFoundError(f"Invalid identifier: {value}")


def reject_cleared(fields: Dict[str, Any], required) -> None:
    """Refuse edits that set a required field to null."""
    cleared = sorted(name for name in required if name in fields and fields[name] is None)
    if cleared:
        raise ValidationFailedError(f"Cannot clear required field(s): {', '.join(cleared)}")


async def notify(notifier, user_id: Optional[UUID], severity: Severity, title: str, detail: str) -> None:
    """Send a toast to one user. Failures are logged, never raised."""
    if notifier is None or user_id is None:
        return
    try:
        await notifier.notify_user(user_id, severity, title, detail)
    except Exception as e:
        logger.error(f"Failed to notify user {user_id}: {e}")


@asynccontextmanager
async def user_action(notifier, actor_id: Optional[UUID], action: str):
    """Report a failed user action to the acting user, then re-raise."""
    try:
        yield
    except MarketError as e:
        logger.warning(f"{action} rejected for {actor_id or 'system'}: {e}")
        await notify(notifier, actor_id, Severity.ERROR, 'Error', str(e))
        raise
    except DatabaseError as e:
        logger.error(f"{action} failed for {actor_id or 'system'}: {e}")
        await notify(notifier, actor_id, Severity.ERROR, 'Error', GENERIC_FAILURE)
        raise
