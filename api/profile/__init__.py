"""Profile API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends

from auth import get_current_user
from orders import MarketError
from orders.models import Profile, ProfileUpdate
from ..dependencies import Services, get_services
from ..errors import http_error

router = APIRouter(
    prefix="/profile",
    tags=["Profile"]
)


@router.get("/me", response_model=Profile)
async def get_my_profile(
    user_id: UUID = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    try:
        return await services.profiles.get_profile(user_id)
    except MarketError as e:
        raise http_error(e)


@router.get("/{user_id}", response_model=Profile)
async def get_profile(user_id: str, services: Services = Depends(get_services)):
    """Public profile of any user."""
    try:
        return await services.profiles.get_profile(user_id)
    except MarketError as e:
        raise http_error(e)


@router.patch("", response_model=Profile)
async def update_profile(
    changes: ProfileUpdate,
    user_id: UUID = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    """Update the caller's username, bio or avatar."""
    try:
        return await services.profiles.update_profile(user_id, changes)
    except MarketError as e:
        raise http_error(e)
