"""Gig API endpoints."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status

from auth import get_current_user
from orders import MarketError
from orders.models import Gig, GigCreate, GigUpdate, Rating
from ..dependencies import Services, get_services
from ..errors import http_error

router = APIRouter(
    prefix="/gigs",
    tags=["Gigs"]
)


@router.get("", response_model=List[Gig])
async def list_gigs(
    category: Optional[str] = Query(None, description="Category, or 'all'"),
    search: Optional[str] = Query(None, description="Search title and description"),
    services: Services = Depends(get_services)
):
    """Browse active gigs, newest first."""
    try:
        return await services.gigs.list_gigs(category=category, search=search)
    except MarketError as e:
        raise http_error(e)


# Registered before /{gig_id} so "mine" is not read as an id
@router.get("/mine", response_model=List[Gig])
async def list_my_gigs(
    user_id: UUID = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    try:
        return await services.gigs.list_my_gigs(user_id)
    except MarketError as e:
        raise http_error(e)


@router.get("/{gig_id}", response_model=Gig)
async def get_gig(gig_id: str, services: Services = Depends(get_services)):
    try:
        return await services.gigs.get_gig(gig_id)
    except MarketError as e:
        raise http_error(e)


@router.get("/{gig_id}/ratings", response_model=List[Rating])
async def list_gig_ratings(gig_id: str, services: Services = Depends(get_services)):
    """Ratings left on a gig, newest first."""
    try:
        return await services.gigs.list_ratings(gig_id)
    except MarketError as e:
        raise http_error(e)


@router.post("", response_model=Gig, status_code=status.HTTP_201_CREATED)
async def create_gig(
    data: GigCreate,
    user_id: UUID = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    try:
        return await services.gigs.create_gig(user_id, data)
    except MarketError as e:
        raise http_error(e)


@router.patch("/{gig_id}", response_model=Gig)
async def update_gig(
    gig_id: str,
    changes: GigUpdate,
    user_id: UUID = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    """Owner edits a gig. Set ``is_active`` to false to stop taking orders."""
    try:
        return await services.gigs.update_gig(gig_id, user_id, changes)
    except MarketError as e:
        raise http_error(e)


@router.delete("/{gig_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_gig(
    gig_id: str,
    user_id: UUID = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    try:
        await services.gigs.delete_gig(gig_id, user_id)
    except MarketError as e:
        raise http_error(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
