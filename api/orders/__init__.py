"""Orders API endpoints."""

import hmac
import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from pydantic import BaseModel, Field

from auth import get_current_user
from orders import MarketError
from orders.models import Order, Rating, Role
from ..dependencies import Services, get_services
from ..errors import http_error

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/orders",
    tags=["Orders"]
)


class CreateOrderRequest(BaseModel):
    """Request model for placing an order."""
    gig_id: UUID


class RatingRequest(BaseModel):
    """Request model for rating a delivered order."""
    rating: int
    comment: Optional[str] = Field(default=None, max_length=1000)


class PaymentConfirmation(BaseModel):
    """Payload the payment collaborator sends once a charge settles."""
    reference: Optional[str] = None


@router.get("", response_model=List[Order])
async def list_orders(
    role: Role = Query(Role.BUYER, description="List orders as buyer or as seller"),
    user_id: UUID = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    """List the caller's orders, newest first."""
    try:
        return await services.orders.list_orders(user_id, role)
    except MarketError as e:
        raise http_error(e)


@router.get("/{order_id}", response_model=Order)
async def get_order(
    order_id: str,
    user_id: UUID = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    try:
        return await services.orders.get_order(order_id, user_id)
    except MarketError as e:
        raise http_error(e)


@router.post("", response_model=Order, status_code=status.HTTP_201_CREATED)
async def create_order(
    request: CreateOrderRequest,
    user_id: UUID = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    """Place an order for a gig at its current price."""
    try:
        return await services.orders.create_order(user_id, request.gig_id)
    except MarketError as e:
        raise http_error(e)


@router.post("/{order_id}/deliver", response_model=Order)
async def deliver_order(
    order_id: str,
    user_id: UUID = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    """Seller marks a paid order delivered."""
    try:
        return await services.orders.mark_delivered(order_id, user_id)
    except MarketError as e:
        raise http_error(e)


@router.post("/{order_id}/cancel", response_model=Order)
async def cancel_order(
    order_id: str,
    user_id: UUID = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    try:
        return await services.orders.cancel_order(order_id, user_id)
    except MarketError as e:
        raise http_error(e)


@router.post("/{order_id}/rating", response_model=Rating, status_code=status.HTTP_201_CREATED)
async def rate_order(
    order_id: str,
    request: RatingRequest,
    user_id: UUID = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    """Buyer rates a delivered order once."""
    try:
        return await services.orders.submit_rating(order_id, user_id, request.rating, request.comment)
    except MarketError as e:
        raise http_error(e)


@router.post("/{order_id}/payment-confirmed", response_model=Order)
async def payment_confirmed(
    order_id: str,
    confirmation: Optional[PaymentConfirmation] = None,
    x_webhook_secret: Optional[str] = Header(default=None),
    services: Services = Depends(get_services)
):
    """Webhook for the payment collaborator. Moves a pending order to paid."""
    expected = services.settings.get('payment_webhook_secret') or ''
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Payment confirmation is not configured"
        )
    if not x_webhook_secret or not hmac.compare_digest(x_webhook_secret, expected):
        logger.warning(f"Rejected payment confirmation for order {order_id}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook secret"
        )

    reference = confirmation.reference if confirmation else None
    logger.info(f"Payment confirmed for order {order_id} (reference: {reference})")
    try:
        return await services.orders.mark_paid(order_id)
    except MarketError as e:
        raise http_error(e)
