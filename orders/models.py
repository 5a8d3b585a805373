from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class OrderStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class GigCategory(str, Enum):
    GRAPHICS = "graphics"
    STUDY_GUIDES = "study_guides"
    PROOFREADING = "proofreading"
    PRESENTATIONS = "presentations"
    TUTORING = "tutoring"
    RESUME_DESIGN = "resume_design"
    BRAINSTORMING = "brainstorming"
    OTHER = "other"


class Severity(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class Role(str, Enum):
    BUYER = "buyer"
    SELLER = "seller"
    SYSTEM = "system"


DELIVERY_DAYS_OPTIONS = (1, 2, 3, 5, 7)


class Profile(BaseModel):
    id: UUID
    username: str
    bio: Optional[str] = None
    avatar_url: Optional[str] = None
    total_earnings: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Gig(BaseModel):
    id: UUID
    user_id: UUID
    title: str
    description: str
    price: int
    delivery_days: int
    category: GigCategory
    image_url: Optional[str] = None
    average_rating: float = Field(default=0.0, ge=0)
    total_reviews: int = Field(default=0, ge=0)
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Order(BaseModel):
    id: UUID
    buyer_id: UUID
    seller_id: UUID
    gig_id: UUID
    status: OrderStatus
    amount: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Rating(BaseModel):
    id: UUID
    order_id: UUID
    gig_id: UUID
    reviewer_id: UUID
    rating: int
    comment: Optional[str] = None
    created_at: Optional[datetime] = None


class OrderChange(BaseModel):
    """One row event from the order change feed.

    ``old`` is None for inserts. Delivery is at-least-once, so the same
    change may be seen more than once.
    """
    op: str
    old: Optional[Order] = None
    new: Order


class GigCreate(BaseModel):
    title: str = Field(min_length=1, max_length=100)
    description: str = Field(min_length=1, max_length=2000)
    price: int = Field(gt=0)
    delivery_days: int
    category: GigCategory
    image_url: Optional[str] = None


class GigUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, min_length=1, max_length=2000)
    price: Optional[int] = Field(default=None, gt=0)
    delivery_days: Optional[int] = None
    category: Optional[GigCategory] = None
    image_url: Optional[str] = None
    is_active: Optional[bool] = None


class ProfileUpdate(BaseModel):
    username: Optional[str] = Field(default=None, pattern=r'^[A-Za-z0-9_]{3,30}$')
    bio: Optional[str] = Field(default=None, max_length=500)
    avatar_url: Optional[str] = None


# NOT NULL columns an edit may change but never clear
GIG_REQUIRED_FIELDS = frozenset({'title', 'description', 'price', 'delivery_days', 'category', 'is_active'})
PROFILE_REQUIRED_FIELDS = frozenset({'username'})
