# classifieds/schemas.py
from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError
from .models import PRICE_MAX


class ListingStatus(str, Enum):
    active = "active"
    sold = "sold"
    expired = "expired"


class SortKey(str, Enum):
    relevance = "relevance"
    newest = "newest"
    price_asc = "price_asc"
    price_desc = "price_desc"


class AuthenticatedUser(BaseModel):
    id: int
    display_name: str


class UserCreate(BaseModel):
    class Config:
        str_strip_whitespace = True

    display_name: str = Field(..., min_length=1, max_length=120)
    email: str = Field(..., min_length=3, max_length=320)
    password_hash: str = Field(..., min_length=1)
    phone: Optional[str] = Field(None, max_length=40)
    location: Optional[str] = Field(None, max_length=255)
    avatar_ref: Optional[str] = None


class UserUpdate(BaseModel):
    class Config:
        str_strip_whitespace = True

    display_name: Optional[str] = Field(None, min_length=1, max_length=120)
    email: Optional[str] = Field(None, min_length=3, max_length=320)
    phone: Optional[str] = Field(None, max_length=40)
    location: Optional[str] = Field(None, max_length=255)
    avatar_ref: Optional[str] = None


class UserOut(BaseModel):
    id: int
    display_name: str
    email: str
    phone: Optional[str] = None
    location: Optional[str] = None
    avatar_ref: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CategoryCreate(BaseModel):
    class Config:
        str_strip_whitespace = True

    slug: str = Field(..., min_length=1, max_length=140)
    name: str = Field(..., min_length=1, max_length=120)
    icon_ref: Optional[str] = None
    parent_id: Optional[int] = None


class CategoryOut(BaseModel):
    id: int
    slug: str
    name: str
    icon_ref: Optional[str] = None
    parent_id: Optional[int] = None

    class Config:
        from_attributes = True


class CategoryNode(CategoryOut):
    children: List["CategoryNode"] = Field(default_factory=list)


class ListingCreate(BaseModel):
    class Config:
        str_strip_whitespace = True

    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field("", max_length=5000)
    price: float = Field(..., ge=0, le=PRICE_MAX, allow_inf_nan=False)
    category_id: int
    media: List[str] = Field(default_factory=list)
    location: str = Field("", max_length=255)
    featured: bool = False


class ListingUpdate(BaseModel):
    class Config:
        str_strip_whitespace = True

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    price: Optional[float] = Field(None, ge=0, le=PRICE_MAX, allow_inf_nan=False)
    category_id: Optional[int] = None
    media: Optional[List[str]] = None
    location: Optional[str] = Field(None, max_length=255)


class CategoryMove(BaseModel):
    parent_id: Optional[int]


class StatusChange(BaseModel):
    status: ListingStatus


class ListingOut(BaseModel):
    id: int
    title: str
    description: str
    price: float
    category_id: int
    media: List[str]
    location: str
    seller_id: int
    status: ListingStatus
    featured: bool
    views: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ListingFilter(BaseModel):
    q: Optional[str] = None
    category_id: Optional[int] = None
    location: Optional[str] = None
    price_min: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    price_max: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    status: ListingStatus = ListingStatus.active
    sort: SortKey = SortKey.relevance
    page: int = Field(1, ge=1)
    page_size: int = Field(20, ge=1)


class ListingPage(BaseModel):
    items: List[ListingOut]
    total: int
    page: int
    page_size: int


class MessageCreate(BaseModel):
    listing_id: int
    receiver_id: int
    content: str


class MessageOut(BaseModel):
    id: int
    listing_id: int
    sender_id: int
    receiver_id: int
    content: str
    read: bool
    created_at: datetime

    class Config:
        from_attributes = True


class ConversationSummary(BaseModel):
    listing_id: int
    listing_title: Optional[str] = None
    counterpart_id: int
    counterpart_name: Optional[str] = None
    last_message: str
    last_message_at: datetime
    unread_count: int


class ToggleResult(BaseModel):
    added: bool


class Health(BaseModel):
    status: Literal["ok"] = "ok"


CategoryNode.model_rebuild()


def describe_errors(errors) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or 'payload'}: {err['msg']}"
        for err in errors
    )


def coerce(model, payload):
    """Validate `payload` into `model`, raising the core ValidationError on failure."""
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError(describe_errors(e.errors())) from None
