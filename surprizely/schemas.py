"""
Request body schemas.

Bodies arrive with camelCase keys (``imageUrl``, ``affiliateLink``); the models
expose snake_case attributes and ``model_dump()`` yields the keyword arguments
the entity store expects.
"""
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


def price_to_cents(value) -> int:
    """Convert a dollar amount (number or string such as "$1,299.99") to integer cents."""
    if isinstance(value, bool):
        raise ValueError("Price must be a number")
    raw = str(value).strip().replace(",", "").lstrip("$").strip()
    try:
        amount = Decimal(raw)
    except InvalidOperation:
        raise ValueError("Price must be a number")
    if not amount.is_finite():
        raise ValueError("Price must be a number")
    if amount < 0:
        raise ValueError("Price must not be negative")
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def check_password_policy(password: str) -> str:
    if len(password) < 7:
        raise ValueError("Password must be at least 7 characters")
    if not re.search(r"[A-Z]", password):
        raise ValueError("Password must contain at least one capital letter")
    return password


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)


class RegisterRequest(CamelModel):
    username: str = Field(..., min_length=1, max_length=64)
    password: str
    email: Optional[EmailStr] = None
    name: Optional[str] = Field(None, max_length=120)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v):
        return check_password_policy(v)


class LoginRequest(CamelModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class PasswordChangeRequest(CamelModel):
    password: str
    current_password: Optional[str] = None

    @field_validator("password")
    @classmethod
    def validate_password(cls, v):
        return check_password_policy(v)


class EmailChangeRequest(CamelModel):
    email: EmailStr


class ProductCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=300)
    description: str = Field("", max_length=5000)
    price: int = Field(..., description="Price in cents")
    image_url: str = ""
    affiliate_link: str = ""
    category: str = Field("Other", min_length=1)

    @field_validator("price", mode="before")
    @classmethod
    def price_in_cents(cls, v):
        return price_to_cents(v)


class ProductUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=300)
    description: Optional[str] = Field(None, max_length=5000)
    price: Optional[int] = None
    image_url: Optional[str] = None
    affiliate_link: Optional[str] = None
    category: Optional[str] = Field(None, min_length=1)

    @field_validator("price", mode="before")
    @classmethod
    def price_in_cents(cls, v):
        return None if v is None else price_to_cents(v)


class ProductImportRequest(CamelModel):
    product_url: str = Field(..., min_length=8)
    category: str = "Other"


class RatingRequest(CamelModel):
    rating: int = Field(..., ge=1, le=5)


class GiveawayRequest(CamelModel):
    email: EmailStr
    order_id: str = Field("", alias="orderID", max_length=120)
    order_screenshot: Optional[str] = Field(None, max_length=500)
    product_link: Optional[str] = Field(None, max_length=2000)

    @model_validator(mode="after")
    def order_or_screenshot(self):
        if not self.order_id and not self.order_screenshot:
            raise ValueError("Provide an order ID or an order screenshot")
        return self


class GiveawayStatusRequest(CamelModel):
    status: Literal["pending", "approved", "rejected"]


class ChatTurn(CamelModel):
    role: str
    content: str


class ChatRequest(CamelModel):
    message: str = Field(..., min_length=1, max_length=20000)
    history: List[ChatTurn] = Field(default_factory=list)


class QuizRequest(CamelModel):
    relationship: Optional[str] = None
    interests: Optional[str] = None
    budget: Optional[Union[str, int, float]] = None
    occasion: Optional[str] = None
