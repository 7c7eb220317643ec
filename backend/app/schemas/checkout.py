"""Pydantic schemas for checkout requests."""
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class CamelModel(BaseModel):
    """Accepts the frontend's camelCase keys and the snake_case field names."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)


class GuestCheckoutRequest(BaseModel):
    """Signup form submitted before payment; no account exists yet.

    Names and email are trimmed; the password is kept exactly as typed.
    """

    model_config = ConfigDict(populate_by_name=True)

    subscription_id: str = Field(alias="subscriptionId", min_length=1)
    first_name: str = Field(alias="firstName", min_length=1)
    last_name: str = Field(alias="lastName", min_length=1)
    email: EmailStr
    password: str = Field(min_length=1)

    @field_validator("subscription_id", "first_name", "last_name", "email", mode="before")
    @classmethod
    def strip(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("email")
    @classmethod
    def normalize(cls, v: str) -> str:
        return v.lower()


class SubscriptionCheckoutRequest(CamelModel):
    subscription_id: str = Field(alias="subscriptionId", min_length=1)


class CartItem(CamelModel):
    """Cart line as stored by the frontend cart."""

    id: Optional[str | int] = None
    name: str = Field(min_length=1)
    price: float = Field(ge=0)
    quantity: int = Field(default=1, ge=1)
    stripe_price_id: Optional[str] = Field(default=None, alias="stripePriceId")
    image: Optional[str] = None
    sku: Optional[str] = None
    selected_hand: Optional[str] = Field(default=None, alias="selectedHand")
    selected_size: Optional[str] = Field(default=None, alias="selectedSize")
    selected_color: Optional[str] = Field(default=None, alias="selectedColor")


class CartCheckoutRequest(CamelModel):
    items: list[CartItem] = Field(default_factory=list)


class CheckoutSessionResponse(BaseModel):
    sessionId: str
    url: Optional[str] = None
