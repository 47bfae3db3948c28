"""Pydantic schemas for orders.

This module exposes the request/validation schemas used by the orders API,
the read schemas used to render responses, and the schema used to parse
the rewards provider's evaluation payload.
"""

import re
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


SKU_RE = re.compile(r"^[A-Z0-9_-]{3,32}$")


class CartLineIn(BaseModel):
    """Input schema for a single cart line.

    Attributes:
        sku: Product SKU. Will be normalized to uppercase and validated
            against a regex (3-32 chars, uppercase letters, digits, '_' and '-').
        name: Display name of the product.
        price: Unit price, non-negative, at most two decimals.
        quantity: Positive integer indicating units requested.
    """

    sku: str = Field(min_length=3, max_length=32)
    name: str = Field(min_length=1, max_length=200)
    price: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    quantity: int = Field(gt=0)

    @field_validator("sku")
    @classmethod
    def validate_sku(cls, v: str) -> str:
        """Validate and normalize SKU to uppercase.

        Raises:
            ValueError: When the SKU does not match the expected pattern.
        """
        v2 = v.upper()
        if not SKU_RE.match(v2):
            raise ValueError("Invalid SKU format")
        return v2


class PlaceOrderDTO(BaseModel):
    """Schema for placing an order (also used to preview rewards).

    Attributes:
        user_id: Identifier of the ordering user.
        items: Non-empty list of ``CartLineIn``.
    """

    user_id: uuid.UUID
    items: list[CartLineIn] = Field(min_length=1)


class CartLineOut(BaseModel):
    sku: str
    name: str
    price: Decimal
    quantity: int


class OrderReadDTO(BaseModel):
    """Representation of a persisted order returned by the API."""

    id: uuid.UUID
    user_id: uuid.UUID
    items: list[CartLineOut]
    subtotal: Decimal
    total_amount: Decimal
    discount_applied: Decimal
    status: str
    created_at: Optional[datetime] = None
    warning: Optional[str] = None


class RewardsDecisionDTO(BaseModel):
    """Rewards decision, both as received from the provider and as returned
    by the preview endpoint.

    The provider speaks camelCase; ``populate_by_name`` lets the same schema
    be built from Python names.
    """

    model_config = ConfigDict(populate_by_name=True)

    discount_amount: Decimal = Field(default=Decimal("0"), ge=0, alias="discountAmount")
    applied_rewards: list[str] = Field(default_factory=list, alias="appliedRewards")
    loyalty_points_used: int = Field(default=0, ge=0, alias="loyaltyPointsUsed")
    loyalty_points_earned: int = Field(default=0, ge=0, alias="loyaltyPointsEarned")
    message: Optional[str] = None


class UserReadDTO(BaseModel):
    id: uuid.UUID
    total_orders: int
    total_spent: Decimal
