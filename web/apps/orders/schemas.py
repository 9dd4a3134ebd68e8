"""Pydantic schemas for orders.

Request DTOs validate the JSON bodies of the orders API; ``OrderReadDTO``
shapes the read side.
"""

import re
from datetime import datetime
from typing import Annotated, Literal, Optional

from pydantic import AfterValidator, BaseModel, Field, field_validator

from apps.cart.catalog import PRODUCTS

from .domain import OrderPriority, OrderType

SKU_RE = re.compile(r"^[A-Z0-9_-]{3,32}$")
CURRENCIES = {"USD", "CAD"}


def _normalize_sku(v: str) -> str:
    v2 = v.strip().upper()
    if not SKU_RE.match(v2):
        raise ValueError("Invalid SKU format")
    return v2


SkuField = Annotated[str, AfterValidator(_normalize_sku)]


class OrderItemIn(BaseModel):
    """Input schema for a single order line item.

    Attributes:
        sku: Catalog SKU, normalized to uppercase.
        quantity: Units requested, 1..1000.
    """

    sku: SkuField
    quantity: int = Field(gt=0, le=1000)

    @field_validator("sku")
    @classmethod
    def validate_known_sku(cls, v: str) -> str:
        if v not in PRODUCTS:
            raise ValueError("Unknown SKU")
        return v


class CreateOrderDTO(BaseModel):
    """Schema for creating an order.

    The amount is never taken from the client: it is priced from the catalog.
    """

    items: list[OrderItemIn] = Field(min_length=1)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    order_type: OrderType = OrderType.STANDARD
    priority: OrderPriority = OrderPriority.STANDARD
    customer_id: Optional[str] = Field(default=None, max_length=64)
    customer_email: Optional[str] = Field(default=None, max_length=254)
    payment_method_id: Optional[str] = Field(default=None, max_length=255)
    draft: bool = False

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        v2 = v.upper()
        if v2 not in CURRENCIES:
            raise ValueError("Unsupported currency")
        return v2


class OrderReadDTO(BaseModel):
    id: str
    status: str
    stage: str
    order_type: str
    priority: str
    amount_cents: int
    subtotal_cents: int = 0
    discount_cents: int = 0
    tax_cents: int = 0
    shipping_cents: int = 0
    currency: str
    transaction_id: Optional[str] = None
    stage_failed: bool = False
    failure_code: Optional[str] = None
    retry_count: int = 0
    escalated: bool = False
    items: list[dict] = Field(default_factory=list)
    created_at: Optional[datetime] = None


class WorkflowOptions(BaseModel):
    auto_progress: bool = True
    notifications: bool = True


class LifecycleRequestDTO(BaseModel):
    """Body of ``POST /api/orders/<id>/lifecycle/``."""

    action: Literal["advance", "hold", "cancel", "retry", "escalate", "rollback"]
    reason: str = Field(min_length=1, max_length=500)
    target_stage: Optional[str] = Field(default=None, max_length=64)
    metadata: dict = Field(default_factory=dict)
    workflow: WorkflowOptions = Field(default_factory=WorkflowOptions)

    @field_validator("target_stage")
    @classmethod
    def upper_stage(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else v


class RefundDTO(BaseModel):
    amount_cents: Optional[int] = Field(default=None, gt=0)
    reason: str = Field(default="requested_by_customer", max_length=500)
