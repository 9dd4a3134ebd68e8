from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from apps.accounts.schemas import EMAIL_RE


class CheckoutDTO(BaseModel):
    cart_id: UUID
    customer_email: str = Field(max_length=254)
    customer_id: Optional[str] = Field(default=None, max_length=64)
    shipping_method: Literal["standard", "express"] = "standard"

    @field_validator("customer_email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = v.strip()
        if not EMAIL_RE.match(v):
            raise ValueError("Invalid email address")
        return v
