from pydantic import BaseModel, Field

from apps.orders.schemas import SkuField


class CreateCartDTO(BaseModel):
    owner_id: str = Field(default="", max_length=64)


class AddItemDTO(BaseModel):
    sku: SkuField
    quantity: int = Field(ge=1, le=1000)


class UpdateItemDTO(BaseModel):
    quantity: int = Field(ge=0, le=1000)
