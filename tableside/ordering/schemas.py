# tableside/ordering/schemas.py
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Session(BaseModel):
    session_id: str
    started_at: datetime
    active: bool = True
    table_number: Optional[str] = None


class MenuItem(BaseModel):
    """One entry from the live menu feed (camelCase keys accepted)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    name: str
    price: float = Field(ge=0)
    category: str = ""
    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    description: str = ""
    available: bool = True
    display_priority: int = Field(default=5, alias="displayPriority")
    is_recommended: bool = Field(default=False, alias="isRecommended")
    is_bestseller: bool = Field(default=False, alias="isBestseller")
    is_new: bool = Field(default=False, alias="isNew")

    @property
    def featured(self) -> bool:
        return self.is_recommended or self.is_bestseller or self.is_new


class CartLine(BaseModel):
    item_id: str
    name: str
    unit_price: float = Field(ge=0)
    quantity: int = Field(ge=1)
    category: str = ""
    image_ref: Optional[str] = None
    description: str = ""

    @property
    def line_total(self) -> float:
        return self.unit_price * self.quantity


class OrderLine(CartLine):
    """A cart line as it was when the order went out. Read only."""

    model_config = ConfigDict(frozen=True)


class Order(BaseModel):
    model_config = ConfigDict(frozen=True)

    session_id: str
    table_number: str
    items: Tuple[OrderLine, ...]
    status: str = "pending"
    created_at: datetime
    total: float
    order_number: int = Field(ge=1)
    restaurant_id: str
    external_id: Optional[str] = None

    @field_validator("items", mode="before")
    @classmethod
    def _snapshot_lines(cls, v):
        if isinstance(v, (list, tuple)):
            return tuple(
                line.model_dump() if isinstance(line, CartLine) and not isinstance(line, OrderLine) else line
                for line in v
            )
        return v

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.items)


class Bill(BaseModel):
    session_id: str
    table_number: Optional[str] = None
    subtotal: float
    service_charge: int
    gst: int
    total: float
    item_count: int
    orders: Tuple[Order, ...]
    generated_at: datetime
    session_duration: Optional[timedelta] = None

    @property
    def order_count(self) -> int:
        return len(self.orders)
