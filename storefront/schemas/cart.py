# storefront/schemas/cart.py
import uuid
from datetime import datetime

from pydantic import ConfigDict
from sqlmodel import SQLModel, Field


class CartItemCreate(SQLModel):
    """
    Payload for adding to cart.
    """

    model_config = ConfigDict(extra="forbid")

    product_id: uuid.UUID
    quantity: int = Field(default=1, gt=0)
    selected_size: str | None = None
    selected_color: str | None = None


class CartItemUpdate(SQLModel):
    """
    Payload for changing the quantity of a cart line.
    """

    model_config = ConfigDict(extra="forbid")

    quantity: int = Field(gt=0)


class CartItemRead(SQLModel):
    """
    Read model for a single cart line, priced at the current catalog price.
    """

    id: uuid.UUID
    product_id: uuid.UUID
    quantity: int
    selected_size: str | None = None
    selected_color: str | None = None
    product_name: str | None = None
    unit_price: float
    available_stock: int
    line_total: float
    created_at: datetime


class CartSummary(SQLModel):
    """
    Full cart response model with totals.
    """

    items: list[CartItemRead]
    total_quantity: int
    total_price: float
