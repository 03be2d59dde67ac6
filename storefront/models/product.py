# storefront/models/product.py
import uuid
from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


class Product(SQLModel, table=True):
    """
    Product catalog entry, as seen by the order engine.

    The catalog owns name/price; `stock` and `sold` are only ever changed
    through the inventory ledger's conditional UPDATEs.
    """

    __tablename__ = "products"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    name: str = Field(
        max_length=200,
        index=True,
        description="Display name of the product",
    )

    price: float = Field(
        gt=0,
        description="Current unit price",
    )

    stock: int = Field(
        default=0,
        ge=0,
        description="Units available for sale (never negative)",
    )

    sold: int = Field(
        default=0,
        ge=0,
        description="Units sold so far",
    )

    is_active: bool = Field(
        default=True,
        index=True,
        description="Whether this product can be ordered",
    )

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Creation timestamp (UTC)",
    )
