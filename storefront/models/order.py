# storefront/models/order.py
import uuid
from datetime import datetime, timezone

from sqlmodel import SQLModel, Field

# pending | confirmed | cancelled | shipped | delivered
ORDER_STATUSES = ("pending", "confirmed", "cancelled", "shipped", "delivered")


class Order(SQLModel, table=True):
    """
    Customer order header.

    Created exactly once per successful placement. After that only
    `status` (and payment details on verification) may change.
    """

    __tablename__ = "orders"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    user_id: uuid.UUID = Field(
        foreign_key="users.id",
        index=True,
    )

    address_id: str | None = Field(
        default=None,
        description="Saved-address id, when the client used one",
    )

    shipping_address_json: str = Field(
        description="Normalized shipping address (JSON)",
    )

    payment_method: str = Field(
        default="",
        description="e.g. cod | razorpay | card",
    )

    payment_details_json: str = Field(
        default="{}",
        description="Opaque payment details blob (JSON)",
    )

    total_amount: float = Field(
        description="Authoritative total computed from frozen line prices",
    )

    declared_total: float | None = Field(
        default=None,
        description="Total the client claimed; recorded for audit only",
    )

    status: str = Field(
        default="pending",
        index=True,
        description="Order status lifecycle",
    )

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Creation timestamp (UTC)",
    )


class OrderItem(SQLModel, table=True):
    """
    Line item inside an order.

    `unit_price` is a snapshot of the catalog price at placement time;
    `price` is the line total (unit_price * quantity).
    """

    __tablename__ = "order_items"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    order_id: uuid.UUID = Field(
        foreign_key="orders.id",
        index=True,
    )

    product_id: uuid.UUID = Field(
        foreign_key="products.id",
        index=True,
    )

    quantity: int = Field(
        gt=0,
        description="Quantity ordered (>=1)",
    )

    unit_price: float = Field(
        description="Unit price at time of order",
    )

    price: float = Field(
        description="Line total at time of order",
    )

    selected_color: str | None = None
    selected_size: str | None = None
