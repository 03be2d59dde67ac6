# storefront/models/coupon.py
import uuid
from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


class Coupon(SQLModel, table=True):
    """
    Discount coupon.

    `used` is a shared counter: it is only incremented through the
    inventory ledger, guarded so it never passes a nonzero `usage_limit`.
    """

    __tablename__ = "coupons"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    code: str = Field(
        max_length=64,
        unique=True,
        index=True,
        description="Upper-cased coupon code",
    )

    # percentage | fixed
    type: str = Field(default="percentage")

    amount: float = Field(ge=0)
    min_purchase: float = Field(default=0, ge=0)

    # 0 means unlimited
    usage_limit: int = Field(default=0, ge=0)
    used: int = Field(default=0, ge=0)

    active: bool = Field(default=True, index=True)

    starts_at: datetime | None = None
    ends_at: datetime | None = None

    description: str = ""

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )


class CouponUsage(SQLModel, table=True):
    """
    Append-only redemption ledger; one row per successful redemption.
    """

    __tablename__ = "coupon_usage"

    id: int | None = Field(default=None, primary_key=True)

    coupon_id: uuid.UUID = Field(foreign_key="coupons.id", index=True)
    order_id: uuid.UUID | None = Field(default=None, index=True)
    user_id: uuid.UUID | None = Field(default=None, index=True)

    discount_amount: float

    used_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )


class CouponAuditLog(SQLModel, table=True):
    """Administrative trail of coupon changes and redemptions."""

    __tablename__ = "coupon_audit_logs"

    id: int | None = Field(default=None, primary_key=True)

    coupon_id: uuid.UUID | None = Field(default=None, index=True)
    action: str
    message: str = ""
    actor: str = "system"

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
