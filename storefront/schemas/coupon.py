# storefront/schemas/coupon.py
import uuid
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import ConfigDict, field_validator, model_validator
from sqlmodel import SQLModel, Field

CouponType = Literal["percentage", "fixed"]


def as_aware_utc(value: datetime | None) -> datetime | None:
    """Naive timestamps are taken as UTC; aware ones are converted to it."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _normalize_code(value: str) -> str:
    value = value.strip().upper()
    if not value:
        raise ValueError("code cannot be empty")
    return value


def check_coupon_terms(
    type_: str,
    amount: float,
    starts_at: datetime | None,
    ends_at: datetime | None,
) -> None:
    """Raises ValueError for a percentage over 100 or an inverted window."""
    if type_ == "percentage" and amount > 100:
        raise ValueError("percentage amount cannot exceed 100")
    if starts_at and ends_at and as_aware_utc(ends_at) < as_aware_utc(starts_at):
        raise ValueError("ends_at must be after starts_at")


class CouponCreate(SQLModel):
    """
    Admin payload for creating a coupon.

    The code is stored upper-cased; `usage_limit` 0 means unlimited.
    Window bounds are stored as timezone-aware UTC.
    """

    model_config = ConfigDict(extra="forbid")

    code: str = Field(min_length=1, max_length=64)
    type: CouponType = "percentage"
    amount: float = Field(ge=0)
    min_purchase: float = Field(default=0, ge=0)
    usage_limit: int = Field(default=0, ge=0)
    active: bool = True
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    description: str = ""

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return _normalize_code(v)

    @field_validator("starts_at", "ends_at")
    @classmethod
    def to_utc(cls, v: datetime | None) -> datetime | None:
        return as_aware_utc(v)

    @model_validator(mode="after")
    def check_amount_and_window(self) -> "CouponCreate":
        check_coupon_terms(self.type, self.amount, self.starts_at, self.ends_at)
        return self


class CouponUpdate(SQLModel):
    """
    Admin payload for PUT /coupons/{id}; omitted fields keep their value.

    `used` is not editable here, it only moves through redemption.
    """

    model_config = ConfigDict(extra="forbid")

    code: str | None = Field(default=None, min_length=1, max_length=64)
    type: CouponType | None = None
    amount: float | None = Field(default=None, ge=0)
    min_purchase: float | None = Field(default=None, ge=0)
    usage_limit: int | None = Field(default=None, ge=0)
    active: bool | None = None
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    description: str | None = None

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str | None) -> str | None:
        return _normalize_code(v) if v is not None else v

    @field_validator("starts_at", "ends_at")
    @classmethod
    def to_utc(cls, v: datetime | None) -> datetime | None:
        return as_aware_utc(v)


class CouponBulkAction(SQLModel):
    model_config = ConfigDict(extra="forbid")

    action: Literal["enable", "disable", "delete"]
    ids: list[uuid.UUID] = Field(min_length=1)


class CouponBulkResult(SQLModel):
    action: str
    affected: int


class CouponRead(SQLModel):
    id: uuid.UUID
    code: str
    type: CouponType
    amount: float
    min_purchase: float
    usage_limit: int
    used: int
    active: bool
    starts_at: datetime | None
    ends_at: datetime | None
    description: str
    created_at: datetime
    updated_at: datetime


class RedeemRequest(SQLModel):
    """
    Payload for POST /coupons/redeem.

    `cart_total` is loose on purpose; the service rejects non-numeric or
    negative values with a validation error.
    """

    model_config = ConfigDict(extra="forbid")

    code: str
    order_id: uuid.UUID | None = None
    user_id: uuid.UUID | None = None
    cart_total: Any = None


class RedeemResponse(SQLModel):
    discount_amount: float
    coupon: CouponRead


class CouponAuditRead(SQLModel):
    id: int
    coupon_id: uuid.UUID | None
    action: str
    message: str
    actor: str
    created_at: datetime


class CouponUsageRead(SQLModel):
    id: int
    coupon_id: uuid.UUID
    order_id: uuid.UUID | None
    user_id: uuid.UUID | None
    discount_amount: float
    used_at: datetime


class CouponAnalytics(SQLModel):
    """
    `total_redemptions` is the sum of the `used` counters;
    `ledger_redemptions` counts usage-ledger rows. They should agree.
    """

    total_redemptions: int
    ledger_redemptions: int
