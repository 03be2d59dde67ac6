# storefront/services/coupon_service.py
import logging
import math
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from storefront.core.errors import (
    ConflictError,
    InvalidCouponError,
    MinimumPurchaseNotMetError,
    NotFoundError,
    TransactionError,
    UsageLimitReachedError,
    ValidationError,
)
from storefront.database import unit_of_work
from storefront.models.coupon import Coupon, CouponUsage
from storefront.repositories.coupon_repo import CouponRepository
from storefront.schemas.coupon import (
    CouponAnalytics,
    CouponAuditRead,
    CouponBulkAction,
    CouponBulkResult,
    CouponCreate,
    CouponRead,
    CouponUpdate,
    CouponUsageRead,
    RedeemResponse,
    check_coupon_terms,
)
from storefront.services.inventory_ledger import InventoryLedger

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands datetimes back naive; they were written as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def parse_cart_total(raw: Any) -> float:
    if isinstance(raw, bool) or raw is None:
        raise ValidationError("cart_total is required", field="cart_total")
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid cart_total {raw!r}", field="cart_total")
    if not math.isfinite(value) or value < 0:
        raise ValidationError(f"Invalid cart_total {raw!r}", field="cart_total")
    return value


def compute_discount(coupon: Coupon, cart_total: float) -> float:
    """
    percentage -> cart_total * amount / 100
    fixed      -> amount

    Clamped to cart_total so the payable amount never goes negative.
    """
    if coupon.type == "percentage":
        discount = cart_total * coupon.amount / 100
    else:
        discount = coupon.amount
    return round(min(discount, cart_total), 2)


class CouponService:
    """
    Coupon redemption and administration.

    Redemption mirrors order placement: the check-then-act sequence
    (validate, increment `used`, write the usage ledger) is one unit of
    work, and the increment itself is guarded so `used` never passes a
    nonzero `usage_limit`.
    """

    def __init__(self, repo: CouponRepository, ledger: InventoryLedger | None = None):
        self.repo = repo
        self.ledger = ledger or InventoryLedger()

    # ----- Redemption -----

    def redeem(
        self,
        session: Session,
        code: str,
        cart_total: Any,
        order_id: uuid.UUID | None = None,
        user_id: uuid.UUID | None = None,
    ) -> RedeemResponse:
        """
        Steps (single transaction):
          1. Look up active coupon by code, inside its validity window.
          2. Reject if the usage limit is reached.
          3. Reject if cart_total < min_purchase.
          4. Compute the discount.
          5. Guarded `used += 1`, insert usage ledger row + audit entry.
        """
        if not code or not str(code).strip():
            raise ValidationError("code is required", field="code")
        total = parse_cart_total(cart_total)

        with unit_of_work(session):
            # 1)
            coupon = self.repo.get_by_code(session, str(code))
            if coupon is None or not coupon.active:
                raise InvalidCouponError(f"Invalid coupon: {code}", field="code")
            self._check_window(coupon)

            # 2)
            if coupon.usage_limit and coupon.used >= coupon.usage_limit:
                raise UsageLimitReachedError(
                    f"Coupon {coupon.code} has reached its usage limit",
                    coupon_id=coupon.id,
                )

            # 3)
            if total < coupon.min_purchase:
                raise MinimumPurchaseNotMetError(
                    f"Minimum purchase of {coupon.min_purchase:.2f} not met",
                    coupon_id=coupon.id,
                )

            # 4)
            discount = compute_discount(coupon, total)

            # 5)
            if self.ledger.consume_coupon_use(session, coupon.id) == 0:
                raise UsageLimitReachedError(
                    f"Coupon {coupon.code} has reached its usage limit",
                    coupon_id=coupon.id,
                )
            self.repo.add_usage(
                session,
                CouponUsage(
                    coupon_id=coupon.id,
                    order_id=order_id,
                    user_id=user_id,
                    discount_amount=discount,
                ),
            )
            self.repo.add_audit(
                session,
                coupon.id,
                "REDEEMED",
                f"Coupon {coupon.code} redeemed",
                actor=str(user_id) if user_id else "system",
            )
            session.refresh(coupon)
            snapshot = CouponRead.model_validate(coupon)

        logger.info(
            "Coupon %s redeemed (discount %.2f, order %s, user %s)",
            snapshot.code,
            discount,
            order_id,
            user_id,
        )
        return RedeemResponse(discount_amount=discount, coupon=snapshot)

    # ----- Admin operations -----

    def create_coupon(
        self,
        session: Session,
        payload: CouponCreate,
        actor: str = "system",
    ) -> CouponRead:
        try:
            with unit_of_work(session):
                if self.repo.get_by_code(session, payload.code) is not None:
                    raise ConflictError(
                        f"Coupon code already exists: {payload.code}", field="code"
                    )
                coupon = self.repo.create(session, Coupon(**payload.model_dump()))
                self.repo.add_audit(
                    session, coupon.id, "CREATED", f"Created coupon {coupon.code}", actor
                )
                dto = CouponRead.model_validate(coupon)
        except TransactionError as exc:
            if isinstance(exc.__cause__, IntegrityError):
                raise ConflictError(
                    f"Coupon code already exists: {payload.code}", field="code"
                ) from exc
            raise

        logger.info("Coupon %s created by %s", dto.code, actor)
        return dto

    def update_coupon(
        self,
        session: Session,
        coupon_id: uuid.UUID,
        payload: CouponUpdate,
        actor: str = "system",
    ) -> CouponRead:
        """
        Partial update. Only the fields present in the payload change;
        `starts_at`/`ends_at` may be sent as null to open the window.
        """
        changes = {
            key: value
            for key, value in payload.model_dump(exclude_unset=True).items()
            if value is not None or key in ("starts_at", "ends_at")
        }

        try:
            with unit_of_work(session):
                coupon = self.repo.get_by_id(session, coupon_id)
                if coupon is None:
                    raise NotFoundError(f"Coupon not found: {coupon_id}", coupon_id=coupon_id)

                new_code = changes.get("code")
                if new_code and new_code != coupon.code:
                    if self.repo.get_by_code(session, new_code) is not None:
                        raise ConflictError(f"Coupon code already exists: {new_code}", field="code")

                merged = {**coupon.model_dump(), **changes}
                try:
                    check_coupon_terms(
                        merged["type"], merged["amount"], merged["starts_at"], merged["ends_at"]
                    )
                except ValueError as exc:
                    raise ValidationError(str(exc), coupon_id=coupon_id) from exc

                for key, value in changes.items():
                    setattr(coupon, key, value)
                coupon.updated_at = datetime.now(timezone.utc)
                self.repo.update(session, coupon)
                self.repo.add_audit(
                    session, coupon.id, "UPDATED", f"Updated coupon {coupon.code}", actor
                )
                dto = CouponRead.model_validate(coupon)
        except TransactionError as exc:
            if isinstance(exc.__cause__, IntegrityError):
                raise ConflictError(
                    f"Coupon code already exists: {changes.get('code')}", field="code"
                ) from exc
            raise

        logger.info("Coupon %s updated by %s (%s)", dto.code, actor, ", ".join(sorted(changes)))
        return dto

    def delete_coupon(self, session: Session, coupon_id: uuid.UUID, actor: str = "system") -> None:
        """Delete a coupon and its usage rows; the audit trail is kept."""
        with unit_of_work(session):
            coupon = self.repo.get_by_id(session, coupon_id)
            if coupon is None:
                raise NotFoundError(f"Coupon not found: {coupon_id}", coupon_id=coupon_id)
            code = coupon.code
            self.repo.delete_many(session, [coupon_id])
            self.repo.add_audit(session, coupon_id, "DELETED", f"Deleted coupon {code}", actor)

        logger.info("Coupon %s deleted by %s", code, actor)

    def bulk_action(
        self,
        session: Session,
        payload: CouponBulkAction,
        actor: str = "system",
    ) -> CouponBulkResult:
        """
        enable / disable / delete a batch of coupons in one transaction.

        Unknown ids are skipped; `affected` counts the coupons changed.
        """
        ids = list(dict.fromkeys(payload.ids))
        with unit_of_work(session):
            if payload.action == "delete":
                affected = self.repo.delete_many(session, ids)
            else:
                affected = self.repo.set_active(session, ids, payload.action == "enable")
            self.repo.add_audit(
                session,
                None,
                f"BULK_{payload.action.upper()}",
                f"{affected} coupons affected",
                actor,
            )

        logger.info("Coupon bulk %s by %s: %d affected", payload.action, actor, affected)
        return CouponBulkResult(action=payload.action, affected=affected)

    def list_coupons(self, session: Session, skip: int = 0, limit: int = 50) -> list[CouponRead]:
        return [CouponRead.model_validate(c) for c in self.repo.list_coupons(session, skip, limit)]

    def list_usage(self, session: Session, coupon_id: uuid.UUID) -> list[CouponUsageRead]:
        if self.repo.get_by_id(session, coupon_id) is None:
            raise NotFoundError(f"Coupon not found: {coupon_id}", coupon_id=coupon_id)
        return [CouponUsageRead.model_validate(u) for u in self.repo.list_usage(session, coupon_id)]

    def list_audit(self, session: Session, limit: int = 200) -> list[CouponAuditRead]:
        return [CouponAuditRead.model_validate(a) for a in self.repo.list_audit(session, limit)]

    def analytics(self, session: Session) -> CouponAnalytics:
        return CouponAnalytics(
            total_redemptions=self.repo.total_used(session),
            ledger_redemptions=self.repo.count_usage(session),
        )

    # ----- helpers -----

    def _check_window(self, coupon: Coupon) -> None:
        now = datetime.now(timezone.utc)
        if coupon.starts_at and now < _as_utc(coupon.starts_at):
            raise InvalidCouponError(f"Coupon {coupon.code} is not active yet", field="code")
        if coupon.ends_at and now > _as_utc(coupon.ends_at):
            raise InvalidCouponError(f"Coupon {coupon.code} has expired", field="code")
