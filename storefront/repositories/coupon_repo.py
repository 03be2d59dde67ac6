# storefront/repositories/coupon_repo.py
import uuid
from datetime import datetime, timezone

from sqlalchemy import delete, func, update
from sqlmodel import Session, select

from storefront.models.coupon import Coupon, CouponAuditLog, CouponUsage


class CouponRepository:
    """
    Data access layer for coupons, coupon_usage and coupon_audit_logs.

    No commits: redemption and every admin change are units of work
    owned by the service. `used` is never written here; see InventoryLedger.
    """

    # ---- Coupons ----

    def get_by_code(self, session: Session, code: str) -> Coupon | None:
        stmt = (
            select(Coupon)
            .where(Coupon.code == code.strip().upper())
            .execution_options(populate_existing=True)
        )
        return session.exec(stmt).first()

    def get_by_id(self, session: Session, coupon_id: uuid.UUID) -> Coupon | None:
        return session.get(Coupon, coupon_id, populate_existing=True)

    def list_coupons(self, session: Session, skip: int = 0, limit: int = 50) -> list[Coupon]:
        stmt = select(Coupon).order_by(Coupon.created_at.desc()).offset(skip).limit(limit)
        return session.exec(stmt).all()

    def create(self, session: Session, coupon: Coupon) -> Coupon:
        session.add(coupon)
        session.flush()
        return coupon

    def update(self, session: Session, coupon: Coupon) -> Coupon:
        session.add(coupon)
        session.flush()
        return coupon

    def set_active(self, session: Session, coupon_ids: list[uuid.UUID], active: bool) -> int:
        stmt = (
            update(Coupon)
            .where(Coupon.id.in_(coupon_ids))
            .values(active=active, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        return session.exec(stmt).rowcount

    def delete_many(self, session: Session, coupon_ids: list[uuid.UUID]) -> int:
        """
        Delete coupons together with their usage rows. Returns the number
        of coupons removed.
        """
        session.exec(
            delete(CouponUsage)
            .where(CouponUsage.coupon_id.in_(coupon_ids))
            .execution_options(synchronize_session=False)
        )
        stmt = (
            delete(Coupon)
            .where(Coupon.id.in_(coupon_ids))
            .execution_options(synchronize_session=False)
        )
        return session.exec(stmt).rowcount

    # ---- Usage ledger ----

    def add_usage(self, session: Session, usage: CouponUsage) -> CouponUsage:
        session.add(usage)
        session.flush()
        return usage

    def list_usage(self, session: Session, coupon_id: uuid.UUID) -> list[CouponUsage]:
        stmt = (
            select(CouponUsage)
            .where(CouponUsage.coupon_id == coupon_id)
            .order_by(CouponUsage.used_at, CouponUsage.id)
        )
        return session.exec(stmt).all()

    def total_used(self, session: Session) -> int:
        return session.exec(select(func.coalesce(func.sum(Coupon.used), 0))).one()

    def count_usage(self, session: Session) -> int:
        return session.exec(select(func.count(CouponUsage.id))).one()

    # ---- Audit log ----

    def add_audit(
        self,
        session: Session,
        coupon_id: uuid.UUID | None,
        action: str,
        message: str,
        actor: str = "system",
    ) -> CouponAuditLog:
        entry = CouponAuditLog(
            coupon_id=coupon_id,
            action=action,
            message=message,
            actor=actor,
        )
        session.add(entry)
        session.flush()
        return entry

    def list_audit(self, session: Session, limit: int = 200) -> list[CouponAuditLog]:
        stmt = (
            select(CouponAuditLog)
            .order_by(CouponAuditLog.created_at.desc(), CouponAuditLog.id.desc())
            .limit(limit)
        )
        return session.exec(stmt).all()
