# storefront/routers/coupons.py
import uuid

from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from storefront.core.auth import get_current_user, require_admin
from storefront.core.errors import OwnershipError
from storefront.database import get_session, retry_on_transaction_error
from storefront.models.user import User
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
    RedeemRequest,
    RedeemResponse,
)
from storefront.services.coupon_service import CouponService

router = APIRouter(prefix="/coupons", tags=["Coupons"])

repo = CouponRepository()
service = CouponService(repo)


@router.post("/redeem", response_model=RedeemResponse)
def redeem_coupon(
    payload: RedeemRequest,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """
    Atomically consume one use of a coupon and return the discount.

    `user_id` defaults to the caller; only admins may redeem on behalf of
    someone else.
    """
    user_id = payload.user_id or current_user.id
    if user_id != current_user.id and current_user.role != "admin":
        raise OwnershipError("Cannot redeem a coupon for another user", field="user_id")

    return retry_on_transaction_error(
        lambda: service.redeem(
            session,
            code=payload.code,
            cart_total=payload.cart_total,
            order_id=payload.order_id,
            user_id=user_id,
        )
    )


# -------- Admin endpoints --------


@router.post(
    "",
    response_model=CouponRead,
    status_code=status.HTTP_201_CREATED,
)
def create_coupon(
    payload: CouponCreate,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    """Create a coupon (admin only)."""
    actor = admin.email
    return retry_on_transaction_error(
        lambda: service.create_coupon(session, payload, actor=actor)
    )


@router.get(
    "",
    response_model=list[CouponRead],
    dependencies=[Depends(require_admin)],
)
def list_coupons(
    session: Session = Depends(get_session),
    skip: int = 0,
    limit: int = 50,
):
    """List coupons, newest first (admin only)."""
    return service.list_coupons(session, skip, limit)


@router.get(
    "/audit",
    response_model=list[CouponAuditRead],
    dependencies=[Depends(require_admin)],
)
def list_coupon_audit(
    session: Session = Depends(get_session),
    limit: int = 200,
):
    """Latest coupon audit entries (admin only)."""
    return service.list_audit(session, limit)


@router.get(
    "/analytics",
    response_model=CouponAnalytics,
    dependencies=[Depends(require_admin)],
)
def coupon_analytics(session: Session = Depends(get_session)):
    """Redemption totals: counter sum vs. usage-ledger rows (admin only)."""
    return service.analytics(session)


@router.post("/bulk", response_model=CouponBulkResult)
def bulk_coupon_action(
    payload: CouponBulkAction,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    """
    Enable, disable or delete several coupons at once (admin only).

    Records a single BULK_<ACTION> audit entry.
    """
    actor = admin.email
    return retry_on_transaction_error(
        lambda: service.bulk_action(session, payload, actor=actor)
    )


@router.put("/{coupon_id}", response_model=CouponRead)
def update_coupon(
    coupon_id: uuid.UUID,
    payload: CouponUpdate,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    """Update a coupon (admin only). Omitted fields are left as they are."""
    actor = admin.email
    return retry_on_transaction_error(
        lambda: service.update_coupon(session, coupon_id, payload, actor=actor)
    )


@router.delete("/{coupon_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_coupon(
    coupon_id: uuid.UUID,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    """Delete a coupon and its redemption records (admin only)."""
    actor = admin.email
    retry_on_transaction_error(lambda: service.delete_coupon(session, coupon_id, actor=actor))
    return None


@router.get(
    "/{coupon_id}/usage",
    response_model=list[CouponUsageRead],
    dependencies=[Depends(require_admin)],
)
def list_coupon_usage(
    coupon_id: uuid.UUID,
    session: Session = Depends(get_session),
):
    """Redemption ledger for one coupon, oldest first (admin only)."""
    return service.list_usage(session, coupon_id)
