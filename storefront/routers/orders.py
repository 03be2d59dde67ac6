# storefront/routers/orders.py
import uuid

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlmodel import Session

from storefront.core.auth import require_user, require_admin
from storefront.database import get_session, retry_on_transaction_error
from storefront.models.user import User
from storefront.repositories.order_repo import OrderRepository
from storefront.repositories.cart_repo import CartRepository
from storefront.repositories.product_repo import ProductRepository
from storefront.schemas.order import (
    OrderRead,
    OrderStatus,
    OrderStatusUpdate,
    OrderWithItemsRead,
    PaymentVerification,
    PlaceOrderRequest,
    PlaceOrderResponse,
)
from storefront.services.notifications import OrderNotifier
from storefront.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["Orders"])

order_repo = OrderRepository()
cart_repo = CartRepository()
product_repo = ProductRepository()
service = OrderService(order_repo, cart_repo, product_repo)
notifier = OrderNotifier()


# -------- User-facing endpoints --------


@router.post(
    "/place",
    response_model=PlaceOrderResponse,
    status_code=status.HTTP_201_CREATED,
)
def place_order(
    payload: PlaceOrderRequest,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    """
    Place an order from cart rows (flow='cart') or directly from products
    (flow='buy_now').

    Stock is reserved atomically with the order. Shipping label and
    confirmation email run after the commit and cannot undo it.
    """
    user_id, email = current_user.id, current_user.email

    order = retry_on_transaction_error(
        lambda: service.checkout(session, user_id, payload)
    )
    background_tasks.add_task(notifier.order_placed, order, email)
    return PlaceOrderResponse(order_id=order.id)


@router.get(
    "/me",
    response_model=list[OrderRead],
)
def list_my_orders(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
    skip: int = 0,
    limit: int = 50,
):
    """
    List the authenticated user's orders (without items).
    """
    return service.list_user_orders(session, current_user.id, skip, limit)


@router.get(
    "/me/{order_id}",
    response_model=OrderWithItemsRead,
)
def get_my_order(
    order_id: uuid.UUID,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    """
    Get a single order (with items) belonging to the current user.
    """
    return service.get_user_order(session, current_user.id, order_id)


@router.post(
    "/me/{order_id}/cancel",
    response_model=OrderWithItemsRead,
)
def cancel_my_order(
    order_id: uuid.UUID,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    """
    Cancel a pending or confirmed order; its units go back to stock.
    """
    user_id = current_user.id
    return retry_on_transaction_error(
        lambda: service.cancel_order(session, user_id, order_id)
    )


@router.post(
    "/me/{order_id}/verify-payment",
    response_model=OrderRead,
)
def verify_my_payment(
    order_id: uuid.UUID,
    payload: PaymentVerification,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    """
    Confirm a pending order once the gateway signature checks out.
    """
    user_id = current_user.id
    return retry_on_transaction_error(
        lambda: service.verify_payment(session, user_id, order_id, payload)
    )


# -------- Admin endpoints --------


@router.get(
    "",
    response_model=list[OrderRead],
    dependencies=[Depends(require_admin)],
)
def list_all_orders(
    session: Session = Depends(get_session),
    skip: int = 0,
    limit: int = 50,
    status: OrderStatus | None = None,
):
    """
    List all orders (admin only), optionally filtered by status.
    """
    return service.list_all_orders(session, skip, limit, status)


@router.get(
    "/{order_id}",
    response_model=OrderWithItemsRead,
    dependencies=[Depends(require_admin)],
)
def get_order_admin(
    order_id: uuid.UUID,
    session: Session = Depends(get_session),
):
    """
    Get any order with items (admin only).
    """
    return service.get_order_admin(session, order_id)


@router.patch(
    "/{order_id}/status",
    response_model=OrderRead,
    dependencies=[Depends(require_admin)],
)
def update_order_status(
    order_id: uuid.UUID,
    payload: OrderStatusUpdate,
    session: Session = Depends(get_session),
):
    """
    Update order status (admin only) with simple state machine.

      pending   -> confirmed, cancelled

      confirmed -> shipped, cancelled

      shipped   -> delivered

      delivered, cancelled -> (no change)

    """
    return retry_on_transaction_error(
        lambda: service.update_status(session, order_id, payload)
    )
