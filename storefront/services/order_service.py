# storefront/services/order_service.py
import json
import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from storefront.core.config import get_settings
from storefront.core.errors import (
    CartConflictError,
    ConflictError,
    InsufficientStockError,
    NotFoundError,
    StockRaceError,
    StorefrontError,
    TransactionError,
    ValidationError,
)
from storefront.database import unit_of_work
from storefront.models.order import Order, OrderItem
from storefront.repositories.order_repo import OrderRepository
from storefront.repositories.cart_repo import CartRepository
from storefront.repositories.product_repo import ProductRepository
from storefront.schemas.order import (
    OrderItemRead,
    OrderRead,
    OrderStatusUpdate,
    OrderWithItemsRead,
    PaymentVerification,
    PlaceOrderRequest,
    ResolvedLine,
    ShippingAddress,
)
from storefront.services.cart_resolver import CartSnapshotResolver
from storefront.services.inventory_ledger import InventoryLedger, StockSnapshot
from storefront.services.payment_verifier import verify_payment_signature

logger = logging.getLogger(__name__)

# Allowed drift between the client-declared total and the computed one
TOTAL_TOLERANCE = 0.01

CANCELLABLE_STATUSES = ("pending", "confirmed")

STATUS_TRANSITIONS: dict[str, set[str]] = {
    "pending": {"confirmed", "cancelled"},
    "confirmed": {"shipped", "cancelled"},
    "shipped": {"delivered"},
    "delivered": set(),
    "cancelled": set(),
}


class OrderService:
    """
    Order placement and lifecycle.

    Responsibilities:
      - Resolve requested lines (cart rows or buy-now products)
      - Re-check stock inside the placement transaction
      - Insert order header + lines with frozen unit prices
      - Reserve stock through guarded UPDATEs (0 rows => stock race)
      - Delete consumed cart rows, scoped by owner
      - Commit, or roll back everything
      - Cancellation (restocks), admin status transitions, payment confirmation
    """

    def __init__(
        self,
        order_repo: OrderRepository,
        cart_repo: CartRepository,
        product_repo: ProductRepository,
        ledger: InventoryLedger | None = None,
        enforce_declared_total: bool | None = None,
    ):
        self.order_repo = order_repo
        self.cart_repo = cart_repo
        self.product_repo = product_repo
        self.ledger = ledger or InventoryLedger()
        self.resolver = CartSnapshotResolver(cart_repo, product_repo)
        self.enforce_declared_total = (
            get_settings().ENFORCE_DECLARED_TOTAL
            if enforce_declared_total is None
            else enforce_declared_total
        )

    # -------- Placement --------

    def checkout(
        self,
        session: Session,
        user_id: uuid.UUID,
        payload: PlaceOrderRequest,
    ) -> OrderWithItemsRead:
        """
        Resolve the request's lines, then place the order.

        Resolution runs as its own read-only snapshot; the placement
        transaction re-reads everything it relies on.

        When two requests compete for the last units, the loser's error
        depends on when it resolved. If its snapshot still showed enough
        stock, the shortfall surfaces inside the transaction as
        StockRaceError. If it resolved after the winner committed, the
        snapshot already shows the shortage and it gets
        InsufficientStockError. Both are 409 and neither writes anything.
        """
        try:
            lines = self.resolver.resolve(session, user_id, payload.flow, payload.lines)
        except SQLAlchemyError as exc:
            raise TransactionError("Could not read the requested items") from exc
        finally:
            session.rollback()

        return self.place_order(
            session,
            user_id=user_id,
            flow=payload.flow,
            lines=lines,
            shipping_address=payload.shipping_address,
            payment_method=payload.payment_method,
            payment_details=payload.payment_details,
            declared_total=payload.declared_total,
        )

    def place_order(
        self,
        session: Session,
        user_id: uuid.UUID,
        flow: str,
        lines: list[ResolvedLine],
        shipping_address: ShippingAddress,
        payment_method: str = "",
        payment_details: dict | None = None,
        declared_total: float | None = None,
    ) -> OrderWithItemsRead:
        """
        Convert resolved lines into an Order in one unit of work.

        Steps:
          1. Re-read stock/price for every product inside the transaction.
          2. Reject if any product is short (insufficient vs. race).
          3. Compute the authoritative total; check the declared one.
          4. Insert the Order ('pending' for cart, 'confirmed' for buy-now).
          5. Per line: insert OrderItem, then guarded stock decrement.
          6. Cart flow: delete the consumed cart rows (owner-scoped).
          7. Commit; any error rolls back steps 4-6.
        """
        if not lines:
            raise ValidationError("No items provided", field="lines")
        if flow not in ("cart", "buy_now"):
            raise ValidationError(f"Unknown order flow: {flow!r}", field="flow")

        try:
            with unit_of_work(session):
                # 1-2) Fresh read, then stock check
                current = self.ledger.current_stock(
                    session, [line.product_id for line in lines]
                )
                self._check_stock(lines, current)

                # 3) Totals
                total_amount = self._compute_total(lines, current)
                self._check_declared_total(total_amount, declared_total)

                # 4) Order header
                order = self.order_repo.create_order(
                    session,
                    Order(
                        user_id=user_id,
                        address_id=shipping_address.id,
                        shipping_address_json=shipping_address.model_dump_json(),
                        payment_method=payment_method or "",
                        payment_details_json=json.dumps(payment_details or {}),
                        total_amount=total_amount,
                        declared_total=declared_total,
                        status="pending" if flow == "cart" else "confirmed",
                    ),
                )

                # 5) Lines + reservation
                items: list[OrderItem] = []
                for line in lines:
                    unit_price = current[line.product_id].price
                    items.append(
                        self.order_repo.create_item(
                            session,
                            OrderItem(
                                order_id=order.id,
                                product_id=line.product_id,
                                quantity=line.quantity,
                                unit_price=unit_price,
                                price=round(unit_price * line.quantity, 2),
                                selected_color=line.selected_color,
                                selected_size=line.selected_size,
                            ),
                        )
                    )

                    reserved = self.ledger.reserve_stock(
                        session, line.product_id, line.quantity
                    )
                    if reserved == 0:
                        raise StockRaceError(
                            f"Insufficient stock when committing product {line.product_id}",
                            product_id=line.product_id,
                        )

                # 6) Consumed cart rows
                if flow == "cart":
                    row_ids = [
                        line.source_cart_row_id
                        for line in lines
                        if line.source_cart_row_id is not None
                    ]
                    deleted = self.cart_repo.delete_for_user(session, user_id, row_ids)
                    if deleted != len(row_ids):
                        raise CartConflictError(
                            "Cart changed while the order was being placed; refresh and retry"
                        )

                dto = self._build_order_with_items_dto(order, items)
        except StorefrontError as exc:
            logger.info(
                "Order placement for user %s rolled back: %s (%s)",
                user_id,
                exc.error_kind,
                exc.message,
            )
            raise

        logger.info(
            "Order %s placed by user %s (%s, %d lines, total %.2f)",
            dto.id,
            user_id,
            flow,
            len(dto.items),
            dto.total_amount,
        )
        return dto

    # -------- User-facing reads & actions --------

    def list_user_orders(
        self,
        session: Session,
        user_id: uuid.UUID,
        skip: int = 0,
        limit: int = 50,
    ) -> list[OrderRead]:
        """
        List orders for the given user (without items).
        """
        orders = self.order_repo.list_for_user(session, user_id, skip, limit)
        return [OrderRead.from_order(o) for o in orders]

    def get_user_order(
        self,
        session: Session,
        user_id: uuid.UUID,
        order_id: uuid.UUID,
    ) -> OrderWithItemsRead:
        """
        Get a single order for the user, including items.

        - 404 if order not found or does not belong to this user.
        """
        order = self._get_owned_order(session, user_id, order_id)
        items = self.order_repo.list_items_for_order(session, order.id)
        return self._build_order_with_items_dto(order, items)

    def cancel_order(
        self,
        session: Session,
        user_id: uuid.UUID,
        order_id: uuid.UUID,
    ) -> OrderWithItemsRead:
        """
        Cancel a pending/confirmed order owned by the user and return its
        units to stock, in one transaction.
        """
        with unit_of_work(session):
            order = self._get_owned_order(session, user_id, order_id)
            changed = self.order_repo.transition_status(
                session,
                order_id,
                CANCELLABLE_STATUSES,
                "cancelled",
                user_id=user_id,
            )
            if not changed:
                raise ValidationError(
                    f"Order cannot be cancelled (status: {order.status})",
                    field="status",
                )
            items = self._restock(session, order_id)
            session.refresh(order)
            dto = self._build_order_with_items_dto(order, items)

        logger.info("Order %s cancelled by user %s", order_id, user_id)
        return dto

    def verify_payment(
        self,
        session: Session,
        user_id: uuid.UUID,
        order_id: uuid.UUID,
        payload: PaymentVerification,
    ) -> OrderRead:
        """
        Verify the gateway signature, then move a pending order to confirmed.
        """
        verify_payment_signature(
            payload.gateway_order_id,
            payload.payment_id,
            payload.signature,
        )

        with unit_of_work(session):
            order = self._get_owned_order(session, user_id, order_id)
            details = json.loads(order.payment_details_json or "{}")
            details.update(
                gateway_order_id=payload.gateway_order_id,
                payment_id=payload.payment_id,
                verified_at=datetime.now(timezone.utc).isoformat(),
            )
            changed = self.order_repo.transition_status(
                session,
                order_id,
                ("pending",),
                "confirmed",
                user_id=user_id,
                extra_values={"payment_details_json": json.dumps(details)},
            )
            if not changed:
                raise ValidationError(
                    f"Order is not awaiting payment (status: {order.status})",
                    field="status",
                )
            session.refresh(order)
            dto = OrderRead.from_order(order)

        logger.info("Payment %s verified for order %s", payload.payment_id, order_id)
        return dto

    # -------- Admin operations --------

    def list_all_orders(
        self,
        session: Session,
        skip: int = 0,
        limit: int = 50,
        status: str | None = None,
    ) -> list[OrderRead]:
        """
        List all orders (admin only).
        """
        orders = self.order_repo.list_all(session, skip, limit, status)
        return [OrderRead.from_order(o) for o in orders]

    def get_order_admin(
        self,
        session: Session,
        order_id: uuid.UUID,
    ) -> OrderWithItemsRead:
        """
        Get any order with items (admin only).
        """
        order = self.order_repo.get_by_id(session, order_id)
        if not order:
            raise NotFoundError("Order not found", order_id=order_id)
        items = self.order_repo.list_items_for_order(session, order.id)
        return self._build_order_with_items_dto(order, items)

    def update_status(
        self,
        session: Session,
        order_id: uuid.UUID,
        payload: OrderStatusUpdate,
    ) -> OrderRead:
        """
        Admin-only status update with simple state machine:

          pending   -> confirmed, cancelled
          confirmed -> shipped, cancelled
          shipped   -> delivered
          delivered -> (no change)
          cancelled -> (no change)

        Any invalid transition raises 400. Cancelling restocks.
        """
        with unit_of_work(session):
            order = self.order_repo.get_by_id(session, order_id)
            if not order:
                raise NotFoundError("Order not found", order_id=order_id)

            current = order.status
            new = payload.status

            if current != new:
                if new not in STATUS_TRANSITIONS.get(current, set()):
                    raise ValidationError(
                        f"Invalid status transition: {current} -> {new}",
                        field="status",
                    )
                if not self.order_repo.transition_status(session, order_id, (current,), new):
                    raise ConflictError("Order status changed concurrently; refresh and retry")
                if new == "cancelled":
                    self._restock(session, order_id)
                session.refresh(order)

            dto = OrderRead.from_order(order)

        if current != new:
            logger.info("Order %s status %s -> %s", order_id, current, new)
        return dto

    # -------- Helpers --------

    def _get_owned_order(
        self,
        session: Session,
        user_id: uuid.UUID,
        order_id: uuid.UUID,
    ) -> Order:
        order = self.order_repo.get_by_id(session, order_id)
        if not order or order.user_id != user_id:
            raise NotFoundError("Order not found", order_id=order_id)
        return order

    def _check_stock(
        self,
        lines: list[ResolvedLine],
        current: dict[uuid.UUID, StockSnapshot],
    ) -> None:
        requested: dict[uuid.UUID, int] = {}
        observed: dict[uuid.UUID, int] = {}
        for line in lines:
            requested[line.product_id] = requested.get(line.product_id, 0) + line.quantity
            observed[line.product_id] = max(
                observed.get(line.product_id, 0), line.observed_stock
            )

        for product_id, quantity in requested.items():
            snapshot = current.get(product_id)
            if snapshot is None:
                raise NotFoundError(f"Product not found: {product_id}", product_id=product_id)
            if not snapshot.is_active:
                raise ValidationError(f"Product is inactive: {product_id}", product_id=product_id)
            if snapshot.stock >= quantity:
                continue

            # Enough stock when the request was resolved => someone took it since
            if observed[product_id] >= quantity:
                logger.warning(
                    "Stock race on product %s: requested %s, observed %s, now %s",
                    product_id,
                    quantity,
                    observed[product_id],
                    snapshot.stock,
                )
                raise StockRaceError(
                    f"Stock for product {product_id} was taken by another order "
                    f"(have {snapshot.stock}, requested {quantity}); refresh and retry",
                    product_id=product_id,
                )
            raise InsufficientStockError(
                f"Insufficient stock for product {product_id} "
                f"(have {snapshot.stock}, requested {quantity})",
                product_id=product_id,
            )

    def _compute_total(
        self,
        lines: list[ResolvedLine],
        current: dict[uuid.UUID, StockSnapshot],
    ) -> float:
        total = 0.0
        for line in lines:
            total += current[line.product_id].price * line.quantity
        return round(total, 2)

    def _check_declared_total(self, computed: float, declared: float | None) -> None:
        if declared is None or abs(declared - computed) <= TOTAL_TOLERANCE:
            return
        if self.enforce_declared_total:
            raise ValidationError(
                f"Declared total {declared:.2f} does not match computed total {computed:.2f}",
                field="declared_total",
            )
        logger.warning(
            "Declared total %.2f differs from computed %.2f; storing computed",
            declared,
            computed,
        )

    def _restock(self, session: Session, order_id: uuid.UUID) -> list[OrderItem]:
        items = self.order_repo.list_items_for_order(session, order_id)
        for item in items:
            self.ledger.release_stock(session, item.product_id, item.quantity)
        return items

    def _build_order_with_items_dto(
        self,
        order: Order,
        items: list[OrderItem],
    ) -> OrderWithItemsRead:
        """
        Compose OrderWithItemsRead from ORM models.
        """
        base = OrderRead.from_order(order)
        return OrderWithItemsRead(
            **base.model_dump(),
            items=[
                OrderItemRead(
                    id=it.id,
                    order_id=it.order_id,
                    product_id=it.product_id,
                    quantity=it.quantity,
                    unit_price=it.unit_price,
                    price=it.price,
                    selected_color=it.selected_color,
                    selected_size=it.selected_size,
                )
                for it in items
            ],
        )
