# storefront/repositories/order_repo.py
import uuid

from sqlalchemy import update
from sqlmodel import Session, select

from storefront.models.order import Order, OrderItem


class OrderRepository:
    """
    Data access layer for orders and order_items.

    NOTE:
      - No commits here; order creation is a multi-step transaction.
        The service is responsible for the unit of work.
    """

    # ---- Orders ----

    def list_for_user(
        self,
        session: Session,
        user_id: uuid.UUID,
        skip: int = 0,
        limit: int = 50,
    ) -> list[Order]:
        stmt = (
            select(Order)
            .where(Order.user_id == user_id)
            .order_by(Order.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        return session.exec(stmt).all()

    def list_all(
        self,
        session: Session,
        skip: int = 0,
        limit: int = 50,
        status: str | None = None,
    ) -> list[Order]:
        stmt = select(Order)
        if status:
            stmt = stmt.where(Order.status == status)
        stmt = stmt.order_by(Order.created_at.desc()).offset(skip).limit(limit)
        return session.exec(stmt).all()

    def get_by_id(self, session: Session, order_id: uuid.UUID) -> Order | None:
        return session.get(Order, order_id)

    def create_order(self, session: Session, order: Order) -> Order:
        """
        Insert an Order without committing.
        """
        session.add(order)
        session.flush()
        return order

    def transition_status(
        self,
        session: Session,
        order_id: uuid.UUID,
        from_statuses: tuple[str, ...],
        to_status: str,
        user_id: uuid.UUID | None = None,
        extra_values: dict | None = None,
    ) -> int:
        """
        Compare-and-set the status: only rows currently in `from_statuses`
        (and owned by `user_id`, when given) change. Returns affected rows.
        """
        stmt = update(Order).where(
            Order.id == order_id,
            Order.status.in_(from_statuses),
        )
        if user_id is not None:
            stmt = stmt.where(Order.user_id == user_id)

        values = {"status": to_status}
        if extra_values:
            values.update(extra_values)

        stmt = stmt.values(**values)
        return session.exec(stmt).rowcount

    # ---- Order items ----

    def list_items_for_order(
        self,
        session: Session,
        order_id: uuid.UUID,
    ) -> list[OrderItem]:
        stmt = select(OrderItem).where(OrderItem.order_id == order_id)
        return session.exec(stmt).all()

    def create_item(self, session: Session, item: OrderItem) -> OrderItem:
        session.add(item)
        session.flush()
        return item
