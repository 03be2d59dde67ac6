# storefront/repositories/cart_repo.py
import uuid

from sqlalchemy import delete, update
from sqlmodel import Session, select

from storefront.models.cart import CartItem


class CartRepository:
    """
    Data access layer for cart_items.

    Order placement deletes rows inside its own transaction, so
    `delete_for_user` does not commit, and neither does the guarded
    `update_quantity`. The plain create/delete used by the cart endpoints
    do.
    """

    def list_for_user(self, session: Session, user_id: uuid.UUID) -> list[CartItem]:
        stmt = (
            select(CartItem)
            .where(CartItem.user_id == user_id)
            .order_by(CartItem.created_at)
            .execution_options(populate_existing=True)
        )
        return session.exec(stmt).all()

    def get_by_id(self, session: Session, item_id: uuid.UUID) -> CartItem | None:
        return session.get(CartItem, item_id, populate_existing=True)

    # CRUD
    def create(self, session: Session, item: CartItem) -> CartItem:
        session.add(item)
        session.commit()
        session.refresh(item)
        return item

    def delete(self, session: Session, item: CartItem) -> None:
        session.delete(item)
        session.commit()

    def update_quantity(
        self,
        session: Session,
        user_id: uuid.UUID,
        item_id: uuid.UUID,
        quantity: int,
    ) -> int:
        """Owner-scoped quantity change. No commit; returns rows updated."""
        stmt = (
            update(CartItem)
            .where(CartItem.id == item_id, CartItem.user_id == user_id)
            .values(quantity=quantity)
            .execution_options(synchronize_session=False)
        )
        return session.exec(stmt).rowcount

    def delete_for_user(
        self,
        session: Session,
        user_id: uuid.UUID,
        item_ids: list[uuid.UUID],
    ) -> int:
        """
        Delete the given rows, scoped by owner. No commit.

        Returns the number of rows actually deleted.
        """
        if not item_ids:
            return 0
        stmt = (
            delete(CartItem)
            .where(CartItem.id.in_(item_ids), CartItem.user_id == user_id)
            .execution_options(synchronize_session=False)
        )
        return session.exec(stmt).rowcount
