# storefront/services/inventory_ledger.py
import uuid
from typing import Iterable, NamedTuple

from sqlalchemy import case, or_, update
from sqlmodel import Session, SQLModel, select

from storefront.models.coupon import Coupon
from storefront.models.product import Product


class StockSnapshot(NamedTuple):
    stock: int
    price: float
    is_active: bool


def _check_delta(delta: int) -> None:
    if isinstance(delta, bool) or not isinstance(delta, int) or delta <= 0:
        raise ValueError(f"delta must be a positive integer, got {delta!r}")


class InventoryLedger:
    """
    Counter primitives shared by the order and coupon coordinators.

    Every mutation is a single UPDATE whose affected-row count is the only
    success signal. Nothing here commits: callers own the transaction and
    pair each counter change with a ledger/audit row in the same unit of
    work.
    """

    # ---- generic primitives ----

    def conditional_decrement(
        self,
        session: Session,
        model: type[SQLModel],
        entity_id: uuid.UUID,
        column: str,
        delta: int,
        companions: Iterable[str] = (),
    ) -> int:
        """
        UPDATE model SET column = column - delta [, companion = companion + delta]
        WHERE id = entity_id AND column >= delta

        Returns the number of rows affected. 0 means the guard failed.
        """
        _check_delta(delta)
        guarded = getattr(model, column)

        values = {column: guarded - delta}
        for name in companions:
            values[name] = getattr(model, name) + delta

        stmt = (
            update(model)
            .where(model.id == entity_id, guarded >= delta)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return session.exec(stmt).rowcount

    def increment(
        self,
        session: Session,
        model: type[SQLModel],
        entity_id: uuid.UUID,
        column: str,
        delta: int = 1,
        guard=None,
        extra_values: dict | None = None,
    ) -> int:
        """
        UPDATE model SET column = column + delta WHERE id = entity_id [AND guard]

        Unconditional unless `guard` (a SQL expression) is given.
        """
        _check_delta(delta)
        target = getattr(model, column)

        values = {column: target + delta}
        if extra_values:
            values.update(extra_values)

        stmt = update(model).where(model.id == entity_id)
        if guard is not None:
            stmt = stmt.where(guard)
        stmt = stmt.values(**values).execution_options(synchronize_session=False)
        return session.exec(stmt).rowcount

    # ---- products ----

    def current_stock(
        self,
        session: Session,
        product_ids: Iterable[uuid.UUID],
    ) -> dict[uuid.UUID, StockSnapshot]:
        """
        Re-read stock/price straight from the store (bypasses the identity map).
        """
        ids = list(set(product_ids))
        if not ids:
            return {}
        stmt = select(Product.id, Product.stock, Product.price, Product.is_active).where(
            Product.id.in_(ids)
        )
        return {
            row[0]: StockSnapshot(stock=row[1], price=row[2], is_active=row[3])
            for row in session.exec(stmt).all()
        }

    def reserve_stock(self, session: Session, product_id: uuid.UUID, quantity: int) -> int:
        """stock -= quantity, sold += quantity, only if stock >= quantity."""
        return self.conditional_decrement(
            session,
            Product,
            product_id,
            "stock",
            quantity,
            companions=("sold",),
        )

    def release_stock(self, session: Session, product_id: uuid.UUID, quantity: int) -> int:
        """Return cancelled units to stock; `sold` never drops below zero."""
        return self.increment(
            session,
            Product,
            product_id,
            "stock",
            quantity,
            extra_values={
                "sold": case(
                    (Product.sold >= quantity, Product.sold - quantity),
                    else_=0,
                )
            },
        )

    # ---- coupons ----

    def consume_coupon_use(self, session: Session, coupon_id: uuid.UUID) -> int:
        """used += 1 unless a nonzero usage_limit has been reached."""
        return self.increment(
            session,
            Coupon,
            coupon_id,
            "used",
            1,
            guard=or_(Coupon.usage_limit == 0, Coupon.used < Coupon.usage_limit),
        )
