# storefront/services/cart_resolver.py
import re
import uuid
from typing import Any

from sqlmodel import Session

from storefront.core.errors import (
    InvalidQuantityError,
    NotFoundError,
    OwnershipError,
    ValidationError,
)
from storefront.repositories.cart_repo import CartRepository
from storefront.repositories.product_repo import ProductRepository
from storefront.schemas.order import OrderLineIn, ResolvedLine

_INTEGER_TEXT = re.compile(r"-?[0-9]+")


def parse_quantity(raw: Any, default: int, ref: str) -> int:
    """
    Coerce a requested quantity into a positive int.

    Accepts ints, integral floats and digit strings. Booleans, fractions,
    zero and negatives are rejected.
    """
    if raw is None:
        return default

    if isinstance(raw, bool):
        value = None
    elif isinstance(raw, int):
        value = raw
    elif isinstance(raw, float):
        value = int(raw) if raw.is_integer() else None
    elif isinstance(raw, str):
        text = raw.strip()
        # ASCII digits only; int() alone would take "1_000" or "٣"
        value = int(text) if _INTEGER_TEXT.fullmatch(text) else None
    else:
        value = None

    if value is None or value <= 0:
        raise InvalidQuantityError(
            f"Invalid quantity {raw!r} for {ref}",
            field="quantity",
        )
    return value


class CartSnapshotResolver:
    """
    Turns requested lines into concrete, priced lines.

    Read-only: it never touches stock or deletes cart rows. The order
    coordinator re-reads stock inside its own transaction.
    """

    def __init__(self, cart_repo: CartRepository, product_repo: ProductRepository):
        self.cart_repo = cart_repo
        self.product_repo = product_repo

    def resolve(
        self,
        session: Session,
        user_id: uuid.UUID,
        flow: str,
        lines: list[OrderLineIn],
    ) -> list[ResolvedLine]:
        if not lines:
            raise ValidationError("No items provided", field="lines")

        if flow == "cart":
            self._check_cart_lines(lines)
            return [self._resolve_cart_line(session, user_id, line) for line in lines]
        if flow == "buy_now":
            return [self._resolve_buy_now_line(session, line) for line in lines]

        raise ValidationError(f"Unknown order flow: {flow!r}", field="flow")

    # ---- internal helpers ----

    def _check_cart_lines(self, lines: list[OrderLineIn]) -> None:
        seen: set[uuid.UUID] = set()
        for line in lines:
            if line.cart_row_id is None:
                raise ValidationError(
                    "cart_row_id is required for cart orders",
                    field="cart_row_id",
                )
            if line.cart_row_id in seen:
                raise ValidationError(
                    f"Cart item listed twice: {line.cart_row_id}",
                    field="cart_row_id",
                )
            seen.add(line.cart_row_id)

    def _resolve_cart_line(
        self,
        session: Session,
        user_id: uuid.UUID,
        line: OrderLineIn,
    ) -> ResolvedLine:
        row = self.cart_repo.get_by_id(session, line.cart_row_id)
        if row is None:
            raise NotFoundError(
                f"Cart item not found: {line.cart_row_id}",
                cart_row_id=line.cart_row_id,
            )
        if row.user_id != user_id:
            raise OwnershipError(
                f"Cart item not owned by user: {line.cart_row_id}",
                cart_row_id=line.cart_row_id,
            )

        quantity = parse_quantity(line.quantity, row.quantity, f"cart item {row.id}")
        product = self._get_orderable_product(session, row.product_id)

        return ResolvedLine(
            product_id=product.id,
            quantity=quantity,
            unit_price=product.price,
            observed_stock=product.stock,
            selected_size=line.selected_size or row.selected_size,
            selected_color=line.selected_color or row.selected_color,
            source_cart_row_id=row.id,
        )

    def _resolve_buy_now_line(self, session: Session, line: OrderLineIn) -> ResolvedLine:
        if line.product_id is None:
            raise ValidationError(
                "product_id is required for buy-now orders",
                field="product_id",
            )

        quantity = parse_quantity(line.quantity, 1, f"product {line.product_id}")
        product = self._get_orderable_product(session, line.product_id)

        return ResolvedLine(
            product_id=product.id,
            quantity=quantity,
            unit_price=product.price,
            observed_stock=product.stock,
            selected_size=line.selected_size,
            selected_color=line.selected_color,
        )

    def _get_orderable_product(self, session: Session, product_id: uuid.UUID):
        product = self.product_repo.get_by_id(session, product_id)
        if product is None:
            raise NotFoundError(f"Product not found: {product_id}", product_id=product_id)
        if not product.is_active:
            raise ValidationError(f"Product is inactive: {product_id}", product_id=product_id)
        return product
