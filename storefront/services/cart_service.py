# storefront/services/cart_service.py
import uuid

from sqlmodel import Session

from storefront.core.errors import NotFoundError, ValidationError
from storefront.database import unit_of_work
from storefront.models.cart import CartItem
from storefront.repositories.cart_repo import CartRepository
from storefront.repositories.product_repo import ProductRepository
from storefront.schemas.cart import CartItemCreate, CartItemRead, CartItemUpdate, CartSummary


class CartService:
    """
    Cart line management.

    Cart lines are only a wish list: stock is checked again (and reserved)
    when the order is placed, never here.
    """

    def __init__(self, cart_repo: CartRepository, product_repo: ProductRepository):
        self.cart_repo = cart_repo
        self.product_repo = product_repo

    def get_cart_summary(self, session: Session, user_id: uuid.UUID) -> CartSummary:
        """
        Return all cart lines with current prices and totals.
        """
        rows = self.cart_repo.list_for_user(session, user_id)
        products = self.product_repo.get_many(session, [r.product_id for r in rows])

        items: list[CartItemRead] = []
        total_qty = 0
        total_price = 0.0

        for row in rows:
            product = products.get(row.product_id)
            unit_price = product.price if product else 0.0
            line_total = round(row.quantity * unit_price, 2)
            total_qty += row.quantity
            total_price += line_total

            items.append(
                CartItemRead(
                    id=row.id,
                    product_id=row.product_id,
                    quantity=row.quantity,
                    selected_size=row.selected_size,
                    selected_color=row.selected_color,
                    product_name=product.name if product else None,
                    unit_price=unit_price,
                    available_stock=product.stock if product else 0,
                    line_total=line_total,
                    created_at=row.created_at,
                )
            )

        return CartSummary(
            items=items,
            total_quantity=total_qty,
            total_price=round(total_price, 2),
        )

    def add_to_cart(
        self,
        session: Session,
        user_id: uuid.UUID,
        payload: CartItemCreate,
    ) -> CartItemRead:
        """
        Add a new cart line. Each add creates its own row, so the same
        product can sit in the cart with different size/color selections.
        """
        with unit_of_work(session):
            product = self.product_repo.get_by_id(session, payload.product_id)
            if not product:
                raise NotFoundError(
                    f"Product not found: {payload.product_id}",
                    product_id=payload.product_id,
                )
            if not product.is_active:
                raise ValidationError(
                    f"Product is inactive: {payload.product_id}",
                    product_id=payload.product_id,
                )

            row = CartItem(
                user_id=user_id,
                product_id=product.id,
                quantity=payload.quantity,
                selected_size=payload.selected_size,
                selected_color=payload.selected_color,
            )
            session.add(row)
            session.flush()

            dto = CartItemRead(
                id=row.id,
                product_id=row.product_id,
                quantity=row.quantity,
                selected_size=row.selected_size,
                selected_color=row.selected_color,
                product_name=product.name,
                unit_price=product.price,
                available_stock=product.stock,
                line_total=round(row.quantity * product.price, 2),
                created_at=row.created_at,
            )
        return dto

    def update_quantity(
        self,
        session: Session,
        user_id: uuid.UUID,
        cart_row_id: uuid.UUID,
        payload: CartItemUpdate,
    ) -> CartSummary:
        """
        Change the quantity of one of the user's cart lines.

        Rows owned by someone else are reported as not found.
        """
        with unit_of_work(session):
            updated = self.cart_repo.update_quantity(
                session, user_id, cart_row_id, payload.quantity
            )
            if updated == 0:
                raise NotFoundError("Item not found in cart", cart_row_id=cart_row_id)

        return self.get_cart_summary(session, user_id)

    def remove_item(
        self,
        session: Session,
        user_id: uuid.UUID,
        cart_row_id: uuid.UUID,
    ) -> CartSummary:
        """
        Remove one of the user's cart lines and return the updated summary.
        """
        row = self.cart_repo.get_by_id(session, cart_row_id)
        if not row or row.user_id != user_id:
            raise NotFoundError("Item not found in cart", cart_row_id=cart_row_id)

        self.cart_repo.delete(session, row)
        return self.get_cart_summary(session, user_id)
