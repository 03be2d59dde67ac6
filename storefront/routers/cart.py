# storefront/routers/cart.py
import uuid

from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from storefront.core.auth import require_user
from storefront.database import get_session
from storefront.models.user import User
from storefront.repositories.cart_repo import CartRepository
from storefront.repositories.product_repo import ProductRepository
from storefront.schemas.cart import CartItemCreate, CartItemRead, CartItemUpdate, CartSummary
from storefront.services.cart_service import CartService

router = APIRouter(prefix="/cart", tags=["Cart"])

cart_repo = CartRepository()
product_repo = ProductRepository()
service = CartService(cart_repo, product_repo)


@router.get("", response_model=CartSummary)
def get_my_cart(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    """
    Get current user's cart summary.
    """
    return service.get_cart_summary(session, current_user.id)


@router.post("", response_model=CartItemRead, status_code=status.HTTP_201_CREATED)
def add_to_cart(
    payload: CartItemCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    """
    Add a product (with optional size/color) to the current user's cart.

    Returns the new cart line; its `id` is the `cart_row_id` used at checkout.
    """
    return service.add_to_cart(session, current_user.id, payload)


@router.delete("/{cart_row_id}", response_model=CartSummary)
def remove_cart_item(
    cart_row_id: uuid.UUID,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    """
    Remove a line from the cart.

    Returns the updated cart summary.
    """
    return service.remove_item(session, current_user.id, cart_row_id)


@router.put("/{cart_row_id}", response_model=CartSummary)
def update_cart_item(
    cart_row_id: uuid.UUID,
    payload: CartItemUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    """
    Change the quantity of a cart line.

    Stock is not checked here; it is verified when the order is placed.
    Returns the updated cart summary.
    """
    return service.update_quantity(session, current_user.id, cart_row_id, payload)
