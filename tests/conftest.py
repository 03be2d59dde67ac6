"""
Test Suite Configuration
"""
import uuid
from datetime import datetime

import pytest
from jose import jwt
from sqlmodel import Session, select

from storefront.core.config import get_settings
from storefront.database import build_engine, create_db_and_tables
from storefront.models.cart import CartItem
from storefront.models.coupon import Coupon
from storefront.models.product import Product
from storefront.models.user import User
from storefront.repositories.cart_repo import CartRepository
from storefront.repositories.coupon_repo import CouponRepository
from storefront.repositories.order_repo import OrderRepository
from storefront.repositories.product_repo import ProductRepository
from storefront.services.coupon_service import CouponService
from storefront.services.order_service import OrderService


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite so concurrent sessions really contend for the writer lock"""
    test_engine = build_engine(f"sqlite:///{tmp_path / 'storefront-test.db'}")
    create_db_and_tables(test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    """One Session per simulated request"""

    def factory() -> Session:
        return Session(engine, expire_on_commit=False)

    return factory


@pytest.fixture
def fetch(session_factory):
    """Read a row through a fresh session (no identity-map leftovers)"""

    def _fetch(model, entity_id):
        with session_factory() as session:
            return session.get(model, entity_id)

    return _fetch


@pytest.fixture
def count_rows(session_factory):
    def _count(model) -> int:
        with session_factory() as session:
            return len(session.exec(select(model)).all())

    return _count


@pytest.fixture
def make_user(session_factory):
    def _make(role: str = "user") -> uuid.UUID:
        user_id = uuid.uuid4()
        with session_factory() as session:
            session.add(
                User(
                    id=user_id,
                    email=f"{user_id.hex[:8]}@example.com",
                    name=user_id.hex[:8],
                    role=role,
                )
            )
            session.commit()
        return user_id

    return _make


@pytest.fixture
def make_product(session_factory):
    def _make(
        stock: int = 10,
        price: float = 100.0,
        name: str = "Oversized Tee",
        is_active: bool = True,
    ) -> uuid.UUID:
        product = Product(name=name, price=price, stock=stock, is_active=is_active)
        with session_factory() as session:
            session.add(product)
            session.commit()
            return product.id

    return _make


@pytest.fixture
def make_cart_line(session_factory):
    def _make(
        user_id: uuid.UUID,
        product_id: uuid.UUID,
        quantity: int = 1,
        selected_size: str | None = None,
        selected_color: str | None = None,
    ) -> uuid.UUID:
        row = CartItem(
            user_id=user_id,
            product_id=product_id,
            quantity=quantity,
            selected_size=selected_size,
            selected_color=selected_color,
        )
        with session_factory() as session:
            session.add(row)
            session.commit()
            return row.id

    return _make


@pytest.fixture
def make_coupon(session_factory):
    def _make(
        code: str = "WELCOME10",
        type: str = "percentage",
        amount: float = 10,
        min_purchase: float = 0,
        usage_limit: int = 0,
        used: int = 0,
        active: bool = True,
        starts_at: datetime | None = None,
        ends_at: datetime | None = None,
    ) -> uuid.UUID:
        coupon = Coupon(
            code=code,
            type=type,
            amount=amount,
            min_purchase=min_purchase,
            usage_limit=usage_limit,
            used=used,
            active=active,
            starts_at=starts_at,
            ends_at=ends_at,
        )
        with session_factory() as session:
            session.add(coupon)
            session.commit()
            return coupon.id

    return _make


@pytest.fixture
def address() -> dict:
    return {
        "label": "Home",
        "line1": "12 MG Road",
        "city": "Pune",
        "state": "Maharashtra",
        "pincode": "411001",
        "country": "India",
        "phone": "9876543210",
    }


@pytest.fixture
def order_service() -> OrderService:
    return OrderService(
        OrderRepository(),
        CartRepository(),
        ProductRepository(),
        enforce_declared_total=True,
    )


@pytest.fixture
def coupon_service() -> CouponService:
    return CouponService(CouponRepository())


@pytest.fixture
def token_for():
    """Sign an access token the way the token issuer would"""

    def _token(user_id: uuid.UUID, role: str = "user", email: str | None = None) -> str:
        settings = get_settings()
        claims = {
            "sub": str(user_id),
            "email": email or f"{user_id.hex[:8]}@example.com",
            "role": role,
        }
        return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALG)

    return _token
