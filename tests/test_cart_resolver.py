import uuid

import pytest

from storefront.core.errors import (
    InvalidQuantityError,
    NotFoundError,
    OwnershipError,
    ValidationError,
)
from storefront.models.cart import CartItem
from storefront.models.product import Product
from storefront.repositories.cart_repo import CartRepository
from storefront.repositories.product_repo import ProductRepository
from storefront.schemas.order import OrderLineIn
from storefront.services.cart_resolver import CartSnapshotResolver, parse_quantity


@pytest.fixture
def resolver():
    return CartSnapshotResolver(CartRepository(), ProductRepository())


class TestParseQuantity:
    @pytest.mark.parametrize(
        "raw, expected",
        [(None, 7), (1, 1), (3.0, 3), ("4", 4), (" 2 ", 2)],
    )
    def test_accepts(self, raw, expected):
        assert parse_quantity(raw, 7, "line") == expected

    @pytest.mark.parametrize(
        "raw", [0, -1, "-3", "abc", "", "--5", "²", "1²", "1_000", "٣", 1.5, True, False, [1], {}]
    )
    def test_rejects(self, raw):
        with pytest.raises(InvalidQuantityError) as exc_info:
            parse_quantity(raw, 1, "line")
        assert exc_info.value.context["field"] == "quantity"


class TestCartFlow:
    def test_resolves_owned_rows(self, resolver, session_factory, make_user, make_product, make_cart_line):
        user_id = make_user()
        product_id = make_product(stock=6, price=250.0)
        row_id = make_cart_line(user_id, product_id, quantity=2, selected_size="M", selected_color="Black")

        with session_factory() as session:
            (line,) = resolver.resolve(session, user_id, "cart", [OrderLineIn(cart_row_id=row_id)])

        assert line.product_id == product_id
        assert line.quantity == 2
        assert line.unit_price == 250.0
        assert line.observed_stock == 6
        assert line.selected_size == "M"
        assert line.selected_color == "Black"
        assert line.source_cart_row_id == row_id

    def test_requested_quantity_overrides_row(self, resolver, session_factory, make_user, make_product, make_cart_line):
        user_id = make_user()
        row_id = make_cart_line(user_id, make_product(), quantity=2)

        with session_factory() as session:
            (line,) = resolver.resolve(
                session, user_id, "cart", [OrderLineIn(cart_row_id=row_id, quantity="5")]
            )

        assert line.quantity == 5

    def test_other_users_row_is_rejected(self, resolver, session_factory, make_user, make_product, make_cart_line, fetch):
        owner, intruder = make_user(), make_user()
        row_id = make_cart_line(owner, make_product())

        with session_factory() as session:
            with pytest.raises(OwnershipError):
                resolver.resolve(session, intruder, "cart", [OrderLineIn(cart_row_id=row_id)])

        assert fetch(CartItem, row_id) is not None

    def test_missing_row(self, resolver, session_factory, make_user):
        with session_factory() as session:
            with pytest.raises(NotFoundError):
                resolver.resolve(session, make_user(), "cart", [OrderLineIn(cart_row_id=uuid.uuid4())])

    def test_row_id_required(self, resolver, session_factory, make_user, make_product):
        with session_factory() as session:
            with pytest.raises(ValidationError):
                resolver.resolve(session, make_user(), "cart", [OrderLineIn(product_id=make_product())])

    def test_duplicate_rows_rejected(self, resolver, session_factory, make_user, make_product, make_cart_line):
        user_id = make_user()
        row_id = make_cart_line(user_id, make_product())

        with session_factory() as session:
            with pytest.raises(ValidationError):
                resolver.resolve(
                    session,
                    user_id,
                    "cart",
                    [OrderLineIn(cart_row_id=row_id), OrderLineIn(cart_row_id=row_id)],
                )

    def test_invalid_quantity(self, resolver, session_factory, make_user, make_product, make_cart_line):
        user_id = make_user()
        row_id = make_cart_line(user_id, make_product())

        with session_factory() as session:
            with pytest.raises(InvalidQuantityError):
                resolver.resolve(session, user_id, "cart", [OrderLineIn(cart_row_id=row_id, quantity=0)])


class TestBuyNowFlow:
    def test_defaults_quantity_to_one(self, resolver, session_factory, make_user, make_product):
        product_id = make_product(stock=3, price=99.0)

        with session_factory() as session:
            (line,) = resolver.resolve(session, make_user(), "buy_now", [OrderLineIn(product_id=product_id)])

        assert line.quantity == 1
        assert line.unit_price == 99.0
        assert line.source_cart_row_id is None

    def test_resolution_does_not_touch_stock(self, resolver, session_factory, make_user, make_product, fetch):
        product_id = make_product(stock=3)

        with session_factory() as session:
            resolver.resolve(session, make_user(), "buy_now", [OrderLineIn(product_id=product_id, quantity=3)])
            session.rollback()

        assert fetch(Product, product_id).stock == 3

    def test_unknown_product(self, resolver, session_factory, make_user):
        with session_factory() as session:
            with pytest.raises(NotFoundError):
                resolver.resolve(session, make_user(), "buy_now", [OrderLineIn(product_id=uuid.uuid4())])

    def test_inactive_product(self, resolver, session_factory, make_user, make_product):
        product_id = make_product(is_active=False)

        with session_factory() as session:
            with pytest.raises(ValidationError):
                resolver.resolve(session, make_user(), "buy_now", [OrderLineIn(product_id=product_id)])

    def test_product_id_required(self, resolver, session_factory, make_user):
        with session_factory() as session:
            with pytest.raises(ValidationError):
                resolver.resolve(session, make_user(), "buy_now", [OrderLineIn(quantity=1)])


def test_empty_request(resolver, session_factory, make_user):
    with session_factory() as session:
        with pytest.raises(ValidationError):
            resolver.resolve(session, make_user(), "buy_now", [])


def test_unknown_flow(resolver, session_factory, make_user, make_product):
    with session_factory() as session:
        with pytest.raises(ValidationError):
            resolver.resolve(session, make_user(), "wishlist", [OrderLineIn(product_id=make_product())])
