"""
Concurrent checkouts and redemptions against a shared SQLite file.

Each worker thread owns its session, the way each request does in the app.
"""
import threading

import pytest

from storefront.core.errors import (
    InsufficientStockError,
    StockRaceError,
    StorefrontError,
    UsageLimitReachedError,
)
from storefront.models.coupon import Coupon, CouponUsage
from storefront.models.order import Order
from storefront.models.product import Product
from storefront.schemas.order import (
    OrderLineIn,
    OrderWithItemsRead,
    PlaceOrderRequest,
    ShippingAddress,
)

JOIN_TIMEOUT = 30


def run_workers(target, args_list):
    results = {}
    lock = threading.Lock()

    def wrapper(key, *args):
        try:
            outcome = target(*args)
        except StorefrontError as exc:
            outcome = exc
        with lock:
            results[key] = outcome

    threads = [
        threading.Thread(target=wrapper, args=(i, *args))
        for i, args in enumerate(args_list)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(JOIN_TIMEOUT)

    assert len(results) == len(args_list), "a worker crashed or hung"
    return list(results.values())


class TestLastUnit:
    def test_two_buyers_one_unit(self, order_service, session_factory, make_user, make_product, fetch, address):
        """Both buyers see stock 1; exactly one gets it, the other hits the race."""
        product_id = make_product(stock=1, price=1499.0)
        buyers = [make_user(), make_user()]
        resolved = threading.Barrier(len(buyers))

        def buy(user_id):
            with session_factory() as session:
                lines = order_service.resolver.resolve(
                    session, user_id, "buy_now", [OrderLineIn(product_id=product_id, quantity=1)]
                )
                session.rollback()
                resolved.wait(timeout=JOIN_TIMEOUT)
                return order_service.place_order(
                    session, user_id, "buy_now", lines, ShippingAddress(**address)
                )

        outcomes = run_workers(buy, [(user_id,) for user_id in buyers])

        placed = [o for o in outcomes if isinstance(o, OrderWithItemsRead)]
        raced = [o for o in outcomes if isinstance(o, StockRaceError)]
        assert len(placed) == 1
        assert len(raced) == 1

        product = fetch(Product, product_id)
        assert product.stock == 0
        assert product.sold == 1

    def test_loser_resolving_after_commit_sees_shortage(
        self, order_service, session_factory, make_user, make_product, fetch, address
    ):
        """Once the winner has committed, a later snapshot already shows stock 0."""
        product_id = make_product(stock=1)
        payload = PlaceOrderRequest(
            flow="buy_now",
            lines=[{"product_id": product_id, "quantity": 1}],
            shipping_address=address,
        )

        with session_factory() as session:
            order_service.checkout(session, make_user(), payload)

        with session_factory() as session:
            with pytest.raises(InsufficientStockError):
                order_service.checkout(session, make_user(), payload)

        assert fetch(Product, product_id).stock == 0

    def test_stock_never_goes_negative(
        self, order_service, session_factory, make_user, make_product, fetch, count_rows, address
    ):
        product_id = make_product(stock=3)
        buyers = [make_user() for _ in range(6)]

        def buy(user_id):
            payload = PlaceOrderRequest(
                flow="buy_now",
                lines=[{"product_id": product_id, "quantity": 1}],
                shipping_address=address,
            )
            with session_factory() as session:
                return order_service.checkout(session, user_id, payload)

        outcomes = run_workers(buy, [(user_id,) for user_id in buyers])

        placed = [o for o in outcomes if isinstance(o, OrderWithItemsRead)]
        rejected = [o for o in outcomes if isinstance(o, (StockRaceError, InsufficientStockError))]
        assert len(placed) == 3
        assert len(rejected) == 3

        product = fetch(Product, product_id)
        assert product.stock == 0
        assert product.sold == 3
        assert count_rows(Order) == 3


class TestCouponLimit:
    def test_single_use_coupon_redeemed_once(self, coupon_service, session_factory, make_coupon, fetch, count_rows):
        coupon_id = make_coupon(code="WELCOME10", usage_limit=1)
        attempts = 2
        ready = threading.Barrier(attempts)

        def redeem():
            with session_factory() as session:
                ready.wait(timeout=JOIN_TIMEOUT)
                return coupon_service.redeem(session, "WELCOME10", 1000)

        outcomes = run_workers(redeem, [() for _ in range(attempts)])

        succeeded = [o for o in outcomes if not isinstance(o, StorefrontError)]
        limited = [o for o in outcomes if isinstance(o, UsageLimitReachedError)]
        assert len(succeeded) == 1
        assert len(limited) == 1
        assert succeeded[0].discount_amount == 100.0

        assert fetch(Coupon, coupon_id).used == 1
        assert count_rows(CouponUsage) == 1

    def test_used_never_exceeds_limit(self, coupon_service, session_factory, make_coupon, fetch, count_rows):
        limit = 3
        coupon_id = make_coupon(code="FLAT50", type="fixed", amount=50, usage_limit=limit)

        def redeem():
            with session_factory() as session:
                return coupon_service.redeem(session, "flat50", "250")

        outcomes = run_workers(redeem, [() for _ in range(limit * 2)])

        assert sum(not isinstance(o, StorefrontError) for o in outcomes) == limit
        assert all(
            isinstance(o, UsageLimitReachedError)
            for o in outcomes
            if isinstance(o, StorefrontError)
        )
        assert fetch(Coupon, coupon_id).used == limit
        assert count_rows(CouponUsage) == limit
