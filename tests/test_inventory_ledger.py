import uuid

import pytest

from storefront.models.coupon import Coupon
from storefront.models.product import Product
from storefront.services.inventory_ledger import InventoryLedger


@pytest.fixture
def ledger():
    return InventoryLedger()


class TestConditionalDecrement:
    """Guarded stock reservation"""

    def test_reserves_when_stock_suffices(self, ledger, session_factory, make_product, fetch):
        product_id = make_product(stock=5)

        with session_factory() as session:
            affected = ledger.reserve_stock(session, product_id, 3)
            session.commit()

        assert affected == 1
        product = fetch(Product, product_id)
        assert product.stock == 2
        assert product.sold == 3

    def test_reserves_exact_remaining_stock(self, ledger, session_factory, make_product, fetch):
        product_id = make_product(stock=2)

        with session_factory() as session:
            assert ledger.reserve_stock(session, product_id, 2) == 1
            session.commit()

        assert fetch(Product, product_id).stock == 0

    def test_guard_failure_changes_nothing(self, ledger, session_factory, make_product, fetch):
        product_id = make_product(stock=1)

        with session_factory() as session:
            affected = ledger.reserve_stock(session, product_id, 2)
            session.commit()

        assert affected == 0
        product = fetch(Product, product_id)
        assert product.stock == 1
        assert product.sold == 0

    @pytest.mark.parametrize("delta", [0, -1, True, 1.5])
    def test_rejects_non_positive_delta(self, ledger, session_factory, make_product, delta):
        product_id = make_product(stock=5)

        with session_factory() as session:
            with pytest.raises(ValueError):
                ledger.conditional_decrement(session, Product, product_id, "stock", delta)


class TestIncrement:
    def test_release_returns_units(self, ledger, session_factory, make_product, fetch):
        product_id = make_product(stock=5)
        with session_factory() as session:
            ledger.reserve_stock(session, product_id, 4)
            session.commit()

        with session_factory() as session:
            assert ledger.release_stock(session, product_id, 4) == 1
            session.commit()

        product = fetch(Product, product_id)
        assert product.stock == 5
        assert product.sold == 0

    def test_release_never_drives_sold_negative(self, ledger, session_factory, make_product, fetch):
        product_id = make_product(stock=5)

        with session_factory() as session:
            ledger.release_stock(session, product_id, 2)
            session.commit()

        product = fetch(Product, product_id)
        assert product.stock == 7
        assert product.sold == 0

    def test_coupon_use_respects_limit(self, ledger, session_factory, make_coupon, fetch):
        coupon_id = make_coupon(usage_limit=2, used=1)

        with session_factory() as session:
            assert ledger.consume_coupon_use(session, coupon_id) == 1
            assert ledger.consume_coupon_use(session, coupon_id) == 0
            session.commit()

        assert fetch(Coupon, coupon_id).used == 2

    def test_zero_limit_means_unlimited(self, ledger, session_factory, make_coupon, fetch):
        coupon_id = make_coupon(usage_limit=0, used=500)

        with session_factory() as session:
            assert ledger.consume_coupon_use(session, coupon_id) == 1
            session.commit()

        assert fetch(Coupon, coupon_id).used == 501


class TestCurrentStock:
    def test_reads_bypass_identity_map(self, ledger, session_factory, make_product):
        product_id = make_product(stock=4, price=12.5)

        with session_factory() as session:
            cached = session.get(Product, product_id)
            ledger.reserve_stock(session, product_id, 1)

            snapshot = ledger.current_stock(session, [product_id, product_id])
            # the loaded object still shows the pre-update value
            assert cached.stock == 4
            session.rollback()

        assert snapshot[product_id].stock == 3
        assert snapshot[product_id].price == 12.5
        assert snapshot[product_id].is_active is True

    def test_missing_products_are_absent(self, ledger, session_factory):
        with session_factory() as session:
            assert ledger.current_stock(session, [uuid.uuid4()]) == {}
            assert ledger.current_stock(session, []) == {}
