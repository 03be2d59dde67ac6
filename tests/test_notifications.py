import logging
import uuid
from datetime import datetime

import pytest
import requests

from storefront.schemas.order import OrderItemRead, OrderWithItemsRead
from storefront.services.notifications import (
    OrderNotifier,
    ShippingLabelClient,
    render_confirmation,
)


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload or {}

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self._payload


class FakeHttp:
    def __init__(self, response=None, error=None):
        self.response = response or FakeResponse(payload={"shipment_id": "SHP-1"})
        self.error = error
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.error:
            raise self.error
        return self.response


@pytest.fixture
def order(address) -> OrderWithItemsRead:
    order_id = uuid.uuid4()
    return OrderWithItemsRead(
        id=order_id,
        user_id=uuid.uuid4(),
        address_id=None,
        shipping_address=address,
        payment_method="cod",
        payment_details={},
        total_amount=998.0,
        declared_total=998.0,
        status="confirmed",
        created_at=datetime(2026, 10, 1, 12, 30),
        items=[
            OrderItemRead(
                id=uuid.uuid4(),
                order_id=order_id,
                product_id=uuid.uuid4(),
                quantity=2,
                unit_price=499.0,
                price=998.0,
                selected_size="L",
            )
        ],
    )


class TestShippingLabelClient:
    def test_disabled_without_url(self, order):
        http = FakeHttp()
        client = ShippingLabelClient(url="", http=http)

        assert client.create_label(order) is None
        assert http.calls == []

    def test_posts_order_payload(self, order):
        http = FakeHttp()
        client = ShippingLabelClient(
            url="https://courier.example/labels", api_token="tok", timeout=3, http=http
        )

        assert client.create_label(order) == {"shipment_id": "SHP-1"}

        ((url, kwargs),) = http.calls
        assert url == "https://courier.example/labels"
        assert kwargs["headers"]["Authorization"] == "Bearer tok"
        assert kwargs["timeout"] == 3
        payload = kwargs["json"]
        assert payload["order_id"] == str(order.id)
        assert payload["shipping_address"]["pincode"] == "411001"
        assert payload["order_items"][0]["units"] == 2

    def test_http_errors_raise(self, order):
        client = ShippingLabelClient(
            url="https://courier.example/labels", http=FakeHttp(FakeResponse(status_code=502))
        )

        with pytest.raises(requests.HTTPError):
            client.create_label(order)


class TestOrderNotifier:
    def test_sends_label_and_mail(self, order):
        http = FakeHttp()
        sent = []
        notifier = OrderNotifier(
            shipping=ShippingLabelClient(url="https://courier.example/labels", http=http),
            mailer=lambda **kwargs: sent.append(kwargs),
            mail_enabled=lambda: True,
        )

        notifier.order_placed(order, "buyer@example.com")

        assert len(http.calls) == 1
        assert sent[0]["to_email"] == "buyer@example.com"
        assert str(order.id) in sent[0]["subject"]

    def test_failures_are_logged_not_raised(self, order, caplog):
        def broken_mailer(**kwargs):
            raise ConnectionError("smtp down")

        notifier = OrderNotifier(
            shipping=ShippingLabelClient(
                url="https://courier.example/labels",
                http=FakeHttp(error=requests.ConnectionError("courier down")),
            ),
            mailer=broken_mailer,
            mail_enabled=lambda: True,
        )

        with caplog.at_level(logging.ERROR):
            notifier.order_placed(order, "buyer@example.com")

        assert "Shipping label creation failed" in caplog.text
        assert "Confirmation email failed" in caplog.text

    def test_mail_skipped_when_unconfigured(self, order):
        sent = []
        notifier = OrderNotifier(
            shipping=ShippingLabelClient(url="", http=FakeHttp()),
            mailer=lambda **kwargs: sent.append(kwargs),
            mail_enabled=lambda: False,
        )

        notifier.order_placed(order, "buyer@example.com")

        assert sent == []


def test_confirmation_text(order):
    subject, body = render_confirmation(order)

    assert str(order.id) in subject
    assert "2 x" in body
    assert "Total: 998.00" in body
