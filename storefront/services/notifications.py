# storefront/services/notifications.py
"""
Post-commit notifiers.

These run as FastAPI background tasks after the order transaction has
committed. A failure here is logged and left for reconciliation (e.g. a
confirmed order with no shipping label yet); it never touches the order.
"""

import logging
from typing import Callable

import requests

from storefront.core import email_client
from storefront.core.config import get_settings
from storefront.schemas.order import OrderWithItemsRead

logger = logging.getLogger(__name__)


class ShippingLabelClient:
    """
    Thin client for the courier aggregator's label endpoint.

    Disabled (returns None) when SHIPPING_LABEL_URL is not set.
    """

    def __init__(
        self,
        url: str | None = None,
        api_token: str | None = None,
        timeout: float | None = None,
        http: requests.Session | None = None,
    ):
        settings = get_settings()
        self.url = url if url is not None else settings.SHIPPING_LABEL_URL
        self.api_token = api_token if api_token is not None else settings.SHIPPING_API_TOKEN
        self.timeout = timeout if timeout is not None else settings.SHIPPING_TIMEOUT_SECONDS
        self.http = http or requests.Session()

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    def build_payload(self, order: OrderWithItemsRead) -> dict:
        address = order.shipping_address
        return {
            "order_id": str(order.id),
            "order_date": order.created_at.isoformat(),
            "payment_method": order.payment_method,
            "sub_total": order.total_amount,
            "shipping_address": {
                "name": address.get("label"),
                "address": address.get("line1"),
                "address_2": address.get("line2"),
                "city": address.get("city"),
                "state": address.get("state"),
                "pincode": address.get("pincode"),
                "country": address.get("country"),
                "phone": address.get("phone"),
            },
            "order_items": [
                {
                    "product_id": str(item.product_id),
                    "units": item.quantity,
                    "selling_price": item.unit_price,
                    "size": item.selected_size,
                    "color": item.selected_color,
                }
                for item in order.items
            ],
        }

    def create_label(self, order: OrderWithItemsRead) -> dict | None:
        if not self.enabled:
            logger.debug("Shipping label service not configured; skipping order %s", order.id)
            return None

        headers = {"Content-Type": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"

        response = self.http.post(
            self.url,
            json=self.build_payload(order),
            headers=headers,
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()


def render_confirmation(order: OrderWithItemsRead) -> tuple[str, str]:
    lines = [
        f"- {item.quantity} x {item.product_id} @ {item.unit_price:.2f}"
        for item in order.items
    ]
    subject = f"[Storefront] Order {order.id} received"
    body = (
        f"Thanks for your order!\n\n"
        f"Order: {order.id}\n"
        f"Status: {order.status}\n"
        + "\n".join(lines)
        + f"\n\nTotal: {order.total_amount:.2f}\n"
    )
    return subject, body


class OrderNotifier:
    """
    Fire-and-forget fan-out after an order commits.

    Each collaborator is tried independently; exceptions are logged with
    the order id and swallowed here, and only here.
    """

    def __init__(
        self,
        shipping: ShippingLabelClient | None = None,
        mailer: Callable[..., None] | None = None,
        mail_enabled: Callable[[], bool] | None = None,
    ):
        self.shipping = shipping or ShippingLabelClient()
        self.mailer = mailer or email_client.send_email
        self.mail_enabled = mail_enabled or email_client.is_configured

    def order_placed(self, order: OrderWithItemsRead, email: str | None = None) -> None:
        try:
            label = self.shipping.create_label(order)
            if label is not None:
                logger.info("Shipping label requested for order %s", order.id)
        except Exception:
            logger.exception("Shipping label creation failed for order %s", order.id)

        if not email or not self.mail_enabled():
            return
        try:
            subject, body = render_confirmation(order)
            self.mailer(to_email=email, subject=subject, text_body=body)
            logger.info("Confirmation email sent for order %s", order.id)
        except Exception:
            logger.exception("Confirmation email failed for order %s", order.id)
