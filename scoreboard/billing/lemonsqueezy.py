"""
LemonSqueezy REST client.

Responses are parsed once into typed records (RemoteSubscription,
RemoteVariant); nothing outside this module reads raw JSON:API payloads.
Each call is a single attempt with a fixed timeout and no retry.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import requests
from flask import current_app

from scoreboard.utils.timeutils import parse_datetime

logger = logging.getLogger(__name__)

NOT_FOUND = "not_found"
UPSTREAM_ERROR = "upstream_error"

JSON_API_MEDIA_TYPE = "application/vnd.api+json"


class LemonSqueezyError(Exception):
    """Typed provider failure: ``kind`` is ``not_found`` or ``upstream_error``."""

    def __init__(self, kind, message, status_code=None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status_code = status_code

    @property
    def is_not_found(self):
        return self.kind == NOT_FOUND


@dataclass(frozen=True)
class RemoteSubscription:
    id: Optional[str]
    status: str
    status_formatted: Optional[str]
    variant_id: Optional[str]
    product_id: Optional[str]
    order_id: Optional[str]
    customer_id: Optional[str]
    user_email: Optional[str]
    user_name: Optional[str]
    price_cents: Optional[int]
    currency: Optional[str]
    card_brand: Optional[str]
    card_last_four: Optional[str]
    payment_processor: Optional[str]
    test_mode: bool
    cancelled: bool
    created_at: Optional[datetime]
    renews_at: Optional[datetime]
    ends_at: Optional[datetime]
    customer_portal_url: Optional[str]
    update_payment_method_url: Optional[str]
    customer_portal_update_subscription_url: Optional[str]


@dataclass(frozen=True)
class RemoteVariant:
    id: Optional[str]
    name: Optional[str]
    price_cents: Optional[int]
    interval: Optional[str]
    status: Optional[str]


def _str_or_none(value):
    return None if value is None or value == "" else str(value)


def _int_or_none(value):
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _datetime_or_none(value):
    try:
        return parse_datetime(value)
    except (TypeError, ValueError):
        logger.warning(f"Unparseable timestamp from billing provider: {value!r}")
        return None


def _attributes(payload, resource):
    data = payload.get("data") if isinstance(payload, dict) else None
    attributes = data.get("attributes") if isinstance(data, dict) else None
    if not isinstance(attributes, dict):
        raise LemonSqueezyError(UPSTREAM_ERROR, f"Malformed {resource} payload: missing data.attributes")
    return data, attributes


def parse_subscription(payload):
    data, attr = _attributes(payload, "subscription")
    item = attr.get("first_subscription_item") or {}
    urls = attr.get("urls") or {}

    return RemoteSubscription(
        id=_str_or_none(data.get("id")),
        status=attr.get("status") or "",
        status_formatted=attr.get("status_formatted"),
        variant_id=_str_or_none(attr.get("variant_id")),
        product_id=_str_or_none(attr.get("product_id")),
        order_id=_str_or_none(attr.get("order_id")),
        customer_id=_str_or_none(attr.get("customer_id")),
        user_email=attr.get("user_email"),
        user_name=attr.get("user_name"),
        price_cents=_int_or_none(item.get("price")) if isinstance(item, dict) else None,
        currency=(item.get("currency") if isinstance(item, dict) else None) or attr.get("currency"),
        card_brand=attr.get("card_brand"),
        card_last_four=attr.get("card_last_four"),
        payment_processor=attr.get("payment_processor"),
        test_mode=bool(attr.get("test_mode", False)),
        cancelled=bool(attr.get("cancelled", False)),
        created_at=_datetime_or_none(attr.get("created_at")),
        renews_at=_datetime_or_none(attr.get("renews_at")),
        ends_at=_datetime_or_none(attr.get("ends_at")),
        customer_portal_url=urls.get("customer_portal"),
        update_payment_method_url=urls.get("update_payment_method"),
        customer_portal_update_subscription_url=urls.get("customer_portal_update_subscription"),
    )


def parse_variant(payload):
    data, attr = _attributes(payload, "variant")
    return RemoteVariant(
        id=_str_or_none(data.get("id")),
        name=attr.get("name"),
        price_cents=_int_or_none(attr.get("price")),
        interval=attr.get("interval"),
        status=attr.get("status"),
    )


class LemonSqueezyClient:
    """Thin client over the LemonSqueezy v1 API."""

    def __init__(self, api_key, base_url="https://api.lemonsqueezy.com/v1", timeout=10, session=None):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.http = session or requests.Session()

    def _headers(self):
        return {
            "Accept": JSON_API_MEDIA_TYPE,
            "Content-Type": JSON_API_MEDIA_TYPE,
            "Authorization": f"Bearer {self.api_key}",
        }

    def _request(self, method, path, json=None):
        url = f"{self.base_url}{path}"
        try:
            response = self.http.request(
                method,
                url,
                headers=self._headers(),
                json=json,
                timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.error(f"LemonSqueezy {method} {path} failed: {e}")
            raise LemonSqueezyError(UPSTREAM_ERROR, "Billing provider unreachable") from e

        if response.status_code == 404:
            logger.info(f"LemonSqueezy {method} {path} returned 404")
            raise LemonSqueezyError(NOT_FOUND, "Resource not found at billing provider", 404)

        if not 200 <= response.status_code < 300:
            logger.error(
                f"LemonSqueezy {method} {path} returned {response.status_code}",
                extra={"provider_body": response.text[:500]}
            )
            raise LemonSqueezyError(
                UPSTREAM_ERROR,
                f"Billing provider returned HTTP {response.status_code}",
                response.status_code
            )

        if response.status_code == 204 or not response.content:
            return {}

        try:
            return response.json()
        except ValueError as e:
            raise LemonSqueezyError(UPSTREAM_ERROR, "Billing provider returned invalid JSON") from e

    def get_subscription(self, subscription_id):
        return parse_subscription(self._request("GET", f"/subscriptions/{subscription_id}"))

    def cancel_subscription(self, subscription_id):
        """Cancel at period end. Returns the updated subscription when the provider echoes it."""
        payload = self._request("DELETE", f"/subscriptions/{subscription_id}")
        return parse_subscription(payload) if payload.get("data") else None

    def update_subscription_variant(self, subscription_id, variant_id):
        body = {
            "data": {
                "type": "subscriptions",
                "id": str(subscription_id),
                "attributes": {"variant_id": int(variant_id) if str(variant_id).isdigit() else variant_id},
            }
        }
        return parse_subscription(self._request("PATCH", f"/subscriptions/{subscription_id}", json=body))

    def get_variant(self, variant_id):
        return parse_variant(self._request("GET", f"/variants/{variant_id}"))


def get_billing_client():
    """Build a client from the current app config (one per request)."""
    config = current_app.config
    return LemonSqueezyClient(
        api_key=config.get("LEMONSQUEEZY_API_KEY", ""),
        base_url=config.get("LEMONSQUEEZY_API_URL", "https://api.lemonsqueezy.com/v1"),
        timeout=config.get("LEMONSQUEEZY_TIMEOUT", 10),
    )
