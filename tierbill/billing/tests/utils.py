"""Helpers for building signed Stripe webhook deliveries in tests."""

import copy
import hashlib
import hmac
import json
import time
from unittest.mock import MagicMock

import stripe

from tierbill.billing.catalog import PriceCatalog
from tierbill.billing.constants import PriceKind

WEBHOOK_SECRET = "whsec_test_dummy_secret"


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp=None) -> str:
    """Build a Stripe-Signature header the way Stripe does."""
    timestamp = int(timestamp if timestamp is not None else time.time())
    signed = f"{timestamp}.{payload}".encode()
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def make_event(event_type: str, obj: dict, *, event_id="evt_test", created=None) -> str:
    return json.dumps(
        {
            "id": event_id,
            "object": "event",
            "type": event_type,
            "created": created if created is not None else int(time.time()),
            "data": {"object": obj},
        },
    )


def make_subscription(
    subscription_id="sub_test",
    *,
    status="active",
    customer="cus_test",
    current_period_end=None,
    start_date=None,
    price_id="price_live",
    unit_amount=5000,
    metadata=None,
) -> dict:
    return {
        "id": subscription_id,
        "object": "subscription",
        "status": status,
        "customer": customer,
        "start_date": start_date,
        "current_period_end": current_period_end,
        "metadata": dict(metadata or {}),
        "items": {
            "object": "list",
            "data": [
                {
                    "id": "si_test",
                    "price": {"id": price_id, "unit_amount": unit_amount},
                },
            ],
        },
    }


def make_invoice(invoice_id="in_test", *, subscription="sub_test", amount=5000, paid_at=None):
    return {
        "id": invoice_id,
        "object": "invoice",
        "subscription": subscription,
        "amount_paid": amount,
        "amount_due": amount,
        "status_transitions": {"paid_at": paid_at},
    }


def as_stripe_subscription(data: dict) -> stripe.Subscription:
    """Wrap a payload dict the way the Stripe client returns API results."""
    return stripe.Subscription.construct_from(copy.deepcopy(data), "sk_test_dummy")


def stub_catalog() -> MagicMock:
    """PriceCatalog double that names prices after their lookup key."""
    catalog = MagicMock(spec=PriceCatalog)
    catalog.get_or_create_price.side_effect = (
        lambda amount, kind: f"price_{PriceKind(kind).value}_{amount}"
    )
    return catalog


class FakeStripeSubscription:
    """
    Stand-in for one subscription on the Stripe side.

    Patch stripe.Subscription.retrieve / modify with retrieve / modify so
    metadata and price writes persist between webhook deliveries, the way
    they do on Stripe.
    """

    def __init__(self, subscription: dict):
        self.subscription = subscription
        self.modify_calls = []

    def retrieve(self, subscription_id, **kwargs):
        return as_stripe_subscription(self.subscription)

    def modify(self, subscription_id, **params):
        self.modify_calls.append(params)
        metadata = self.subscription.setdefault("metadata", {})
        for key, value in params.get("metadata", {}).items():
            if value == "":
                metadata.pop(key, None)
            else:
                metadata[key] = value
        for item in params.get("items", []):
            self.subscription["items"]["data"][0]["price"] = {"id": item["price"]}
        if "trial_end" in params:
            self.subscription["trial_end"] = params["trial_end"]
            self.subscription["current_period_end"] = params["trial_end"]
        return as_stripe_subscription(self.subscription)

    @property
    def price_id(self) -> str:
        return self.subscription["items"]["data"][0]["price"]["id"]

    def renew(self, period_end: int, status="active") -> dict:
        """Start a new billing period and return the event payload object."""
        self.subscription["status"] = status
        self.subscription["current_period_end"] = period_end
        return copy.deepcopy(self.subscription)
