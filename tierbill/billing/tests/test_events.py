"""
Tests for the Stripe payload models.
"""

import pytest
import stripe

from tierbill.billing.events import Invoice
from tierbill.billing.events import parse_event
from tierbill.billing.events import parse_subscription
from tierbill.billing.events import to_plain_dict
from tierbill.billing.exceptions import WebhookProcessingError
from tierbill.billing.tests.utils import as_stripe_subscription
from tierbill.billing.tests.utils import make_subscription


class TestParseSubscription:
    def test_api_object(self):
        subscription = parse_subscription(
            as_stripe_subscription(
                make_subscription(
                    status="trialing",
                    current_period_end=1760000000,
                    metadata={"current_phase": "0"},
                ),
            ),
        )

        assert subscription.id == "sub_test"
        assert subscription.status == "trialing"
        assert subscription.period_end == 1760000000
        assert subscription.metadata == {"current_phase": "0"}
        assert subscription.first_item.id == "si_test"
        assert subscription.first_item.price_id == "price_live"

    def test_decoded_json(self):
        subscription = parse_subscription(make_subscription(status="active"))

        assert subscription.status == "active"

    def test_period_end_from_items(self):
        data = make_subscription()
        data["items"]["data"][0]["current_period_end"] = 1760000000

        subscription = parse_subscription(as_stripe_subscription(data))

        assert subscription.period_end == 1760000000

    def test_unexpected_shape(self):
        with pytest.raises(WebhookProcessingError):
            parse_subscription({"id": "sub_test"})


def test_to_plain_dict_returns_a_dict():
    session = stripe.checkout.Session.construct_from(
        {"id": "cs_test", "object": "checkout.session", "subscription": "sub_test"},
        "sk_test_dummy",
    )

    data = to_plain_dict(session)

    assert type(data) is dict
    assert data["subscription"] == "sub_test"


class TestParseEvent:
    def test_unhandled_type(self):
        assert parse_event({"id": "evt_1", "type": "customer.created"}) is None

    def test_malformed_handled_type(self):
        with pytest.raises(WebhookProcessingError, match="invoice.paid"):
            parse_event({"id": "evt_1", "type": "invoice.paid", "data": {}})

    def test_invoice_event(self):
        event = parse_event(
            {
                "id": "evt_1",
                "type": "invoice.payment_failed",
                "created": 1760000000,
                "data": {"object": {"id": "in_1", "subscription": "sub_test"}},
            },
        )

        assert isinstance(event.data.object, Invoice)
        assert event.data.object.subscription_id == "sub_test"
