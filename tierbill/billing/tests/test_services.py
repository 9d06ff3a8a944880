"""
Tests for BillingService.

Stripe is mocked at the module level (stripe.Customer.list etc.), the same
way a live Stripe client would be reached.
"""

from datetime import UTC
from datetime import datetime
from unittest.mock import MagicMock
from unittest.mock import patch

import pytest
import stripe
from django.apps import apps

from tierbill.billing.constants import META_ATTORNEY_ID
from tierbill.billing.constants import META_SUBSCRIPTION_DATA
from tierbill.billing.constants import PriceKind
from tierbill.billing.constants import SubscriptionStatus
from tierbill.billing.events import SubscriptionPlanData
from tierbill.billing.exceptions import BillingInputError
from tierbill.billing.phases import BillingPhase
from tierbill.billing.phases import PhaseCursor
from tierbill.billing.services import CHECKOUT_MODE
from tierbill.billing.services import PORTAL_MODE
from tierbill.billing.services import BillingService
from tierbill.billing.services import calculate_initial_price
from tierbill.billing.services import configure_stripe
from tierbill.billing.tests.utils import as_stripe_subscription
from tierbill.billing.tests.utils import make_subscription
from tierbill.billing.tests.utils import stub_catalog
from tierbill.billing.tiers import TIER_1
from tierbill.billing.tiers import TIER_2
from tierbill.billing.tiers import TIER_3
from tierbill.billing.webhooks import WebhookEventProcessor

NOW = datetime(2025, 1, 15, tzinfo=UTC)


@pytest.fixture
def service():
    return BillingService(catalog=stub_catalog())


def checkout_response():
    return MagicMock(id="cs_test", url="https://checkout.stripe.com/c/cs_test")


class TestConfigureStripe:
    def test_applies_settings(self, settings):
        settings.STRIPE_SECRET_KEY = "sk_test_configured"
        settings.STRIPE_API_VERSION = "2024-12-18.acacia"
        settings.STRIPE_MAX_NETWORK_RETRIES = 3
        settings.STRIPE_REQUEST_TIMEOUT = 12

        configure_stripe()

        assert stripe.api_key == "sk_test_configured"
        assert stripe.api_version == "2024-12-18.acacia"
        assert stripe.max_network_retries == 3
        assert isinstance(stripe.default_http_client, stripe.RequestsClient)

    def test_configured_once_at_startup(self):
        with patch("tierbill.billing.services.configure_stripe") as mock_configure:
            apps.get_app_config("billing").ready()
            BillingService()
            WebhookEventProcessor()

        mock_configure.assert_called_once_with()

    def test_services_keep_the_shared_http_client(self):
        client = stripe.default_http_client

        BillingService()
        WebhookEventProcessor()

        assert stripe.default_http_client is client


class TestCalculateInitialPrice:
    def test_no_tier_is_base_price(self):
        assert calculate_initial_price(10000, None) == 10000

    def test_tier_1_takes_half(self):
        assert calculate_initial_price(10000, TIER_1) == 5000

    def test_tier_2_takes_a_quarter(self):
        assert calculate_initial_price(10000, TIER_2) == 7500

    def test_rounds_to_the_cent(self):
        assert calculate_initial_price(999, TIER_2) == 749


class TestInputValidation:
    @pytest.mark.parametrize(
        ("email", "attorney_id", "base_price", "message"),
        [
            ("", "att_1", 10000, "customer_email"),
            ("jane@example.com", "", 10000, "attorney_id"),
            ("jane@example.com", "att_1", None, "base_price"),
            ("jane@example.com", "att_1", 0, "positive"),
            ("jane@example.com", "att_1", -100, "positive"),
            ("jane@example.com", "att_1", 99.5, "positive"),
            ("jane@example.com", "att_1", True, "base_price"),
        ],
    )
    @patch("stripe.Customer.list")
    def test_rejects_before_calling_stripe(
        self,
        mock_list,
        service,
        email,
        attorney_id,
        base_price,
        message,
    ):
        with pytest.raises(BillingInputError, match=message):
            service.start_or_resume_billing(email, attorney_id, base_price, TIER_1)

        mock_list.assert_not_called()

    def test_input_error_is_a_value_error(self, service):
        with pytest.raises(ValueError):
            service.start_or_resume_billing("", "att_1", 10000, None)


class TestStartOrResumeBilling:
    @patch("stripe.billing_portal.Session.create")
    @patch("stripe.checkout.Session.create")
    @patch("stripe.Subscription.list")
    @patch("stripe.Customer.list")
    def test_returning_customer_gets_portal(
        self,
        mock_customer_list,
        mock_subscription_list,
        mock_checkout,
        mock_portal,
        service,
    ):
        mock_customer_list.return_value = MagicMock(data=[MagicMock(id="cus_existing")])
        mock_subscription_list.return_value = MagicMock(data=[MagicMock(id="sub_1")])
        mock_portal.return_value = MagicMock(id="bps_1", url="https://billing.stripe.com/p/1")

        session = service.start_or_resume_billing(
            "jane@example.com",
            "att_1",
            10000,
            TIER_1,
        )

        assert session.mode == PORTAL_MODE
        assert session.url == "https://billing.stripe.com/p/1"
        mock_portal.assert_called_once_with(
            customer="cus_existing",
            return_url="https://app.example.com",
        )
        mock_checkout.assert_not_called()

    @patch("stripe.checkout.Session.create")
    @patch("stripe.Subscription.list")
    @patch("stripe.Customer.list")
    def test_customer_without_live_subscription_gets_checkout(
        self,
        mock_customer_list,
        mock_subscription_list,
        mock_checkout,
        service,
    ):
        mock_customer_list.return_value = MagicMock(data=[MagicMock(id="cus_existing")])
        mock_subscription_list.return_value = MagicMock(data=[])
        mock_checkout.return_value = checkout_response()

        session = service.start_or_resume_billing(
            "jane@example.com",
            "att_1",
            10000,
            None,
        )

        assert session.mode == CHECKOUT_MODE
        # One lookup per live status
        assert mock_subscription_list.call_count == 3
        assert mock_checkout.call_args.kwargs["customer"] == "cus_existing"

    @patch("stripe.checkout.Session.create")
    @patch("stripe.Customer.create")
    @patch("stripe.Customer.list")
    def test_new_customer_checkout(
        self,
        mock_customer_list,
        mock_customer_create,
        mock_checkout,
        service,
    ):
        mock_customer_list.return_value = MagicMock(data=[])
        mock_customer_create.return_value = MagicMock(id="cus_new")
        mock_checkout.return_value = checkout_response()

        session = service.start_or_resume_billing(
            "jane@example.com",
            "att_1",
            10000,
            TIER_1,
            now=NOW,
        )

        assert session.mode == CHECKOUT_MODE
        assert session.url == "https://checkout.stripe.com/c/cs_test"
        assert session.session_id == "cs_test"
        mock_customer_create.assert_called_once_with(
            email="jane@example.com",
            metadata={META_ATTORNEY_ID: "att_1"},
        )

        kwargs = mock_checkout.call_args.kwargs
        assert kwargs["customer"] == "cus_new"
        assert kwargs["mode"] == "subscription"
        assert kwargs["line_items"] == [{"price": "price_discount_5000", "quantity": 1}]
        assert kwargs["success_url"] == (
            "https://app.example.com/success?session_id={CHECKOUT_SESSION_ID}"
        )
        assert kwargs["cancel_url"] == "https://app.example.com/cancel"
        # 2025-01-15 to 2026-01-15
        assert kwargs["subscription_data"]["trial_period_days"] == 365
        assert kwargs["subscription_data"]["metadata"] == {META_ATTORNEY_ID: "att_1"}

        metadata = kwargs["metadata"]
        assert metadata[META_ATTORNEY_ID] == "att_1"
        plan = SubscriptionPlanData.model_validate_json(metadata[META_SUBSCRIPTION_DATA])
        assert plan.discount_tier == TIER_1
        assert plan.original_base_price == 10000
        assert plan.trial_months == 12

    @patch("stripe.checkout.Session.create")
    @patch("stripe.Customer.create")
    @patch("stripe.Customer.list")
    def test_no_tier_checkout_has_no_trial(
        self,
        mock_customer_list,
        mock_customer_create,
        mock_checkout,
        service,
    ):
        mock_customer_list.return_value = MagicMock(data=[])
        mock_customer_create.return_value = MagicMock(id="cus_new")
        mock_checkout.return_value = checkout_response()

        service.start_or_resume_billing("jane@example.com", "att_1", 10000, None)

        kwargs = mock_checkout.call_args.kwargs
        assert "trial_period_days" not in kwargs["subscription_data"]
        assert kwargs["line_items"][0]["price"] == "price_base_10000"
        service.catalog.get_or_create_price.assert_called_once_with(
            10000,
            PriceKind.BASE,
        )

    @patch("stripe.checkout.Session.create")
    @patch("stripe.Customer.create")
    @patch("stripe.Customer.list")
    def test_tier_3_six_month_trial(
        self,
        mock_customer_list,
        mock_customer_create,
        mock_checkout,
        service,
    ):
        mock_customer_list.return_value = MagicMock(data=[])
        mock_customer_create.return_value = MagicMock(id="cus_new")
        mock_checkout.return_value = checkout_response()

        service.start_or_resume_billing(
            "jane@example.com",
            "att_1",
            10000,
            TIER_3,
            now=NOW,
        )

        kwargs = mock_checkout.call_args.kwargs
        # 2025-01-15 to 2025-07-15
        assert kwargs["subscription_data"]["trial_period_days"] == 181

    @patch("stripe.Customer.list")
    def test_stripe_errors_propagate(self, mock_customer_list, service):
        mock_customer_list.side_effect = stripe.APIConnectionError("timeout")

        with pytest.raises(stripe.StripeError):
            service.start_or_resume_billing("jane@example.com", "att_1", 10000, None)


class TestGetSessionAndSubscription:
    @patch("stripe.Subscription.retrieve")
    @patch("stripe.checkout.Session.retrieve")
    def test_returns_both(self, mock_session, mock_subscription, service):
        mock_session.return_value = stripe.checkout.Session.construct_from(
            {"id": "cs_test", "object": "checkout.session", "subscription": "sub_test"},
            "sk_test_dummy",
        )
        mock_subscription.return_value = as_stripe_subscription(
            make_subscription(status="trialing"),
        )

        result = service.get_session_and_subscription("cs_test")

        # Plain dicts, so the verify-payment view can render them
        assert type(result["session"]) is dict
        assert type(result["subscription"]) is dict
        assert result["session"]["id"] == "cs_test"
        assert result["subscription"]["status"] == "trialing"
        assert result["subscription"]["items"]["data"][0]["id"] == "si_test"
        mock_subscription.assert_called_once_with("sub_test")

    @patch("stripe.Subscription.retrieve")
    @patch("stripe.checkout.Session.retrieve")
    def test_session_without_subscription(self, mock_session, mock_subscription, service):
        mock_session.return_value = stripe.checkout.Session.construct_from(
            {"id": "cs_test", "object": "checkout.session", "subscription": None},
            "sk_test_dummy",
        )

        with pytest.raises(BillingInputError, match="No subscription"):
            service.get_session_and_subscription("cs_test")

        mock_subscription.assert_not_called()

    def test_requires_session_id(self, service):
        with pytest.raises(BillingInputError):
            service.get_session_and_subscription("")


@pytest.mark.django_db
class TestSyncSubscriptionFromStripe:
    @patch("stripe.Subscription.retrieve")
    def test_syncs_status_and_period_end(self, mock_retrieve, service, ledger):
        period_end = datetime(2025, 6, 1, tzinfo=UTC)
        mock_retrieve.return_value = as_stripe_subscription(
            make_subscription(
                status="past_due",
                current_period_end=int(period_end.timestamp()),
            ),
        )

        changed = service.sync_subscription_from_stripe(ledger)

        assert changed == ["status", "current_period_end"]
        ledger.refresh_from_db()
        assert ledger.status == SubscriptionStatus.PAST_DUE
        assert ledger.current_period_end == period_end

    @patch("stripe.Subscription.retrieve")
    def test_leaves_period_end_alone_while_phases_pending(
        self,
        mock_retrieve,
        service,
        ledger,
    ):
        cursor = PhaseCursor(
            current_phase=0,
            current_iterations=3,
            live_phase=BillingPhase(price="price_a", amount=5000, iterations=12),
            scheduled_phases=(BillingPhase(price="price_b", amount=10000),),
            period_end=1760000000,
        )
        mock_retrieve.return_value = as_stripe_subscription(
            make_subscription(
                status="active",
                current_period_end=1760000000,
                metadata=cursor.to_metadata(),
            ),
        )

        changed = service.sync_subscription_from_stripe(ledger)

        assert changed == []

    @patch("stripe.Subscription.retrieve")
    def test_dry_run_does_not_save(self, mock_retrieve, service, ledger):
        mock_retrieve.return_value = as_stripe_subscription(
            make_subscription(status="canceled"),
        )

        changed = service.sync_subscription_from_stripe(ledger, dry_run=True)

        assert changed == ["status"]
        ledger.refresh_from_db()
        assert ledger.status == SubscriptionStatus.ACTIVE
