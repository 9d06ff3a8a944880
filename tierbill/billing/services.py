"""
Billing service for Stripe operations.

This service provides a clean interface for:
- Starting billing for an attorney: a Stripe Checkout session for new
  customers, or the Stripe Customer Portal for returning ones
- Looking up a completed checkout for the post-checkout redirect page
- Re-syncing ledger rows from Stripe (manual reconciliation)

We use Stripe Checkout (not custom payment forms) for PCI compliance.
Phase scheduling after checkout lives in phases.py and webhooks.py.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

import stripe
from django.conf import settings

from tierbill.billing.catalog import PriceCatalog
from tierbill.billing.constants import LIVE_SUBSCRIPTION_STATUSES
from tierbill.billing.constants import META_ATTORNEY_ID
from tierbill.billing.constants import META_SUBSCRIPTION_DATA
from tierbill.billing.constants import STRIPE_STATUS_MAP
from tierbill.billing.constants import PriceKind
from tierbill.billing.events import SubscriptionPlanData
from tierbill.billing.events import parse_subscription
from tierbill.billing.events import to_plain_dict
from tierbill.billing.exceptions import BillingInputError
from tierbill.billing.periods import from_timestamp
from tierbill.billing.periods import trial_period_days
from tierbill.billing.phases import PhaseCursor
from tierbill.billing.tiers import apply_discount

if TYPE_CHECKING:
    from tierbill.billing.models import SubscriptionLedger
    from tierbill.billing.tiers import DiscountTier

logger = logging.getLogger(__name__)

CHECKOUT_MODE = "checkout"
PORTAL_MODE = "portal"


def configure_stripe() -> None:
    """
    Apply Stripe client settings: API key, pinned API version, request
    timeout and network retries.
    """
    stripe.api_key = settings.STRIPE_SECRET_KEY
    stripe.api_version = settings.STRIPE_API_VERSION
    stripe.max_network_retries = settings.STRIPE_MAX_NETWORK_RETRIES
    stripe.default_http_client = stripe.RequestsClient(
        timeout=settings.STRIPE_REQUEST_TIMEOUT,
    )


def calculate_initial_price(base_price: int, discount_tier: DiscountTier | None) -> int:
    """
    Price charged by the checkout line item.

    Takes the tier's percent off when it defines one, otherwise the base
    price. Rounded to the cent.
    """
    if discount_tier is None or discount_tier.discount_percent <= 0:
        return base_price
    return apply_discount(base_price, discount_tier.discount_percent)


@dataclass(frozen=True)
class BillingSession:
    """Where to send the attorney next."""

    url: str
    mode: str
    session_id: str


class BillingService:
    """
    Service for Stripe billing operations.

    Usage:
        service = BillingService()
        session = service.start_or_resume_billing(
            customer_email="jane@example.com",
            attorney_id="att_123",
            base_price=10000,
            discount_tier=tier,
        )
        redirect(session.url)
    """

    def __init__(self, catalog: PriceCatalog | None = None):
        self.catalog = catalog or PriceCatalog()

    def start_or_resume_billing(
        self,
        customer_email: str,
        attorney_id: str,
        base_price: int,
        discount_tier: DiscountTier | None,
        *,
        now: datetime | None = None,
    ) -> BillingSession:
        """
        Start a checkout for a new customer, or open the portal for a
        customer who already has a live subscription.

        Raises:
            BillingInputError: If email, attorney id or price is missing.
                Raised before any Stripe call.
        """
        self._validate_input(customer_email, attorney_id, base_price)

        customer_id = self.find_customer(customer_email)
        if customer_id and self.has_live_subscription(customer_id):
            logger.info(
                "Customer %s already subscribed, sending attorney %s to portal",
                customer_id,
                attorney_id,
            )
            return self.create_portal_session(customer_id)

        if not customer_id:
            customer_id = self.create_customer(customer_email, attorney_id)

        return self.create_checkout_session(
            customer_id=customer_id,
            attorney_id=attorney_id,
            base_price=base_price,
            discount_tier=discount_tier,
            now=now,
        )

    def find_customer(self, email: str) -> str | None:
        """Stripe customer ID (cus_xxx) for an email, if one exists."""
        customers = stripe.Customer.list(email=email, limit=1)
        if customers.data:
            return customers.data[0].id
        return None

    def create_customer(self, email: str, attorney_id: str) -> str:
        """
        Create a Stripe customer.

        The email is set so a returning attorney is found by find_customer.
        """
        customer = stripe.Customer.create(
            email=email,
            metadata={META_ATTORNEY_ID: attorney_id},
        )
        logger.info("Created Stripe customer %s for attorney %s", customer.id, attorney_id)
        return customer.id

    def has_live_subscription(self, customer_id: str) -> bool:
        """True if the customer has an active, trialing or past_due subscription."""
        for status in LIVE_SUBSCRIPTION_STATUSES:
            subscriptions = stripe.Subscription.list(
                customer=customer_id,
                status=status,
                limit=1,
            )
            if subscriptions.data:
                return True
        return False

    def create_portal_session(self, customer_id: str) -> BillingSession:
        """
        Stripe Customer Portal session for self-service management.

        No new subscription is created.
        """
        session = stripe.billing_portal.Session.create(
            customer=customer_id,
            return_url=settings.FRONTEND_URL,
        )
        logger.info("Created portal session for customer %s", customer_id)
        return BillingSession(url=session.url, mode=PORTAL_MODE, session_id=session.id)

    def create_checkout_session(
        self,
        *,
        customer_id: str,
        attorney_id: str,
        base_price: int,
        discount_tier: DiscountTier | None,
        now: datetime | None = None,
    ) -> BillingSession:
        """
        Create a Stripe Checkout session at the tier's initial price.

        The session metadata carries the tier and the undiscounted base price;
        checkout.session.completed reads them back to build the phase plan.
        """
        initial_price = calculate_initial_price(base_price, discount_tier)
        kind = PriceKind.DISCOUNT if initial_price != base_price else PriceKind.BASE
        price_id = self.catalog.get_or_create_price(initial_price, kind)

        trial_months = discount_tier.trial_months if discount_tier else 0
        plan_data = SubscriptionPlanData(
            discount_tier=discount_tier,
            original_base_price=base_price,
            trial_months=trial_months,
        )

        subscription_data = {
            "metadata": {META_ATTORNEY_ID: attorney_id},
        }
        if trial_months > 0:
            subscription_data["trial_period_days"] = trial_period_days(
                trial_months,
                now=now,
            )

        frontend_url = settings.FRONTEND_URL.rstrip("/")
        session = stripe.checkout.Session.create(
            customer=customer_id,
            mode="subscription",
            payment_method_types=["card"],
            line_items=[
                {
                    "price": price_id,
                    "quantity": 1,
                },
            ],
            success_url=f"{frontend_url}/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{frontend_url}/cancel",
            metadata={
                META_ATTORNEY_ID: attorney_id,
                META_SUBSCRIPTION_DATA: plan_data.to_metadata_value(),
            },
            subscription_data=subscription_data,
        )

        logger.info(
            "Created checkout session %s for attorney %s, tier %s, price %s, trial %s",
            session.id,
            attorney_id,
            discount_tier.code if discount_tier else None,
            initial_price,
            subscription_data.get("trial_period_days", 0),
        )
        return BillingSession(url=session.url, mode=CHECKOUT_MODE, session_id=session.id)

    def get_session_and_subscription(self, session_id: str) -> dict:
        """
        Checkout session and the subscription it created, as plain dicts.

        Raises:
            BillingInputError: If session_id is empty or the session has
                no subscription (not completed, or not a subscription
                checkout).
        """
        if not session_id:
            msg = "session_id is required"
            raise BillingInputError(msg)

        session = to_plain_dict(stripe.checkout.Session.retrieve(session_id))
        subscription_id = session.get("subscription")
        if not subscription_id:
            msg = f"No subscription found for session {session_id}"
            raise BillingInputError(msg)

        subscription = to_plain_dict(stripe.Subscription.retrieve(subscription_id))
        return {"session": session, "subscription": subscription}

    def sync_subscription_from_stripe(
        self,
        ledger: SubscriptionLedger,
        *,
        dry_run: bool = False,
    ) -> list[str]:
        """
        Sync status and period end of a ledger row from Stripe.

        Useful for manual reconciliation or after webhook failures. The phase
        cursor is left alone, and so is the period end while phases are still
        pending: both only move on webhook ticks.

        Returns the names of the fields that changed.
        """
        subscription = parse_subscription(
            stripe.Subscription.retrieve(ledger.external_subscription_id),
        )

        changed = []
        new_status = STRIPE_STATUS_MAP.get(subscription.status)
        if new_status and new_status != ledger.status:
            ledger.status = new_status
            changed.append("status")

        # Moving current_period_end under a live cursor would make the next
        # webhook tick look like a duplicate
        period_end = from_timestamp(subscription.period_end)
        has_cursor = PhaseCursor.from_metadata(subscription.metadata) is not None
        if period_end and not has_cursor and period_end != ledger.current_period_end:
            ledger.current_period_end = period_end
            changed.append("current_period_end")

        if changed and not dry_run:
            ledger.save(update_fields=[*changed, "modified"])
            logger.info(
                "Synced subscription %s from Stripe: %s",
                ledger.external_subscription_id,
                ", ".join(changed),
            )
        return changed

    def _validate_input(self, email: str, attorney_id: str, base_price) -> None:
        if not email:
            msg = "customer_email is required"
            raise BillingInputError(msg)
        if not attorney_id:
            msg = "attorney_id is required"
            raise BillingInputError(msg)
        if base_price is None or isinstance(base_price, bool):
            msg = "base_price is required"
            raise BillingInputError(msg)
        if not isinstance(base_price, int) or base_price <= 0:
            msg = f"base_price must be a positive integer, got {base_price!r}"
            raise BillingInputError(msg)
