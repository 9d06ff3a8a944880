"""
Billing constants for the tiered discount engine.

These enums define the subscription lifecycle states mirrored from Stripe,
the price kinds used by the price catalog, and the metadata keys under which
the phase cursor is stored on the Stripe subscription.
"""

from django.db import models
from django.utils.translation import gettext_lazy as _


class SubscriptionStatus(models.TextChoices):
    """
    Subscription lifecycle states, mirroring Stripe's subscription status.

    Typical flow for an early signup:
        TRIALING → ACTIVE (trial ends, first discounted invoice paid)
        ACTIVE → PAST_DUE (payment failed) → ACTIVE (retry succeeds)
        any → CANCELLED (customer.subscription.deleted)

    CANCELLED is terminal: no further phase transitions are processed.
    Stripe spells it "canceled"; we store "cancelled" and map on the way in.
    """

    TRIALING = "trialing", _("Trialing")
    ACTIVE = "active", _("Active")
    PAST_DUE = "past_due", _("Past Due")
    UNPAID = "unpaid", _("Unpaid")
    INCOMPLETE = "incomplete", _("Incomplete")
    CANCELLED = "cancelled", _("Cancelled")


class PaymentStatus(models.TextChoices):
    """Outcome of the most recent invoice for a subscription."""

    SUCCEEDED = "succeeded", _("Succeeded")
    FAILED = "failed", _("Failed")


class PriceKind(models.TextChoices):
    """Price catalog kinds. Part of the lookup key, so never rename values."""

    BASE = "base", _("Base")
    DISCOUNT = "discount", _("Discount")


# Map Stripe subscription status to ours. Unknown statuses are left alone.
STRIPE_STATUS_MAP = {
    "trialing": SubscriptionStatus.TRIALING,
    "active": SubscriptionStatus.ACTIVE,
    "past_due": SubscriptionStatus.PAST_DUE,
    "unpaid": SubscriptionStatus.UNPAID,
    "incomplete": SubscriptionStatus.INCOMPLETE,
    "incomplete_expired": SubscriptionStatus.CANCELLED,
    "canceled": SubscriptionStatus.CANCELLED,
}

# Stripe statuses that mean the customer already has a live subscription
# and should be sent to the billing portal instead of a new checkout.
LIVE_SUBSCRIPTION_STATUSES = ("active", "trialing", "past_due")

# Subscription metadata keys holding the phase cursor
META_SCHEDULED_PHASES = "scheduled_phases"
META_CURRENT_PHASE = "current_phase"
META_CURRENT_ITERATIONS = "current_iterations"
META_LIVE_PHASE = "live_phase"
META_CURSOR_PERIOD_END = "cursor_period_end"

# Checkout session metadata keys
META_ATTORNEY_ID = "attorneyId"
META_SUBSCRIPTION_DATA = "subscriptionData"

# Length of the second-year discount phase, in monthly billing cycles
SECOND_YEAR_DISCOUNT_MONTHS = 12

MONTHS_PER_YEAR = 12
