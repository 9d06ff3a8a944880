"""
Billing models for the tiered discount engine.

Key design decisions:
- SubscriptionLedger is our mirror of a Stripe subscription, one row per
  external subscription id
- Rows are created once, when checkout completes, and afterwards only
  mutated by the webhook processor
- Rows are never deleted; a cancelled subscription keeps its row with
  status CANCELLED
- The phase cursor itself lives in the Stripe subscription metadata; the
  phase_* columns here are a mirror for reporting and reconciliation

Relationship: attorney ──1:N── SubscriptionLedger ──1:1── Stripe Subscription
"""

from django.db import models
from model_utils.models import TimeStampedModel

from tierbill.billing.constants import PaymentStatus
from tierbill.billing.constants import SubscriptionStatus


class SubscriptionLedger(TimeStampedModel):
    """
    Internal record of an attorney subscription and its price schedule.

    All amounts are in minor units (cents).

    Usage:
        ledger = SubscriptionLedger.objects.get(external_subscription_id="sub_123")
        ledger.current_price, ledger.next_price, ledger.next_price_change_at
    """

    attorney_id = models.CharField(
        max_length=255,
        db_index=True,
        help_text="Identifier of the attorney in the calling system.",
    )
    external_subscription_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe Subscription ID (sub_xxx).",
    )
    customer_id = models.CharField(
        max_length=255,
        blank=True,
        help_text="Stripe Customer ID (cus_xxx).",
    )
    status = models.CharField(
        max_length=20,
        choices=SubscriptionStatus.choices,
        default=SubscriptionStatus.TRIALING,
    )

    # Pricing
    base_price = models.PositiveIntegerField(
        help_text="Full monthly price the subscription settles on.",
    )
    original_base_price = models.PositiveIntegerField(
        help_text="Undiscounted price captured at checkout.",
    )
    current_price = models.PositiveIntegerField(
        default=0,
        help_text="Amount currently charged per cycle. 0 while trialing.",
    )
    next_price = models.PositiveIntegerField(
        default=0,
        help_text="Amount that applies after the next phase change.",
    )
    next_price_change_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Estimated date of the next phase change. Null when terminal.",
    )
    discount_percent = models.PositiveSmallIntegerField(
        default=0,
        help_text="Percent off of the live or upcoming discount phase.",
    )
    remaining_discount_months = models.PositiveSmallIntegerField(
        default=0,
        help_text="Billing cycles left in the discount allotment.",
    )

    # Phase cursor mirror
    phase_index = models.PositiveSmallIntegerField(
        default=0,
        help_text="Index of the live phase in the lifetime plan.",
    )
    phase_iterations = models.PositiveSmallIntegerField(
        default=0,
        help_text="Qualifying cycles elapsed in the live phase.",
    )

    # Billing period tracking
    trial_ends_at = models.DateTimeField(null=True, blank=True)
    current_period_end = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Period end of the last counted cycle.",
    )

    # Payments
    last_payment_status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        blank=True,
    )
    last_payment_amount = models.PositiveIntegerField(null=True, blank=True)
    last_payment_date = models.DateTimeField(null=True, blank=True)
    last_invoice_id = models.CharField(max_length=255, blank=True)

    class Meta:
        indexes = [
            models.Index(fields=["status"], name="billing_ledger_status_idx"),
            models.Index(fields=["customer_id"], name="billing_ledger_customer_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.attorney_id} - {self.external_subscription_id} ({self.status})"

    @property
    def is_cancelled(self) -> bool:
        return self.status == SubscriptionStatus.CANCELLED

    @property
    def has_active_discount(self) -> bool:
        """True while discounted cycles remain in the allotment."""
        return self.discount_percent > 0 and self.remaining_discount_months > 0
