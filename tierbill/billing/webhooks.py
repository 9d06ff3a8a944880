"""
Stripe webhook processing for the billing engine.

Events handled:
- checkout.session.completed: build the phase plan and create the ledger row
- customer.subscription.updated: advance the phase cursor, sync status
- customer.subscription.deleted: mark the ledger row cancelled
- invoice.paid / invoice.payment_failed: record the latest payment

Response contract (see views.BillingWebhookView):
- Bad or missing signature: WebhookSignatureError, HTTP 400, never retried.
- Business failures (no ledger row, bad metadata, Stripe rejecting a request):
  logged and acknowledged. Redelivery would fail the same way.
- Anything else propagates so the view answers 500 and Stripe redelivers.

Every handler that touches a ledger row holds a row lock for the duration,
so concurrent deliveries for one subscription are applied one at a time.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass

import stripe
from django.conf import settings
from django.db import IntegrityError
from django.db import transaction
from django.utils import timezone
from pydantic import ValidationError

from tierbill.billing.constants import META_ATTORNEY_ID
from tierbill.billing.constants import META_SCHEDULED_PHASES
from tierbill.billing.constants import META_SUBSCRIPTION_DATA
from tierbill.billing.constants import STRIPE_STATUS_MAP
from tierbill.billing.constants import PaymentStatus
from tierbill.billing.constants import SubscriptionStatus
from tierbill.billing.events import CheckoutSessionCompletedEvent
from tierbill.billing.events import InvoiceEvent
from tierbill.billing.events import SubscriptionDeletedEvent
from tierbill.billing.events import SubscriptionPlanData
from tierbill.billing.events import SubscriptionUpdatedEvent
from tierbill.billing.events import parse_event
from tierbill.billing.events import parse_subscription
from tierbill.billing.exceptions import LedgerNotFoundError
from tierbill.billing.exceptions import WebhookProcessingError
from tierbill.billing.exceptions import WebhookSignatureError
from tierbill.billing.models import SubscriptionLedger
from tierbill.billing.periods import from_timestamp
from tierbill.billing.periods import to_timestamp
from tierbill.billing.phases import PhaseCursor
from tierbill.billing.phases import PhaseScheduler
from tierbill.billing.phases import ledger_values

logger = logging.getLogger(__name__)

PROCESSED = "processed"
IGNORED = "ignored"
SKIPPED = "skipped"


@dataclass(frozen=True)
class WebhookResult:
    """Outcome of one webhook delivery. All outcomes are acknowledged."""

    event_id: str | None
    event_type: str | None
    status: str


class WebhookEventProcessor:
    """
    Verify and dispatch Stripe webhook events.

    Usage:
        processor = WebhookEventProcessor()
        result = processor.handle_webhook_event(
            request.body,
            request.headers.get("Stripe-Signature"),
        )
    """

    def __init__(self, scheduler: PhaseScheduler | None = None):
        self.scheduler = scheduler or PhaseScheduler()
        self.handlers = {
            "checkout.session.completed": self.handle_checkout_completed,
            "customer.subscription.updated": self.handle_subscription_updated,
            "customer.subscription.deleted": self.handle_subscription_deleted,
            "invoice.paid": self.handle_invoice,
            "invoice.payment_failed": self.handle_invoice,
        }

    def handle_webhook_event(
        self,
        payload: bytes | str,
        sig_header: str | None,
    ) -> WebhookResult:
        """
        Verify a delivery and apply it.

        Raises:
            WebhookSignatureError: The delivery could not be authenticated.
        """
        self.verify_signature(payload, sig_header)

        data = json.loads(payload)
        event_id = data.get("id")
        event_type = data.get("type")

        try:
            event = parse_event(data)
            if event is None:
                return WebhookResult(event_id, event_type, IGNORED)

            logger.info("Processing Stripe event %s (%s)", event_id, event_type)
            status = self.handlers[event.type](event)
        except WebhookProcessingError as e:
            logger.warning(
                "Acknowledging Stripe event %s (%s) without processing: %s",
                event_id,
                event_type,
                e,
            )
            return WebhookResult(event_id, event_type, IGNORED)
        except stripe.InvalidRequestError:
            logger.warning(
                "Stripe rejected a request while handling event %s (%s)",
                event_id,
                event_type,
                exc_info=True,
            )
            return WebhookResult(event_id, event_type, IGNORED)

        return WebhookResult(event_id, event_type, status)

    def verify_signature(self, payload: bytes | str, sig_header: str | None):
        """Check the Stripe-Signature header against the endpoint secret."""
        secret = settings.STRIPE_WEBHOOK_SECRET
        if not sig_header:
            msg = "Missing Stripe-Signature header"
            raise WebhookSignatureError(msg)
        if not secret:
            msg = "STRIPE_WEBHOOK_SECRET is not configured"
            raise WebhookSignatureError(msg)

        try:
            return stripe.Webhook.construct_event(
                payload,
                sig_header,
                secret,
                tolerance=settings.STRIPE_WEBHOOK_TOLERANCE,
            )
        except stripe.SignatureVerificationError as e:
            logger.warning("Webhook signature verification failed: %s", e)
            msg = "Invalid signature"
            raise WebhookSignatureError(msg) from e
        except ValueError as e:
            logger.warning("Webhook payload could not be parsed: %s", e)
            msg = "Invalid payload"
            raise WebhookSignatureError(msg) from e

    # ------------------------------------------------------------------
    # checkout.session.completed
    # ------------------------------------------------------------------

    def handle_checkout_completed(self, event: CheckoutSessionCompletedEvent) -> str:
        """
        Build the lifetime plan for a new subscription.

        The ledger row doubles as the "already processed" marker: an
        existing row, or a unique-constraint failure from a concurrent
        delivery, means another delivery got here first.
        """
        session = event.data.object
        if session.mode != "subscription" or not session.subscription:
            logger.info("Checkout session %s has no subscription, skipping", session.id)
            return SKIPPED

        subscription_id = session.subscription
        if SubscriptionLedger.objects.filter(
            external_subscription_id=subscription_id,
        ).exists():
            logger.info(
                "Subscription %s already has a ledger row, skipping duplicate checkout",
                subscription_id,
            )
            return SKIPPED

        attorney_id = session.metadata.get(META_ATTORNEY_ID)
        raw_plan = session.metadata.get(META_SUBSCRIPTION_DATA)
        if not attorney_id or not raw_plan:
            msg = f"Checkout session {session.id} is missing billing metadata"
            raise WebhookProcessingError(msg)

        try:
            plan = SubscriptionPlanData.model_validate_json(raw_plan)
        except ValidationError as e:
            msg = f"Checkout session {session.id} has malformed subscription data"
            raise WebhookProcessingError(msg) from e

        subscription = parse_subscription(stripe.Subscription.retrieve(subscription_id))
        if not subscription.customer and session.customer:
            subscription = subscription.model_copy(update={"customer": session.customer})

        try:
            self.scheduler.build_and_apply_phases(
                subscription,
                plan.original_base_price,
                plan.discount_tier,
                attorney_id=attorney_id,
            )
        except IntegrityError:
            logger.info(
                "Ledger row for %s was created concurrently, skipping duplicate checkout",
                subscription_id,
            )
            return SKIPPED

        return PROCESSED

    # ------------------------------------------------------------------
    # customer.subscription.updated
    # ------------------------------------------------------------------

    def handle_subscription_updated(self, event: SubscriptionUpdatedEvent) -> str:
        """
        Sync status, and count a billing cycle when the subscription has
        pending phases.

        A cycle counts when the subscription is active and reports a
        current_period_end we haven't seen. Updates with an unchanged period
        end (metadata writes, payment method changes, redeliveries) never
        move the cursor.
        """
        incoming = event.data.object

        with transaction.atomic():
            ledger = self._lock_ledger(incoming.id)
            if ledger.is_cancelled:
                logger.info("Subscription %s is cancelled, ignoring update", incoming.id)
                return SKIPPED

            status = STRIPE_STATUS_MAP.get(incoming.status, ledger.status)
            period_end = from_timestamp(incoming.period_end)

            if not incoming.metadata.get(META_SCHEDULED_PHASES):
                return self._sync_status(ledger, status, period_end)

            if period_end is None or (
                ledger.current_period_end and period_end <= ledger.current_period_end
            ):
                logger.info(
                    "Subscription %s period end unchanged, not counting a cycle",
                    incoming.id,
                )
                self._sync_status(ledger, status)
                return SKIPPED

            if status != SubscriptionStatus.ACTIVE:
                # Keep current_period_end so the cycle still counts once paid
                return self._sync_status(ledger, status)

            return self._count_cycle(ledger, status, period_end)

    def _count_cycle(self, ledger: SubscriptionLedger, status, period_end) -> str:
        subscription_id = ledger.external_subscription_id

        # Re-read the cursor from Stripe under the row lock; the event copy
        # may be stale
        subscription = parse_subscription(stripe.Subscription.retrieve(subscription_id))
        cursor = PhaseCursor.from_metadata(subscription.metadata)
        if cursor is None:
            return self._sync_status(ledger, status, period_end)

        period_end_ts = to_timestamp(period_end)
        if cursor.period_end == period_end_ts:
            logger.info(
                "Cursor for %s already moved for period ending %s, reconciling ledger",
                subscription_id,
                period_end,
            )
        else:
            cursor = cursor.record_cycle(period_end_ts)
            if cursor.bound_reached:
                cursor = cursor.advance()
                stripe.Subscription.modify(
                    subscription_id,
                    items=[
                        {
                            "id": subscription.first_item.id,
                            "price": cursor.live_phase.price,
                        },
                    ],
                    proration_behavior="none",
                    metadata=cursor.to_metadata(),
                )
                logger.info(
                    "Subscription %s moved to phase %d at %d",
                    subscription_id,
                    cursor.current_phase,
                    cursor.live_phase.amount,
                )
            else:
                stripe.Subscription.modify(
                    subscription_id,
                    metadata=cursor.to_metadata(),
                )
                logger.info(
                    "Subscription %s phase %d cycle %d of %s",
                    subscription_id,
                    cursor.current_phase,
                    cursor.current_iterations,
                    cursor.live_phase.iterations,
                )

        values = ledger_values(cursor, status=status, period_end=period_end)
        fields = values.apply_to(ledger)
        ledger.status = status
        ledger.current_period_end = period_end
        ledger.save(update_fields=[*fields, "status", "current_period_end", "modified"])
        return PROCESSED

    def _sync_status(self, ledger: SubscriptionLedger, status, period_end=None) -> str:
        fields = []
        if status != ledger.status:
            ledger.status = status
            fields.append("status")
        if period_end is not None and period_end != ledger.current_period_end:
            ledger.current_period_end = period_end
            fields.append("current_period_end")

        if not fields:
            return SKIPPED
        ledger.save(update_fields=[*fields, "modified"])
        logger.info(
            "Synced subscription %s: %s",
            ledger.external_subscription_id,
            ", ".join(fields),
        )
        return PROCESSED

    # ------------------------------------------------------------------
    # customer.subscription.deleted
    # ------------------------------------------------------------------

    def handle_subscription_deleted(self, event: SubscriptionDeletedEvent) -> str:
        subscription_id = event.data.object.id
        with transaction.atomic():
            ledger = self._lock_ledger(subscription_id)
            if ledger.is_cancelled:
                return SKIPPED
            ledger.status = SubscriptionStatus.CANCELLED
            ledger.next_price_change_at = None
            ledger.save(update_fields=["status", "next_price_change_at", "modified"])

        logger.info(
            "Subscription %s cancelled for attorney %s",
            subscription_id,
            ledger.attorney_id,
        )
        return PROCESSED

    # ------------------------------------------------------------------
    # invoice.paid / invoice.payment_failed
    # ------------------------------------------------------------------

    def handle_invoice(self, event: InvoiceEvent) -> str:
        """
        Record the outcome of the latest invoice.

        Deliveries are not ordered: a payment older than the one already
        recorded is dropped, and a repeat of the same invoice outcome is a
        no-op.
        """
        invoice = event.data.object
        subscription_id = invoice.subscription_id
        if not subscription_id:
            logger.info("Invoice %s is not for a subscription, skipping", invoice.id)
            return SKIPPED

        if event.type == "invoice.paid":
            payment_status = PaymentStatus.SUCCEEDED
            amount = invoice.amount_paid
            paid_at = invoice.paid_at or event.created
        else:
            payment_status = PaymentStatus.FAILED
            amount = invoice.amount_due
            paid_at = event.created
            logger.warning(
                "Payment failed for invoice %s on subscription %s",
                invoice.id,
                subscription_id,
            )
        payment_date = from_timestamp(paid_at) or timezone.now()

        with transaction.atomic():
            try:
                ledger = self._lock_ledger(subscription_id)
            except LedgerNotFoundError:
                logger.warning(
                    "No ledger row for subscription %s, dropping invoice %s",
                    subscription_id,
                    invoice.id,
                )
                return IGNORED

            if (
                ledger.last_invoice_id == invoice.id
                and ledger.last_payment_status == payment_status
            ):
                return SKIPPED
            if ledger.last_payment_date and payment_date < ledger.last_payment_date:
                logger.info(
                    "Invoice %s is older than the recorded payment for %s, skipping",
                    invoice.id,
                    subscription_id,
                )
                return SKIPPED

            ledger.last_payment_status = payment_status
            ledger.last_payment_amount = amount
            ledger.last_payment_date = payment_date
            ledger.last_invoice_id = invoice.id
            ledger.save(
                update_fields=[
                    "last_payment_status",
                    "last_payment_amount",
                    "last_payment_date",
                    "last_invoice_id",
                    "modified",
                ],
            )

        logger.info(
            "Recorded %s payment of %s for subscription %s",
            payment_status,
            amount,
            subscription_id,
        )
        return PROCESSED

    def _lock_ledger(self, subscription_id: str) -> SubscriptionLedger:
        try:
            return SubscriptionLedger.objects.select_for_update().get(
                external_subscription_id=subscription_id,
            )
        except SubscriptionLedger.DoesNotExist as e:
            raise LedgerNotFoundError(subscription_id) from e
