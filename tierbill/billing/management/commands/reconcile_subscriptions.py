"""
Management command to re-sync subscription ledger rows from Stripe.

The ledger is normally kept current by webhooks. If deliveries were lost
(endpoint down longer than Stripe's retry window, secret rotated, etc.) the
status column can drift from Stripe. This command pulls the live status of
every non-cancelled ledger row and writes back what changed.

The phase cursor is not touched: cycles are only counted by webhook ticks.

Usage:
    python manage.py reconcile_subscriptions
    python manage.py reconcile_subscriptions --subscription sub_123
    python manage.py reconcile_subscriptions --dry-run
"""

import logging

import stripe
from django.core.management.base import BaseCommand
from django.core.management.base import CommandError
from django.db import transaction

from tierbill.billing.constants import SubscriptionStatus
from tierbill.billing.exceptions import WebhookProcessingError
from tierbill.billing.models import SubscriptionLedger
from tierbill.billing.services import BillingService

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Re-sync subscription ledger status from Stripe."

    def add_arguments(self, parser):
        parser.add_argument(
            "--subscription",
            help="Only reconcile this Stripe subscription ID (sub_xxx)",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Report differences without saving them",
        )

    def handle(self, *args, **options):
        dry_run = options["dry_run"]
        subscription_id = options.get("subscription")

        ledgers = SubscriptionLedger.objects.exclude(
            status=SubscriptionStatus.CANCELLED,
        ).order_by("created")
        if subscription_id:
            ledgers = ledgers.filter(external_subscription_id=subscription_id)
            if not ledgers.exists():
                msg = f"No open ledger row for subscription {subscription_id}"
                raise CommandError(msg)

        service = BillingService()
        changed_count = 0
        failed_count = 0

        for ledger in ledgers.iterator():
            try:
                with transaction.atomic():
                    locked = SubscriptionLedger.objects.select_for_update().get(
                        pk=ledger.pk,
                    )
                    changed = service.sync_subscription_from_stripe(
                        locked,
                        dry_run=dry_run,
                    )
            except (stripe.StripeError, WebhookProcessingError) as e:
                failed_count += 1
                logger.warning(
                    "Could not reconcile %s: %s",
                    ledger.external_subscription_id,
                    e,
                )
                self.stdout.write(
                    self.style.ERROR(f"  - {ledger.external_subscription_id}: {e}"),
                )
                continue

            if changed:
                changed_count += 1
                prefix = "[DRY RUN] " if dry_run else ""
                self.stdout.write(
                    f"  - {prefix}{ledger.external_subscription_id}: "
                    f"{', '.join(changed)} -> {locked.status}",
                )

        verb = "Would update" if dry_run else "Updated"
        self.stdout.write(
            self.style.SUCCESS(
                f"{verb} {changed_count} subscription(s), {failed_count} failed.",
            ),
        )
