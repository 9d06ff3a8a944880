import django.utils.timezone
import model_utils.fields
from django.db import migrations
from django.db import models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="SubscriptionLedger",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "created",
                    model_utils.fields.AutoCreatedField(
                        default=django.utils.timezone.now,
                        editable=False,
                        verbose_name="created",
                    ),
                ),
                (
                    "modified",
                    model_utils.fields.AutoLastModifiedField(
                        default=django.utils.timezone.now,
                        editable=False,
                        verbose_name="modified",
                    ),
                ),
                (
                    "attorney_id",
                    models.CharField(
                        db_index=True,
                        help_text="Identifier of the attorney in the calling system.",
                        max_length=255,
                    ),
                ),
                (
                    "external_subscription_id",
                    models.CharField(
                        help_text="Stripe Subscription ID (sub_xxx).",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "customer_id",
                    models.CharField(
                        blank=True,
                        help_text="Stripe Customer ID (cus_xxx).",
                        max_length=255,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("trialing", "Trialing"),
                            ("active", "Active"),
                            ("past_due", "Past Due"),
                            ("unpaid", "Unpaid"),
                            ("incomplete", "Incomplete"),
                            ("cancelled", "Cancelled"),
                        ],
                        default="trialing",
                        max_length=20,
                    ),
                ),
                (
                    "base_price",
                    models.PositiveIntegerField(
                        help_text="Full monthly price the subscription settles on.",
                    ),
                ),
                (
                    "original_base_price",
                    models.PositiveIntegerField(
                        help_text="Undiscounted price captured at checkout.",
                    ),
                ),
                (
                    "current_price",
                    models.PositiveIntegerField(
                        default=0,
                        help_text="Amount currently charged per cycle. 0 while trialing.",
                    ),
                ),
                (
                    "next_price",
                    models.PositiveIntegerField(
                        default=0,
                        help_text="Amount that applies after the next phase change.",
                    ),
                ),
                (
                    "next_price_change_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="Estimated date of the next phase change. Null when terminal.",
                        null=True,
                    ),
                ),
                (
                    "discount_percent",
                    models.PositiveSmallIntegerField(
                        default=0,
                        help_text="Percent off of the live or upcoming discount phase.",
                    ),
                ),
                (
                    "remaining_discount_months",
                    models.PositiveSmallIntegerField(
                        default=0,
                        help_text="Billing cycles left in the discount allotment.",
                    ),
                ),
                (
                    "phase_index",
                    models.PositiveSmallIntegerField(
                        default=0,
                        help_text="Index of the live phase in the lifetime plan.",
                    ),
                ),
                (
                    "phase_iterations",
                    models.PositiveSmallIntegerField(
                        default=0,
                        help_text="Qualifying cycles elapsed in the live phase.",
                    ),
                ),
                ("trial_ends_at", models.DateTimeField(blank=True, null=True)),
                (
                    "current_period_end",
                    models.DateTimeField(
                        blank=True,
                        help_text="Period end of the last counted cycle.",
                        null=True,
                    ),
                ),
                (
                    "last_payment_status",
                    models.CharField(
                        blank=True,
                        choices=[("succeeded", "Succeeded"), ("failed", "Failed")],
                        max_length=20,
                    ),
                ),
                (
                    "last_payment_amount",
                    models.PositiveIntegerField(blank=True, null=True),
                ),
                ("last_payment_date", models.DateTimeField(blank=True, null=True)),
                ("last_invoice_id", models.CharField(blank=True, max_length=255)),
            ],
            options={
                "indexes": [
                    models.Index(fields=["status"], name="billing_ledger_status_idx"),
                    models.Index(
                        fields=["customer_id"],
                        name="billing_ledger_customer_idx",
                    ),
                ],
            },
        ),
    ]
