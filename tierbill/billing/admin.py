"""
Django admin configuration for billing models.

The ledger is written by the webhook processor, so the admin is read-mostly:
pricing and phase columns are shown but not editable.
"""

from django.contrib import admin

from tierbill.billing.models import SubscriptionLedger


@admin.register(SubscriptionLedger)
class SubscriptionLedgerAdmin(admin.ModelAdmin):
    """Admin for attorney subscription ledger rows."""

    list_display = [
        "attorney_id",
        "external_subscription_id",
        "status",
        "current_price",
        "next_price",
        "next_price_change_at",
        "remaining_discount_months",
        "last_payment_status",
    ]
    list_filter = ["status", "last_payment_status", "discount_percent"]
    search_fields = ["attorney_id", "external_subscription_id", "customer_id"]
    ordering = ["-created"]
    readonly_fields = [
        "external_subscription_id",
        "customer_id",
        "base_price",
        "original_base_price",
        "current_price",
        "next_price",
        "next_price_change_at",
        "discount_percent",
        "remaining_discount_months",
        "phase_index",
        "phase_iterations",
        "created",
        "modified",
    ]

    fieldsets = [
        (None, {"fields": ["attorney_id", "status"]}),
        ("Stripe", {"fields": ["external_subscription_id", "customer_id"]}),
        (
            "Pricing",
            {
                "fields": [
                    "base_price",
                    "original_base_price",
                    "current_price",
                    "next_price",
                    "next_price_change_at",
                    "discount_percent",
                    "remaining_discount_months",
                ],
                "description": "Amounts are in cents.",
            },
        ),
        ("Phase", {"fields": ["phase_index", "phase_iterations"]}),
        ("Periods", {"fields": ["trial_ends_at", "current_period_end"]}),
        (
            "Last payment",
            {
                "fields": [
                    "last_payment_status",
                    "last_payment_amount",
                    "last_payment_date",
                    "last_invoice_id",
                ],
            },
        ),
        ("Timestamps", {"fields": ["created", "modified"]}),
    ]
