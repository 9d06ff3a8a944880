from django.apps import AppConfig


class BillingConfig(AppConfig):
    """
    Django app configuration for the billing app.

    Handles the tiered discount engine: checkout, phase scheduling on top of
    Stripe subscriptions, and the subscription ledger kept in sync by
    Stripe webhooks.
    """

    default_auto_field = "django.db.models.BigAutoField"
    name = "tierbill.billing"

    def ready(self):
        """
        Configure the Stripe client once per process.

        stripe-python keeps the API key and HTTP client as module globals,
        so they are set here rather than per request.
        """
        from tierbill.billing.services import configure_stripe

        configure_stripe()
