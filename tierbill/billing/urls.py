"""
URL configuration for the billing app.

Routes:
- /api/billing/discount-tier/     - Resolve discount tier (POST)
- /api/billing/checkout-session/  - Start checkout or open portal (POST)
- /api/billing/verify-payment/    - Post-checkout lookup (GET, ?session_id=)
- /api/billing/webhook/           - Stripe webhook endpoint (POST)
"""

from django.urls import path

from tierbill.billing.views import BillingWebhookView
from tierbill.billing.views import CheckoutSessionView
from tierbill.billing.views import DiscountTierView
from tierbill.billing.views import VerifyPaymentView

app_name = "billing"

urlpatterns = [
    path(
        "discount-tier/",
        DiscountTierView.as_view(),
        name="discount-tier",
    ),
    path(
        "checkout-session/",
        CheckoutSessionView.as_view(),
        name="checkout-session",
    ),
    path(
        "verify-payment/",
        VerifyPaymentView.as_view(),
        name="verify-payment",
    ),
    path(
        "webhook/",
        BillingWebhookView.as_view(),
        name="webhook",
    ),
]
