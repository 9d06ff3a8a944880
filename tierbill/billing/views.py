"""
HTTP endpoints for the billing engine.

- POST discount-tier/      {"tier": ...} for an email and its licenses (tier may be null)
- POST checkout-session/   start checkout, or open the portal for a returning customer
- GET  verify-payment/     checkout session and subscription after the redirect
- POST webhook/            Stripe webhook endpoint

Design: thin APIViews. All billing decisions live in the service classes;
these views only validate input and map exceptions to status codes.
Authentication is handled by the calling layer in front of this service,
so DRF auth is disabled here.
"""

import logging

import stripe
from django.conf import settings
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from tierbill.billing.exceptions import BillingInputError
from tierbill.billing.exceptions import WebhookSignatureError
from tierbill.billing.serializers import CheckoutSessionRequestSerializer
from tierbill.billing.serializers import DiscountTierRequestSerializer
from tierbill.billing.serializers import VerifyPaymentQuerySerializer
from tierbill.billing.services import BillingService
from tierbill.billing.tiers import DiscountTierResolver
from tierbill.billing.webhooks import WebhookEventProcessor

logger = logging.getLogger(__name__)


class DiscountTierView(APIView):
    """Resolve the discount tier for a signup."""

    authentication_classes = []
    permission_classes = []

    def post(self, request):
        serializer = DiscountTierRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        tier = DiscountTierResolver().resolve_tier(
            serializer.validated_data["email"],
            serializer.validated_data["licenses"],
        )
        return Response({"tier": tier.model_dump(mode="json") if tier else None})


class CheckoutSessionView(APIView):
    """
    Start billing for an attorney.

    The tier is resolved here from the waitlist, never taken from the
    request body.
    """

    authentication_classes = []
    permission_classes = []

    def post(self, request):
        serializer = CheckoutSessionRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        tier = DiscountTierResolver().resolve_tier(data["email"], data["licenses"])
        base_price = data.get("base_price") or settings.BILLING_DEFAULT_BASE_PRICE

        try:
            session = BillingService().start_or_resume_billing(
                customer_email=data["email"],
                attorney_id=data["attorney_id"],
                base_price=base_price,
                discount_tier=tier,
            )
        except BillingInputError as e:
            return Response({"error": str(e)}, status=status.HTTP_400_BAD_REQUEST)
        except stripe.StripeError:
            logger.exception(
                "Stripe error starting billing for attorney %s",
                data["attorney_id"],
            )
            return Response(
                {"error": "Unable to start checkout. Please try again."},
                status=status.HTTP_502_BAD_GATEWAY,
            )

        return Response({"url": session.url, "mode": session.mode})


class VerifyPaymentView(APIView):
    """Checkout session and subscription for the post-checkout page."""

    authentication_classes = []
    permission_classes = []

    def get(self, request):
        serializer = VerifyPaymentQuerySerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        session_id = serializer.validated_data["session_id"]

        try:
            result = BillingService().get_session_and_subscription(session_id)
        except (BillingInputError, stripe.InvalidRequestError) as e:
            logger.info("No subscription for checkout session %s: %s", session_id, e)
            return Response(
                {"error": "No subscription found for this session"},
                status=status.HTTP_404_NOT_FOUND,
            )
        except stripe.StripeError:
            logger.exception("Stripe error verifying checkout session %s", session_id)
            return Response(
                {"error": "Unable to verify payment. Please try again."},
                status=status.HTTP_502_BAD_GATEWAY,
            )

        return Response(result)


class BillingWebhookView(APIView):
    """
    Receive Stripe webhook deliveries.

    200 tells Stripe the event is done with (processed, ignored or skipped).
    400 rejects an unauthenticated delivery. 500 asks Stripe to redeliver.

    URL: /api/billing/webhook/
    Method: POST
    Authentication: Stripe-Signature header
    """

    # The Stripe signature is the authentication; DRF auth is disabled here.
    authentication_classes = []
    permission_classes = []

    def post(self, request):
        try:
            result = WebhookEventProcessor().handle_webhook_event(
                request.body,
                request.headers.get("Stripe-Signature"),
            )
        except WebhookSignatureError as e:
            return Response({"error": str(e)}, status=status.HTTP_400_BAD_REQUEST)
        except Exception:
            logger.exception("Error processing Stripe webhook")
            return Response(
                {"error": "Internal server error"},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

        return Response({"received": True, "status": result.status})
