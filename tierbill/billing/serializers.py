from __future__ import annotations

from rest_framework import serializers


class DiscountTierRequestSerializer(serializers.Serializer):
    """Who is asking for a discount, and with which bar licenses."""

    email = serializers.EmailField()
    licenses = serializers.ListField(
        child=serializers.CharField(max_length=64),
        allow_empty=True,
        default=list,
    )


class CheckoutSessionRequestSerializer(DiscountTierRequestSerializer):
    attorney_id = serializers.CharField(max_length=255)
    base_price = serializers.IntegerField(min_value=1, required=False)


class VerifyPaymentQuerySerializer(serializers.Serializer):
    session_id = serializers.CharField(max_length=255)
