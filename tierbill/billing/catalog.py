"""
Price catalog backed by Stripe lookup keys.

Every monetary amount we charge is a monthly recurring Stripe Price under the
single configured product. Prices are deduplicated through their lookup key,
"{kind}_{amount}", so that the same (kind, amount) pair always resolves to the
same Stripe price instead of creating a new one per subscriber.

Nothing is cached in process: several workers may run at once, and the lookup
key on the Stripe side is the source of truth. Check-then-create is not atomic
on Stripe, so two workers seeing a new amount at the same moment can create two
prices. That is tolerated: later lookups consistently return one of them.
"""

from __future__ import annotations

import logging

import stripe
from django.conf import settings

from tierbill.billing.constants import PriceKind

logger = logging.getLogger(__name__)


def build_lookup_key(kind: str, amount: int) -> str:
    """Deterministic lookup key for a price kind and amount in minor units."""
    return f"{PriceKind(kind).value}_{int(amount)}"


class PriceCatalog:
    """
    Resolve amounts to Stripe price ids, creating prices on first use.

    The Stripe client is configured at startup (see BillingConfig.ready).

    Usage:
        catalog = PriceCatalog()
        price_id = catalog.get_or_create_price(5000, PriceKind.DISCOUNT)
    """

    def __init__(self, product_id: str | None = None, currency: str | None = None):
        self.product_id = product_id or settings.STRIPE_PRODUCT_ID
        self.currency = currency or settings.STRIPE_CURRENCY

    def get_or_create_price(self, amount: int, kind: str) -> str:
        """
        Return the id of the active price for (kind, amount).

        Creates a monthly recurring price under the configured product when
        no active price carries the lookup key yet.
        """
        if amount is None or int(amount) < 0:
            msg = f"Price amount must be a non-negative integer, got {amount!r}"
            raise ValueError(msg)

        lookup_key = build_lookup_key(kind, amount)

        prices = stripe.Price.list(
            lookup_keys=[lookup_key],
            active=True,
            limit=1,
        )
        if prices.data:
            price_id = prices.data[0].id
            logger.debug("Found existing price %s for %s", price_id, lookup_key)
            return price_id

        price = stripe.Price.create(
            unit_amount=int(amount),
            currency=self.currency,
            recurring={"interval": "month"},
            product=self.product_id,
            lookup_key=lookup_key,
        )
        logger.info("Created price %s for %s", price.id, lookup_key)
        return price.id

    def get_price_amount(self, price_id: str) -> int:
        """Unit amount of a Stripe price in minor units."""
        price = stripe.Price.retrieve(price_id)
        return price.unit_amount or 0
