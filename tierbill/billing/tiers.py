"""
Discount tiers for early signups.

A tier is picked from the person's waitlist position:

    TIER_1: position <= 1000  12 month trial, then 50% off for 12 months
    TIER_2: position <= 2500  12 month trial, then 25% off for 12 months
    TIER_3: everyone else     6 month trial, then 50% off for 6 months

Tiers are checked in ascending max_position order and the first match wins.
The tier without a max_position is the catch-all and is always checked last.

The discount is only granted when one of the licenses presented at signup
matches a license stored on the waitlist entry, so a discount earned under
one license can't be redeemed with an unrelated one.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from decimal import ROUND_HALF_UP
from decimal import Decimal

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field

from tierbill.billing.constants import MONTHS_PER_YEAR
from tierbill.waitlist.models import WaitlistEntry

logger = logging.getLogger(__name__)


class AdditionalDiscount(BaseModel):
    """A percent-off window that follows the trial."""

    model_config = ConfigDict(frozen=True)

    percent: int = Field(ge=0, le=100)
    months: int = Field(ge=0)


class DiscountTier(BaseModel):
    """
    Immutable discount policy.

    Serialised into the checkout session metadata, which is the only place
    the tier survives between checkout and the checkout.session.completed
    webhook.
    """

    model_config = ConfigDict(frozen=True)

    code: str = ""
    trial_months: int = Field(ge=0)
    second_year_discount_percent: int = Field(default=0, ge=0, le=100)
    additional_discount: AdditionalDiscount | None = None
    max_position: int | None = None

    @property
    def discount_percent(self) -> int:
        """Percent off applied after the trial, 0 if none."""
        if self.second_year_discount_percent > 0:
            return self.second_year_discount_percent
        if self.additional_discount:
            return self.additional_discount.percent
        return 0

    @property
    def effective_first_year_discount(self) -> float:
        """
        Average percent off over the first 12 months.

        Trial months count as 100% off, followed by whatever discount window
        comes after the trial. Used to compare how generous tiers are.
        """
        trial = min(self.trial_months, MONTHS_PER_YEAR)
        saved = trial * 100
        remaining = MONTHS_PER_YEAR - trial
        if self.second_year_discount_percent > 0:
            saved += remaining * self.second_year_discount_percent
        elif self.additional_discount:
            months = min(self.additional_discount.months, remaining)
            saved += months * self.additional_discount.percent
        return saved / MONTHS_PER_YEAR


TIER_1 = DiscountTier(
    code="TIER_1",
    max_position=1000,
    trial_months=12,
    second_year_discount_percent=50,
)
TIER_2 = DiscountTier(
    code="TIER_2",
    max_position=2500,
    trial_months=12,
    second_year_discount_percent=25,
)
TIER_3 = DiscountTier(
    code="TIER_3",
    trial_months=6,
    second_year_discount_percent=0,
    additional_discount=AdditionalDiscount(percent=50, months=6),
)

# Threshold tiers ascending by max_position, catch-all last
DISCOUNT_TIERS: tuple[DiscountTier, ...] = tuple(
    sorted(
        (TIER_1, TIER_2, TIER_3),
        key=lambda tier: (tier.max_position is None, tier.max_position or 0),
    ),
)


def apply_discount(amount: int, percent: int) -> int:
    """Discounted amount in minor units, rounded half up to the cent."""
    discounted = Decimal(int(amount)) * (100 - int(percent)) / 100
    return int(discounted.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def get_discount_tier(
    position: int | None,
    tiers: Iterable[DiscountTier] = DISCOUNT_TIERS,
) -> DiscountTier:
    """
    Map a waitlist position to its tier.

    An entry that has no position yet is treated like any other late signup
    and lands on the catch-all tier.
    """
    fallback = None
    for tier in tiers:
        if tier.max_position is None:
            fallback = tier
            continue
        if position is not None and position <= tier.max_position:
            logger.debug("Position %s qualifies for %s", position, tier.code)
            return tier

    if fallback is None:
        msg = "Discount tiers must include a catch-all tier without max_position"
        raise ValueError(msg)

    logger.debug("Position %s falls through to %s", position, fallback.code)
    return fallback


class DiscountTierResolver:
    """
    Resolve the discount tier for a signup.

    Read-only: performs one waitlist lookup. Database errors propagate,
    since issuing a subscription on a wrong tier is worse than failing.

    Usage:
        tier = DiscountTierResolver().resolve_tier(
            "jane@example.com",
            ["CA-123456"],
        )
        if tier is None:
            # No discount: full price, single phase
    """

    def resolve_tier(
        self,
        email: str,
        presented_licenses: Iterable[str],
    ) -> DiscountTier | None:
        presented = [str(license_number) for license_number in presented_licenses or []]
        logger.info("Resolving discount tier for %s", email)

        try:
            entry = WaitlistEntry.objects.get(email__iexact=email)
        except WaitlistEntry.DoesNotExist:
            logger.info("No waitlist entry for %s, no discount", email)
            return None

        if not entry.has_matching_license(presented):
            logger.info(
                "No matching license for %s (presented %d), no discount",
                email,
                len(presented),
            )
            return None

        tier = get_discount_tier(entry.waitlist_position)
        logger.info(
            "Resolved %s for %s at waitlist position %s",
            tier.code,
            email,
            entry.waitlist_position,
        )
        return tier
