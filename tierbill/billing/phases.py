"""
Multi-phase price scheduling on top of a plain Stripe subscription.

Stripe subscriptions carry one live price. To walk a subscriber through
trial → discounted price → full price we keep the lifetime plan ourselves:

- The live phase is applied to the subscription item.
- Pending phases, the index of the live phase, and the number of qualifying
  billing cycles elapsed in it are stored as subscription metadata.
- Every customer.subscription.updated event for a new billing period is a
  "tick" that moves the cursor (see webhooks.py). When the live phase has
  used up its iterations, the next phase's price is applied with proration
  disabled.

The last phase of every plan is open-ended and carries the full price.

Metadata written to the subscription:

    scheduled_phases    JSON list of pending phases (removed once the
                        terminal phase is live)
    current_phase       index of the live phase in the lifetime plan
    current_iterations  qualifying cycles elapsed in the live phase
    live_phase          JSON of the live phase, so its bound is known
    cursor_period_end   current_period_end at which the cursor last moved
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import UTC
from datetime import datetime
from typing import TYPE_CHECKING

import stripe
from django.db import transaction
from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import ValidationError

from tierbill.billing.catalog import PriceCatalog
from tierbill.billing.constants import META_CURRENT_ITERATIONS
from tierbill.billing.constants import META_CURRENT_PHASE
from tierbill.billing.constants import META_CURSOR_PERIOD_END
from tierbill.billing.constants import META_LIVE_PHASE
from tierbill.billing.constants import META_SCHEDULED_PHASES
from tierbill.billing.constants import SECOND_YEAR_DISCOUNT_MONTHS
from tierbill.billing.constants import STRIPE_STATUS_MAP
from tierbill.billing.constants import PriceKind
from tierbill.billing.constants import SubscriptionStatus
from tierbill.billing.exceptions import InvalidPhaseMetadataError
from tierbill.billing.models import SubscriptionLedger
from tierbill.billing.periods import add_calendar_months
from tierbill.billing.periods import from_timestamp
from tierbill.billing.periods import to_timestamp
from tierbill.billing.tiers import apply_discount

if TYPE_CHECKING:
    from tierbill.billing.events import Subscription
    from tierbill.billing.tiers import DiscountTier

logger = logging.getLogger(__name__)


class BillingPhase(BaseModel):
    """
    A run of billing cycles at one fixed price.

    iterations=None means open-ended (runs until cancellation).
    """

    model_config = ConfigDict(frozen=True)

    price: str
    amount: int = Field(ge=0)
    iterations: int | None = Field(default=None, ge=1)
    trial: bool = False
    discount_percent: int = Field(default=0, ge=0, le=100)

    @property
    def is_open_ended(self) -> bool:
        return self.iterations is None


class PhaseCursor(BaseModel):
    """Position of a subscription in its lifetime plan."""

    model_config = ConfigDict(frozen=True)

    current_phase: int = Field(default=0, ge=0)
    current_iterations: int = Field(default=0, ge=0)
    live_phase: BillingPhase
    scheduled_phases: tuple[BillingPhase, ...] = ()
    period_end: int | None = None

    @classmethod
    def from_metadata(cls, metadata: dict | None) -> PhaseCursor | None:
        """
        Read the cursor back from subscription metadata.

        Returns None when the subscription has no pending phases, which
        means there is nothing left to schedule.
        """
        metadata = metadata or {}
        raw_scheduled = metadata.get(META_SCHEDULED_PHASES)
        if not raw_scheduled:
            return None

        try:
            scheduled = json.loads(raw_scheduled)
            live = json.loads(metadata[META_LIVE_PHASE])
            period_end = metadata.get(META_CURSOR_PERIOD_END) or None
            return cls(
                current_phase=int(metadata.get(META_CURRENT_PHASE) or 0),
                current_iterations=int(metadata.get(META_CURRENT_ITERATIONS) or 0),
                live_phase=live,
                scheduled_phases=scheduled,
                period_end=int(period_end) if period_end else None,
            )
        except (KeyError, ValueError, TypeError, ValidationError) as e:
            msg = f"Invalid phase metadata: {e}"
            raise InvalidPhaseMetadataError(msg) from e

    def to_metadata(self) -> dict[str, str]:
        """
        Serialise for Stripe. Stripe metadata values are strings, and an
        empty string removes the key.
        """
        scheduled = [
            phase.model_dump(exclude_defaults=True) for phase in self.scheduled_phases
        ]
        return {
            META_SCHEDULED_PHASES: _compact_json(scheduled) if scheduled else "",
            META_CURRENT_PHASE: str(self.current_phase),
            META_CURRENT_ITERATIONS: str(self.current_iterations),
            META_LIVE_PHASE: _compact_json(
                self.live_phase.model_dump(exclude_defaults=True),
            ),
            META_CURSOR_PERIOD_END: str(self.period_end or ""),
        }

    @property
    def is_terminal(self) -> bool:
        return not self.scheduled_phases and self.live_phase.is_open_ended

    @property
    def bound_reached(self) -> bool:
        bound = self.live_phase.iterations
        return bound is not None and self.current_iterations >= bound

    def record_cycle(self, period_end: int | None) -> PhaseCursor:
        """Count one qualifying billing cycle in the live phase."""
        return self.model_copy(
            update={
                "current_iterations": self.current_iterations + 1,
                "period_end": period_end,
            },
        )

    def advance(self) -> PhaseCursor:
        """Make the next scheduled phase live. Iterations restart at 0."""
        if not self.scheduled_phases:
            msg = "No scheduled phase to advance to"
            raise InvalidPhaseMetadataError(msg)
        return self.model_copy(
            update={
                "current_phase": self.current_phase + 1,
                "current_iterations": 0,
                "live_phase": self.scheduled_phases[0],
                "scheduled_phases": self.scheduled_phases[1:],
            },
        )


@dataclass(frozen=True)
class LedgerValues:
    """Ledger pricing columns derived from a cursor."""

    current_price: int
    next_price: int
    next_price_change_at: datetime | None
    discount_percent: int
    remaining_discount_months: int
    phase_index: int
    phase_iterations: int

    def apply_to(self, ledger: SubscriptionLedger) -> list[str]:
        """Copy onto a ledger row; returns the changed field names for save()."""
        fields = [
            "current_price",
            "next_price",
            "next_price_change_at",
            "discount_percent",
            "remaining_discount_months",
            "phase_index",
            "phase_iterations",
        ]
        for field in fields:
            setattr(ledger, field, getattr(self, field))
        return fields


def ledger_values(
    cursor: PhaseCursor,
    *,
    status: str,
    period_end: datetime | None,
    trial_end: datetime | None = None,
) -> LedgerValues:
    """
    Derive the ledger's pricing columns from the phase cursor.

    The discount allotment stays full while the trial is live, counts down
    on every qualifying cycle of the discount phase, and is 0 once only
    the full price phase is left.
    """
    live = cursor.live_phase
    upcoming = cursor.scheduled_phases

    if live.discount_percent > 0:
        discount_phase = live
    else:
        discount_phase = next((p for p in upcoming if p.discount_percent > 0), None)

    if discount_phase is None:
        remaining = 0
    elif discount_phase is live:
        remaining = max(0, (live.iterations or 0) - cursor.current_iterations)
    else:
        remaining = discount_phase.iterations or 0

    if status == SubscriptionStatus.TRIALING:
        next_change = trial_end
    elif live.iterations is not None and period_end is not None:
        cycles_left = max(0, live.iterations - cursor.current_iterations - 1)
        next_change = add_calendar_months(period_end, cycles_left)
    else:
        next_change = None

    return LedgerValues(
        current_price=0 if status == SubscriptionStatus.TRIALING else live.amount,
        next_price=upcoming[0].amount if upcoming else live.amount,
        next_price_change_at=next_change,
        discount_percent=discount_phase.discount_percent if discount_phase else 0,
        remaining_discount_months=remaining,
        phase_index=cursor.current_phase,
        phase_iterations=cursor.current_iterations,
    )


class PhaseScheduler:
    """
    Build a subscriber's lifetime price plan and apply it to Stripe.

    Called once per subscription, when checkout completes.

    Usage:
        scheduler = PhaseScheduler()
        ledger = scheduler.build_and_apply_phases(
            subscription,
            original_base_price=10000,
            discount_tier=TIER_1,
            attorney_id="att_1",
        )
    """

    def __init__(self, catalog: PriceCatalog | None = None):
        self.catalog = catalog or PriceCatalog()

    def build_phases(
        self,
        *,
        live_price_id: str,
        live_amount: int,
        original_base_price: int,
        discount_tier: DiscountTier | None,
    ) -> list[BillingPhase]:
        """
        Expand a tier into an ordered list of phases.

        - No tier: a single open-ended phase at the full price.
        - Trial: first phase keeps the price already live on the
          subscription, for trial_months iterations.
        - Second-year discount: 12 iterations at the discounted price.
        - Otherwise an additional discount window, if the tier has one.
        - Always ends with an open-ended phase at the full price.
        """
        full_price = BillingPhase(
            price=self.catalog.get_or_create_price(original_base_price, PriceKind.BASE),
            amount=original_base_price,
        )
        if discount_tier is None:
            return [full_price]

        phases: list[BillingPhase] = []
        if discount_tier.trial_months > 0:
            phases.append(
                BillingPhase(
                    price=live_price_id,
                    amount=live_amount,
                    iterations=discount_tier.trial_months,
                    trial=True,
                ),
            )

        percent, months = 0, 0
        if discount_tier.second_year_discount_percent > 0:
            percent = discount_tier.second_year_discount_percent
            months = SECOND_YEAR_DISCOUNT_MONTHS
        elif discount_tier.additional_discount:
            percent = discount_tier.additional_discount.percent
            months = discount_tier.additional_discount.months

        if percent > 0 and months > 0:
            discounted = apply_discount(original_base_price, percent)
            phases.append(
                BillingPhase(
                    price=self.catalog.get_or_create_price(
                        discounted,
                        PriceKind.DISCOUNT,
                    ),
                    amount=discounted,
                    iterations=months,
                    discount_percent=percent,
                ),
            )

        phases.append(full_price)
        return phases

    def build_and_apply_phases(
        self,
        subscription: Subscription,
        original_base_price: int,
        discount_tier: DiscountTier | None,
        *,
        attorney_id: str,
    ) -> SubscriptionLedger:
        """
        Apply the first phase to the Stripe subscription, persist the rest
        as metadata, and create the ledger row.

        The ledger row is inserted first, inside the same transaction as the
        Stripe update. A concurrent duplicate delivery fails on the unique
        subscription id (IntegrityError, left to the caller); a Stripe
        failure rolls the row back so the retried event starts clean.
        """
        item = subscription.first_item
        live_amount = item.price.unit_amount if item.price else None
        if live_amount is None:
            live_amount = self.catalog.get_price_amount(item.price_id)

        phases = self.build_phases(
            live_price_id=item.price_id,
            live_amount=live_amount,
            original_base_price=original_base_price,
            discount_tier=discount_tier,
        )
        first = phases[0]

        trial_end = None
        if first.trial:
            started = from_timestamp(subscription.start_date) or datetime.now(tz=UTC)
            trial_end = add_calendar_months(started, first.iterations)

        status = STRIPE_STATUS_MAP.get(
            subscription.status,
            SubscriptionStatus.TRIALING,
        )
        if trial_end is not None:
            status = SubscriptionStatus.TRIALING
            period_end = trial_end
        else:
            period_end = from_timestamp(subscription.period_end)

        cursor = PhaseCursor(
            live_phase=first,
            scheduled_phases=tuple(phases[1:]),
            period_end=to_timestamp(period_end),
        )
        values = ledger_values(
            cursor,
            status=status,
            period_end=period_end,
            trial_end=trial_end,
        )

        with transaction.atomic():
            ledger = SubscriptionLedger(
                attorney_id=attorney_id,
                external_subscription_id=subscription.id,
                customer_id=subscription.customer or "",
                status=status,
                base_price=original_base_price,
                original_base_price=original_base_price,
                trial_ends_at=trial_end,
                current_period_end=period_end,
            )
            values.apply_to(ledger)
            ledger.save()

            self._apply_first_phase(subscription, cursor, trial_end)

        logger.info(
            "Applied %d phase plan to subscription %s for attorney %s",
            len(phases),
            subscription.id,
            attorney_id,
        )
        return ledger

    def _apply_first_phase(
        self,
        subscription: Subscription,
        cursor: PhaseCursor,
        trial_end: datetime | None,
    ) -> None:
        params = {
            "items": [
                {
                    "id": subscription.first_item.id,
                    "price": cursor.live_phase.price,
                },
            ],
            "proration_behavior": "none",
        }
        if cursor.is_terminal:
            # Single-phase plan: just move to the full price, no cursor
            stripe.Subscription.modify(subscription.id, **params)
            return

        if trial_end is not None:
            params["trial_end"] = to_timestamp(trial_end)
        params["metadata"] = cursor.to_metadata()
        stripe.Subscription.modify(subscription.id, **params)


def _compact_json(value) -> str:
    return json.dumps(value, separators=(",", ":"))
