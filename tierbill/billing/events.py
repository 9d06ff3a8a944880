"""
Typed views of the Stripe payloads the billing engine consumes.

Webhook payloads are verified by stripe.Webhook.construct_event and then
validated into these models, so handlers work with a closed set of event
types instead of loosely-typed dicts. Subscriptions fetched with
stripe.Subscription.retrieve are validated into the same Subscription
model.
"""

from __future__ import annotations

import logging
from typing import Annotated
from typing import Literal

import stripe
from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import TypeAdapter
from pydantic import ValidationError

from tierbill.billing.exceptions import WebhookProcessingError
from tierbill.billing.tiers import DiscountTier

logger = logging.getLogger(__name__)


class StripePayload(BaseModel):
    """Base for Stripe objects. Fields we don't read are ignored."""

    model_config = ConfigDict(extra="ignore")


# ---------------------------------------------------------------------------
# Stripe objects
# ---------------------------------------------------------------------------


class Price(StripePayload):
    id: str
    unit_amount: int | None = None
    lookup_key: str | None = None


class SubscriptionItem(StripePayload):
    id: str
    price: Price | None = None
    current_period_end: int | None = None

    @property
    def price_id(self) -> str | None:
        return self.price.id if self.price else None


class SubscriptionItemList(StripePayload):
    data: list[SubscriptionItem] = Field(default_factory=list)


class Subscription(StripePayload):
    id: str
    status: str
    customer: str | None = None
    start_date: int | None = None
    current_period_end: int | None = None
    trial_end: int | None = None
    metadata: dict[str, str] = Field(default_factory=dict)
    items: SubscriptionItemList = Field(default_factory=SubscriptionItemList)

    @property
    def first_item(self) -> SubscriptionItem:
        if not self.items.data:
            msg = f"Subscription {self.id} has no items"
            raise WebhookProcessingError(msg)
        return self.items.data[0]

    @property
    def period_end(self) -> int | None:
        """
        Current period end. Newer API versions moved it from the
        subscription to its items.
        """
        if self.current_period_end is not None:
            return self.current_period_end
        if self.items.data:
            return self.items.data[0].current_period_end
        return None


class CheckoutSession(StripePayload):
    id: str
    mode: str | None = None
    customer: str | None = None
    subscription: str | None = None
    metadata: dict[str, str] = Field(default_factory=dict)


class InvoiceStatusTransitions(StripePayload):
    paid_at: int | None = None


class Invoice(StripePayload):
    id: str
    subscription: str | None = None
    amount_paid: int = 0
    amount_due: int = 0
    status_transitions: InvoiceStatusTransitions | None = None
    parent: dict | None = None

    @property
    def subscription_id(self) -> str | None:
        """
        Subscription this invoice bills. Recent API versions only expose
        it under parent.subscription_details.
        """
        if self.subscription:
            return self.subscription
        details = (self.parent or {}).get("subscription_details") or {}
        return details.get("subscription")

    @property
    def paid_at(self) -> int | None:
        return self.status_transitions.paid_at if self.status_transitions else None


# ---------------------------------------------------------------------------
# Checkout metadata
# ---------------------------------------------------------------------------


class SubscriptionPlanData(BaseModel):
    """
    The blob carried in checkout session metadata under "subscriptionData".

    This is the only place the original undiscounted price and the tier
    survive between checkout and checkout.session.completed.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    discount_tier: DiscountTier | None = Field(default=None, alias="discountTier")
    original_base_price: int = Field(gt=0, alias="originalBasePrice")
    trial_months: int = Field(default=0, ge=0, alias="trialMonths")

    def to_metadata_value(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


class CheckoutSessionEventData(StripePayload):
    object: CheckoutSession


class SubscriptionEventData(StripePayload):
    object: Subscription


class InvoiceEventData(StripePayload):
    object: Invoice


class CheckoutSessionCompletedEvent(StripePayload):
    id: str
    type: Literal["checkout.session.completed"]
    created: int | None = None
    data: CheckoutSessionEventData


class SubscriptionUpdatedEvent(StripePayload):
    id: str
    type: Literal["customer.subscription.updated"]
    created: int | None = None
    data: SubscriptionEventData


class SubscriptionDeletedEvent(StripePayload):
    id: str
    type: Literal["customer.subscription.deleted"]
    created: int | None = None
    data: SubscriptionEventData


class InvoiceEvent(StripePayload):
    id: str
    type: Literal["invoice.paid", "invoice.payment_failed"]
    created: int | None = None
    data: InvoiceEventData


BillingEvent = Annotated[
    CheckoutSessionCompletedEvent
    | SubscriptionUpdatedEvent
    | SubscriptionDeletedEvent
    | InvoiceEvent,
    Field(discriminator="type"),
]

_event_adapter = TypeAdapter(BillingEvent)

HANDLED_EVENT_TYPES = frozenset(
    {
        "checkout.session.completed",
        "customer.subscription.updated",
        "customer.subscription.deleted",
        "invoice.paid",
        "invoice.payment_failed",
    },
)


def parse_event(data: dict) -> BillingEvent | None:
    """
    Validate a verified, JSON-decoded webhook payload.

    Returns None for event types the engine does not handle. A handled
    event whose payload doesn't match the expected shape raises
    WebhookProcessingError, since redelivering it won't fix it.
    """
    event_type = data.get("type")
    if event_type not in HANDLED_EVENT_TYPES:
        logger.debug("Ignoring unhandled event type %s", event_type)
        return None

    try:
        return _event_adapter.validate_python(data)
    except ValidationError as e:
        msg = f"Malformed {event_type} event {data.get('id')}: {e}"
        raise WebhookProcessingError(msg) from e


def to_plain_dict(stripe_object) -> dict:
    """
    Plain dict copy of a Stripe API object.

    StripeObject is not a dict on current stripe-python releases, so API
    results go through to_dict(). Already-decoded JSON passes through.
    """
    if isinstance(stripe_object, stripe.StripeObject):
        return stripe_object.to_dict()
    return dict(stripe_object)


def parse_subscription(stripe_subscription) -> Subscription:
    """Validate a subscription returned by the Stripe API."""
    try:
        return Subscription.model_validate(to_plain_dict(stripe_subscription))
    except ValidationError as e:
        msg = f"Unexpected subscription shape: {e}"
        raise WebhookProcessingError(msg) from e
