import pytest

from tierbill.billing.models import SubscriptionLedger
from tierbill.billing.tests.factories import SubscriptionLedgerFactory
from tierbill.waitlist.models import WaitlistEntry
from tierbill.waitlist.tests.factories import WaitlistEntryFactory


@pytest.fixture(autouse=True)
def _stripe_settings(settings) -> None:
    settings.STRIPE_WEBHOOK_SECRET = "whsec_test_dummy_secret"
    settings.STRIPE_PRODUCT_ID = "prod_test_tierbill"
    settings.FRONTEND_URL = "https://app.example.com"


@pytest.fixture
def waitlist_entry(db) -> WaitlistEntry:
    return WaitlistEntryFactory(
        email="jane@example.com",
        waitlist_position=500,
        licenses=["CA-123456"],
    )


@pytest.fixture
def ledger(db) -> SubscriptionLedger:
    return SubscriptionLedgerFactory(external_subscription_id="sub_test")
