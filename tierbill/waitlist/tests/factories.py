import factory
from factory.django import DjangoModelFactory

from tierbill.waitlist.models import WaitlistEntry


class WaitlistEntryFactory(DjangoModelFactory):
    class Meta:
        model = WaitlistEntry
        django_get_or_create = ["email"]

    email = factory.Sequence(lambda n: f"attorney{n}@example.com")
    waitlist_position = factory.Sequence(lambda n: n + 1)
    licenses = factory.LazyFunction(lambda: ["CA-100001"])
