"""Tests for the waitlist model."""

from django.db import IntegrityError
from django.test import TestCase

from tierbill.waitlist.models import WaitlistEntry
from tierbill.waitlist.tests.factories import WaitlistEntryFactory


class WaitlistEntryTests(TestCase):
    def test_str_shows_email_and_position(self):
        entry = WaitlistEntryFactory(email="jane@example.com", waitlist_position=42)
        self.assertEqual(str(entry), "jane@example.com (#42)")

    def test_email_is_unique(self):
        WaitlistEntry.objects.create(email="dup@example.com", waitlist_position=1)
        with self.assertRaises(IntegrityError):
            WaitlistEntry.objects.create(email="dup@example.com", waitlist_position=2)

    def test_has_matching_license(self):
        entry = WaitlistEntryFactory(licenses=["CA-1", "NY-2"])
        self.assertTrue(entry.has_matching_license(["TX-9", "NY-2"]))
        self.assertFalse(entry.has_matching_license(["TX-9"]))
        self.assertFalse(entry.has_matching_license([]))

    def test_has_matching_license_with_no_stored_licenses(self):
        entry = WaitlistEntryFactory(licenses=[])
        self.assertFalse(entry.has_matching_license(["CA-1"]))

    def test_email_is_stored_lowercase(self):
        entry = WaitlistEntry.objects.create(email=" Jane@Example.COM ")
        entry.refresh_from_db()
        self.assertEqual(entry.email, "jane@example.com")

    def test_email_is_unique_ignoring_case(self):
        WaitlistEntry.objects.create(email="Jane@Example.com", waitlist_position=1)
        with self.assertRaises(IntegrityError):
            WaitlistEntry.objects.create(email="jane@example.com", waitlist_position=2)

    def test_case_insensitive_uniqueness_is_enforced_by_the_database(self):
        # bulk_create skips save(), so only the constraint stands in the way
        WaitlistEntry.objects.bulk_create([WaitlistEntry(email="Jane@Example.com")])
        with self.assertRaises(IntegrityError):
            WaitlistEntry.objects.bulk_create([WaitlistEntry(email="JANE@example.com")])
