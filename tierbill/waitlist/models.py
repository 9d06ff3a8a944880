"""
Waitlist records consulted by the discount tier resolver.

One row per email address, stored lowercase. The position is the signup
rank used to pick a discount tier; the licenses are the bar licenses the person gave when they
joined, and one of them must be presented again to claim the discount.
"""

from django.db import models
from django.db.models.functions import Lower
from model_utils.models import TimeStampedModel


class WaitlistEntry(TimeStampedModel):
    """
    An early signup on the waitlist.

    Usage:
        entry = WaitlistEntry.objects.get(email="jane@example.com")
        entry.has_matching_license(["CA-123456"])
    """

    email = models.EmailField(
        unique=True,
        help_text="Email address the person joined the waitlist with.",
    )
    waitlist_position = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Signup rank, 1 = first. Null until a position is assigned.",
    )
    licenses = models.JSONField(
        default=list,
        blank=True,
        help_text="Bar license numbers given at signup.",
    )

    class Meta:
        ordering = ["waitlist_position"]
        verbose_name_plural = "waitlist entries"
        constraints = [
            models.UniqueConstraint(
                Lower("email"),
                name="waitlist_entry_email_ci_unique",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.email} (#{self.waitlist_position})"

    def save(self, *args, **kwargs):
        # Emails are matched case-insensitively by the tier resolver
        self.email = self.email.strip().lower()
        super().save(*args, **kwargs)

    def has_matching_license(self, presented_licenses) -> bool:
        """True if any presented license is one stored on this entry."""
        stored = set(self.licenses or [])
        return any(license_number in stored for license_number in presented_licenses)
