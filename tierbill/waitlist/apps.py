from django.apps import AppConfig


class WaitlistConfig(AppConfig):
    """
    Django app configuration for the waitlist app.

    Holds the early-signup records (position and bar licenses) that the
    billing engine reads to pick a discount tier. Intake itself happens
    elsewhere; this app only stores the rows.
    """

    default_auto_field = "django.db.models.BigAutoField"
    name = "tierbill.waitlist"
