"""
With these settings, tests run faster.
"""

from .base import *  # noqa: F403
from .base import DATABASES
from .base import env

# GENERAL
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#secret-key
SECRET_KEY = env(
    "DJANGO_SECRET_KEY",
    default="QkV3n8Rr5TfL2wXyZ0aB7cD4eF1gH6iJ9kL3mN5oP8qR2sT0uV4wX7yZ1aB3cD6e",
)
# https://docs.djangoproject.com/en/dev/ref/settings/#test-runner
TEST_RUNNER = "django.test.runner.DiscoverRunner"
DATABASES["default"]["CONN_MAX_AGE"] = 0
# https://docs.djangoproject.com/en/dev/ref/settings/#allowed-hosts
ALLOWED_HOSTS = ["localhost", "127.0.0.1", "testserver"]

# PASSWORDS
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#password-hashers
PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

# BILLING / STRIPE
# ------------------------------------------------------------------------------
# Dummy values; every Stripe call is patched in tests
STRIPE_SECRET_KEY = "sk_test_dummy_test_key_for_testing"
STRIPE_WEBHOOK_SECRET = "whsec_test_dummy_secret"
STRIPE_PRODUCT_ID = "prod_test_tierbill"
STRIPE_MAX_NETWORK_RETRIES = 0
FRONTEND_URL = "https://app.example.com"
BILLING_DEFAULT_BASE_PRICE = 10000
